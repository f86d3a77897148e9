"""
log_config.py — 로깅 설정

세션 엔진을 내장하는 프로세스가 시작 시 한 번 호출한다.
"""

import logging
import sys
from typing import Optional

from cbt_session.config import LOG_FILE

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging(log_file: Optional[str] = LOG_FILE, level: int = logging.INFO) -> None:
    """파일 + 콘솔 핸들러로 루트 로거를 설정. 로그 파일을 쓸 수 없으면 콘솔만 사용."""
    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            handlers.insert(0, logging.FileHandler(log_file, encoding="utf-8"))
        except OSError:
            # 로그 파일 점유/권한 문제 시 콘솔 출력만 사용
            pass

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
