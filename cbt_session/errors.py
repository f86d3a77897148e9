"""
errors.py

세션 엔진 예외 분류.

- ServiceError          : 외부 서비스 호출 실패 (네트워크 오류, 2xx 이외 응답)
- MalformedResponseError: 응답 본문이 JSON이 아니거나 스키마 검증 실패
- InvalidEditError      : 편집 패치가 문제 불변식(정답 ∈ 보기)을 깨뜨리는 경우

ServiceError 계열은 서비스 클라이언트만 발생시키고,
엔진(디스패처/컨트롤러/편집기)은 경계에서 잡아 상태 플래그로 변환한다.
"""

from typing import Optional


class ServiceError(RuntimeError):
    """외부 서비스 호출 실패."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(ServiceError):
    """응답 형식 오류. 검증되지 않은 필드를 UI 상태로 넘기지 않기 위해 거부한다."""


class InvalidEditError(ValueError):
    """편집 결과가 Question 검증을 통과하지 못함."""
