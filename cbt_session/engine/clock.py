"""
engine/clock.py

섹션 제한 시간 카운트다운.

남은 시간은 클라이언트에 저장한 카운트다운이 아니라
섹션 시작 시각(서버 기록)과 제한 시간으로부터 매 틱마다 다시 계산한다.
새로고침으로 시간이 늘어나지 않게 하기 위함이다.

  remaining = budget - (now - section_started_at - paused_total), 0 미만은 0

틱은 1초 간격, 만료 콜백은 start() 한 번당 정확히 한 번 호출된다.
"""

import logging
import math
from typing import Callable, List, Optional

from cbt_session.config import TICK_INTERVAL_SECONDS
from cbt_session.engine.scheduler import Scheduler
from cbt_session.models.session_state import TimerState

logger = logging.getLogger(__name__)

_WARNING_SECONDS = 600  # 10분 미만이면 경고 표시


def format_remaining(seconds: float) -> str:
    """남은 시간을 MM:SS 문자열로."""
    seconds = max(0, int(math.ceil(seconds)))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class SessionClock:

    def __init__(self, scheduler: Scheduler, tick_interval: float = TICK_INTERVAL_SECONDS):
        self._scheduler = scheduler
        self._tick_interval = tick_interval
        self._budget = 0.0
        self._elapsed_before_pause = 0.0
        self._resumed_at: Optional[float] = None
        self._remaining = 0.0
        self._handle = None
        self._expired = False
        self._expire_callbacks: List[Callable[[], None]] = []
        self._tick_callbacks: List[Callable[[int], None]] = []

    # ── 구독 ──────────────────────────────────────────────────────────────

    def on_expire(self, callback: Callable[[], None]) -> None:
        self._expire_callbacks.append(callback)

    def on_tick(self, callback: Callable[[int], None]) -> None:
        self._tick_callbacks.append(callback)

    # ── 조회 ──────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._resumed_at is not None

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def remaining_seconds(self) -> int:
        return int(math.ceil(self._remaining))

    @property
    def is_warning(self) -> bool:
        return 0 < self._remaining < _WARNING_SECONDS

    def state(self) -> TimerState:
        return TimerState(
            remaining_seconds=self.remaining_seconds,
            running=self.running,
            expired=self._expired,
        )

    # ── 제어 ──────────────────────────────────────────────────────────────

    def start(self, duration_seconds: float, started_at: Optional[float] = None) -> None:
        """
        섹션 카운트다운 시작.

        Args:
            duration_seconds: 섹션 제한 시간 (초).
            started_at:       섹션 시작 시각 (Unix timestamp). 재개 시 서버 기록값.
                              None이면 지금 시작한 것으로 본다.
        """
        self.stop()
        now = self._scheduler.now()
        self._budget = float(duration_seconds)
        self._elapsed_before_pause = max(0.0, now - started_at) if started_at is not None else 0.0
        self._resumed_at = now
        self._expired = False
        self._remaining = self._budget
        self._remaining = self._compute_remaining()

        if self._remaining <= 0:
            # 재개 시 이미 시간 초과: 다음 루프 차례에 만료 처리
            self._handle = self._scheduler.call_later(0, self._tick)
        else:
            self._schedule_tick()

    def pause(self) -> None:
        if not self.running:
            return
        now = self._scheduler.now()
        self._elapsed_before_pause += now - self._resumed_at
        self._resumed_at = None
        self._cancel_tick()

    def resume(self) -> None:
        if self.running or self._expired:
            return
        self._resumed_at = self._scheduler.now()
        self._schedule_tick()

    def stop(self) -> None:
        """틱 중단 (언마운트/섹션 종료). 만료 콜백은 호출하지 않는다."""
        if self.running:
            self._elapsed_before_pause += self._scheduler.now() - self._resumed_at
        self._resumed_at = None
        self._cancel_tick()

    # ── 내부 ──────────────────────────────────────────────────────────────

    def _compute_remaining(self) -> float:
        elapsed = self._elapsed_before_pause
        if self._resumed_at is not None:
            elapsed += self._scheduler.now() - self._resumed_at
        # 단조 비증가: 시계가 뒤로 가도 남은 시간은 늘지 않는다
        return min(self._remaining, max(0.0, self._budget - elapsed))

    def _schedule_tick(self) -> None:
        self._cancel_tick()
        self._handle = self._scheduler.call_later(self._tick_interval, self._tick)

    def _cancel_tick(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self) -> None:
        self._handle = None
        if not self.running or self._expired:
            return

        self._remaining = self._compute_remaining()
        remaining = self.remaining_seconds
        for cb in list(self._tick_callbacks):
            cb(remaining)

        if self._remaining > 0:
            self._schedule_tick()
            return

        self._expired = True
        self.stop()
        logger.info("섹션 제한 시간 종료")
        for cb in list(self._expire_callbacks):
            cb()
