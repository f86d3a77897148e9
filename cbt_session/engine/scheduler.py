"""
engine/scheduler.py

타이머/백그라운드 작업 추상화.

- Scheduler        : now() + call_later() 인터페이스
- AsyncioScheduler : 실행 중인 이벤트 루프 기반 (실제 시각 time.time())
- ManualScheduler  : 가상 시각. advance()로 시간을 진행시켜 시뮬레이션/테스트에 사용
- ScheduledTask    : 디바운스용. 재예약 시 이전 예약을 취소하여 항상 하나만 대기
- BackgroundTasks  : fire-and-forget 코루틴 추적 (join / cancel_all)
"""

import asyncio
import heapq
import itertools
import logging
import time
from typing import Any, Callable, Coroutine, List, Set, Tuple

logger = logging.getLogger(__name__)


class Scheduler:
    """시각 조회와 지연 호출 인터페이스."""

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any):
        """delay초 뒤 callback(*args) 호출. cancel() 가능한 핸들을 반환."""
        raise NotImplementedError


class AsyncioScheduler(Scheduler):

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(max(0.0, delay), callback, *args)


class ManualHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """
    가상 시각 스케줄러.
    advance(seconds)는 만기 도래한 콜백을 시각 순서대로 하나씩 실행하며,
    콜백 안에서 새로 예약한 콜백도 같은 advance 범위 안이면 실행한다.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, ManualHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        handle = ManualHandle(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    def advance(self, seconds: float) -> None:
        deadline = self._now + seconds
        while self._queue and self._queue[0][0] <= deadline:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, when)
            handle.callback(*handle.args)
        self._now = deadline

    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)


class ScheduledTask:
    """
    단일 예약 작업. schedule()을 다시 부르면 이전 예약은 취소된다.
    """

    def __init__(self, scheduler: Scheduler):
        self._scheduler = scheduler
        self._handle = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, callback: Callable[[], Any]) -> None:
        self.cancel()

        def _fire() -> None:
            self._handle = None
            callback()

        self._handle = self._scheduler.call_later(delay, _fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class BackgroundTasks:
    """
    fire-and-forget 코루틴 모음.
    작업 예외는 error 로그로 남긴다. 처리되지 않은 예외가 이벤트 루프로 새지 않는다.
    """

    def __init__(self, name: str = "background"):
        self._name = name
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[{self._name}] 백그라운드 작업 실패: {exc!r}")

    async def join(self) -> None:
        """추적 중인 작업이 모두 끝날 때까지 대기 (대기 중 새로 생긴 작업 포함)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


def run_soon(tasks: BackgroundTasks, factory: Callable[[], Coroutine[Any, Any, Any]]) -> Callable[[], None]:
    """타이머 콜백(동기)에서 코루틴을 띄우는 어댑터."""

    def _callback() -> None:
        tasks.spawn(factory())

    return _callback
