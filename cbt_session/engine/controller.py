"""
engine/controller.py — 응시 세션 컨트롤러

응시 수명 주기를 소유하고 모든 상태 전이를 중재한다.

상태:
  idle → loading → active → section_transition → active (섹션/모듈마다 반복)
       → submitting → completed
  loading → load_failed (retry()로만 다시 시작)

규칙:
  - 답안 선택/다시 보기 표시는 로컬에서 즉시 성공하고 네트워크를 기다리지 않는다.
  - 자동 저장 실패는 응시를 막지 않는다. 다음 상태 변경 이벤트나 최종 flush가 재전송한다.
  - time_expired()와 submit()은 active 상태에서만 동작하므로 먼저 온 쪽만 처리된다.
  - 네트워크 오류(ServiceError)는 여기서 모두 상태 플래그로 바뀌고 밖으로 던지지 않는다.
"""

import logging
from typing import Callable, Dict, List, Optional

from cbt_session.config import START_SLOW_THRESHOLD_SECONDS, SUBMIT_FLUSH_ROUNDS
from cbt_session.engine.answer_store import AnswerStore
from cbt_session.engine.autosave import AutosaveDispatcher
from cbt_session.engine.clock import SessionClock
from cbt_session.engine.navigator import Navigator
from cbt_session.engine.review_flags import ReviewFlagSet
from cbt_session.engine.scheduler import AsyncioScheduler, BackgroundTasks, ScheduledTask, Scheduler
from cbt_session.errors import ServiceError
from cbt_session.models.api_schema import StartAttemptResponse
from cbt_session.models.question_model import ExamPaper, ExamSection, Question
from cbt_session.models.session_state import (
    Answer, Attempt, AttemptStatus, QuestionStatus, SessionState, TimerState,
)
from cbt_session.services import progress_service

logger = logging.getLogger(__name__)


class ExamSessionController:

    def __init__(
        self,
        service,
        scheduler: Optional[Scheduler] = None,
        *,
        slow_threshold: float = START_SLOW_THRESHOLD_SECONDS,
        on_change: Optional[Callable[[SessionState], None]] = None,
    ):
        """
        Args:
            service:        SubmissionClient 또는 같은 코루틴을 가진 객체.
            scheduler:      타이머 스케줄러 (기본 AsyncioScheduler).
            slow_threshold: 시작 요청 "지연" 표시 기준 (초). 요청을 취소하지는 않는다.
            on_change:      상태 전이 알림 콜백 (렌더링 계층용).
        """
        self._service = service
        self._scheduler = scheduler or AsyncioScheduler()
        self._slow_threshold = slow_threshold
        self._on_change = on_change

        self.answers = AnswerStore()
        self.review = ReviewFlagSet()
        self.navigator = Navigator()
        self.clock = SessionClock(self._scheduler)
        self.clock.on_expire(self._on_clock_expired)

        self._tasks = BackgroundTasks("session")
        self._watchdog = ScheduledTask(self._scheduler)
        self._dispatcher: Optional[AutosaveDispatcher] = None

        self._state = SessionState.IDLE
        self.history: List[SessionState] = [SessionState.IDLE]
        self._exam_id: Optional[str] = None
        self._start_seq = 0
        self.exam: Optional[ExamPaper] = None
        self.attempt: Optional[Attempt] = None
        self.is_slow = False
        self.last_error: Optional[str] = None
        self.submit_error: Optional[str] = None
        self._dwell_question: Optional[str] = None
        self._dwell_started_at = 0.0

    # ── 조회 ──────────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_section(self) -> Optional[ExamSection]:
        if self.exam is None or self.attempt is None:
            return None
        return self.exam.sections[self.attempt.section_index]

    @property
    def is_final_section(self) -> bool:
        if self.exam is None or self.attempt is None:
            return False
        return self.attempt.section_index == len(self.exam.sections) - 1

    def current_question(self) -> Optional[Question]:
        return self.navigator.current()

    def answer_for(self, question_id: str) -> Optional[Answer]:
        return self.answers.get(question_id)

    def timer(self) -> TimerState:
        return self.clock.state()

    def overlay(self) -> List[QuestionStatus]:
        """현재 섹션 문항 번호 오버레이 (answered/unanswered + marked)."""
        return progress_service.question_statuses(
            self.navigator.questions, self.answers.snapshot(), self.review.marked()
        )

    def section_summary(self) -> List[Dict[str, object]]:
        return progress_service.summarize_sections(
            self.navigator.questions, self.answers.snapshot(), self.review.marked()
        )

    @property
    def unanswered_count(self) -> int:
        return progress_service.count_unanswered(self.navigator.questions, self.answers.snapshot())

    # ── 시작 ──────────────────────────────────────────────────────────────

    async def start(self, exam_id: str) -> bool:
        """
        응시 생성 또는 재개.
        15초가 지나도 응답이 없으면 is_slow만 켜고 요청은 계속 기다린다.

        Returns:
            active/completed 진입 시 True, load_failed 진입 시 False.
        """
        if self._state not in (SessionState.IDLE, SessionState.LOAD_FAILED):
            logger.warning(f"start() 무시: 현재 상태 {self._state.value}")
            return False

        self._exam_id = exam_id
        self.is_slow = False
        self.last_error = None
        self._start_seq += 1
        seq = self._start_seq
        self._set_state(SessionState.LOADING)
        self._watchdog.schedule(self._slow_threshold, self._mark_slow)

        try:
            response = await self._service.start_attempt(exam_id)
        except ServiceError as e:
            if seq != self._start_seq:
                return False
            logger.error(f"응시 시작 실패 (시험 {exam_id}): {e}")
            self.last_error = str(e)
            self._set_state(SessionState.LOAD_FAILED)
            return False
        finally:
            if seq == self._start_seq:
                self._watchdog.cancel()
                self.is_slow = False

        # 대기 중 close()된 경우 응답을 버린다 (시계를 시작하지 않음)
        if seq != self._start_seq:
            logger.info(f"화면 이탈 후 도착한 시작 응답 무시: attempt={response.attempt_id}")
            return False

        self._begin(exam_id, response)
        return True

    async def retry(self) -> bool:
        if self._state is not SessionState.LOAD_FAILED or self._exam_id is None:
            return False
        return await self.start(self._exam_id)

    def _mark_slow(self) -> None:
        if self._state is SessionState.LOADING:
            logger.info("응시 시작 요청이 예상보다 오래 걸리고 있습니다.")
            self.is_slow = True
            self._notify()

    def _begin(self, exam_id: str, response: StartAttemptResponse) -> None:
        self.exam = response.exam
        section = self.exam.sections[response.current_section_index]
        started_at = response.section_started_at
        if started_at is None:
            started_at = self._scheduler.now()

        self.attempt = Attempt(
            attempt_id=response.attempt_id,
            exam_id=exam_id,
            section_index=response.current_section_index,
            current_section=section.section,
            current_module=section.module,
            section_started_at=started_at,
            section_budget_seconds=section.time_limit_seconds,
            status=response.status,
        )
        self.answers.load_saved(response.answers)
        self._dispatcher = AutosaveDispatcher(self._service, self.answers, response.attempt_id)
        self.navigator.load(self.exam.all_questions())

        mode = "재개" if response.resumed else "신규"
        logger.info(
            f"응시 {mode}: attempt={response.attempt_id}, "
            f"섹션 {response.current_section_index + 1}/{len(self.exam.sections)}"
        )

        if response.status is AttemptStatus.SUBMITTED:
            self._set_state(SessionState.COMPLETED)
            return

        self._enter_section(section, started_at)

    def _enter_section(self, section: ExamSection, started_at: float) -> None:
        self.attempt.current_section = section.section
        self.attempt.current_module = section.module
        self.attempt.section_started_at = started_at
        self.attempt.section_budget_seconds = section.time_limit_seconds
        self.attempt.status = AttemptStatus.IN_PROGRESS

        self.navigator.set_filter(section.section, section.module)
        self._set_state(SessionState.ACTIVE)
        self._start_dwell()
        # 만료 콜백이 곧바로 예약될 수 있으므로 상태 전이 후 시작
        self.clock.start(section.time_limit_seconds, started_at=started_at)

    # ── 응시 중 조작 ──────────────────────────────────────────────────────

    def select_answer(self, question_id: str, choice: str) -> bool:
        """
        답안 선택. 저장소에 즉시 쓰고 자동 저장을 예약한 뒤 바로 반환한다.

        Raises:
            ValueError: 현재 섹션에 없는 문항이거나 보기에 없는 값.
        """
        if self._state is not SessionState.ACTIVE:
            return False

        idx = self.navigator.index_of(question_id)
        if idx is None:
            raise ValueError(f"현재 섹션에 없는 문항입니다: {question_id}")
        question = self.navigator.question_at(idx)
        if choice not in question.choices:
            raise ValueError(f"문항 {question_id}의 보기에 없는 값입니다: {choice!r}")

        self._flush_dwell()
        self.answers.select(question_id, choice)
        self._dispatcher.enqueue(question_id)
        self._dispatcher.retry_failed(exclude=question_id)
        self._notify()
        return True

    def toggle_review(self, question_id: str) -> bool:
        marked = self.review.toggle(question_id)
        self._after_local_event()
        return marked

    def go_to(self, index: int) -> bool:
        return self._navigate(self.navigator.go_to, index)

    def next(self) -> bool:
        return self._navigate(self.navigator.next)

    def previous(self) -> bool:
        return self._navigate(self.navigator.previous)

    def jump_to(self, question_id: str) -> bool:
        return self._navigate(self.navigator.jump_to, question_id)

    def _navigate(self, move, *args) -> bool:
        before = self.navigator.current()
        if not move(*args):
            return False
        if before is not None:
            self._flush_dwell(before.id)
        self._start_dwell()
        self._after_local_event()
        return True

    def _after_local_event(self) -> None:
        if self._dispatcher is not None and self._state is SessionState.ACTIVE:
            self._dispatcher.retry_failed()
        self._notify()

    # ── 체류 시간 ─────────────────────────────────────────────────────────

    def _start_dwell(self) -> None:
        current = self.navigator.current()
        self._dwell_question = current.id if current else None
        self._dwell_started_at = self._scheduler.now()

    def _flush_dwell(self, question_id: Optional[str] = None) -> None:
        qid = question_id or self._dwell_question
        if qid is None or qid != self._dwell_question:
            return
        now = self._scheduler.now()
        self.answers.add_time(qid, now - self._dwell_started_at)
        self._dwell_started_at = now

    # ── 섹션 종료 / 제출 ──────────────────────────────────────────────────

    def _on_clock_expired(self) -> None:
        self._tasks.spawn(self.time_expired())

    async def time_expired(self) -> None:
        """
        제한 시간 종료. 진행 중인 자동 저장을 기다리지 않고 현재 섹션을 제출한 뒤
        다음 섹션으로, 마지막 섹션이면 최종 제출로 넘어간다.
        """
        if self._state is not SessionState.ACTIVE:
            return
        logger.info(f"섹션 {self.attempt.section_index + 1} 시간 종료")
        await self._close_section(wait_for_saves=False)

    async def finish_section(self) -> None:
        """학생이 마지막이 아닌 섹션을 시간 전에 마친다."""
        if self._state is not SessionState.ACTIVE or self.is_final_section:
            return
        await self._close_section(wait_for_saves=False)

    async def submit(self) -> None:
        """학생의 최종 제출. 모든 자동 저장을 flush한 뒤 응시를 제출한다."""
        if self._state is not SessionState.ACTIVE:
            return
        self._leave_active(SessionState.SUBMITTING)
        await self._finalize(wait_for_saves=True)

    async def retry_submit(self) -> None:
        if self._state is not SessionState.SUBMITTING or self.submit_error is None:
            return
        await self._finalize(wait_for_saves=True)

    def _leave_active(self, state: SessionState) -> None:
        self._flush_dwell()
        self.clock.stop()
        self._set_state(state)

    async def _close_section(self, wait_for_saves: bool) -> None:
        if self.is_final_section:
            self._leave_active(SessionState.SUBMITTING)
            await self._finalize(wait_for_saves=wait_for_saves)
            return

        self._leave_active(SessionState.SECTION_TRANSITION)
        self.attempt.status = AttemptStatus.SECTION_COMPLETE
        self._dispatcher.retry_failed()

        index = self.attempt.section_index
        next_started_at = None
        try:
            result = await self._service.submit_section(self.attempt.attempt_id, index)
            next_started_at = result.next_section_started_at
        except ServiceError as e:
            # 재개 시 서버가 해당 섹션을 다시 만료 처리한다
            logger.warning(f"섹션 {index + 1} 제출 실패, 다음 섹션으로 진행: {e}")

        if self._state is not SessionState.SECTION_TRANSITION:
            return  # 전환 중 close()됨

        self.attempt.section_index = index + 1
        next_section = self.exam.sections[index + 1]
        if next_started_at is None:
            next_started_at = self._scheduler.now()
        self._enter_section(next_section, next_started_at)

    async def _finalize(self, wait_for_saves: bool) -> None:
        self.submit_error = None

        if wait_for_saves:
            unsynced: List[str] = []
            for _ in range(SUBMIT_FLUSH_ROUNDS):
                unsynced = await self._dispatcher.flush()
                if not unsynced:
                    break
            if unsynced:
                self.submit_error = f"저장되지 않은 답안 {len(unsynced)}개가 있어 제출을 보류했습니다."
                logger.error(self.submit_error)
                self._notify()
                return
        else:
            self._dispatcher.retry_failed()

        try:
            await self._service.submit_attempt(self.attempt.attempt_id)
        except ServiceError as e:
            self.submit_error = str(e)
            logger.error(f"최종 제출 실패: {e}")
            self._notify()
            return

        if self._state is not SessionState.SUBMITTING:
            return
        self.attempt.status = AttemptStatus.SUBMITTED
        self._set_state(SessionState.COMPLETED)
        logger.info(f"응시 제출 완료: attempt={self.attempt.attempt_id}")

    # ── 언마운트 ──────────────────────────────────────────────────────────

    def close(self) -> None:
        """
        화면 이탈. 시계와 예약 작업을 멈추고 flush하지 않는다.
        응시 자체는 서버에서 재개 가능하므로 마지막 몇 초의 미동기화 답안 손실은 허용된다.
        """
        self._start_seq += 1
        self._watchdog.cancel()
        self.is_slow = False
        self.clock.stop()
        if self._dispatcher is not None:
            self._dispatcher.close()
        self._tasks.cancel_all()
        if self._state in (SessionState.LOADING, SessionState.ACTIVE, SessionState.SECTION_TRANSITION):
            self._set_state(SessionState.IDLE)

    async def join(self) -> None:
        """백그라운드 작업(만료 처리, 자동 저장)이 모두 끝날 때까지 대기."""
        await self._tasks.join()
        if self._dispatcher is not None:
            await self._dispatcher.join()

    # ── 내부 ──────────────────────────────────────────────────────────────

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info(f"세션 상태: {self._state.value} → {state.value}")
        self._state = state
        self.history.append(state)
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self._state)
