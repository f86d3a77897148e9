"""
engine/editor.py — 문제 저작 편집 세션

응시 컨트롤러와 같은 구조의 관리자용 상태 머신.

  idle → editing(dirty=False) → editing(dirty=True) → (2초 무입력) → saving → editing(dirty=False)

규칙:
  - 다른 문제를 선택하면 저장하지 않은 초안은 버린다 (문제 간 초안 병합 없음).
  - 저장은 diff가 아닌 전체 초안을 PUT한다.
  - 저장 실패는 응시 자동 저장과 달리 작성자에게 보여야 한다: dirty 유지 + last_error + on_error.
  - 보기 문자열을 고치면, 그 보기가 정답이었을 경우 정답도 같은 패치 안에서 함께 바뀐다.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from cbt_session.config import (
    EDITOR_DEBOUNCE_SECONDS, NEW_QUESTION_DEFAULTS, START_SLOW_THRESHOLD_SECONDS,
)
from cbt_session.engine.navigator import Navigator
from cbt_session.engine.scheduler import (
    AsyncioScheduler, BackgroundTasks, ScheduledTask, Scheduler, run_soon,
)
from cbt_session.errors import InvalidEditError, ServiceError
from cbt_session.models.question_model import ExamPaper, Question
from cbt_session.models.session_state import EditorDraft, EditorState

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({
    "section", "module", "text", "choices", "correct_answer",
    "explanation", "difficulty", "domain", "skill", "position",
})


def apply_patch(question: Question, patch: Dict[str, Any]) -> Question:
    """
    필드 단위 패치를 적용한 새 Question을 반환한다 (원본 불변).

    정답-보기 연동:
      - 정답 문자열이 새 choices에 그대로 있으면 순서가 바뀌어도 정답은 그대로다.
      - 정답 보기 자리의 문자열만 고친 경우(보기 수 동일) 새 문자열로 정답을 바꾼다.
      - 그 밖에 정답 보기가 사라졌으면 정답을 ""(미지정)으로 비운다.

    Raises:
        InvalidEditError: 편집 불가 필드이거나 결과가 Question 검증을 통과하지 못함.
    """
    unknown = set(patch) - EDITABLE_FIELDS
    if unknown:
        raise InvalidEditError(f"편집할 수 없는 필드: {sorted(unknown)}")

    data = question.model_dump()
    if "choices" in patch and "correct_answer" not in patch:
        data["correct_answer"] = _follow_correct_choice(
            question.choices, list(patch["choices"]), question.correct_answer
        )
    data.update(patch)

    try:
        return Question.model_validate(data)
    except ValidationError as e:
        raise InvalidEditError(str(e)) from e


def _follow_correct_choice(old: List[str], new: List[str], correct: Optional[str]) -> Optional[str]:
    if not correct or correct in new or correct not in old:
        return correct
    idx = old.index(correct)
    # 보기 수가 같고 그 자리 문자열만 바뀐 경우에만 정답 보기의 이름 변경으로 본다
    if len(new) == len(old) and new[idx] != old[idx]:
        return new[idx]
    return ""


class ContentEditorSession:

    def __init__(
        self,
        service,
        exam_id: str,
        scheduler: Optional[Scheduler] = None,
        *,
        debounce_seconds: float = EDITOR_DEBOUNCE_SECONDS,
        slow_threshold: float = START_SLOW_THRESHOLD_SECONDS,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            service:          ContentClient 또는 같은 코루틴을 가진 객체.
            exam_id:          편집할 시험 ID.
            scheduler:        타이머 스케줄러 (기본 AsyncioScheduler).
            debounce_seconds: 마지막 편집 후 자동 저장까지 대기 시간.
            slow_threshold:   load() "지연" 표시 기준 (초).
            on_error:         저장/추가/삭제 실패 메시지 콜백.
        """
        self._service = service
        self.exam_id = exam_id
        self._scheduler = scheduler or AsyncioScheduler()
        self._debounce_seconds = debounce_seconds
        self._slow_threshold = slow_threshold
        self._on_error = on_error

        self.navigator = Navigator()
        self.exam: Optional[ExamPaper] = None
        self._persisted: Dict[str, Question] = {}
        self._order: List[str] = []
        self._draft: Optional[EditorDraft] = None

        self._tasks = BackgroundTasks("editor")
        self._debounce = ScheduledTask(self._scheduler)
        self._watchdog = ScheduledTask(self._scheduler)
        self._save_lock = asyncio.Lock()

        self._state = EditorState.IDLE
        self.loading = False
        self.is_slow = False
        self.last_error: Optional[str] = None

    # ── 조회 ──────────────────────────────────────────────────────────────

    @property
    def state(self) -> EditorState:
        return self._state

    @property
    def draft(self) -> Optional[EditorDraft]:
        return self._draft

    @property
    def dirty(self) -> bool:
        return self._draft is not None and self._draft.dirty

    @property
    def selected_id(self) -> Optional[str]:
        return self._draft.question.id if self._draft else None

    @property
    def autosave_pending(self) -> bool:
        return self._debounce.pending

    def persisted(self, question_id: str) -> Question:
        """서버에 저장된 것으로 확인된 최신 버전."""
        return self._persisted[question_id]

    def questions(self) -> List[Question]:
        return [self._persisted[qid] for qid in self._order]

    # ── 불러오기 ──────────────────────────────────────────────────────────

    async def load(self) -> bool:
        """시험지를 불러온다. 15초가 지나면 is_slow만 켜고 계속 기다린다."""
        self.loading = True
        self.is_slow = False
        self.last_error = None
        self._watchdog.schedule(self._slow_threshold, self._mark_slow)
        try:
            exam = await self._service.get_exam(self.exam_id)
        except ServiceError as e:
            self._report(f"시험지를 불러오지 못했습니다: {e}")
            return False
        finally:
            self._watchdog.cancel()
            self.loading = False
            self.is_slow = False

        self.exam = exam
        self._persisted = {q.id: q for q in exam.all_questions()}
        self._order = [q.id for q in exam.all_questions()]
        self._refresh_navigator()
        if self.navigator.filter[0] is None and exam.sections:
            self.set_filter(exam.sections[0].section, exam.sections[0].module)
        logger.info(f"시험지 로드: {self.exam_id} (문제 {len(self._order)}개)")
        return True

    def _mark_slow(self) -> None:
        if self.loading:
            logger.info("시험지 로드가 예상보다 오래 걸리고 있습니다.")
            self.is_slow = True

    def set_filter(self, section: str, module: int) -> None:
        """
        섹션/모듈 계층 필터. 선택 중인 문제는 유지한다.
        선택 중인 문제가 필터 안에 있으면 인덱스도 그 문제에 맞춘다.
        """
        self.navigator.set_filter(section, module)
        if self._draft is not None:
            self.navigator.jump_to(self._draft.question.id)

    def _refresh_navigator(self) -> None:
        self.navigator.load(self.questions())
        if self._draft is not None:
            self.navigator.jump_to(self._draft.question.id)

    # ── 선택 / 편집 ───────────────────────────────────────────────────────

    def select_question(self, question_id: str) -> EditorDraft:
        """
        문제를 편집 대상으로 선택. 이전 문제의 저장하지 않은 초안은 버린다.

        Raises:
            KeyError: 알 수 없는 question_id.
        """
        if question_id not in self._persisted:
            raise KeyError(question_id)

        self._debounce.cancel()
        if self._draft is not None and self._draft.dirty:
            logger.info(f"문제 {self._draft.question.id}의 저장하지 않은 편집을 버립니다.")

        self._draft = EditorDraft(question=self._persisted[question_id].model_copy(deep=True))
        self.navigator.jump_to(question_id)
        if self._state is not EditorState.SAVING:
            self._state = EditorState.EDITING
        return self._draft

    def edit(self, patch: Dict[str, Any]) -> EditorDraft:
        """
        초안에 필드 패치를 적용하고 dirty로 표시, 디바운스 타이머를 다시 건다.

        Raises:
            RuntimeError:     선택된 문제가 없음.
            InvalidEditError: 결과가 유효하지 않음 (초안은 바뀌지 않는다).
        """
        if self._draft is None:
            raise RuntimeError("편집할 문제가 선택되지 않았습니다.")

        self._draft.question = apply_patch(self._draft.question, patch)
        self._draft.dirty = True
        self._draft.revision += 1
        self._debounce.schedule(self._debounce_seconds, run_soon(self._tasks, self.save))
        return self._draft

    def edit_choice(self, index: int, text: str) -> EditorDraft:
        if self._draft is None:
            raise RuntimeError("편집할 문제가 선택되지 않았습니다.")
        choices = list(self._draft.question.choices)
        if not 0 <= index < len(choices):
            raise InvalidEditError(f"보기 인덱스 범위 초과: {index}")
        choices[index] = text
        return self.edit({"choices": choices})

    def set_correct_answer(self, choice: str) -> EditorDraft:
        return self.edit({"correct_answer": choice})

    # ── 저장 ──────────────────────────────────────────────────────────────

    async def save(self) -> bool:
        """
        초안 전체를 저장한다.

        Returns:
            저장할 것이 없거나 성공하면 True, 실패하면 False (dirty 유지, 오류 보고).
        """
        self._debounce.cancel()
        async with self._save_lock:
            draft = self._draft
            if draft is None or not draft.dirty:
                return True

            snapshot = draft.question.model_copy(deep=True)
            revision = draft.revision
            self._state = EditorState.SAVING
            try:
                await self._service.update_question(snapshot)
            except ServiceError as e:
                self._state = EditorState.EDITING
                self._report(f"문제 저장 실패 ({snapshot.id}): {e}")
                return False

            self._persisted[snapshot.id] = snapshot
            self._refresh_navigator()
            if self._draft is draft and draft.revision == revision:
                draft.dirty = False
            self._state = EditorState.EDITING if self._draft is not None else EditorState.IDLE
            self.last_error = None
            logger.info(f"문제 저장 완료: {snapshot.id}")
            return True

    async def save_and_advance(self) -> bool:
        """
        저장이 끝난 뒤에만 다음 문제로 이동. 저장 실패 시 이동하지 않는다.
        저장 도중 들어온 편집도 저장된 뒤에 이동한다 (초안을 버리지 않음).
        """
        if not await self.save():
            return False
        while self.dirty:
            if not await self.save():
                return False

        if self._draft is None:
            return True
        # 선택 중인 문제가 현재 필터 밖이면 이동할 "다음"이 없다
        if self.navigator.index_of(self._draft.question.id) is None:
            return True
        if self.navigator.next():
            self.select_question(self.navigator.current().id)
        return True

    # ── 추가 / 삭제 ───────────────────────────────────────────────────────

    async def add_question(self) -> Optional[Question]:
        """현재 섹션/모듈에 기본값 문제를 추가하고 선택한다."""
        section, module = self.navigator.filter
        if section is None or module is None:
            raise RuntimeError("문제를 추가할 섹션/모듈이 정해지지 않았습니다.")

        body = dict(NEW_QUESTION_DEFAULTS, section=section, module=module)
        try:
            created = await self._service.create_questions(self.exam_id, [body])
        except ServiceError as e:
            self._report(f"문제 추가 실패: {e}")
            return None
        if not created:
            self._report("문제 추가 응답에 생성된 문제가 없습니다.")
            return None

        for q in created:
            self._persisted[q.id] = q
            self._order.append(q.id)
        self._refresh_navigator()
        self.select_question(created[0].id)
        return created[0]

    async def delete_question(self) -> bool:
        if self._draft is None:
            return False
        question_id = self._draft.question.id
        try:
            await self._service.delete_question(question_id)
        except ServiceError as e:
            self._report(f"문제 삭제 실패 ({question_id}): {e}")
            return False

        self._debounce.cancel()
        self._draft = None
        self._state = EditorState.IDLE
        self._persisted.pop(question_id, None)
        self._order.remove(question_id)
        self._refresh_navigator()
        return True

    # ── 언마운트 ──────────────────────────────────────────────────────────

    def close(self) -> None:
        """디바운스 타이머를 저장 없이 취소한다."""
        self._debounce.cancel()
        self._watchdog.cancel()
        self._tasks.cancel_all()

    async def join(self) -> None:
        await self._tasks.join()

    def _report(self, message: str) -> None:
        self.last_error = message
        logger.error(message)
        if self._on_error is not None:
            self._on_error(message)
