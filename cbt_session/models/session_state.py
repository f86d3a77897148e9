"""
models/session_state.py

응시 세션과 편집 세션의 상태 모델.
Pydantic BaseModel 기반 — 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드 없음.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from cbt_session.models.question_model import Question, coerce_id


class AttemptStatus(str, Enum):
    """서버와 공유하는 응시(Attempt) 상태."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SECTION_COMPLETE = "section_complete"
    SUBMITTED = "submitted"


class SessionState(str, Enum):
    """ExamSessionController 상태 머신."""

    IDLE = "idle"
    LOADING = "loading"
    LOAD_FAILED = "load_failed"
    ACTIVE = "active"
    SECTION_TRANSITION = "section_transition"
    SUBMITTING = "submitting"
    COMPLETED = "completed"


class EditorState(str, Enum):
    """ContentEditorSession 상태 머신. dirty 여부는 EditorDraft가 가진다."""

    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


class Attempt(BaseModel):
    """
    한 학생의 한 시험 응시.

    Attributes:
        attempt_id:             서버가 발급한 응시 ID.
        exam_id:                시험 ID.
        section_index:          현재 섹션(모듈) 순번 (0-based).
        current_section:        현재 섹션명.
        current_module:         현재 모듈 번호.
        section_started_at:     현재 섹션 시작 시각 (Unix timestamp).
                                남은 시간은 항상 이 값과 제한 시간으로부터 다시 계산한다.
        section_budget_seconds: 현재 섹션 제한 시간 (초).
        status:                 응시 상태.
    """

    attempt_id: str
    exam_id: str
    section_index: int = Field(default=0, ge=0)
    current_section: str
    current_module: int = Field(..., ge=1)
    section_started_at: float
    section_budget_seconds: int = Field(..., gt=0)
    status: AttemptStatus = AttemptStatus.NOT_STARTED


class Answer(BaseModel):
    """
    문항별 답안. 보기 인덱스가 아니라 보기 문자열로 식별한다.
    synced는 서버가 현재 값을 확인했는지 여부이며, 디스패처만 True로 바꾼다.
    """

    question_id: str
    selected_answer: str
    synced: bool = False
    time_spent_seconds: int = Field(default=0, ge=0)


class TimerState(BaseModel):
    """SessionClock 스냅샷."""

    remaining_seconds: int = Field(..., ge=0)
    running: bool = False
    expired: bool = False


class QuestionStatus(BaseModel):
    """
    문항 번호 오버레이 한 칸.
    기본 상태는 answered / unanswered 중 하나이고, marked는 그 위에 겹쳐 표시된다.
    """

    question_id: str
    number: int = Field(..., ge=1)
    answered: bool = False
    marked: bool = False

    @property
    def state(self) -> str:
        return "answered" if self.answered else "unanswered"


class EditorDraft(BaseModel):
    """
    편집 중인 문제 사본.

    Attributes:
        question: 마지막 저장본의 깊은 복사본에 편집을 적용한 값.
        dirty:    서버가 아직 확인하지 않은 편집이 있는지 여부.
        revision: 편집마다 1씩 증가. 저장 도중 추가 편집이 있었는지 판별한다.
    """

    question: Question
    dirty: bool = False
    revision: int = 0


class SavedAnswer(BaseModel):
    """재개(resume) 응답에 포함된 기존 저장 답안."""

    model_config = {"populate_by_name": True}

    question_id: str = Field(..., alias="questionId")
    selected_answer: str = Field(..., alias="selectedAnswer")
    time_spent_seconds: int = Field(default=0, alias="timeSpentSeconds", ge=0)

    @field_validator("question_id", mode="before")
    @classmethod
    def coerce_int_id(cls, v: Any) -> Any:
        return coerce_id(v)
