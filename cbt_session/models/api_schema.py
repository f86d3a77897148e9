"""
models/api_schema.py

외부 서비스 요청/응답 본문 모델.
응답은 여기서 검증을 통과해야만 엔진 상태로 들어간다.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from cbt_session.models.question_model import ExamPaper
from cbt_session.models.session_state import AttemptStatus, SavedAnswer


class StartAttemptResponse(BaseModel):
    """
    POST /exams/{examId}/start 응답.
    같은 학생+시험으로 다시 호출하면 새로 시작하지 않고 기존 응시를 재개한다.
    재개 필드가 없으면 새 응시로 간주한다.
    """

    model_config = {"populate_by_name": True}

    attempt_id: str = Field(..., alias="attemptId", min_length=1)
    exam: ExamPaper
    resumed: bool = False
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    current_section_index: int = Field(default=0, alias="currentSectionIndex", ge=0)
    section_started_at: Optional[float] = Field(default=None, alias="sectionStartedAt")
    answers: List[SavedAnswer] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_section_index(self) -> "StartAttemptResponse":
        if not self.exam.sections:
            raise ValueError("시험지에 섹션이 없습니다.")
        if self.current_section_index >= len(self.exam.sections):
            raise ValueError(
                f"currentSectionIndex({self.current_section_index})가 "
                f"섹션 수({len(self.exam.sections)})를 벗어났습니다."
            )
        return self


class AnswerPayload(BaseModel):
    """POST /attempts/{attemptId}/answers 요청 본문. 같은 본문으로 재전송해도 안전하다."""

    model_config = {"populate_by_name": True}

    question_id: str = Field(..., alias="questionId")
    selected_answer: str = Field(..., alias="selectedAnswer")
    time_spent_seconds: int = Field(default=0, alias="timeSpentSeconds", ge=0)


class SectionSubmitResponse(BaseModel):
    """POST /attempts/{attemptId}/sections/{index}/submit 응답 (본문 없으면 기본값)."""

    model_config = {"populate_by_name": True}

    next_section_started_at: Optional[float] = Field(default=None, alias="nextSectionStartedAt")
