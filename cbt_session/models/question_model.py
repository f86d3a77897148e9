"""
models/question_model.py

시험지 모델: Question / ExamSection / ExamPaper.
Pydantic v2 적용 — 서비스 경계에서 응답을 검증하고, 형식이 어긋나면 거부한다.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from cbt_session.config import DEFAULT_SECTION_SECONDS


def coerce_id(v: Any) -> Any:
    """숫자 ID를 문자열로 바꾼다 (bool 제외)."""
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


class Question(BaseModel):
    """
    시험 문제 모델.
    응시 중에는 불변이며, 관리자 편집기에서는 EditorDraft 사본으로만 수정한다.
    """

    model_config = {"populate_by_name": True}

    id: str = Field(
        ...,
        min_length=1,
        description="문제 고유 식별자"
    )
    section: str = Field(
        ...,
        min_length=1,
        description="섹션명 (예: Reading, Math)"
    )
    module: int = Field(
        ...,
        ge=1,
        description="섹션 내 모듈 번호 (1-based)"
    )
    text: str = Field(
        ...,
        validation_alias=AliasChoices("questionText", "text"),
        serialization_alias="questionText",
        description="발문 (지문 포함)"
    )
    choices: List[str] = Field(
        ...,
        description="보기 리스트 (순서 유지)"
    )
    correct_answer: Optional[str] = Field(
        None,
        alias="correctAnswer",
        description="정답 보기 문자열 (관리자 전용, 빈 문자열은 미지정)"
    )
    explanation: Optional[str] = Field(
        None,
        description="해설 (관리자 전용)"
    )
    difficulty: Optional[str] = None
    domain: Optional[str] = None
    skill: Optional[str] = None
    position: Optional[int] = Field(
        None,
        ge=0,
        description="모듈 내 출제 순서"
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_int_id(cls, v: Any) -> Any:
        return coerce_id(v)

    @field_validator("choices")
    @classmethod
    def validate_choices_length(cls, v: List[str]) -> List[str]:
        """
        검증 로직 1: 보기는 최소 2개 이상이어야 한다.
        """
        if len(v) < 2:
            raise ValueError("보기(choices)는 최소 2개 이상의 항목이 필요합니다.")
        return v

    @model_validator(mode="after")
    def validate_answer_in_choices(self) -> "Question":
        """
        검증 로직 2: 정답이 존재하는 경우, 반드시 보기 리스트 안에 있어야 한다.
        정답이 없거나 빈 문자열("")인 경우는 허용한다 (응시자용 응답에는 정답이 없음).
        """
        if self.correct_answer and self.correct_answer not in self.choices:
            raise ValueError(f"정답('{self.correct_answer}')이 보기 리스트({self.choices})에 존재하지 않습니다.")
        return self

    def to_body(self) -> Dict[str, Any]:
        """PUT/POST 요청 본문 (전체 교체 의미, id 제외)."""
        return self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)


class ExamSection(BaseModel):
    """
    하나의 시간 제한 단위 = (섹션, 모듈).
    문항에 section/module이 빠져 있으면 섹션 값을 물려받는다.
    섹션명이 없으면 첫 문항의 section을 쓰고, 둘 다 없으면 거부한다.
    """

    model_config = {"populate_by_name": True}

    section: str = Field(..., min_length=1)
    module: int = Field(..., ge=1)
    time_limit_seconds: int = Field(
        DEFAULT_SECTION_SECONDS,
        alias="timeLimitSeconds",
        gt=0,
        description="섹션 제한 시간 (초)"
    )
    questions: List[Question] = Field(
        default_factory=list,
        validation_alias=AliasChoices("questions", "question"),
    )

    @model_validator(mode="before")
    @classmethod
    def inherit_question_location(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        raw_questions = data.get("questions", data.get("question"))
        if not isinstance(raw_questions, list):
            return data
        data = dict(data)
        if not data.get("section"):
            # { module, question[] } 형식: 섹션명은 첫 문항에서 가져온다
            first = raw_questions[0] if raw_questions else None
            if isinstance(first, dict) and first.get("section"):
                data["section"] = first["section"]
        filled = []
        for raw in raw_questions:
            if isinstance(raw, dict):
                raw = dict(raw)
                raw.setdefault("section", data.get("section"))
                raw.setdefault("module", data.get("module"))
            filled.append(raw)
        data.pop("question", None)
        data["questions"] = filled
        return data

    @property
    def key(self) -> Tuple[str, int]:
        return (self.section, self.module)


class ExamPaper(BaseModel):
    """
    시험지 전체.
    sections[] 또는 평면 questions[] 두 형식을 모두 받는다.
    평면 형식은 (섹션, 모듈) 첫 등장 순서대로 묶는다.
    """

    model_config = {"populate_by_name": True}

    id: str = Field(..., min_length=1)
    title: str = ""
    code: Optional[str] = None
    sections: List[ExamSection] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_int_id(cls, v: Any) -> Any:
        return coerce_id(v)

    @model_validator(mode="before")
    @classmethod
    def group_flat_questions(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "sections" in data:
            return data
        flat = data.get("questions")
        if not isinstance(flat, list):
            return data

        groups: Dict[Tuple[Any, Any], List[Any]] = {}
        for raw in flat:
            if not isinstance(raw, dict):
                raise ValueError("questions 항목은 객체여야 합니다.")
            groups.setdefault((raw.get("section"), raw.get("module")), []).append(raw)

        data = {k: v for k, v in data.items() if k != "questions"}
        data["sections"] = [
            {"section": section, "module": module, "questions": items}
            for (section, module), items in groups.items()
        ]
        return data

    @model_validator(mode="after")
    def validate_unique_question_ids(self) -> "ExamPaper":
        seen = set()
        for q in self.all_questions():
            if q.id in seen:
                raise ValueError(f"문제 ID가 중복되었습니다: {q.id}")
            seen.add(q.id)
        return self

    def all_questions(self) -> List[Question]:
        return [q for s in self.sections for q in s.questions]
