import asyncio
from typing import Dict, List, Optional

import pytest

from cbt_session.engine.scheduler import ManualScheduler
from cbt_session.errors import ServiceError
from cbt_session.models.api_schema import SectionSubmitResponse, StartAttemptResponse
from cbt_session.models.question_model import ExamPaper, Question

CHOICES = ["A", "B", "C", "D"]


def make_question(qid, **extra):
    data = {"id": qid, "questionText": f"Prompt {qid}", "choices": list(CHOICES)}
    data.update(extra)
    return data


def make_exam_payload(section_seconds=90, modules=2):
    sections = [
        {
            "section": "Reading",
            "module": 1,
            "timeLimitSeconds": section_seconds,
            "questions": [make_question("r1-q1"), make_question("r1-q2"), make_question("r1-q3")],
        },
        {
            "section": "Reading",
            "module": 2,
            "timeLimitSeconds": section_seconds,
            "questions": [make_question("r2-q1"), make_question("r2-q2")],
        },
    ]
    return {"id": "exam-1", "title": "Mock Test", "sections": sections[:modules]}


def make_start_payload(**overrides):
    payload = {"attemptId": "att-1", "exam": make_exam_payload()}
    payload.update(overrides)
    return payload


class FakeSubmissionService:
    """제출 서비스 대역. online=False면 모든 답안 저장이 ServiceError."""

    def __init__(self, start_payload=None):
        self.start_payload = start_payload or make_start_payload()
        self.start_gate: Optional[asyncio.Event] = None
        self.start_error: Optional[Exception] = None
        self.start_calls = 0

        self.online = True
        self.save_gate: Optional[asyncio.Event] = None
        self.save_calls: List[tuple] = []
        self.server_answers: Dict[str, str] = {}

        self.section_error: Optional[Exception] = None
        self.next_section_started_at: Optional[float] = None
        self.section_submits: List[int] = []

        self.submit_error: Optional[Exception] = None
        self.attempt_submits = 0

    async def start_attempt(self, exam_id):
        self.start_calls += 1
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error is not None:
            raise self.start_error
        return StartAttemptResponse.model_validate(self.start_payload)

    async def save_answer(self, attempt_id, question_id, selected_answer, time_spent_seconds=0):
        self.save_calls.append((question_id, selected_answer, time_spent_seconds))
        if self.save_gate is not None:
            await self.save_gate.wait()
        if not self.online:
            raise ServiceError("offline")
        self.server_answers[question_id] = selected_answer

    async def submit_section(self, attempt_id, section_index):
        self.section_submits.append(section_index)
        if self.section_error is not None:
            raise self.section_error
        return SectionSubmitResponse(next_section_started_at=self.next_section_started_at)

    async def submit_attempt(self, attempt_id):
        self.attempt_submits += 1
        if self.submit_error is not None:
            raise self.submit_error


class FakeContentService:
    """저작 서비스 대역. 서버 저장본을 questions에 보관한다."""

    def __init__(self, exam_payload):
        self.exam_payload = exam_payload
        self.get_error: Optional[Exception] = None
        self.get_gate: Optional[asyncio.Event] = None
        self.update_error: Optional[Exception] = None
        self.update_gate: Optional[asyncio.Event] = None
        self.updates: List[Question] = []
        self.created: List[dict] = []
        self.deleted: List[str] = []
        self._next_id = 100

    async def get_exam(self, exam_id):
        if self.get_gate is not None:
            await self.get_gate.wait()
        if self.get_error is not None:
            raise self.get_error
        return ExamPaper.model_validate(self.exam_payload)

    async def update_question(self, question):
        if self.update_gate is not None:
            await self.update_gate.wait()
        if self.update_error is not None:
            raise self.update_error
        self.updates.append(question)

    async def create_questions(self, exam_id, bodies):
        created = []
        for body in bodies:
            self._next_id += 1
            self.created.append(body)
            created.append(Question.model_validate(dict(body, id=f"q-{self._next_id}")))
        return created

    async def delete_question(self, question_id):
        self.deleted.append(question_id)


@pytest.fixture
def scheduler():
    return ManualScheduler(start=1000.0)


@pytest.fixture
def submission_service():
    return FakeSubmissionService()


def make_authoring_payload():
    return {
        "id": "exam-1",
        "title": "Mock Test",
        "code": "MT-01",
        "questions": [
            make_question("a", section="Reading", module=1, correctAnswer="B", difficulty="Easy"),
            make_question("b", section="Reading", module=1, correctAnswer="A"),
            make_question("c", section="Reading", module=2, correctAnswer="D"),
            make_question("d", section="Math", module=1, correctAnswer="C"),
        ],
    }


@pytest.fixture
def content_service():
    return FakeContentService(make_authoring_payload())
