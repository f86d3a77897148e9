"""
services/content_client.py

문제 저작(관리자) 서비스 클라이언트. PUT은 부분 수정이 아닌 전체 교체.
"""

from typing import List

from pydantic import TypeAdapter, ValidationError

from cbt_session.config import CONTENT_API_URL
from cbt_session.errors import MalformedResponseError
from cbt_session.models.question_model import ExamPaper, Question
from cbt_session.services.http_client import ApiClient

_QUESTION_LIST = TypeAdapter(List[Question])


class ContentClient(ApiClient):

    def __init__(self, base_url: str = CONTENT_API_URL, auth=None, **kwargs):
        super().__init__(base_url, auth, **kwargs)

    async def get_exam(self, exam_id: str) -> ExamPaper:
        data = await self._request("GET", f"/exams/{exam_id}")
        try:
            return ExamPaper.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(f"시험지 응답 형식 오류: {e.error_count()}건") from e

    async def update_question(self, question: Question) -> None:
        await self._request("PUT", f"/questions/{question.id}", json=question.to_body())

    async def create_questions(self, exam_id: str, bodies: List[dict]) -> List[Question]:
        """새 문제 본문 리스트를 추가하고, 서버가 ID를 부여한 문제 리스트를 반환."""
        data = await self._request("POST", f"/exams/{exam_id}/questions", json=bodies)
        try:
            return _QUESTION_LIST.validate_python(data)
        except ValidationError as e:
            raise MalformedResponseError("문제 생성 응답 형식 오류") from e

    async def delete_question(self, question_id: str) -> None:
        await self._request("DELETE", f"/questions/{question_id}")
