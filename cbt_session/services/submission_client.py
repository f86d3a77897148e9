"""
services/submission_client.py

응시 제출 서비스 클라이언트.
Public API:
  - start_attempt(exam_id) -> StartAttemptResponse   : 응시 생성 또는 재개
  - save_answer(attempt_id, question_id, ...)         : 답안 저장 (멱등)
  - submit_section(attempt_id, section_index)         : 섹션 제출
  - submit_attempt(attempt_id)                        : 최종 제출
"""

from pydantic import ValidationError

from cbt_session.config import SUBMISSION_API_URL
from cbt_session.errors import MalformedResponseError
from cbt_session.models.api_schema import AnswerPayload, SectionSubmitResponse, StartAttemptResponse
from cbt_session.services.http_client import ApiClient


class SubmissionClient(ApiClient):

    def __init__(self, base_url: str = SUBMISSION_API_URL, auth=None, **kwargs):
        super().__init__(base_url, auth, **kwargs)

    async def start_attempt(self, exam_id: str) -> StartAttemptResponse:
        # 시작 요청에는 하드 타임아웃을 두지 않는다. 느린 응답은 컨트롤러가 표시한다.
        data = await self._request("POST", f"/exams/{exam_id}/start", json={}, timeout=None)
        try:
            return StartAttemptResponse.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(f"시작 응답 형식 오류: {e.error_count()}건") from e

    async def save_answer(
        self,
        attempt_id: str,
        question_id: str,
        selected_answer: str,
        time_spent_seconds: int = 0,
    ) -> None:
        payload = AnswerPayload(
            question_id=question_id,
            selected_answer=selected_answer,
            time_spent_seconds=time_spent_seconds,
        )
        await self._request(
            "POST",
            f"/attempts/{attempt_id}/answers",
            json=payload.model_dump(by_alias=True),
        )

    async def submit_section(self, attempt_id: str, section_index: int) -> SectionSubmitResponse:
        data = await self._request("POST", f"/attempts/{attempt_id}/sections/{section_index}/submit")
        try:
            return SectionSubmitResponse.model_validate(data or {})
        except ValidationError as e:
            raise MalformedResponseError("섹션 제출 응답 형식 오류") from e

    async def submit_attempt(self, attempt_id: str) -> None:
        await self._request("POST", f"/attempts/{attempt_id}/submit")
