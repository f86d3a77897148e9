"""
engine/autosave.py

답안 변경을 (attempt_id, question_id) 키의 멱등 저장 요청으로 바꾸는 디스패처.

순서 보장:
  - 문항당 동시에 하나의 요청만 보낸다. 전송 중 새 값이 들어오면 끝난 뒤 최신 값을 다시 보낸다.
  - 각 요청은 실어 보낸 값을 기억하고, 응답 시점에 저장소의 현재 값과 다르면 synced를 올리지 않는다.

실패 처리:
  - 실패한 문항은 synced=False로 남고 자동 무한 재시도는 하지 않는다.
  - 다음 상태 변경 이벤트(retry_failed)나 최종 제출 flush()가 재전송한다.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from cbt_session.engine.answer_store import AnswerStore
from cbt_session.engine.scheduler import BackgroundTasks
from cbt_session.errors import ServiceError

logger = logging.getLogger(__name__)


class AutosaveDispatcher:

    def __init__(self, service, store: AnswerStore, attempt_id: str):
        """
        Args:
            service:    save_answer(attempt_id, question_id, selected_answer, time_spent_seconds)
                        코루틴을 가진 제출 서비스 (SubmissionClient).
            store:      답안 저장소. 디스패처는 synced 비트만 쓴다.
            attempt_id: 현재 응시 ID.
        """
        self._service = service
        self._store = store
        self._attempt_id = attempt_id
        self._tasks = BackgroundTasks("autosave")
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._rerun: Set[str] = set()
        self._closed = False

    @property
    def in_flight(self) -> List[str]:
        return list(self._in_flight)

    def enqueue(self, question_id: str) -> None:
        """question_id의 현재 답안을 저장 대기열에 올린다. 즉시 반환."""
        if self._closed or self._store.get(question_id) is None:
            return
        if question_id in self._in_flight:
            self._rerun.add(question_id)
            return
        self._in_flight[question_id] = self._tasks.spawn(self._send(question_id))

    def retry_failed(self, exclude: Optional[str] = None) -> int:
        """전송 중이 아닌 미동기화 답안을 한 번씩 재전송. 재전송 개수를 반환."""
        count = 0
        for qid in self._store.unsynced_ids():
            if qid == exclude or qid in self._in_flight:
                continue
            self.enqueue(qid)
            count += 1
        if count:
            logger.info(f"미동기화 답안 {count}개 재전송")
        return count

    async def flush(self) -> List[str]:
        """
        최종 제출 전 동기화.
        전송 중인 요청을 기다린 뒤 남은 미동기화 답안을 한 번씩 다시 보내고 결과를 기다린다.

        Returns:
            여전히 동기화되지 않은 question_id 리스트.
        """
        await self._tasks.join()
        self.retry_failed()
        await self._tasks.join()
        remaining = self._store.unsynced_ids()
        if remaining:
            logger.warning(f"flush 후에도 미동기화 답안 {len(remaining)}개")
        return remaining

    async def join(self) -> None:
        await self._tasks.join()

    def close(self) -> None:
        """언마운트: flush 없이 전송 중인 작업 취소."""
        self._closed = True
        self._rerun.clear()
        self._tasks.cancel_all()
        self._in_flight.clear()

    async def _send(self, question_id: str) -> None:
        answer = self._store.get(question_id)
        value = answer.selected_answer
        ok = False
        try:
            await self._service.save_answer(
                self._attempt_id,
                question_id,
                value,
                answer.time_spent_seconds,
            )
            ok = True
        except ServiceError as e:
            logger.warning(f"답안 자동 저장 실패 (문항 {question_id}): {e}")
        finally:
            self._in_flight.pop(question_id, None)

        if ok and not self._store.mark_synced(question_id, value):
            logger.debug(f"문항 {question_id}: 이전 값 응답 무시")

        if question_id in self._rerun and not self._closed:
            self._rerun.discard(question_id)
            current = self._store.get(question_id)
            if current is not None and not current.synced:
                self.enqueue(question_id)
