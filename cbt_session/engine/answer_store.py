"""
engine/answer_store.py

응시 중 답안 저장소 (OMR 카드).
문항당 Answer는 최대 하나이며, 재선택은 교체한다. 응시 중에는 삭제하지 않는다.
쓰기는 컨트롤러만 하고, 디스패처는 synced 비트만 바꾼다.
"""

from typing import Dict, Iterable, List, Mapping, Optional

from cbt_session.models.session_state import Answer, SavedAnswer


class AnswerStore:

    def __init__(self) -> None:
        self._answers: Dict[str, Answer] = {}
        self._time_spent: Dict[str, float] = {}

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._answers

    def __len__(self) -> int:
        return len(self._answers)

    def get(self, question_id: str) -> Optional[Answer]:
        return self._answers.get(question_id)

    def snapshot(self) -> Mapping[str, Answer]:
        return dict(self._answers)

    def select(self, question_id: str, choice: str) -> Answer:
        """보기를 선택(또는 재선택)하고 미동기화 상태로 표시."""
        answer = Answer(
            question_id=question_id,
            selected_answer=choice,
            synced=False,
            time_spent_seconds=int(self._time_spent.get(question_id, 0.0)),
        )
        self._answers[question_id] = answer
        return answer

    def mark_synced(self, question_id: str, value: str) -> bool:
        """
        서버가 value 저장을 확인했을 때 호출.
        현재 값이 value와 다르면(그 사이 재선택됨) 오래된 응답이므로 무시하고 False.
        """
        answer = self._answers.get(question_id)
        if answer is None or answer.selected_answer != value:
            return False
        answer.synced = True
        return True

    def unsynced_ids(self) -> List[str]:
        return [qid for qid, a in self._answers.items() if not a.synced]

    def add_time(self, question_id: str, seconds: float) -> None:
        """문항 체류 시간 누적. 이미 답한 문항이면 Answer에도 반영한다."""
        if seconds <= 0:
            return
        total = self._time_spent.get(question_id, 0.0) + seconds
        self._time_spent[question_id] = total
        answer = self._answers.get(question_id)
        if answer is not None:
            answer.time_spent_seconds = int(total)

    def load_saved(self, saved: Iterable[SavedAnswer]) -> None:
        """재개 시 서버에 이미 저장된 답안을 동기화 완료 상태로 적재."""
        for s in saved:
            self._time_spent[s.question_id] = float(s.time_spent_seconds)
            self._answers[s.question_id] = Answer(
                question_id=s.question_id,
                selected_answer=s.selected_answer,
                synced=True,
                time_spent_seconds=s.time_spent_seconds,
            )
