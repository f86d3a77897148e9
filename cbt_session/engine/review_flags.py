"""
engine/review_flags.py

"다시 보기" 표시 집합. 로컬 UI 상태이며 네트워크 의존성/실패 경로가 없다.
"""

from typing import FrozenSet, Set


class ReviewFlagSet:

    def __init__(self) -> None:
        self._marked: Set[str] = set()

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._marked

    def __len__(self) -> int:
        return len(self._marked)

    def toggle(self, question_id: str) -> bool:
        """표시를 뒤집고, 뒤집은 뒤 표시 여부를 반환."""
        if question_id in self._marked:
            self._marked.discard(question_id)
            return False
        self._marked.add(question_id)
        return True

    def is_marked(self, question_id: str) -> bool:
        return question_id in self._marked

    def marked(self) -> FrozenSet[str]:
        return frozenset(self._marked)

    def clear(self) -> None:
        self._marked.clear()
