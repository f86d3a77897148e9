"""
engine/navigator.py

문항 순서 위의 결정적 주소 지정.

전체 문항 순서에 (섹션, 모듈) 필터를 적용한 부분 집합을 탐색한다.
필터를 바꾸면 인덱스는 새 부분 집합의 0으로 돌아간다.
이전/다음/이동은 경계에서 아무것도 하지 않는다 (예외 없음, 순환 없음).
"""

from typing import List, Optional, Sequence, Tuple

from cbt_session.models.question_model import Question


def filter_questions(
    questions: Sequence[Question],
    section: Optional[str] = None,
    module: Optional[int] = None,
) -> List[Question]:
    """섹션/모듈 필터. None은 해당 조건을 적용하지 않음."""
    return [
        q for q in questions
        if (section is None or q.section == section)
        and (module is None or q.module == module)
    ]


class Navigator:

    def __init__(self, questions: Sequence[Question] = ()):
        self._all: List[Question] = list(questions)
        self._section: Optional[str] = None
        self._module: Optional[int] = None
        self._filtered: List[Question] = list(self._all)
        self._index = 0

    # ── 데이터 ────────────────────────────────────────────────────────────

    def load(self, questions: Sequence[Question]) -> None:
        """전체 문항 교체. 현재 필터는 유지하고 인덱스는 0으로."""
        self._all = list(questions)
        self._apply_filter()

    def set_filter(self, section: Optional[str] = None, module: Optional[int] = None) -> None:
        self._section = section
        self._module = module
        self._apply_filter()

    def _apply_filter(self) -> None:
        self._filtered = filter_questions(self._all, self._section, self._module)
        self._index = 0

    @property
    def filter(self) -> Tuple[Optional[str], Optional[int]]:
        return (self._section, self._module)

    @property
    def questions(self) -> List[Question]:
        return list(self._filtered)

    @property
    def count(self) -> int:
        return len(self._filtered)

    def sections(self) -> List[Tuple[str, int]]:
        """전체 문항에 등장하는 (섹션, 모듈) 쌍. 첫 등장 순서."""
        seen: List[Tuple[str, int]] = []
        for q in self._all:
            if (q.section, q.module) not in seen:
                seen.append((q.section, q.module))
        return seen

    # ── 조회 ──────────────────────────────────────────────────────────────

    @property
    def current_index(self) -> int:
        return self._index

    def current(self) -> Optional[Question]:
        return self._filtered[self._index] if self._filtered else None

    def question_at(self, index: int) -> Question:
        if not 0 <= index < len(self._filtered):
            raise IndexError(f"문항 인덱스 범위 초과: {index} (0..{len(self._filtered) - 1})")
        return self._filtered[index]

    def index_of(self, question_id: str) -> Optional[int]:
        for idx, q in enumerate(self._filtered):
            if q.id == question_id:
                return idx
        return None

    # ── 이동 ──────────────────────────────────────────────────────────────

    def go_to(self, index: int) -> bool:
        if not 0 <= index < len(self._filtered) or index == self._index:
            return False
        self._index = index
        return True

    def next(self) -> bool:
        return self.go_to(self._index + 1)

    def previous(self) -> bool:
        return self.go_to(self._index - 1)

    def jump_to(self, question_id: str) -> bool:
        idx = self.index_of(question_id)
        if idx is None:
            return False
        return self.go_to(idx)
