"""
services/progress_service.py

응시 진행 현황 집계 로직 (문항 번호 오버레이, 섹션별 현황).
순수 Python 함수로 구성 — UI 코드, 전역 상태 변경 없음.
"""

from collections import defaultdict
from typing import AbstractSet, Dict, List, Mapping, Sequence

from cbt_session.models.question_model import Question
from cbt_session.models.session_state import Answer, QuestionStatus


def question_statuses(
    questions: Sequence[Question],
    answers: Mapping[str, Answer],
    marked: AbstractSet[str],
) -> List[QuestionStatus]:
    """
    문항 번호 오버레이용 상태 리스트를 반환한다.

    각 문항은 answered / unanswered 중 하나이며,
    marked(다시 보기)는 두 상태 어느 쪽에도 겹칠 수 있다.

    Args:
        questions: 현재 섹션의 Question 리스트 (출제 순서).
        answers:   답안 저장소 스냅샷. {question.id: Answer}
        marked:    다시 보기로 표시된 question.id 집합.

    Returns:
        QuestionStatus 리스트. 원본 순서 유지, number는 1-based.
    """
    return [
        QuestionStatus(
            question_id=q.id,
            number=idx + 1,
            answered=q.id in answers,
            marked=q.id in marked,
        )
        for idx, q in enumerate(questions)
    ]


def count_unanswered(
    questions: Sequence[Question],
    answers: Mapping[str, Answer],
) -> int:
    """응답하지 않은 문항 수. 제출 전 확인 문구에 사용."""
    return sum(1 for q in questions if q.id not in answers)


def summarize_sections(
    questions: Sequence[Question],
    answers: Mapping[str, Answer],
    marked: AbstractSet[str],
) -> List[Dict[str, object]]:
    """
    섹션·모듈별 진행 현황을 계산하여 반환한다.

    Returns:
        [{"section": str, "module": int, "total": int, "answered": int,
          "unanswered": int, "marked": int, "unsynced": int}, ...]
        (섹션명, 모듈 번호) 기준 정렬.
    """
    buckets: Dict[tuple, Dict[str, int]] = defaultdict(
        lambda: {"total": 0, "answered": 0, "unanswered": 0, "marked": 0, "unsynced": 0}
    )

    for q in questions:
        b = buckets[(q.section, q.module)]
        b["total"] += 1

        answer = answers.get(q.id)
        if answer is None:
            b["unanswered"] += 1
        else:
            b["answered"] += 1
            if not answer.synced:
                b["unsynced"] += 1
        if q.id in marked:
            b["marked"] += 1

    return [
        {"section": section, "module": module, **buckets[(section, module)]}
        for section, module in sorted(buckets)
    ]
