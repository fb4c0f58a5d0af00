"""
services/exam_service.py

응시 상태 요약 및 표시용 계산 로직.
순수 Python 함수로 구성 — UI 코드, 전역 상태 변경 없음.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

import config
from rank_paper_cbt.models.attempt_model import Attempt


class AttemptStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    MARKED = "MARKED"


def derive_status(
    attempt: Optional[Attempt],
    now: datetime,
    marks_published: bool = False,
) -> AttemptStatus:
    """
    응시 기록으로부터 시험지 목록에 표시할 상태를 계산한다.

    판정 순서:
    - 응시 기록 없음                         → NOT_STARTED
    - 채점 결과 공개됨                       → MARKED
    - 제출됨 또는 자동 종료됨                → SUBMITTED
    - 마감 전                               → IN_PROGRESS
    - 마감 지남 (아직 제출 기록 없음)         → SUBMITTED

    Args:
        attempt:         응시 기록 (없으면 None).
        now:             현재 시각 (timezone-aware).
        marks_published: 채점 서브시스템이 결과를 공개했는지 여부.
    """
    if attempt is None:
        return AttemptStatus.NOT_STARTED
    if marks_published:
        return AttemptStatus.MARKED
    if attempt.is_submitted or attempt.auto_closed:
        return AttemptStatus.SUBMITTED
    if attempt.ends_at > now:
        return AttemptStatus.IN_PROGRESS
    return AttemptStatus.SUBMITTED


def summarize_attempts(
    attempts: List[Attempt],
    now: datetime,
    published_attempt_ids: frozenset = frozenset(),
) -> List[Dict[str, object]]:
    """
    학생의 전체 응시 상태 요약.

    Returns:
        [{"paper_id", "attempt_id", "status", "submitted_at", "marks_published", "violations"}, ...]
        paper_id 기준 정렬.
    """
    result = []
    for a in sorted(attempts, key=lambda x: x.paper_id):
        published = a.id in published_attempt_ids
        result.append({
            "paper_id": a.paper_id,
            "attempt_id": a.id,
            "status": derive_status(a, now, published).value,
            "submitted_at": a.submitted_at,
            "marks_published": published,
            "violations": violation_summary(a),
        })
    return result


def format_remaining(seconds: int) -> str:
    """
    남은 시간 표시 문자열.

    1시간 이상이면 H:MM:SS, 아니면 MM:SS.
    """
    seconds = max(0, int(seconds))
    hrs = seconds // 3600
    mins = (seconds % 3600) // 60
    secs = seconds % 60
    prefix = f"{hrs}:" if hrs > 0 else ""
    return f"{prefix}{mins:02d}:{secs:02d}"


def is_time_warning(seconds: int, threshold: int = config.TIME_WARNING_SECONDS) -> bool:
    """남은 시간이 경고 기준 미만이면 True (0초 포함)."""
    return seconds < threshold


def calculate_progress(answered_count: int, question_count: int) -> float:
    """응답 진행률 (0.0 ~ 100.0, 소수점 첫째 자리 반올림). 문항이 없으면 0.0."""
    if question_count <= 0:
        return 0.0
    return round(min(answered_count, question_count) / question_count * 100, 1)


def violation_summary(attempt: Attempt) -> Dict[str, object]:
    """결과/관리 화면용 부정행위 요약."""
    total = attempt.tab_switch_count + attempt.window_close_count
    return {
        "tab_switch_count": attempt.tab_switch_count,
        "window_close_count": attempt.window_close_count,
        "total": total,
        "has_violations": total > 0,
    }
