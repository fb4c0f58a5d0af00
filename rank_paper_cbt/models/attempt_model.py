"""
models/attempt_model.py

응시 기록(Attempt)과 답안(Answer, UploadedAnswer) 영속 모델.
게이트웨이가 반환하는 레코드 형태이며, 세션 상태 머신만 변경을 요청한다.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class UploadType(str, Enum):
    """서술형 답안 업로드 종류."""
    SHORT_ESSAY = "SHORT_ESSAY"
    ESSAY = "ESSAY"


class Attempt(BaseModel):
    """
    (학생, 시험지) 쌍당 하나의 응시 기록.

    Attributes:
        started_at:         최초 입장 시각. 한 번만 기록.
        ends_at:            서버 기준 마감 시각 (started_at + 제한 시간). 변경 불가.
        submitted_at:       제출 시각. None → 값 으로 한 번만 바뀐다.
        tab_switch_count:   탭 전환 누적 횟수 (감소하지 않음).
        window_close_count: 창 재진입 누적 횟수 (감소하지 않음).
        auto_closed:        시간 만료로 자동 제출되었는지 여부.
    """

    id: str
    paper_id: str
    student_id: str
    started_at: datetime
    ends_at: datetime
    submitted_at: Optional[datetime] = None
    tab_switch_count: int = Field(default=0, ge=0)
    window_close_count: int = Field(default=0, ge=0)
    auto_closed: bool = False

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None

    def remaining_seconds(self, now: datetime) -> int:
        """마감까지 남은 초 (0 미만이면 0)."""
        return max(0, int((self.ends_at - now).total_seconds()))


class Answer(BaseModel):
    """MCQ 답안. (attempt_id, question_id) 기준 upsert."""
    attempt_id: str
    question_id: str
    selected_option_no: Optional[int] = None


class UploadedAnswer(BaseModel):
    """서술형 답안 문서 참조. (attempt_id, upload_type) 기준 upsert."""
    attempt_id: str
    upload_type: UploadType
    document_ref: str = Field(..., min_length=1)
