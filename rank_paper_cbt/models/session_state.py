"""
models/session_state.py

시험 세션 상태 머신의 상태 열거형, 세션 설정, UI에 노출되는 상태 스냅샷 모델.
Pydantic BaseModel 기반 — 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드 없음.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

import config


class SessionState(str, Enum):
    """
    세션 수명 주기.

    UNINITIALIZED → ACTIVE → FINALIZING → TERMINAL
    DETACHED: 같은 응시에 새 세션이 들어와 제출 없이 자원만 반납한 상태.
    """

    UNINITIALIZED = "UNINITIALIZED"
    ACTIVE = "ACTIVE"
    FINALIZING = "FINALIZING"
    TERMINAL = "TERMINAL"
    DETACHED = "DETACHED"


class SessionSettings(BaseModel):
    """
    세션 하나에 적용되는 타이밍/재시도 설정.
    기본값은 config 모듈(환경 변수)에서 가져오며, 테스트에서 개별 값만 덮어쓴다.
    """

    answer_debounce: float = Field(
        default=config.ANSWER_DEBOUNCE_MS / 1000,
        ge=0,
        description="답안 자동 저장 디바운스 (초)"
    )
    violation_debounce: float = Field(
        default=config.VIOLATION_DEBOUNCE_MS / 1000,
        ge=0,
        description="부정행위 카운터 저장 디바운스 (초)"
    )
    tick_seconds: float = Field(
        default=config.COUNTDOWN_TICK_SECONDS,
        gt=0,
        description="카운트다운 틱 간격 (초)"
    )
    finalize_max_retries: int = Field(
        default=config.FINALIZE_MAX_RETRIES,
        ge=2,
        description="제출 쓰기 최대 시도 횟수 (최초 시도 포함, 재시도 최소 1회)"
    )
    finalize_backoff_base: float = Field(
        default=config.FINALIZE_BACKOFF_BASE,
        ge=0,
        description="제출 재시도 지수 백오프 기준 (초)"
    )


class SessionStatus(BaseModel):
    """
    UI 계층에 노출되는 세션 상태 스냅샷.

    Attributes:
        remaining_seconds: 마감까지 남은 시간 (ends_at − now, 0 이상).
        answered_count:    선택이 있는 MCQ 문항 수.
        is_saving:         대기 중이거나 진행 중인 저장이 있는지 여부.
        violation_count:   탭 전환 + 창 재진입 합계.
        blocked:           탭 전환 경고 오버레이 표시 여부 (확인 전까지 유지).
        already_completed: 이미 제출된 응시에 재입장한 경우 True.
        error:             마지막으로 사용자에게 보여줄 오류 메시지.
    """

    state: SessionState
    attempt_id: Optional[str] = None
    paper_id: str
    remaining_seconds: int = 0
    remaining_display: str = "00:00"
    time_warning: bool = False
    answered_count: int = 0
    question_count: int = 0
    progress: float = 0.0
    is_saving: bool = False
    violation_count: int = 0
    tab_switch_count: int = 0
    window_close_count: int = 0
    blocked: bool = False
    auto_closed: bool = False
    already_completed: bool = False
    error: Optional[str] = None
