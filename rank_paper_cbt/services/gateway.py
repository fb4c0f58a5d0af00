"""
services/gateway.py

영속 저장소 게이트웨이 (포트) + 인메모리 구현.

  - PersistenceGateway : 세션 상태 머신이 의존하는 추상 인터페이스
  - InMemoryGateway    : 개발 서버/테스트용 구현 (스레드 락 + dict)

update_attempt(only_if_open=True)는 compare-and-set 이다:
submitted_at 이 비어 있을 때만 쓰고, 실제로 바뀌었는지를 bool 로 반환한다.
"""

from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from rank_paper_cbt.models.attempt_model import Answer, Attempt, UploadedAnswer, UploadType
from rank_paper_cbt.models.question_model import Question, RankPaper
from rank_paper_cbt.services.errors import AttemptClosedError, AttemptConflictError, GatewayError

# update_attempt 로 바꿀 수 있는 필드
ATTEMPT_MUTABLE_FIELDS = frozenset(
    {"tab_switch_count", "window_close_count", "submitted_at", "auto_closed"}
)
_COUNTER_FIELDS = ("tab_switch_count", "window_close_count")


class PersistenceGateway(ABC):
    """응시/답안 영속 저장소 추상 인터페이스"""

    # ── 참조 데이터 (읽기 전용) ──────────────────────────────────────────────

    @abstractmethod
    async def get_paper(self, paper_id: str) -> Optional[RankPaper]:
        pass

    @abstractmethod
    async def list_questions(self, paper_id: str) -> List[Question]:
        pass

    # ── 응시 기록 ───────────────────────────────────────────────────────────

    @abstractmethod
    async def find_attempt(self, student_id: str, paper_id: str) -> Optional[Attempt]:
        pass

    @abstractmethod
    async def list_attempts(self, student_id: str) -> List[Attempt]:
        pass

    @abstractmethod
    async def create_attempt(self, student_id: str, paper_id: str, ends_at: datetime) -> Attempt:
        """새 응시 생성. 이미 있으면 AttemptConflictError."""

    @abstractmethod
    async def update_attempt(
        self,
        attempt_id: str,
        fields: Dict[str, Any],
        only_if_open: bool = False,
    ) -> bool:
        """필드 갱신. only_if_open=True 이면 submitted_at 이 None 일 때만 적용."""

    # ── 답안 ────────────────────────────────────────────────────────────────

    @abstractmethod
    async def upsert_answer(self, attempt_id: str, question_id: str, selection: Optional[int]) -> None:
        pass

    @abstractmethod
    async def upsert_upload(self, attempt_id: str, upload_type: UploadType, document_ref: str) -> None:
        pass

    @abstractmethod
    async def list_answers(self, attempt_id: str) -> List[Answer]:
        pass

    @abstractmethod
    async def list_uploads(self, attempt_id: str) -> List[UploadedAnswer]:
        pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryGateway(PersistenceGateway):
    """
    프로세스 메모리에 레코드를 보관하는 게이트웨이.

    - (student_id, paper_id) 당 응시 기록은 하나 (고유 제약)
    - 카운터는 기존 값보다 작은 값으로 덮어쓰지 않는다 (순서 뒤바뀐 쓰기 허용)
    - 제출된 응시에 대한 답안 쓰기는 AttemptClosedError
    """

    def __init__(self, clock=_utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._papers: Dict[str, RankPaper] = {}
        self._questions: Dict[str, List[Question]] = {}
        self._attempts: Dict[str, Attempt] = {}
        self._answers: Dict[Tuple[str, str], Answer] = {}
        self._uploads: Dict[Tuple[str, UploadType], UploadedAnswer] = {}

    # ── 시드 ────────────────────────────────────────────────────────────────

    def add_paper(self, paper: RankPaper, questions: Optional[List[Question]] = None) -> None:
        with self._lock:
            self._papers[paper.id] = paper
            self._questions[paper.id] = sorted(questions or [], key=lambda q: q.q_no)

    # ── 참조 데이터 ─────────────────────────────────────────────────────────

    async def get_paper(self, paper_id: str) -> Optional[RankPaper]:
        with self._lock:
            return self._papers.get(paper_id)

    async def list_questions(self, paper_id: str) -> List[Question]:
        with self._lock:
            return list(self._questions.get(paper_id, []))

    # ── 응시 기록 ───────────────────────────────────────────────────────────

    async def find_attempt(self, student_id: str, paper_id: str) -> Optional[Attempt]:
        with self._lock:
            for attempt in self._attempts.values():
                if attempt.student_id == student_id and attempt.paper_id == paper_id:
                    return attempt.model_copy()
        return None

    async def list_attempts(self, student_id: str) -> List[Attempt]:
        with self._lock:
            return [a.model_copy() for a in self._attempts.values() if a.student_id == student_id]

    async def create_attempt(self, student_id: str, paper_id: str, ends_at: datetime) -> Attempt:
        with self._lock:
            if paper_id not in self._papers:
                raise GatewayError(f"시험지 {paper_id} 가 없습니다.")
            for existing in self._attempts.values():
                if existing.student_id == student_id and existing.paper_id == paper_id:
                    raise AttemptConflictError(
                        f"응시 기록이 이미 존재합니다 (student={student_id}, paper={paper_id})"
                    )
            attempt = Attempt(
                id=uuid.uuid4().hex,
                paper_id=paper_id,
                student_id=student_id,
                started_at=self._clock(),
                ends_at=ends_at,
            )
            self._attempts[attempt.id] = attempt
            return attempt.model_copy()

    async def update_attempt(
        self,
        attempt_id: str,
        fields: Dict[str, Any],
        only_if_open: bool = False,
    ) -> bool:
        unknown = set(fields) - ATTEMPT_MUTABLE_FIELDS
        if unknown:
            raise GatewayError(f"변경할 수 없는 필드: {sorted(unknown)}")

        with self._lock:
            attempt = self._attempts.get(attempt_id)
            if attempt is None:
                raise GatewayError(f"응시 기록 {attempt_id} 가 없습니다.")
            if attempt.is_submitted:
                # 제출 이후에는 어떤 필드도 바뀌지 않는다 (submitted_at write-once)
                return False

            updates = dict(fields)
            for name in _COUNTER_FIELDS:
                if name in updates:
                    updates[name] = max(getattr(attempt, name), int(updates[name]))
            self._attempts[attempt_id] = attempt.model_copy(update=updates)
            return True

    # ── 답안 ────────────────────────────────────────────────────────────────

    def _require_open(self, attempt_id: str) -> None:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise GatewayError(f"응시 기록 {attempt_id} 가 없습니다.")
        if attempt.is_submitted:
            raise AttemptClosedError(f"제출된 응시 {attempt_id} 에는 쓸 수 없습니다.")

    async def upsert_answer(self, attempt_id: str, question_id: str, selection: Optional[int]) -> None:
        with self._lock:
            self._require_open(attempt_id)
            self._answers[(attempt_id, question_id)] = Answer(
                attempt_id=attempt_id,
                question_id=question_id,
                selected_option_no=selection,
            )

    async def upsert_upload(self, attempt_id: str, upload_type: UploadType, document_ref: str) -> None:
        with self._lock:
            self._require_open(attempt_id)
            self._uploads[(attempt_id, upload_type)] = UploadedAnswer(
                attempt_id=attempt_id,
                upload_type=upload_type,
                document_ref=document_ref,
            )

    async def list_answers(self, attempt_id: str) -> List[Answer]:
        with self._lock:
            return [a for (aid, _), a in self._answers.items() if aid == attempt_id]

    async def list_uploads(self, attempt_id: str) -> List[UploadedAnswer]:
        with self._lock:
            return [u for (aid, _), u in self._uploads.items() if aid == attempt_id]
