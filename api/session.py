"""
api/session.py — 살아 있는 시험 세션 레지스트리

(학생 ID, 시험지 ID) 마다 ExamSession 하나를 보관한다.
같은 쌍으로 새 입장이 들어오면 기존 세션은 분리(detach)되고 새 세션이 응시를 재개한다.
종료(TERMINAL)/분리(DETACHED)된 세션은 TTL 경과 후 정리된다.
"""

import threading
import time
from typing import Dict, Optional, Tuple

import config
from rank_paper_cbt.models.session_state import SessionState
from rank_paper_cbt.services.exam_session import ExamSession

SessionKey = Tuple[str, str]

_CLOSED_STATES = (SessionState.TERMINAL, SessionState.DETACHED)


class SessionRegistry:

    def __init__(self, ttl: int = config.SESSION_TTL):
        self._lock = threading.Lock()
        self._sessions: Dict[SessionKey, ExamSession] = {}
        self._timestamps: Dict[SessionKey, float] = {}
        self.ttl = ttl

    def get(self, student_id: str, paper_id: str) -> Optional[ExamSession]:
        """세션을 가져옴. 없으면 None. 접근 시 타임스탬프 갱신."""
        key = (student_id, paper_id)
        with self._lock:
            session = self._sessions.get(key)
            if session is not None:
                self._timestamps[key] = time.time()
            return session

    def put(self, session: ExamSession) -> Optional[ExamSession]:
        """세션 등록. 같은 키에 있던 이전 세션을 반환 (호출부에서 detach)."""
        key = (session.student_id, session.paper_id)
        with self._lock:
            previous = self._sessions.get(key)
            self._sessions[key] = session
            self._timestamps[key] = time.time()
            return previous

    def cleanup_expired(self) -> int:
        """
        TTL 이 지난 종료/분리 세션을 정리. 제거된 수 반환.
        진행 중인 세션은 카운트다운이 마감 시 자동 제출하므로 남겨 둔다.
        """
        now = time.time()
        removed = 0
        with self._lock:
            expired = [
                key for key, ts in self._timestamps.items()
                if now - ts > self.ttl and self._sessions[key].state in _CLOSED_STATES
            ]
            for key in expired:
                del self._sessions[key]
                del self._timestamps[key]
                removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
