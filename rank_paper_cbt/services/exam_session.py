"""
services/exam_session.py

시험 세션 상태 머신.

  UNINITIALIZED ─start()→ ACTIVE ─submit/만료→ FINALIZING ─flush+제출 쓰기→ TERMINAL
                                  └ detach() → DETACHED (제출 없이 자원 반납)

세션 하나가 소유하는 자원:
  - AnswerAutosaveBuffer : 답안/업로드 디바운스 저장
  - ViolationRecorder    : 탭 전환/창 재진입 카운터
  - CountdownController  : ends_at 기반 타이머
  - IntegrityGuard       : 입력 이벤트 판정

모든 메서드는 하나의 asyncio 이벤트 루프에서 호출된다고 가정한다.
제출은 한 번만 일어난다: _finalizing 래치는 await 없이 검사하고 세운다.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from rank_paper_cbt.models.attempt_model import Attempt, UploadType
from rank_paper_cbt.models.question_model import Question, RankPaper
from rank_paper_cbt.models.session_state import SessionSettings, SessionState, SessionStatus
from rank_paper_cbt.services.autosave import AnswerAutosaveBuffer
from rank_paper_cbt.services.countdown import Clock, CountdownController, utcnow
from rank_paper_cbt.services.errors import (
    AttemptClosedError,
    AttemptConflictError,
    ExamSessionError,
    FinalizationError,
    GatewayError,
    InitializationError,
    InvalidTransitionError,
    PaperNotFoundError,
)
from rank_paper_cbt.services.exam_service import calculate_progress, format_remaining, is_time_warning
from rank_paper_cbt.services.gateway import PersistenceGateway
from rank_paper_cbt.services.integrity_guard import ClientEvent, GuardVerdict, IntegrityGuard
from rank_paper_cbt.services.violations import ViolationRecorder

logger = logging.getLogger(__name__)


class ExamSession:
    """학생 한 명의 시험지 한 부 응시를 시작부터 제출까지 관리한다."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        student_id: str,
        paper_id: str,
        settings: Optional[SessionSettings] = None,
        clock: Clock = utcnow,
    ):
        self._gateway = gateway
        self.student_id = student_id
        self.paper_id = paper_id
        self._settings = settings or SessionSettings()
        self._clock = clock

        self.state = SessionState.UNINITIALIZED
        self.paper: Optional[RankPaper] = None
        self.questions: List[Question] = []
        self.attempt: Optional[Attempt] = None
        self.resumed = False
        self.already_completed = False
        self.auto_closed = False
        self.last_error: Optional[str] = None

        self._finalizing = False
        self._released = False
        self._autosave: Optional[AnswerAutosaveBuffer] = None
        self._violations: Optional[ViolationRecorder] = None
        self._countdown: Optional[CountdownController] = None
        self._guard = IntegrityGuard()

    # ══════════════════════════════════════════════════════════════════════
    # 시작 / 재개
    # ══════════════════════════════════════════════════════════════════════

    async def start(self) -> SessionStatus:
        """
        응시를 생성하거나 재개하고 ACTIVE 로 전이한다.

        - 이미 제출된 응시: TERMINAL (already_completed), 쓰기 없음
        - 마감이 지난 미제출 응시: 곧바로 자동 제출 (auto_closed)
        - 재개된 응시: 창 재진입 1회 기록 (마감이 지난 경우도 포함)

        Raises:
            PaperNotFoundError:  시험지가 없음.
            InitializationError: 응시 생성/조회 실패. 세션은 시작되지 않는다.
        """
        if self.state is not SessionState.UNINITIALIZED:
            raise InvalidTransitionError(f"이미 시작된 세션입니다 ({self.state.value}).")

        try:
            paper = await self._gateway.get_paper(self.paper_id)
        except GatewayError as e:
            logger.error(f"시험지 조회 실패 (paper={self.paper_id}): {e}")
            raise InitializationError("시험지 정보를 불러오지 못했습니다.") from e
        if paper is None:
            raise PaperNotFoundError(f"시험지를 찾을 수 없습니다: {self.paper_id}")
        self.paper = paper

        try:
            attempt = await self._find_or_create(paper)
            self.attempt = attempt

            if attempt.is_submitted:
                self.already_completed = True
                self.auto_closed = attempt.auto_closed
                self.state = SessionState.TERMINAL
                logger.info(f"[{attempt.id}] 이미 제출된 응시, 재입장 차단")
                return self.status()

            self.questions = await self._gateway.list_questions(paper.id) if paper.has_mcq else []
            answers = await self._gateway.list_answers(attempt.id) if self.resumed else []
            uploads = await self._gateway.list_uploads(attempt.id) if self.resumed else []
        except GatewayError as e:
            logger.error(f"응시 시작 실패 (student={self.student_id}, paper={self.paper_id}): {e}")
            raise InitializationError("시험을 시작하지 못했습니다. 잠시 후 다시 시도해 주세요.") from e

        self._acquire(attempt)
        self._autosave.load(answers, uploads)
        self.state = SessionState.ACTIVE
        if self.resumed:
            self._violations.record_window_reopen()

        if self._countdown.remaining_seconds() <= 0:
            logger.info(f"[{attempt.id}] 마감 시각 경과, 자동 제출")
            try:
                await self._finalize(auto_closed=True)
            except FinalizationError as e:
                logger.error(f"[{attempt.id}] 자동 제출 실패: {e}")
            return self.status()

        self._countdown.start()
        logger.info(
            f"[{attempt.id}] 세션 시작 ({'재개' if self.resumed else '신규'}, "
            f"남은 시간 {format_remaining(self._countdown.remaining_seconds())})"
        )
        return self.status()

    async def _find_or_create(self, paper: RankPaper) -> Attempt:
        attempt = await self._gateway.find_attempt(self.student_id, paper.id)
        if attempt is not None:
            self.resumed = not attempt.is_submitted
            return attempt

        ends_at = self._clock() + timedelta(minutes=paper.time_limit_minutes)
        try:
            attempt = await self._gateway.create_attempt(self.student_id, paper.id, ends_at)
        except AttemptConflictError:
            # 다른 탭이 먼저 생성 → 그 응시를 재개
            logger.warning(f"응시 생성 충돌 (student={self.student_id}, paper={paper.id}), 재조회")
            attempt = await self._gateway.find_attempt(self.student_id, paper.id)
            if attempt is None:
                raise GatewayError("충돌한 응시 기록을 다시 찾지 못했습니다.")
            self.resumed = not attempt.is_submitted
            return attempt

        logger.info(f"[{attempt.id}] 새 응시 생성 (ends_at={attempt.ends_at.isoformat()})")
        return attempt

    def _acquire(self, attempt: Attempt) -> None:
        s = self._settings
        self._autosave = AnswerAutosaveBuffer(self._gateway, attempt.id, s.answer_debounce)
        self._violations = ViolationRecorder(
            self._gateway,
            attempt.id,
            s.violation_debounce,
            tab_switch_count=attempt.tab_switch_count,
            window_close_count=attempt.window_close_count,
        )
        self._countdown = CountdownController(
            attempt.ends_at, self._on_expire, clock=self._clock, tick_seconds=s.tick_seconds
        )
        self._guard.acquire()

    def _release(self) -> None:
        """카운트다운, 디바운스 타이머, 입력 판정기를 한 번에 반납한다."""
        if self._released:
            return
        self._released = True
        if self._countdown is not None:
            self._countdown.stop()
        if self._autosave is not None:
            self._autosave.close()
        if self._violations is not None:
            self._violations.close()
        self._guard.release()

    # ══════════════════════════════════════════════════════════════════════
    # 응시 중 동작
    # ══════════════════════════════════════════════════════════════════════

    def _require_active(self) -> None:
        if self.state is not SessionState.ACTIVE:
            raise AttemptClosedError(f"진행 중인 시험이 아닙니다 ({self.state.value}).")

    def record_answer(self, question_id: str, selection: Optional[int]) -> int:
        """
        MCQ 선택을 기록한다. 메모리 반영은 즉시, 저장은 디바운스 후.

        Returns:
            현재 응답한 문항 수.

        Raises:
            AttemptClosedError: ACTIVE 가 아님.
            ValueError:         없는 문항 또는 보기 번호.
        """
        self._require_active()
        question = next((q for q in self.questions if q.id == question_id), None)
        if question is None:
            raise ValueError(f"문항을 찾을 수 없습니다: {question_id}")
        if selection is not None and not question.has_option(selection):
            raise ValueError(f"문항 {question.q_no}에 {selection}번 보기가 없습니다.")

        self._autosave.record(question_id, selection)
        return self._autosave.answered_count

    def record_upload(self, upload_type: UploadType, document_ref: str) -> None:
        """서술형 답안 문서 참조를 기록한다 (업로드 자체는 외부 저장소 담당)."""
        self._require_active()
        enabled = {
            UploadType.SHORT_ESSAY: self.paper.has_short_essay,
            UploadType.ESSAY: self.paper.has_essay,
        }
        if not enabled[upload_type]:
            raise ValueError(f"이 시험지에는 {upload_type.value} 영역이 없습니다.")
        self._autosave.record_upload(upload_type, document_ref)

    def record_tab_switch(self) -> int:
        self._require_active()
        self._guard.blocked = True
        return self._violations.record_tab_switch()

    def handle_client_event(self, event: ClientEvent) -> GuardVerdict:
        """입력 이벤트를 판정하고 탭 전환이면 카운터를 올린다. ACTIVE 가 아니면 판정 없음."""
        if self.state is not SessionState.ACTIVE:
            return GuardVerdict()
        verdict = self._guard.inspect(event)
        if verdict.tab_switch:
            self._violations.record_tab_switch()
        return verdict

    def acknowledge_block(self) -> None:
        self._guard.acknowledge()

    # ══════════════════════════════════════════════════════════════════════
    # 제출
    # ══════════════════════════════════════════════════════════════════════

    async def request_submit(self) -> bool:
        """
        학생의 제출 요청.

        Returns:
            이 호출이 제출을 수행했으면 True, 중복/종료 상태라 무시되었으면 False.

        Raises:
            FinalizationError: 재시도 후에도 제출 쓰기 실패 (세션은 FINALIZING 유지).
        """
        return await self._finalize(auto_closed=False)

    async def _on_expire(self) -> None:
        try:
            await self._finalize(auto_closed=True)
        except FinalizationError as e:
            logger.error(f"[{self.attempt.id}] 시간 만료 자동 제출 실패: {e}")

    async def _finalize(self, auto_closed: bool) -> bool:
        # 검사와 래치 설정 사이에 await 가 없어야 한다
        if self._finalizing or self.state not in (SessionState.ACTIVE, SessionState.FINALIZING):
            logger.debug(f"[{self.paper_id}] 중복 제출 요청 무시 ({self.state.value})")
            return False
        self._finalizing = True
        self.state = SessionState.FINALIZING
        self.auto_closed = self.auto_closed or auto_closed

        try:
            await self._submit_with_retry()
        except FinalizationError as e:
            self.last_error = str(e)
            raise
        finally:
            self._finalizing = False

        self._release()
        self.state = SessionState.TERMINAL
        self.last_error = None
        logger.info(
            f"[{self.attempt.id}] 제출 완료 ({'시간 만료 자동 제출' if self.auto_closed else '직접 제출'})"
        )
        return True

    def _submission_fields(self) -> Dict[str, Any]:
        now = self._clock()
        if self.auto_closed:
            # 늦게 재개된 응시도 마감 시각으로 기록
            return {"submitted_at": min(now, self.attempt.ends_at), "auto_closed": True}
        return {"submitted_at": now}

    async def _submit_with_retry(self) -> None:
        """
        대기 중인 업로드/답안/카운터를 먼저 저장한 뒤 submitted_at 을 조건부로 쓴다.
        답안 저장 실패는 제출을 보류시키고, 카운터 저장 실패는 경고만 남긴다.
        submitted_at 쓰기는 멱등(조건부 필드 설정)이므로 재시도해도 안전하다.
        """
        max_retries = self._settings.finalize_max_retries
        last_error: Optional[Exception] = None

        for attempt_no in range(1, max_retries + 1):
            flushed = await self._autosave.flush()
            if not await self._violations.flush():
                # 카운터는 감사용: 저장 실패가 제출을 막지 않는다
                logger.warning(f"[{self.attempt.id}] 부정행위 카운터 저장 실패, 제출은 계속 진행")

            if not flushed:
                last_error = ExamSessionError("대기 중인 답안을 저장하지 못했습니다.")
                if await self._submitted_elsewhere():
                    return
            else:
                fields = self._submission_fields()
                try:
                    applied = await self._gateway.update_attempt(self.attempt.id, fields, only_if_open=True)
                except GatewayError as e:
                    last_error = e
                else:
                    if applied:
                        self.attempt = self.attempt.model_copy(update=fields)
                    else:
                        logger.info(f"[{self.attempt.id}] 다른 세션에서 이미 제출됨")
                        await self._submitted_elsewhere()
                    return

            if attempt_no < max_retries:
                wait = self._settings.finalize_backoff_base * (2 ** (attempt_no - 1))
                logger.warning(f"[{self.attempt.id}] 제출 실패, {wait:.1f}초 후 재시도 ({attempt_no}/{max_retries}): {last_error}")
                await asyncio.sleep(wait)

        logger.error(f"[{self.attempt.id}] 제출 최대 재시도 초과: {last_error}")
        raise FinalizationError("답안을 제출하지 못했습니다. 네트워크 상태를 확인하고 다시 제출해 주세요.") from last_error

    async def _submitted_elsewhere(self) -> bool:
        try:
            latest = await self._gateway.find_attempt(self.student_id, self.paper_id)
        except GatewayError as e:
            logger.warning(f"[{self.attempt.id}] 응시 재조회 실패: {e}")
            return False
        if latest is not None and latest.is_submitted:
            self.attempt = latest
            self.auto_closed = latest.auto_closed
            return True
        return False

    # ══════════════════════════════════════════════════════════════════════
    # 분리 / 상태
    # ══════════════════════════════════════════════════════════════════════

    async def detach(self) -> None:
        """
        제출 없이 세션을 닫는다 (같은 응시에 새 세션이 들어온 경우).
        대기 중인 쓰기는 저장을 시도한 뒤 타이머를 반납한다. 응시는 열린 채로 남는다.
        """
        if self.state not in (SessionState.ACTIVE, SessionState.FINALIZING) or self._finalizing:
            return
        self.state = SessionState.DETACHED
        await self._autosave.flush()
        await self._violations.flush()
        self._release()
        logger.info(f"[{self.attempt.id}] 세션 분리 (새 입장으로 대체)")

    @property
    def saved_answers(self) -> Dict[str, int]:
        return self._autosave.selections if self._autosave else {}

    @property
    def saved_uploads(self) -> Dict[UploadType, str]:
        return self._autosave.uploads if self._autosave else {}

    @property
    def remaining_seconds(self) -> int:
        if self.state is SessionState.TERMINAL or self.attempt is None:
            return 0
        return self.attempt.remaining_seconds(self._clock())

    def status(self) -> SessionStatus:
        remaining = self.remaining_seconds
        answered = self._autosave.answered_count if self._autosave else 0
        if self._violations is not None:
            tab, window = self._violations.tab_switch_count, self._violations.window_close_count
        elif self.attempt is not None:
            tab, window = self.attempt.tab_switch_count, self.attempt.window_close_count
        else:
            tab = window = 0
        saving = bool(
            (self._autosave and self._autosave.is_saving)
            or (self._violations and self._violations.is_saving)
        )

        return SessionStatus(
            state=self.state,
            attempt_id=self.attempt.id if self.attempt else None,
            paper_id=self.paper_id,
            remaining_seconds=remaining,
            remaining_display=format_remaining(remaining),
            time_warning=self.state is SessionState.ACTIVE and is_time_warning(remaining),
            answered_count=answered,
            question_count=len(self.questions),
            progress=calculate_progress(answered, len(self.questions)),
            is_saving=saving,
            violation_count=tab + window,
            tab_switch_count=tab,
            window_close_count=window,
            blocked=self._guard.blocked,
            auto_closed=self.auto_closed,
            already_completed=self.already_completed,
            error=self.last_error,
        )
