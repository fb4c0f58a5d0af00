"""
services/autosave.py

MCQ 답안 / 서술형 업로드 참조 자동 저장 버퍼.
Answer, UploadedAnswer 레코드를 쓰는 유일한 경로.

  - record(question_id, selection) : 메모리 상태를 즉시 갱신 + 디바운스 저장 예약
  - record_upload(upload_type, ref): 업로드 참조를 같은 방식으로 예약
  - flush()                        : 제출 직전에 호출. 대기/실패 쓰기를 모두 내보낸다.

저장 실패는 로그만 남기고 UI 를 막지 않는다. 메모리 값이 표시 기준이며,
실패한 키는 다음 선택 변경이나 flush() 때 다시 저장된다.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Set

from rank_paper_cbt.models.attempt_model import Answer, UploadedAnswer, UploadType
from rank_paper_cbt.services.debounce import DebouncedWriter
from rank_paper_cbt.services.gateway import PersistenceGateway


class AnswerAutosaveBuffer:
    """MCQ 선택과 서술형 업로드 참조의 메모리 사본 및 디바운스 저장기."""

    def __init__(self, gateway: PersistenceGateway, attempt_id: str, delay: float):
        self._gateway = gateway
        self._attempt_id = attempt_id
        self._selections: Dict[str, Optional[int]] = {}
        self._uploads: Dict[UploadType, str] = {}
        self._failed_answers: Set[str] = set()
        self._failed_uploads: Set[UploadType] = set()

        self._answer_writer: DebouncedWriter[str, Optional[int]] = DebouncedWriter(
            self._write_answer, delay, name="answer-autosave", on_result=self._on_answer_result
        )
        self._upload_writer: DebouncedWriter[UploadType, str] = DebouncedWriter(
            self._write_upload, delay, name="upload-autosave", on_result=self._on_upload_result
        )

    # ── 초기 상태 ───────────────────────────────────────────────────────────

    def load(self, answers: Iterable[Answer], uploads: Iterable[UploadedAnswer] = ()) -> None:
        """재개 시 저장된 답안을 메모리에 올린다 (쓰기 없음)."""
        for a in answers:
            if a.selected_option_no is not None:
                self._selections[a.question_id] = a.selected_option_no
        for u in uploads:
            self._uploads[u.upload_type] = u.document_ref

    # ── 조회 ────────────────────────────────────────────────────────────────

    @property
    def selections(self) -> Dict[str, int]:
        return {qid: sel for qid, sel in self._selections.items() if sel is not None}

    @property
    def uploads(self) -> Dict[UploadType, str]:
        return dict(self._uploads)

    @property
    def answered_count(self) -> int:
        return sum(1 for sel in self._selections.values() if sel is not None)

    @property
    def is_saving(self) -> bool:
        return self._answer_writer.is_busy or self._upload_writer.is_busy

    # ── 기록 ────────────────────────────────────────────────────────────────

    def record(self, question_id: str, selection: Optional[int]) -> None:
        self._selections[question_id] = selection
        self._answer_writer.schedule(question_id, selection)

    def record_upload(self, upload_type: UploadType, document_ref: str) -> None:
        self._uploads[upload_type] = document_ref
        self._upload_writer.schedule(upload_type, document_ref)

    async def flush(self) -> bool:
        """
        업로드 → MCQ 답안 순으로 모든 대기/실패 쓰기를 즉시 저장한다.

        Returns:
            모든 쓰기가 성공했으면 True.
        """
        for upload_type in list(self._failed_uploads):
            if not self._upload_writer.has_pending(upload_type):
                self._upload_writer.schedule(upload_type, self._uploads[upload_type])
        uploads_ok = await self._upload_writer.flush()

        for question_id in list(self._failed_answers):
            if not self._answer_writer.has_pending(question_id):
                self._answer_writer.schedule(question_id, self._selections[question_id])
        answers_ok = await self._answer_writer.flush()

        return uploads_ok and answers_ok

    def close(self) -> None:
        self._upload_writer.close()
        self._answer_writer.close()

    # ── 내부 ────────────────────────────────────────────────────────────────

    async def _write_answer(self, question_id: str, selection: Optional[int]) -> None:
        await self._gateway.upsert_answer(self._attempt_id, question_id, selection)

    async def _write_upload(self, upload_type: UploadType, document_ref: str) -> None:
        await self._gateway.upsert_upload(self._attempt_id, upload_type, document_ref)

    def _on_answer_result(self, question_id: str, _value, error: Optional[BaseException]) -> None:
        if error is None:
            self._failed_answers.discard(question_id)
        else:
            self._failed_answers.add(question_id)

    def _on_upload_result(self, upload_type: UploadType, _value, error: Optional[BaseException]) -> None:
        if error is None:
            self._failed_uploads.discard(upload_type)
        else:
            self._failed_uploads.add(upload_type)
