"""
api/routes.py — FastAPI 엔드포인트
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from api.session import SessionRegistry
from rank_paper_cbt.models.attempt_model import UploadType
from rank_paper_cbt.models.session_state import SessionState
from rank_paper_cbt.services.errors import (
    AttemptClosedError,
    FinalizationError,
    GatewayError,
    InitializationError,
    PaperNotFoundError,
)
from rank_paper_cbt.services.exam_service import summarize_attempts
from rank_paper_cbt.services.exam_session import ExamSession
from rank_paper_cbt.services.gateway import PersistenceGateway
from rank_paper_cbt.services.integrity_guard import ClientEvent

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class SaveAnswerBody(BaseModel):
    question_id: str
    selection: Optional[int] = Field(None, ge=1)

class SaveUploadBody(BaseModel):
    upload_type: UploadType
    document_ref: str = Field(..., min_length=1)


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _student_id(request: Request) -> str:
    sid = getattr(request.state, "student_id", None)
    if not sid:
        raise HTTPException(status_code=401, detail="학생 인증 정보가 없습니다.")
    return sid


def _gateway(request: Request) -> PersistenceGateway:
    return request.app.state.gateway


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _live_session(request: Request, paper_id: str) -> ExamSession:
    exam = _registry(request).get(_student_id(request), paper_id)
    if exam is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return exam


async def _register(registry: SessionRegistry, exam: ExamSession) -> None:
    """세션을 등록하고, 그 사이 다른 입장이 먼저 등록한 세션이 있으면 분리한다."""
    displaced = registry.put(exam)
    if displaced is not None and displaced is not exam:
        await displaced.detach()


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.get("/api/attempts")
async def list_attempts(request: Request):
    student_id = _student_id(request)
    try:
        attempts = await _gateway(request).list_attempts(student_id)
    except GatewayError:
        raise HTTPException(status_code=503, detail="응시 기록을 불러오지 못했습니다.")
    return {"attempts": summarize_attempts(attempts, datetime.now(timezone.utc))}


@router.post("/api/papers/{paper_id}/attempt")
async def enter_exam(paper_id: str, request: Request):
    student_id = _student_id(request)
    registry = _registry(request)

    # 같은 응시에 대한 이전 세션은 대기 쓰기를 저장하고 물러난다
    previous = registry.get(student_id, paper_id)
    if previous is not None:
        await previous.detach()

    exam = ExamSession(
        _gateway(request),
        student_id,
        paper_id,
        settings=request.app.state.session_settings,
    )
    try:
        status = await exam.start()
    except PaperNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InitializationError as e:
        raise HTTPException(status_code=503, detail=str(e))

    await _register(registry, exam)
    return status.model_dump(mode="json")


@router.get("/api/papers/{paper_id}/attempt")
async def get_session_status(paper_id: str, request: Request):
    return _live_session(request, paper_id).status().model_dump(mode="json")


@router.get("/api/papers/{paper_id}/questions")
async def get_questions(paper_id: str, request: Request):
    exam = _live_session(request, paper_id)
    if exam.state is not SessionState.ACTIVE:
        raise HTTPException(status_code=409, detail="진행 중인 시험이 아닙니다.")

    status = exam.status()
    return {
        "paper": exam.paper.model_dump(mode="json"),
        "questions": [q.model_dump(mode="json") for q in exam.questions],
        "saved_answers": exam.saved_answers,
        "saved_uploads": {t.value: ref for t, ref in exam.saved_uploads.items()},
        "answered_count": status.answered_count,
        "total": status.question_count,
    }


@router.put("/api/papers/{paper_id}/answers")
async def save_answer(paper_id: str, body: SaveAnswerBody, request: Request):
    exam = _live_session(request, paper_id)
    try:
        answered = exam.record_answer(body.question_id, body.selection)
    except AttemptClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"ok": True, "answered_count": answered}


@router.put("/api/papers/{paper_id}/uploads")
async def save_upload(paper_id: str, body: SaveUploadBody, request: Request):
    exam = _live_session(request, paper_id)
    try:
        exam.record_upload(body.upload_type, body.document_ref)
    except AttemptClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"ok": True}


@router.post("/api/papers/{paper_id}/events")
async def report_event(paper_id: str, event: ClientEvent, request: Request):
    exam = _live_session(request, paper_id)
    verdict = exam.handle_client_event(event)
    return verdict.model_dump(mode="json")


@router.post("/api/papers/{paper_id}/acknowledge")
async def acknowledge_block(paper_id: str, request: Request):
    exam = _live_session(request, paper_id)
    exam.acknowledge_block()
    return {"ok": True, "blocked": exam.status().blocked}


@router.post("/api/papers/{paper_id}/submit")
async def submit_exam(paper_id: str, request: Request):
    exam = _live_session(request, paper_id)
    try:
        performed = await exam.request_submit()
    except FinalizationError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"ok": True, "submitted": performed, "status": exam.status().model_dump(mode="json")}
