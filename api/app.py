"""
api/app.py — FastAPI 앱 인스턴스 + 학생 식별 미들웨어 + 세션 레지스트리
"""

import logging
import threading
import time
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

import config
from api.routes import router
from api.sample_papers import SAMPLE_PAPER, SAMPLE_QUESTIONS
from api.session import SessionRegistry
from rank_paper_cbt.models.session_state import SessionSettings
from rank_paper_cbt.services.gateway import InMemoryGateway, PersistenceGateway


def create_app(
    gateway: Optional[PersistenceGateway] = None,
    settings: Optional[SessionSettings] = None,
) -> FastAPI:
    app = FastAPI(title="Rank Paper CBT", docs_url=None, redoc_url=None)

    # 게이트웨이 미지정 시 샘플 시험지를 담은 인메모리 저장소 사용
    if gateway is None:
        gateway = InMemoryGateway()
        gateway.add_paper(SAMPLE_PAPER, SAMPLE_QUESTIONS)

    app.state.gateway = gateway
    app.state.sessions = SessionRegistry()
    app.state.session_settings = settings or SessionSettings()

    # CORS (모바일 브라우저 등 다양한 출처 허용)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 학생 식별 미들웨어: 외부 인증 계층이 넣어 준 헤더를 request.state 로 옮긴다
    @app.middleware("http")
    async def student_middleware(request: Request, call_next):
        request.state.student_id = (request.headers.get(config.STUDENT_HEADER) or "").strip() or None
        response: Response = await call_next(request)
        return response

    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"ok": True, "sessions": len(app.state.sessions)}

    # 종료된 세션 주기적 정리 (5분마다)
    def _cleanup_loop():
        while True:
            time.sleep(config.SESSION_CLEANUP_INTERVAL)
            removed = app.state.sessions.cleanup_expired()
            if removed:
                logging.getLogger(__name__).info(f"종료된 세션 {removed}개 정리")

    t = threading.Thread(target=_cleanup_loop, daemon=True)
    t.start()

    return app
