from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os

from prepai.api.analytics import router as analytics_router
from prepai.api.sessions import router as sessions_router
from prepai.core import config
from prepai.core.config import is_development
from prepai.core.logger import configure_logging
from prepai.questions.bank import seed_question_bank
from prepai.rate_limit import rate_limit_middleware
from prepai.session.errors import PracticeError
from prepai.session.lifecycle import SessionLifecycleManager
from prepai.store.content_store import build_content_store

configure_logging()
app = FastAPI(title="PrepAI Practice Engine")
logger = logging.getLogger("prepai.main")


def _get_allowed_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    return [item.strip() for item in raw.split(",") if item.strip()]


_allowed_origins = _get_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)
app.middleware("http")(rate_limit_middleware)


@app.exception_handler(PracticeError)
async def practice_error_handler(request: Request, exc: PracticeError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error | path=%s", request.url.path)
    content = {"success": False, "reason": "internal_error", "message": "Internal server error"}
    if is_development():
        content["detail"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content=content)


@app.on_event("startup")
async def startup():
    store = build_content_store()
    app.state.store = store
    app.state.lifecycle = SessionLifecycleManager(store)

    if config.SEED_QUESTION_BANK:
        await seed_question_bank(store, config.QUESTION_BANK_PATH or None)

    logger.info("[SYSTEM] CORS allow_origins=%s", _allowed_origins)
    logger.info(
        "[SYSTEM] rate_limit enabled=%s window_sec=%s max_requests=%s",
        config.RATE_LIMIT_ENABLED,
        config.RATE_LIMIT_WINDOW_SEC,
        config.RATE_LIMIT_MAX_REQUESTS,
    )


@app.on_event("shutdown")
async def shutdown():
    store = getattr(app.state, "store", None)
    if store is not None:
        await store.close()
    logger.info("[SYSTEM] shutdown complete")


@app.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "prepai"}


app.include_router(sessions_router)
app.include_router(analytics_router)
