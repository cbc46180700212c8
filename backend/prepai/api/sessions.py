from fastapi import APIRouter, HTTPException, Query, Request

from prepai.analytics.aggregator import variant_analytics
from prepai.auth import get_user_id
from prepai.core.state import SessionStatus, SessionVariant
from prepai.questions.catalog import list_categories
from prepai.schemas import CompleteSessionRequest, StartInterviewRequest, StartTestRequest, SubmitAnswerRequest
from prepai.session.errors import SessionNotFound
from prepai.session.lifecycle import SessionLifecycleManager

router = APIRouter(prefix="/api")

VARIANT_PATHS = {
    "interviews": SessionVariant.INTERVIEW,
    "tests": SessionVariant.TEST,
}


def get_lifecycle(request: Request) -> SessionLifecycleManager:
    return request.app.state.lifecycle


def _variant(path_variant: str) -> SessionVariant:
    variant = VARIANT_PATHS.get(str(path_variant or "").lower())
    if variant is None:
        raise HTTPException(status_code=404, detail="Not Found")
    return variant


async def _owned_session(request: Request, path_variant: str, session_token: str):
    variant = _variant(path_variant)
    user_id = get_user_id(request)
    session = await get_lifecycle(request).get_session(user_id, session_token)
    if session.variant is not variant:
        raise SessionNotFound()
    return user_id, session


async def _start(request: Request, variant: SessionVariant, body) -> dict:
    user_id = get_user_id(request)
    started = await get_lifecycle(request).start_session(
        owner_id=user_id,
        variant=variant,
        category=body.category,
        difficulty=body.difficulty,
        question_count=body.question_count,
        time_limit=body.time_limit,
    )
    return {"success": True, "data": started.to_dict()}


@router.post("/interviews/session", status_code=201)
async def start_interview(body: StartInterviewRequest, request: Request):
    return await _start(request, SessionVariant.INTERVIEW, body)


@router.post("/tests/session", status_code=201)
async def start_test(body: StartTestRequest, request: Request):
    return await _start(request, SessionVariant.TEST, body)


@router.get("/{path_variant}/session/{session_token}")
async def get_session_detail(path_variant: str, session_token: str, request: Request):
    _, session = await _owned_session(request, path_variant, session_token)
    return {"success": True, "data": session.public_view()}


@router.post("/{path_variant}/session/{session_token}/answer")
async def submit_answer(path_variant: str, session_token: str, body: SubmitAnswerRequest, request: Request):
    user_id, _ = await _owned_session(request, path_variant, session_token)
    outcome = await get_lifecycle(request).submit_answer(
        owner_id=user_id,
        session_token=session_token,
        question_id=body.question_id,
        answer=body.answer,
        time_taken=body.time_taken,
    )
    return {"success": True, "data": outcome.to_dict()}


@router.post("/{path_variant}/session/{session_token}/complete")
async def complete_session(
    path_variant: str,
    session_token: str,
    request: Request,
    body: CompleteSessionRequest | None = None,
):
    user_id, _ = await _owned_session(request, path_variant, session_token)
    reason = body.reason if body is not None else "completed"
    session = await get_lifecycle(request).complete_session(user_id, session_token, reason)
    payload = session.summary().to_dict()
    payload["feedback"] = session.feedback_summary.to_dict() if session.feedback_summary else None
    return {"success": True, "data": payload}


@router.get("/{path_variant}/session/{session_token}/feedback")
async def get_feedback(path_variant: str, session_token: str, request: Request):
    user_id, _ = await _owned_session(request, path_variant, session_token)
    summary = await get_lifecycle(request).get_feedback(user_id, session_token)
    return {"success": True, "data": summary.to_dict()}


@router.get("/{path_variant}/history")
async def session_history(
    path_variant: str,
    request: Request,
    status: SessionStatus | None = None,
    category: str | None = None,
    limit: int = Query(default=10, ge=1, le=50),
    offset: int = Query(default=0, ge=0),
):
    variant = _variant(path_variant)
    user_id = get_user_id(request)
    rows = await get_lifecycle(request).list_sessions(
        user_id,
        variant=variant,
        status=status,
        category=category,
        limit=limit,
        offset=offset,
    )
    return {
        "success": True,
        "data": {
            "items": [row.to_dict() for row in rows],
            "limit": limit,
            "offset": offset,
        },
    }


@router.get("/{path_variant}/categories")
async def variant_categories(path_variant: str, request: Request):
    variant = _variant(path_variant)
    get_user_id(request)
    rows = await list_categories(request.app.state.store, variant)
    return {"success": True, "data": rows}


@router.get("/tests/session/{session_token}/results")
async def session_results(session_token: str, request: Request):
    user_id = get_user_id(request)
    results = await get_lifecycle(request).get_test_results(user_id, session_token)
    return {"success": True, "data": results.to_dict()}


@router.get("/{path_variant}/analytics")
async def variant_analytics_summary(path_variant: str, request: Request, period: str = "30d"):
    variant = _variant(path_variant)
    user_id = get_user_id(request)
    payload = await variant_analytics(user_id, request.app.state.store, variant, period=period)
    return {"success": True, "data": payload}
