from fastapi import APIRouter, Request

from prepai.analytics.aggregator import build_dashboard
from prepai.auth import get_user_id

router = APIRouter(prefix="/api")


@router.get("/analytics/dashboard")
async def dashboard(request: Request, period: str = "30d"):
    user_id = get_user_id(request)
    payload = await build_dashboard(user_id, request.app.state.store, period=period)
    return {"success": True, "data": payload}


@router.get("/user/statistics")
async def user_statistics(request: Request):
    user_id = get_user_id(request)
    stats = await request.app.state.lifecycle.get_user_statistics(user_id)
    return {"success": True, "data": stats.to_dict()}
