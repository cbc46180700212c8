import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse

from prepai.auth import bearer_token, peek_subject
from prepai.core import config

logger = logging.getLogger("prepai.rate_limit")

_EXEMPT_PREFIXES = ("/docs", "/redoc", "/openapi.json", "/healthz")


def request_identity(request: Request) -> str:
    token = bearer_token(request)
    subject = peek_subject(token) if token else None
    if subject:
        return f"user:{subject}"

    forwarded_for = str(request.headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        return "ip:" + (forwarded_for.split(",")[0].strip() or "unknown")
    if request.client and request.client.host:
        return f"ip:{request.client.host}"
    return "ip:unknown"


async def check_rate_limit(store, identity: str, window_sec: int, max_requests: int, now_ts: float | None = None) -> tuple[bool, int]:
    """Fixed-window limiter on the store's shared counter.

    Returns (blocked, retry_after_sec).
    """
    now_value = float(now_ts if now_ts is not None else time.time())
    window = max(1, int(window_sec))
    window_index = int(now_value // window)
    count = await store.increment_counter(f"rate:{identity}:{window_index}", window)
    if count > max_requests:
        retry_after = max(1, int(window - (now_value % window)))
        return True, retry_after
    return False, 0


async def rate_limit_middleware(request: Request, call_next):
    if not config.RATE_LIMIT_ENABLED:
        return await call_next(request)

    path = request.url.path
    if request.method == "OPTIONS" or path.startswith(_EXEMPT_PREFIXES):
        return await call_next(request)

    store = getattr(request.app.state, "store", None)
    if store is None:
        return await call_next(request)

    identity = request_identity(request)
    blocked, retry_after = await check_rate_limit(
        store,
        identity,
        config.RATE_LIMIT_WINDOW_SEC,
        config.RATE_LIMIT_MAX_REQUESTS,
    )
    if blocked:
        logger.info("rate limit exceeded | identity=%s path=%s", identity, path)
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "reason": "rate_limited",
                "message": "Rate limit exceeded",
                "retry_after_sec": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )

    return await call_next(request)
