from fastapi import HTTPException, Request
from jose import JWTError, jwt
import os
import logging

logger = logging.getLogger("prepai.auth")


def _jwt_secret() -> str:
    return str(os.getenv("JWT_SECRET") or "").strip()


def _environment() -> str:
    return str(os.getenv("ENV") or "development").strip().lower()


def _allow_unverified() -> bool:
    return str(os.getenv("ALLOW_UNVERIFIED_JWT_DEV", "false")).strip().lower() in {"1", "true", "yes", "on"}


def resolve_payload_from_token(token: str) -> dict:
    secret = _jwt_secret()
    if secret:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except JWTError:
            raise HTTPException(401, "Invalid token")

    if _environment() == "production":
        raise HTTPException(500, "JWT_SECRET is not configured")
    if not _allow_unverified():
        raise HTTPException(
            401,
            "Token verification unavailable in development; configure JWT_SECRET or set ALLOW_UNVERIFIED_JWT_DEV=true",
        )
    try:
        payload = jwt.get_unverified_claims(token)
    except JWTError:
        raise HTTPException(401, "Invalid token")
    logger.warning("ALLOW_UNVERIFIED_JWT_DEV enabled; using unverified token claims in non-production mode")
    return payload


def peek_subject(token: str) -> str | None:
    """Best-effort `sub` for request bookkeeping; never raises and never logs."""
    secret = _jwt_secret()
    try:
        if secret:
            payload = jwt.decode(token, secret, algorithms=["HS256"])
        elif _environment() != "production" and _allow_unverified():
            payload = jwt.get_unverified_claims(token)
        else:
            return None
    except JWTError:
        return None
    subject = (payload or {}).get("sub")
    return str(subject) if subject else None


def bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if not auth or not auth.startswith("Bearer "):
        return None
    return auth.replace("Bearer ", "", 1).strip() or None


def get_user_id(request: Request) -> str:
    token = bearer_token(request)
    if not token:
        raise HTTPException(401, "Unauthorized")

    payload = resolve_payload_from_token(token)
    user_id = (payload or {}).get("sub")
    if not user_id:
        raise HTTPException(401, "Invalid token")
    return str(user_id)
