import logging

from prepai.core.logger import log_event

logger = logging.getLogger("prepai.events")

SESSION_STARTED = "session_started"
ANSWER_SUBMITTED = "answer_submitted"
SESSION_COMPLETED = "session_completed"


def emit(event: str, owner_id: str, session_token: str, **fields) -> None:
    """Fire-and-forget audit event; a failing sink never reaches the caller."""
    try:
        log_event("practice", event, session_token, owner_id=owner_id, **fields)
    except Exception as exc:
        logger.warning("event emit failed | event=%s session=%s error=%s", event, session_token, exc)
