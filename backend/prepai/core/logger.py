import json
import logging
from typing import Any

from prepai.core.config import LOG_LEVEL

logger = logging.getLogger("prepai")

# free-text fields are logged by length only
REDACTED_FIELDS = frozenset({"answer", "user_answer", "prompt", "question_text", "explanation", "detailed_analysis"})


def configure_logging(level: str | None = None) -> None:
	logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s %(message)s")
	logger.setLevel(getattr(logging, str(level or LOG_LEVEL).upper(), logging.INFO))


def redact(field: str, value: Any) -> Any:
	if str(field or "").lower() in REDACTED_FIELDS:
		return {"redacted": True, "length": len(str(value or ""))}
	if value is None or isinstance(value, (str, int, float, bool)):
		return value
	if isinstance(value, dict):
		return {str(k): redact(str(k), v) for k, v in value.items()}
	if isinstance(value, (list, tuple, set)):
		return [redact(field, item) for item in value]
	if hasattr(value, "value"):
		return value.value
	return str(value)


def log_event(component: str, event: str, session_token: str, **fields) -> None:
	"""Emit one JSON line on the "prepai" logger."""
	record = {
		"component": str(component or "prepai"),
		"event": str(event or "unknown"),
		"session_token": str(session_token or ""),
	}
	for name, value in fields.items():
		record[str(name)] = redact(str(name), value)
	logger.info(json.dumps(record, ensure_ascii=False, default=str, sort_keys=True))
