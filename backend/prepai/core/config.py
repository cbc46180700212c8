import os
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[2]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)


def _env_flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default)).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name) or default).strip())
    except ValueError:
        return default


ENVIRONMENT = str(os.getenv("ENV") or "development").strip().lower()
LOG_LEVEL = str(os.getenv("LOG_LEVEL") or "INFO").strip().upper()

CONTENT_STORE = str(os.getenv("CONTENT_STORE") or "local").strip().lower()
REDIS_URL = str(os.getenv("REDIS_URL") or "").strip()
QUESTION_BANK_PATH = str(os.getenv("QUESTION_BANK_PATH") or "").strip()
SEED_QUESTION_BANK = _env_flag("SEED_QUESTION_BANK", "true")

RATE_LIMIT_ENABLED = _env_flag("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_WINDOW_SEC = max(10, _env_int("RATE_LIMIT_WINDOW_SEC", 60))
RATE_LIMIT_MAX_REQUESTS = max(20, _env_int("RATE_LIMIT_MAX_REQUESTS", 300))

TEST_PASS_MARK = max(0, min(100, _env_int("TEST_PASS_MARK", 70)))


def is_development() -> bool:
    return str(os.getenv("ENV") or ENVIRONMENT).strip().lower() in {"development", "dev"}
