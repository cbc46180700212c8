import base64
import json
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from prepai.questions.bank import load_question_bank  # noqa: E402
from prepai.store.content_store import LocalContentStore  # noqa: E402


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("ALLOW_UNVERIFIED_JWT_DEV", "true")
    monkeypatch.setenv("CONTENT_STORE", "local")
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)


def make_dev_token(sub: str) -> str:
    def _enc(obj: dict) -> str:
        raw = json.dumps(obj, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")

    header = _enc({"alg": "none", "typ": "JWT"})
    payload = _enc({"sub": sub, "iat": 0})
    return f"{header}.{payload}."


@pytest.fixture
def dev_jwt_token() -> str:
    return make_dev_token("pytest-user")


class FixedClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def question_bank():
    return load_question_bank()


@pytest_asyncio.fixture
async def store(question_bank):
    local = LocalContentStore(rng=random.Random(7))
    for question in question_bank:
        await local.add_question(question)
    return local
