from __future__ import annotations

import asyncio
import json
import logging
import os
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Protocol

from prepai.core.numeric import mean, round_half_up
from prepai.core.state import SessionStatus, SessionVariant
from prepai.questions.models import QuestionDefinition
from prepai.session.models import Session
from prepai.users.stats import UserStatistics

logger = logging.getLogger("prepai.store")

GROUP_BY_FIELDS = ("category", "variant", "difficulty", "status", "day")
MAX_WATCH_RETRIES = 20
POOL_INDEX_KEY = "questions:pools"


@dataclass
class SessionFilter:
    variant: SessionVariant | None = None
    status: SessionStatus | None = None
    category: str | None = None
    started_after: datetime | None = None
    limit: int | None = None
    offset: int = 0

    def matches(self, session: Session) -> bool:
        if self.variant is not None and session.variant is not self.variant:
            return False
        if self.status is not None and session.status is not self.status:
            return False
        if self.category and session.category != self.category:
            return False
        if self.started_after is not None and session.started_at < self.started_after:
            return False
        return True

    def apply(self, sessions: Iterable[Session]) -> list[Session]:
        rows = [session for session in sessions if self.matches(session)]
        rows.sort(key=lambda session: session.started_at, reverse=True)
        start = max(0, int(self.offset or 0))
        if self.limit is None:
            return rows[start:]
        return rows[start:start + max(0, int(self.limit))]


def _group_key(session: Session, group_by: str) -> str:
    if group_by == "day":
        return session.started_at.date().isoformat()
    value = getattr(session, group_by)
    return str(getattr(value, "value", value))


def rollup_sessions(sessions: Iterable[Session], group_by: str = "category") -> list[dict[str, Any]]:
    """Group sessions and summarize each group.

    Rows carry `key`, `count`, `average_score`, `total_questions` and
    `time_spent`, sorted by key.
    """
    if group_by not in GROUP_BY_FIELDS:
        raise ValueError(f"unsupported group_by {group_by!r}")
    groups: dict[str, list[Session]] = {}
    for session in sessions:
        groups.setdefault(_group_key(session, group_by), []).append(session)
    return [
        {
            "key": key,
            "count": len(rows),
            "average_score": round_half_up(mean([row.reported_score for row in rows])),
            "total_questions": sum(row.total_questions for row in rows),
            "time_spent": sum(row.time_spent for row in rows),
        }
        for key, rows in sorted(groups.items())
    ]


class ContentStore(Protocol):
    async def add_question(self, question: QuestionDefinition) -> None:
        ...

    async def get_question(self, question_id: str) -> QuestionDefinition | None:
        ...

    async def find_questions(self, category: str, difficulty: str, sample_size: int) -> list[QuestionDefinition]:
        ...

    async def get_session_by_token(self, session_token: str, owner_id: str) -> Session | None:
        ...

    async def save_session(self, session: Session) -> None:
        ...

    async def update_session(
        self,
        session_token: str,
        owner_id: str,
        mutate: Callable[[Session], None],
    ) -> Session | None:
        ...

    async def list_sessions(self, owner_id: str, session_filter: SessionFilter | None = None) -> list[Session]:
        ...

    async def aggregate_sessions(
        self,
        owner_id: str,
        session_filter: SessionFilter | None = None,
        group_by: str = "category",
    ) -> list[dict[str, Any]]:
        ...

    async def get_user_stats(self, owner_id: str) -> UserStatistics | None:
        ...

    async def save_user_stats(self, stats: UserStatistics) -> None:
        ...

    async def update_user_stats(
        self,
        owner_id: str,
        mutate: Callable[[UserStatistics], UserStatistics],
    ) -> UserStatistics:
        ...

    async def question_pools(self) -> dict[tuple[str, str], int]:
        ...

    async def increment_counter(self, key: str, window_sec: int) -> int:
        ...

    async def close(self) -> None:
        ...


def _pool_key(category: str, difficulty: str) -> tuple[str, str]:
    return str(category or "").strip().lower(), str(getattr(difficulty, "value", difficulty) or "").strip().lower()


class LocalContentStore:
    """In-process store; sessions are kept serialized so callers never alias stored state."""

    def __init__(self, rng: random.Random | None = None, timer: Callable[[], float] | None = None):
        self._lock = asyncio.Lock()
        self._rng = rng or random.Random()
        self._timer = timer or time.monotonic
        self._questions: dict[str, QuestionDefinition] = {}
        self._pools: dict[tuple[str, str], list[str]] = {}
        self._sessions: dict[str, dict] = {}
        self._owner_sessions: dict[str, set[str]] = {}
        self._stats: dict[str, dict] = {}
        self._counters: dict[str, tuple[int, float]] = {}

    async def add_question(self, question: QuestionDefinition) -> None:
        async with self._lock:
            previous = self._questions.get(question.question_id)
            if previous is not None:
                old_pool = self._pools.get(_pool_key(previous.category, previous.difficulty), [])
                if question.question_id in old_pool:
                    old_pool.remove(question.question_id)
            self._questions[question.question_id] = question
            self._pools.setdefault(_pool_key(question.category, question.difficulty), []).append(question.question_id)

    async def get_question(self, question_id: str) -> QuestionDefinition | None:
        async with self._lock:
            return self._questions.get(str(question_id or ""))

    async def find_questions(self, category: str, difficulty: str, sample_size: int) -> list[QuestionDefinition]:
        async with self._lock:
            pool = list(self._pools.get(_pool_key(category, difficulty), []))
            if not pool or sample_size <= 0:
                return []
            picked = self._rng.sample(pool, min(int(sample_size), len(pool)))
            return [self._questions[question_id] for question_id in picked]

    async def get_session_by_token(self, session_token: str, owner_id: str) -> Session | None:
        async with self._lock:
            data = self._sessions.get(str(session_token or ""))
        if data is None or data.get("owner_id") != owner_id:
            return None
        return Session.from_dict(data)

    async def save_session(self, session: Session) -> None:
        payload = session.to_dict()
        async with self._lock:
            self._sessions[session.session_token] = payload
            self._owner_sessions.setdefault(session.owner_id, set()).add(session.session_token)

    async def update_session(
        self,
        session_token: str,
        owner_id: str,
        mutate: Callable[[Session], None],
    ) -> Session | None:
        """Apply `mutate` to the stored session and write it back in one step.

        An exception from `mutate` leaves the stored session untouched.
        """
        async with self._lock:
            data = self._sessions.get(str(session_token or ""))
            if data is None or data.get("owner_id") != owner_id:
                return None
            session = Session.from_dict(data)
            mutate(session)
            self._sessions[session.session_token] = session.to_dict()
        return session

    async def list_sessions(self, owner_id: str, session_filter: SessionFilter | None = None) -> list[Session]:
        async with self._lock:
            tokens = list(self._owner_sessions.get(owner_id, set()))
            rows = [self._sessions[token] for token in tokens if token in self._sessions]
        return (session_filter or SessionFilter()).apply(Session.from_dict(row) for row in rows)

    async def aggregate_sessions(
        self,
        owner_id: str,
        session_filter: SessionFilter | None = None,
        group_by: str = "category",
    ) -> list[dict[str, Any]]:
        return rollup_sessions(await self.list_sessions(owner_id, session_filter), group_by)

    async def get_user_stats(self, owner_id: str) -> UserStatistics | None:
        async with self._lock:
            data = self._stats.get(owner_id)
        return UserStatistics.from_dict(data) if data else None

    async def save_user_stats(self, stats: UserStatistics) -> None:
        async with self._lock:
            self._stats[stats.owner_id] = stats.to_dict()

    async def update_user_stats(
        self,
        owner_id: str,
        mutate: Callable[[UserStatistics], UserStatistics],
    ) -> UserStatistics:
        async with self._lock:
            data = self._stats.get(owner_id)
            current = UserStatistics.from_dict(data) if data else UserStatistics(owner_id=owner_id)
            updated = mutate(current)
            self._stats[owner_id] = updated.to_dict()
        return updated

    async def question_pools(self) -> dict[tuple[str, str], int]:
        async with self._lock:
            return {key: len(ids) for key, ids in self._pools.items() if ids}

    async def increment_counter(self, key: str, window_sec: int) -> int:
        now_ts = self._timer()
        async with self._lock:
            count, expires_at = self._counters.get(key, (0, 0.0))
            if now_ts >= expires_at:
                # window-scoped keys are never reused once expired
                self._counters = {name: entry for name, entry in self._counters.items() if entry[1] > now_ts}
                count, expires_at = 0, now_ts + max(1, int(window_sec))
            count += 1
            self._counters[key] = (count, expires_at)
            return count

    async def close(self) -> None:
        return None


class RedisContentStore:
    """Redis-backed content store.

    Keys:
    - question:{id} (json)
    - questions:{category}:{difficulty} (set of question ids)
    - questions:pools (set of "{category}:{difficulty}" pool names)
    - session:{token} (json)
    - user:{owner}:sessions (set of session tokens)
    - user:{owner}:stats (json)
    - counter:{key} (int with expiry)
    """

    def __init__(self, redis_url: str | None = None, client: Any = None):
        if client is not None:
            self._redis = client
            return
        try:
            import redis.asyncio as redis_async  # type: ignore
        except Exception as exc:
            raise RuntimeError("redis package not installed; install 'redis' to enable CONTENT_STORE=redis") from exc

        self._redis = redis_async.from_url(redis_url, decode_responses=True)

    @staticmethod
    def _question_key(question_id: str) -> str:
        return f"question:{question_id}"

    @staticmethod
    def _pool_key(category: str, difficulty: str) -> str:
        category, difficulty = _pool_key(category, difficulty)
        return f"questions:{category}:{difficulty}"

    @staticmethod
    def _session_key(session_token: str) -> str:
        return f"session:{session_token}"

    @staticmethod
    def _owner_sessions_key(owner_id: str) -> str:
        return f"user:{owner_id}:sessions"

    @staticmethod
    def _stats_key(owner_id: str) -> str:
        return f"user:{owner_id}:stats"

    async def _compare_and_set(self, key: str, transform: Callable[[str | None], tuple[str, Any] | None]) -> Any:
        """Optimistic WATCH/MULTI update of one key.

        `transform` receives the current raw value and returns
        `(new_raw, result)`, or None to leave the key alone. It is re-run
        when another writer touches the key first.
        """
        from redis.exceptions import WatchError

        async with self._redis.pipeline(transaction=True) as pipe:
            for _ in range(MAX_WATCH_RETRIES):
                try:
                    await pipe.watch(key)
                    outcome = transform(await pipe.get(key))
                    if outcome is None:
                        return None
                    payload, result = outcome
                    pipe.multi()
                    pipe.set(key, payload)
                    await pipe.execute()
                    return result
                except WatchError:
                    logger.info("redis write conflict, retrying | key=%s", key)
        raise RuntimeError(f"gave up updating {key} after {MAX_WATCH_RETRIES} conflicting writes")

    async def add_question(self, question: QuestionDefinition) -> None:
        await self._redis.set(self._question_key(question.question_id), json.dumps(question.to_dict()))
        await self._redis.sadd(self._pool_key(question.category, question.difficulty), question.question_id)
        await self._redis.sadd(POOL_INDEX_KEY, ":".join(_pool_key(question.category, question.difficulty)))

    async def get_question(self, question_id: str) -> QuestionDefinition | None:
        if not question_id:
            return None
        raw = await self._redis.get(self._question_key(question_id))
        return QuestionDefinition.from_dict(json.loads(raw)) if raw else None

    async def find_questions(self, category: str, difficulty: str, sample_size: int) -> list[QuestionDefinition]:
        if sample_size <= 0:
            return []
        ids = await self._redis.srandmember(self._pool_key(category, difficulty), int(sample_size))
        if not ids:
            return []
        rows = await self._redis.mget([self._question_key(question_id) for question_id in ids])
        return [QuestionDefinition.from_dict(json.loads(raw)) for raw in rows if raw]

    async def get_session_by_token(self, session_token: str, owner_id: str) -> Session | None:
        if not session_token:
            return None
        raw = await self._redis.get(self._session_key(session_token))
        if not raw:
            return None
        data = json.loads(raw)
        if data.get("owner_id") != owner_id:
            return None
        return Session.from_dict(data)

    async def save_session(self, session: Session) -> None:
        await self._redis.set(self._session_key(session.session_token), json.dumps(session.to_dict()))
        await self._redis.sadd(self._owner_sessions_key(session.owner_id), session.session_token)

    async def update_session(
        self,
        session_token: str,
        owner_id: str,
        mutate: Callable[[Session], None],
    ) -> Session | None:
        if not session_token:
            return None

        def apply(raw: str | None):
            if not raw:
                return None
            data = json.loads(raw)
            if data.get("owner_id") != owner_id:
                return None
            session = Session.from_dict(data)
            mutate(session)
            return json.dumps(session.to_dict()), session

        return await self._compare_and_set(self._session_key(session_token), apply)

    async def list_sessions(self, owner_id: str, session_filter: SessionFilter | None = None) -> list[Session]:
        tokens = sorted(await self._redis.smembers(self._owner_sessions_key(owner_id)) or [])
        if not tokens:
            return []
        rows = await self._redis.mget([self._session_key(token) for token in tokens])
        sessions = [Session.from_dict(json.loads(raw)) for raw in rows if raw]
        return (session_filter or SessionFilter()).apply(sessions)

    async def aggregate_sessions(
        self,
        owner_id: str,
        session_filter: SessionFilter | None = None,
        group_by: str = "category",
    ) -> list[dict[str, Any]]:
        return rollup_sessions(await self.list_sessions(owner_id, session_filter), group_by)

    async def get_user_stats(self, owner_id: str) -> UserStatistics | None:
        raw = await self._redis.get(self._stats_key(owner_id))
        return UserStatistics.from_dict(json.loads(raw)) if raw else None

    async def save_user_stats(self, stats: UserStatistics) -> None:
        await self._redis.set(self._stats_key(stats.owner_id), json.dumps(stats.to_dict()))

    async def update_user_stats(
        self,
        owner_id: str,
        mutate: Callable[[UserStatistics], UserStatistics],
    ) -> UserStatistics:
        def apply(raw: str | None):
            current = UserStatistics.from_dict(json.loads(raw)) if raw else UserStatistics(owner_id=owner_id)
            updated = mutate(current)
            return json.dumps(updated.to_dict()), updated

        return await self._compare_and_set(self._stats_key(owner_id), apply)

    async def question_pools(self) -> dict[tuple[str, str], int]:
        members = sorted(await self._redis.smembers(POOL_INDEX_KEY) or [])
        pools: dict[tuple[str, str], int] = {}
        for member in members:
            category, _, difficulty = str(member).rpartition(":")
            count = int(await self._redis.scard(self._pool_key(category, difficulty)) or 0)
            if count:
                pools[(category, difficulty)] = count
        return pools

    async def increment_counter(self, key: str, window_sec: int) -> int:
        counter_key = f"counter:{key}"
        count = int(await self._redis.incr(counter_key))
        if count == 1:
            await self._redis.expire(counter_key, max(1, int(window_sec)))
        return count

    async def close(self) -> None:
        await self._redis.aclose()


def build_content_store() -> ContentStore:
    backend = str(os.getenv("CONTENT_STORE") or "local").strip().lower()
    if backend == "local":
        return LocalContentStore()
    if backend != "redis":
        raise RuntimeError(f"CONTENT_STORE must be 'local' or 'redis', got {backend!r}")

    redis_url = str(os.getenv("REDIS_URL") or "").strip()
    if not redis_url:
        raise RuntimeError("CONTENT_STORE=redis requires REDIS_URL")
    logger.info("using redis content store")
    return RedisContentStore(redis_url)
