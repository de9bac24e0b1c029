"""Comparison sessions and the stores that hold them between requests.

Sessions live in process memory first, with a SQLite-backed secondary cache
so an in-flight ranking survives a restart. Expiry is always an explicit
`now < expires_at` check at read time; the periodic sweep only reclaims
space.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from movieclub.ranking.algorithm import SearchState
from movieclub.storage.dao import SessionDAO, StoredSession

logger = logging.getLogger("movieclub.ranking.sessions")

DEFAULT_TTL_S = 30 * 60

Clock = Callable[[], float]


@dataclass(frozen=True)
class PendingComparison:
    """The pair currently shown to the user: movie1 is always the new movie."""

    new_movie_id: str
    existing_movie_id: str
    existing_ranking_id: str
    position: int

    def to_dict(self) -> dict:
        return {
            "new_movie_id": self.new_movie_id,
            "existing_movie_id": self.existing_movie_id,
            "existing_ranking_id": self.existing_ranking_id,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict) -> PendingComparison:
        return cls(
            new_movie_id=data["new_movie_id"],
            existing_movie_id=data["existing_movie_id"],
            existing_ranking_id=data["existing_ranking_id"],
            position=int(data["position"]),
        )


@dataclass(frozen=True)
class ComparisonSession:
    id: str
    user_id: str
    tmdb_id: int
    movie_id: str
    category: str
    state: SearchState
    created_at: float
    updated_at: float
    current_comparison: Optional[PendingComparison] = None
    completed: bool = False
    final_position: Optional[int] = None

    @property
    def completed_comparisons(self) -> int:
        return len(self.state.comparisons)

    def to_json(self) -> str:
        return json.dumps({
            "id": self.id,
            "user_id": self.user_id,
            "tmdb_id": self.tmdb_id,
            "movie_id": self.movie_id,
            "category": self.category,
            "state": self.state.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "current_comparison": (
                self.current_comparison.to_dict() if self.current_comparison else None
            ),
            "completed": self.completed,
            "final_position": self.final_position,
        })

    @classmethod
    def from_json(cls, payload: str) -> ComparisonSession:
        data = json.loads(payload)
        pending = data.get("current_comparison")
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            tmdb_id=int(data["tmdb_id"]),
            movie_id=data["movie_id"],
            category=data["category"],
            state=SearchState.from_dict(data["state"]),
            created_at=float(data["created_at"]),
            updated_at=float(data["updated_at"]),
            current_comparison=PendingComparison.from_dict(pending) if pending else None,
            completed=bool(data.get("completed", False)),
            final_position=data.get("final_position"),
        )


class SessionStore(ABC):
    """get / set / delete of session blobs by id, with a default TTL."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[ComparisonSession]:
        ...

    @abstractmethod
    def set(self, session: ComparisonSession, ttl_s: Optional[float] = None) -> None:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        ...

    @abstractmethod
    def list_for_user(self, user_id: str) -> list[ComparisonSession]:
        ...

    @abstractmethod
    def remaining_ttl_s(self, session_id: str) -> Optional[float]:
        """Seconds until the session expires, or None if it is gone."""
        ...

    @abstractmethod
    def purge_stale(self, max_age_s: float) -> int:
        """Drop sessions idle for longer than `max_age_s` or past their TTL."""
        ...


class MemorySessionStore(SessionStore):
    def __init__(self, default_ttl_s: int = DEFAULT_TTL_S, clock: Clock = time.time):
        self.default_ttl_s = default_ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, tuple[ComparisonSession, float]] = {}

    def get(self, session_id: str) -> Optional[ComparisonSession]:
        with self._lock:
            item = self._sessions.get(session_id)
            if item is None:
                return None
            session, expires_at = item
            if self._clock() >= expires_at:
                del self._sessions[session_id]
                return None
            return session

    def set(self, session: ComparisonSession, ttl_s: Optional[float] = None) -> None:
        ttl = ttl_s if ttl_s is not None else self.default_ttl_s
        with self._lock:
            self._sessions[session.id] = (session, self._clock() + ttl)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def remaining_ttl_s(self, session_id: str) -> Optional[float]:
        with self._lock:
            item = self._sessions.get(session_id)
        if item is None:
            return None
        remaining = item[1] - self._clock()
        return remaining if remaining > 0 else None

    def list_for_user(self, user_id: str) -> list[ComparisonSession]:
        now = self._clock()
        with self._lock:
            return [
                session
                for session, expires_at in self._sessions.values()
                if session.user_id == user_id and now < expires_at
            ]

    def purge_stale(self, max_age_s: float) -> int:
        now = self._clock()
        cutoff = now - max_age_s
        with self._lock:
            stale = [
                sid
                for sid, (session, expires_at) in self._sessions.items()
                if now >= expires_at or session.updated_at < cutoff
            ]
            for sid in stale:
                del self._sessions[sid]
        return len(stale)


class SqliteSessionStore(SessionStore):
    def __init__(self, dao: SessionDAO, default_ttl_s: int = DEFAULT_TTL_S, clock: Clock = time.time):
        self.dao = dao
        self.default_ttl_s = default_ttl_s
        self._clock = clock

    def get(self, session_id: str) -> Optional[ComparisonSession]:
        stored = self.dao.find_live(session_id, self._clock())
        return ComparisonSession.from_json(stored.payload) if stored else None

    def set(self, session: ComparisonSession, ttl_s: Optional[float] = None) -> None:
        ttl = ttl_s if ttl_s is not None else self.default_ttl_s
        self.dao.upsert(StoredSession(
            id=session.id,
            user_id=session.user_id,
            payload=session.to_json(),
            updated_at=session.updated_at,
            expires_at=self._clock() + ttl,
        ))

    def delete(self, session_id: str) -> bool:
        return self.dao.delete(session_id)

    def remaining_ttl_s(self, session_id: str) -> Optional[float]:
        now = self._clock()
        stored = self.dao.find_live(session_id, now)
        return stored.expires_at - now if stored else None

    def list_for_user(self, user_id: str) -> list[ComparisonSession]:
        stored = self.dao.find_live_by_user(user_id, self._clock())
        return [ComparisonSession.from_json(s.payload) for s in stored]

    def purge_stale(self, max_age_s: float) -> int:
        now = self._clock()
        return self.dao.delete_stale(updated_before=now - max_age_s, now=now)


class TieredSessionStore(SessionStore):
    """Memory first, secondary store for resilience.

    Writes go to both tiers; a miss in memory reads through to the
    secondary tier and repopulates memory.
    """

    def __init__(self, primary: SessionStore, secondary: SessionStore):
        self.primary = primary
        self.secondary = secondary

    def get(self, session_id: str) -> Optional[ComparisonSession]:
        session = self.primary.get(session_id)
        if session is not None:
            return session
        session = self.secondary.get(session_id)
        if session is not None:
            logger.info("Session %s restored from secondary cache", session_id)
            # Keep the expiry the secondary tier already granted
            ttl = self.secondary.remaining_ttl_s(session_id)
            if ttl is not None:
                self.primary.set(session, ttl)
        return session

    def set(self, session: ComparisonSession, ttl_s: Optional[float] = None) -> None:
        self.primary.set(session, ttl_s)
        self.secondary.set(session, ttl_s)

    def delete(self, session_id: str) -> bool:
        in_primary = self.primary.delete(session_id)
        in_secondary = self.secondary.delete(session_id)
        return in_primary or in_secondary

    def remaining_ttl_s(self, session_id: str) -> Optional[float]:
        ttl = self.primary.remaining_ttl_s(session_id)
        if ttl is not None:
            return ttl
        return self.secondary.remaining_ttl_s(session_id)

    def list_for_user(self, user_id: str) -> list[ComparisonSession]:
        found = {s.id: s for s in self.secondary.list_for_user(user_id)}
        found.update({s.id: s for s in self.primary.list_for_user(user_id)})
        return sorted(found.values(), key=lambda s: s.updated_at)

    def purge_stale(self, max_age_s: float) -> int:
        purged = self.primary.purge_stale(max_age_s)
        purged_secondary = self.secondary.purge_stale(max_age_s)
        return max(purged, purged_secondary)
