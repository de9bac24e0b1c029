"""Tests for session serialization and the session stores."""
import pytest

from movieclub.ranking.algorithm import ComparisonOutcome, SearchState
from movieclub.ranking.sessions import (
    ComparisonSession,
    MemorySessionStore,
    PendingComparison,
    SqliteSessionStore,
    TieredSessionStore,
)
from movieclub.storage.dao import SessionDAO


def _session(sid: str = "s1", user_id: str = "user-1", updated_at: float = 1_700_000_000.0):
    return ComparisonSession(
        id=sid,
        user_id=user_id,
        tmdb_id=1005,
        movie_id="movie-5",
        category="liked",
        state=SearchState(
            low=2, high=4,
            comparisons=(ComparisonOutcome("existing", "movie-1", 2),),
        ),
        created_at=updated_at,
        updated_at=updated_at,
        current_comparison=PendingComparison(
            new_movie_id="movie-5",
            existing_movie_id="movie-3",
            existing_ranking_id="r3",
            position=3,
        ),
    )


class TestSerialization:
    def test_json_round_trip(self):
        session = _session()
        assert ComparisonSession.from_json(session.to_json()) == session

    def test_completed_session_round_trip(self):
        session = ComparisonSession(
            id="s2", user_id="u", tmdb_id=1, movie_id="m", category="ok",
            state=SearchState.for_category_size(0),
            created_at=1.0, updated_at=1.0,
            completed=True, final_position=1,
        )
        restored = ComparisonSession.from_json(session.to_json())
        assert restored.completed
        assert restored.final_position == 1
        assert restored.current_comparison is None


class TestMemorySessionStore:
    def test_set_get_delete(self, clock):
        store = MemorySessionStore(default_ttl_s=60, clock=clock)
        store.set(_session())
        assert store.get("s1") == _session()
        assert store.delete("s1") is True
        assert store.get("s1") is None
        assert store.delete("s1") is False

    def test_expires_after_ttl(self, clock):
        store = MemorySessionStore(default_ttl_s=60, clock=clock)
        store.set(_session())
        clock.advance(59)
        assert store.get("s1") is not None
        clock.advance(1)
        assert store.get("s1") is None

    def test_list_for_user(self, clock):
        store = MemorySessionStore(clock=clock)
        store.set(_session("a"))
        store.set(_session("b", user_id="other"))
        assert [s.id for s in store.list_for_user("user-1")] == ["a"]

    def test_purge_stale_by_idle_time(self, clock):
        store = MemorySessionStore(default_ttl_s=3600, clock=clock)
        store.set(_session("old", updated_at=clock.now - 40 * 60))
        store.set(_session("fresh", updated_at=clock.now))

        assert store.purge_stale(30 * 60) == 1
        assert store.get("old") is None
        assert store.get("fresh") is not None


class TestSqliteSessionStore:
    def test_set_get_survives_new_store(self, db, clock):
        SqliteSessionStore(SessionDAO(db), clock=clock).set(_session())
        # A fresh store over the same database sees the session
        restored = SqliteSessionStore(SessionDAO(db), clock=clock).get("s1")
        assert restored == _session()

    def test_expiry_is_checked_on_read(self, db, clock):
        store = SqliteSessionStore(SessionDAO(db), default_ttl_s=60, clock=clock)
        store.set(_session())
        clock.advance(61)
        assert store.get("s1") is None
        assert store.list_for_user("user-1") == []

    def test_purge_stale(self, db, clock):
        store = SqliteSessionStore(SessionDAO(db), default_ttl_s=3600, clock=clock)
        store.set(_session("old", updated_at=clock.now - 31 * 60))
        store.set(_session("fresh", updated_at=clock.now))
        assert store.purge_stale(30 * 60) == 1
        assert store.get("fresh") is not None


class TestTieredSessionStore:
    @pytest.fixture()
    def tiers(self, db, clock):
        primary = MemorySessionStore(clock=clock)
        secondary = SqliteSessionStore(SessionDAO(db), clock=clock)
        return primary, secondary, TieredSessionStore(primary, secondary)

    def test_writes_both_tiers(self, tiers):
        primary, secondary, store = tiers
        store.set(_session())
        assert primary.get("s1") is not None
        assert secondary.get("s1") is not None

    def test_reads_through_and_repopulates_memory(self, tiers):
        primary, secondary, store = tiers
        secondary.set(_session())
        assert primary.get("s1") is None

        assert store.get("s1") == _session()
        assert primary.get("s1") is not None

    def test_restored_session_keeps_stored_expiry(self, db, clock):
        primary = MemorySessionStore(default_ttl_s=600, clock=clock)
        secondary = SqliteSessionStore(SessionDAO(db), default_ttl_s=600, clock=clock)
        store = TieredSessionStore(primary, secondary)
        secondary.set(_session())

        clock.advance(500)
        assert store.get("s1") is not None
        assert primary.remaining_ttl_s("s1") == pytest.approx(100)

        # Past the stored expiry the memory copy is gone too
        clock.advance(101)
        assert primary.get("s1") is None
        assert store.get("s1") is None

    def test_remaining_ttl(self, tiers, clock):
        primary, secondary, store = tiers
        assert store.remaining_ttl_s("s1") is None
        store.set(_session(), ttl_s=120)
        clock.advance(20)
        assert store.remaining_ttl_s("s1") == pytest.approx(100)

    def test_delete_removes_both(self, tiers):
        primary, secondary, store = tiers
        store.set(_session())
        assert store.delete("s1") is True
        assert primary.get("s1") is None
        assert secondary.get("s1") is None
