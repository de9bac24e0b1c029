"""Comparison session orchestration.

Drives one binary insertion search per session, then commits the result:
shift positions, insert the new entry, recompute the category's ratings.
The commit runs in one SQLite transaction, serialized per (user, category),
so a crash never leaves positions with a gap or a duplicate.
"""
import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator, Optional

from movieclub.app.errors import ConflictError, NotFoundError, ValidationError
from movieclub.catalog.base import Catalog
from movieclub.ranking.algorithm import ComparisonOutcome, RankingAlgorithm, SearchState
from movieclub.ranking.categories import Category, is_valid_category
from movieclub.ranking.category_manager import CategoryManager
from movieclub.ranking.rating import RatingCalculator
from movieclub.ranking.sessions import (
    DEFAULT_TTL_S,
    Clock,
    ComparisonSession,
    PendingComparison,
    SessionStore,
)
from movieclub.storage.dao import Movie, RankedEntry, RankingDAO

logger = logging.getLogger("movieclub.ranking.engine")

# movie1 is always the new movie, movie2 the incumbent
PREFERENCES = {
    "movie1": "new",
    "movie2": "existing",
    "tie": "tie",
}


class _KeyedLocks:
    """One lock per key, dropped once no thread holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)


class ComparisonEngine:
    def __init__(
        self,
        rankings: RankingDAO,
        catalog: Catalog,
        sessions: SessionStore,
        category_manager: CategoryManager,
        rating_calculator: RatingCalculator,
        algorithm: Optional[RankingAlgorithm] = None,
        session_ttl_s: int = DEFAULT_TTL_S,
        clock: Clock = time.time,
    ):
        self.rankings = rankings
        self.catalog = catalog
        self.sessions = sessions
        self.category_manager = category_manager
        self.rating_calculator = rating_calculator
        self.algorithm = algorithm or RankingAlgorithm()
        self.session_ttl_s = session_ttl_s
        self._clock = clock
        self._session_locks = _KeyedLocks()
        self._category_locks = _KeyedLocks()

    # ── Session lifecycle ──────────────────────────────────────────

    def start_comparison_session(
        self,
        user_id: str,
        tmdb_id: int,
        category: Category,
    ) -> ComparisonSession:
        """Open a ranking session for a movie the user has not ranked yet.

        An empty category needs no comparisons: the session comes back
        already completed at position 1.
        """
        if not is_valid_category(category):
            raise ValidationError(
                "Invalid category. Must be: liked, ok, or disliked", code="INVALID_CATEGORY"
            )

        movie_id = self.catalog.ensure_cached(tmdb_id)

        if self.rankings.find_by_user_and_movie(user_id, movie_id) is not None:
            raise ConflictError("Movie already ranked by user", code="ALREADY_RANKED")

        entries = self.category_manager.get_rankings_in_category(user_id, category)
        now = self._clock()
        session = ComparisonSession(
            id=self._generate_session_id(user_id, tmdb_id),
            user_id=user_id,
            tmdb_id=tmdb_id,
            movie_id=movie_id,
            category=category,
            state=SearchState.for_category_size(len(entries)),
            created_at=now,
            updated_at=now,
        )
        session = self._advance(session, entries)
        self.sessions.set(session, self.session_ttl_s)

        logger.info(
            "Started session %s: movie %d into '%s' (%d existing, %s)",
            session.id, tmdb_id, category, len(entries),
            "completed" if session.completed else "comparing",
        )
        return session

    def submit_comparison(self, session_id: str, preference: str) -> ComparisonSession:
        """Record the user's answer for the pending pair and move the search on."""
        winner = PREFERENCES.get(preference)
        if winner is None:
            raise ValidationError(
                "Invalid preference. Must be: movie1, movie2, or tie", code="INVALID_PREFERENCE"
            )

        with self._session_locks.hold(session_id):
            session = self._require_session(session_id)
            if session.completed:
                raise ConflictError("Session already completed", code="SESSION_COMPLETED")
            pending = session.current_comparison
            if pending is None:
                raise ConflictError("No comparison available", code="NO_PENDING_COMPARISON")

            outcome = ComparisonOutcome(
                winner=winner,
                existing_movie_id=pending.existing_movie_id,
                position=pending.position,
            )
            session = replace(
                session,
                state=self.algorithm.apply_result(session.state, outcome),
                current_comparison=None,
                updated_at=self._clock(),
            )
            entries = self.category_manager.get_rankings_in_category(
                session.user_id, session.category
            )
            session = self._advance(session, entries)
            self.sessions.set(session, self.session_ttl_s)

        logger.debug(
            "Session %s: %s at #%d -> %s",
            session_id, winner, pending.position,
            f"resolved at #{session.final_position}" if session.completed else "next comparison",
        )
        return session

    def complete_ranking(self, session_id: str) -> RankedEntry:
        """Commit a resolved session as a new ranked entry.

        Order matters: shift down, rate the new entry against the post-insert
        size, insert it, then recompute the whole category.
        """
        with self._session_locks.hold(session_id):
            session = self._require_session(session_id)
            if not session.completed or session.final_position is None:
                raise ConflictError("Session not completed", code="SESSION_NOT_COMPLETED")

            entry = self._commit(session)
            self._refresh_stats(session.movie_id)
            self.sessions.delete(session_id)

        logger.info(
            "Movie %d ranked #%d in '%s' for user %s (rating %.2f)",
            session.tmdb_id, entry.position, entry.category, entry.user_id, entry.rating,
        )
        return entry

    def get_session(self, session_id: str) -> Optional[ComparisonSession]:
        return self.sessions.get(session_id)

    def get_user_sessions(self, user_id: str) -> list[ComparisonSession]:
        return self.sessions.list_for_user(user_id)

    def cancel_session(self, session_id: str) -> bool:
        with self._session_locks.hold(session_id):
            removed = self.sessions.delete(session_id)
        if removed:
            logger.info("Session %s cancelled", session_id)
        return removed

    def cleanup_expired_sessions(self, max_age_minutes: float = 30) -> int:
        purged = self.sessions.purge_stale(max_age_minutes * 60)
        if purged:
            logger.info("Purged %d expired ranking sessions", purged)
        return purged

    # ── Helpers for callers ────────────────────────────────────────

    def estimate_remaining_comparisons(self, session: ComparisonSession) -> int:
        return self.algorithm.estimate_remaining_comparisons(session.state)

    def get_comparison_movies(self, session: ComparisonSession) -> tuple[Movie, Movie]:
        """Return (new movie, existing movie) for the pending comparison."""
        pending = session.current_comparison
        if pending is None:
            raise ConflictError("No comparison available", code="NO_PENDING_COMPARISON")
        new_movie = self.catalog.get_movie(pending.new_movie_id)
        existing_movie = self.catalog.get_movie(pending.existing_movie_id)
        if new_movie is None or existing_movie is None:
            raise NotFoundError("Movie not found for comparison", code="MOVIE_NOT_FOUND")
        return new_movie, existing_movie

    # ── Internals ──────────────────────────────────────────────────

    def _advance(self, session: ComparisonSession, entries: list[RankedEntry]) -> ComparisonSession:
        state, step = self.algorithm.next_step(session.state, entries)
        if step.replayed:
            logger.debug("Session %s replayed %d cached comparisons", session.id, len(step.replayed))

        if step.is_resolved:
            return replace(
                session,
                state=state,
                completed=True,
                final_position=step.final_position,
                current_comparison=None,
                updated_at=self._clock(),
            )

        return replace(
            session,
            state=state,
            current_comparison=PendingComparison(
                new_movie_id=session.movie_id,
                existing_movie_id=step.probe.movie_id,
                existing_ranking_id=step.probe.id,
                position=step.probe.position,
            ),
            updated_at=self._clock(),
        )

    def _commit(self, session: ComparisonSession) -> RankedEntry:
        user_id, category = session.user_id, session.category
        outcomes = session.state.comparisons
        now = datetime.now().isoformat()

        with self._category_locks.hold(f"{user_id}:{category}"):
            try:
                with self.rankings.db.transaction():
                    total = self.category_manager.get_movie_count_in_category(user_id, category) + 1
                    # The category may have shrunk since the search resolved
                    position = min(session.final_position, total)
                    if position != session.final_position:
                        logger.info(
                            "Session %s: position #%d clamped to #%d, category now has %d entries",
                            session.id, session.final_position, position, total - 1,
                        )
                    self.category_manager.shift_rankings_down(user_id, category, position)
                    entry = RankedEntry(
                        id=uuid.uuid4().hex,
                        user_id=user_id,
                        movie_id=session.movie_id,
                        tmdb_id=session.tmdb_id,
                        category=category,
                        position=position,
                        rating=self.rating_calculator.calculate_rating(position, total, category),
                        ranked_at=now,
                        updated_at=now,
                        won_against=tuple(o.existing_movie_id for o in outcomes if o.winner == "new"),
                        lost_to=tuple(o.existing_movie_id for o in outcomes if o.winner == "existing"),
                        tied_with=tuple(o.existing_movie_id for o in outcomes if o.winner == "tie"),
                    )
                    self.rankings.insert(entry)
                    self.rating_calculator.recalculate_ratings_for_category(user_id, category)
            except sqlite3.IntegrityError as exc:
                raise ConflictError("Movie already ranked by user", code="ALREADY_RANKED") from exc

        return self.rankings.find_by_id(entry.id)

    def _refresh_stats(self, movie_id: str) -> None:
        try:
            self.catalog.refresh_aggregate_stats(movie_id)
        except Exception:
            logger.exception("Movie stats update failed for movie %s", movie_id)

    def _require_session(self, session_id: str) -> ComparisonSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session not found or expired", code="SESSION_NOT_FOUND")
        return session

    @staticmethod
    def _generate_session_id(user_id: str, tmdb_id: int) -> str:
        return f"{user_id}-{tmdb_id}-{uuid.uuid4().hex}"
