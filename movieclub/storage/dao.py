"""Data Access Objects for movies, rankings and ranking sessions."""
import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from movieclub.storage.db import Database


@dataclass(frozen=True)
class Movie:
    id: str
    tmdb_id: int
    title: str
    created_at: str
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    release_date: Optional[str] = None
    runtime: Optional[int] = None
    genres: str = ""
    directors: str = ""
    cast_members: str = ""
    tmdb_vote_average: float = 0.0
    tmdb_vote_count: int = 0
    tmdb_popularity: float = 0.0
    total_rankings: int = 0
    average_rating: float = 0.0
    liked_count: int = 0
    ok_count: int = 0
    disliked_count: int = 0
    stats_updated_at: Optional[str] = None


@dataclass(frozen=True)
class MovieStats:
    total_rankings: int
    average_rating: float
    liked_count: int
    ok_count: int
    disliked_count: int
    updated_at: str


@dataclass(frozen=True)
class RankedEntry:
    id: str
    user_id: str
    movie_id: str
    tmdb_id: int
    category: str
    position: int
    rating: float
    ranked_at: str
    updated_at: str
    won_against: tuple[str, ...] = ()
    lost_to: tuple[str, ...] = ()
    tied_with: tuple[str, ...] = ()
    notes: Optional[str] = None
    tags: str = ""
    watch_date: Optional[str] = None
    rewatchable: bool = False
    is_public: bool = True
    modification_count: int = 0


def _row_to_entry(row: sqlite3.Row) -> RankedEntry:
    data = dict(row)
    for key in ("won_against", "lost_to", "tied_with"):
        data[key] = tuple(json.loads(data[key] or "[]"))
    data["rewatchable"] = bool(data["rewatchable"])
    data["is_public"] = bool(data["is_public"])
    return RankedEntry(**data)


class MovieDAO:
    def __init__(self, db: Database):
        self.db = db

    def upsert(self, movie: Movie) -> None:
        with self.db.connect() as conn:
            conn.execute(
                """INSERT INTO movies
                   (id, tmdb_id, title, overview, poster_path, backdrop_path,
                    release_date, runtime, genres, directors, cast_members,
                    tmdb_vote_average, tmdb_vote_count, tmdb_popularity,
                    created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(tmdb_id) DO UPDATE SET
                     title=excluded.title,
                     overview=excluded.overview,
                     poster_path=excluded.poster_path,
                     backdrop_path=excluded.backdrop_path,
                     release_date=excluded.release_date,
                     runtime=excluded.runtime,
                     genres=excluded.genres,
                     directors=excluded.directors,
                     cast_members=excluded.cast_members,
                     tmdb_vote_average=excluded.tmdb_vote_average,
                     tmdb_vote_count=excluded.tmdb_vote_count,
                     tmdb_popularity=excluded.tmdb_popularity
                """,
                (movie.id, movie.tmdb_id, movie.title, movie.overview,
                 movie.poster_path, movie.backdrop_path, movie.release_date,
                 movie.runtime, movie.genres, movie.directors,
                 movie.cast_members, movie.tmdb_vote_average,
                 movie.tmdb_vote_count, movie.tmdb_popularity,
                 movie.created_at),
            )

    def find_by_id(self, movie_id: str) -> Optional[Movie]:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM movies WHERE id = ?", (movie_id,)
            ).fetchone()
        return Movie(**dict(row)) if row else None

    def find_by_tmdb_id(self, tmdb_id: int) -> Optional[Movie]:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM movies WHERE tmdb_id = ?", (tmdb_id,)
            ).fetchone()
        return Movie(**dict(row)) if row else None

    def update_stats(self, movie_id: str, stats: MovieStats) -> None:
        with self.db.connect() as conn:
            conn.execute(
                """UPDATE movies SET
                     total_rankings=?, average_rating=?, liked_count=?,
                     ok_count=?, disliked_count=?, stats_updated_at=?
                   WHERE id=?""",
                (stats.total_rankings, stats.average_rating,
                 stats.liked_count, stats.ok_count, stats.disliked_count,
                 stats.updated_at, movie_id),
            )


class RankingDAO:
    def __init__(self, db: Database):
        self.db = db

    def insert(self, entry: RankedEntry) -> None:
        with self.db.connect() as conn:
            conn.execute(
                """INSERT INTO rankings
                   (id, user_id, movie_id, tmdb_id, category, position, rating,
                    won_against, lost_to, tied_with, notes, tags, watch_date,
                    rewatchable, is_public, ranked_at, updated_at,
                    modification_count)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (entry.id, entry.user_id, entry.movie_id, entry.tmdb_id,
                 entry.category, entry.position, entry.rating,
                 json.dumps(list(entry.won_against)),
                 json.dumps(list(entry.lost_to)),
                 json.dumps(list(entry.tied_with)),
                 entry.notes, entry.tags, entry.watch_date,
                 int(entry.rewatchable), int(entry.is_public),
                 entry.ranked_at, entry.updated_at, entry.modification_count),
            )

    def find_by_id(self, ranking_id: str) -> Optional[RankedEntry]:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM rankings WHERE id = ?", (ranking_id,)
            ).fetchone()
        return _row_to_entry(row) if row else None

    def find_by_user_and_movie(self, user_id: str, movie_id: str) -> Optional[RankedEntry]:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM rankings WHERE user_id = ? AND movie_id = ?",
                (user_id, movie_id),
            ).fetchone()
        return _row_to_entry(row) if row else None

    def find_in_category(
        self,
        user_id: str,
        category: str,
        from_position: int = 1,
        limit: Optional[int] = None,
    ) -> list[RankedEntry]:
        sql = """SELECT * FROM rankings
                 WHERE user_id = ? AND category = ? AND position >= ?
                 ORDER BY position ASC"""
        params: list = [user_id, category, from_position]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self.db.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_entry(r) for r in rows]

    def find_by_user(self, user_id: str) -> list[RankedEntry]:
        with self.db.connect() as conn:
            rows = conn.execute(
                """SELECT * FROM rankings WHERE user_id = ?
                   ORDER BY category, position""",
                (user_id,),
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def find_by_movie(self, movie_id: str) -> list[RankedEntry]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM rankings WHERE movie_id = ?", (movie_id,)
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count_in_category(self, user_id: str, category: str) -> int:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM rankings WHERE user_id = ? AND category = ?",
                (user_id, category),
            ).fetchone()
        return row[0]

    def increment_positions_from(self, user_id: str, category: str, position: int) -> int:
        """Add 1 to every position >= `position`. Returns rows touched."""
        with self.db.connect() as conn:
            cur = conn.execute(
                """UPDATE rankings SET position = position + 1
                   WHERE user_id = ? AND category = ? AND position >= ?""",
                (user_id, category, position),
            )
        return cur.rowcount

    def decrement_positions_after(self, user_id: str, category: str, position: int) -> int:
        """Subtract 1 from every position > `position`. Returns rows touched."""
        with self.db.connect() as conn:
            cur = conn.execute(
                """UPDATE rankings SET position = position - 1
                   WHERE user_id = ? AND category = ? AND position > ?""",
                (user_id, category, position),
            )
        return cur.rowcount

    def update_ratings(self, ratings: Iterable[tuple[str, float]]) -> None:
        """Bulk update of (ranking_id, rating) pairs."""
        pairs = [(rating, rid) for rid, rating in ratings]
        if not pairs:
            return
        with self.db.connect() as conn:
            conn.executemany("UPDATE rankings SET rating = ? WHERE id = ?", pairs)

    def update_placement(self, ranking_id: str, category: str, position: int) -> None:
        now = datetime.now().isoformat()
        with self.db.connect() as conn:
            conn.execute(
                """UPDATE rankings SET
                     category=?, position=?, updated_at=?,
                     modification_count = modification_count + 1
                   WHERE id=?""",
                (category, position, now, ranking_id),
            )

    def update_details(self, entry: RankedEntry) -> None:
        """Write the user-editable fields of an entry (immutable pattern)."""
        with self.db.connect() as conn:
            conn.execute(
                """UPDATE rankings SET
                     notes=?, tags=?, watch_date=?, rewatchable=?, is_public=?,
                     updated_at=?, modification_count=?
                   WHERE id=?""",
                (entry.notes, entry.tags, entry.watch_date,
                 int(entry.rewatchable), int(entry.is_public),
                 entry.updated_at, entry.modification_count, entry.id),
            )

    def delete(self, ranking_id: str) -> None:
        with self.db.connect() as conn:
            conn.execute("DELETE FROM rankings WHERE id = ?", (ranking_id,))

    def delete_with_reflow(self, entry: RankedEntry) -> None:
        """Delete an entry and close the gap it leaves in its category."""
        with self.db.transaction():
            self.delete(entry.id)
            self.decrement_positions_after(entry.user_id, entry.category, entry.position)


@dataclass(frozen=True)
class StoredSession:
    id: str
    user_id: str
    payload: str
    updated_at: float
    expires_at: float


class SessionDAO:
    """Secondary cache for comparison sessions: JSON blob plus expiry time."""

    def __init__(self, db: Database):
        self.db = db

    def upsert(self, stored: StoredSession) -> None:
        with self.db.connect() as conn:
            conn.execute(
                """INSERT INTO ranking_sessions (id, user_id, payload, updated_at, expires_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                     payload=excluded.payload,
                     updated_at=excluded.updated_at,
                     expires_at=excluded.expires_at
                """,
                (stored.id, stored.user_id, stored.payload,
                 stored.updated_at, stored.expires_at),
            )

    def find_live(self, session_id: str, now: float) -> Optional[StoredSession]:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM ranking_sessions WHERE id = ? AND expires_at > ?",
                (session_id, now),
            ).fetchone()
        return StoredSession(**dict(row)) if row else None

    def find_live_by_user(self, user_id: str, now: float) -> list[StoredSession]:
        with self.db.connect() as conn:
            rows = conn.execute(
                """SELECT * FROM ranking_sessions
                   WHERE user_id = ? AND expires_at > ?
                   ORDER BY updated_at DESC""",
                (user_id, now),
            ).fetchall()
        return [StoredSession(**dict(r)) for r in rows]

    def delete(self, session_id: str) -> bool:
        with self.db.connect() as conn:
            cur = conn.execute("DELETE FROM ranking_sessions WHERE id = ?", (session_id,))
        return cur.rowcount > 0

    def delete_stale(self, updated_before: float, now: float) -> int:
        """Drop sessions that expired or were last touched before the cutoff."""
        with self.db.connect() as conn:
            cur = conn.execute(
                "DELETE FROM ranking_sessions WHERE expires_at <= ? OR updated_at < ?",
                (now, updated_before),
            )
        return cur.rowcount
