"""Shared test fixtures for Movie Club Ranker tests."""
import uuid
from contextlib import ExitStack
from datetime import datetime
from unittest.mock import patch

import pytest

from movieclub.app.config import Settings
from movieclub.catalog.local import LocalCatalog
from movieclub.ranking.category_manager import CategoryManager
from movieclub.ranking.engine import ComparisonEngine
from movieclub.ranking.rating import RatingCalculator
from movieclub.ranking.service import RankingService
from movieclub.ranking.sessions import (
    MemorySessionStore,
    SqliteSessionStore,
    TieredSessionStore,
)
from movieclub.storage.dao import Movie, MovieDAO, RankedEntry, RankingDAO, SessionDAO
from movieclub.storage.db import Database

USER = "user-1"
OTHER_USER = "user-2"

# Modules that bind get_settings at import time
_SETTINGS_USERS = (
    "movieclub.app.config",
    "movieclub.app.logging",
    "movieclub.app.paths",
    "movieclub.app.services",
    "movieclub.storage.db",
    "movieclub.cli.main",
)


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def tmp_settings(tmp_path):
    """Settings backed by a temporary directory, patched in globally."""
    settings = Settings(
        db_path=tmp_path / "test.db",
        log_path=tmp_path / "logs" / "app.log",
        tmdb_api_key="",
        session_ttl_minutes=30,
        rating_decimals=2,
    )
    with ExitStack() as stack:
        for target in _SETTINGS_USERS:
            stack.enter_context(patch(f"{target}.get_settings", return_value=settings))
        yield settings


@pytest.fixture()
def db(tmp_settings):
    database = Database(tmp_settings.db_path)
    database.init_db()
    return database


@pytest.fixture()
def movie_dao(db):
    return MovieDAO(db)


@pytest.fixture()
def ranking_dao(db):
    return RankingDAO(db)


@pytest.fixture()
def movies(movie_dao):
    """Eight cached movies with tmdb ids 1001..1008."""
    created = []
    for i in range(1, 9):
        movie = Movie(
            id=f"movie-{i}",
            tmdb_id=1000 + i,
            title=f"Test Movie {i}",
            created_at="2025-01-15T10:00:00",
            overview=f"Overview for movie {i}",
            poster_path=f"/poster{i}.jpg",
            release_date=f"{2020 + i}-01-01",
            runtime=120,
            genres="Drama,Action",
        )
        movie_dao.upsert(movie)
        created.append(movie)
    return created


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def catalog(movie_dao, ranking_dao):
    return LocalCatalog(movie_dao, ranking_dao)


@pytest.fixture()
def session_store(db, clock):
    return TieredSessionStore(
        MemorySessionStore(default_ttl_s=1800, clock=clock),
        SqliteSessionStore(SessionDAO(db), default_ttl_s=1800, clock=clock),
    )


@pytest.fixture()
def category_manager(ranking_dao):
    return CategoryManager(ranking_dao)


@pytest.fixture()
def rating_calculator(ranking_dao):
    return RatingCalculator(ranking_dao, decimals=2)


@pytest.fixture()
def engine(ranking_dao, catalog, session_store, category_manager, rating_calculator, clock):
    return ComparisonEngine(
        ranking_dao,
        catalog,
        session_store,
        category_manager,
        rating_calculator,
        session_ttl_s=1800,
        clock=clock,
    )


@pytest.fixture()
def ranking_service(ranking_dao, catalog, category_manager, rating_calculator):
    return RankingService(ranking_dao, catalog, category_manager, rating_calculator)


def make_entry(movie: Movie, category: str, position: int, user_id: str = USER, rating: float = 0.0) -> RankedEntry:
    now = datetime.now().isoformat()
    return RankedEntry(
        id=uuid.uuid4().hex,
        user_id=user_id,
        movie_id=movie.id,
        tmdb_id=movie.tmdb_id,
        category=category,
        position=position,
        rating=rating,
        ranked_at=now,
        updated_at=now,
    )


def seed_category(ranking_dao, movies, category: str, user_id: str = USER) -> list[RankedEntry]:
    """Insert `movies` into a category at positions 1..N, in order."""
    entries = [
        make_entry(movie, category, position, user_id=user_id)
        for position, movie in enumerate(movies, start=1)
    ]
    for entry in entries:
        ranking_dao.insert(entry)
    return entries


def positions(ranking_dao, category: str, user_id: str = USER) -> list[tuple[str, int]]:
    return [(e.movie_id, e.position) for e in ranking_dao.find_in_category(user_id, category)]
