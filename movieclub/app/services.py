"""Explicit construction of the ranking components for one process."""
import logging
from dataclasses import dataclass
from typing import Optional

from movieclub.app.config import Settings, get_settings
from movieclub.catalog.base import Catalog
from movieclub.catalog.local import LocalCatalog
from movieclub.catalog.tmdb import TMDBCatalog
from movieclub.ranking.category_manager import CategoryManager
from movieclub.ranking.engine import ComparisonEngine
from movieclub.ranking.rating import RatingCalculator
from movieclub.ranking.service import RankingService
from movieclub.ranking.sessions import (
    MemorySessionStore,
    SessionStore,
    SqliteSessionStore,
    TieredSessionStore,
)
from movieclub.storage.dao import MovieDAO, RankingDAO, SessionDAO
from movieclub.storage.db import Database

logger = logging.getLogger("movieclub.app.services")


@dataclass
class Services:
    settings: Settings
    db: Database
    movies: MovieDAO
    rankings: RankingDAO
    catalog: Catalog
    sessions: SessionStore
    category_manager: CategoryManager
    rating_calculator: RatingCalculator
    engine: ComparisonEngine
    ranking_service: RankingService


def build_services(
    settings: Optional[Settings] = None,
    catalog: Optional[Catalog] = None,
) -> Services:
    """Wire every component from settings.

    Uses the TMDB catalog when an API key is configured, otherwise the
    local-only catalog. Pass `catalog` to override either.
    """
    settings = settings or get_settings()
    db = Database(settings.db_path)
    db.init_db()

    movies = MovieDAO(db)
    rankings = RankingDAO(db)

    if catalog is None:
        if settings.catalog_enabled:
            catalog = TMDBCatalog(
                movies,
                rankings,
                api_key=settings.tmdb_api_key,
                base_url=settings.tmdb_base_url,
                timeout_s=settings.catalog_timeout_s,
            )
        else:
            logger.info("TMDB_API_KEY not set, using local catalog only")
            catalog = LocalCatalog(movies, rankings)

    sessions = TieredSessionStore(
        MemorySessionStore(default_ttl_s=settings.session_ttl_s),
        SqliteSessionStore(SessionDAO(db), default_ttl_s=settings.session_ttl_s),
    )
    category_manager = CategoryManager(rankings)
    rating_calculator = RatingCalculator(rankings, decimals=settings.rating_decimals)
    engine = ComparisonEngine(
        rankings,
        catalog,
        sessions,
        category_manager,
        rating_calculator,
        session_ttl_s=settings.session_ttl_s,
    )
    ranking_service = RankingService(rankings, catalog, category_manager, rating_calculator)

    return Services(
        settings=settings,
        db=db,
        movies=movies,
        rankings=rankings,
        catalog=catalog,
        sessions=sessions,
        category_manager=category_manager,
        rating_calculator=rating_calculator,
        engine=engine,
        ranking_service=ranking_service,
    )
