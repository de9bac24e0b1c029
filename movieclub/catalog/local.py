"""Catalog backed only by the local movies table.

This is the default catalog: no network calls, movies must already be
stored. `TMDBCatalog` extends it with remote fetches.
"""
import logging
from datetime import datetime
from typing import Optional

from movieclub.app.errors import NotFoundError
from movieclub.catalog.base import Catalog
from movieclub.storage.dao import Movie, MovieDAO, MovieStats, RankedEntry, RankingDAO

logger = logging.getLogger("movieclub.catalog.local")


def compute_movie_stats(entries: list[RankedEntry]) -> MovieStats:
    """Aggregate every user's ranking of one movie: counts plus mean rating."""
    counts = {"liked": 0, "ok": 0, "disliked": 0}
    total_rating = 0.0
    for entry in entries:
        counts[entry.category] += 1
        total_rating += entry.rating

    average = total_rating / len(entries) if entries else 0.0
    return MovieStats(
        total_rankings=len(entries),
        average_rating=round(average, 2),
        liked_count=counts["liked"],
        ok_count=counts["ok"],
        disliked_count=counts["disliked"],
        updated_at=datetime.now().isoformat(),
    )


class LocalCatalog(Catalog):
    def __init__(self, movies: MovieDAO, rankings: RankingDAO):
        self.movies = movies
        self.rankings = rankings

    def lookup_by_external_id(self, tmdb_id: int) -> Movie:
        movie = self.movies.find_by_tmdb_id(tmdb_id)
        if movie is None:
            raise NotFoundError(f"Movie {tmdb_id} not found in catalog", code="MOVIE_NOT_FOUND")
        return movie

    def get_movie(self, movie_id: str) -> Optional[Movie]:
        return self.movies.find_by_id(movie_id)

    def refresh_aggregate_stats(self, movie_id: str) -> None:
        stats = compute_movie_stats(self.rankings.find_by_movie(movie_id))
        self.movies.update_stats(movie_id, stats)
        logger.info(
            "Movie stats updated for movie %s (%d rankings, avg %.2f)",
            movie_id, stats.total_rankings, stats.average_rating,
        )
