"""TMDB-backed catalog.

Movies are served from the local table when present; on a miss the movie
and its credits are fetched from the TMDB REST API and stored.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional

import httpx

from movieclub.app.errors import CatalogUnavailable, NotFoundError
from movieclub.catalog.local import LocalCatalog
from movieclub.storage.dao import Movie, MovieDAO, RankingDAO

logger = logging.getLogger("movieclub.catalog.tmdb")

DEFAULT_BASE_URL = "https://api.themoviedb.org/3"
_CAST_LIMIT = 10


def _movie_from_tmdb(data: dict, credits: dict) -> Movie:
    """Build a Movie row from TMDB's /movie and /movie/credits payloads."""
    directors = [
        c.get("name", "")
        for c in credits.get("crew", [])
        if c.get("job") == "Director"
    ]
    cast = [c.get("name", "") for c in credits.get("cast", [])[:_CAST_LIMIT]]
    genres = [g.get("name", "") for g in data.get("genres", [])]

    return Movie(
        id=uuid.uuid4().hex,
        tmdb_id=int(data["id"]),
        title=data.get("title") or data.get("original_title") or "",
        overview=data.get("overview"),
        poster_path=data.get("poster_path"),
        backdrop_path=data.get("backdrop_path"),
        release_date=data.get("release_date") or None,
        runtime=data.get("runtime"),
        genres=",".join(genres),
        directors=",".join(directors),
        cast_members=",".join(cast),
        tmdb_vote_average=float(data.get("vote_average") or 0.0),
        tmdb_vote_count=int(data.get("vote_count") or 0),
        tmdb_popularity=float(data.get("popularity") or 0.0),
        created_at=datetime.now().isoformat(),
    )


class TMDBCatalog(LocalCatalog):
    def __init__(
        self,
        movies: MovieDAO,
        rankings: RankingDAO,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(movies, rankings)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    def lookup_by_external_id(self, tmdb_id: int) -> Movie:
        cached = self.movies.find_by_tmdb_id(tmdb_id)
        if cached is not None:
            return cached

        logger.info("Movie %d not cached, fetching from TMDB", tmdb_id)
        data, credits = self._fetch_movie(tmdb_id)
        self.movies.upsert(_movie_from_tmdb(data, credits))
        # Re-read: a concurrent insert of the same tmdb_id keeps its own id.
        return self.movies.find_by_tmdb_id(tmdb_id)

    def _fetch_movie(self, tmdb_id: int) -> tuple[dict, dict]:
        try:
            with httpx.Client(
                base_url=self.base_url,
                params={"api_key": self.api_key},
                timeout=self.timeout_s,
                transport=self._transport,
            ) as client:
                movie_resp = client.get(f"/movie/{tmdb_id}")
                movie_resp.raise_for_status()
                credits_resp = client.get(f"/movie/{tmdb_id}/credits")
                credits_resp.raise_for_status()
                return movie_resp.json(), credits_resp.json()
        except httpx.TimeoutException as exc:
            logger.warning("TMDB lookup for %d timed out after %.1fs", tmdb_id, self.timeout_s)
            raise CatalogUnavailable(f"TMDB lookup for movie {tmdb_id} timed out") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise NotFoundError(
                    f"Movie {tmdb_id} not found in catalog", code="MOVIE_NOT_FOUND"
                ) from exc
            if status == 401:
                raise CatalogUnavailable("Invalid TMDB API key", code="TMDB_AUTH") from exc
            if status == 429:
                raise CatalogUnavailable("TMDB API rate limit exceeded", code="TMDB_RATE_LIMIT") from exc
            raise CatalogUnavailable(f"TMDB returned HTTP {status}") from exc
        except httpx.TransportError as exc:
            logger.warning("TMDB lookup for %d failed: %s", tmdb_id, exc)
            raise CatalogUnavailable("Network error connecting to TMDB") from exc
