"""Catalog collaborator interface."""
from abc import ABC, abstractmethod
from typing import Optional

from movieclub.storage.dao import Movie


class Catalog(ABC):
    """Movie metadata lookup keyed by the external (TMDB) id."""

    @abstractmethod
    def lookup_by_external_id(self, tmdb_id: int) -> Movie:
        """Return the movie, fetching it if needed.

        Raises:
            NotFoundError: no such movie in the catalog.
            CatalogUnavailable: the lookup timed out or failed in transit.
        """
        ...

    def ensure_cached(self, tmdb_id: int) -> str:
        """Make sure the movie is stored locally and return its internal id."""
        return self.lookup_by_external_id(tmdb_id).id

    @abstractmethod
    def get_movie(self, movie_id: str) -> Optional[Movie]:
        """Return a locally stored movie by internal id."""
        ...

    @abstractmethod
    def refresh_aggregate_stats(self, movie_id: str) -> None:
        """Recompute cross-user stats for a movie after its rankings changed."""
        ...
