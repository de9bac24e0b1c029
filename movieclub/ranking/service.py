"""User-facing operations on existing rankings: list, edit, move, delete."""
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from movieclub.app.errors import NotFoundError, ValidationError
from movieclub.catalog.base import Catalog
from movieclub.ranking.categories import CATEGORIES, Category, CategoryRange, is_valid_category
from movieclub.ranking.category_manager import CategoryManager
from movieclub.ranking.rating import RatingCalculator
from movieclub.storage.dao import RankedEntry, RankingDAO

logger = logging.getLogger("movieclub.ranking.service")

_EDITABLE_FIELDS = ("notes", "tags", "watch_date", "rewatchable", "is_public")


@dataclass(frozen=True)
class CategoryListing:
    category: str
    entries: list[RankedEntry]
    range: CategoryRange


class RankingService:
    def __init__(
        self,
        rankings: RankingDAO,
        catalog: Catalog,
        category_manager: CategoryManager,
        rating_calculator: RatingCalculator,
    ):
        self.rankings = rankings
        self.catalog = catalog
        self.category_manager = category_manager
        self.rating_calculator = rating_calculator

    def get_user_rankings(self, user_id: str, public_only: bool = False) -> dict[str, list[RankedEntry]]:
        """Entries grouped by category, each list ordered by position."""
        grouped: dict[str, list[RankedEntry]] = {c: [] for c in CATEGORIES}
        for entry in self.rankings.find_by_user(user_id):
            if public_only and not entry.is_public:
                continue
            grouped[entry.category].append(entry)
        for entries in grouped.values():
            entries.sort(key=lambda e: e.position)
        return grouped

    def get_category_rankings(self, user_id: str, category: Category) -> CategoryListing:
        self._check_category(category)
        return CategoryListing(
            category=category,
            entries=self.category_manager.get_rankings_in_category(user_id, category),
            range=self.category_manager.get_category_range(category),
        )

    def get_owned(self, user_id: str, ranking_id: str) -> RankedEntry:
        entry = self.rankings.find_by_id(ranking_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError("Ranking not found", code="RANKING_NOT_FOUND")
        return entry

    def update_ranking(
        self,
        user_id: str,
        ranking_id: str,
        category: Optional[str] = None,
        **changes,
    ) -> RankedEntry:
        """Edit note fields and optionally move the entry to another category.

        A move lands at the bottom of the new category; both categories get
        their ratings recomputed.
        """
        entry = self.get_owned(user_id, ranking_id)

        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        for key in ("rewatchable", "is_public"):
            if key in changes and not isinstance(changes[key], bool):
                raise ValidationError(f"'{key}' must be true or false")

        if category is not None and category != entry.category:
            self._check_category(category)
            old_category = entry.category
            with self.rankings.db.transaction():
                self.category_manager.move_to_category(entry.id, category)
                self.rating_calculator.recalculate_ratings_for_category(user_id, old_category)
                self.rating_calculator.recalculate_ratings_for_category(user_id, category)
            self._refresh_stats(entry.movie_id)
            entry = self.rankings.find_by_id(entry.id)

        if changes:
            entry = replace(
                entry,
                **changes,
                updated_at=datetime.now().isoformat(),
                modification_count=entry.modification_count + 1,
            )
            self.rankings.update_details(entry)

        return self.rankings.find_by_id(entry.id)

    def delete_ranking(self, user_id: str, ranking_id: str) -> None:
        """Remove an entry, close the gap, and re-rate what is left."""
        entry = self.get_owned(user_id, ranking_id)
        with self.rankings.db.transaction():
            self.rankings.delete_with_reflow(entry)
            self.rating_calculator.recalculate_ratings_for_category(user_id, entry.category)
        logger.info(
            "Deleted ranking %s ('%s' #%d) for user %s",
            entry.id, entry.category, entry.position, user_id,
        )
        self._refresh_stats(entry.movie_id)

    def recalculate_all(self, user_id: str) -> dict[str, int]:
        return self.rating_calculator.batch_recalculate_ratings(user_id)

    def _refresh_stats(self, movie_id: str) -> None:
        try:
            self.catalog.refresh_aggregate_stats(movie_id)
        except Exception:
            logger.exception("Movie stats update failed for movie %s", movie_id)

    @staticmethod
    def _check_category(category: object) -> None:
        if not is_valid_category(category):
            raise ValidationError("Invalid category", code="INVALID_CATEGORY")
