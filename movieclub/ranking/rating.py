"""Position-to-rating interpolation and category-wide recomputation.

A category's band [bottom, top] is spread evenly over its N entries:
position 1 gets `top`, position N gets `bottom`, and every step down the
list costs exactly (top - bottom) / (N - 1). A lone entry gets `top`.

Every rating depends on N, so any insert, delete or move means the whole
category has to be recomputed. That is O(N) per operation.
"""
import logging
from typing import Iterable, Optional

from movieclub.app.errors import PreconditionViolation
from movieclub.ranking.categories import CATEGORIES, Category, get_category_range
from movieclub.storage.dao import RankingDAO

logger = logging.getLogger("movieclub.ranking.rating")

DEFAULT_DECIMALS = 2


class RatingCalculator:
    def __init__(self, rankings: RankingDAO, decimals: int = DEFAULT_DECIMALS):
        self.rankings = rankings
        self.decimals = decimals

    def calculate_rating(
        self,
        position: int,
        total_in_category: int,
        category: Category,
    ) -> float:
        """Map a 1-based position in an N-entry category onto its band.

        Raises:
            PreconditionViolation: the category is empty or the position is
                outside 1..total_in_category.
        """
        if total_in_category <= 0:
            raise PreconditionViolation(
                f"Cannot calculate rating with {total_in_category} movies in category '{category}'"
            )
        if position < 1 or position > total_in_category:
            raise PreconditionViolation(
                f"Position {position} outside 1..{total_in_category} in category '{category}'"
            )

        band = get_category_range(category)
        if total_in_category == 1:
            return band.top

        step = (band.top - band.bottom) / (total_in_category - 1)
        rating = band.top - (position - 1) * step
        return round(rating, self.decimals)

    def recalculate_ratings_for_category(self, user_id: str, category: Category) -> int:
        """Recompute every rating in the category from its current size.

        Returns the number of entries written.
        """
        entries = self.rankings.find_in_category(user_id, category)
        total = len(entries)
        logger.info(
            "Recalculating ratings for %d movies in category '%s' for user %s",
            total, category, user_id,
        )
        updates = self._rate(entries, total, category)
        self.rankings.update_ratings(updates)
        return len(updates)

    def recalculate_ratings_from_rank(
        self,
        user_id: str,
        category: Category,
        from_position: int,
    ) -> int:
        """Recompute ratings at or below `from_position`.

        The interpolation still uses the size of the whole category.
        """
        total = self.rankings.count_in_category(user_id, category)
        entries = self.rankings.find_in_category(user_id, category, from_position=from_position)
        updates = self._rate(entries, total, category)
        self.rankings.update_ratings(updates)
        return len(updates)

    def batch_recalculate_ratings(
        self,
        user_id: str,
        categories: Optional[Iterable[Category]] = None,
    ) -> dict[str, int]:
        return {
            category: self.recalculate_ratings_for_category(user_id, category)
            for category in (categories or CATEGORIES)
        }

    def _rate(self, entries, total: int, category: Category) -> list[tuple[str, float]]:
        updates = []
        for entry in entries:
            rating = self.calculate_rating(entry.position, total, category)
            logger.debug("  Rank %d: %s -> %s", entry.position, entry.rating, rating)
            updates.append((entry.id, rating))
        return updates

    @staticmethod
    def get_rating_range(category: Category) -> tuple[float, float]:
        """Return (min, max) for the category."""
        band = get_category_range(category)
        return (band.bottom, band.top)

    @staticmethod
    def is_rating_in_category_range(rating: float, category: Category) -> bool:
        band = get_category_range(category)
        return band.bottom <= rating <= band.top
