"""Dense 1..N position bookkeeping per (user, category)."""
import logging

from movieclub.app.errors import NotFoundError, PreconditionViolation
from movieclub.ranking.categories import (
    Category,
    CategoryRange,
    get_category_range,
    is_valid_category,
)
from movieclub.storage.dao import RankedEntry, RankingDAO

logger = logging.getLogger("movieclub.ranking.category_manager")


class CategoryManager:
    """Keeps positions contiguous from 1 within every (user, category).

    Shifts never touch ratings; callers recompute them afterwards.
    """

    def __init__(self, rankings: RankingDAO):
        self.rankings = rankings

    def get_category_range(self, category: Category) -> CategoryRange:
        return get_category_range(category)

    def get_rankings_in_category(self, user_id: str, category: Category) -> list[RankedEntry]:
        return self.rankings.find_in_category(user_id, category)

    def get_movie_count_in_category(self, user_id: str, category: Category) -> int:
        return self.rankings.count_in_category(user_id, category)

    def shift_rankings_down(self, user_id: str, category: Category, from_position: int) -> int:
        """Make room at `from_position`: every position >= it moves down one."""
        moved = self.rankings.increment_positions_from(user_id, category, from_position)
        logger.debug("Shifted %d rankings down from %d in '%s'", moved, from_position, category)
        return moved

    def shift_rankings_up(self, user_id: str, category: Category, from_position: int) -> int:
        """Close the gap at `from_position`: every position > it moves up one."""
        moved = self.rankings.decrement_positions_after(user_id, category, from_position)
        logger.debug("Shifted %d rankings up after %d in '%s'", moved, from_position, category)
        return moved

    def move_to_category(self, ranking_id: str, new_category: Category) -> RankedEntry:
        """Move an entry to the bottom of another category.

        Ratings in both categories are stale afterwards.
        """
        if not is_valid_category(new_category):
            raise PreconditionViolation(f"Unknown category '{new_category}'")

        entry = self.rankings.find_by_id(ranking_id)
        if entry is None:
            raise NotFoundError("Ranking not found", code="RANKING_NOT_FOUND")
        if entry.category == new_category:
            return entry

        with self.rankings.db.transaction():
            self.shift_rankings_up(entry.user_id, entry.category, entry.position)
            new_position = self.get_movie_count_in_category(entry.user_id, new_category) + 1
            self.rankings.update_placement(entry.id, new_category, new_position)

        logger.info(
            "Moved ranking %s from '%s' #%d to '%s' #%d",
            entry.id, entry.category, entry.position, new_category, new_position,
        )
        return self.rankings.find_by_id(entry.id)

    @staticmethod
    def is_valid_category(value: object) -> bool:
        return is_valid_category(value)

    def get_top_movies_in_category(
        self,
        user_id: str,
        category: Category,
        limit: int = 10,
    ) -> list[RankedEntry]:
        return self.rankings.find_in_category(user_id, category, limit=limit)
