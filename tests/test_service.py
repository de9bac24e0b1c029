"""Tests for editing, moving and deleting existing rankings."""
import pytest

from movieclub.app.errors import NotFoundError, ValidationError

from conftest import OTHER_USER, USER, positions, seed_category


@pytest.fixture()
def liked(ranking_dao, rating_calculator, movies):
    entries = seed_category(ranking_dao, movies[:4], "liked")
    rating_calculator.recalculate_ratings_for_category(USER, "liked")
    return entries


class TestDeleteRanking:
    def test_delete_reflows_and_rerates(self, ranking_service, ranking_dao, liked):
        ranking_service.delete_ranking(USER, liked[1].id)

        assert ranking_dao.find_by_id(liked[1].id) is None
        assert positions(ranking_dao, "liked") == [
            ("movie-1", 1), ("movie-3", 2), ("movie-4", 3),
        ]
        ratings = [e.rating for e in ranking_dao.find_in_category(USER, "liked")]
        assert ratings == [10.0, 8.25, 6.5]

    def test_delete_rolls_back_with_rerating(self, ranking_service, ranking_dao, liked, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(ranking_service.rating_calculator, "recalculate_ratings_for_category", fail)

        with pytest.raises(RuntimeError):
            ranking_service.delete_ranking(USER, liked[1].id)

        assert ranking_dao.find_by_id(liked[1].id) is not None
        assert [p for _, p in positions(ranking_dao, "liked")] == [1, 2, 3, 4]

    def test_delete_last_entry(self, ranking_service, ranking_dao, movies):
        only = seed_category(ranking_dao, movies[:1], "ok")
        ranking_service.delete_ranking(USER, only[0].id)
        assert ranking_dao.count_in_category(USER, "ok") == 0

    def test_delete_refreshes_stats(self, ranking_service, catalog, movie_dao, liked):
        catalog.refresh_aggregate_stats("movie-1")
        assert movie_dao.find_by_id("movie-1").total_rankings == 1

        ranking_service.delete_ranking(USER, liked[0].id)
        assert movie_dao.find_by_id("movie-1").total_rankings == 0

    def test_cannot_delete_other_users_entry(self, ranking_service, liked):
        with pytest.raises(NotFoundError):
            ranking_service.delete_ranking(OTHER_USER, liked[0].id)


class TestUpdateRanking:
    def test_move_rerates_both_categories(self, ranking_service, ranking_dao, movies, liked):
        seed_category(ranking_dao, movies[4:5], "ok")

        moved = ranking_service.update_ranking(USER, liked[0].id, category="ok")

        assert moved.category == "ok"
        assert moved.position == 2
        assert moved.rating == 3.5
        assert [e.rating for e in ranking_dao.find_in_category(USER, "liked")] == [10.0, 8.25, 6.5]
        assert [e.rating for e in ranking_dao.find_in_category(USER, "ok")] == [6.4, 3.5]

    def test_edit_details(self, ranking_service, liked):
        updated = ranking_service.update_ranking(
            USER, liked[2].id, notes="Rewatch soon", tags="classic,noir", rewatchable=True,
        )
        assert updated.notes == "Rewatch soon"
        assert updated.tags == "classic,noir"
        assert updated.rewatchable is True
        assert updated.modification_count == 1
        assert updated.position == 3

    def test_same_category_is_not_a_move(self, ranking_service, ranking_dao, liked):
        ranking_service.update_ranking(USER, liked[0].id, category="liked")
        assert positions(ranking_dao, "liked")[0] == ("movie-1", 1)

    def test_invalid_category(self, ranking_service, liked):
        with pytest.raises(ValidationError):
            ranking_service.update_ranking(USER, liked[0].id, category="meh")

    def test_flags_must_be_bool(self, ranking_service, liked):
        with pytest.raises(ValidationError):
            ranking_service.update_ranking(USER, liked[0].id, rewatchable=None)

    def test_unknown_field(self, ranking_service, liked):
        with pytest.raises(ValidationError):
            ranking_service.update_ranking(USER, liked[0].id, position=1)


class TestListings:
    def test_user_rankings_grouped(self, ranking_service, ranking_dao, movies, liked):
        seed_category(ranking_dao, movies[4:6], "disliked")

        grouped = ranking_service.get_user_rankings(USER)

        assert [len(grouped[c]) for c in ("liked", "ok", "disliked")] == [4, 0, 2]
        assert [e.position for e in grouped["liked"]] == [1, 2, 3, 4]

    def test_public_only_hides_private(self, ranking_service, liked):
        ranking_service.update_ranking(USER, liked[0].id, is_public=False)
        grouped = ranking_service.get_user_rankings(USER, public_only=True)
        assert len(grouped["liked"]) == 3

    def test_category_listing_includes_band(self, ranking_service, liked):
        listing = ranking_service.get_category_rankings(USER, "liked")
        assert len(listing.entries) == 4
        assert listing.range.top == 10.0

    def test_recalculate_all(self, ranking_service, liked):
        assert ranking_service.recalculate_all(USER) == {"liked": 4, "ok": 0, "disliked": 0}
