"""Tests for the binary insertion search state machine."""
import pytest

from movieclub.app.errors import PreconditionViolation
from movieclub.ranking.algorithm import ComparisonOutcome, RankingAlgorithm, SearchState
from movieclub.storage.dao import Movie

from conftest import make_entry


def _entries(n: int, category: str = "liked"):
    movies = [
        Movie(id=f"m{i}", tmdb_id=i, title=f"M{i}", created_at="2025-01-01")
        for i in range(1, n + 1)
    ]
    return [make_entry(m, category, pos) for pos, m in enumerate(movies, start=1)]


def _run(entries, new_rank: float):
    """Drive a full search where the new movie truly belongs at `new_rank`.

    A fractional rank sits between two incumbents; an integer rank ties the
    incumbent at that position. Returns (final_position, comparisons).
    """
    algo = RankingAlgorithm()
    state = SearchState.for_category_size(len(entries))
    asked = 0
    while True:
        state, step = algo.next_step(state, entries)
        if step.is_resolved:
            return step.final_position, asked
        asked += 1
        probe = step.probe
        if new_rank < probe.position:
            winner = "new"
        elif new_rank > probe.position:
            winner = "existing"
        else:
            winner = "tie"
        state = algo.apply_result(
            state, ComparisonOutcome(winner, probe.movie_id, probe.position)
        )


class TestSearchState:
    def test_empty_category_starts_resolved(self):
        state = SearchState.for_category_size(0)
        assert state.is_resolved
        assert state.final_position == 1

    def test_non_empty_category_starts_full_range(self):
        state = SearchState.for_category_size(6)
        assert (state.low, state.high) == (1, 6)
        assert not state.is_resolved
        assert state.midpoint == 3

    def test_dict_round_trip_keeps_log(self):
        state = SearchState(
            low=2, high=3,
            comparisons=(ComparisonOutcome("existing", "m1", 1),),
        )
        assert SearchState.from_dict(state.to_dict()) == state


class TestNextStep:
    def test_empty_category_resolves_at_one(self):
        algo = RankingAlgorithm()
        state, step = algo.next_step(SearchState.for_category_size(0), [])
        assert step.is_resolved
        assert step.final_position == 1
        assert step.probe is None

    def test_first_probe_is_midpoint(self):
        entries = _entries(5)
        algo = RankingAlgorithm()
        _, step = algo.next_step(SearchState.for_category_size(5), entries)
        assert step.probe.position == 3

    def test_low_past_high_resolves_at_low(self):
        algo = RankingAlgorithm()
        _, step = algo.next_step(SearchState(low=3, high=2), _entries(4))
        assert step.final_position == 3

    def test_missing_entry_at_midpoint_resolves_there(self):
        entries = [e for e in _entries(4) if e.position != 2]
        algo = RankingAlgorithm()
        state, step = algo.next_step(SearchState(low=1, high=4), entries)
        assert step.final_position == 2
        assert state.is_resolved

    def test_cached_outcome_is_replayed(self):
        entries = _entries(7)
        algo = RankingAlgorithm()
        # Restart from scratch with the earlier answer against position 4 on file
        state = SearchState(
            low=1, high=7,
            comparisons=(ComparisonOutcome("existing", "m4", 4),),
        )
        state, step = algo.next_step(state, entries)

        assert [o.existing_movie_id for o in step.replayed] == ["m4"]
        assert (state.low, state.high) == (5, 7)
        assert step.probe.position == 6


class TestApplyResult:
    def test_new_wins_moves_high(self):
        algo = RankingAlgorithm()
        state = algo.apply_result(SearchState(low=1, high=5), ComparisonOutcome("new", "m3", 3))
        assert (state.low, state.high) == (1, 2)
        assert len(state.comparisons) == 1

    def test_existing_wins_moves_low(self):
        algo = RankingAlgorithm()
        state = algo.apply_result(SearchState(low=1, high=5), ComparisonOutcome("existing", "m3", 3))
        assert (state.low, state.high) == (4, 5)

    def test_tie_resolves_after_incumbent(self):
        algo = RankingAlgorithm()
        state = algo.apply_result(SearchState(low=1, high=4), ComparisonOutcome("tie", "m2", 2))
        assert state.is_resolved
        assert state.final_position == 3

    def test_resolved_state_rejects_more_results(self):
        algo = RankingAlgorithm()
        with pytest.raises(PreconditionViolation):
            algo.apply_result(SearchState(low=3, high=2), ComparisonOutcome("new", "m1", 1))


class TestFullSearch:
    @pytest.mark.parametrize("n", [1, 2, 3, 4, 5, 8, 13, 32])
    def test_every_gap_found_within_bound(self, n):
        entries = _entries(n)
        bound = RankingAlgorithm.max_comparisons(n)
        for gap in range(n + 1):
            final, asked = _run(entries, gap + 0.5)
            assert final == gap + 1
            assert asked <= bound

    @pytest.mark.parametrize("tied_with", [1, 2, 3, 4, 5])
    def test_tie_places_directly_after(self, tied_with):
        final, _ = _run(_entries(5), tied_with)
        assert final == tied_with + 1

    def test_tie_on_first_probe_asks_once(self):
        final, asked = _run(_entries(4), 2)
        assert final == 3
        assert asked == 1

    def test_empty_category_needs_no_comparisons(self):
        final, asked = _run([], 0.5)
        assert final == 1
        assert asked == 0


class TestEstimates:
    def test_estimate_remaining(self):
        algo = RankingAlgorithm()
        assert algo.estimate_remaining_comparisons(SearchState(low=1, high=8)) == 3
        assert algo.estimate_remaining_comparisons(SearchState(low=1, high=5)) == 3
        assert algo.estimate_remaining_comparisons(SearchState(low=2, high=2)) == 0
        assert algo.estimate_remaining_comparisons(SearchState(low=3, high=2)) == 0

    def test_max_comparisons(self):
        assert RankingAlgorithm.max_comparisons(0) == 0
        assert RankingAlgorithm.max_comparisons(1) == 1
        assert RankingAlgorithm.max_comparisons(8) == 4
        assert RankingAlgorithm.max_comparisons(9) == 5
