"""Binary insertion search driven by the user's pairwise judgments.

The search runs over the existing positions 1..N of one category. Each step
probes the entry at mid = (low + high) // 2:

    new item wins       -> high = mid - 1   (new item ranks above mid)
    existing item wins  -> low = mid + 1
    tie                 -> resolved at mid + 1, right after the incumbent

Once low > high the new item belongs at `low`. An N-entry category needs at
most ceil(log2(N)) + 1 comparisons.

`SearchState` is plain data so it can be stored between requests; the
algorithm itself is stateless.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Literal, Optional, Sequence

from movieclub.app.errors import PreconditionViolation
from movieclub.storage.dao import RankedEntry

Winner = Literal["new", "existing", "tie"]
WINNERS: tuple[Winner, ...] = ("new", "existing", "tie")


@dataclass(frozen=True)
class ComparisonOutcome:
    winner: Winner
    existing_movie_id: str
    position: int

    def to_dict(self) -> dict:
        return {
            "winner": self.winner,
            "existing_movie_id": self.existing_movie_id,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ComparisonOutcome:
        return cls(
            winner=data["winner"],
            existing_movie_id=data["existing_movie_id"],
            position=int(data["position"]),
        )


@dataclass(frozen=True)
class SearchState:
    low: int
    high: int
    comparisons: tuple[ComparisonOutcome, ...] = ()
    resolved_at: Optional[int] = None

    @classmethod
    def for_category_size(cls, size: int) -> SearchState:
        if size == 0:
            return cls(low=1, high=0, resolved_at=1)
        return cls(low=1, high=size)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None or self.low > self.high

    @property
    def final_position(self) -> Optional[int]:
        if self.resolved_at is not None:
            return self.resolved_at
        if self.low > self.high:
            return self.low
        return None

    @property
    def midpoint(self) -> int:
        return (self.low + self.high) // 2

    def to_dict(self) -> dict:
        return {
            "low": self.low,
            "high": self.high,
            "comparisons": [c.to_dict() for c in self.comparisons],
            "resolved_at": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SearchState:
        return cls(
            low=int(data["low"]),
            high=int(data["high"]),
            comparisons=tuple(ComparisonOutcome.from_dict(c) for c in data.get("comparisons", [])),
            resolved_at=data.get("resolved_at"),
        )


@dataclass(frozen=True)
class SearchStep:
    """Either an entry to compare against or the final position."""

    probe: Optional[RankedEntry] = None
    final_position: Optional[int] = None
    replayed: tuple[ComparisonOutcome, ...] = field(default=())

    @property
    def is_resolved(self) -> bool:
        return self.final_position is not None


class RankingAlgorithm:
    def next_step(self, state: SearchState, entries: Sequence[RankedEntry]) -> tuple[SearchState, SearchStep]:
        """Decide what happens next for `state` over the category's `entries`.

        Outcomes already recorded against the probed movie are replayed
        instead of asking again. Returns the advanced state and the step.
        """
        by_position = {e.position: e for e in entries}
        replayed: list[ComparisonOutcome] = []

        while True:
            if not entries:
                return replace(state, resolved_at=1), SearchStep(final_position=1)

            final = state.final_position
            if final is not None:
                return state, SearchStep(final_position=final, replayed=tuple(replayed))

            mid = state.midpoint
            probe = by_position.get(mid)
            if probe is None:
                resolved = replace(state, resolved_at=mid)
                return resolved, SearchStep(final_position=mid, replayed=tuple(replayed))

            cached = self._find_cached(state, probe.movie_id)
            if cached is None:
                return state, SearchStep(probe=probe, replayed=tuple(replayed))

            replayed.append(cached)
            state = self._narrow(state, cached.winner, mid)

    def apply_result(self, state: SearchState, outcome: ComparisonOutcome) -> SearchState:
        """Record a fresh judgment against the entry at the current midpoint."""
        if state.is_resolved:
            raise PreconditionViolation("Search already resolved")
        if outcome.winner not in WINNERS:
            raise PreconditionViolation(f"Unknown comparison winner '{outcome.winner}'")

        mid = state.midpoint
        recorded = replace(state, comparisons=state.comparisons + (outcome,))
        return self._narrow(recorded, outcome.winner, mid)

    @staticmethod
    def estimate_remaining_comparisons(state: SearchState) -> int:
        if state.is_resolved:
            return 0
        range_size = state.high - state.low + 1
        if range_size <= 0:
            return 0
        return math.ceil(math.log2(range_size))

    @staticmethod
    def max_comparisons(category_size: int) -> int:
        """Worst-case number of judgments for inserting into N entries."""
        if category_size <= 0:
            return 0
        return math.ceil(math.log2(category_size)) + 1

    @staticmethod
    def _find_cached(state: SearchState, movie_id: str) -> Optional[ComparisonOutcome]:
        for outcome in state.comparisons:
            if outcome.existing_movie_id == movie_id:
                return outcome
        return None

    @staticmethod
    def _narrow(state: SearchState, winner: Winner, mid: int) -> SearchState:
        if winner == "new":
            return replace(state, high=mid - 1)
        if winner == "existing":
            return replace(state, low=mid + 1)
        # Tie: the new item goes directly after the tied incumbent.
        return replace(state, low=mid + 1, high=mid, resolved_at=mid + 1)
