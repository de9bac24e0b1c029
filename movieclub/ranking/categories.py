"""The three fixed ranking categories and their rating bands."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, TypeGuard

Category = Literal["liked", "ok", "disliked"]


@dataclass(frozen=True)
class CategoryRange:
    """Closed rating band [bottom, top] for one category."""

    top: float
    bottom: float
    description: str


CATEGORIES: tuple[Category, ...] = ("liked", "ok", "disliked")

CATEGORY_RANGES: dict[str, CategoryRange] = {
    "liked": CategoryRange(top=10.0, bottom=6.5, description="I liked it!"),
    "ok": CategoryRange(top=6.4, bottom=3.5, description="It was ok"),
    "disliked": CategoryRange(top=3.4, bottom=0.0, description="I didn't like it."),
}


def is_valid_category(value: object) -> TypeGuard[Category]:
    return isinstance(value, str) and value in CATEGORY_RANGES


def get_category_range(category: Category) -> CategoryRange:
    return CATEGORY_RANGES[category]
