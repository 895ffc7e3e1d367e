"""Pick a word to review while a lookup is in flight."""

from __future__ import annotations

import random
from typing import Mapping, Sequence

from gre_insight.config import ReviewSettings
from gre_insight.models import WordProfile
from gre_insight.scheduler.mastery import last_reviewed_of, mastery_of

REVIEW_WINDOW_SIZE = ReviewSettings().window_size


def review_pool(favorites: Sequence[WordProfile], word_cache: Mapping[str, WordProfile]) -> list[WordProfile]:
    if favorites:
        return list(favorites)
    return list(word_cache.values())


def review_window(
    favorites: Sequence[WordProfile],
    word_cache: Mapping[str, WordProfile],
    size: int = REVIEW_WINDOW_SIZE,
) -> list[WordProfile]:
    """Weakest words first: lowest mastery, then least recently reviewed."""
    pool = review_pool(favorites, word_cache)
    ranked = sorted(pool, key=lambda item: (mastery_of(item), last_reviewed_of(item)))
    return ranked[: max(0, min(size, len(ranked)))]


def select_candidate(
    favorites: Sequence[WordProfile],
    word_cache: Mapping[str, WordProfile],
    *,
    rng: random.Random | None = None,
    size: int = REVIEW_WINDOW_SIZE,
) -> WordProfile | None:
    window = review_window(favorites, word_cache, size=size)
    if not window:
        return None
    return (rng or random).choice(window)
