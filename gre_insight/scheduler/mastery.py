from __future__ import annotations

import time
from enum import Enum

from gre_insight.models import WordProfile, WordStats, stats_from_dict

MAX_MASTERY = 100
MIN_MASTERY = 0
REVIEW_GAIN = 5
CORRECT_GAIN = 15
INCORRECT_PENALTY = 10


class StudyAction(str, Enum):
    REVIEW = "REVIEW"
    CORRECT = "CORRECT"
    INCORRECT = "INCORRECT"


def apply_action(previous: WordStats | None, action: StudyAction, now: int | None = None) -> WordStats:
    now = now if now is not None else now_ms()
    state = previous or WordStats()

    reviews = state.reviews + 1
    correct = state.correct_count
    incorrect = state.incorrect_count
    mastery = state.mastery_score

    if action == StudyAction.REVIEW:
        mastery = min(MAX_MASTERY, mastery + REVIEW_GAIN)
    elif action == StudyAction.CORRECT:
        correct += 1
        mastery = min(MAX_MASTERY, mastery + CORRECT_GAIN)
    else:
        incorrect += 1
        mastery = max(MIN_MASTERY, mastery - INCORRECT_PENALTY)

    return WordStats(
        reviews=reviews,
        correct_count=correct,
        incorrect_count=incorrect,
        mastery_score=mastery,
        last_reviewed=now,
    )


def word_stats(profile: WordProfile | None) -> WordStats | None:
    """Stats of a profile, or ``None`` when the word was never reviewed."""
    if profile is None:
        return None
    return stats_from_dict(profile.get("stats"))


def with_stats(profile: WordProfile, stats: WordStats) -> WordProfile:
    return {**profile, "stats": stats.to_dict()}


def mastery_of(profile: WordProfile) -> int:
    stats = word_stats(profile)
    return stats.mastery_score if stats else 0


def last_reviewed_of(profile: WordProfile) -> int:
    stats = word_stats(profile)
    return stats.last_reviewed if stats else 0


def now_ms() -> int:
    return int(time.time() * 1000)
