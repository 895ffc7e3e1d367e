from __future__ import annotations

from dataclasses import asdict, dataclass

from gre_insight.models import DEFAULT_LEARNING_GOAL, Snapshot


@dataclass
class ProgressSummary:
    total_words: int
    favorites_count: int
    streak_days: int
    learning_goal: int
    goal_progress: int

    def to_dict(self) -> dict:
        return asdict(self)


def build_progress_summary(snapshot: Snapshot) -> ProgressSummary:
    total = len(snapshot.word_cache)
    streak = snapshot.study_stats.streak_days
    if streak <= 0:
        # legacy snapshots carried no study stats
        streak = 1 if total > 0 else 0
    goal = snapshot.settings.learning_goal or DEFAULT_LEARNING_GOAL
    return ProgressSummary(
        total_words=total,
        favorites_count=len(snapshot.favorites),
        streak_days=streak,
        learning_goal=goal,
        goal_progress=min(100, (total * 100) // goal),
    )
