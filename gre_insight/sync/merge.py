"""Combine local and cloud snapshots.

Login merges the anonymous local dataset into the cloud one. Every later sync
event replaces local state wholesale; merging there would duplicate entries on
each round trip.
"""

from __future__ import annotations

import copy
from datetime import date
from typing import Sequence

from gre_insight.config import SyncSettings
from gre_insight.models import Snapshot, StudyStats, WordProfile
from gre_insight.scheduler.streak import check_streak

HISTORY_LIMIT = SyncSettings().history_limit


def merge_on_login(local: Snapshot, remote: Snapshot, today: date | str) -> Snapshot:
    return Snapshot(
        favorites=merge_favorites(local.favorites, remote.favorites),
        history=merge_history(local.history, remote.history),
        settings=copy.deepcopy(remote.settings),
        # remote entries win on a shared key, same as favorites
        word_cache=copy.deepcopy({**local.word_cache, **remote.word_cache}),
        study_stats=check_streak(_copy_study_stats(remote.study_stats), today),
    )


def replace_from_remote(remote: Snapshot, today: date | str) -> Snapshot:
    replaced = remote.copy()
    replaced.study_stats = check_streak(replaced.study_stats, today)
    return replaced


def merge_favorites(local: Sequence[WordProfile], remote: Sequence[WordProfile]) -> list[WordProfile]:
    """Concatenate then dedupe by word; the last occurrence's value wins.

    A key keeps the position of its first appearance, so a word favorited on
    both sides stays where the local list had it but carries the remote stats.
    """
    merged: dict[str, WordProfile] = {}
    for item in [*local, *remote]:
        key = item.get("word")
        if not key:
            continue
        merged[str(key)] = item
    return [copy.deepcopy(item) for item in merged.values()]


def merge_history(local: Sequence[str], remote: Sequence[str], *, limit: int = HISTORY_LIMIT) -> list[str]:
    merged: list[str] = []
    seen: set[str] = set()
    for term in [*local, *remote]:
        if term in seen:
            continue
        seen.add(term)
        merged.append(term)
    return merged[:limit]


def push_history(history: Sequence[str], term: str, *, limit: int = HISTORY_LIMIT) -> list[str]:
    return [term, *[item for item in history if item != term]][:limit]


def _copy_study_stats(stats: StudyStats) -> StudyStats:
    return StudyStats(streak_days=stats.streak_days, last_study_date=stats.last_study_date)
