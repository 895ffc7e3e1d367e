from __future__ import annotations

from datetime import date, datetime, timedelta

from gre_insight.models import StudyStats


def check_streak(stats: StudyStats, today: date | str) -> StudyStats:
    today_date = _as_date(today)
    today_key = today_date.isoformat()

    if stats.last_study_date == today_key:
        return stats

    yesterday_key = (today_date - timedelta(days=1)).isoformat()
    if stats.last_study_date == yesterday_key:
        return StudyStats(streak_days=stats.streak_days + 1, last_study_date=today_key)

    # empty, gap of two or more days, future or unparsable date
    return StudyStats(streak_days=1, last_study_date=today_key)


def today_key() -> str:
    return date.today().isoformat()


def _as_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())
