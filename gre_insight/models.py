from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

QUIZ_SOURCES = {"ALL", "FAVORITES"}
QUIZ_MODES = {"RANDOM", "WEAKEST"}
FONT_SIZES = {"small", "medium", "large"}
DEFAULT_QUIZ_QUESTION_COUNT = 5
DEFAULT_LEARNING_GOAL = 500

# A word profile is kept as the JSON mapping the lookup collaborator returns
# (camelCase keys), so snapshot files round-trip without a translation layer.
WordProfile = dict[str, Any]


@dataclass
class WordStats:
    reviews: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    mastery_score: int = 0
    last_reviewed: int = 0

    def to_dict(self) -> dict:
        return {
            "reviews": self.reviews,
            "correctCount": self.correct_count,
            "incorrectCount": self.incorrect_count,
            "masteryScore": self.mastery_score,
            "lastReviewed": self.last_reviewed,
        }


@dataclass
class StudyStats:
    streak_days: int = 0
    last_study_date: str = ""

    def to_dict(self) -> dict:
        return {"streakDays": self.streak_days, "lastStudyDate": self.last_study_date}


@dataclass
class Settings:
    dark_mode: bool = False
    serif_font: bool = True
    font_size: str = "medium"
    quiz_source: str = "ALL"
    quiz_mode: str = "RANDOM"
    quiz_question_count: int = DEFAULT_QUIZ_QUESTION_COUNT
    learning_goal: int = DEFAULT_LEARNING_GOAL

    def to_dict(self) -> dict:
        return {
            "darkMode": self.dark_mode,
            "serifFont": self.serif_font,
            "fontSize": self.font_size,
            "quizSource": self.quiz_source,
            "quizMode": self.quiz_mode,
            "quizQuestionCount": self.quiz_question_count,
            "learningGoal": self.learning_goal,
        }


@dataclass
class Snapshot:
    favorites: list[WordProfile] = field(default_factory=list)
    history: list[str] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)
    word_cache: dict[str, WordProfile] = field(default_factory=dict)
    study_stats: StudyStats = field(default_factory=StudyStats)

    def to_dict(self) -> dict:
        return {
            "favorites": copy.deepcopy(self.favorites),
            "history": list(self.history),
            "settings": self.settings.to_dict(),
            "wordCache": copy.deepcopy(self.word_cache),
            "studyStats": self.study_stats.to_dict(),
        }

    def copy(self) -> Snapshot:
        return snapshot_from_dict(self.to_dict())


def stats_from_dict(data: dict | None) -> WordStats | None:
    if not isinstance(data, dict):
        return None
    return WordStats(
        reviews=max(0, _as_int(data.get("reviews"), 0)),
        correct_count=max(0, _as_int(data.get("correctCount"), 0)),
        incorrect_count=max(0, _as_int(data.get("incorrectCount"), 0)),
        mastery_score=max(0, min(100, _as_int(data.get("masteryScore"), 0))),
        last_reviewed=max(0, _as_int(data.get("lastReviewed"), 0)),
    )


def study_stats_from_dict(data: dict | None) -> StudyStats:
    if not isinstance(data, dict):
        return StudyStats()
    return StudyStats(
        streak_days=max(0, _as_int(data.get("streakDays"), 0)),
        last_study_date=str(data.get("lastStudyDate") or ""),
    )


def settings_from_dict(data: dict | None) -> Settings:
    if not isinstance(data, dict):
        return Settings()
    defaults = Settings()
    font_size = str(data.get("fontSize", defaults.font_size))
    quiz_source = str(data.get("quizSource", defaults.quiz_source)).strip().upper()
    quiz_mode = str(data.get("quizMode", defaults.quiz_mode)).strip().upper()
    return Settings(
        dark_mode=bool(data.get("darkMode", defaults.dark_mode)),
        serif_font=bool(data.get("serifFont", defaults.serif_font)),
        font_size=font_size if font_size in FONT_SIZES else defaults.font_size,
        quiz_source=quiz_source if quiz_source in QUIZ_SOURCES else defaults.quiz_source,
        quiz_mode=quiz_mode if quiz_mode in QUIZ_MODES else defaults.quiz_mode,
        quiz_question_count=max(1, min(_as_int(data.get("quizQuestionCount"), DEFAULT_QUIZ_QUESTION_COUNT), 50)),
        learning_goal=max(1, _as_int(data.get("learningGoal"), DEFAULT_LEARNING_GOAL)),
    )


def snapshot_from_dict(data: dict) -> Snapshot:
    # wrong-typed fields fall back to their empty defaults
    favorites = data.get("favorites")
    if not isinstance(favorites, list):
        favorites = []
    history = data.get("history")
    if not isinstance(history, list):
        history = []
    word_cache = data.get("wordCache")
    if not isinstance(word_cache, dict):
        word_cache = {}
    return Snapshot(
        favorites=[copy.deepcopy(item) for item in favorites if isinstance(item, dict)],
        history=[str(item) for item in history if isinstance(item, str)],
        settings=settings_from_dict(data.get("settings")),
        word_cache={str(key): copy.deepcopy(value) for key, value in word_cache.items() if isinstance(value, dict)},
        study_stats=study_stats_from_dict(data.get("studyStats")),
    )


def _as_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
