from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from gre_insight.config import EXPORTS_DIR
from gre_insight.errors import ImportFormatError
from gre_insight.models import (
    Settings,
    Snapshot,
    StudyStats,
    WordProfile,
    settings_from_dict,
    study_stats_from_dict,
)

UTC = timezone.utc
SNAPSHOT_FIELDS = ("favorites", "history", "settings", "wordCache", "studyStats")


class WordStatsDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    reviews: int = Field(default=0, ge=0)
    correctCount: int = Field(default=0, ge=0)
    incorrectCount: int = Field(default=0, ge=0)
    masteryScore: int = Field(default=0, ge=0, le=100)
    lastReviewed: int = Field(default=0, ge=0)


class WordProfileDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    word: str = Field(min_length=1)
    definition: str = ""
    timestamp: int | None = None
    stats: WordStatsDocument | None = None


class SettingsDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    darkMode: bool | None = None
    serifFont: bool | None = None
    fontSize: str | None = None
    quizSource: str | None = None
    quizMode: str | None = None
    quizQuestionCount: int | None = Field(default=None, ge=1)
    learningGoal: int | None = Field(default=None, ge=1)


class StudyStatsDocument(BaseModel):
    streakDays: int = Field(ge=0)
    lastStudyDate: str = ""


FIELD_ADAPTERS: dict[str, TypeAdapter] = {
    "favorites": TypeAdapter(list[WordProfileDocument]),
    "history": TypeAdapter(list[str]),
    "settings": TypeAdapter(SettingsDocument),
    "wordCache": TypeAdapter(dict[str, WordProfileDocument]),
    "studyStats": TypeAdapter(StudyStatsDocument),
}


@dataclass
class SnapshotPatch:
    """Fields present in an import document; ``None`` means absent."""

    favorites: list[WordProfile] | None = None
    history: list[str] | None = None
    settings: Settings | None = None
    word_cache: dict[str, WordProfile] | None = None
    study_stats: StudyStats | None = None

    def present_fields(self) -> list[str]:
        names = {
            "favorites": self.favorites,
            "history": self.history,
            "settings": self.settings,
            "wordCache": self.word_cache,
            "studyStats": self.study_stats,
        }
        return [key for key, value in names.items() if value is not None]

    def apply_to(self, snapshot: Snapshot) -> Snapshot:
        updated = snapshot.copy()
        if self.favorites is not None:
            updated.favorites = copy.deepcopy(self.favorites)
        if self.history is not None:
            updated.history = list(self.history)
        if self.settings is not None:
            updated.settings = copy.deepcopy(self.settings)
        if self.word_cache is not None:
            updated.word_cache = copy.deepcopy(self.word_cache)
        if self.study_stats is not None:
            updated.study_stats = copy.deepcopy(self.study_stats)
        return updated


def export_snapshot_document(snapshot: Snapshot) -> str:
    return json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2)


def parse_snapshot_document(text: str | bytes) -> SnapshotPatch:
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ImportFormatError(f"not valid JSON ({exc})") from exc
    return parse_snapshot_payload(raw)


def parse_snapshot_payload(raw: Any) -> SnapshotPatch:
    if not isinstance(raw, dict):
        raise ImportFormatError("top level must be an object")

    # validate every present field before building anything
    for key in SNAPSHOT_FIELDS:
        if key not in raw:
            continue
        try:
            FIELD_ADAPTERS[key].validate_python(raw[key])
        except ValidationError as exc:
            raise ImportFormatError(_first_error(exc), field=key) from exc

    patch = SnapshotPatch()
    if "favorites" in raw:
        patch.favorites = [copy.deepcopy(item) for item in raw["favorites"]]
    if "history" in raw:
        patch.history = list(raw["history"])
    if "settings" in raw:
        patch.settings = settings_from_dict(raw["settings"])
    if "wordCache" in raw:
        patch.word_cache = {key: copy.deepcopy(value) for key, value in raw["wordCache"].items()}
    if "studyStats" in raw:
        patch.study_stats = study_stats_from_dict(raw["studyStats"])
    return patch


def write_export_file(snapshot: Snapshot, directory: Path = EXPORTS_DIR) -> Path:
    ts = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    directory.mkdir(parents=True, exist_ok=True)
    export_path = directory / f"gre_insight_export_{ts}.json"
    export_path.write_text(export_snapshot_document(snapshot), encoding="utf-8")
    return export_path


def read_import_file(path: Path) -> SnapshotPatch:
    if not path.exists():
        raise FileNotFoundError(path)
    return parse_snapshot_document(path.read_text(encoding="utf-8"))


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
