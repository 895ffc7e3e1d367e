from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = Path(os.getenv("GRE_INSIGHT_DATA_DIR") or (PROJECT_ROOT / "data"))
EXPORTS_DIR = DATA_DIR / "exports"
LOGS_DIR = DATA_DIR / "logs"
DB_PATH = DATA_DIR / "gre_insight_cloud.db"
LOCAL_SNAPSHOT_PATH = DATA_DIR / "local_snapshot.json"

APP_NAME = "gre_insight"


@dataclass(frozen=True)
class SyncSettings:
    debounce_seconds: float = 2.0
    history_limit: int = 20


@dataclass(frozen=True)
class ReviewSettings:
    window_size: int = 12
    quiz_min_words: int = 4
    quiz_distractors: int = 3


def load_sync_settings() -> SyncSettings:
    raw = os.getenv("GRE_INSIGHT_SYNC_DEBOUNCE_SECONDS")
    if not raw:
        return SyncSettings()
    try:
        delay = float(raw)
    except ValueError:
        return SyncSettings()
    return SyncSettings(debounce_seconds=max(0.0, delay))


def ensure_dirs() -> None:
    for path in [
        DATA_DIR,
        EXPORTS_DIR,
        LOGS_DIR,
    ]:
        path.mkdir(parents=True, exist_ok=True)
