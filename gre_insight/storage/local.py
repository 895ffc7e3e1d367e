from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from gre_insight.config import LOCAL_SNAPSHOT_PATH
from gre_insight.logging_config import get_logger
from gre_insight.models import Snapshot, snapshot_from_dict

logger = get_logger(__name__)


class LocalSnapshotStore:
    """Device storage: the whole snapshot in one JSON file."""

    def __init__(self, path: Path = LOCAL_SNAPSHOT_PATH) -> None:
        self.path = path
        self._lock = threading.Lock()

    def load(self) -> Snapshot | None:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("ignoring unreadable local snapshot %s: %s", self.path, exc)
            return None
        if not isinstance(raw, dict):
            logger.warning("ignoring local snapshot %s: top level is not an object", self.path)
            return None
        try:
            return snapshot_from_dict(raw)
        except (TypeError, AttributeError, ValueError) as exc:
            logger.warning("ignoring malformed local snapshot %s: %s", self.path, exc)
            return None

    def save(self, snapshot: Snapshot) -> None:
        payload = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
