from __future__ import annotations

import sqlite3
from typing import Callable

from gre_insight.errors import SyncError
from gre_insight.models import Snapshot
from gre_insight.services.auth import AuthService
from gre_insight.storage.local import LocalSnapshotStore
from gre_insight.sync.events import EventBus, SyncCallback


class PersistenceGateway:
    def __init__(self, *, local_store: LocalSnapshotStore, auth: AuthService, bus: EventBus) -> None:
        self.local_store = local_store
        self.auth = auth
        self.bus = bus

    def load_local_snapshot(self) -> Snapshot | None:
        return self.local_store.load()

    def save_local_snapshot(self, snapshot: Snapshot) -> None:
        self.local_store.save(snapshot)

    def save_remote_snapshot(self, user_id: str, snapshot: Snapshot, *, origin: str | None = None) -> None:
        try:
            self.auth.save_user_data(user_id, snapshot, origin=origin)
        except sqlite3.Error as exc:
            raise SyncError(f"remote save failed for {user_id}: {exc}") from exc

    def load_remote_snapshot(self, user_id: str) -> Snapshot | None:
        try:
            return self.auth.fetch_user_data(user_id)
        except sqlite3.Error as exc:
            raise SyncError(f"remote load failed for {user_id}: {exc}") from exc
        except (TypeError, AttributeError, ValueError) as exc:
            raise SyncError(f"remote snapshot for {user_id} is malformed: {exc}") from exc

    def subscribe(self, callback: SyncCallback) -> Callable[[], None]:
        return self.bus.subscribe(callback)
