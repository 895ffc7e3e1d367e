from __future__ import annotations

import hashlib
import time
import uuid
from dataclasses import dataclass

from gre_insight.errors import InvalidCredentialsError, UserExistsError
from gre_insight.logging_config import get_logger
from gre_insight.models import Snapshot, StudyStats, snapshot_from_dict
from gre_insight.scheduler.streak import today_key
from gre_insight.storage.db import Database
from gre_insight.sync.events import EventBus, SyncEvent, SyncEventType

logger = get_logger(__name__)


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name}


class AuthService:
    """Simulated cloud accounts backed by the local sqlite database."""

    def __init__(self, db: Database, bus: EventBus) -> None:
        self.db = db
        self.bus = bus

    def register(self, email: str, password: str, name: str, *, origin: str | None = None) -> User:
        email = _normalize_email(email)
        if not email or not password:
            raise InvalidCredentialsError()
        if self.db.get_user_by_email(email) is not None:
            raise UserExistsError(email)

        user_id = f"user_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"
        row = self.db.create_user(
            user_id=user_id,
            email=email,
            display_name=name.strip() or email.split("@")[0],
            password_hash=_hash_password(email, password),
        )
        initial = Snapshot(study_stats=StudyStats(streak_days=1, last_study_date=today_key()))
        self.db.save_user_data(user_id, initial.to_dict())
        self.db.set_active_session(user_id)
        logger.info("registered %s", user_id)

        user = _user_from_row(row)
        # registering implies login
        self.bus.publish(SyncEvent(SyncEventType.LOGIN, user_id=user.id, origin=origin))
        return user

    def login(self, email: str, password: str, *, origin: str | None = None) -> User:
        email = _normalize_email(email)
        row = self.db.get_user_by_email(email)
        if row is None or row["password_hash"] != _hash_password(email, password):
            raise InvalidCredentialsError()
        self.db.set_active_session(row["id"])
        logger.info("login %s", row["id"])
        user = _user_from_row(row)
        self.bus.publish(SyncEvent(SyncEventType.LOGIN, user_id=user.id, origin=origin))
        return user

    def logout(self, *, origin: str | None = None) -> None:
        self.db.clear_active_session()
        self.bus.publish(SyncEvent(SyncEventType.LOGOUT, origin=origin))

    def current_user(self) -> User | None:
        row = self.db.get_active_session_user()
        return _user_from_row(row) if row else None

    def save_user_data(self, user_id: str, snapshot: Snapshot, *, origin: str | None = None) -> None:
        self.db.save_user_data(user_id, snapshot.to_dict())
        # other sessions reload on this
        self.bus.publish(SyncEvent(SyncEventType.DATA_UPDATE, user_id=user_id, origin=origin))

    def fetch_user_data(self, user_id: str) -> Snapshot | None:
        payload = self.db.get_user_data(user_id)
        if payload is None:
            return None
        return snapshot_from_dict(payload)


def _user_from_row(row: dict) -> User:
    return User(id=str(row["id"]), email=str(row["email"]), name=str(row["display_name"]))


def _normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


def _hash_password(email: str, password: str) -> str:
    return hashlib.sha256(f"{email}:{password}".encode("utf-8")).hexdigest()
