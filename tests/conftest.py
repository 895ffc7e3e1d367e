from __future__ import annotations

import itertools
import os
import random
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
# module-level paths are resolved at import time, keep them out of the project tree
os.environ.setdefault("GRE_INSIGHT_DATA_DIR", tempfile.mkdtemp(prefix="gre_insight_test_"))

import gre_insight.app as app_module
from gre_insight.config import SyncSettings
from gre_insight.errors import WordNotFoundError
from gre_insight.services.auth import AuthService
from gre_insight.session import StudySession
from gre_insight.storage.db import Database
from gre_insight.storage.local import LocalSnapshotStore
from gre_insight.sync.events import InProcessEventBus
from gre_insight.sync.gateway import PersistenceGateway

TODAY = "2024-05-02"


def make_word(word: str, definition: str = "", *, mastery: int | None = None, last_reviewed: int = 0, reviews: int = 0) -> dict:
    profile = {"word": word, "definition": definition or f"meaning of {word}", "timestamp": 1_700_000_000_000}
    if mastery is not None:
        profile["stats"] = {
            "reviews": reviews,
            "correctCount": 0,
            "incorrectCount": 0,
            "masteryScore": mastery,
            "lastReviewed": last_reviewed,
        }
    return profile


class FakeLookup:
    def __init__(self) -> None:
        self.profiles: dict[str, dict] = {}
        self.hooks: dict[str, object] = {}
        self.calls: list[str] = []
        self.analyzed: list = []
        self.suggestions: list[str] = []

    def available(self) -> bool:
        return True

    def add(self, word: str, definition: str = "", **extra) -> dict:
        profile = {**make_word(word, definition), **extra}
        self.profiles[word.lower()] = profile
        return profile

    def fetch_word_profile(self, term: str) -> dict:
        self.calls.append(term)
        hook = self.hooks.pop(term.lower(), None)
        if hook is not None:
            hook()
        profile = self.profiles.get(term.lower())
        if profile is None:
            raise WordNotFoundError(term, "unknown test word")
        return dict(profile)

    def analyze_text(self, text: str) -> list:
        return list(self.analyzed)

    def suggest_word(self, exclude) -> str:
        for word in self.suggestions:
            if word not in exclude:
                return word
        raise WordNotFoundError("<random>", "no suggestion left")


@pytest.fixture()
def temp_db(tmp_path):
    db = Database(tmp_path / "gre_insight_test.db")
    db.initialize()
    return db


@pytest.fixture()
def bus():
    return InProcessEventBus()


@pytest.fixture()
def auth(temp_db, bus):
    return AuthService(temp_db, bus)


@pytest.fixture()
def lookup():
    return FakeLookup()


@pytest.fixture()
def make_session(tmp_path, auth, bus, lookup):
    created: list[StudySession] = []
    clock = itertools.count(1_700_000_000_000, 1000)

    def factory(name: str = "main", *, start: bool = True, debounce: float = 0.05) -> StudySession:
        gateway = PersistenceGateway(
            local_store=LocalSnapshotStore(tmp_path / f"local_{name}.json"),
            auth=auth,
            bus=bus,
        )
        session = StudySession(
            gateway=gateway,
            lookup=lookup,
            sync_settings=SyncSettings(debounce_seconds=debounce),
            clock=lambda: next(clock),
            today=lambda: TODAY,
            rng=random.Random(7),
            context_id=name,
        )
        if start:
            session.start()
        created.append(session)
        return session

    yield factory
    for session in created:
        session.close()


@pytest.fixture()
def session(make_session):
    return make_session()


@pytest.fixture()
def client(temp_db, auth, bus, lookup, make_session, monkeypatch):
    app_session = make_session("api", start=False)
    monkeypatch.setattr(app_module, "db", temp_db)
    monkeypatch.setattr(app_module, "auth_service", auth)
    monkeypatch.setattr(app_module, "event_bus", bus)
    monkeypatch.setattr(app_module, "llm_service", lookup)
    monkeypatch.setattr(app_module, "session", app_session)
    with TestClient(app_module.app) as c:
        yield c
