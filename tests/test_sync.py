from __future__ import annotations

import pytest

from gre_insight.errors import InvalidCredentialsError, SyncError, UserExistsError
from gre_insight.sync.events import SyncEvent, SyncEventType


def test_register_merges_local_words_and_other_tab_follows(make_session, lookup, auth):
    tab_a = make_session("a", debounce=5.0)
    tab_b = make_session("b", debounce=5.0)
    lookup.add("abate")
    tab_a.search("abate")

    user = tab_a.register("Reader@Example.com", "pw", "Reader")

    assert user.email == "reader@example.com"
    assert tab_b.user == user
    assert tab_a.remote_save_pending is True
    assert "abate" not in tab_b.snapshot().word_cache

    # closing flushes the pending cloud save, which other tabs pull
    tab_a.close()

    assert "abate" in auth.fetch_user_data(user.id).word_cache
    assert "abate" in tab_b.snapshot().word_cache


def test_login_merge_keeps_remote_favorite_stats(make_session, lookup):
    tab_a = make_session("a", debounce=5.0)
    lookup.add("abate")
    tab_a.search("abate")
    tab_a.toggle_favorite("abate")
    tab_a.register("reader@example.com", "pw", "")
    tab_a.record_quiz_result("abate", True)
    tab_a.logout()

    tab_c = make_session("c", debounce=5.0)
    tab_c.search("abate")
    tab_c.toggle_favorite("abate")
    tab_c.login("reader@example.com", "pw")

    favorites = tab_c.snapshot().favorites
    assert [item["word"] for item in favorites] == ["abate"]
    assert favorites[0]["stats"]["masteryScore"] == 15


def test_data_update_replaces_other_tab_state(make_session, lookup):
    tab_a = make_session("a", debounce=5.0)
    tab_b = make_session("b", debounce=5.0)
    tab_a.register("reader@example.com", "pw", "")
    lookup.add("zealous")
    tab_b.search("zealous")
    tab_b.close()

    assert "zealous" in tab_a.snapshot().word_cache
    assert tab_a.snapshot().history == ["zealous"]


def test_own_events_are_ignored(make_session, bus, monkeypatch):
    tab_a = make_session("a", debounce=5.0)
    user = tab_a.register("reader@example.com", "pw", "")
    pulls = []
    monkeypatch.setattr(tab_a, "sync_from_remote", lambda: pulls.append(True) or True)

    bus.publish(SyncEvent(SyncEventType.DATA_UPDATE, user_id=user.id, origin="a"))
    assert pulls == []

    bus.publish(SyncEvent(SyncEventType.DATA_UPDATE, user_id=user.id, origin="elsewhere"))
    assert pulls == [True]


def test_logout_propagates_to_other_tabs(make_session, auth):
    tab_a = make_session("a", debounce=5.0)
    tab_b = make_session("b", debounce=5.0)
    tab_a.register("reader@example.com", "pw", "")
    assert tab_b.user is not None

    tab_b.logout()

    assert tab_a.user is None
    assert auth.current_user() is None


def test_restored_login_is_picked_up_at_start(make_session):
    tab_a = make_session("a", debounce=5.0)
    user = tab_a.register("reader@example.com", "pw", "")

    later = make_session("later", debounce=5.0)

    assert later.user == user


def test_remote_failure_keeps_local_state(make_session, lookup, monkeypatch):
    tab_a = make_session("a", debounce=5.0)
    tab_a.register("reader@example.com", "pw", "")
    lookup.add("abate")
    tab_a.search("abate")

    def broken(user_id):
        raise SyncError("offline")

    monkeypatch.setattr(tab_a.gateway, "load_remote_snapshot", broken)

    assert tab_a.sync_from_remote() is False
    assert "abate" in tab_a.snapshot().word_cache
    assert tab_a.syncing is False


def test_account_errors(make_session):
    tab_a = make_session("a", debounce=5.0)
    tab_a.register("reader@example.com", "pw", "")

    with pytest.raises(UserExistsError):
        tab_a.register("READER@example.com", "other", "")
    with pytest.raises(InvalidCredentialsError):
        tab_a.login("reader@example.com", "wrong")


def test_malformed_cloud_payload_keeps_local_state(make_session, lookup, temp_db, auth):
    tab_a = make_session("a", debounce=5.0)
    user = tab_a.register("reader@example.com", "pw", "")
    tab_a.logout()
    temp_db.save_user_data(user.id, {"wordCache": ["abate"], "favorites": 3, "history": None})

    tab_b = make_session("b", debounce=5.0)
    lookup.add("zealous")
    tab_b.search("zealous")
    tab_b.login("reader@example.com", "pw")

    assert "zealous" in tab_b.snapshot().word_cache
    assert tab_b.user == user


def test_gateway_wraps_parse_errors(make_session, auth, monkeypatch):
    tab_a = make_session("a", debounce=5.0)
    user = tab_a.register("reader@example.com", "pw", "")

    def broken(user_id):
        raise AttributeError("'list' object has no attribute 'items'")

    monkeypatch.setattr(auth, "fetch_user_data", broken)

    with pytest.raises(SyncError):
        tab_a.gateway.load_remote_snapshot(user.id)
    assert tab_a.sync_from_remote() is False
