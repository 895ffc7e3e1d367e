from __future__ import annotations

import json

import pytest
from conftest import make_word

from gre_insight.errors import ImportFormatError
from gre_insight.models import Settings, Snapshot, StudyStats
from gre_insight.services.backup import (
    export_snapshot_document,
    parse_snapshot_document,
    read_import_file,
    write_export_file,
)


def test_export_file_round_trip(tmp_path):
    snapshot = Snapshot(
        favorites=[make_word("abate", mastery=20)],
        history=["abate"],
        settings=Settings(font_size="large"),
        word_cache={"abate": make_word("abate", mastery=20)},
        study_stats=StudyStats(streak_days=3, last_study_date="2024-01-02"),
    )

    path = write_export_file(snapshot, directory=tmp_path)
    patch = read_import_file(path)

    assert patch.apply_to(Snapshot()).to_dict() == snapshot.to_dict()


def test_unknown_fields_are_ignored():
    patch = parse_snapshot_document(json.dumps({"history": ["a"], "theme": "dark"}))
    assert patch.present_fields() == ["history"]


def test_error_names_the_bad_field():
    with pytest.raises(ImportFormatError) as excinfo:
        parse_snapshot_document(json.dumps({"wordCache": {"abate": {"word": ""}}}))
    assert excinfo.value.field == "wordCache"


def test_missing_import_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_import_file(tmp_path / "nope.json")


def test_export_is_readable_json():
    document = json.loads(export_snapshot_document(Snapshot()))
    assert document["settings"]["learningGoal"] == 500
    assert document["studyStats"] == {"streakDays": 0, "lastStudyDate": ""}
