from __future__ import annotations

import json

import httpx
import pytest

from gre_insight.errors import LookupFailure, ProfileParseError
from gre_insight.services.llm import (
    AnalyzedWord,
    LLMService,
    _extract_content,
    highlight_tokens,
    normalize_word_profile,
)


def _reply(content) -> dict:
    return {"choices": [{"message": {"content": json.dumps(content) if not isinstance(content, str) else content}}]}


@pytest.fixture()
def service(monkeypatch):
    monkeypatch.setenv("GRE_INSIGHT_LLM_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("GRE_INSIGHT_LLM_MODEL", raising=False)
    return LLMService()


def test_provider_defaults(monkeypatch):
    monkeypatch.setenv("GRE_INSIGHT_LLM_PROVIDER", "deepseek")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "ds-key")
    monkeypatch.delenv("GRE_INSIGHT_LLM_MODEL", raising=False)
    monkeypatch.delenv("GRE_INSIGHT_LLM_BASE_URL", raising=False)

    service = LLMService()

    assert service.model == "deepseek-chat"
    assert service.base_url == "https://api.deepseek.com/v1"
    assert LLMService(model_override="deepseek-reasoner").model == "deepseek-reasoner"


def test_fetch_word_profile_marks_corrected_spelling(service, monkeypatch):
    raw = {
        "word": "abate",
        "definition": "减轻",
        "greContext": {"explanation": "  used of storms "},
        "cognates": [{"word": "bate", "pos": "v.", "meaning": "减少"}, "junk"],
        "synonyms": [{"word": "subside", "meaning": "平息"}],
    }
    monkeypatch.setattr(service, "_chat_completion", lambda payload: _reply(raw))

    profile = service.fetch_word_profile("abait")

    assert profile["word"] == "abate"
    assert profile["wasCorrected"] is True
    assert profile["originalQuery"] == "abait"
    assert profile["greContext"]["explanation"] == "used of storms"
    assert profile["cognates"] == [{"word": "bate", "meaning": "减少", "pos": "v."}]
    assert profile["antonyms"] == []
    assert isinstance(profile["timestamp"], int)


def test_same_word_with_other_case_is_not_a_correction():
    profile = normalize_word_profile({"word": "Abate", "definition": "减轻"}, query="abate", now=5)
    assert "wasCorrected" not in profile
    assert profile["timestamp"] == 5


def test_lookup_failures(service, monkeypatch):
    monkeypatch.setattr(service, "_chat_completion", lambda payload: _reply("not json"))
    with pytest.raises(ProfileParseError):
        service.fetch_word_profile("abate")

    monkeypatch.setattr(service, "_chat_completion", lambda payload: {"choices": []})
    with pytest.raises(LookupFailure):
        service.fetch_word_profile("abate")

    def offline(payload):
        raise httpx.ConnectError("offline")

    monkeypatch.setattr(service, "_chat_completion", offline)
    with pytest.raises(LookupFailure):
        service.fetch_word_profile("abate")


def test_missing_key_fails_lookup(monkeypatch):
    monkeypatch.setenv("GRE_INSIGHT_LLM_PROVIDER", "openai")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    service = LLMService()

    assert service.available() is False
    with pytest.raises(LookupFailure):
        service.fetch_word_profile("abate")
    assert service.analyze_text("A laconic reply") == []


def test_analyze_text_clips_input_and_degrades_to_empty(service, monkeypatch):
    sent = []

    def fake(payload):
        sent.append(payload["messages"][1]["content"])
        return _reply({"words": [{"word": "laconic", "definition": "简洁的"}, {"word": "laconic"}, {"word": "rm -rf"}]})

    monkeypatch.setattr(service, "_chat_completion", fake)
    words = service.analyze_text("laconic " * 400)

    assert words == [AnalyzedWord("laconic", "简洁的")]
    assert len(sent[0]) < 1100

    def offline(payload):
        raise httpx.ReadTimeout("slow")

    monkeypatch.setattr(service, "_chat_completion", offline)
    assert service.analyze_text("laconic") == []


def test_suggest_word_limits_exclusions(service, monkeypatch):
    sent = []

    def fake(payload):
        sent.append(payload["messages"][1]["content"])
        return _reply({"word": "obdurate"})

    monkeypatch.setattr(service, "_chat_completion", fake)
    exclude = [f"word{idx}" for idx in range(80)]

    assert service.suggest_word(exclude) == "obdurate"
    assert "word49" in sent[0]
    assert "word50" not in sent[0]


def test_highlight_tokens_strips_punctuation():
    paragraphs = highlight_tokens("Her laconic, terse reply.", [AnalyzedWord("laconic", "简洁的")])
    tokens = paragraphs[0]
    assert tokens[1] == {"text": "laconic,", "word": "laconic", "definition": "简洁的"}
    assert tokens[2]["word"] is None


def test_extract_content_handles_list_payload():
    payload = {"choices": [{"message": {"content": [{"type": "text", "text": "{\"word\": \"x\"}"}]}}]}
    assert _extract_content(payload) == '{"word": "x"}'


@pytest.mark.parametrize("reply", [["unexpected"], {"choices": ["oops"]}, {"choices": [{"message": "text"}]}])
def test_malformed_reply_is_a_lookup_failure(service, monkeypatch, reply):
    monkeypatch.setattr(service, "_chat_completion", lambda payload: reply)

    with pytest.raises(LookupFailure):
        service.fetch_word_profile("abate")
    with pytest.raises(LookupFailure):
        service.suggest_word([])
    assert service.analyze_text("A laconic reply") == []
