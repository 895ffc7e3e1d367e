from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from typing import Sequence

import httpx

from gre_insight.errors import LookupFailure, ProfileParseError, WordNotFoundError
from gre_insight.logging_config import get_logger
from gre_insight.models import WordProfile
from gre_insight.safety.policies import sanitize_untrusted_text
from gre_insight.scheduler.mastery import now_ms

logger = get_logger(__name__)

ANALYZE_MAX_CHARS = 1000
SUGGEST_EXCLUDE_LIMIT = 50
PROFILE_TEXT_FIELDS = ("phonetic", "partOfSpeech", "definition", "mnemonic")
GRE_CONTEXT_FIELDS = ("explanation", "sentenceEn", "sentenceCn")
ETYMOLOGY_FIELDS = ("origin", "structure", "logic")

WORD_PROFILE_INSTRUCTION = (
    "You are a GRE vocabulary analyst. Return one JSON object only. "
    "Fields: word, phonetic, partOfSpeech, definition, "
    "greContext{explanation, sentenceEn, sentenceCn}, "
    "etymology{origin, structure, logic}, mnemonic, "
    "cognates[{word, pos, meaning}], synonyms[{word, meaning}], antonyms[{word, meaning}]. "
    "Rules: "
    "1) word is the correctly spelled headword; fix obvious misspellings of the query. "
    "2) phonetic is IPA, e.g. /.../. "
    "3) definition is a concise Chinese definition. "
    "4) greContext explains the nuance, logic or tone the word carries in GRE passages, "
    "with a GRE-style English sentence and its Chinese translation. "
    "5) etymology origin, structure and logic MUST be in Chinese. "
    "6) mnemonic is visual or scenario-based. "
    "7) 3-5 cognates sharing the root; 3-5 high-frequency GRE synonyms and antonyms with brief Chinese meanings."
)

ANALYZER_INSTRUCTION = (
    "Identify advanced GRE-level vocabulary in the user's text. Ignore common, basic English words. "
    "Return strict JSON with one field: words (array of {word, definition}), "
    "definition being a very brief Chinese gloss of at most 4 words."
)

SUGGEST_INSTRUCTION = (
    "Suggest ONE difficult, high-frequency GRE vocabulary word. "
    "Return strict JSON with one field: word."
)


@dataclass
class AnalyzedWord:
    word: str
    definition: str

    def to_dict(self) -> dict:
        return {"word": self.word, "definition": self.definition}


class LLMService:
    def __init__(self, *, model_override: str | None = None) -> None:
        self.provider = os.getenv("GRE_INSIGHT_LLM_PROVIDER", "openai").strip().lower()
        self.base_url = os.getenv("GRE_INSIGHT_LLM_BASE_URL")
        self.model = os.getenv("GRE_INSIGHT_LLM_MODEL")
        if model_override:
            self.model = str(model_override).strip()

        if self.provider == "deepseek":
            self.api_key = os.getenv("DEEPSEEK_API_KEY")
            self.base_url = self.base_url or "https://api.deepseek.com/v1"
            self.model = self.model or "deepseek-chat"
        else:
            self.api_key = os.getenv("OPENAI_API_KEY")
            self.base_url = self.base_url or "https://api.openai.com/v1"
            self.model = self.model or "gpt-4o-mini"

    def available(self) -> bool:
        return bool(self.api_key)

    def fetch_word_profile(self, term: str) -> WordProfile:
        query = term.strip()
        if not self.available():
            raise LookupFailure(query, "missing llm api key")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": WORD_PROFILE_INSTRUCTION},
                {"role": "user", "content": f'Analyze the English word "{query}" for a GRE student. JSON only.'},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.3,
        }
        try:
            data = self._chat_completion(payload)
        except httpx.HTTPError as exc:
            raise LookupFailure(query, str(exc)) from exc
        except ValueError as exc:
            raise ProfileParseError(query, "response is not JSON") from exc

        content = _extract_content(data)
        if not content:
            raise WordNotFoundError(query, "no response from model")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.warning("failed to parse word profile for %r: %s", query, exc)
            raise ProfileParseError(query, "failed to parse word data") from exc
        return normalize_word_profile(parsed, query=query)

    def analyze_text(self, text: str) -> list[AnalyzedWord]:
        cleaned = sanitize_untrusted_text(text)[:ANALYZE_MAX_CHARS]
        if not cleaned or not self.available():
            return []

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": ANALYZER_INSTRUCTION},
                {"role": "user", "content": f"text:\n{cleaned}\nJSON only."},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.2,
        }
        try:
            data = self._chat_completion(payload)
            content = _extract_content(data)
            if not content:
                return []
            parsed = json.loads(content)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("text analysis failed: %s", exc)
            return []
        raw_words = parsed.get("words") if isinstance(parsed, dict) else parsed
        return _sanitize_analyzed_words(raw_words)

    def suggest_word(self, exclude: Sequence[str]) -> str:
        if not self.available():
            raise LookupFailure("<random>", "missing llm api key")

        excluded = ", ".join(str(item) for item in list(exclude)[:SUGGEST_EXCLUDE_LIMIT]) or "none"
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SUGGEST_INSTRUCTION},
                {"role": "user", "content": f"Do NOT choose any of these words: {excluded}. JSON only."},
            ],
            "response_format": {"type": "json_object"},
            # high temperature for variety
            "temperature": 1.0,
        }
        try:
            data = self._chat_completion(payload)
            parsed = json.loads(_extract_content(data) or "{}")
        except httpx.HTTPError as exc:
            raise LookupFailure("<random>", str(exc)) from exc
        except ValueError as exc:
            raise ProfileParseError("<random>", "failed to parse random word") from exc

        word = str(parsed.get("word") or "").strip() if isinstance(parsed, dict) else ""
        if not _word_ok(word):
            raise WordNotFoundError("<random>", "failed to get random word")
        return word

    def _chat_completion(self, payload: dict, *, timeout: int = 40) -> dict:
        if not self.api_key:
            raise RuntimeError("missing llm api key")

        url = self.base_url.rstrip("/") + "/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(url, headers=headers, json=payload)
            resp.raise_for_status()
            return resp.json()


def normalize_word_profile(raw: object, *, query: str, now: int | None = None) -> WordProfile:
    if not isinstance(raw, dict):
        raise ProfileParseError(query, "profile is not an object")
    word = _clean_text(raw.get("word"))
    if not word:
        raise WordNotFoundError(query, "model returned no headword")
    definition = _clean_text(raw.get("definition"))
    if not definition:
        raise ProfileParseError(query, "profile has no definition")

    profile: WordProfile = {"word": word}
    for key in PROFILE_TEXT_FIELDS:
        profile[key] = _clean_text(raw.get(key))
    profile["greContext"] = _clean_section(raw.get("greContext"), GRE_CONTEXT_FIELDS)
    profile["etymology"] = _clean_section(raw.get("etymology"), ETYMOLOGY_FIELDS)
    profile["cognates"] = _clean_related(raw.get("cognates"), with_pos=True)
    profile["synonyms"] = _clean_related(raw.get("synonyms"), with_pos=False)
    profile["antonyms"] = _clean_related(raw.get("antonyms"), with_pos=False)
    profile["timestamp"] = now if now is not None else now_ms()

    if query and word.lower() != query.strip().lower():
        profile["wasCorrected"] = True
        profile["originalQuery"] = query.strip()
    return profile


def highlight_tokens(text: str, analyzed: Sequence[AnalyzedWord]) -> list[list[dict]]:
    """Split text into paragraphs of tokens, tagging tokens that match an analyzed word."""
    # longest first so a short word never shadows a longer match
    lookup: dict[str, AnalyzedWord] = {}
    for item in sorted(analyzed, key=lambda entry: len(entry.word), reverse=True):
        lookup.setdefault(item.word.lower(), item)

    paragraphs: list[list[dict]] = []
    for para in text.split("\n"):
        if not para.strip():
            continue
        tokens: list[dict] = []
        for token in para.split(" "):
            clean = re.sub(r"[.,/#!$%^&*;:{}=\-_`~()\"'?]", "", token).lower()
            match = lookup.get(clean) if clean else None
            tokens.append(
                {
                    "text": token,
                    "word": match.word if match else None,
                    "definition": match.definition if match else None,
                }
            )
        paragraphs.append(tokens)
    return paragraphs


def _extract_content(payload: object) -> str:
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content") or ""
    if isinstance(content, list):
        texts: list[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                texts.append(str(item.get("text", "")))
        return "\n".join(texts).strip()
    return str(content).strip()


def _word_ok(token: str) -> bool:
    return bool(re.fullmatch(r"[A-Za-z][A-Za-z'-]{0,32}", token))


def _clean_text(value: object) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).strip()


def _clean_section(value: object, keys: Sequence[str]) -> dict:
    source = value if isinstance(value, dict) else {}
    return {key: _clean_text(source.get(key)) for key in keys}


def _clean_related(values: object, *, with_pos: bool) -> list[dict]:
    if not isinstance(values, list):
        return []
    cleaned: list[dict] = []
    for value in values:
        if not isinstance(value, dict):
            continue
        word = _clean_text(value.get("word"))
        if not word:
            continue
        item = {"word": word, "meaning": _clean_text(value.get("meaning"))}
        if with_pos:
            item["pos"] = _clean_text(value.get("pos"))
        cleaned.append(item)
    return cleaned


def _sanitize_analyzed_words(values: object) -> list[AnalyzedWord]:
    if not isinstance(values, list):
        return []
    cleaned: list[AnalyzedWord] = []
    seen: set[str] = set()
    for value in values:
        if not isinstance(value, dict):
            continue
        word = _clean_text(value.get("word"))
        if not _word_ok(word):
            continue
        lowered = word.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        cleaned.append(AnalyzedWord(word=word, definition=_clean_text(value.get("definition"))))
    return cleaned
