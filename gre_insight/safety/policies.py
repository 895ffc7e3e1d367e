from __future__ import annotations

import re
from dataclasses import dataclass

MAX_SEARCH_TERM_LENGTH = 64

PROMPT_INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?(previous|system)\s+instructions", re.IGNORECASE),
    re.compile(r"reveal\s+(the\s+)?(secret|token|api[_ -]?key|password)", re.IGNORECASE),
    re.compile(r"run\s+(shell|terminal|bash|zsh|powershell)\s+command", re.IGNORECASE),
    re.compile(r"(system|developer)\s+prompt", re.IGNORECASE),
]


@dataclass
class SafetyCheck:
    allowed: bool
    reason: str | None = None


def sanitize_untrusted_text(text: str) -> str:
    """Drop lines that look like instructions aimed at the model."""
    cleaned_lines: list[str] = []
    for raw_line in str(text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if any(pattern.search(line) for pattern in PROMPT_INJECTION_PATTERNS):
            continue
        cleaned_lines.append(line)
    return "\n".join(cleaned_lines)


def is_prompt_injection(text: str) -> bool:
    return any(pattern.search(text) for pattern in PROMPT_INJECTION_PATTERNS)


def normalize_search_term(term: str) -> str:
    return " ".join(str(term or "").split())


def validate_search_term(term: str) -> SafetyCheck:
    text = normalize_search_term(term)
    if not text:
        return SafetyCheck(allowed=False, reason="word is empty")
    if len(text) > MAX_SEARCH_TERM_LENGTH:
        return SafetyCheck(allowed=False, reason="search term is too long")
    if is_prompt_injection(text):
        return SafetyCheck(allowed=False, reason="search term looks like an instruction, not a word")
    return SafetyCheck(allowed=True)
