from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Mapping, Sequence

from gre_insight.config import ReviewSettings
from gre_insight.models import Settings, WordProfile
from gre_insight.scheduler.mastery import mastery_of

QUIZ_MIN_WORDS = ReviewSettings().quiz_min_words
QUIZ_DISTRACTORS = ReviewSettings().quiz_distractors


@dataclass
class QuizQuestion:
    id: str
    question: str
    options: list[str]
    correct_answer: str
    word_data: WordProfile

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "question": self.question,
            "options": list(self.options),
            "correct_answer": self.correct_answer,
            "word_data": self.word_data,
        }


def build_quiz(
    *,
    word_cache: Mapping[str, WordProfile],
    favorites: Sequence[WordProfile],
    settings: Settings,
    rng: random.Random | None = None,
) -> list[QuizQuestion]:
    rng = rng or random.Random()
    if settings.quiz_source == "FAVORITES":
        source_pool = list(favorites)
    else:
        source_pool = list(word_cache.values())

    if len(source_pool) < QUIZ_MIN_WORDS:
        return []

    candidates = [item for item in source_pool if item and item.get("word") and item.get("definition")]
    if settings.quiz_mode == "WEAKEST":
        # shuffle first so equal scores do not always come out in the same order
        rng.shuffle(candidates)
        candidates.sort(key=mastery_of)
    else:
        rng.shuffle(candidates)

    targets = candidates[: settings.quiz_question_count]
    # distractors come from the whole cache so a small favorites list still gets options
    all_words = [item for item in word_cache.values() if item.get("definition")]

    questions: list[QuizQuestion] = []
    for idx, word_data in enumerate(targets):
        others = [item for item in all_words if item.get("word") != word_data["word"]]
        picked = rng.sample(others, k=min(QUIZ_DISTRACTORS, len(others)))
        options = [str(item["definition"]) for item in picked] + [str(word_data["definition"])]
        rng.shuffle(options)
        questions.append(
            QuizQuestion(
                id=f"q-{idx}",
                question=str(word_data["word"]),
                options=options,
                correct_answer=str(word_data["definition"]),
                word_data=word_data,
            )
        )
    return questions


def is_correct_answer(profile: WordProfile, answer: str) -> bool:
    return str(answer or "").strip() == str(profile.get("definition") or "").strip()


def build_flashcard_deck(favorites: Sequence[WordProfile]) -> list[WordProfile]:
    return [item for item in favorites if item.get("word")]
