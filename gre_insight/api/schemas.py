from __future__ import annotations

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    term: str


class WordRequest(BaseModel):
    word: str


class QuizAnswerRequest(BaseModel):
    word: str
    answer: str | None = None
    correct: bool | None = None


class SettingsUpdateRequest(BaseModel):
    darkMode: bool | None = None
    serifFont: bool | None = None
    fontSize: str | None = None
    quizSource: str | None = None
    quizMode: str | None = None
    quizQuestionCount: int | None = Field(default=None, ge=1, le=50)
    learningGoal: int | None = Field(default=None, ge=1)


class AnalyzeRequest(BaseModel):
    text: str


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)
    name: str = Field(default="")


class LoginRequest(BaseModel):
    email: str
    password: str
