"""Application state for one execution context (a browser tab, a worker process).

``StudySession`` owns the word cache, favorites, history, settings and study
stats. Every mutation happens under one re-entrant lock so the cache entry and
the favorites entry of a word are always updated together, then the snapshot is
written to device storage and, for a logged-in user, a debounced cloud save is
armed.
"""

from __future__ import annotations

import random
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

from gre_insight.config import SyncSettings, load_sync_settings
from gre_insight.errors import LookupFailure, SyncError
from gre_insight.exercises.quiz import QuizQuestion, build_flashcard_deck, build_quiz, is_correct_answer
from gre_insight.logging_config import get_logger
from gre_insight.models import Snapshot, WordProfile, WordStats, settings_from_dict
from gre_insight.scheduler.mastery import StudyAction, apply_action, now_ms, with_stats, word_stats
from gre_insight.scheduler.progress import ProgressSummary, build_progress_summary
from gre_insight.scheduler.review import select_candidate
from gre_insight.scheduler.streak import check_streak, today_key
from gre_insight.safety.policies import normalize_search_term, validate_search_term
from gre_insight.services.auth import User
from gre_insight.services.backup import export_snapshot_document, parse_snapshot_document
from gre_insight.services.llm import AnalyzedWord, highlight_tokens
from gre_insight.sync.debounce import DebouncedTask
from gre_insight.sync.events import SyncEvent, SyncEventType
from gre_insight.sync.gateway import PersistenceGateway
from gre_insight.sync.merge import merge_on_login, push_history, replace_from_remote

logger = get_logger(__name__)

LOOKUP_ERROR_MESSAGE = "Could not find word. Please try again."


class WordLookup(Protocol):
    def available(self) -> bool: ...

    def fetch_word_profile(self, term: str) -> WordProfile: ...

    def analyze_text(self, text: str) -> list[AnalyzedWord]: ...

    def suggest_word(self, exclude: Sequence[str]) -> str: ...


@dataclass
class SearchOutcome:
    status: str
    word: WordProfile | None
    review_candidate: WordProfile | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "word": self.word,
            "review_candidate": self.review_candidate,
            "error": self.error,
        }


@dataclass
class AnalysisResult:
    words: list[AnalyzedWord] = field(default_factory=list)
    paragraphs: list[list[dict]] = field(default_factory=list)


class StudySession:
    def __init__(
        self,
        *,
        gateway: PersistenceGateway,
        lookup: WordLookup,
        sync_settings: SyncSettings | None = None,
        clock: Callable[[], int] = now_ms,
        today: Callable[[], str] = today_key,
        rng: random.Random | None = None,
        context_id: str | None = None,
    ) -> None:
        self.gateway = gateway
        self.lookup = lookup
        self.sync_settings = sync_settings or load_sync_settings()
        self.context_id = context_id or uuid.uuid4().hex[:12]
        self._clock = clock
        self._today = today
        self._rng = rng or random.Random()

        self._lock = threading.RLock()
        self._snapshot = Snapshot()
        self._search_generation = 0
        self._unsubscribe: Callable[[], None] | None = None
        self._remote_save = DebouncedTask(
            self.sync_settings.debounce_seconds,
            self._push_remote,
            name=f"remote-save[{self.context_id}]",
        )

        self.user: User | None = None
        self.current_word: WordProfile | None = None
        self.previous_word: WordProfile | None = None
        self.last_error: str | None = None
        self.syncing = False

    # -- lifecycle -----------------------------------------------------

    def start(self) -> None:
        local = self.gateway.load_local_snapshot()
        with self._lock:
            if local is not None:
                self._snapshot = local
            self._snapshot.study_stats = check_streak(self._snapshot.study_stats, self._today())
            self._persist_local()

        if self._unsubscribe is None:
            self._unsubscribe = self.gateway.subscribe(self._on_sync_event)

        user = self.gateway.auth.current_user()
        if user is not None:
            # a restored session is treated like a fresh login
            self.user = user
            self._login_sync(user)
        logger.info("session %s started (user=%s)", self.context_id, user.id if user else None)

    def close(self) -> None:
        flushed = self._remote_save.flush()
        if flushed:
            logger.info("session %s flushed pending cloud save", self.context_id)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def remote_save_pending(self) -> bool:
        return self._remote_save.pending

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot.copy()

    # -- search --------------------------------------------------------

    def search(self, term: str) -> SearchOutcome:
        check = validate_search_term(term)
        if not check.allowed:
            status = "EMPTY" if not normalize_search_term(term) else "REJECTED"
            return SearchOutcome(status=status, word=self.current_word, error=check.reason)
        clean = normalize_search_term(term)

        with self._lock:
            self._search_generation += 1
            generation = self._search_generation
            cached_key = find_cached_key(self._snapshot.word_cache, clean)
            if cached_key is not None:
                cached = self._snapshot.word_cache[cached_key]
                if self.current_word and str(self.current_word.get("word", "")).lower() == clean.lower():
                    return SearchOutcome(status="UNCHANGED", word=self.current_word)
                self.current_word = cached
                self.previous_word = None
                self.last_error = None
                self._snapshot.history = push_history(
                    self._snapshot.history, cached_key, limit=self.sync_settings.history_limit
                )
                self._commit()
                return SearchOutcome(status="CACHED", word=cached)

            # an in-flight lookup already cleared the display; keep the word shown before it
            if self.current_word is not None:
                self.previous_word = self.current_word
            self.current_word = None
            self.last_error = None
            candidate = select_candidate(self._snapshot.favorites, self._snapshot.word_cache, rng=self._rng)

        try:
            profile = self.lookup.fetch_word_profile(clean)
        except LookupFailure as exc:
            logger.info("lookup failed for %r: %s", clean, exc)
            with self._lock:
                if generation == self._search_generation:
                    self.current_word = self.previous_word
                    self.previous_word = None
                    self.last_error = LOOKUP_ERROR_MESSAGE
                return SearchOutcome(
                    status="FAILED",
                    word=self.current_word,
                    review_candidate=candidate,
                    error=LOOKUP_ERROR_MESSAGE,
                )

        with self._lock:
            stored = self._store_profile(profile)
            if generation != self._search_generation:
                logger.debug("discarding superseded lookup for %r", clean)
                self._commit()
                return SearchOutcome(status="STALE", word=self.current_word, review_candidate=candidate)
            self.current_word = stored
            self.previous_word = None
            self._snapshot.history = push_history(
                self._snapshot.history, stored["word"], limit=self.sync_settings.history_limit
            )
            self._commit()
            return SearchOutcome(status="FETCHED", word=stored, review_candidate=candidate)

    def search_random(self) -> SearchOutcome:
        with self._lock:
            exclude = [*self._snapshot.history, *self._snapshot.word_cache.keys()]
        try:
            word = self.lookup.suggest_word(exclude)
        except LookupFailure as exc:
            logger.info("random word suggestion failed: %s", exc)
            return SearchOutcome(status="FAILED", word=self.current_word, error=LOOKUP_ERROR_MESSAGE)
        return self.search(word)

    def review_candidate(self) -> WordProfile | None:
        with self._lock:
            return select_candidate(self._snapshot.favorites, self._snapshot.word_cache, rng=self._rng)

    def analyze_text(self, text: str) -> AnalysisResult:
        words = self.lookup.analyze_text(text)
        return AnalysisResult(words=words, paragraphs=highlight_tokens(text, words))

    # -- favorites -----------------------------------------------------

    def toggle_favorite(self, word: str) -> bool:
        """Add or remove a favorite. Returns whether the word is a favorite afterwards."""
        with self._lock:
            favorites = self._snapshot.favorites
            if any(item.get("word") == word for item in favorites):
                self._snapshot.favorites = [item for item in favorites if item.get("word") != word]
                self._commit()
                return False

            profile = self._find_profile(word)
            if profile is None:
                raise ValueError("word not found")
            self._snapshot.favorites = [dict(profile), *favorites]
            self._commit()
            return True

    def is_favorite(self, word: str) -> bool:
        with self._lock:
            return any(item.get("word") == word for item in self._snapshot.favorites)

    # -- study actions -------------------------------------------------

    def record_review(self, word: str) -> WordStats:
        return self.apply_study_action(word, StudyAction.REVIEW)

    def record_quiz_result(self, word: str, correct: bool) -> WordStats:
        return self.apply_study_action(word, StudyAction.CORRECT if correct else StudyAction.INCORRECT)

    def record_quiz_answer(self, word: str, answer: str) -> tuple[bool, WordStats]:
        with self._lock:
            profile = self._find_profile(word)
            if profile is None:
                raise ValueError("word not found")
            correct = is_correct_answer(profile, answer)
            return correct, self.record_quiz_result(profile["word"], correct)

    def apply_study_action(self, word: str, action: StudyAction) -> WordStats:
        with self._lock:
            cache = self._snapshot.word_cache
            favorites = self._snapshot.favorites
            cache_key = word if word in cache else find_cached_key(cache, word)
            key = cache_key or word
            fav_index = next((idx for idx, item in enumerate(favorites) if item.get("word") == key), None)
            if cache_key is None and fav_index is None:
                raise ValueError("word not found")

            copies = []
            if cache_key is not None:
                copies.append(cache[cache_key])
            if fav_index is not None:
                copies.append(favorites[fav_index])
            stats = apply_action(_most_advanced_stats(copies), action, now=self._clock())

            # both collections change inside the same critical section
            if cache_key is not None:
                cache[cache_key] = with_stats(cache[cache_key], stats)
            if fav_index is not None:
                favorites[fav_index] = with_stats(favorites[fav_index], stats)
            if self.current_word is not None and self.current_word.get("word") == key:
                self.current_word = with_stats(self.current_word, stats)
            self._commit()
            return stats

    def build_quiz(self) -> list[QuizQuestion]:
        with self._lock:
            snapshot = self._snapshot.copy()
        return build_quiz(
            word_cache=snapshot.word_cache,
            favorites=snapshot.favorites,
            settings=snapshot.settings,
            rng=self._rng,
        )

    def flashcards(self) -> list[WordProfile]:
        with self._lock:
            return build_flashcard_deck(self._snapshot.copy().favorites)

    def progress(self) -> ProgressSummary:
        with self._lock:
            return build_progress_summary(self._snapshot)

    # -- settings, import, export --------------------------------------

    def update_settings(self, changes: dict) -> dict:
        with self._lock:
            merged = {**self._snapshot.settings.to_dict(), **changes}
            self._snapshot.settings = settings_from_dict(merged)
            self._commit()
            return self._snapshot.settings.to_dict()

    def export_document(self) -> str:
        with self._lock:
            return export_snapshot_document(self._snapshot)

    def import_document(self, text: str | bytes) -> list[str]:
        # raises ImportFormatError before any state is touched
        patch = parse_snapshot_document(text)
        with self._lock:
            self._snapshot = patch.apply_to(self._snapshot)
            self._refresh_current_word()
            self._commit()
        applied = patch.present_fields()
        logger.info("imported snapshot fields: %s", ", ".join(applied) or "none")
        return applied

    def reset_data(self) -> None:
        with self._lock:
            settings = self._snapshot.settings
            self._snapshot = Snapshot(settings=settings)
            self._snapshot.study_stats = check_streak(self._snapshot.study_stats, self._today())
            self.current_word = None
            self.previous_word = None
            self._commit()

    # -- accounts and sync ---------------------------------------------

    def login(self, email: str, password: str) -> User:
        user = self.gateway.auth.login(email, password, origin=self.context_id)
        self.user = user
        self._login_sync(user)
        return user

    def register(self, email: str, password: str, name: str) -> User:
        user = self.gateway.auth.register(email, password, name, origin=self.context_id)
        self.user = user
        self._login_sync(user)
        return user

    def logout(self) -> None:
        self._remote_save.flush()
        self.gateway.auth.logout(origin=self.context_id)
        with self._lock:
            self.user = None
            self._remote_save.cancel()

    def sync_from_remote(self) -> bool:
        """Replace local state with the cloud snapshot (every sync after login)."""
        user = self.user
        if user is None:
            return False
        self.syncing = True
        try:
            remote = self.gateway.load_remote_snapshot(user.id)
        except SyncError as exc:
            logger.warning("cloud pull failed, keeping local state: %s", exc)
            return False
        finally:
            self.syncing = False
        if remote is None:
            return False

        with self._lock:
            if self.user is None or self.user.id != user.id:
                return False
            self._snapshot = replace_from_remote(remote, self._today())
            self._refresh_current_word()
            # pulled state is not pushed back, or sessions would echo saves forever
            self._persist_local()
        return True

    def _login_sync(self, user: User) -> None:
        self.syncing = True
        try:
            remote = self.gateway.load_remote_snapshot(user.id)
        except SyncError as exc:
            logger.warning("cloud fetch on login failed, local state stays authoritative: %s", exc)
            return
        finally:
            self.syncing = False

        with self._lock:
            if remote is not None:
                self._snapshot = merge_on_login(self._snapshot, remote, self._today())
                self._refresh_current_word()
            self._commit()

    def _on_sync_event(self, event: SyncEvent) -> None:
        if event.origin == self.context_id:
            return
        logger.debug("session %s received %s", self.context_id, event.type.value)

        if event.type == SyncEventType.LOGOUT:
            # changes made before the logout still belong to that account
            self._remote_save.flush()
            with self._lock:
                self.user = None
            return

        current = self.gateway.auth.current_user()
        if current is None:
            return
        if event.user_id and event.user_id != current.id:
            return
        with self._lock:
            if self.user is None or self.user.id != current.id:
                self.user = current
        self.sync_from_remote()

    def _push_remote(self) -> None:
        with self._lock:
            user = self.user
            snapshot = self._snapshot.copy()
        if user is None:
            return
        self.syncing = True
        try:
            self.gateway.save_remote_snapshot(user.id, snapshot, origin=self.context_id)
        except SyncError as exc:
            logger.warning("cloud save failed, will retry on next change: %s", exc)
        finally:
            self.syncing = False

    # -- internals (call with the lock held) ---------------------------

    def _commit(self) -> None:
        self._persist_local()
        if self.user is not None:
            self._remote_save.schedule()

    def _persist_local(self) -> None:
        try:
            self.gateway.save_local_snapshot(self._snapshot)
        except OSError as exc:
            logger.error("local snapshot write failed: %s", exc)

    def _store_profile(self, profile: WordProfile) -> WordProfile:
        key = profile["word"]
        existing = self._snapshot.word_cache.get(key)
        stored = dict(profile)
        if existing is not None:
            # creation time and study stats survive a re-fetch of the same word
            if "timestamp" in existing:
                stored["timestamp"] = existing["timestamp"]
            if "stats" in existing:
                stored["stats"] = existing["stats"]
        self._snapshot.word_cache[key] = stored
        return stored

    def _find_profile(self, word: str) -> WordProfile | None:
        cache = self._snapshot.word_cache
        key = word if word in cache else find_cached_key(cache, word)
        if key is not None:
            return cache[key]
        if self.current_word is not None and self.current_word.get("word") == word:
            return self.current_word
        return next((item for item in self._snapshot.favorites if item.get("word") == word), None)

    def _refresh_current_word(self) -> None:
        if self.current_word is None:
            return
        refreshed = self._find_profile(str(self.current_word.get("word", "")))
        if refreshed is not None:
            self.current_word = refreshed


def find_cached_key(word_cache: dict[str, WordProfile], term: str) -> str | None:
    if term in word_cache:
        return term
    lowered = term.strip().lower()
    return next((key for key in word_cache if key.lower() == lowered), None)


def _most_advanced_stats(copies: list[WordProfile]) -> WordStats | None:
    found = [stats for stats in (word_stats(item) for item in copies) if stats is not None]
    if not found:
        return None
    return max(found, key=lambda stats: (stats.last_reviewed, stats.reviews))
