from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from gre_insight.api.schemas import (
    AnalyzeRequest,
    LoginRequest,
    QuizAnswerRequest,
    RegisterRequest,
    SearchRequest,
    SettingsUpdateRequest,
    WordRequest,
)
from gre_insight.config import ensure_dirs
from gre_insight.errors import ImportFormatError, InvalidCredentialsError, UserExistsError
from gre_insight.logging_config import get_logger, setup_logging
from gre_insight.services.auth import AuthService
from gre_insight.services.backup import write_export_file
from gre_insight.services.llm import LLMService
from gre_insight.session import StudySession
from gre_insight.storage.db import Database
from gre_insight.storage.local import LocalSnapshotStore
from gre_insight.sync.events import InProcessEventBus
from gre_insight.sync.gateway import PersistenceGateway

logger = get_logger(__name__)

db = Database()
event_bus = InProcessEventBus()
auth_service = AuthService(db, event_bus)
llm_service = LLMService()
gateway = PersistenceGateway(local_store=LocalSnapshotStore(), auth=auth_service, bus=event_bus)
session = StudySession(gateway=gateway, lookup=llm_service)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    setup_logging()
    ensure_dirs()
    db.initialize()
    session.start()
    logger.info("GRE Insight ready (llm_available=%s)", llm_service.available())
    yield
    session.close()


app = FastAPI(title="GRE Insight", version="0.3.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "llm_available": llm_service.available()}


@app.post("/api/search")
def search(req: SearchRequest) -> dict:
    outcome = session.search(req.term)
    if outcome.status == "EMPTY":
        raise HTTPException(status_code=400, detail="word is empty")
    if outcome.status == "REJECTED":
        raise HTTPException(status_code=400, detail=outcome.error)
    if outcome.status == "FAILED":
        raise HTTPException(status_code=502, detail=outcome.error)
    word = outcome.word
    return {
        "ok": True,
        **outcome.to_dict(),
        "is_favorite": bool(word) and session.is_favorite(word["word"]),
    }


@app.post("/api/random-word")
def random_word() -> dict:
    outcome = session.search_random()
    if outcome.status == "FAILED":
        raise HTTPException(status_code=502, detail=outcome.error)
    return {"ok": True, **outcome.to_dict()}


@app.get("/api/review-candidate")
def review_candidate() -> dict:
    return {"ok": True, "word": session.review_candidate()}


@app.get("/api/words")
def words(word: str | None = Query(default=None)) -> dict:
    snapshot = session.snapshot()
    if word is None:
        items = sorted(snapshot.word_cache.values(), key=lambda item: item.get("timestamp") or 0, reverse=True)
        return {"ok": True, "items": items, "total": len(items)}
    lowered = word.strip().lower()
    match = next((item for key, item in snapshot.word_cache.items() if key.lower() == lowered), None)
    if match is None:
        raise HTTPException(status_code=404, detail="word not found")
    return {"ok": True, "word": match}


@app.get("/api/history")
def history() -> dict:
    return {"ok": True, "items": session.snapshot().history}


@app.get("/api/favorites")
def favorites() -> dict:
    items = session.snapshot().favorites
    return {"ok": True, "items": items, "total": len(items)}


@app.post("/api/favorites/toggle")
def toggle_favorite(req: WordRequest) -> dict:
    try:
        is_favorite = session.toggle_favorite(req.word)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, "word": req.word, "is_favorite": is_favorite}


@app.post("/api/words/{word}/review")
def review_word(word: str) -> dict:
    try:
        stats = session.record_review(word)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, "word": word, "stats": stats.to_dict()}


@app.get("/api/flashcards")
def flashcards() -> dict:
    deck = session.flashcards()
    return {"ok": True, "items": deck, "total": len(deck)}


@app.get("/api/quiz")
def quiz() -> dict:
    questions = session.build_quiz()
    return {
        "ok": True,
        "questions": [question.to_dict() for question in questions],
        "total": len(questions),
    }


@app.post("/api/quiz/answer")
def quiz_answer(req: QuizAnswerRequest) -> dict:
    try:
        if req.answer is not None:
            correct, stats = session.record_quiz_answer(req.word, req.answer)
        elif req.correct is not None:
            correct = req.correct
            stats = session.record_quiz_result(req.word, correct)
        else:
            raise HTTPException(status_code=400, detail="answer or correct is required")
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, "word": req.word, "correct": correct, "stats": stats.to_dict()}


@app.get("/api/stats")
def stats() -> dict:
    return {"ok": True, **session.progress().to_dict()}


@app.get("/api/settings")
def get_settings() -> dict:
    return {"ok": True, "settings": session.snapshot().settings.to_dict()}


@app.put("/api/settings")
def update_settings(req: SettingsUpdateRequest) -> dict:
    changes = req.model_dump(exclude_none=True)
    return {"ok": True, "settings": session.update_settings(changes)}


@app.get("/api/export")
def export_snapshot(to_file: int = Query(default=0)) -> Response:
    if to_file:
        path = write_export_file(session.snapshot())
        return JSONResponse({"ok": True, "path": path.name})
    return Response(
        content=session.export_document(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="gre_insight_export.json"'},
    )


@app.post("/api/import")
async def import_snapshot(request: Request) -> dict:
    body = await request.body()
    try:
        applied = session.import_document(body)
    except ImportFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "applied": applied}


@app.post("/api/analyze")
def analyze(req: AnalyzeRequest) -> dict:
    if not req.text.strip():
        raise HTTPException(status_code=400, detail="text is empty")
    result = session.analyze_text(req.text)
    return {
        "ok": True,
        "words": [item.to_dict() for item in result.words],
        "paragraphs": result.paragraphs,
    }


@app.post("/api/auth/register")
def register(req: RegisterRequest) -> dict:
    try:
        user = session.register(req.email, req.password, req.name)
    except UserExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "user": user.to_dict()}


@app.post("/api/auth/login")
def login(req: LoginRequest) -> dict:
    try:
        user = session.login(req.email, req.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return {"ok": True, "user": user.to_dict()}


@app.post("/api/auth/logout")
def logout() -> dict:
    session.logout()
    return {"ok": True}


@app.get("/api/auth/me")
def me() -> dict:
    user = session.user
    return {
        "ok": True,
        "user": user.to_dict() if user else None,
        "syncing": session.syncing,
        "pending_cloud_save": session.remote_save_pending,
    }


@app.post("/api/sync/pull")
def sync_pull() -> dict:
    if session.user is None:
        raise HTTPException(status_code=401, detail="not logged in")
    pulled = session.sync_from_remote()
    return {"ok": True, "pulled": pulled}
