# app.py
import functools
import json
import logging
import os
from asyncio import Lock
from datetime import date
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import DATABASE_URL, DEBUG, SESSION_IDLE_TIMEOUT
from core.errors import (
    CaptureError,
    ClassificationEmpty,
    ClassificationError,
    CommitError,
    InvalidDraftEdit,
    InvalidTransition,
)
from services.cash_closing import summarize_closing
from services.classifier import build_default_classifier
from services.commit import CommitCoordinator
from services.ledger_store import InMemoryLedgerStore, connect_prisma_store
from services.review_session import DraftReviewSession
from services.utils import deep_serialize


# -----------------------------
# Structured Logging Setup
# -----------------------------
class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(
            {
                "time": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "name": record.name,
                "message": record.getMessage(),
                "exception": record.exc_text,
            }
        )


logger = logging.getLogger("capture_api")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
if not logger.handlers:
    logger.addHandler(handler)

# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="Voice Ledger Capture API", version="1.0")

# Collaborators (replaced at startup, or by tests)
app.state.store = InMemoryLedgerStore()
app.state.store_kind = "memory"
app.state.classifier = None
app.state.sessions = {}
app.state.session_idle_timeout = SESSION_IDLE_TIMEOUT

# -----------------------------
# Metrics
# -----------------------------
metrics_lock = Lock()
request_counters = {
    "sessions": 0,
    "analyzed": 0,
    "committed": 0,
    "total": 0,
    "errors": 0,
}


async def _count(*keys: str) -> None:
    async with metrics_lock:
        for key in keys:
            request_counters[key] += 1


# -----------------------------
# Pydantic Models
# -----------------------------
class OpenSessionRequest(BaseModel):
    context: str = Field(default="quick-capture", min_length=1)


class TextRequest(BaseModel):
    text: str = Field(..., min_length=1)


class AnalyzeRequest(BaseModel):
    text: Optional[str] = None


# -----------------------------
# Failure envelope
# -----------------------------
def _status_for(exc: CaptureError) -> int:
    if isinstance(exc, InvalidTransition):
        return 409
    if isinstance(exc, (InvalidDraftEdit, ClassificationEmpty)):
        return 422
    if isinstance(exc, ClassificationError):
        return 502
    if isinstance(exc, CommitError):
        return 500
    return 400


@app.exception_handler(CaptureError)
async def capture_error_handler(request: Request, exc: CaptureError):
    await _count("errors")
    return JSONResponse(status_code=_status_for(exc), content={"error": exc.to_dict()})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "type": "HTTPException",
                "code": f"HTTP_{exc.status_code}",
                "message": str(exc.detail),
            }
        },
    )


def guarded(endpoint):
    """Count the request; turn anything unexpected into a 500 envelope."""

    @functools.wraps(endpoint)
    async def wrapper(*args, **kwargs):
        await _count("total")
        try:
            return await endpoint(*args, **kwargs)
        except (CaptureError, HTTPException):
            raise
        except Exception as e:
            await _count("errors")
            logger.exception(f"[ERROR] {endpoint.__name__}: {e}")
            raise HTTPException(
                status_code=500,
                detail=str(e) if DEBUG else "An unexpected error occurred",
            )

    return wrapper


def _get_session(session_id: str) -> DraftReviewSession:
    session = app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Sessão não encontrada")
    session.touch()
    return session


def _discard_session(session: DraftReviewSession) -> None:
    app.state.sessions.pop(session.id, None)


def _evict_idle_sessions() -> int:
    """Close sessions abandoned by their client; in-flight ones are kept."""
    timeout = app.state.session_idle_timeout
    idle = [
        s for s in app.state.sessions.values()
        if not s.busy and s.idle_for() > timeout
    ]
    for session in idle:
        logger.info(f"[SESSION_EVICT] id={session.id} phase={session.phase.value}")
        session.close()
        _discard_session(session)
    return len(idle)


# -----------------------------
# Startup / Shutdown Events
# -----------------------------
@app.on_event("startup")
async def startup():
    if not DATABASE_URL:
        logger.warning("DATABASE_URL not set; using in-memory ledger.")
    else:
        try:
            app.state.store = await connect_prisma_store(DATABASE_URL)
            app.state.store_kind = "prisma"
        except Exception:
            logger.exception("❌ Failed to connect Prisma DB; using in-memory ledger")
            if DEBUG:
                raise

    if os.getenv("GOOGLE_API_KEY"):
        app.state.classifier = build_default_classifier()
    else:
        logger.warning("GOOGLE_API_KEY not set; classification disabled.")


@app.on_event("shutdown")
async def shutdown():
    for session in list(app.state.sessions.values()):
        session.close()
    if app.state.store_kind == "prisma":
        await app.state.store.db.disconnect()
        logger.info("✅ Prisma DB disconnected")


# -----------------------------
# API Endpoints
# -----------------------------
@app.get("/")
async def root():
    return {"message": "Voice Ledger Capture API is running."}


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "store": app.state.store_kind,
        "classifier": app.state.classifier is not None,
        "open_sessions": len(app.state.sessions),
    }


@app.get("/metrics")
async def metrics() -> Dict[str, Any]:
    async with metrics_lock:
        return request_counters.copy()


@app.post("/sessions", status_code=201)
@guarded
async def open_session(request: Optional[OpenSessionRequest] = None):
    request = request or OpenSessionRequest()
    _evict_idle_sessions()
    session = DraftReviewSession(
        app.state.classifier,
        CommitCoordinator(app.state.store),
        context=request.context,
        on_close=_discard_session,
    )
    app.state.sessions[session.id] = session
    await _count("sessions")
    logger.info(f"[SESSION_OPEN] id={session.id} context={session.context}")
    return session.snapshot()


@app.get("/sessions/{session_id}")
@guarded
async def get_session(session_id: str):
    return _get_session(session_id).snapshot()


@app.post("/sessions/{session_id}/transcript")
@guarded
async def append_transcript(session_id: str, request: TextRequest):
    session = _get_session(session_id)
    session.append_transcript(request.text)
    return session.snapshot()


@app.post("/sessions/{session_id}/analyze")
@guarded
async def analyze(session_id: str, request: Optional[AnalyzeRequest] = None):
    request = request or AnalyzeRequest()
    session = _get_session(session_id)
    if session.classifier is None:
        raise HTTPException(status_code=503, detail="Classificação indisponível")

    logger.info(f"[ANALYZE] id={session.id} text_length={len(request.text or session.text_input)}")
    await session.analyze(request.text)
    await _count("analyzed")
    return session.snapshot()


@app.patch("/sessions/{session_id}/draft")
@guarded
async def edit_draft(session_id: str, fields: Dict[str, Any] = Body(...)):
    session = _get_session(session_id)
    session.update_draft(**fields)
    return session.snapshot()


@app.post("/sessions/{session_id}/confirm")
@guarded
async def confirm(session_id: str):
    session = _get_session(session_id)
    await session.confirm()
    await _count("committed")
    return session.snapshot()


@app.post("/sessions/{session_id}/reset")
@guarded
async def reset(session_id: str):
    session = _get_session(session_id)
    session.reset()
    return session.snapshot()


@app.delete("/sessions/{session_id}", status_code=204)
@guarded
async def delete_session(session_id: str):
    _get_session(session_id).close()


@app.get("/closing")
@guarded
async def closing(day: Optional[date] = None):
    day = day or date.today()
    transactions = await app.state.store.list_transactions(day)
    return deep_serialize(summarize_closing(transactions, day))


# -----------------------------
# Entrypoint
# -----------------------------
import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("API_LAYER.app:app", host="0.0.0.0", port=port, workers=1)
