# FILE: services/review_session.py
"""
Draft review session: one capture attempt from free text to a committed
ledger entry.

    INPUT ──analyze──▶ PROCESSING ──candidates──▶ REVIEW ──confirm──▶ SUCCESS
      ▲                    │                        │  ▲
      └──── failure/empty ─┘                        └──┘ commit failure

Transitions are triggered by the user or by an awaited result only; the
session never advances on a timer except closing itself after SUCCESS.
Entering INPUT always drops the held draft. One classification and one
commit at most are in flight per session.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from pydantic import ValidationError

from config import SUCCESS_CLOSE_DELAY
from core.errors import (
    ClassificationEmpty,
    ClassificationError,
    ClassificationRejected,
    CommitError,
    CommitPartialFailure,
    InvalidDraftEdit,
    InvalidTransition,
    SessionBusy,
)
from core.phases import ReviewPhase
from models.drafts import (
    Draft,
    NavigateIntent,
    ServiceOrderDraft,
    StockDraft,
    TransactionDraft,
)
from models.ledger import CommitOutcome
from services.merger import resolve_draft
from services.payment_methods import normalize_payment_method
from services.utils import deep_serialize

logger = logging.getLogger("review_session")

EDITABLE_FIELDS = {
    TransactionDraft: {
        "description", "amount", "debt_amount", "items", "customer_name",
        "category", "payment_method", "type",
    },
    StockDraft: {"products"},
    ServiceOrderDraft: {"customer_name", "device", "description"},
    NavigateIntent: {"target_page"},
}

SUCCESS_MESSAGE = "Lançamento confirmado!"


class DraftReviewSession:
    def __init__(
        self,
        classifier,
        coordinator,
        *,
        context: str = "quick-capture",
        close_delay: float = SUCCESS_CLOSE_DELAY,
        on_close: Optional[Callable[["DraftReviewSession"], None]] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or uuid4().hex
        self.classifier = classifier
        self.coordinator = coordinator
        self.context = context
        self.close_delay = close_delay
        self._on_close = on_close

        self.phase = ReviewPhase.INPUT
        self.text_input = ""
        self.draft: Optional[Draft] = None
        self.message = ""
        self.last_outcome: Optional[CommitOutcome] = None
        self.closed = False

        self._busy = False
        self._resume: Optional[CommitOutcome] = None
        self._resume_fingerprint: Optional[str] = None
        self._close_handle: Optional[asyncio.TimerHandle] = None
        self.last_activity = time.monotonic()

    # -----------------------------
    # Guards
    # -----------------------------
    @property
    def busy(self) -> bool:
        return self._busy

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def idle_for(self) -> float:
        return time.monotonic() - self.last_activity

    def _require(self, *phases: ReviewPhase) -> None:
        if self.closed:
            raise InvalidTransition("Sessão encerrada.")
        if self._busy:
            raise SessionBusy()
        if self.phase not in phases:
            raise InvalidTransition(
                f"Ação indisponível na etapa {self.phase.value}."
            )

    def _enter_input(self, message: str = "") -> None:
        self.phase = ReviewPhase.INPUT
        self.draft = None
        self.message = message
        self._forget_progress()

    def _forget_progress(self) -> None:
        self._resume = None
        self._resume_fingerprint = None

    # -----------------------------
    # INPUT
    # -----------------------------
    def append_transcript(self, transcript: str) -> None:
        """Accumulate a recognized utterance onto the text being composed."""
        self._require(ReviewPhase.INPUT)
        transcript = transcript.strip()
        if not transcript:
            return
        self.text_input = f"{self.text_input} {transcript}" if self.text_input else transcript

    def set_text(self, text: str) -> None:
        self._require(ReviewPhase.INPUT)
        self.text_input = text

    async def analyze(self, text: Optional[str] = None) -> Optional[Draft]:
        """
        Classify the composed text and hold the resulting draft for review.
        Returns None (and stays in INPUT) when there is nothing to analyze.
        """
        self._require(ReviewPhase.INPUT)
        if text is not None:
            self.text_input = text
        text = self.text_input.strip()
        if not text:
            return None

        self.phase = ReviewPhase.PROCESSING
        self.message = ""
        self._busy = True
        try:
            candidates = await self.classifier.classify(text, self.context)
            draft = resolve_draft(candidates)
        except ClassificationError as exc:
            logger.warning(f"[ANALYZE] session={self.id} failed: {exc.code}")
            self._enter_input(exc.message)
            raise
        except Exception as exc:
            logger.exception(f"[ANALYZE] session={self.id} classification crashed: {exc}")
            error = ClassificationRejected()
            self._enter_input(error.message)
            raise error from exc
        finally:
            self._busy = False

        if draft is None:
            error = ClassificationEmpty()
            logger.info(f"[ANALYZE] session={self.id} nothing understood")
            self._enter_input(error.message)
            raise error

        self.draft = draft
        self.phase = ReviewPhase.REVIEW
        logger.info(f"[ANALYZE] session={self.id} draft kind={draft.kind.value}")
        return draft

    # -----------------------------
    # REVIEW
    # -----------------------------
    def update_draft(self, **fields: Any) -> Draft:
        """Overwrite fields of the held draft. No re-merge happens."""
        self._require(ReviewPhase.REVIEW)
        draft = self.draft
        allowed = EDITABLE_FIELDS[type(draft)]
        unknown = set(fields) - allowed
        if unknown:
            raise InvalidDraftEdit(f"Campos não editáveis: {', '.join(sorted(unknown))}")

        if "payment_method" in fields and isinstance(fields["payment_method"], str):
            fields["payment_method"] = normalize_payment_method(fields["payment_method"])

        try:
            validated = type(draft).model_validate({**draft.model_dump(), **fields})
        except ValidationError as exc:
            raise InvalidDraftEdit() from exc

        for name in fields:
            setattr(draft, name, getattr(validated, name))
        self._forget_progress()
        return draft

    def reset(self) -> None:
        """Back to INPUT; the draft is discarded, the typed text kept."""
        self._require(ReviewPhase.INPUT, ReviewPhase.REVIEW)
        self._enter_input()

    async def confirm(self) -> CommitOutcome:
        self._require(ReviewPhase.REVIEW)
        draft = self.draft
        fingerprint = draft.model_dump_json()
        resume = self._resume if self._resume_fingerprint == fingerprint else None

        self._busy = True
        try:
            outcome = await self.coordinator.commit(draft, resume=resume)
        except CommitPartialFailure as exc:
            # Remember what reached the store so retrying this draft skips it
            self._resume = exc.outcome
            self._resume_fingerprint = fingerprint if exc.outcome is not None else None
            self.message = exc.message
            logger.error(f"[COMMIT] session={self.id} partial failure: {exc.code}")
            raise
        except CommitError as exc:
            self.message = exc.message
            logger.error(f"[COMMIT] session={self.id} failed: {exc.code}")
            raise
        finally:
            self._busy = False

        self.last_outcome = outcome
        self.phase = ReviewPhase.SUCCESS
        self.message = SUCCESS_MESSAGE
        self._forget_progress()
        self._schedule_close()
        logger.info(f"[COMMIT] session={self.id} committed kind={outcome.kind.value}")
        return outcome

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def _schedule_close(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.close()
            return
        self._close_handle = loop.call_later(self.close_delay, self.close)

    def close(self) -> None:
        if self.closed:
            return
        if self._close_handle is not None:
            self._close_handle.cancel()
            self._close_handle = None
        self.closed = True
        self.draft = None
        self._forget_progress()
        if self._on_close:
            self._on_close(self)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.id,
            "phase": self.phase.value,
            "context": self.context,
            "text": self.text_input,
            "message": self.message,
            "draft": deep_serialize(self.draft),
            "outcome": deep_serialize(self.last_outcome),
            "closed": self.closed,
        }
