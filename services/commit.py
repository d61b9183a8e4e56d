# FILE: services/commit.py
"""
Commit coordinator: one finalized draft in, persisted entities out.

Dispatches on the draft kind to its executor. Writes are not rolled
back: when some writes succeed and a later one fails, the caller gets
CommitPartialFailure carrying the partial outcome so a retry of the same
draft can resume where it stopped.
"""

import logging
from typing import Optional

from core.action_kind import ActionKind
from core.errors import CommitError, CommitRejected
from executors.catalog import NavigateExecutor, ServiceOrderExecutor, StockExecutor
from executors.transaction import TransactionExecutor
from models.drafts import Draft
from models.ledger import CommitOutcome

logger = logging.getLogger("commit_coordinator")


class CommitCoordinator:
    def __init__(self, gateway):
        self.gateway = gateway
        self.executors = {
            ActionKind.TRANSACTION: TransactionExecutor(gateway),
            ActionKind.STOCK: StockExecutor(gateway),
            ActionKind.SERVICE_ORDER: ServiceOrderExecutor(gateway),
            ActionKind.NAVIGATE: NavigateExecutor(gateway),
        }

    async def commit(
        self,
        draft: Draft,
        *,
        resume: Optional[CommitOutcome] = None,
    ) -> CommitOutcome:
        executor = self.executors.get(draft.kind)
        if executor is None:
            raise CommitRejected(f"Ação desconhecida: {draft.kind}")
        if resume is not None and resume.kind is not draft.kind:
            resume = None

        logger.info(f"[COMMIT] kind={draft.kind.value} resume={resume is not None}")
        try:
            return await executor.execute(draft, resume=resume)
        except CommitError:
            raise
        except Exception as exc:
            logger.exception(f"[COMMIT] unexpected failure: {exc}")
            raise CommitRejected() from exc
