import logging
from decimal import Decimal
from typing import Optional

from core.action_kind import ActionKind, TransactionType
from core.errors import CommitRejected
from executors.base import BaseExecutor, commit_failure
from executors.catalog import save_stock_entries
from models.drafts import TransactionDraft
from models.ledger import CommitOutcome, LedgerItem, TransactionRecord
from services.utils import format_brl

logger = logging.getLogger("commit_coordinator")

WALK_IN_CUSTOMER = "Cliente Diverso"
GENERIC_SUPPLIER = "Fornecedor"


def build_transaction_record(draft: TransactionDraft) -> TransactionRecord:
    if draft.type is TransactionType.INCOME:
        entity = draft.customer_name or WALK_IN_CUSTOMER
    else:
        entity = GENERIC_SUPPLIER
    return TransactionRecord(
        description=draft.description,
        amount=draft.amount,
        type=draft.type,
        category=draft.category,
        payment_method=draft.payment_method,
        entity=entity,
        items=[
            LedgerItem(
                product_name=i.name,
                quantity=i.quantity,
                unit_price=i.unit_price,
                total=i.total,
            )
            for i in draft.items
        ],
        is_debt_payment=draft.is_debt_payment,
    )


def debt_description(draft: TransactionDraft) -> str:
    return f"Restante: {draft.description} (Total era {format_brl(draft.total)})"


def should_write_ledger(draft: TransactionDraft) -> bool:
    """A zero-value, item-less draft is a pure debt note: no ledger row."""
    return draft.amount > Decimal("0") or bool(draft.items)


class TransactionExecutor(BaseExecutor):
    """
    Ledger entry first, then the linked debt, then any products announced
    with the sale. A debt is never written before its ledger entry, and
    never without a customer name.
    """

    async def execute(
        self,
        draft: TransactionDraft,
        *,
        resume: Optional[CommitOutcome] = None,
    ) -> CommitOutcome:
        has_debt = draft.debt_amount > 0
        if has_debt and not draft.customer_name:
            raise CommitRejected("Informe o nome do cliente para lançar o fiado.")

        outcome = CommitOutcome(kind=ActionKind.TRANSACTION)
        if resume is not None:
            outcome = resume.model_copy(update={"products": list(resume.products)})

        if outcome.transaction is not None:
            logger.info(f"[COMMIT] ledger {outcome.transaction.id} already written; resuming")
        elif should_write_ledger(draft):
            record = build_transaction_record(draft)
            try:
                outcome.transaction = await self.gateway.save_transaction(record)
            except Exception as exc:
                logger.exception(f"[COMMIT] ledger save failed: {exc}")
                raise CommitRejected() from exc
        else:
            logger.info("[COMMIT] zero-value draft without items; ledger skipped")
            outcome.ledger_skipped = True

        if has_debt and outcome.debt_account is None:
            try:
                outcome.debt_account = await self.gateway.save_debt(
                    draft.customer_name, draft.debt_amount, debt_description(draft)
                )
            except Exception as exc:
                logger.exception(f"[COMMIT] debt save failed: {exc}")
                raise commit_failure(outcome) from exc

        await save_stock_entries(self.gateway, draft.stock_entries, outcome)
        return outcome
