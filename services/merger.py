# FILE: services/merger.py
"""
Candidate merge and draft resolution.

The classifier may split one utterance ("vendi uma camisa e um boné")
into several candidates. This module folds them into the single draft a
review session holds. PURE and DETERMINISTIC: no I/O, no LLM calls, the
same candidate list always yields the same draft.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Sequence

from core.action_kind import ActionKind, TransactionType
from models.candidates import (
    LineItem,
    NavigateCandidate,
    ServiceOrderCandidate,
    StockCandidate,
    TransactionCandidate,
)
from models.drafts import (
    DEFAULT_CATEGORY,
    Draft,
    NavigateIntent,
    ServiceOrderDraft,
    StockDraft,
    StockEntry,
    TransactionDraft,
)
from services.payment_methods import normalize_payment_method

logger = logging.getLogger("candidate_merger")

DESCRIPTION_SEPARATOR = " + "
ZERO = Decimal("0")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _quantity_label(quantity: Decimal) -> str:
    if quantity == quantity.to_integral_value():
        return str(int(quantity))
    return format(quantity.normalize(), "f")


def fallback_description(items: Sequence[LineItem], tx_type: TransactionType) -> str:
    """Label used when no candidate said what the transaction was about."""
    if items:
        return ", ".join(f"{_quantity_label(i.quantity)}x {i.name}" for i in items)
    return "Venda" if tx_type is TransactionType.INCOME else "Despesa"


def _join_descriptions(descriptions: Sequence[str]) -> str:
    joined: List[str] = []
    for desc in descriptions:
        desc = (desc or "").strip()
        # Exact duplicates only; similar wording is kept as-is
        if desc and desc not in joined:
            joined.append(desc)
    return DESCRIPTION_SEPARATOR.join(joined)


def _first(values):
    for v in values:
        if v:
            return v
    return None


# ---------------------------------------------------------------------
# Merge (TRANSACTION / STOCK → TransactionDraft)
# ---------------------------------------------------------------------
def merge_candidates(candidates: Sequence) -> Optional[TransactionDraft]:
    """
    Fold TRANSACTION/STOCK candidates, in order, into one TransactionDraft.

    - amount and debt_amount are summed (absent counts as zero)
    - items are concatenated in candidate order
    - descriptions are joined with " + "
    - a positive items total overrides the summed amount
    - STOCK candidates become stock_entries, created after the sale
    A lone TRANSACTION candidate is used as stated.
    Other candidate kinds are ignored.
    """
    monetary = [c for c in candidates if c.action_kind.is_monetary()]
    if not monetary:
        return None
    if len(monetary) == 1 and isinstance(monetary[0], TransactionCandidate):
        return draft_from_transaction(monetary[0])

    amount = ZERO
    debt_amount = ZERO
    items: List[LineItem] = []
    descriptions: List[str] = []
    stock_entries: List[StockEntry] = []
    tx_payloads = []

    for candidate in monetary:
        payload = candidate.payload
        amount += payload.amount or ZERO
        debt_amount += payload.debt_amount or ZERO
        if isinstance(candidate, TransactionCandidate):
            # STOCK candidates add money and a product, never ledger items
            items.extend(item.model_copy() for item in payload.items)
            descriptions.append(payload.description)
            tx_payloads.append(payload)
        else:
            stock_entries.append(_stock_entry(candidate))

    if items:
        items_total = sum((i.total for i in items), ZERO)
        if items_total > 0:
            if items_total != amount:
                logger.info(f"[MERGE] items total {items_total} overrides stated amount {amount}")
            amount = items_total

    tx_type = _first(p.type for p in tx_payloads) or TransactionType.INCOME
    description = _join_descriptions(descriptions) or fallback_description(items, tx_type)

    return TransactionDraft(
        description=description,
        amount=amount,
        debt_amount=debt_amount,
        type=tx_type,
        category=_first(p.category for p in tx_payloads) or DEFAULT_CATEGORY,
        payment_method=normalize_payment_method(_first(p.payment_method for p in tx_payloads)),
        items=items,
        customer_name=_first(p.customer_name for p in tx_payloads),
        is_debt_payment=any(p.is_debt_payment for p in tx_payloads),
        stock_entries=stock_entries,
    )


def draft_from_transaction(candidate: TransactionCandidate) -> TransactionDraft:
    """A lone TRANSACTION candidate becomes the draft as stated (no items override)."""
    payload = candidate.payload
    return TransactionDraft(
        description=(payload.description or "").strip()
        or fallback_description(payload.items, payload.type),
        amount=payload.amount or ZERO,
        debt_amount=payload.debt_amount or ZERO,
        type=payload.type,
        category=payload.category or DEFAULT_CATEGORY,
        payment_method=normalize_payment_method(payload.payment_method),
        items=[item.model_copy() for item in payload.items],
        customer_name=payload.customer_name,
        is_debt_payment=payload.is_debt_payment,
    )


# ---------------------------------------------------------------------
# Single-kind drafts
# ---------------------------------------------------------------------
def _stock_entry(candidate: StockCandidate) -> StockEntry:
    payload = candidate.payload
    return StockEntry(
        name=payload.product_name or "Novo Produto",
        cost_price=payload.cost_price,
        sale_price=payload.sale_price,
        quantity=payload.stock_quantity,
    )


def draft_from_stock(candidates: Sequence[StockCandidate]) -> StockDraft:
    return StockDraft(products=[_stock_entry(c) for c in candidates])


def draft_from_service_order(candidate: ServiceOrderCandidate) -> ServiceOrderDraft:
    payload = candidate.payload
    return ServiceOrderDraft(
        customer_name=payload.customer_name or "Cliente",
        device=payload.device or "Equipamento",
        description=payload.problem or "Serviço",
    )


def draft_from_navigate(candidate: NavigateCandidate) -> NavigateIntent:
    return NavigateIntent(target_page=candidate.payload.target_page)


# ---------------------------------------------------------------------
# Resolution (candidates → the one draft under review)
# ---------------------------------------------------------------------
def resolve_draft(candidates: Sequence) -> Optional[Draft]:
    """
    Pick the draft for one utterance. The first candidate decides the
    family; monetary families merge, the others take the first candidate.
    """
    if not candidates:
        return None

    lead = candidates[0]
    kind = lead.action_kind

    if kind.is_monetary():
        monetary = [c for c in candidates if c.action_kind.is_monetary()]
        has_transaction = any(c.action_kind.is_transaction() for c in monetary)

        if not has_transaction:
            # Independent new products, never merged into one line
            return draft_from_stock(monetary)
        return merge_candidates(monetary)

    if kind is ActionKind.SERVICE_ORDER:
        return draft_from_service_order(lead)
    return draft_from_navigate(lead)
