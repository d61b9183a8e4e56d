import logging
from typing import Optional, Sequence

from core.action_kind import ActionKind
from core.errors import CommitRejected
from executors.base import BaseExecutor, commit_failure
from models.drafts import NavigateIntent, ServiceOrderDraft, StockDraft, StockEntry
from models.ledger import CommitOutcome, Product, ServiceOrder

logger = logging.getLogger("commit_coordinator")


def product_from_entry(entry: StockEntry) -> Product:
    return Product(
        name=entry.name,
        cost_price=entry.cost_price,
        sale_price=entry.sale_price,
        stock=entry.quantity,
    )


async def save_stock_entries(gateway, entries: Sequence[StockEntry], outcome: CommitOutcome) -> None:
    """
    Create one product per entry, in order. Entries already present in
    outcome.products (same draft, earlier attempt) are skipped.
    """
    done = len(outcome.products)
    if done:
        logger.info(f"[COMMIT] {done} product(s) already saved; resuming")
    for entry in entries[done:]:
        try:
            outcome.products.append(await gateway.save_product(product_from_entry(entry)))
        except Exception as exc:
            logger.exception(f"[COMMIT] product '{entry.name}' failed: {exc}")
            raise commit_failure(outcome) from exc


class StockExecutor(BaseExecutor):
    """Each stock entry becomes its own new product."""

    async def execute(self, draft: StockDraft, *, resume: Optional[CommitOutcome] = None) -> CommitOutcome:
        outcome = CommitOutcome(kind=ActionKind.STOCK)
        if resume is not None:
            outcome.products = list(resume.products)
        await save_stock_entries(self.gateway, draft.products, outcome)
        return outcome


class ServiceOrderExecutor(BaseExecutor):
    async def execute(self, draft: ServiceOrderDraft, *, resume: Optional[CommitOutcome] = None) -> CommitOutcome:
        order = ServiceOrder(
            customer_name=draft.customer_name,
            device=draft.device,
            description=draft.description,
        )
        try:
            saved = await self.gateway.save_service_order(order)
        except Exception as exc:
            logger.exception(f"[COMMIT] service order failed: {exc}")
            raise CommitRejected() from exc
        return CommitOutcome(kind=ActionKind.SERVICE_ORDER, service_order=saved)


class NavigateExecutor(BaseExecutor):
    async def execute(self, draft: NavigateIntent, *, resume: Optional[CommitOutcome] = None) -> CommitOutcome:
        try:
            target = await self.gateway.navigate(draft.target_page)
        except Exception as exc:
            logger.exception(f"[COMMIT] navigation to '{draft.target_page}' failed: {exc}")
            raise CommitRejected("Não foi possível abrir a página.") from exc
        return CommitOutcome(kind=ActionKind.NAVIGATE, target_page=target)
