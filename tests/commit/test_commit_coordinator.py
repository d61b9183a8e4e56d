import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from capture_fixtures import tx
from core.action_kind import ActionKind, TransactionType
from core.errors import CommitPartialFailure, CommitRejected
from core.payment_method import PaymentMethod
from executors.catalog import product_from_entry
from executors.transaction import debt_description
from models.candidates import LineItem
from models.drafts import (
    NavigateIntent,
    ServiceOrderDraft,
    StockDraft,
    StockEntry,
    TransactionDraft,
)
from models.ledger import CommitOutcome, TransactionRecord
from services.commit import CommitCoordinator
from services.ledger_store import InMemoryLedgerStore
from services.merger import resolve_draft
from services.utils import format_brl


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
class RecordingStore(InMemoryLedgerStore):
    """In-memory store that logs call order and can fail on demand."""

    def __init__(self, fail=()):
        super().__init__()
        self.calls = []
        self.fail = set(fail)

    def _enter(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise ConnectionError(f"{name} offline")

    async def save_transaction(self, tx):
        self._enter("save_transaction")
        return await super().save_transaction(tx)

    async def save_debt(self, customer_name, amount, description):
        self._enter("save_debt")
        return await super().save_debt(customer_name, amount, description)

    async def save_product(self, product):
        self._enter("save_product")
        if "second_product" in self.fail and len(self.products) == 1:
            raise ConnectionError("catalog offline")
        return await super().save_product(product)


def fiado(**overrides):
    data = dict(description="Venda de tênis", amount=30, debt_amount=20, customer_name="João")
    data.update(overrides)
    return TransactionDraft(**data)


def commit(coordinator, draft, **kwargs):
    return asyncio.run(coordinator.commit(draft, **kwargs))


# ---------------------------------------------------------------------
# TESTS: LEDGER ENTRIES
# ---------------------------------------------------------------------
def test_paid_sale_writes_one_ledger_entry(coordinator, store):
    """Scenario A: 2 camisas a 50 no pix."""
    draft = resolve_draft([
        tx(
            description="Venda de camisas",
            amount=100,
            payment_method="pix",
            items=[{"name": "camisa", "quantity": 2, "unit_price": 50, "total": 100}],
        )
    ])

    outcome = commit(coordinator, draft)

    assert outcome.kind is ActionKind.TRANSACTION
    assert outcome.debt_account is None
    assert len(store.transactions) == 1
    record = store.transactions[0]
    assert record.amount == Decimal("100")
    assert record.payment_method is PaymentMethod.PIX
    assert record.entity == "Cliente Diverso"
    assert record.items[0].product_name == "camisa"
    assert record.items[0].product_id == "temp"
    assert store.accounts == {}


def test_expense_entity_is_generic_supplier(coordinator, store):
    draft = TransactionDraft(description="Conta de luz", amount=120, type=TransactionType.EXPENSE)

    commit(coordinator, draft)

    assert store.transactions[0].entity == "Fornecedor"
    assert store.transactions[0].type is TransactionType.EXPENSE


def test_named_customer_is_ledger_entity(coordinator, store):
    commit(coordinator, TransactionDraft(description="Bolo", amount=40, customer_name="Ana"))
    assert store.transactions[0].entity == "Ana"


# ---------------------------------------------------------------------
# TESTS: DEBT SPLIT
# ---------------------------------------------------------------------
def test_partial_payment_splits_ledger_and_debt(coordinator, store):
    """Scenario C: 30 paid now, 20 left on João's tab."""
    outcome = commit(coordinator, fiado())

    assert outcome.transaction.amount == Decimal("30")
    account = store.find_account("João")
    assert account.balance == Decimal("20")
    assert account.items[0].amount == Decimal("20")
    assert account.items[0].description == "Restante: Venda de tênis (Total era R$ 50,00)"
    assert outcome.debt_account is account


def test_ledger_is_written_before_debt():
    store = RecordingStore()
    commit(CommitCoordinator(store), fiado())
    assert store.calls == ["save_transaction", "save_debt"]


def test_debt_accumulates_on_existing_account(coordinator, store):
    commit(coordinator, fiado())
    commit(coordinator, fiado(customer_name="joão", debt_amount=5))

    account = store.find_account("JOÃO")
    assert account.balance == Decimal("25")
    assert len(account.items) == 2
    assert len(store.accounts) == 1


def test_zero_value_debt_skips_ledger(coordinator, store):
    outcome = commit(coordinator, fiado(amount=0))

    assert outcome.ledger_skipped is True
    assert outcome.transaction is None
    assert store.transactions == []
    assert store.find_account("João").balance == Decimal("20")


def test_zero_amount_with_items_still_writes_ledger(coordinator, store):
    draft = fiado(amount=0, items=[LineItem(name="tênis", quantity=1, unit_price=50)])

    outcome = commit(coordinator, draft)

    assert outcome.ledger_skipped is False
    assert len(store.transactions) == 1


def test_debt_without_customer_is_rejected_before_any_write():
    store = RecordingStore()
    draft = TransactionDraft(description="Fiado", amount=10, debt_amount=5)

    with pytest.raises(CommitRejected):
        commit(CommitCoordinator(store), draft)

    assert store.calls == []


def test_debt_payment_reduces_balance(coordinator, store):
    commit(coordinator, fiado())
    payment = TransactionDraft(
        description="Acerto do fiado",
        amount=15,
        customer_name="joão",
        is_debt_payment=True,
        payment_method=PaymentMethod.DINHEIRO,
    )

    commit(coordinator, payment)

    account = store.find_account("João")
    assert account.balance == Decimal("5")
    assert account.items[-1].amount == Decimal("-15")
    assert account.items[-1].description == "Pagamento: Acerto do fiado"


def test_overpayment_floors_balance_at_zero(coordinator, store):
    commit(coordinator, fiado())
    commit(coordinator, TransactionDraft(description="Acerto", amount=100, customer_name="João", is_debt_payment=True))
    assert store.find_account("João").balance == Decimal("0")


# ---------------------------------------------------------------------
# TESTS: FAILURES
# ---------------------------------------------------------------------
def test_ledger_failure_rejects_and_skips_debt():
    store = RecordingStore(fail={"save_transaction"})

    with pytest.raises(CommitRejected) as exc_info:
        commit(CommitCoordinator(store), fiado())

    assert store.calls == ["save_transaction"]
    assert exc_info.value.message == "Erro ao salvar. Verifique sua conexão."


def test_debt_failure_after_ledger_is_partial():
    store = RecordingStore(fail={"save_debt"})

    with pytest.raises(CommitPartialFailure) as exc_info:
        commit(CommitCoordinator(store), fiado())

    assert len(store.transactions) == 1
    assert exc_info.value.outcome.transaction is store.transactions[0]
    assert store.accounts == {}


def test_debt_failure_with_skipped_ledger_is_rejected():
    store = RecordingStore(fail={"save_debt"})

    with pytest.raises(CommitRejected) as exc_info:
        commit(CommitCoordinator(store), fiado(amount=0))

    assert not isinstance(exc_info.value, CommitPartialFailure)


def test_resume_with_written_ledger_only_writes_debt():
    store = RecordingStore()
    written = TransactionRecord(
        description="Venda de tênis",
        amount=Decimal("30"),
        type=TransactionType.INCOME,
        category="Geral",
        payment_method=PaymentMethod.OUTRO,
        entity="João",
    )

    resume = CommitOutcome(kind=ActionKind.TRANSACTION, transaction=written)

    outcome = commit(CommitCoordinator(store), fiado(), resume=resume)

    assert store.calls == ["save_debt"]
    assert outcome.transaction is written


def test_unexpected_executor_error_is_wrapped(store):
    coordinator = CommitCoordinator(store)
    coordinator.executors[ActionKind.NAVIGATE] = MagicMock(
        execute=AsyncMock(side_effect=RuntimeError("boom"))
    )

    with pytest.raises(CommitRejected):
        commit(coordinator, NavigateIntent(target_page="products"))


# ---------------------------------------------------------------------
# TESTS: OTHER KINDS
# ---------------------------------------------------------------------
def test_stock_entries_become_products(coordinator, store):
    draft = StockDraft(products=[
        StockEntry(name="Camisa", cost_price=20, sale_price=50, quantity=10),
        StockEntry(name="Boné", quantity=3),
    ])

    outcome = commit(coordinator, draft)

    assert [p.name for p in outcome.products] == ["Camisa", "Boné"]
    assert store.products[0].stock == 10
    assert store.products[0].min_stock == 5
    assert store.transactions == []


def test_stock_failure_midway_is_partial():
    store = RecordingStore(fail={"second_product"})
    draft = StockDraft(products=[StockEntry(name="A"), StockEntry(name="B")])

    with pytest.raises(CommitPartialFailure) as exc_info:
        commit(CommitCoordinator(store), draft)

    assert [p.name for p in store.products] == ["A"]
    assert [p.name for p in exc_info.value.outcome.products] == ["A"]


def test_service_order_opens(coordinator, store):
    outcome = commit(coordinator, ServiceOrderDraft(customer_name="Maria", device="iPhone", description="Tela"))

    assert outcome.service_order.status == "ABERTO"
    assert store.service_orders[0].customer_name == "Maria"


def test_navigate_reports_target(coordinator, store):
    outcome = commit(coordinator, NavigateIntent(target_page="finance"))

    assert outcome.target_page == "finance"
    assert store.navigations == ["finance"]


# ---------------------------------------------------------------------
# TESTS: CURRENCY TEXT
# ---------------------------------------------------------------------
def test_format_brl():
    assert format_brl(Decimal("1234.5")) == "R$ 1.234,50"
    assert format_brl(0) == "R$ 0,00"
    assert format_brl(Decimal("-20")) == "-R$ 20,00"
    assert format_brl(Decimal("0.005")) == "R$ 0,01"
    assert format_brl(Decimal("1000000")) == "R$ 1.000.000,00"


def test_debt_description_uses_sale_total():
    assert debt_description(fiado(amount=Decimal("12.5"), debt_amount=Decimal("7.5"))) == (
        "Restante: Venda de tênis (Total era R$ 20,00)"
    )


# ---------------------------------------------------------------------
# TESTS: ZERO-VALUE GUARD
# ---------------------------------------------------------------------
def test_zero_value_draft_never_touches_ledger():
    store = RecordingStore()

    outcome = commit(CommitCoordinator(store), TransactionDraft(description="Anotação", amount=0))

    assert store.calls == []
    assert outcome.ledger_skipped is True
    assert outcome.transaction is None


# ---------------------------------------------------------------------
# TESTS: PRODUCTS ANNOUNCED WITH A SALE
# ---------------------------------------------------------------------
def sale_with_stock(**overrides):
    data = dict(
        description="Venda de camisa",
        amount=50,
        stock_entries=[StockEntry(name="Boné", cost_price=10, sale_price=30, quantity=5)],
    )
    data.update(overrides)
    return TransactionDraft(**data)


def test_sale_with_stock_creates_products_after_ledger_and_debt():
    store = RecordingStore()

    outcome = commit(CommitCoordinator(store), sale_with_stock(debt_amount=20, customer_name="Ana"))

    assert store.calls == ["save_transaction", "save_debt", "save_product"]
    assert [p.name for p in outcome.products] == ["Boné"]
    assert store.products[0].stock == 5


def test_product_failure_after_sale_is_partial_and_resumes():
    store = RecordingStore(fail={"save_product"})
    coordinator = CommitCoordinator(store)

    with pytest.raises(CommitPartialFailure) as exc_info:
        commit(coordinator, sale_with_stock(debt_amount=20, customer_name="Ana"))

    partial = exc_info.value.outcome
    assert partial.transaction is store.transactions[0]
    assert partial.debt_account is not None

    store.fail.clear()
    store.calls.clear()
    outcome = commit(coordinator, sale_with_stock(debt_amount=20, customer_name="Ana"), resume=partial)

    assert store.calls == ["save_product"]
    assert len(store.transactions) == 1
    assert store.find_account("Ana").balance == Decimal("20")
    assert [p.name for p in outcome.products] == ["Boné"]


def test_resume_skips_products_already_saved():
    store = RecordingStore()
    draft = StockDraft(products=[StockEntry(name="A"), StockEntry(name="B")])
    saved_a = asyncio.run(store.save_product(product_from_entry(draft.products[0])))
    store.calls.clear()

    outcome = commit(
        CommitCoordinator(store),
        draft,
        resume=CommitOutcome(kind=ActionKind.STOCK, products=[saved_a]),
    )

    assert store.calls == ["save_product"]
    assert [p.name for p in store.products] == ["A", "B"]
    assert outcome.products[0] is saved_a


def test_resume_for_another_kind_is_ignored():
    store = RecordingStore()
    stale = CommitOutcome(kind=ActionKind.STOCK, products=[product_from_entry(StockEntry(name="X"))])

    commit(CommitCoordinator(store), NavigateIntent(target_page="finance"), resume=stale)

    assert store.navigations == ["finance"]
