# models/ledger.py
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from core.action_kind import ActionKind, TransactionStatus, TransactionType
from core.payment_method import PaymentMethod


def _new_id() -> str:
    return uuid4().hex


# -----------------------------
# Ledger entries
# -----------------------------
class LedgerItem(BaseModel):
    product_id: str = Field(default="temp", description="Catalog id, 'temp' until matched")
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal


class TransactionRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    description: str
    amount: Decimal = Field(..., ge=0)
    type: TransactionType
    category: str
    payment_method: PaymentMethod
    date: datetime = Field(default_factory=datetime.now)
    status: TransactionStatus = Field(default=TransactionStatus.COMPLETED)
    entity: str = Field(..., description="Counterparty: customer for income, supplier for expense")
    items: List[LedgerItem] = Field(default_factory=list)
    is_debt_payment: bool = Field(default=False)


# -----------------------------
# Customer accounts ("fiado")
# -----------------------------
class CustomerAccountItem(BaseModel):
    id: str = Field(default_factory=_new_id)
    date: datetime = Field(default_factory=datetime.now)
    description: str
    amount: Decimal = Field(..., description="Positive for new debt, negative for payments")


class CustomerAccount(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    phone: Optional[str] = None
    balance: Decimal = Field(Decimal("0"))
    items: List[CustomerAccountItem] = Field(default_factory=list)
    last_update: datetime = Field(default_factory=datetime.now)


# -----------------------------
# Catalog and services
# -----------------------------
class Product(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    sale_price: Decimal = Field(Decimal("0"), ge=0)
    stock: int = Field(0, ge=0)
    min_stock: int = Field(5, ge=0)


class ServiceOrder(BaseModel):
    id: str = Field(default_factory=_new_id)
    customer_id: str = Field(default="temp")
    customer_name: str
    device: Optional[str] = None
    description: str
    status: str = Field(default="ABERTO")
    parts_total: Decimal = Field(Decimal("0"))
    labor_total: Decimal = Field(Decimal("0"))
    total: Decimal = Field(Decimal("0"))
    open_date: datetime = Field(default_factory=datetime.now)


# -----------------------------
# Commit outcome (Coordinator → Session → API)
# -----------------------------
class CommitOutcome(BaseModel):
    kind: ActionKind
    transaction: Optional[TransactionRecord] = None
    debt_account: Optional[CustomerAccount] = None
    products: List[Product] = Field(default_factory=list)
    service_order: Optional[ServiceOrder] = None
    target_page: Optional[str] = None
    ledger_skipped: bool = Field(default=False, description="Zero-value guard kept the ledger untouched")

    @property
    def has_writes(self) -> bool:
        return (
            self.transaction is not None
            or self.debt_account is not None
            or bool(self.products)
            or self.service_order is not None
        )


# -----------------------------
# Cash closing (end-of-day reconciliation)
# -----------------------------
class ClosingBreakdown(BaseModel):
    pix: Decimal = Decimal("0")
    cash: Decimal = Decimal("0")
    card: Decimal = Decimal("0")
    other: Decimal = Decimal("0")


class CashClosingSummary(BaseModel):
    day: date
    total_revenue: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    breakdown: ClosingBreakdown = Field(default_factory=ClosingBreakdown)
    transaction_count: int = 0
