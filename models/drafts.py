# models/drafts.py
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.action_kind import ActionKind, TransactionType
from core.payment_method import PaymentMethod
from config import DEFAULT_CATEGORY
from models.candidates import LineItem


class _Draft(BaseModel):
    # Drafts are edited in place during review; keep every edit validated
    model_config = ConfigDict(validate_assignment=True)


class StockEntry(BaseModel):
    name: str = Field(default="Novo Produto")
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    sale_price: Decimal = Field(Decimal("0"), ge=0)
    quantity: int = Field(0, ge=0)


class TransactionDraft(_Draft):
    kind: ActionKind = Field(default=ActionKind.TRANSACTION, frozen=True)
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(Decimal("0"), ge=0, description="Money received/paid now")
    debt_amount: Decimal = Field(Decimal("0"), ge=0, description="Money still owed")
    type: TransactionType = Field(default=TransactionType.INCOME)
    category: str = Field(default=DEFAULT_CATEGORY)
    payment_method: PaymentMethod = Field(default=PaymentMethod.OUTRO)
    items: List[LineItem] = Field(default_factory=list)
    customer_name: Optional[str] = Field(None)
    is_debt_payment: bool = Field(default=False)
    stock_entries: List[StockEntry] = Field(
        default_factory=list,
        description="Products announced alongside the sale; created after the ledger entry",
    )

    @field_validator("category", mode="before")
    @classmethod
    def validate_category(cls, v):
        if not v or not str(v).strip():
            return DEFAULT_CATEGORY
        return v

    @field_validator("customer_name", mode="before")
    @classmethod
    def validate_customer_name(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @property
    def total(self) -> Decimal:
        """What the sale was worth: paid now plus left on the tab."""
        return self.amount + self.debt_amount

    @property
    def items_total(self) -> Decimal:
        return sum((item.total for item in self.items), Decimal("0"))


class StockDraft(_Draft):
    kind: ActionKind = Field(default=ActionKind.STOCK, frozen=True)
    products: List[StockEntry] = Field(..., min_length=1)


class ServiceOrderDraft(_Draft):
    kind: ActionKind = Field(default=ActionKind.SERVICE_ORDER, frozen=True)
    customer_name: str = Field(default="Cliente")
    device: str = Field(default="Equipamento")
    description: str = Field(default="Serviço")


class NavigateIntent(_Draft):
    kind: ActionKind = Field(default=ActionKind.NAVIGATE, frozen=True)
    target_page: str = Field(..., min_length=1)


Draft = Union[TransactionDraft, StockDraft, ServiceOrderDraft, NavigateIntent]
