# models/candidates.py
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.action_kind import ActionKind, TransactionType

# Rounding slack accepted between an item's total and quantity × unit price
ITEM_TOTAL_TOLERANCE = Decimal("0.05")
CENT = Decimal("0.01")


# -----------------------------
# Line items
# -----------------------------
class LineItem(BaseModel):
    name: str = Field(..., min_length=1, description="Product or service sold/bought")
    quantity: Decimal = Field(..., gt=0, description="Units, may be fractional (kg, m)")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Price of one unit")
    total: Optional[Decimal] = Field(None, ge=0, description="quantity × unit_price")

    @model_validator(mode="after")
    def check_total(self):
        if self.unit_price is None:
            # Only the line total was stated ("3 pães, 10 reais")
            if self.total is None:
                self.unit_price = Decimal("0")
                self.total = Decimal("0.00")
            else:
                # Unrounded, so re-validating the item reproduces the same total
                self.unit_price = self.total / self.quantity
            return self

        expected = (self.quantity * self.unit_price).quantize(CENT)
        if self.total is None:
            self.total = expected
        elif abs(self.total - expected) > ITEM_TOTAL_TOLERANCE:
            raise ValueError(
                f"Item '{self.name}': total {self.total} does not match "
                f"{self.quantity} × {self.unit_price}"
            )
        return self


# -----------------------------
# Candidate payloads
# -----------------------------
class TransactionPayload(BaseModel):
    description: str = Field(default="", description="What was sold or paid for")
    amount: Optional[Decimal] = Field(None, ge=0, description="Money received/paid now")
    debt_amount: Optional[Decimal] = Field(None, ge=0, description="Money left on the customer's tab")
    type: TransactionType = Field(default=TransactionType.INCOME)
    category: Optional[str] = Field(None)
    payment_method: Optional[str] = Field(None, description="Free-text payment descriptor")
    customer_name: Optional[str] = Field(None)
    is_debt_payment: bool = Field(default=False, description="Customer paying off an open tab")
    items: List[LineItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def validate_items(cls, v):
        if not v:
            return []
        return v


class StockPayload(BaseModel):
    product_name: Optional[str] = Field(None)
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    sale_price: Decimal = Field(Decimal("0"), ge=0)
    stock_quantity: int = Field(0, ge=0)
    # Only these two take part in a transaction merge
    amount: Optional[Decimal] = Field(None, ge=0)
    debt_amount: Optional[Decimal] = Field(None, ge=0)


class ServiceOrderPayload(BaseModel):
    customer_name: Optional[str] = Field(None)
    device: Optional[str] = Field(None)
    problem: Optional[str] = Field(None, description="Reported defect or requested service")


class NavigatePayload(BaseModel):
    target_page: str = Field(..., min_length=1)


# -----------------------------
# Candidates (tagged union on `kind`)
# -----------------------------
class _Candidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def action_kind(self) -> ActionKind:
        return ActionKind(self.kind)


class TransactionCandidate(_Candidate):
    kind: Literal["TRANSACTION"] = "TRANSACTION"
    payload: TransactionPayload


class StockCandidate(_Candidate):
    kind: Literal["STOCK"] = "STOCK"
    payload: StockPayload


class ServiceOrderCandidate(_Candidate):
    kind: Literal["SERVICE_ORDER"] = "SERVICE_ORDER"
    payload: ServiceOrderPayload


class NavigateCandidate(_Candidate):
    kind: Literal["NAVIGATE"] = "NAVIGATE"
    payload: NavigatePayload


ActionCandidate = Annotated[
    Union[TransactionCandidate, StockCandidate, ServiceOrderCandidate, NavigateCandidate],
    Field(discriminator="kind"),
]


class CommandClassification(BaseModel):
    """Structured output of the classification agent."""

    actions: List[ActionCandidate] = Field(default_factory=list)
