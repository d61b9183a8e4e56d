# FILE: services/cash_closing.py
"""
End-of-day cash closing over committed ledger entries.
Revenue is broken down by how it was received; expenses are a single total.
"""

from datetime import date
from typing import Iterable

from core.action_kind import TransactionType
from core.payment_method import PaymentMethod
from models.ledger import CashClosingSummary, TransactionRecord

BREAKDOWN_BUCKET = {
    PaymentMethod.PIX: "pix",
    PaymentMethod.DINHEIRO: "cash",
}


def breakdown_bucket(method: PaymentMethod) -> str:
    if method.is_card():
        return "card"
    return BREAKDOWN_BUCKET.get(method, "other")


def summarize_closing(transactions: Iterable[TransactionRecord], day: date) -> CashClosingSummary:
    summary = CashClosingSummary(day=day)

    for tx in transactions:
        if tx.date.date() != day:
            continue
        summary.transaction_count += 1
        if tx.type is TransactionType.INCOME:
            summary.total_revenue += tx.amount
            bucket = breakdown_bucket(tx.payment_method)
            setattr(summary.breakdown, bucket, getattr(summary.breakdown, bucket) + tx.amount)
        else:
            summary.total_expense += tx.amount

    summary.balance = summary.total_revenue - summary.total_expense
    return summary
