# core/action_kind.py
from enum import Enum


class ActionKind(str, Enum):
    """
    The closed set of intents the classifier may detect in one utterance.
    """

    TRANSACTION = "TRANSACTION"
    STOCK = "STOCK"
    SERVICE_ORDER = "SERVICE_ORDER"
    NAVIGATE = "NAVIGATE"

    # -----------------------------
    # Semantic helpers (SAFE)
    # -----------------------------
    def is_monetary(self) -> bool:
        """Kinds that take part in a ledger merge."""
        return self in {ActionKind.TRANSACTION, ActionKind.STOCK}

    def is_transaction(self) -> bool:
        return self is ActionKind.TRANSACTION


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    SCHEDULED = "SCHEDULED"
