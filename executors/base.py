from abc import ABC, abstractmethod
from typing import Optional

from core.errors import CommitError, CommitPartialFailure, CommitRejected
from models.ledger import CommitOutcome


class BaseExecutor(ABC):
    """
    Base contract for all executors.
    Executors take one finalized draft and write it through the ledger
    gateway. No classification, no merging, no session state here.

    `resume` is the outcome carried by a previous CommitPartialFailure for
    the same draft; whatever it already holds is not written again.
    """

    def __init__(self, gateway):
        self.gateway = gateway

    @abstractmethod
    async def execute(self, draft, *, resume: Optional[CommitOutcome] = None) -> CommitOutcome:
        pass


def commit_failure(outcome: CommitOutcome, message: Optional[str] = None) -> CommitError:
    """Partial when something already reached the store, rejected otherwise."""
    if outcome.has_writes:
        return CommitPartialFailure(message, outcome=outcome)
    return CommitRejected(message)
