# tests/capture_fixtures.py
from models.candidates import (
    NavigateCandidate,
    NavigatePayload,
    ServiceOrderCandidate,
    ServiceOrderPayload,
    StockCandidate,
    StockPayload,
    TransactionCandidate,
    TransactionPayload,
)


# ---------------------------------------------------------
# Candidate builders
# ---------------------------------------------------------
def tx(**payload) -> TransactionCandidate:
    return TransactionCandidate(payload=TransactionPayload(**payload))


def stock(**payload) -> StockCandidate:
    return StockCandidate(payload=StockPayload(**payload))


def service_order(**payload) -> ServiceOrderCandidate:
    return ServiceOrderCandidate(payload=ServiceOrderPayload(**payload))


def navigate(target_page: str) -> NavigateCandidate:
    return NavigateCandidate(payload=NavigatePayload(target_page=target_page))


class FakeClassifier:
    """
    Returns canned candidates (or raises) and records every call.
    Successive calls walk through `responses`; the last one repeats.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [[]]
        self.calls = []

    async def classify(self, text, context):
        self.calls.append((text, context))
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(response, BaseException):
            raise response
        return list(response)
