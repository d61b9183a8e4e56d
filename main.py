import asyncio
import sys

from services.classifier import build_default_classifier
from services.commit import CommitCoordinator
from services.ledger_store import InMemoryLedgerStore
from services.review_session import DraftReviewSession
from services.utils import deep_serialize

async def main(user_text: str):
    store = InMemoryLedgerStore()
    session = DraftReviewSession(
        build_default_classifier(),
        CommitCoordinator(store),
        context="quick-capture",
    )

    draft = await session.analyze(user_text)
    print("Draft for review:", deep_serialize(draft))

    outcome = await session.confirm()
    print("Committed:", deep_serialize(outcome))
    print("Status:", session.message)

if __name__ == "__main__":
    text = " ".join(sys.argv[1:]) or "Vendi 2 camisas por 50 reais cada no pix"
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main(text))
