# tests/conftest.py
import sys
from pathlib import Path

# ---------------------------------------------------------
# Ensure project root is on PYTHONPATH BEFORE app imports
# ---------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for path in (PROJECT_ROOT, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

# ---------------------------------------------------------
# Now safe to import project modules
# ---------------------------------------------------------
import pytest

from services.commit import CommitCoordinator
from services.ledger_store import InMemoryLedgerStore


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def coordinator(store):
    return CommitCoordinator(store)
