"""
Pytest configuration and shared fixtures for Lineage tests.
"""

import pytest
import sys
from pathlib import Path

# Ensure src and tests directories are in path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from lineage import ChangeNotifier, HierarchyEngine, SQLAlchemyClosureStore


@pytest.fixture
def store():
    """In-memory closure store with integer keys."""
    store = SQLAlchemyClosureStore(url="sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def received(notifier):
    """List collecting every notification emitted through ``notifier``."""
    events = []
    notifier.subscribe(events.append)
    return events


@pytest.fixture
def engine(store, notifier):
    """Engine without a depth ceiling."""
    return HierarchyEngine(store, notifier=notifier, max_depth=None)
