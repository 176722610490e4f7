"""
Tests for SnapshotProjector.
"""

import pytest
from sqlalchemy import inspect

from lineage import (
    HierarchyEngine,
    NodeRef,
    SnapshotCleared,
    SnapshotCreated,
    SnapshotProjector,
)

from hierarchy_helpers import all_rows, build_chain, user

ORDER = NodeRef("order", 42)


@pytest.fixture
def projector(engine, store, notifier):
    return SnapshotProjector(engine, store, notifier=notifier)


@pytest.fixture
def chain(engine):
    return build_chain(engine, "seller", 3)


class TestSnapshotCapture:
    """snapshot() and reads."""

    def test_creates_table(self, projector, store):
        projector.get_snapshots(ORDER, "seller")
        assert "hierarchy_snapshots" in inspect(store.bind).get_table_names()

    def test_snapshot_stores_chain(self, projector, chain):
        entries = projector.snapshot(ORDER, chain[-1], "seller")

        assert [(e.depth, e.ancestor) for e in entries] == [
            (0, user(3)),
            (1, user(2)),
            (2, user(1)),
        ]
        assert projector.get_snapshots(ORDER, "seller") == entries
        assert projector.has_snapshots(ORDER, "seller")

    def test_snapshot_survives_hierarchy_changes(self, projector, engine, chain):
        projector.snapshot(ORDER, chain[-1], "seller")
        engine.move_to_parent(chain[-1], None, "seller")

        assert projector.get_ancestor_ids(ORDER, "seller") == [3, 2, 1]

    def test_snapshot_replaces_previous_set(self, projector, engine, chain):
        projector.snapshot(ORDER, chain[-1], "seller")
        engine.detach_from_parent(chain[-1], "seller")
        projector.snapshot(ORDER, chain[-1], "seller")

        assert projector.get_ancestor_ids(ORDER, "seller") == [3]

    def test_depth_lookups(self, projector, chain):
        projector.snapshot(ORDER, chain[-1], "seller")

        assert projector.get_direct_snapshot(ORDER, "seller").ancestor == user(3)
        assert projector.get_snapshot_at_depth(ORDER, "seller", 2).ancestor == user(1)
        assert projector.get_snapshot_at_depth(ORDER, "seller", 5) is None

    def test_to_list(self, projector, chain):
        projector.snapshot(ORDER, chain[1], "seller")
        assert projector.to_list(ORDER, "seller") == [
            {"ancestor_id": 2, "depth": 0, "type": "seller"},
            {"ancestor_id": 1, "depth": 1, "type": "seller"},
        ]

    def test_contexts_and_types_are_separate(self, projector, chain):
        projector.snapshot(ORDER, chain[-1], "seller")
        assert not projector.has_snapshots(NodeRef("order", 43), "seller")
        assert not projector.has_snapshots(ORDER, "support")

    def test_does_not_touch_closure_rows(self, projector, store, chain):
        before = all_rows(store)
        projector.snapshot(ORDER, chain[-1], "seller")
        projector.clear_snapshots(ORDER, "seller")
        assert all_rows(store) == before


class TestSnapshotClear:
    """clear_snapshots() and notifications."""

    def test_clear_returns_count(self, projector, chain):
        projector.snapshot(ORDER, chain[-1], "seller")
        assert projector.clear_snapshots(ORDER, "seller") == 3
        assert not projector.has_snapshots(ORDER, "seller")
        assert projector.clear_snapshots(ORDER, "seller") == 0

    def test_notifications(self, projector, chain, received):
        received.clear()
        entries = projector.snapshot(ORDER, chain[-1], "seller")
        projector.clear_snapshots(ORDER, "seller")
        projector.clear_snapshots(ORDER, "seller")

        assert received == [
            SnapshotCreated(ORDER, "seller", 3, tuple(entries)),
            SnapshotCleared(ORDER, "seller", 3),
        ]


class TestSnapshotDisabled:
    """Disabled projector."""

    def test_snapshot_is_noop(self, engine, store, chain, received):
        projector = SnapshotProjector(engine, store, enabled=False)
        received.clear()

        assert projector.snapshot(ORDER, chain[-1], "seller") == []
        assert not projector.has_snapshots(ORDER, "seller")
        assert received == []

    def test_custom_table_and_context_keys(self, store):
        engine = HierarchyEngine(store)
        projector = SnapshotProjector(
            engine, store, table_name="order_lineage", context_key_type="string"
        )
        engine.add_to_hierarchy(user(1), "seller")
        projector.snapshot(NodeRef("order", "A-1"), user(1), "seller")

        assert "order_lineage" in inspect(store.bind).get_table_names()
        assert projector.get_ancestor_ids(NodeRef("order", "A-1"), "seller") == [1]
