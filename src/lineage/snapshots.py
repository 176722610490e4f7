"""
Snapshot Projector.

Freezes the ancestor chain of a node at a point in time, against a
context record (an order, a contract, an invoice...). The snapshot lives in
its own table and never changes when the hierarchy later moves:

    context_kind | context_id | type   | depth | ancestor_kind | ancestor_id
    -------------|------------|--------|-------|---------------|------------
    order        | 42         | seller | 0     | user          | 3
    order        | 42         | seller | 1     | user          | 2
    order        | 42         | seller | 2     | user          | 1

Depth 0 is the node itself, depth 1 its parent, and so on. Capturing a new
snapshot for the same (context, type) replaces the previous set.

Example:
    >>> projector = SnapshotProjector(engine, store)
    >>> projector.snapshot(NodeRef("order", 42), NodeRef("user", 3), "seller")
    >>> projector.get_ancestor_ids(NodeRef("order", 42), "seller")
    [3, 2, 1]
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import Column, DateTime, Index, Integer, String, UniqueConstraint, and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from .engine import HierarchyEngine
from .events import ChangeNotifier, SnapshotCleared, SnapshotCreated
from .exceptions import ConstraintViolationError
from .nodes import HierarchyTypeLike, NodeLike, NodeRef, as_node, resolve_type
from .settings import KeyType
from .store.sqlalchemy_store import SQLAlchemyClosureStore, key_column_type, normalize_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotEntry:
    """One frozen ancestor of a snapshot."""

    context: NodeRef
    hierarchy_type: str
    depth: int
    ancestor: NodeRef

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ancestor_id": self.ancestor.id,
            "depth": self.depth,
            "type": self.hierarchy_type,
        }


def _create_snapshot_model(base, table_name: str, context_key_type: KeyType, key_type: KeyType):
    """Create the snapshot ORM model with the given declarative base."""

    class HierarchySnapshot(base):
        __tablename__ = table_name

        id = Column(Integer, primary_key=True, autoincrement=True)
        context_kind = Column(String(255), nullable=False)
        context_id = Column(key_column_type(context_key_type), nullable=False)
        type = Column(String(50), nullable=False)
        depth = Column(Integer, nullable=False)
        ancestor_kind = Column(String(255), nullable=False)
        ancestor_id = Column(key_column_type(key_type), nullable=False)
        created_at = Column(DateTime, default=func.now())

        __table_args__ = (
            UniqueConstraint(
                "context_kind",
                "context_id",
                "type",
                "depth",
                name=f"{table_name}_context_depth_unique",
            ),
            Index(f"{table_name}_context_type", "context_kind", "context_id", "type"),
            Index(f"{table_name}_ancestor_type", "ancestor_id", "type"),
        )

    return HierarchySnapshot


class SnapshotProjector:
    """
    Captures and reads hierarchy snapshots.

    Shares the closure store's SQLAlchemy engine and lock but owns a
    separate table. Reading ancestors goes through ``HierarchyEngine``; the
    projector never writes closure rows.

    Args:
        engine: Hierarchy engine used to read ancestor chains
        store: Closure store whose database holds the snapshot table
        table_name: Snapshot table name (default: "hierarchy_snapshots")
        context_key_type: Column type for context ids
        enabled: When False, ``snapshot`` is a no-op returning []
        notifier: Receives SnapshotCreated / SnapshotCleared (default: engine's notifier)
    """

    def __init__(
        self,
        engine: HierarchyEngine,
        store: SQLAlchemyClosureStore,
        table_name: str = "hierarchy_snapshots",
        context_key_type: Union[KeyType, str] = KeyType.INT,
        enabled: bool = True,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self._engine = engine
        self._store = store
        self._table_name = table_name
        self._context_key_type = KeyType(context_key_type)
        self.enabled = enabled
        self._notifier = notifier if notifier is not None else engine.notifier

        self._init_lock = threading.Lock()
        self._model = None
        self._session_factory = None
        self._initialized = False

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def model(self):
        self._ensure_initialized()
        return self._model

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        with self._init_lock:
            if self._initialized:
                return

            bind = self._store.bind
            base = declarative_base()
            self._model = _create_snapshot_model(
                base, self._table_name, self._context_key_type, self._store.key_type
            )
            base.metadata.create_all(bind)
            self._session_factory = sessionmaker(bind=bind)
            self._initialized = True
            logger.debug("Snapshot table initialized: %s", self._table_name)

    def _context(self, context: NodeLike) -> NodeRef:
        context = as_node(context)
        return NodeRef(context.kind, normalize_key(self._context_key_type, context.id))

    def _context_clause(self, context: NodeRef, hierarchy_type: str):
        model = self._model
        return and_(
            model.context_kind == context.kind,
            model.context_id == context.id,
            model.type == hierarchy_type,
        )

    @staticmethod
    def _to_entry(record) -> SnapshotEntry:
        return SnapshotEntry(
            context=NodeRef(record.context_kind, record.context_id),
            hierarchy_type=record.type,
            depth=record.depth,
            ancestor=NodeRef(record.ancestor_kind, record.ancestor_id),
        )

    def snapshot(
        self,
        context: NodeLike,
        node: NodeLike,
        hierarchy_type: HierarchyTypeLike,
    ) -> List[SnapshotEntry]:
        """
        Replace the snapshot of ``(context, type)`` with the current chain of ``node``.

        Returns:
            The stored entries, depth 0 (the node itself) first
        """
        if not self.enabled:
            return []

        context = self._context(context)
        node = as_node(node)
        type_value = resolve_type(hierarchy_type)
        self._ensure_initialized()

        # The store lock keeps the chain read and the replace from interleaving
        # with closure writers on the shared connection.
        with self._store.lock:
            chain = self._engine.get_ancestors(node, type_value, include_self=True)
            entries = [
                SnapshotEntry(context, type_value, depth, ancestor)
                for depth, ancestor in enumerate(chain)
            ]

            session = self._session_factory()
            try:
                session.query(self._model).filter(
                    self._context_clause(context, type_value)
                ).delete(synchronize_session=False)
                for entry in entries:
                    session.add(
                        self._model(
                            context_kind=context.kind,
                            context_id=context.id,
                            type=type_value,
                            depth=entry.depth,
                            ancestor_kind=entry.ancestor.kind,
                            ancestor_id=entry.ancestor.id,
                        )
                    )
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConstraintViolationError(
                    f"Snapshot for [{context}] in '{type_value}' conflicts: {e.orig}"
                ) from e
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

        logger.debug(
            "Snapshot of %s stored for %s in '%s' (%d entries)",
            node,
            context,
            type_value,
            len(entries),
        )
        self._notifier.emit(
            SnapshotCreated(context, type_value, len(entries), tuple(entries))
        )
        return entries

    def get_snapshots(
        self, context: NodeLike, hierarchy_type: HierarchyTypeLike
    ) -> List[SnapshotEntry]:
        """Snapshot entries of a context, ordered by depth."""
        context = self._context(context)
        type_value = resolve_type(hierarchy_type)
        self._ensure_initialized()

        with self._store.lock:
            session = self._session_factory()
            try:
                records = (
                    session.query(self._model)
                    .filter(self._context_clause(context, type_value))
                    .order_by(self._model.depth)
                    .all()
                )
                return [self._to_entry(r) for r in records]
            finally:
                session.close()

    def has_snapshots(self, context: NodeLike, hierarchy_type: HierarchyTypeLike) -> bool:
        return bool(self.get_snapshots(context, hierarchy_type))

    def clear_snapshots(self, context: NodeLike, hierarchy_type: HierarchyTypeLike) -> int:
        """
        Delete the snapshot of a context.

        Returns:
            Number of entries removed
        """
        context = self._context(context)
        type_value = resolve_type(hierarchy_type)
        self._ensure_initialized()

        with self._store.lock:
            session = self._session_factory()
            try:
                count = (
                    session.query(self._model)
                    .filter(self._context_clause(context, type_value))
                    .delete(synchronize_session=False)
                )
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

        if count > 0:
            logger.debug("Cleared %d snapshot entries for %s in '%s'", count, context, type_value)
            self._notifier.emit(SnapshotCleared(context, type_value, count))
        return count

    def get_snapshot_at_depth(
        self, context: NodeLike, hierarchy_type: HierarchyTypeLike, depth: int
    ) -> Optional[SnapshotEntry]:
        for entry in self.get_snapshots(context, hierarchy_type):
            if entry.depth == depth:
                return entry
        return None

    def get_direct_snapshot(
        self, context: NodeLike, hierarchy_type: HierarchyTypeLike
    ) -> Optional[SnapshotEntry]:
        """The depth-0 entry: the node the snapshot was taken of."""
        return self.get_snapshot_at_depth(context, hierarchy_type, 0)

    def get_ancestor_ids(self, context: NodeLike, hierarchy_type: HierarchyTypeLike) -> List[Any]:
        return [entry.ancestor.id for entry in self.get_snapshots(context, hierarchy_type)]

    def to_list(
        self, context: NodeLike, hierarchy_type: HierarchyTypeLike
    ) -> List[Dict[str, Any]]:
        """Export as ``{"ancestor_id", "depth", "type"}`` dicts."""
        return [entry.to_dict() for entry in self.get_snapshots(context, hierarchy_type)]


__all__ = ["SnapshotEntry", "SnapshotProjector"]
