"""
Lineage facade.

``create_lineage`` wires a closure store, notifier, hierarchy engine,
snapshot projector and key registry from one ``LineageSettings`` object.
The resulting ``Lineage`` hands out fluent per-node adapters:

    >>> lineage = create_lineage(LineageSettings(max_depth=5))
    >>> lineage.for_node(manager).type("seller").attach_to(vp)
    >>> lineage.for_node(partner).type("seller").add(parent=manager)
    >>> lineage.for_node(partner).type("seller").path()
    [NodeRef(kind='User', id=1), NodeRef(kind='User', id=2), NodeRef(kind='User', id=3)]

Nodes can be given as ``NodeRef``, ``(kind, id)`` tuples, or application
records; records are turned into references by the ``KeyRegistry``.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .engine import HierarchyEngine
from .events import ChangeNotifier
from .exceptions import InvalidConfigurationError
from .keys import KeyRegistry, NodeResolver, resolve_all
from .nodes import HierarchyTypeLike, NodeRef, resolve_type
from .settings import LineageSettings
from .snapshots import SnapshotEntry, SnapshotProjector
from .store import ClosureStore, create_closure_store

logger = logging.getLogger(__name__)


class Lineage:
    """
    Composition root for one hierarchy database.

    Args:
        engine: Hierarchy engine (owns the store and notifier)
        snapshots: Optional snapshot projector
        keys: Key registry for records (default: ``id`` for every kind)
        resolver: Optional resolver turning references back into records
        settings: Settings the instance was built from, if any
    """

    def __init__(
        self,
        engine: HierarchyEngine,
        snapshots: Optional[SnapshotProjector] = None,
        keys: Optional[KeyRegistry] = None,
        resolver: Optional[NodeResolver] = None,
        settings: Optional[LineageSettings] = None,
    ):
        self._engine = engine
        self._snapshots = snapshots
        self._keys = keys or KeyRegistry()
        self._resolver = resolver
        self._settings = settings

    @property
    def engine(self) -> HierarchyEngine:
        return self._engine

    @property
    def store(self) -> ClosureStore:
        return self._engine.store

    @property
    def notifier(self) -> ChangeNotifier:
        return self._engine.notifier

    @property
    def snapshots(self) -> Optional[SnapshotProjector]:
        return self._snapshots

    @property
    def keys(self) -> KeyRegistry:
        return self._keys

    @property
    def resolver(self) -> Optional[NodeResolver]:
        return self._resolver

    @property
    def settings(self) -> Optional[LineageSettings]:
        return self._settings

    def ref(self, obj: Any) -> NodeRef:
        """Reference for a ``NodeRef``, a ``(kind, id)`` tuple, or a record."""
        if isinstance(obj, NodeRef):
            return obj
        if isinstance(obj, tuple) and len(obj) == 2:
            return NodeRef(str(obj[0]), obj[1])
        return self._keys.ref_for(obj)

    def for_node(
        self, obj: Any, hierarchy_type: Optional[HierarchyTypeLike] = None
    ) -> "NodeLineage":
        return NodeLineage(self, self.ref(obj), hierarchy_type)

    def of_type(self, hierarchy_type: HierarchyTypeLike) -> "TypedLineage":
        return TypedLineage(self, hierarchy_type)

    def resolve(self, ref: NodeRef) -> Optional[Any]:
        """
        Record for a reference, or None if it no longer exists.

        Raises:
            InvalidConfigurationError: If no resolver is configured
        """
        if self._resolver is None:
            raise InvalidConfigurationError("No node resolver configured.")
        return self._resolver.resolve(ref.kind, ref.id)

    def resolve_all(self, refs: Iterable[NodeRef]) -> List[Any]:
        """Records for references in order; unresolved references are dropped."""
        if self._resolver is None:
            raise InvalidConfigurationError("No node resolver configured.")
        return resolve_all(self._resolver, refs)

    def close(self) -> None:
        self._engine.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class NodeLineage:
    """
    Fluent hierarchy operations for one node.

    The hierarchy type is set with ``type()``; every operation called
    before that raises ``InvalidConfigurationError``. Mutations return the
    adapter so calls can be chained.
    """

    def __init__(
        self,
        lineage: Lineage,
        node: NodeRef,
        hierarchy_type: Optional[HierarchyTypeLike] = None,
    ):
        self._lineage = lineage
        self._engine = lineage.engine
        self._node = node
        self._type = resolve_type(hierarchy_type) if hierarchy_type is not None else None

    @property
    def node(self) -> NodeRef:
        return self._node

    @property
    def hierarchy_type(self) -> Optional[str]:
        return self._type

    def type(self, hierarchy_type: HierarchyTypeLike) -> "NodeLineage":
        self._type = resolve_type(hierarchy_type)
        return self

    def _require_type(self) -> str:
        if self._type is None:
            raise InvalidConfigurationError.missing_hierarchy_type()
        return self._type

    def _ref(self, obj: Any) -> Optional[NodeRef]:
        return self._lineage.ref(obj) if obj is not None else None

    # Mutations

    def add(self, parent: Any = None) -> "NodeLineage":
        self._engine.add_to_hierarchy(self._node, self._require_type(), self._ref(parent))
        return self

    def attach_to(self, parent: Any) -> "NodeLineage":
        self._engine.attach_to_parent(self._node, self._ref(parent), self._require_type())
        return self

    def detach(self) -> "NodeLineage":
        self._engine.detach_from_parent(self._node, self._require_type())
        return self

    def remove(self) -> "NodeLineage":
        self._engine.remove_from_hierarchy(self._node, self._require_type())
        return self

    def move_to(self, new_parent: Any = None) -> "NodeLineage":
        self._engine.move_to_parent(self._node, self._ref(new_parent), self._require_type())
        return self

    # Queries

    def ancestors(self, include_self: bool = False, max_depth: Optional[int] = None) -> List[NodeRef]:
        return self._engine.get_ancestors(
            self._node, self._require_type(), include_self=include_self, max_depth=max_depth
        )

    def descendants(
        self, include_self: bool = False, max_depth: Optional[int] = None
    ) -> List[NodeRef]:
        return self._engine.get_descendants(
            self._node, self._require_type(), include_self=include_self, max_depth=max_depth
        )

    def parent(self) -> Optional[NodeRef]:
        return self._engine.get_direct_parent(self._node, self._require_type())

    def children(self) -> List[NodeRef]:
        return self._engine.get_direct_children(self._node, self._require_type())

    def siblings(self, include_self: bool = False) -> List[NodeRef]:
        return self._engine.get_siblings(
            self._node, self._require_type(), include_self=include_self
        )

    def is_ancestor_of(self, other: Any) -> bool:
        return self._engine.is_ancestor_of(self._node, self._ref(other), self._require_type())

    def is_descendant_of(self, other: Any) -> bool:
        return self._engine.is_descendant_of(self._node, self._ref(other), self._require_type())

    def depth(self) -> int:
        return self._engine.get_depth(self._node, self._require_type())

    def roots(self) -> List[NodeRef]:
        return self._engine.get_roots(self._node, self._require_type())

    def tree(self) -> Dict[str, Any]:
        return self._engine.build_tree(self._node, self._require_type())

    def path(self) -> List[NodeRef]:
        return self._engine.get_path(self._node, self._require_type())

    def is_in_hierarchy(self) -> bool:
        return self._engine.is_in_hierarchy(self._node, self._require_type())

    def is_root(self) -> bool:
        return self._engine.is_root(self._node, self._require_type())

    def is_leaf(self) -> bool:
        return self._engine.is_leaf(self._node, self._require_type())

    def snapshot_into(self, context: Any) -> List[SnapshotEntry]:
        """Freeze this node's current chain against ``context``."""
        hierarchy_type = self._require_type()
        if self._lineage.snapshots is None:
            raise InvalidConfigurationError("Snapshots are not configured.")
        return self._lineage.snapshots.snapshot(
            self._lineage.ref(context), self._node, hierarchy_type
        )


class TypedLineage:
    """Operations scoped to one hierarchy type."""

    def __init__(self, lineage: Lineage, hierarchy_type: HierarchyTypeLike):
        self._lineage = lineage
        self._type = resolve_type(hierarchy_type)

    @property
    def hierarchy_type(self) -> str:
        return self._type

    def for_node(self, obj: Any) -> NodeLineage:
        return self._lineage.for_node(obj, self._type)

    def roots(self) -> List[NodeRef]:
        return self._lineage.engine.get_root_nodes(self._type)

    def add(self, obj: Any, parent: Any = None) -> NodeLineage:
        return self.for_node(obj).add(parent)


def create_lineage(
    settings: Optional[Union[LineageSettings, Mapping[str, Any]]] = None,
    resolver: Optional[NodeResolver] = None,
) -> Lineage:
    """
    Build a fully wired ``Lineage`` from settings.

    Args:
        settings: LineageSettings or a plain mapping of its fields (default: defaults)
        resolver: Optional node resolver for ``Lineage.resolve``

    Raises:
        InvalidConfigurationError: If both key maps are configured
    """
    if settings is None:
        settings = LineageSettings()
    elif not isinstance(settings, LineageSettings):
        settings = LineageSettings(**settings)

    # Validate key maps before touching the database.
    keys = KeyRegistry.from_settings(settings)

    store = create_closure_store(
        "sqlalchemy",
        url=settings.url,
        table_name=settings.table_name,
        key_type=settings.key_type,
        pool_size=settings.pool_size,
        echo=settings.echo,
        isolation_level=settings.isolation_level,
    )
    notifier = ChangeNotifier(enabled=settings.events.enabled)
    engine = HierarchyEngine(store, notifier=notifier, max_depth=settings.max_depth)
    snapshots = SnapshotProjector(
        engine,
        store,
        table_name=settings.snapshots.table_name,
        context_key_type=settings.snapshots.context_key_type,
        enabled=settings.snapshots.enabled,
        notifier=notifier,
    )

    logger.debug(
        "Lineage created: table=%s, max_depth=%s, snapshots=%s",
        settings.table_name,
        settings.max_depth,
        settings.snapshots.enabled,
    )
    return Lineage(engine, snapshots, keys, resolver, settings)


__all__ = ["Lineage", "NodeLineage", "TypedLineage", "create_lineage"]
