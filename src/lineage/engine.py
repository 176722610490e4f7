"""
Hierarchy Engine.

Maintains a closure table under mutation and answers structural queries.
Every ancestor/descendant pair is stored explicitly with its depth:

    Tree:                       Closure rows (type "seller"):

        vp                      ancestor | descendant | depth
        └── manager             ---------|------------|------
            └── partner         vp       | vp         | 0
                                vp       | manager    | 1
                                vp       | partner    | 2
                                manager  | manager    | 0
                                manager  | partner    | 1
                                partner  | partner    | 0

Ancestor and descendant lookups are single indexed queries; mutations keep
the table closed under transitivity, acyclic, single-parent, and within the
configured depth ceiling. Each public mutation runs in one store transaction
and queues at most one notification, emitted after the commit.

Example:
    >>> engine = HierarchyEngine(store, max_depth=None)
    >>> vp, manager = NodeRef("user", 1), NodeRef("user", 2)
    >>> engine.add_to_hierarchy(vp, "seller")
    >>> engine.add_to_hierarchy(manager, "seller", parent=vp)
    >>> engine.get_path(manager, "seller")
    [NodeRef(kind='user', id=1), NodeRef(kind='user', id=2)]
"""

import logging
from typing import Any, Dict, List, Optional

from .events import ChangeNotifier, NodeAttached, NodeDetached, NodeMoved, NodeRemoved
from .exceptions import (
    CircularReferenceError,
    ConstraintViolationError,
    InvalidConfigurationError,
    MaxDepthExceededError,
)
from .nodes import (
    ClosureRow,
    DepthFilter,
    HierarchyTypeLike,
    NodeLike,
    NodeRef,
    as_node,
    resolve_type,
)
from .store.base import ClosureStore, ClosureTransaction

logger = logging.getLogger(__name__)


class HierarchyEngine:
    """
    Closure-table hierarchy operations over a ``ClosureStore``.

    The engine holds no hierarchy state of its own; everything lives in the
    store. Nodes may be given as ``NodeRef`` or ``(kind, id)`` tuples and
    hierarchy types as strings or enum members.

    Args:
        store: Closure store providing transactions
        notifier: Receives change notifications (default: a new enabled notifier)
        max_depth: Maximum ancestor-chain depth, None for unbounded

    Raises:
        InvalidConfigurationError: If max_depth is negative
    """

    def __init__(
        self,
        store: ClosureStore,
        notifier: Optional[ChangeNotifier] = None,
        max_depth: Optional[int] = None,
    ):
        if max_depth is not None and max_depth < 0:
            raise InvalidConfigurationError(
                f"max_depth must be a non-negative integer or None, got {max_depth}"
            )

        self._store = store
        self._notifier = notifier if notifier is not None else ChangeNotifier()
        self._max_depth = max_depth

    @property
    def store(self) -> ClosureStore:
        return self._store

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    @property
    def max_depth(self) -> Optional[int]:
        return self._max_depth

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def add_to_hierarchy(
        self,
        node: NodeLike,
        hierarchy_type: HierarchyTypeLike,
        parent: Optional[NodeLike] = None,
    ) -> None:
        """
        Add a node to a hierarchy, optionally under a parent.

        Creating the self row is idempotent. With a parent, the attach runs
        in the same transaction and a ``NodeAttached`` notification follows.

        Raises:
            CircularReferenceError: If the parent is the node or one of its descendants
            MaxDepthExceededError: If the attach would exceed the depth ceiling
            ConstraintViolationError: If the node already has a parent
        """
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)
        parent = self._node(parent) if parent is not None else None
        events = []

        with self._store.transaction() as tx:
            self._ensure_self_row(tx, node, type_value)
            if parent is not None:
                self._attach(tx, node, parent, type_value)
                events.append(NodeAttached(node, parent, type_value))

        logger.debug("Added %s to '%s' (parent=%s)", node, type_value, parent)
        self._emit(events)

    def attach_to_parent(
        self,
        node: NodeLike,
        parent: NodeLike,
        hierarchy_type: HierarchyTypeLike,
    ) -> None:
        """
        Attach a node (and its existing subtree) under ``parent``.

        Validation runs before any write, in order: cycle check, depth
        ceiling, single parent. Nodes never added explicitly get their self
        row on the way.

        Raises:
            CircularReferenceError: If ``node`` is ``parent`` or an ancestor of it
            MaxDepthExceededError: If the deepest node of the subtree would
                end up below the depth ceiling
            ConstraintViolationError: If ``node`` already has a parent
        """
        node = self._node(node)
        parent = self._node(parent)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            self._attach(tx, node, parent, type_value)

        logger.debug("Attached %s to %s in '%s'", node, parent, type_value)
        self._emit([NodeAttached(node, parent, type_value)])

    def detach_from_parent(
        self,
        node: NodeLike,
        hierarchy_type: HierarchyTypeLike,
    ) -> None:
        """
        Detach a node from its parent, making it a root.

        The node keeps its own subtree; every path from the node's former
        ancestors into that subtree is removed. Emits ``NodeDetached`` only
        when the node had a parent.
        """
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            previous_parent = self._direct_parent(tx, node, type_value)
            removed = self._detach(tx, node, type_value)

        if previous_parent is None:
            return

        logger.debug(
            "Detached %s from %s in '%s' (%d rows)",
            node,
            previous_parent,
            type_value,
            removed,
        )
        self._emit([NodeDetached(node, previous_parent, type_value)])

    def remove_from_hierarchy(
        self,
        node: NodeLike,
        hierarchy_type: HierarchyTypeLike,
    ) -> None:
        """
        Remove a node from a hierarchy entirely.

        Paths that routed through the node are severed. Former descendants
        keep their relationships to each other but are not re-parented to the
        node's former parent. Emits ``NodeRemoved`` even when the
        node had no rows.
        """
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)
        strict = DepthFilter.strict()

        with self._store.transaction() as tx:
            descendants = [r.descendant for r in tx.query_descendants(node, type_value, strict)]
            ancestors = [r.ancestor for r in tx.query_ancestors(node, type_value, strict)]

            severed = 0
            if descendants and ancestors:
                severed = tx.delete_where(
                    type_value, ancestors=ancestors, descendants=descendants
                )
            removed = tx.delete_where(type_value, involving=node)

        logger.debug(
            "Removed %s from '%s' (%d rows, %d cross links)",
            node,
            type_value,
            removed,
            severed,
        )
        self._emit([NodeRemoved(node, type_value)])

    def move_to_parent(
        self,
        node: NodeLike,
        new_parent: Optional[NodeLike],
        hierarchy_type: HierarchyTypeLike,
    ) -> None:
        """
        Move a node with its whole subtree under ``new_parent``.

        With ``new_parent=None`` the node becomes a root. The subtree is
        rebuilt from each descendant's direct parent, captured before any
        row is deleted, so its internal shape is reproduced exactly.

        Raises:
            CircularReferenceError: If ``new_parent`` is the node or one of its descendants
            MaxDepthExceededError: If the moved subtree would exceed the depth ceiling
        """
        node = self._node(node)
        new_parent = self._node(new_parent) if new_parent is not None else None
        type_value = resolve_type(hierarchy_type)
        strict = DepthFilter.strict()

        with self._store.transaction() as tx:
            if new_parent is not None and (
                new_parent == node or tx.exists(node, new_parent, type_value, strict)
            ):
                raise CircularReferenceError(node, new_parent)

            participates = tx.exists_self_row(node, type_value)
            previous_parent = self._direct_parent(tx, node, type_value)

            # Ordered by depth, so every parent precedes its children.
            descendants = [
                r.descendant for r in tx.query_descendants(node, type_value, strict)
            ]
            parent_map: Dict[NodeRef, NodeRef] = {}
            for descendant in descendants:
                direct_parent = self._direct_parent(tx, descendant, type_value)
                if direct_parent is not None:
                    parent_map[descendant] = direct_parent

            self._detach(tx, node, type_value)
            if descendants:
                tx.delete_where(type_value, descendants=descendants, depth=strict)

            if new_parent is not None:
                self._attach(tx, node, new_parent, type_value)

            for descendant in descendants:
                direct_parent = parent_map.get(descendant)
                if direct_parent is not None:
                    self._attach(tx, descendant, direct_parent, type_value)

        if not participates and new_parent is None:
            return

        logger.debug(
            "Moved %s from %s to %s in '%s' (%d descendants)",
            node,
            previous_parent,
            new_parent,
            type_value,
            len(descendants),
        )
        self._emit([NodeMoved(node, previous_parent, new_parent, type_value)])

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_ancestors(
        self,
        node: NodeLike,
        hierarchy_type: HierarchyTypeLike,
        include_self: bool = False,
        max_depth: Optional[int] = None,
    ) -> List[NodeRef]:
        """Ancestors of a node, nearest first."""
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            rows = tx.query_ancestors(
                node, type_value, DepthFilter.bounded(include_self, max_depth)
            )
        return [r.ancestor for r in rows]

    def get_descendants(
        self,
        node: NodeLike,
        hierarchy_type: HierarchyTypeLike,
        include_self: bool = False,
        max_depth: Optional[int] = None,
    ) -> List[NodeRef]:
        """Descendants of a node, nearest first."""
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            rows = tx.query_descendants(
                node, type_value, DepthFilter.bounded(include_self, max_depth)
            )
        return [r.descendant for r in rows]

    def get_direct_parent(
        self, node: NodeLike, hierarchy_type: HierarchyTypeLike
    ) -> Optional[NodeRef]:
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return self._direct_parent(tx, node, type_value)

    def get_direct_children(
        self, node: NodeLike, hierarchy_type: HierarchyTypeLike
    ) -> List[NodeRef]:
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return self._direct_children(tx, node, type_value)

    def is_ancestor_of(
        self,
        potential_ancestor: NodeLike,
        potential_descendant: NodeLike,
        hierarchy_type: HierarchyTypeLike,
    ) -> bool:
        ancestor = self._node(potential_ancestor)
        descendant = self._node(potential_descendant)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return tx.exists(ancestor, descendant, type_value, DepthFilter.strict())

    def is_descendant_of(
        self,
        potential_descendant: NodeLike,
        potential_ancestor: NodeLike,
        hierarchy_type: HierarchyTypeLike,
    ) -> bool:
        return self.is_ancestor_of(potential_ancestor, potential_descendant, hierarchy_type)

    def get_depth(self, node: NodeLike, hierarchy_type: HierarchyTypeLike) -> int:
        """
        Maximum ancestor depth of a node.

        Returns 0 for roots and also for nodes absent from the hierarchy;
        combine with ``is_in_hierarchy`` to tell them apart.
        """
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return tx.max_depth_for(node, type_value) or 0

    def get_roots(
        self, node: NodeLike, hierarchy_type: HierarchyTypeLike
    ) -> List[NodeRef]:
        """
        Root(s) of the tree containing a node.

        ``[node]`` for a root; otherwise the ancestors at exactly the node's
        maximum depth (one in a well-formed tree).
        """
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            depth = tx.max_depth_for(node, type_value) or 0
            if depth == 0:
                return [node]
            rows = tx.query_ancestors(node, type_value, DepthFilter.exactly(depth))
        return [r.ancestor for r in rows]

    def build_tree(
        self, node: NodeLike, hierarchy_type: HierarchyTypeLike
    ) -> Dict[str, Any]:
        """
        Nested ``{"node": NodeRef, "children": [...]}`` structure rooted at ``node``.

        Children appear in the order the store returns them.
        """
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return self._build_tree(tx, node, type_value)

    def get_path(
        self, node: NodeLike, hierarchy_type: HierarchyTypeLike
    ) -> List[NodeRef]:
        """Root-to-node path, the node itself last."""
        return list(reversed(self.get_ancestors(node, hierarchy_type, include_self=True)))

    def is_in_hierarchy(self, node: NodeLike, hierarchy_type: HierarchyTypeLike) -> bool:
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return tx.exists_self_row(node, type_value)

    def is_root(self, node: NodeLike, hierarchy_type: HierarchyTypeLike) -> bool:
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return tx.exists_self_row(node, type_value) and not (
                tx.max_depth_for(node, type_value) or 0
            )

    def is_leaf(self, node: NodeLike, hierarchy_type: HierarchyTypeLike) -> bool:
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return not tx.query_descendants(node, type_value, DepthFilter.exactly(1))

    def get_siblings(
        self,
        node: NodeLike,
        hierarchy_type: HierarchyTypeLike,
        include_self: bool = False,
    ) -> List[NodeRef]:
        """
        Nodes sharing the node's parent.

        For a root, the siblings are the other roots of the hierarchy type.
        """
        node = self._node(node)
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            parent = self._direct_parent(tx, node, type_value)
            if parent is None:
                candidates = tx.find_root_nodes(type_value)
            else:
                candidates = self._direct_children(tx, parent, type_value)

        if include_self:
            return candidates
        return [candidate for candidate in candidates if candidate != node]

    def get_root_nodes(self, hierarchy_type: HierarchyTypeLike) -> List[NodeRef]:
        """Every root node of a hierarchy type."""
        type_value = resolve_type(hierarchy_type)

        with self._store.transaction() as tx:
            return tx.find_root_nodes(type_value)

    # =========================================================================
    # INTERNALS (run inside a caller-owned transaction)
    # =========================================================================

    def _node(self, node: NodeLike) -> NodeRef:
        return self._store.normalize_node(as_node(node))

    def _emit(self, events: List[Any]) -> None:
        for event in events:
            self._notifier.emit(event)

    def _ensure_self_row(
        self, tx: ClosureTransaction, node: NodeRef, hierarchy_type: str
    ) -> None:
        if not tx.exists_self_row(node, hierarchy_type):
            tx.insert(ClosureRow(node, node, 0, hierarchy_type))

    def _direct_parent(
        self, tx: ClosureTransaction, node: NodeRef, hierarchy_type: str
    ) -> Optional[NodeRef]:
        rows = tx.query_ancestors(node, hierarchy_type, DepthFilter.exactly(1))
        return rows[0].ancestor if rows else None

    def _direct_children(
        self, tx: ClosureTransaction, node: NodeRef, hierarchy_type: str
    ) -> List[NodeRef]:
        rows = tx.query_descendants(node, hierarchy_type, DepthFilter.exactly(1))
        return [r.descendant for r in rows]

    def _build_tree(
        self, tx: ClosureTransaction, node: NodeRef, hierarchy_type: str
    ) -> Dict[str, Any]:
        return {
            "node": node,
            "children": [
                self._build_tree(tx, child, hierarchy_type)
                for child in self._direct_children(tx, node, hierarchy_type)
            ],
        }

    def _attach(
        self,
        tx: ClosureTransaction,
        node: NodeRef,
        parent: NodeRef,
        hierarchy_type: str,
    ) -> None:
        if node == parent or tx.exists(node, parent, hierarchy_type, DepthFilter.strict()):
            raise CircularReferenceError(node, parent)

        subtree = tx.query_descendants(node, hierarchy_type)

        if self._max_depth is not None:
            parent_depth = tx.max_depth_for(parent, hierarchy_type) or 0
            height = max((row.depth for row in subtree), default=0)
            if parent_depth + 1 + height > self._max_depth:
                raise MaxDepthExceededError(self._max_depth)

        if self._direct_parent(tx, node, hierarchy_type) is not None:
            raise ConstraintViolationError(
                f"[{node}] already has a parent in hierarchy '{hierarchy_type}'; "
                "detach or move it instead."
            )

        self._ensure_self_row(tx, node, hierarchy_type)
        self._ensure_self_row(tx, parent, hierarchy_type)
        if not subtree:
            subtree = [ClosureRow(node, node, 0, hierarchy_type)]

        # Parent's ancestors include the parent itself at depth 0.
        for upper in tx.query_ancestors(parent, hierarchy_type):
            for lower in subtree:
                tx.insert(
                    ClosureRow(
                        ancestor=upper.ancestor,
                        descendant=lower.descendant,
                        depth=upper.depth + lower.depth + 1,
                        hierarchy_type=hierarchy_type,
                    )
                )

    def _detach(
        self, tx: ClosureTransaction, node: NodeRef, hierarchy_type: str
    ) -> int:
        above = [
            r.ancestor
            for r in tx.query_ancestors(node, hierarchy_type, DepthFilter.strict())
        ]
        if not above:
            return 0

        subtree = [node] + [
            r.descendant
            for r in tx.query_descendants(node, hierarchy_type, DepthFilter.strict())
        ]
        return tx.delete_where(hierarchy_type, ancestors=above, descendants=subtree)


__all__ = ["HierarchyEngine"]
