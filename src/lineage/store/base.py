"""
Closure Store abstract base classes and registry.

The closure store owns the persisted ``ClosureRow`` tuples. All reads and
writes go through a ``ClosureTransaction`` obtained from
``ClosureStore.transaction()``; the hierarchy engine opens exactly one
transaction per operation so that multi-row mutations are atomic.

Example:
    >>> from lineage.store import create_closure_store
    >>>
    >>> store = create_closure_store("sqlalchemy", url="sqlite:///:memory:")
    >>> with store.transaction() as tx:
    ...     tx.insert(ClosureRow(node, node, 0, "seller"))
    >>> store.close()
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Type

from ..nodes import ClosureRow, DepthFilter, NodeRef


class ClosureTransaction(ABC):
    """
    Unit of work against the closure store.

    Used as a context manager: commits on clean exit, rolls back when the
    block raises. Commit failures are raised, never swallowed.

    Every operation is scoped to one hierarchy type; rows of different
    types never interact.
    """

    @abstractmethod
    def __enter__(self) -> "ClosureTransaction":
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    @abstractmethod
    def insert(self, row: ClosureRow) -> None:
        """
        Insert one row.

        Raises:
            ConstraintViolationError: If a row with the same ancestor,
                descendant and hierarchy type already exists
        """
        pass

    @abstractmethod
    def delete_where(
        self,
        hierarchy_type: str,
        ancestor: Optional[NodeRef] = None,
        descendant: Optional[NodeRef] = None,
        depth: Optional[DepthFilter] = None,
        involving: Optional[NodeRef] = None,
        ancestors: Optional[Iterable[NodeRef]] = None,
        descendants: Optional[Iterable[NodeRef]] = None,
    ) -> int:
        """
        Bulk delete rows matching every given predicate.

        Args:
            hierarchy_type: Type partition (always required)
            ancestor: Exact ancestor endpoint
            descendant: Exact descendant endpoint
            depth: Depth predicate
            involving: Node appearing as either ancestor or descendant
            ancestors: Ancestor must be one of these nodes
            descendants: Descendant must be one of these nodes

        Returns:
            Number of rows removed
        """
        pass

    @abstractmethod
    def query_ancestors(
        self,
        descendant: NodeRef,
        hierarchy_type: str,
        depth: Optional[DepthFilter] = None,
    ) -> List[ClosureRow]:
        """Rows with ``descendant`` as descendant, ordered by depth ascending."""
        pass

    @abstractmethod
    def query_descendants(
        self,
        ancestor: NodeRef,
        hierarchy_type: str,
        depth: Optional[DepthFilter] = None,
    ) -> List[ClosureRow]:
        """Rows with ``ancestor`` as ancestor, ordered by depth ascending."""
        pass

    @abstractmethod
    def exists(
        self,
        ancestor: NodeRef,
        descendant: NodeRef,
        hierarchy_type: str,
        depth: Optional[DepthFilter] = None,
    ) -> bool:
        """Whether a row links ``ancestor`` to ``descendant``."""
        pass

    @abstractmethod
    def max_depth_for(self, node: NodeRef, hierarchy_type: str) -> Optional[int]:
        """Greatest depth at which ``node`` is descendant; None if it has no rows."""
        pass

    @abstractmethod
    def exists_self_row(self, node: NodeRef, hierarchy_type: str) -> bool:
        pass

    @abstractmethod
    def find_root_nodes(self, hierarchy_type: str) -> List[NodeRef]:
        """Nodes whose only row as descendant is their self row."""
        pass

    @abstractmethod
    def rows(self, hierarchy_type: Optional[str] = None) -> List[ClosureRow]:
        """Every row (optionally of one type), in a stable order."""
        pass


class ClosureStore(ABC):
    """
    Abstract base class for closure table storage.

    Thread Safety:
        Implementations MUST serialize mutating transactions so that a
        validation query followed by inserts cannot interleave with another
        writer in the same process.
    """

    @abstractmethod
    def transaction(self) -> ClosureTransaction:
        """Create a transaction context manager."""
        pass

    def normalize_node(self, node: NodeRef) -> NodeRef:
        """
        Reference in the form the store persists and returns.

        The default keeps ids as given.
        """
        return node

    @abstractmethod
    def close(self) -> None:
        """
        Close the store and release resources.

        Safe to call multiple times.
        """
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close the store."""
        self.close()
        return False


# =============================================================================
# STORE REGISTRY AND FACTORY
# =============================================================================


_STORE_REGISTRY: Dict[str, Type[ClosureStore]] = {}


def register_store(name: str, store_class: Type[ClosureStore]) -> None:
    """
    Register a closure store class with the registry.

    Args:
        name: Store name (e.g., "sqlalchemy")
        store_class: Class implementing ClosureStore
    """
    _STORE_REGISTRY[name.lower()] = store_class


def get_registered_stores() -> List[str]:
    """Get list of registered store names."""
    return list(_STORE_REGISTRY.keys())


def create_closure_store(store_type: str = "sqlalchemy", **kwargs) -> ClosureStore:
    """
    Factory function to create a closure store instance.

    Args:
        store_type: Registered store name
        **kwargs: Store-specific configuration options

    Raises:
        ValueError: If store_type is not registered
    """
    store_name = store_type.lower()

    if store_name not in _STORE_REGISTRY:
        available = ", ".join(get_registered_stores()) or "none"
        raise ValueError(
            f"Unknown store type: '{store_type}'. " f"Available stores: {available}"
        )

    return _STORE_REGISTRY[store_name](**kwargs)
