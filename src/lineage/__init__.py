"""
Lineage: closure-table hierarchies over SQLAlchemy.

Example:
    >>> from lineage import create_lineage, NodeRef
    >>> with create_lineage() as lineage:
    ...     lineage.for_node(NodeRef("user", 2)).type("seller").add(parent=NodeRef("user", 1))
    ...     lineage.for_node(NodeRef("user", 2)).type("seller").parent()
    NodeRef(kind='user', id=1)
"""

__version__ = "0.1.0"

# Core exceptions (zero dependencies)
from .exceptions import (
    LineageError,
    CircularReferenceError,
    MaxDepthExceededError,
    ConstraintViolationError,
    KeyMappingError,
    InvalidConfigurationError,
)

from .nodes import NodeRef, ClosureRow, DepthFilter, resolve_type, as_node
from .settings import (
    KeyType,
    EventSettings,
    SnapshotSettings,
    LineageSettings,
    load_settings,
)
from .keys import KeyRegistry, NodeResolver, MappingNodeResolver
from .store import (
    ClosureStore,
    ClosureTransaction,
    SQLAlchemyClosureStore,
    create_closure_store,
    register_store,
)
from .events import (
    ChangeNotifier,
    NodeAttached,
    NodeDetached,
    NodeMoved,
    NodeRemoved,
    SnapshotCreated,
    SnapshotCleared,
)
from .engine import HierarchyEngine
from .snapshots import SnapshotEntry, SnapshotProjector
from .manager import Lineage, NodeLineage, TypedLineage, create_lineage

__all__ = [
    "__version__",
    "LineageError",
    "CircularReferenceError",
    "MaxDepthExceededError",
    "ConstraintViolationError",
    "KeyMappingError",
    "InvalidConfigurationError",
    "NodeRef",
    "ClosureRow",
    "DepthFilter",
    "resolve_type",
    "as_node",
    "KeyType",
    "EventSettings",
    "SnapshotSettings",
    "LineageSettings",
    "load_settings",
    "KeyRegistry",
    "NodeResolver",
    "MappingNodeResolver",
    "ClosureStore",
    "ClosureTransaction",
    "SQLAlchemyClosureStore",
    "create_closure_store",
    "register_store",
    "ChangeNotifier",
    "NodeAttached",
    "NodeDetached",
    "NodeMoved",
    "NodeRemoved",
    "SnapshotCreated",
    "SnapshotCleared",
    "HierarchyEngine",
    "SnapshotEntry",
    "SnapshotProjector",
    "Lineage",
    "NodeLineage",
    "TypedLineage",
    "create_lineage",
]
