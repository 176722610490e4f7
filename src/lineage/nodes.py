"""
Node identity and closure row value types.

A node is addressed by an opaque ``(kind, id)`` pair: ``kind`` names the
owning entity category (e.g. ``"user"``) and ``id`` is the key value of the
record (int, str, UUID, ULID string). The hierarchy engine never looks past
this pair; turning a reference back into a record is the job of a
``NodeResolver`` (see ``lineage.keys``).

Example:
    >>> from lineage.nodes import NodeRef
    >>> NodeRef("user", 1) == NodeRef("user", 1)
    True
    >>> str(NodeRef("user", 1))
    'user:1'
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union

from .exceptions import InvalidConfigurationError


@dataclass(frozen=True)
class NodeRef:
    """Value-compared reference to a node in a hierarchy."""

    kind: str
    id: Any

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"

    def as_tuple(self) -> Tuple[str, Any]:
        return (self.kind, self.id)


@dataclass(frozen=True)
class ClosureRow:
    """
    One persisted ancestor/descendant pair.

    Attributes:
        ancestor: The ancestor endpoint
        descendant: The descendant endpoint
        depth: Generations between the two (0 = self row)
        hierarchy_type: Namespace partition the row belongs to
    """

    ancestor: NodeRef
    descendant: NodeRef
    depth: int
    hierarchy_type: str


@dataclass(frozen=True)
class DepthFilter:
    """
    Depth predicate for closure row queries and deletes.

    Attributes:
        greater_than: Exclusive lower bound (``DepthFilter(greater_than=0)``
            excludes self rows)
        equals: Exact depth
        at_most: Inclusive upper bound

    Example:
        >>> DepthFilter.bounded(include_self=False, max_depth=2)
        DepthFilter(greater_than=0, equals=None, at_most=2)
    """

    greater_than: Optional[int] = None
    equals: Optional[int] = None
    at_most: Optional[int] = None

    @classmethod
    def strict(cls) -> "DepthFilter":
        return cls(greater_than=0)

    @classmethod
    def exactly(cls, depth: int) -> "DepthFilter":
        return cls(equals=depth)

    @classmethod
    def bounded(cls, include_self: bool, max_depth: Optional[int]) -> "DepthFilter":
        """Filter used by ancestor/descendant traversals."""
        return cls(greater_than=None if include_self else 0, at_most=max_depth)


HierarchyTypeLike = Union[str, Enum]
NodeLike = Union[NodeRef, Tuple[str, Any]]


def resolve_type(hierarchy_type: HierarchyTypeLike) -> str:
    """
    Normalize a hierarchy type to its string value.

    Accepts plain strings or enum members (their ``value`` is used), so
    applications can keep their hierarchy types in an ``Enum``.

    Raises:
        InvalidConfigurationError: If the type is empty
    """
    if isinstance(hierarchy_type, Enum):
        value = hierarchy_type.value
    else:
        value = hierarchy_type

    if value is None or str(value) == "":
        raise InvalidConfigurationError("Hierarchy type must be a non-empty string.")

    return str(value)


def as_node(node: NodeLike) -> NodeRef:
    """Coerce a ``NodeRef`` or ``(kind, id)`` tuple to a ``NodeRef``."""
    if isinstance(node, NodeRef):
        return node
    if isinstance(node, tuple) and len(node) == 2:
        return NodeRef(str(node[0]), node[1])
    raise TypeError(f"Expected NodeRef or (kind, id) tuple, got {type(node).__name__}")


__all__ = [
    "NodeRef",
    "ClosureRow",
    "DepthFilter",
    "HierarchyTypeLike",
    "NodeLike",
    "resolve_type",
    "as_node",
]
