"""
Key extraction and node resolution.

The hierarchy engine only handles ``NodeRef`` values. This module bridges
application records and references in both directions:

- ``KeyRegistry`` turns a record into a ``NodeRef`` by reading the record's
  key attribute. The attribute defaults to ``id`` and can be overridden per
  kind (``key_map``), or overridden with strict enforcement
  (``enforce_key_map``), in which case a kind without a mapping is rejected.
- ``NodeResolver`` turns a ``NodeRef`` back into a record.

Example:
    >>> registry = KeyRegistry(key_map={"User": "email"})
    >>> registry.ref_for(user)
    NodeRef(kind='User', id='alice@example.com')
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .exceptions import InvalidConfigurationError, KeyMappingError
from .nodes import NodeRef

logger = logging.getLogger(__name__)

DEFAULT_KEY = "id"


def kind_of(record: Any) -> str:
    """Kind of a record: ``__lineage_kind__`` if set, else the class name."""
    if isinstance(record, Mapping):
        kind = record.get("__lineage_kind__")
    else:
        kind = getattr(record, "__lineage_kind__", None)
    if kind:
        return str(kind)
    return type(record).__name__


class KeyRegistry:
    """
    Maps node kinds to the record attribute that holds their key.

    Args:
        key_map: Kind -> attribute overrides; other kinds use ``id``
        enforce_key_map: Kind -> attribute; other kinds raise KeyMappingError

    Raises:
        InvalidConfigurationError: If both maps are given
    """

    def __init__(
        self,
        key_map: Optional[Mapping[str, str]] = None,
        enforce_key_map: Optional[Mapping[str, str]] = None,
    ):
        if key_map and enforce_key_map:
            raise InvalidConfigurationError.conflicting_key_maps()

        self._strict = bool(enforce_key_map)
        self._map: Dict[str, str] = dict(enforce_key_map or key_map or {})

    @classmethod
    def from_settings(cls, settings) -> "KeyRegistry":
        return cls(
            key_map=settings.key_map or None,
            enforce_key_map=settings.enforce_key_map or None,
        )

    @property
    def strict(self) -> bool:
        return self._strict

    def key_name(self, kind: str) -> str:
        """
        Attribute holding the key for ``kind``.

        Raises:
            KeyMappingError: In strict mode when ``kind`` is unmapped
        """
        if kind in self._map:
            return self._map[kind]
        if self._strict:
            raise KeyMappingError(kind)
        return DEFAULT_KEY

    def key_value(self, record: Any) -> Any:
        """Read the mapped key from a record (attribute or mapping item)."""
        name = self.key_name(kind_of(record))
        if isinstance(record, Mapping):
            return record[name]
        return getattr(record, name)

    def ref_for(self, record: Any) -> NodeRef:
        """Build the ``NodeRef`` addressing ``record``."""
        return NodeRef(kind_of(record), self.key_value(record))


class NodeResolver(ABC):
    """Resolves node references back to application records."""

    @abstractmethod
    def resolve(self, kind: str, id_value: Any) -> Optional[Any]:
        """
        Return the record for ``(kind, id_value)`` or None if it does not exist.
        """
        pass


class MappingNodeResolver(NodeResolver):
    """
    In-memory resolver backed by a dict keyed on ``(kind, id)``.

    Example:
        >>> resolver = MappingNodeResolver()
        >>> resolver.register(user)
        >>> resolver.resolve("User", user.id) is user
        True
    """

    def __init__(self, registry: Optional[KeyRegistry] = None):
        self._registry = registry or KeyRegistry()
        self._records: Dict[Tuple[str, Any], Any] = {}
        self._lock = threading.Lock()

    def register(self, *records: Any) -> None:
        with self._lock:
            for record in records:
                ref = self._registry.ref_for(record)
                self._records[ref.as_tuple()] = record

    def forget(self, record: Any) -> None:
        ref = self._registry.ref_for(record)
        with self._lock:
            self._records.pop(ref.as_tuple(), None)

    def resolve(self, kind: str, id_value: Any) -> Optional[Any]:
        with self._lock:
            return self._records.get((kind, id_value))


def resolve_all(resolver: NodeResolver, refs: Iterable[NodeRef]) -> List[Any]:
    """Resolve references in order, dropping the ones that no longer exist."""
    records = []
    for ref in refs:
        record = resolver.resolve(ref.kind, ref.id)
        if record is None:
            logger.debug("Dropping unresolved node %s", ref)
            continue
        records.append(record)
    return records


__all__ = [
    "DEFAULT_KEY",
    "kind_of",
    "KeyRegistry",
    "NodeResolver",
    "MappingNodeResolver",
    "resolve_all",
]
