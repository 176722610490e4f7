"""
Change notifications.

The hierarchy engine hands one notification to the ``ChangeNotifier`` after
each successful mutation, strictly after its transaction commits. Listeners
are plain callables. A failing listener is logged and skipped: delivery is
fire-and-forget and has no influence on the mutation that triggered it.

Example:
    >>> notifier = ChangeNotifier()
    >>> notifier.subscribe(lambda event: print(event), NodeAttached)
    >>> notifier.emit(NodeAttached(child, parent, "seller"))
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, Type

from .nodes import NodeRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeAttached:
    node: NodeRef
    parent: NodeRef
    hierarchy_type: str


@dataclass(frozen=True)
class NodeDetached:
    node: NodeRef
    previous_parent: NodeRef
    hierarchy_type: str


@dataclass(frozen=True)
class NodeMoved:
    node: NodeRef
    previous_parent: Optional[NodeRef]
    new_parent: Optional[NodeRef]
    hierarchy_type: str


@dataclass(frozen=True)
class NodeRemoved:
    node: NodeRef
    hierarchy_type: str


@dataclass(frozen=True)
class SnapshotCreated:
    context: NodeRef
    hierarchy_type: str
    count: int
    entries: Tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SnapshotCleared:
    context: NodeRef
    hierarchy_type: str
    count: int


Listener = Callable[[Any], None]


class ChangeNotifier:
    """
    Dispatches notifications to subscribed listeners with error isolation.

    Thread Safety:
        Subscription changes are guarded by a lock; listeners run on the
        emitting thread against a copy of the listener list.

    Attributes:
        enabled: When False, ``emit`` is a no-op
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._listeners: List[Tuple[Listener, Optional[Type]]] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener, event_type: Optional[Type] = None) -> None:
        """
        Register a listener, optionally for one notification class only.
        """
        with self._lock:
            self._listeners.append((listener, event_type))

    def unsubscribe(self, listener: Listener) -> None:
        """Remove every registration of ``listener``."""
        with self._lock:
            self._listeners = [
                (registered, event_type)
                for registered, event_type in self._listeners
                if registered != listener
            ]

    def emit(self, event: Any) -> None:
        if not self.enabled:
            return

        with self._lock:
            listeners = list(self._listeners)

        for listener, event_type in listeners:
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    "Listener %r failed for %s: %s", listener, type(event).__name__, e
                )


__all__ = [
    "NodeAttached",
    "NodeDetached",
    "NodeMoved",
    "NodeRemoved",
    "SnapshotCreated",
    "SnapshotCleared",
    "Listener",
    "ChangeNotifier",
]
