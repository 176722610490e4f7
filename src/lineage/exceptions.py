"""
Exception classes for Lineage.

Every error the hierarchy engine raises derives from ``LineageError``. The
module has no dependencies so that the store, the engine and the settings
layer can all import it without pulling each other in.

    exceptions.py (BASE - zero dependencies)
        ^
    nodes.py / settings.py / keys.py
        ^
    store/ -> engine.py -> manager.py

A raised error from a mutating engine call means no closure row changed:
validation runs inside the same transaction as the writes and any failure
rolls that transaction back.
"""

from typing import Any, Optional


class LineageError(Exception):
    """Base class for all hierarchy errors."""


class CircularReferenceError(LineageError):
    """
    Raised when an attach or move would make a node its own ancestor.

    Attributes:
        node: The node being attached or moved
        parent: The requested parent
    """

    def __init__(self, node: Any, parent: Any):
        self.node = node
        self.parent = parent
        super().__init__(
            f"Cannot attach [{node}] to [{parent}] - "
            "this would create a circular reference."
        )


class MaxDepthExceededError(LineageError):
    """
    Raised when an attach would push a node below the configured ceiling.

    Attributes:
        max_depth: The configured maximum depth
    """

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        super().__init__(f"Maximum hierarchy depth ({max_depth} levels) exceeded.")


class ConstraintViolationError(LineageError):
    """Raised when a write would duplicate a closure row or give a node a second parent."""


class KeyMappingError(LineageError):
    """
    Raised in strict key-mapping mode for a node kind with no mapped key.

    Attributes:
        kind: The unmapped node kind
    """

    def __init__(self, kind: str, message: Optional[str] = None):
        self.kind = kind
        super().__init__(
            message
            or f"No key mapping configured for kind '{kind}' and strict mapping is enforced."
        )


class InvalidConfigurationError(LineageError):
    """Raised for invalid or conflicting configuration."""

    @classmethod
    def conflicting_key_maps(cls) -> "InvalidConfigurationError":
        return cls(
            'Cannot configure both "key_map" and "enforce_key_map". '
            "Choose one or the other."
        )

    @classmethod
    def missing_hierarchy_type(cls) -> "InvalidConfigurationError":
        return cls("Hierarchy type must be set. Call type() first.")


__all__ = [
    "LineageError",
    "CircularReferenceError",
    "MaxDepthExceededError",
    "ConstraintViolationError",
    "KeyMappingError",
    "InvalidConfigurationError",
]
