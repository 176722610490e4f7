"""
Tests for node references, closure rows and depth filters.
"""

import unittest
from enum import Enum

from lineage import InvalidConfigurationError
from lineage.nodes import DepthFilter, NodeRef, as_node, resolve_type


class HierarchyKind(Enum):
    SELLER = "seller"
    SUPPORT = "support"


class TestNodeRef(unittest.TestCase):
    """NodeRef equality, hashing and formatting."""

    def test_equal_by_value(self):
        self.assertEqual(NodeRef("user", 1), NodeRef("user", 1))
        self.assertNotEqual(NodeRef("user", 1), NodeRef("team", 1))
        self.assertNotEqual(NodeRef("user", 1), NodeRef("user", 2))

    def test_hashable(self):
        refs = {NodeRef("user", 1), NodeRef("user", 1), NodeRef("user", 2)}
        self.assertEqual(len(refs), 2)

    def test_str_format(self):
        self.assertEqual(str(NodeRef("user", 42)), "user:42")

    def test_immutable(self):
        ref = NodeRef("user", 1)
        with self.assertRaises(Exception):
            ref.id = 2

    def test_as_node_accepts_tuple(self):
        self.assertEqual(as_node(("user", 7)), NodeRef("user", 7))

    def test_as_node_rejects_other_values(self):
        with self.assertRaises(TypeError):
            as_node("user:7")


class TestResolveType(unittest.TestCase):
    """Hierarchy type normalization."""

    def test_plain_string(self):
        self.assertEqual(resolve_type("seller"), "seller")

    def test_enum_member_uses_value(self):
        self.assertEqual(resolve_type(HierarchyKind.SUPPORT), "support")

    def test_empty_type_rejected(self):
        with self.assertRaises(InvalidConfigurationError):
            resolve_type("")


class TestDepthFilter(unittest.TestCase):
    """DepthFilter constructors."""

    def test_strict_excludes_self(self):
        self.assertEqual(DepthFilter.strict(), DepthFilter(greater_than=0))

    def test_exactly(self):
        self.assertEqual(DepthFilter.exactly(2), DepthFilter(equals=2))

    def test_bounded(self):
        self.assertEqual(
            DepthFilter.bounded(include_self=True, max_depth=2), DepthFilter(at_most=2)
        )
        self.assertEqual(
            DepthFilter.bounded(include_self=False, max_depth=None),
            DepthFilter(greater_than=0),
        )


if __name__ == "__main__":
    unittest.main()
