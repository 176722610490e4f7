"""
Shared helpers for hierarchy tests: node shorthands and closure table checks.
"""

from lineage import NodeRef


def user(i):
    """Shorthand for a user node reference."""
    return NodeRef("user", i)


def all_rows(store, hierarchy_type=None):
    """Snapshot of the persisted closure rows."""
    with store.transaction() as tx:
        return tx.rows(hierarchy_type)


def row_set(store, hierarchy_type=None):
    """Rows as comparable tuples, ignoring surrogate ids and timestamps."""
    return sorted(
        (
            row.ancestor.kind,
            str(row.ancestor.id),
            row.descendant.kind,
            str(row.descendant.id),
            row.depth,
            row.hierarchy_type,
        )
        for row in all_rows(store, hierarchy_type)
    )


def build_chain(engine, hierarchy_type, length, start=1):
    """Add ``length`` users, each attached under the previous one."""
    nodes = [user(i) for i in range(start, start + length)]
    engine.add_to_hierarchy(nodes[0], hierarchy_type)
    for parent, child in zip(nodes, nodes[1:]):
        engine.add_to_hierarchy(child, hierarchy_type, parent=parent)
    return nodes


def assert_closure_invariants(store, hierarchy_type):
    """Check self rows, uniqueness, transitivity, acyclicity and single parent."""
    rows = all_rows(store, hierarchy_type)
    by_pair = {}
    for row in rows:
        key = (row.ancestor, row.descendant)
        assert key not in by_pair, f"duplicate row {key}"
        by_pair[key] = row.depth

    nodes = {row.ancestor for row in rows} | {row.descendant for row in rows}
    for node in nodes:
        assert by_pair.get((node, node)) == 0, f"missing self row for {node}"

    for (a, d), depth in by_pair.items():
        if a == d:
            assert depth == 0, f"cycle through {a}"

    for (x, y), d1 in by_pair.items():
        if d1 == 0:
            continue
        for (y2, z), d2 in by_pair.items():
            if y2 != y or d2 == 0:
                continue
            assert by_pair.get((x, z)) == d1 + d2, f"missing transitive row {x}->{z}"

    parents = {}
    for (a, d), depth in by_pair.items():
        if depth == 1:
            assert d not in parents, f"{d} has two parents"
            parents[d] = a
