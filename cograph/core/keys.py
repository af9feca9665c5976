"""Cross-store key derivation.

The relational store and the graph store are joined exclusively through
these deterministic keys; neither store's internal identifiers ever cross
the boundary.  Every function here is pure.
"""

from __future__ import annotations


def file_node_id(repository_id: str, file_path: str) -> str:
    """Return the cross-store key of a repository file.

    >>> file_node_id("r1", "src/index.ts")
    'file-r1-src/index.ts'
    """
    return f"file-{repository_id}-{file_path}"


def entity_node_id(repository_id: str, file_path: str, entity_name: str) -> str:
    """Return the cross-store key of a code entity inside a file."""
    return f"entity-{repository_id}-{file_path}-{entity_name}"


def edge_id(source: str, edge_type: str, target: str) -> str:
    """Return a stable identity for a graph edge."""
    return f"{source}-{edge_type}-{target}"
