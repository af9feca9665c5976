"""Graph data models for write records and query responses.

Write records (``*Record``) describe what the synchronizer pushes into
Neo4j; their ``by_alias`` dumps are the exact Cypher parameter maps.
Response models (:class:`DependencyGraph` and friends) are what the
query engine returns to callers.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TraversalDepth = Literal[1, 2, 3, -1]
"""Maximum number of IMPORTS hops; ``-1`` means unbounded."""

GraphNodeType = Literal["file", "function", "class", "interface"]
GraphEdgeType = Literal["imports", "exports", "contains"]
EntityLabel = Literal["Function", "Class", "Interface"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ------------------------------------------------------------------
# Write records
# ------------------------------------------------------------------


class FileNodeRecord(_CamelModel):
    """Properties of a ``File`` node."""

    id: str
    repository_id: str
    path: str
    name: str
    type: str
    lines_of_code: int = 0


class EntityNodeRecord(_CamelModel):
    """Properties of a ``Function`` / ``Class`` / ``Interface`` node.

    Attributes:
        file_id: Cross-store key of the owning file (CONTAINS source).
        type: Graph label; restricted to the entity allow-list.
    """

    id: str
    file_id: str
    name: str
    type: EntityLabel
    start_line: int
    end_line: int


class ImportRelationshipRecord(_CamelModel):
    """An ``IMPORTS`` edge between two files."""

    source_file_id: str
    target_file_id: str
    specifiers: list[str] = Field(default_factory=list)


class ExportRelationshipRecord(_CamelModel):
    """An ``EXPORTS`` edge from a file to one of its entities."""

    file_id: str
    entity_id: str


# ------------------------------------------------------------------
# Query responses
# ------------------------------------------------------------------


class PaginationOptions(BaseModel):
    limit: Optional[int] = Field(None, ge=1)
    offset: int = Field(0, ge=0)


class GraphNodeData(_CamelModel):
    """Graph-native fields of a node, optionally enriched from the relational store."""

    neo4j_node_id: str
    name: Optional[str] = None
    path: Optional[str] = None
    file_type: Optional[str] = None
    lines_of_code: Optional[int] = None
    repository_file_id: Optional[str] = None
    annotations: Optional[dict[str, Any]] = None
    ai_summary: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    entity_type: Optional[Literal["function", "class", "interface"]] = None


class GraphNode(_CamelModel):
    id: str
    label: str
    type: GraphNodeType
    data: GraphNodeData


class GraphEdgeData(_CamelModel):
    specifiers: Optional[list[str]] = None
    label: Optional[str] = None


class GraphEdge(_CamelModel):
    """A directed edge with an identity stable across repeated queries."""

    id: str
    source: str
    target: str
    type: GraphEdgeType
    data: Optional[GraphEdgeData] = None


class DependencyGraph(_CamelModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


class CircularDependency(_CamelModel):
    """One import cycle.

    Attributes:
        cycle: Node ids along the cycle; the first id is repeated at the end.
        paths: File paths along the cycle, aligned with ``cycle``.
        length: Number of IMPORTS hops.
    """

    cycle: list[str]
    paths: list[str]
    length: int
