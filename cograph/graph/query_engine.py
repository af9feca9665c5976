"""Read-side graph queries with relational metadata enrichment.

Every query follows the same three steps:

1. **Traverse**: one (or two concurrent) graph-store reads return raw
   file nodes, entity nodes and relationships.
2. **Enrich**: the raw nodes are joined to their relational rows by
   cross-store key using exactly two bulk queries (files, entities),
   never one query per node.
3. **Convert**: relationships become :class:`GraphEdge` descriptors whose
   ids are derived from ``(source, type, target)``.

If enrichment fails the engine still answers with the graph-native
fields instead of failing the whole query.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from cograph.core.keys import edge_id
from cograph.db.store import RelationalStore
from cograph.graph.database import GraphService
from cograph.models.graph import (
    CircularDependency,
    DependencyGraph,
    GraphEdge,
    GraphEdgeData,
    GraphNode,
    GraphNodeData,
    PaginationOptions,
    TraversalDepth,
)

logger = structlog.get_logger(__name__)

# Maps graph relationship types to edge types.
EDGE_TYPE_MAP: dict[str, str] = {
    "imports": "imports",
    "exports": "exports",
    "contains": "contains",
}

_ENTITY_TYPES = {"Function": "function", "Class": "class", "Interface": "interface"}


@dataclass
class RawGraphComponents:
    """Graph-native pieces of a query result, before enrichment.

    Nodes are ``{"labels", "properties"}`` dicts and relationships
    ``{"type", "start", "end", "properties"}`` dicts, as returned by
    :class:`GraphService`.
    """

    file_nodes: list[dict[str, Any]] = field(default_factory=list)
    entity_nodes: list[dict[str, Any]] = field(default_factory=list)
    relationships: list[dict[str, Any]] = field(default_factory=list)


class GraphQueryEngine:
    """Answers dependency questions over the graph store.

    Args:
        graph: Connected graph adapter.
        store: Relational adapter used for metadata enrichment.
        default_limit: Page size when a caller passes none.
        max_cycles: Cap on reported cycles.
    """

    def __init__(
        self,
        graph: GraphService,
        store: RelationalStore,
        default_limit: int = 500,
        max_cycles: int = 100,
    ) -> None:
        self._graph = graph
        self._store = store
        self.default_limit = default_limit
        self.max_cycles = max_cycles

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_repository_graph(
        self,
        repository_id: str,
        options: Optional[PaginationOptions] = None,
    ) -> DependencyGraph:
        """Return a page of files (ordered by path) with entities and imports."""
        limit, offset = self._page(options)
        logger.info("repository_graph_requested", repository_id=repository_id, limit=limit, offset=offset)

        rows = await asyncio.to_thread(
            self._graph.read_repository_files, repository_id, offset, limit
        )
        if not rows:
            logger.warning("repository_graph_empty", repository_id=repository_id, offset=offset)
            return DependencyGraph()

        return await self._build_graph(self._extract_file_rows(rows))

    async def get_files_by_type(
        self,
        repository_id: str,
        file_type: str,
        options: Optional[PaginationOptions] = None,
    ) -> DependencyGraph:
        """Same as :meth:`get_repository_graph`, restricted to one file type."""
        limit, offset = self._page(options)
        logger.info(
            "files_by_type_requested",
            repository_id=repository_id,
            file_type=file_type,
            limit=limit,
            offset=offset,
        )

        rows = await asyncio.to_thread(
            self._graph.read_repository_files, repository_id, offset, limit, file_type
        )
        if not rows:
            logger.warning("files_by_type_empty", repository_id=repository_id, file_type=file_type)
            return DependencyGraph()

        return await self._build_graph(self._extract_file_rows(rows))

    async def get_file_dependencies(
        self,
        file_id: str,
        depth: TraversalDepth = 1,
    ) -> DependencyGraph:
        """Return the files *file_id* imports, up to *depth* hops away."""
        return await self._traverse(file_id, depth, "dependencies")

    async def get_file_dependents(
        self,
        file_id: str,
        depth: TraversalDepth = 1,
    ) -> DependencyGraph:
        """Return the files importing *file_id*, up to *depth* hops away."""
        return await self._traverse(file_id, depth, "dependents")

    async def get_repository_node_count(self, repository_id: str) -> int:
        total = await asyncio.to_thread(self._graph.count_repository_files, repository_id)
        logger.info("repository_node_count", repository_id=repository_id, total=total)
        return total

    async def find_circular_dependencies(self, repository_id: str) -> list[CircularDependency]:
        """Return import cycles, shortest first, at most ``max_cycles`` of them."""
        logger.info("circular_dependencies_requested", repository_id=repository_id)

        rows = await asyncio.to_thread(self._graph.read_cycles, repository_id, self.max_cycles)

        cycles: list[CircularDependency] = []
        seen: set[tuple[str, ...]] = set()
        for row in rows:
            key = _canonical_cycle(row["cycle_ids"])
            if key in seen:
                continue
            seen.add(key)
            cycles.append(
                CircularDependency(
                    cycle=row["cycle_ids"],
                    paths=row["cycle_paths"],
                    length=row["length"],
                )
            )

        cycles.sort(key=lambda c: c.length)
        cycles = cycles[: self.max_cycles]
        logger.info("circular_dependencies_found", repository_id=repository_id, count=len(cycles))
        return cycles

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def _traverse(self, file_id: str, depth: int, direction: str) -> DependencyGraph:
        """Run the node query and the edge query concurrently.

        Collecting entities in the same query that expands a
        variable-length path would repeat every entity once per path, so
        nodes and edges are fetched by two independent reads.
        """
        if depth not in (1, 2, 3, -1):
            raise ValueError(f"Unsupported traversal depth: {depth}")
        logger.info("traversal_requested", file_id=file_id, depth=depth, direction=direction)

        node_rows, edge_rows = await asyncio.gather(
            asyncio.to_thread(self._graph.read_traversal_nodes, file_id, depth, direction),
            asyncio.to_thread(self._graph.read_traversal_edges, file_id, depth, direction),
        )

        components = RawGraphComponents(relationships=list(edge_rows))
        for row in node_rows:
            components.file_nodes.append(row["node"])
            self._add_entities(components, row["node"], row.get("entities") or [])

        return await self._build_graph(components)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def _extract_file_rows(self, rows: list[dict[str, Any]]) -> RawGraphComponents:
        """Flatten per-file rows (file, entities, imports) into components."""
        components = RawGraphComponents()
        for row in rows:
            file_node = row["file"]
            components.file_nodes.append(file_node)
            self._add_entities(components, file_node, row.get("entities") or [])
            for imp in row.get("imports") or []:
                components.relationships.append(imp["rel"])
        return components

    @staticmethod
    def _add_entities(
        components: RawGraphComponents,
        file_node: dict[str, Any],
        entities: list[dict[str, Any]],
    ) -> None:
        file_id = file_node["properties"].get("id")
        for entity in entities:
            components.entity_nodes.append(entity)
            components.relationships.append(
                {
                    "type": "CONTAINS",
                    "start": file_id,
                    "end": entity["properties"].get("id"),
                    "properties": {},
                }
            )

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    async def _build_graph(self, components: RawGraphComponents) -> DependencyGraph:
        nodes = await self._enrich_nodes(
            _unique_nodes(components.file_nodes + components.entity_nodes)
        )
        edges = _unique_edges(convert_relationships(components.relationships))
        logger.info("graph_built", nodes=len(nodes), edges=len(edges))
        return DependencyGraph(nodes=nodes, edges=edges)

    async def _enrich_nodes(self, raw_nodes: list[dict[str, Any]]) -> list[GraphNode]:
        """Attach relational metadata to graph nodes with two bulk queries."""
        if not raw_nodes:
            return []

        node_ids = [n["properties"]["id"] for n in raw_nodes if n["properties"].get("id")]
        if not node_ids:
            return [to_graph_node(n) for n in raw_nodes]

        try:
            files, entities = await asyncio.to_thread(self._store.fetch_enrichment_rows, node_ids)
        except Exception as exc:
            logger.error("node_enrichment_failed", error=str(exc), nodes=len(raw_nodes))
            return [to_graph_node(n) for n in raw_nodes]

        file_map = {f.neo4j_node_id: f for f in files}
        entity_map: dict[str, Any] = {}
        for entity in entities:
            key = _entity_key(entity.annotations)
            if key is None:
                logger.debug("entity_annotations_unreadable", entity_id=entity.id)
                continue
            entity_map[key] = entity

        enriched = []
        for raw in raw_nodes:
            node = to_graph_node(raw)
            if node.type == "file":
                meta = file_map.get(node.id)
                if meta is not None:
                    node.data.repository_file_id = meta.id
                    node.data.annotations = _parse_annotations(meta.annotations)
                    node.data.ai_summary = meta.ai_summary or None
            else:
                meta = entity_map.get(node.id)
                if meta is not None:
                    node.data.repository_file_id = meta.id
            enriched.append(node)
        return enriched

    def _page(self, options: Optional[PaginationOptions]) -> tuple[int, int]:
        options = options or PaginationOptions()
        limit = options.limit if options.limit is not None else self.default_limit
        return int(limit), int(options.offset)


# ------------------------------------------------------------------
# Conversion helpers
# ------------------------------------------------------------------


def to_graph_node(raw: dict[str, Any]) -> GraphNode:
    """Convert a raw graph node into a :class:`GraphNode` without metadata."""
    props = raw["properties"]
    node_id = props.get("id")

    if "File" in raw["labels"]:
        return GraphNode(
            id=node_id,
            label=props.get("name") or props.get("path") or "Unknown",
            type="file",
            data=GraphNodeData(
                neo4j_node_id=node_id,
                path=props.get("path"),
                name=props.get("name"),
                file_type=props.get("type"),
                lines_of_code=props.get("linesOfCode"),
            ),
        )

    entity_type = entity_type_from_labels(raw["labels"])
    return GraphNode(
        id=node_id,
        label=props.get("name") or "Unknown",
        type=entity_type,
        data=GraphNodeData(
            neo4j_node_id=node_id,
            name=props.get("name"),
            start_line=props.get("startLine"),
            end_line=props.get("endLine"),
            entity_type=entity_type,
        ),
    )


def entity_type_from_labels(labels: list[str]) -> str:
    for label in labels:
        if label in _ENTITY_TYPES:
            return _ENTITY_TYPES[label]
    return "function"


def convert_relationships(relationships: list[dict[str, Any]]) -> list[GraphEdge]:
    """Map raw relationships to edges with deterministic ids."""
    edges = []
    for rel in relationships:
        edge_type = EDGE_TYPE_MAP.get(str(rel["type"]).lower(), "imports")
        source = str(rel["start"])
        target = str(rel["end"])
        edge = GraphEdge(
            id=edge_id(source, edge_type, target),
            source=source,
            target=target,
            type=edge_type,
        )
        properties = rel.get("properties") or {}
        if properties:
            edge.data = GraphEdgeData(specifiers=properties.get("specifiers"), label=edge_type)
        edges.append(edge)
    return edges


def _unique_nodes(nodes: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    unique = []
    for node in nodes:
        node_id = node["properties"].get("id")
        if node_id in seen:
            continue
        seen.add(node_id)
        unique.append(node)
    return unique


def _unique_edges(edges: list[GraphEdge]) -> list[GraphEdge]:
    seen: set[str] = set()
    unique = []
    for edge in edges:
        if edge.id in seen:
            continue
        seen.add(edge.id)
        unique.append(edge)
    return unique


def _entity_key(annotations: str | None) -> str | None:
    """Extract the cross-store key embedded in an entity's annotations."""
    if not annotations:
        return None
    try:
        return json.loads(annotations).get("neo4jNodeId")
    except (ValueError, AttributeError):
        return None


def _parse_annotations(annotations: str | None) -> dict[str, Any]:
    if not annotations:
        return {}
    try:
        parsed = json.loads(annotations)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _canonical_cycle(cycle_ids: list[str]) -> tuple[str, ...]:
    """Rotation-independent identity of a cycle (closing node dropped)."""
    ring = list(cycle_ids[:-1]) if len(cycle_ids) > 1 and cycle_ids[0] == cycle_ids[-1] else list(cycle_ids)
    if not ring:
        return ()
    start = ring.index(min(ring))
    return tuple(ring[start:] + ring[:start])
