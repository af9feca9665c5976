"""Neo4j connection manager and graph-store adapter.

Uses the **synchronous** ``GraphDatabase.driver`` and ``execute_query``
API as recommended by the official Neo4j Python driver docs.  The async
engine layers call these methods via ``asyncio.to_thread`` so the event
loop is never blocked.

Read methods return plain dicts rather than driver objects::

    node = {"labels": ["File"], "properties": {"id": ..., "path": ...}}
    rel  = {"type": "IMPORTS", "start": <source id>, "end": <target id>,
            "properties": {"specifiers": [...]}}
"""

from __future__ import annotations

from typing import Any, Literal, Optional

import structlog
from neo4j import Driver, GraphDatabase, RoutingControl

from cograph.exceptions import InvalidEntityTypeError
from cograph.models.graph import (
    EntityNodeRecord,
    ExportRelationshipRecord,
    FileNodeRecord,
    ImportRelationshipRecord,
)

logger = structlog.get_logger(__name__)

# Default batch size for UNWIND operations.
DEFAULT_BATCH_SIZE: int = 200

# The only labels ever interpolated into Cypher text.
ENTITY_LABELS: frozenset[str] = frozenset({"Function", "Class", "Interface"})

INDEX_QUERIES: tuple[str, ...] = (
    "CREATE INDEX file_repository_id IF NOT EXISTS FOR (f:File) ON (f.repositoryId)",
    "CREATE INDEX file_id IF NOT EXISTS FOR (f:File) ON (f.id)",
    "CREATE INDEX function_id IF NOT EXISTS FOR (fn:Function) ON (fn.id)",
    "CREATE INDEX class_id IF NOT EXISTS FOR (c:Class) ON (c.id)",
    "CREATE INDEX interface_id IF NOT EXISTS FOR (i:Interface) ON (i.id)",
)

Direction = Literal["dependencies", "dependents"]


class GraphService:
    """Synchronous connection manager and adapter for the Neo4j graph store.

    Usage::

        svc = GraphService(uri, user, password)
        svc.connect()
        svc.ensure_indexes()
        svc.bulk_create_file_nodes(records)
        svc.close()

    Or as a context manager::

        with GraphService(uri, user, password) as svc:
            svc.bulk_create_file_nodes(records)

    Attributes:
        uri: Neo4j connection string.
        user: Database username (typically ``neo4j``).
        database: Target database name.
    """

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: str = "neo4j",
    ) -> None:
        self.uri = uri
        self.user = user
        self._password = password
        self.database = database
        self._driver: Optional[Driver] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Establish the driver connection."""
        if self._driver is not None:
            return
        self._driver = GraphDatabase.driver(
            self.uri,
            auth=(self.user, self._password),
        )
        self._driver.verify_connectivity()
        logger.info("neo4j_connected", uri=self.uri, database=self.database)

    def close(self) -> None:
        """Gracefully close the driver connection."""
        if self._driver is not None:
            self._driver.close()
            self._driver = None
            logger.info("neo4j_disconnected")

    def __enter__(self) -> GraphService:
        self.connect()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _ensure_driver(self) -> Driver:
        """Return the driver, raising if not connected."""
        if self._driver is None:
            raise RuntimeError("GraphService is not connected. Call connect() first.")
        return self._driver

    def ensure_indexes(self) -> None:
        """Create the lookup indexes on ``repositoryId`` and ``id`` (idempotent)."""
        for query in INDEX_QUERIES:
            self._write(query)
            logger.debug("neo4j_index_ensured", query=query)
        logger.info("neo4j_indexes_ensured", count=len(INDEX_QUERIES))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_file_node(self, record: FileNodeRecord) -> dict[str, Any]:
        """Create a single ``File`` node and return its properties."""
        records = self._write(_CREATE_FILE, record.model_dump(by_alias=True))
        if not records:
            raise RuntimeError(f"Failed to create file node: {record.path}")
        logger.debug("file_node_created", path=record.path)
        return dict(records[0]["f"])

    def bulk_create_file_nodes(
        self,
        records: list[FileNodeRecord],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        """Create ``File`` nodes in ``UNWIND`` batches.

        Returns:
            Total number of nodes created.
        """
        total = 0
        rows = [r.model_dump(by_alias=True) for r in records]
        for chunk in _chunked(rows, batch_size):
            total += self._write_count(_BULK_CREATE_FILES, {"files": chunk})
        logger.info("file_nodes_created", count=total)
        return total

    def create_entity_node(self, record: EntityNodeRecord) -> dict[str, Any]:
        """Create an entity node and link it from its file with ``CONTAINS``.

        The entity label is interpolated into the query text, so it is
        checked against :data:`ENTITY_LABELS` first.

        Raises:
            InvalidEntityTypeError: If the label is not allowed.
            LookupError: If the owning file node does not exist.
        """
        if record.type not in ENTITY_LABELS:
            raise InvalidEntityTypeError(
                f'Invalid entity type "{record.type}". Must be one of: Function, Class, Interface.'
            )
        records = self._write(
            _create_entity_cypher(record.type), record.model_dump(by_alias=True)
        )
        if not records:
            raise LookupError(f"Failed to create entity node: file not found: {record.file_id}")
        logger.debug("entity_node_created", type=record.type, name=record.name, file_id=record.file_id)
        return dict(records[0]["e"])

    def create_import_relationship(self, record: ImportRelationshipRecord) -> dict[str, Any]:
        """Create a single ``IMPORTS`` edge between two existing files."""
        records = self._write(_CREATE_IMPORT, record.model_dump(by_alias=True))
        if not records:
            raise LookupError(
                f"Failed to create import relationship: {record.source_file_id} -> {record.target_file_id}"
            )
        return dict(records[0]["r"])

    def bulk_create_import_relationships(
        self,
        records: list[ImportRelationshipRecord],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        """Create ``IMPORTS`` edges in batches; edges with a missing endpoint are skipped."""
        total = 0
        rows = [r.model_dump(by_alias=True) for r in records]
        for chunk in _chunked(rows, batch_size):
            total += self._write_count(_BULK_CREATE_IMPORTS, {"imports": chunk})
        logger.info("import_relationships_created", count=total)
        return total

    def create_export_relationship(self, file_id: str, entity_id: str) -> dict[str, Any]:
        """Create a single ``EXPORTS`` edge from a file to an entity."""
        records = self._write(_CREATE_EXPORT, {"fileId": file_id, "entityId": entity_id})
        if not records:
            raise LookupError(f"Failed to create export relationship: {file_id} -> {entity_id}")
        return dict(records[0]["r"])

    def bulk_create_export_relationships(
        self,
        records: list[ExportRelationshipRecord],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        total = 0
        rows = [r.model_dump(by_alias=True) for r in records]
        for chunk in _chunked(rows, batch_size):
            total += self._write_count(_BULK_CREATE_EXPORTS, {"exports": chunk})
        logger.info("export_relationships_created", count=total)
        return total

    def delete_repository_graph(self, repository_id: str) -> int:
        """Delete every file node of a repository together with its entities.

        Returns:
            Number of file nodes deleted.
        """
        deleted = self._write_count(_DELETE_REPOSITORY, {"repositoryId": repository_id})
        logger.info("repository_graph_deleted", repository_id=repository_id, count=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_file_node(self, file_id: str) -> Optional[dict[str, Any]]:
        """Return a file's properties plus an ``entities`` list, or ``None``."""
        records = self._read(_GET_FILE, {"fileId": file_id})
        if not records:
            logger.warning("file_node_not_found", file_id=file_id)
            return None
        record = records[0]
        return {
            **dict(record["f"]),
            "entities": [dict(e) for e in record["entities"] if e is not None],
        }

    def read_repository_files(
        self,
        repository_id: str,
        offset: int,
        limit: int,
        file_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return one row per file, ordered by path and paginated.

        Each row is ``{"file": node, "entities": [node], "imports":
        [{"rel": rel, "target": node}]}``; entities and import targets are
        aggregated independently so they never multiply each other.
        """
        params: dict[str, Any] = {"repositoryId": repository_id, "offset": offset, "limit": limit}
        if file_type is not None:
            params["fileType"] = file_type
        records = self._read(_repository_files_cypher(file_type is not None), params)

        rows = []
        for record in records:
            file_node = record["f"]
            file_id = file_node.get("id")
            imports = []
            for item in record["imports"] or []:
                rel, target = item.get("rel"), item.get("target")
                if rel is None or target is None:
                    continue
                imports.append({
                    "rel": _rel_to_dict(rel, file_id, target.get("id")),
                    "target": _node_to_dict(target),
                })
            rows.append({
                "file": _node_to_dict(file_node),
                "entities": [_node_to_dict(e) for e in record["entities"] or [] if e is not None],
                "imports": imports,
            })
        return rows

    def count_repository_files(self, repository_id: str) -> int:
        records = self._read(_COUNT_FILES, {"repositoryId": repository_id})
        return records[0]["total"] if records else 0

    def read_traversal_nodes(
        self,
        file_id: str,
        depth: int,
        direction: Direction = "dependencies",
    ) -> list[dict[str, Any]]:
        """Return files reachable from *file_id* within *depth* hops.

        Rows are ``{"node": node, "entities": [node]}``; the start file is
        not included.
        """
        records = self._read(_traversal_nodes_cypher(depth, direction), {"fileId": file_id})
        return [
            {
                "node": _node_to_dict(record["node"]),
                "entities": [_node_to_dict(e) for e in record["entities"] or [] if e is not None],
            }
            for record in records
            if record["node"] is not None
        ]

    def read_traversal_edges(
        self,
        file_id: str,
        depth: int,
        direction: Direction = "dependencies",
    ) -> list[dict[str, Any]]:
        """Return the distinct ``IMPORTS`` edges on the paths of :meth:`read_traversal_nodes`."""
        records = self._read(_traversal_edges_cypher(depth, direction), {"fileId": file_id})
        return [
            _rel_to_dict(record["r"], record["source"].get("id"), record["target"].get("id"))
            for record in records
            if record["r"] is not None
        ]

    def read_cycles(self, repository_id: str, limit: int) -> list[dict[str, Any]]:
        """Return simple ``IMPORTS`` cycles, shortest first.

        Rows are ``{"cycle_ids": [...], "cycle_paths": [...], "length": int}``.
        """
        records = self._read(_FIND_CYCLES, {"repositoryId": repository_id, "limit": limit})
        return [
            {
                "cycle_ids": list(record["cycleIds"]),
                "cycle_paths": list(record["cyclePaths"]),
                "length": record["cycleLength"],
            }
            for record in records
        ]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read(self, cypher: str, parameters: dict[str, Any] | None = None) -> list[Any]:
        driver = self._ensure_driver()
        records, _, _ = driver.execute_query(
            cypher,
            parameters_=parameters or {},
            database_=self.database,
            routing_=RoutingControl.READ,
        )
        return records

    def _write(self, cypher: str, parameters: dict[str, Any] | None = None) -> list[Any]:
        driver = self._ensure_driver()
        records, _, _ = driver.execute_query(
            cypher,
            parameters_=parameters or {},
            database_=self.database,
            routing_=RoutingControl.WRITE,
        )
        return records

    def _write_count(self, cypher: str, parameters: dict[str, Any]) -> int:
        """Run a write query and return its ``cnt`` scalar."""
        records = self._write(cypher, parameters)
        if records:
            return records[0].get("cnt", 0)
        return 0


# ------------------------------------------------------------------
# Cypher templates
# ------------------------------------------------------------------

_CREATE_FILE = """
CREATE (f:File {
    id: $id,
    repositoryId: $repositoryId,
    path: $path,
    name: $name,
    type: $type,
    linesOfCode: $linesOfCode,
    createdAt: datetime()
})
RETURN f
"""

_BULK_CREATE_FILES = """
UNWIND $files AS file
CREATE (f:File {
    id: file.id,
    repositoryId: file.repositoryId,
    path: file.path,
    name: file.name,
    type: file.type,
    linesOfCode: file.linesOfCode,
    createdAt: datetime()
})
RETURN count(f) AS cnt
"""

_CREATE_IMPORT = """
MATCH (source:File {id: $sourceFileId})
MATCH (target:File {id: $targetFileId})
CREATE (source)-[r:IMPORTS {specifiers: $specifiers, createdAt: datetime()}]->(target)
RETURN r
"""

_BULK_CREATE_IMPORTS = """
UNWIND $imports AS imp
MATCH (source:File {id: imp.sourceFileId})
MATCH (target:File {id: imp.targetFileId})
CREATE (source)-[r:IMPORTS {specifiers: imp.specifiers, createdAt: datetime()}]->(target)
RETURN count(r) AS cnt
"""

_CREATE_EXPORT = """
MATCH (f:File {id: $fileId})
MATCH (e {id: $entityId})
CREATE (f)-[r:EXPORTS {createdAt: datetime()}]->(e)
RETURN r
"""

_BULK_CREATE_EXPORTS = """
UNWIND $exports AS exp
MATCH (f:File {id: exp.fileId})-[:CONTAINS]->(e {id: exp.entityId})
CREATE (f)-[r:EXPORTS {createdAt: datetime()}]->(e)
RETURN count(r) AS cnt
"""

_DELETE_REPOSITORY = """
MATCH (f:File {repositoryId: $repositoryId})
OPTIONAL MATCH (f)-[:CONTAINS]->(e)
WITH f, collect(e) AS entities
FOREACH (entity IN entities | DETACH DELETE entity)
DETACH DELETE f
RETURN count(f) AS cnt
"""

_GET_FILE = """
MATCH (f:File {id: $fileId})
OPTIONAL MATCH (f)-[:CONTAINS]->(e)
RETURN f, collect(e) AS entities
"""

_COUNT_FILES = """
MATCH (f:File {repositoryId: $repositoryId})
RETURN count(f) AS total
"""

# Simple cycles only: apart from the start node repeated at the end, every
# node on the path is distinct.  Each cycle is reported once, starting from
# its smallest node id.
_FIND_CYCLES = """
MATCH (f:File {repositoryId: $repositoryId})
MATCH path = (f)-[:IMPORTS*]->(f)
WITH [node IN nodes(path) | node.id] AS cycleIds,
     [node IN nodes(path) | node.path] AS cyclePaths,
     length(path) AS cycleLength
WHERE cycleLength > 0
  AND size(cycleIds) - 1 = size(reduce(seen = [], id IN cycleIds[1..] |
        CASE WHEN id IN seen THEN seen ELSE seen + id END))
  AND all(id IN cycleIds WHERE cycleIds[0] <= id)
RETURN DISTINCT cycleIds, cyclePaths, cycleLength
ORDER BY cycleLength ASC
LIMIT $limit
"""


def _repository_files_cypher(filter_by_type: bool) -> str:
    """Per-file query with entities and import targets collected separately."""
    where = "WHERE f.type = $fileType" if filter_by_type else ""
    return f"""
    MATCH (f:File {{repositoryId: $repositoryId}})
    {where}
    OPTIONAL MATCH (f)-[:CONTAINS]->(e)
    WITH f, collect(DISTINCT e) AS entities
    OPTIONAL MATCH (f)-[r:IMPORTS]->(target:File)
    WITH f, entities, collect(DISTINCT {{rel: r, target: target}}) AS imports
    RETURN f, entities, imports
    ORDER BY f.path
    SKIP $offset LIMIT $limit
    """


def _create_entity_cypher(label: str) -> str:
    """``CREATE`` query for one entity; *label* must already be validated."""
    return f"""
    MATCH (f:File {{id: $fileId}})
    CREATE (e:{label} {{
        id: $id,
        name: $name,
        type: $type,
        startLine: $startLine,
        endLine: $endLine,
        createdAt: datetime()
    }})
    CREATE (f)-[:CONTAINS]->(e)
    RETURN e
    """


def _depth_pattern(depth: int) -> str:
    """Variable-length pattern for a traversal depth (``-1`` = unbounded)."""
    if depth == -1:
        return "*"
    if depth in (1, 2, 3):
        return f"*1..{depth}"
    raise ValueError(f"Unsupported traversal depth: {depth}")


def _traversal_path(depth: int, direction: Direction, other: str) -> str:
    pattern = _depth_pattern(depth)
    if direction == "dependencies":
        return f"(f)-[:IMPORTS{pattern}]->({other}:File)"
    if direction == "dependents":
        return f"({other}:File)-[:IMPORTS{pattern}]->(f)"
    raise ValueError(f"Unsupported traversal direction: {direction}")


def _traversal_nodes_cypher(depth: int, direction: Direction) -> str:
    return f"""
    MATCH (f:File {{id: $fileId}})
    MATCH path = {_traversal_path(depth, direction, "other")}
    WITH DISTINCT other
    WHERE other.id <> $fileId
    OPTIONAL MATCH (other)-[:CONTAINS]->(e)
    RETURN other AS node, collect(DISTINCT e) AS entities
    """


def _traversal_edges_cypher(depth: int, direction: Direction) -> str:
    return f"""
    MATCH (f:File {{id: $fileId}})
    MATCH path = {_traversal_path(depth, direction, "other")}
    UNWIND relationships(path) AS r
    WITH DISTINCT r
    RETURN r, startNode(r) AS source, endNode(r) AS target
    """


# ------------------------------------------------------------------
# Utilities
# ------------------------------------------------------------------


def _node_to_dict(node: Any) -> dict[str, Any]:
    """Normalise a driver ``Node`` into ``{"labels", "properties"}``."""
    return {"labels": sorted(node.labels), "properties": dict(node)}


def _rel_to_dict(rel: Any, start: Any, end: Any) -> dict[str, Any]:
    """Normalise a driver ``Relationship`` keyed by cross-store ids."""
    return {"type": rel.type, "start": start, "end": end, "properties": dict(rel)}


def _chunked(items: list[Any], size: int) -> list[list[Any]]:
    """Split *items* into sub-lists of at most *size* elements."""
    return [items[i : i + size] for i in range(0, len(items), size)]
