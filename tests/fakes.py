"""In-memory doubles for the graph store and the external analysis tool.

``FakeGraphService`` implements the write and read methods of
:class:`cograph.graph.database.GraphService` and returns rows in the same
shapes, so the synchronizer, orchestrator and query engine can be
exercised without a Neo4j server.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Optional

from cograph.exceptions import AnalysisToolError, InvalidEntityTypeError
from cograph.graph.database import ENTITY_LABELS


class FakeGraphService:
    def __init__(self) -> None:
        self.files: dict[str, dict[str, Any]] = {}
        self.entities: dict[str, dict[str, Any]] = {}
        self.imports: list[dict[str, Any]] = []
        self.exports: list[tuple[str, str]] = []
        self.fail_entity_names: set[str] = set()
        self.fail_file_nodes = False
        self.fail_reads = False
        self._lock = threading.Lock()

    # -- writes --------------------------------------------------------

    def bulk_create_file_nodes(self, records) -> int:
        if self.fail_file_nodes:
            raise RuntimeError("graph unavailable")
        with self._lock:
            for record in records:
                self.files[record.id] = {
                    "id": record.id,
                    "repositoryId": record.repository_id,
                    "path": record.path,
                    "name": record.name,
                    "type": record.type,
                    "linesOfCode": record.lines_of_code,
                }
        return len(records)

    def create_entity_node(self, record) -> dict[str, Any]:
        if record.type not in ENTITY_LABELS:
            raise InvalidEntityTypeError(f'Invalid entity type "{record.type}"')
        if record.name in self.fail_entity_names:
            raise RuntimeError(f"entity write failed: {record.name}")
        with self._lock:
            if record.file_id not in self.files:
                raise LookupError(f"file not found: {record.file_id}")
            props = {
                "id": record.id,
                "name": record.name,
                "type": record.type,
                "startLine": record.start_line,
                "endLine": record.end_line,
            }
            self.entities[record.id] = {"label": record.type, "file_id": record.file_id, "props": props}
        return props

    def bulk_create_import_relationships(self, records) -> int:
        created = 0
        with self._lock:
            for record in records:
                if record.source_file_id in self.files and record.target_file_id in self.files:
                    self.imports.append({
                        "start": record.source_file_id,
                        "end": record.target_file_id,
                        "specifiers": list(record.specifiers),
                    })
                    created += 1
        return created

    def bulk_create_export_relationships(self, records) -> int:
        created = 0
        with self._lock:
            for record in records:
                entity = self.entities.get(record.entity_id)
                if entity is not None and entity["file_id"] == record.file_id:
                    self.exports.append((record.file_id, record.entity_id))
                    created += 1
        return created

    def delete_repository_graph(self, repository_id: str) -> int:
        with self._lock:
            doomed = {fid for fid, f in self.files.items() if f["repositoryId"] == repository_id}
            for fid in doomed:
                del self.files[fid]
            self.entities = {k: v for k, v in self.entities.items() if v["file_id"] not in doomed}
            self.imports = [i for i in self.imports if i["start"] not in doomed and i["end"] not in doomed]
            self.exports = [e for e in self.exports if e[0] not in doomed]
        return len(doomed)

    # -- reads ---------------------------------------------------------

    def read_repository_files(
        self,
        repository_id: str,
        offset: int,
        limit: int,
        file_type: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        self._check_reads()
        files = sorted(
            (f for f in self.files.values() if f["repositoryId"] == repository_id),
            key=lambda f: f["path"],
        )
        if file_type is not None:
            files = [f for f in files if f["type"] == file_type]
        rows = []
        for f in files[offset : offset + limit]:
            rows.append({
                "file": self._file_node(f["id"]),
                "entities": self._entities_of(f["id"]),
                "imports": [
                    {"rel": self._rel(i), "target": self._file_node(i["end"])}
                    for i in self.imports
                    if i["start"] == f["id"]
                ],
            })
        return rows

    def count_repository_files(self, repository_id: str) -> int:
        self._check_reads()
        return sum(1 for f in self.files.values() if f["repositoryId"] == repository_id)

    def read_traversal_nodes(self, file_id: str, depth: int, direction: str = "dependencies"):
        self._check_reads()
        distances = self._distances(file_id, depth, direction)
        return [
            {"node": self._file_node(fid), "entities": self._entities_of(fid)}
            for fid in distances
            if fid != file_id
        ]

    def read_traversal_edges(self, file_id: str, depth: int, direction: str = "dependencies"):
        self._check_reads()
        if file_id not in self.files:
            return []
        distances = self._distances(file_id, depth, direction)
        distances[file_id] = 0
        max_hops = None if depth == -1 else depth
        edges = []
        for imp in self.imports:
            near = imp["start"] if direction == "dependencies" else imp["end"]
            if near in distances and (max_hops is None or distances[near] < max_hops):
                edges.append(self._rel(imp))
        return edges

    def read_cycles(self, repository_id: str, limit: int) -> list[dict[str, Any]]:
        self._check_reads()
        ids = sorted(f["id"] for f in self.files.values() if f["repositoryId"] == repository_id)
        adjacency: dict[str, list[str]] = {fid: [] for fid in ids}
        for imp in self.imports:
            if imp["start"] in adjacency:
                adjacency[imp["start"]].append(imp["end"])

        cycles = []
        for start in ids:
            stack = [(start, [start])]
            while stack:
                node, path = stack.pop()
                for nxt in adjacency.get(node, []):
                    if nxt == start:
                        cycles.append(path + [start])
                    elif nxt not in path and nxt > start:
                        stack.append((nxt, path + [nxt]))

        cycles.sort(key=len)
        return [
            {
                "cycle_ids": cycle,
                "cycle_paths": [self.files[fid]["path"] for fid in cycle],
                "length": len(cycle) - 1,
            }
            for cycle in cycles[:limit]
        ]

    # -- helpers -------------------------------------------------------

    def _check_reads(self) -> None:
        if self.fail_reads:
            raise RuntimeError("graph read failed")

    def _distances(self, file_id: str, depth: int, direction: str) -> dict[str, int]:
        if file_id not in self.files:
            return {}
        distances: dict[str, int] = {}
        queue = deque([(file_id, 0)])
        while queue:
            node, hops = queue.popleft()
            if depth != -1 and hops >= depth:
                continue
            for imp in self.imports:
                src, dst = (imp["start"], imp["end"]) if direction == "dependencies" else (imp["end"], imp["start"])
                if src == node and dst not in distances:
                    distances[dst] = hops + 1
                    queue.append((dst, hops + 1))
        return distances

    def _file_node(self, file_id: str) -> dict[str, Any]:
        return {"labels": ["File"], "properties": dict(self.files[file_id])}

    def _entities_of(self, file_id: str) -> list[dict[str, Any]]:
        return [
            {"labels": [e["label"]], "properties": dict(e["props"])}
            for e in self.entities.values()
            if e["file_id"] == file_id
        ]

    @staticmethod
    def _rel(imp: dict[str, Any]) -> dict[str, Any]:
        return {
            "type": "IMPORTS",
            "start": imp["start"],
            "end": imp["end"],
            "properties": {"specifiers": imp["specifiers"]},
        }


class FakeToolClient:
    """Serves windows of a fixed file list like the ``analyse-repository`` tool.

    Args:
        files: Wire-format file results (camelCase dicts).
        failing_skips: ``skipFiles`` offsets whose call raises.
    """

    def __init__(self, files: list[dict[str, Any]], failing_skips: set[int] | None = None) -> None:
        self.files = files
        self.failing_skips = failing_skips or set()
        self.calls: list[dict[str, Any]] = []

    def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(dict(arguments))
        skip = arguments["skipFiles"]
        if skip in self.failing_skips:
            raise AnalysisToolError(f"Tool '{name}' timed out")
        window = self.files[skip : skip + arguments["maxFiles"]]
        successful = [f for f in window if f.get("analysis") is not None]
        return {
            "repositoryUrl": arguments["repositoryUrl"],
            "summary": {
                "totalFiles": len(self.files),
                "totalLines": sum(f["analysis"]["lines"] for f in successful),
                "successfulAnalyses": len(successful),
                "failedAnalyses": len(window) - len(successful),
                "filesByType": {},
            },
            "files": window,
        }


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------


def wire_file(
    path: str,
    *,
    imports: list[tuple[str, list[str]]] | None = None,
    entities: list[tuple[str, str, int, int]] | None = None,
    exports: list[str] | None = None,
    lines: int = 50,
    external: set[str] | None = None,
) -> dict[str, Any]:
    """A successful tool file result in wire format.

    ``imports`` are ``(source, specifiers)`` pairs, ``entities`` are
    ``(name, type, start_line, end_line)`` tuples.
    """
    name = path.rsplit("/", 1)[-1]
    external = external or set()
    return {
        "filePath": f"/tmp/clone/{path}",
        "relativePath": path,
        "analysis": {
            "filePath": f"/tmp/clone/{path}",
            "fileName": name,
            "fileType": name.rsplit(".", 1)[-1],
            "lines": lines,
            "imports": [
                {"source": source, "specifiers": specifiers, "isExternal": source in external}
                for source, specifiers in (imports or [])
            ],
            "exports": [{"name": export, "type": "named"} for export in (exports or [])],
            "entities": [
                {"name": n, "type": t, "startLine": s, "endLine": e}
                for n, t, s, e in (entities or [])
            ],
        },
    }


def failed_wire_file(path: str) -> dict[str, Any]:
    return {
        "filePath": f"/tmp/clone/{path}",
        "relativePath": path,
        "analysis": None,
        "error": "Unsupported syntax",
    }
