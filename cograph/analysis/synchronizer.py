"""Writes analysis batches to the relational store and the graph store.

The two stores are updated by independent calls and may briefly disagree
while a run is in progress; they converge because a run always starts
from an empty generation (see :class:`AnalysisOrchestrator`).  Both sides
are keyed by the deterministic ids from :mod:`cograph.core.keys`.

Failure policy: a failing file, entity or graph batch is logged and
skipped.  Nothing raised by a single write ever aborts the batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from cograph.core.keys import entity_node_id, file_node_id
from cograph.core.resolver import resolve_import_source
from cograph.db.store import RelationalStore
from cograph.graph.database import ENTITY_LABELS, GraphService
from cograph.models.analysis import CodeEntity, FileAnalysisResult, RepositoryAnalysis
from cograph.models.graph import (
    EntityNodeRecord,
    ExportRelationshipRecord,
    FileNodeRecord,
    ImportRelationshipRecord,
)

logger = structlog.get_logger(__name__)


@dataclass
class PlannedFile:
    """One analysed file with its keys and validated entities."""

    result: FileAnalysisResult
    node_id: str
    entities: list[tuple[str, CodeEntity]] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.result.relative_path


class DualStoreSynchronizer:
    """Persists analysis results into both stores.

    Args:
        store: Relational adapter.
        graph: Graph adapter.
    """

    def __init__(self, store: RelationalStore, graph: GraphService) -> None:
        self._store = store
        self._graph = graph

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def store_batch(
        self,
        job_id: str,
        repository_id: str,
        batch: RepositoryAnalysis,
    ) -> int:
        """Persist one window of analysed files.

        Files without an analysis payload are skipped.  Each file is written
        to the relational store on its own; the graph writes for the whole
        batch follow, whatever happened to individual relational writes.

        Returns:
            Number of files persisted to the relational store.
        """
        planned = [plan_file(repository_id, f) for f in batch.successful_files()]
        stored = 0

        for item in planned:
            try:
                await asyncio.to_thread(self._store_file_rows, repository_id, item)
                stored += 1
            except Exception as exc:
                logger.error("file_store_failed", job_id=job_id, path=item.path, error=str(exc))

        try:
            await self._store_graph_batch(job_id, repository_id, planned)
        except Exception as exc:
            logger.error("graph_batch_failed", job_id=job_id, files=len(planned), error=str(exc))

        logger.info("batch_persisted", job_id=job_id, files=len(planned), stored=stored)
        return stored

    def _store_file_rows(self, repository_id: str, item: PlannedFile) -> str:
        analysis = item.result.analysis
        return self._store.create_repository_file(
            repository_id,
            file_path=item.path,
            file_name=analysis.file_name,
            file_type=analysis.file_type,
            lines_of_code=analysis.lines,
            neo4j_node_id=item.node_id,
            annotations={
                "imports": [i.model_dump(by_alias=True) for i in analysis.imports],
                "exports": [e.model_dump(by_alias=True) for e in analysis.exports],
            },
            entities=[
                {
                    "name": entity.name,
                    "type": entity.type,
                    "start_line": entity.start_line,
                    "end_line": entity.end_line,
                    "annotations": {"neo4jNodeId": key},
                }
                for key, entity in item.entities
            ],
        )

    async def _store_graph_batch(
        self,
        job_id: str,
        repository_id: str,
        planned: list[PlannedFile],
    ) -> None:
        """Create File nodes in bulk, then every entity concurrently, then EXPORTS edges."""
        if not planned:
            return

        file_records = [
            FileNodeRecord(
                id=item.node_id,
                repository_id=repository_id,
                path=item.path,
                name=item.result.analysis.file_name,
                type=item.result.analysis.file_type,
                lines_of_code=item.result.analysis.lines,
            )
            for item in planned
        ]
        await asyncio.to_thread(self._graph.bulk_create_file_nodes, file_records)

        entity_records = []
        for item in planned:
            for key, entity in item.entities:
                label = entity_label(entity.type)
                if label is None:
                    logger.debug("entity_not_projected", name=entity.name, type=entity.type)
                    continue
                entity_records.append(
                    EntityNodeRecord(
                        id=key,
                        file_id=item.node_id,
                        name=entity.name,
                        type=label,
                        start_line=entity.start_line,
                        end_line=entity.end_line,
                    )
                )

        results = await asyncio.gather(
            *(self._create_entity(job_id, record) for record in entity_records)
        )
        created = {record.id for record, ok in zip(entity_records, results) if ok}

        exports = export_records(planned, created)
        if exports:
            try:
                await asyncio.to_thread(self._graph.bulk_create_export_relationships, exports)
            except Exception as exc:
                logger.error("export_relationships_failed", job_id=job_id, error=str(exc))

        logger.info(
            "graph_batch_written",
            job_id=job_id,
            files=len(file_records),
            entities=len(created),
            exports=len(exports),
        )

    async def _create_entity(self, job_id: str, record: EntityNodeRecord) -> bool:
        try:
            await asyncio.to_thread(self._graph.create_entity_node, record)
            return True
        except Exception as exc:
            logger.error("entity_node_failed", job_id=job_id, name=record.name, error=str(exc))
            return False

    # ------------------------------------------------------------------
    # Import edges
    # ------------------------------------------------------------------

    async def create_import_relationships(
        self,
        job_id: str,
        repository_id: str,
        analysis: RepositoryAnalysis,
    ) -> int:
        """Resolve every internal import of a finished run into IMPORTS edges.

        Runs once after all batches, when every analysed path is known.

        Returns:
            Number of edges created.
        """
        edges = build_import_edges(repository_id, analysis)
        if not edges:
            logger.info("import_relationships_none", job_id=job_id)
            return 0

        created = await asyncio.to_thread(self._graph.bulk_create_import_relationships, edges)
        logger.info("import_relationships_done", job_id=job_id, resolved=len(edges), created=created)
        return created


# ------------------------------------------------------------------
# Planning helpers
# ------------------------------------------------------------------


def plan_file(repository_id: str, result: FileAnalysisResult) -> PlannedFile:
    """Attach cross-store keys to a file and keep only well-formed, unique entities.

    An entity is dropped when its line span is invalid (``start < 1``,
    ``end < start`` or ``end`` past the file length) or when its key
    duplicates an earlier entity of the same file.
    """
    analysis = result.analysis
    path = result.relative_path
    planned = PlannedFile(result=result, node_id=file_node_id(repository_id, path))

    seen: set[str] = set()
    for entity in analysis.entities:
        if not _valid_span(entity, analysis.lines):
            logger.warning(
                "entity_span_invalid",
                path=path,
                name=entity.name,
                start_line=entity.start_line,
                end_line=entity.end_line,
            )
            continue
        key = entity_node_id(repository_id, path, entity.name)
        if key in seen:
            logger.debug("entity_duplicate_skipped", path=path, name=entity.name)
            continue
        seen.add(key)
        planned.entities.append((key, entity))
    return planned


def _valid_span(entity: CodeEntity, lines: int) -> bool:
    if entity.start_line < 1 or entity.end_line < entity.start_line:
        return False
    return lines <= 0 or entity.end_line <= lines


def entity_label(kind: str) -> str | None:
    """Graph label for an entity kind, or ``None`` if it is not projected."""
    label = kind[:1].upper() + kind[1:].lower() if kind else ""
    return label if label in ENTITY_LABELS else None


def export_records(planned: list[PlannedFile], created: set[str]) -> list[ExportRelationshipRecord]:
    """EXPORTS edges for exports that name an entity created in the same file."""
    records = []
    for item in planned:
        by_name = {entity.name: key for key, entity in item.entities if key in created}
        for export in item.result.analysis.exports:
            key = by_name.get(export.name)
            if key is not None:
                records.append(ExportRelationshipRecord(file_id=item.node_id, entity_id=key))
    return records


def build_import_edges(
    repository_id: str,
    analysis: RepositoryAnalysis,
) -> list[ImportRelationshipRecord]:
    """Resolve internal imports of every analysed file into edge records."""
    files = analysis.successful_files()
    path_index: set[str] = {f.relative_path for f in files}

    edges: list[ImportRelationshipRecord] = []
    unresolved: list[dict[str, Any]] = []
    for file in files:
        source_id = file_node_id(repository_id, file.relative_path)
        for statement in file.analysis.imports:
            if statement.is_external:
                continue
            target = resolve_import_source(statement.source, file.relative_path, path_index)
            if target is None:
                unresolved.append({"path": file.relative_path, "source": statement.source})
                continue
            edges.append(
                ImportRelationshipRecord(
                    source_file_id=source_id,
                    target_file_id=file_node_id(repository_id, target),
                    specifiers=list(statement.specifiers),
                )
            )

    if unresolved:
        logger.info("imports_unresolved", count=len(unresolved), sample=unresolved[:10])
    return edges
