"""FastAPI routes for dependency-graph queries.

Provides endpoints for:

- ``GET /repositories/{id}/graph``: paginated repository graph.
- ``GET /repositories/{id}/graph/count``: number of File nodes.
- ``GET /repositories/{id}/graph/files``: graph restricted to one file type.
- ``GET /repositories/{id}/graph/cycles``: import cycles.
- ``GET /graph/files/{file_id}/dependencies``: what a file imports.
- ``GET /graph/files/{file_id}/dependents``: what imports a file.

Every query is answered by :class:`GraphQueryEngine`, which dispatches the
synchronous Neo4j driver to a thread.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from cograph.api.deps import Services, get_services
from cograph.api.schemas import NodeCountResponse
from cograph.models.graph import DependencyGraph, PaginationOptions

logger = structlog.get_logger(__name__)

graph_router = APIRouter()


def _graph_body(graph: DependencyGraph) -> dict:
    return graph.model_dump(by_alias=True, exclude_none=True)


def _query_failed(exc: Exception) -> HTTPException:
    logger.error("graph_query_failed", error=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Graph query failed: {exc}",
    )


@graph_router.get(
    "/repositories/{repository_id}/graph",
    summary="Repository dependency graph",
    description="A page of File nodes ordered by path with their entities and IMPORTS edges.",
)
async def get_repository_graph(
    repository_id: str,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    services: Services = Depends(get_services),
):
    try:
        graph = await services.query_engine.get_repository_graph(
            repository_id, PaginationOptions(limit=limit, offset=offset)
        )
    except Exception as exc:
        raise _query_failed(exc)
    return _graph_body(graph)


@graph_router.get(
    "/repositories/{repository_id}/graph/count",
    summary="Count File nodes",
)
async def get_repository_node_count(
    repository_id: str,
    services: Services = Depends(get_services),
):
    try:
        total = await services.query_engine.get_repository_node_count(repository_id)
    except Exception as exc:
        raise _query_failed(exc)
    return NodeCountResponse(repository_id=repository_id, total=total).model_dump(by_alias=True)


@graph_router.get(
    "/repositories/{repository_id}/graph/files",
    summary="Repository graph filtered by file type",
)
async def get_files_by_type(
    repository_id: str,
    type: str = Query(..., min_length=1, description="File type, e.g. ``ts``."),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    services: Services = Depends(get_services),
):
    try:
        graph = await services.query_engine.get_files_by_type(
            repository_id, type, PaginationOptions(limit=limit, offset=offset)
        )
    except Exception as exc:
        raise _query_failed(exc)
    return _graph_body(graph)


@graph_router.get(
    "/repositories/{repository_id}/graph/cycles",
    summary="Circular import dependencies",
)
async def find_circular_dependencies(
    repository_id: str,
    services: Services = Depends(get_services),
):
    try:
        cycles = await services.query_engine.find_circular_dependencies(repository_id)
    except Exception as exc:
        raise _query_failed(exc)
    return [c.model_dump(by_alias=True) for c in cycles]


@graph_router.get(
    "/graph/files/{file_id:path}/dependencies",
    summary="Files a file imports",
    description="``depth`` is 1, 2 or 3 hops, or -1 for unbounded.",
)
async def get_file_dependencies(
    file_id: str,
    depth: int = Query(1),
    services: Services = Depends(get_services),
):
    try:
        graph = await services.query_engine.get_file_dependencies(file_id, depth)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except Exception as exc:
        raise _query_failed(exc)
    return _graph_body(graph)


@graph_router.get(
    "/graph/files/{file_id:path}/dependents",
    summary="Files importing a file",
    description="``depth`` is 1, 2 or 3 hops, or -1 for unbounded.",
)
async def get_file_dependents(
    file_id: str,
    depth: int = Query(1),
    services: Services = Depends(get_services),
):
    try:
        graph = await services.query_engine.get_file_dependents(file_id, depth)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except Exception as exc:
        raise _query_failed(exc)
    return _graph_body(graph)
