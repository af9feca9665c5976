"""Command-line helper that creates the graph-store indexes.

The API lifespan runs the same setup on startup; this entry point is for
operators preparing a fresh database.  Safe to re-run: every index uses
``IF NOT EXISTS``.

Usage::

    python -m cograph.graph.setup_index

Requires ``COGRAPH_NEO4J_URI``, ``COGRAPH_NEO4J_USER``, and
``COGRAPH_NEO4J_PASSWORD`` environment variables (or a ``.env`` file).
"""

from __future__ import annotations

import sys

import structlog

from cograph.config import settings
from cograph.graph.database import GraphService
from cograph.logging import setup_logging

logger = structlog.get_logger(__name__)


def setup_graph_indexes(svc: GraphService) -> None:
    """Ensure the File/Function/Class/Interface lookup indexes.

    Failures are logged and re-raised; a graph store without its indexes
    would make every repository-scoped query a full scan.

    Args:
        svc: An already-connected :class:`GraphService`.
    """
    try:
        svc.ensure_indexes()
    except Exception as exc:
        logger.error("neo4j_index_setup_failed", error=str(exc))
        raise


def main() -> int:
    """Entry point: connect with configured credentials and set up indexes."""
    setup_logging(settings.log_level)

    if not settings.neo4j_uri or not settings.neo4j_password:
        logger.error(
            "neo4j_not_configured",
            hint="Set COGRAPH_NEO4J_URI and COGRAPH_NEO4J_PASSWORD in your .env file.",
        )
        return 1

    with GraphService(
        settings.neo4j_uri,
        settings.neo4j_user,
        settings.neo4j_password,
        settings.neo4j_database,
    ) as svc:
        setup_graph_indexes(svc)

    logger.info("neo4j_setup_complete", uri=settings.neo4j_uri)
    return 0


if __name__ == "__main__":
    sys.exit(main())
