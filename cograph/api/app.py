"""FastAPI application factory and lifespan management."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cograph import __version__
from cograph.analysis.orchestrator import AnalysisOrchestrator
from cograph.analysis.runner import RepositoryAnalysisRunner
from cograph.analysis.synchronizer import DualStoreSynchronizer
from cograph.analysis.tool_client import AnalysisToolClient
from cograph.annotations.service import AnnotationsService
from cograph.api.annotation_routes import annotation_router
from cograph.api.deps import Services
from cograph.api.graph_routes import graph_router
from cograph.api.routes import router
from cograph.config import Settings, settings
from cograph.db.database import DatabaseManager
from cograph.db.store import RelationalStore
from cograph.graph.database import GraphService
from cograph.graph.query_engine import GraphQueryEngine
from cograph.graph.setup_index import setup_graph_indexes
from cograph.logging import setup_logging
from cograph.summaries.llm_service import FileSummarizer
from cograph.summaries.service import SummaryService

logger = structlog.get_logger(__name__)


def build_services(
    config: Settings,
    store: RelationalStore,
    graph: GraphService,
    tool_client: AnalysisToolClient,
) -> Services:
    """Wire the engine components from *config*."""
    runner = RepositoryAnalysisRunner(
        tool_client,
        batch_size=config.analysis_batch_size,
        max_consecutive_failures=config.analysis_max_consecutive_failures,
    )
    orchestrator = AnalysisOrchestrator(
        store,
        graph,
        runner,
        DualStoreSynchronizer(store, graph),
        cooldown_seconds=config.analysis_cooldown_seconds,
    )
    query_engine = GraphQueryEngine(
        graph,
        store,
        default_limit=config.graph_default_limit,
        max_cycles=config.graph_max_cycles,
    )

    summaries = None
    if config.openai_api_key and config.azure_endpoint:
        summaries = SummaryService(
            store,
            FileSummarizer(
                api_key=config.openai_api_key,
                azure_endpoint=config.azure_endpoint,
                deployment=config.openai_model,
            ),
            max_content_chars=config.summary_max_content_chars,
        )
    else:
        logger.warning("summaries_disabled", reason="openai credentials not configured")

    return Services(
        orchestrator=orchestrator,
        query_engine=query_engine,
        summaries=summaries,
        annotations=AnnotationsService(store),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler: connects both stores on startup.

    When services were injected through :func:`create_app` nothing is
    built or torn down here.

    Args:
        app: The FastAPI application instance.
    """
    setup_logging(settings.log_level)
    if getattr(app.state, "services", None) is not None:
        yield
        return

    if not settings.neo4j_uri or not settings.neo4j_password:
        logger.error(
            "neo4j_not_configured",
            hint="Set COGRAPH_NEO4J_URI and COGRAPH_NEO4J_PASSWORD in your .env file.",
        )
        yield
        return

    db = DatabaseManager(settings.database_url, echo=settings.database_echo)
    await asyncio.to_thread(db.init_schema)

    graph = GraphService(
        settings.neo4j_uri,
        settings.neo4j_user,
        settings.neo4j_password,
        settings.neo4j_database,
    )
    await asyncio.to_thread(graph.connect)
    await asyncio.to_thread(setup_graph_indexes, graph)

    tool_client = AnalysisToolClient(
        settings.analysis_tool_url,
        timeout=settings.analysis_tool_timeout_seconds,
    )
    services = build_services(settings, RelationalStore(db), graph, tool_client)
    app.state.services = services
    logger.info("cograph_started", version=__version__)

    try:
        yield
    finally:
        await services.orchestrator.wait_for_pending()
        app.state.services = None
        tool_client.close()
        await asyncio.to_thread(graph.close)
        db.dispose()


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build and return the configured FastAPI application.

    Args:
        services: Pre-built engine components. When omitted they are
            created from :data:`settings` on startup.

    Returns:
        A fully wired :class:`FastAPI` instance.
    """
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description=(
            "Cograph analysis engine: runs an external analysis tool over a "
            "repository, stores files and entities relationally, projects "
            "imports into a Neo4j dependency graph and answers graph queries."
        ),
        lifespan=lifespan,
    )
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, tags=["Analysis"])
    app.include_router(graph_router, tags=["Dependency Graph"])
    app.include_router(annotation_router, tags=["Annotations"])
    return app


app = create_app()
