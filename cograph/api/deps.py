"""Service container shared by the routes.

The lifespan handler builds one :class:`Services` and stores it on
``app.state.services``; routes obtain it through :func:`get_services`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, status

from cograph.analysis.orchestrator import AnalysisOrchestrator
from cograph.annotations.service import AnnotationsService
from cograph.graph.query_engine import GraphQueryEngine
from cograph.summaries.service import SummaryService


@dataclass
class Services:
    orchestrator: AnalysisOrchestrator
    query_engine: GraphQueryEngine
    summaries: Optional[SummaryService] = None
    annotations: Optional[AnnotationsService] = None


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analysis engine is not initialised.",
        )
    return services
