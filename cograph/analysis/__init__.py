"""Analysis pipeline: tool client, batch runner, dual-store writes and job lifecycle."""

from cograph.analysis.orchestrator import AnalysisOrchestrator
from cograph.analysis.runner import RepositoryAnalysisRunner
from cograph.analysis.synchronizer import DualStoreSynchronizer
from cograph.analysis.tool_client import AnalysisToolClient

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisToolClient",
    "DualStoreSynchronizer",
    "RepositoryAnalysisRunner",
]
