"""
Relational store for Cograph.

Exports:
- DatabaseManager: engine and session management
- RelationalStore: the engine's persistence adapter
- Models: Repository, RepositoryFile, CodeEntity, AnalysisJob
- AnalysisStatus: job state machine values
"""

from .database import DatabaseManager
from .models import (
    ACTIVE_STATUSES,
    AnalysisJob,
    AnalysisStatus,
    Base,
    CodeEntity,
    Repository,
    RepositoryFile,
)
from .store import RelationalStore, compute_progress

__all__ = [
    "DatabaseManager",
    "RelationalStore",
    "compute_progress",
    "ACTIVE_STATUSES",
    "AnalysisJob",
    "AnalysisStatus",
    "Base",
    "CodeEntity",
    "Repository",
    "RepositoryFile",
]
