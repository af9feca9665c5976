"""Request and response bodies of the HTTP surface."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cograph.db.models import AnalysisJob, CodeEntity, RepositoryFile


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartAnalysisRequest(_CamelModel):
    """Payload for ``POST /repositories/{id}/analysis``."""

    branch: Optional[str] = Field(None, description="Branch to analyse; defaults to the repository's.")


class StartAnalysisResponse(_CamelModel):
    job_id: str


class AnalysisJobResponse(_CamelModel):
    """Caller-facing job surface, polled until the status is terminal."""

    id: str
    repository_id: str
    status: str
    progress: float
    files_analysed: int
    total_files: Optional[int] = None
    error_message: Optional[str] = None
    error_details: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, job: AnalysisJob) -> AnalysisJobResponse:
        return cls(
            id=job.id,
            repository_id=job.repository_id,
            status=job.status.value,
            progress=job.progress or 0,
            files_analysed=job.files_analysed or 0,
            total_files=job.total_files,
            error_message=job.error_message,
            error_details=job.error_details,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class CodeEntityResponse(_CamelModel):
    id: str
    name: str
    type: str
    start_line: int
    end_line: int

    @classmethod
    def from_row(cls, entity: CodeEntity) -> CodeEntityResponse:
        return cls(
            id=entity.id,
            name=entity.name,
            type=entity.type,
            start_line=entity.start_line,
            end_line=entity.end_line,
        )


class RepositoryFileResponse(_CamelModel):
    id: str
    file_path: str
    file_name: str
    file_type: str
    lines_of_code: int
    neo4j_node_id: Optional[str] = None
    annotations: dict[str, Any] = Field(default_factory=dict)
    ai_summary: Optional[str] = None
    entities: list[CodeEntityResponse] = Field(default_factory=list)

    @classmethod
    def from_row(cls, repository_file: RepositoryFile) -> RepositoryFileResponse:
        try:
            annotations = json.loads(repository_file.annotations or "{}")
        except ValueError:
            annotations = {}
        return cls(
            id=repository_file.id,
            file_path=repository_file.file_path,
            file_name=repository_file.file_name,
            file_type=repository_file.file_type,
            lines_of_code=repository_file.lines_of_code or 0,
            neo4j_node_id=repository_file.neo4j_node_id,
            annotations=annotations if isinstance(annotations, dict) else {},
            ai_summary=repository_file.ai_summary,
            entities=[CodeEntityResponse.from_row(e) for e in repository_file.code_entities],
        )


class NodeCountResponse(_CamelModel):
    repository_id: str
    total: int


class SummaryRequest(_CamelModel):
    """Payload for ``POST /files/{id}/summary``."""

    content: str = Field(..., description="Source text of the file.")


class SummaryResponse(_CamelModel):
    file_id: str
    summary: str
