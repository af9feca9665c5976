"""Relational store adapter used by the analysis engine.

Every method opens its own short transaction through
:meth:`DatabaseManager.get_session`; the analysis write path is not
wrapped in a run-wide transaction, so progress made before a crash stays
durable.  Methods are synchronous; async callers
dispatch them with ``asyncio.to_thread``.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import structlog
from sqlalchemy import delete, insert, or_, select
from sqlalchemy.orm import selectinload

from cograph.db.database import DatabaseManager
from cograph.db.models import (
    ACTIVE_STATUSES,
    AnalysisJob,
    AnalysisStatus,
    CodeEntity,
    Repository,
    RepositoryFile,
    utcnow,
)

logger = structlog.get_logger(__name__)


class RelationalStore:
    """Repository, file, entity and job persistence.

    Args:
        db: The database manager providing sessions.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def get_repository(self, repository_id: str) -> Optional[Repository]:
        if not is_valid_id(repository_id):
            return None
        with self._db.get_session() as session:
            return session.get(Repository, repository_id)

    def create_repository(
        self,
        name: str,
        repository_url: str,
        full_name: str | None = None,
        default_branch: str | None = None,
    ) -> Repository:
        """Register a repository (normally done by the project layer)."""
        with self._db.get_session() as session:
            repository = Repository(
                name=name,
                full_name=full_name or name,
                repository_url=repository_url,
                default_branch=default_branch,
            )
            session.add(repository)
            session.flush()
            return repository

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def find_blocking_job(
        self,
        repository_id: str,
        cooldown_seconds: int,
        now: datetime | None = None,
    ) -> Optional[AnalysisJob]:
        """Return the most recent job that forbids starting a new analysis.

        A job blocks when it is still active (PENDING, CLONING, ANALYSING)
        or when it COMPLETED less than *cooldown_seconds* ago.
        """
        cutoff = (now or utcnow()) - timedelta(seconds=cooldown_seconds)
        stmt = (
            select(AnalysisJob)
            .where(AnalysisJob.repository_id == repository_id)
            .where(
                or_(
                    AnalysisJob.status.in_(ACTIVE_STATUSES),
                    (AnalysisJob.status == AnalysisStatus.COMPLETED)
                    & (AnalysisJob.completed_at >= cutoff),
                )
            )
            .order_by(AnalysisJob.created_at.desc())
            .limit(1)
        )
        with self._db.get_session() as session:
            return session.scalars(stmt).first()

    def create_job(self, repository_id: str) -> AnalysisJob:
        with self._db.get_session() as session:
            job = AnalysisJob(
                repository_id=repository_id,
                status=AnalysisStatus.PENDING,
                progress=0,
                files_analysed=0,
                started_at=utcnow(),
            )
            session.add(job)
            session.flush()
            return job

    def get_job(self, job_id: str) -> Optional[AnalysisJob]:
        if not is_valid_id(job_id):
            return None
        with self._db.get_session() as session:
            return session.get(AnalysisJob, job_id)

    def update_job(self, job_id: str, **fields: Any) -> bool:
        """Apply *fields* to a job unless it already reached a terminal state.

        Returns:
            ``True`` if the row was updated.
        """
        with self._db.get_session() as session:
            job = session.get(AnalysisJob, job_id, with_for_update=True)
            if job is None:
                logger.warning("job_update_missing", job_id=job_id)
                return False
            if job.status.is_terminal:
                logger.warning("job_update_after_terminal", job_id=job_id, status=job.status.value)
                return False
            for name, value in fields.items():
                setattr(job, name, value)
            return True

    def increment_job_progress(
        self,
        job_id: str,
        stored_count: int,
        fallback_total: int,
    ) -> tuple[int, int, float]:
        """Add *stored_count* to ``files_analysed`` and recompute ``progress``.

        ``progress`` is measured against the job's ``total_files`` when set,
        otherwise against *fallback_total* (the batch's reported total), is
        capped at 100 and never decreases.

        Returns:
            ``(files_analysed, total_files, progress)`` after the update.
        """
        with self._db.get_session() as session:
            job = session.get(AnalysisJob, job_id, with_for_update=True)
            if job is None:
                raise LookupError(f"Analysis job not found: {job_id}")

            files_analysed = (job.files_analysed or 0) + stored_count
            total = job.total_files or fallback_total
            progress = compute_progress(files_analysed, total)

            if not job.status.is_terminal:
                job.files_analysed = files_analysed
                job.progress = max(job.progress or 0, progress)
            return job.files_analysed, total, job.progress

    # ------------------------------------------------------------------
    # Files and entities
    # ------------------------------------------------------------------

    def delete_repository_files(self, repository_id: str) -> int:
        """Delete every file row (and its entities) of a repository."""
        file_ids = select(RepositoryFile.id).where(RepositoryFile.repository_id == repository_id)
        with self._db.get_session() as session:
            session.execute(
                delete(CodeEntity).where(CodeEntity.repository_file_id.in_(file_ids))
            )
            result = session.execute(
                delete(RepositoryFile).where(RepositoryFile.repository_id == repository_id)
            )
            deleted = result.rowcount or 0
        logger.info("repository_files_deleted", repository_id=repository_id, count=deleted)
        return deleted

    def create_repository_file(
        self,
        repository_id: str,
        *,
        file_path: str,
        file_name: str,
        file_type: str,
        lines_of_code: int,
        neo4j_node_id: str,
        annotations: dict[str, Any],
        entities: list[dict[str, Any]],
    ) -> str:
        """Insert one file row and bulk-insert its entity rows.

        Each entity dict carries ``name``, ``type``, ``start_line``,
        ``end_line`` and an ``annotations`` dict.

        Returns:
            The new file row id.
        """
        with self._db.get_session() as session:
            repository_file = RepositoryFile(
                repository_id=repository_id,
                file_path=file_path,
                file_name=file_name,
                file_type=file_type,
                lines_of_code=lines_of_code,
                neo4j_node_id=neo4j_node_id,
                annotations=json.dumps(annotations),
            )
            session.add(repository_file)
            session.flush()

            if entities:
                session.execute(
                    insert(CodeEntity),
                    [
                        {
                            "repository_file_id": repository_file.id,
                            "name": entity["name"],
                            "type": entity["type"],
                            "start_line": entity["start_line"],
                            "end_line": entity["end_line"],
                            "annotations": json.dumps(entity.get("annotations") or {}),
                        }
                        for entity in entities
                    ],
                )
            return repository_file.id

    def list_repository_files(self, repository_id: str) -> list[RepositoryFile]:
        """Return a repository's files ordered by path, with entities loaded."""
        stmt = (
            select(RepositoryFile)
            .where(RepositoryFile.repository_id == repository_id)
            .options(selectinload(RepositoryFile.code_entities))
            .order_by(RepositoryFile.file_path)
        )
        with self._db.get_session() as session:
            return list(session.scalars(stmt).all())

    def get_file(self, file_id: str) -> Optional[RepositoryFile]:
        if not is_valid_id(file_id):
            return None
        with self._db.get_session() as session:
            return session.get(
                RepositoryFile, file_id, options=[selectinload(RepositoryFile.code_entities)]
            )

    def set_file_summary(self, file_id: str, summary: str) -> bool:
        if not is_valid_id(file_id):
            return False
        with self._db.get_session() as session:
            repository_file = session.get(RepositoryFile, file_id)
            if repository_file is None:
                return False
            repository_file.ai_summary = summary
            return True

    def get_file_annotations(self, file_id: str) -> tuple[bool, Optional[str]]:
        """Return ``(exists, raw annotations JSON)`` for a file row."""
        if not is_valid_id(file_id):
            return False, None
        with self._db.get_session() as session:
            repository_file = session.get(RepositoryFile, file_id)
            if repository_file is None:
                return False, None
            return True, repository_file.annotations

    def update_file_annotations(
        self,
        file_id: str,
        mutate: Callable[[Optional[str]], str],
    ) -> bool:
        """Rewrite a file's annotations document under a row lock.

        *mutate* receives the stored JSON text and returns the replacement.
        Anything it raises rolls the transaction back and propagates.

        Returns:
            ``False`` if the file does not exist.
        """
        if not is_valid_id(file_id):
            return False
        with self._db.get_session() as session:
            repository_file = session.get(RepositoryFile, file_id, with_for_update=True)
            if repository_file is None:
                return False
            repository_file.annotations = mutate(repository_file.annotations)
            return True

    def fetch_enrichment_rows(
        self,
        node_ids: list[str],
    ) -> tuple[list[RepositoryFile], list[CodeEntity]]:
        """Bulk-load file and entity rows for a set of cross-store keys.

        Exactly two queries: files whose key is in *node_ids*, and the
        entities of those files.
        """
        if not node_ids:
            return [], []
        with self._db.get_session() as session:
            files = session.scalars(
                select(RepositoryFile).where(RepositoryFile.neo4j_node_id.in_(node_ids))
            ).all()
            entities = session.scalars(
                select(CodeEntity)
                .join(RepositoryFile, CodeEntity.repository_file_id == RepositoryFile.id)
                .where(RepositoryFile.neo4j_node_id.in_(node_ids))
            ).all()
            return list(files), list(entities)


def compute_progress(files_analysed: int, total_files: int | None) -> float:
    """Percentage of files analysed, rounded half-up and capped at 100."""
    if not total_files or total_files <= 0:
        return 0
    return min(100, int(100 * files_analysed / total_files + 0.5))


def is_valid_id(value: str) -> bool:
    """Whether *value* can be bound to a UUID primary key column."""
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True
