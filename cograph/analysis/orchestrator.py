"""Analysis job lifecycle.

A job moves PENDING -> CLONING -> ANALYSING -> COMPLETED | FAILED.
:meth:`AnalysisOrchestrator.start_analysis` admits or rejects a request
and returns at once; the run itself happens in a background task that
owns every later mutation of the job row.
"""

from __future__ import annotations

import asyncio
import math
import traceback
from typing import Optional

import structlog
from structlog.contextvars import bound_contextvars

from cograph.analysis.runner import RepositoryAnalysisRunner
from cograph.analysis.synchronizer import DualStoreSynchronizer
from cograph.db.models import AnalysisJob, AnalysisStatus, RepositoryFile, utcnow
from cograph.db.store import RelationalStore
from cograph.exceptions import AnalysisConflictError, NotFoundError
from cograph.graph.database import GraphService
from cograph.models.analysis import RepositoryAnalysis

logger = structlog.get_logger(__name__)


class AnalysisOrchestrator:
    """Admits analysis requests and runs them in the background.

    At most one job per repository is active at a time, and a repository
    that completed an analysis less than ``cooldown_seconds`` ago is
    rejected.  The admission check and job creation are serialised by an
    in-process lock; several processes sharing one database can still
    race.

    Args:
        store: Relational adapter.
        graph: Graph adapter.
        runner: Drives the external tool window by window.
        synchronizer: Writes each window to both stores.
        cooldown_seconds: Minimum gap after a completed analysis.
    """

    def __init__(
        self,
        store: RelationalStore,
        graph: GraphService,
        runner: RepositoryAnalysisRunner,
        synchronizer: DualStoreSynchronizer,
        cooldown_seconds: int = 300,
    ) -> None:
        self._store = store
        self._graph = graph
        self._runner = runner
        self._synchronizer = synchronizer
        self.cooldown_seconds = cooldown_seconds
        self._admission_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def start_analysis(self, repository_id: str, branch: Optional[str] = None) -> str:
        """Create a job for *repository_id* and launch it in the background.

        Returns:
            The new job id.

        Raises:
            NotFoundError: The repository does not exist.
            AnalysisConflictError: A job is active or the cooldown has not
                elapsed.
        """
        async with self._admission_lock:
            repository = await asyncio.to_thread(self._store.get_repository, repository_id)
            if repository is None:
                raise NotFoundError("Repository", repository_id)

            blocking = await asyncio.to_thread(
                self._store.find_blocking_job, repository_id, self.cooldown_seconds
            )
            if blocking is not None:
                retry_after = self._retry_after(blocking)
                logger.warning(
                    "analysis_rejected",
                    repository_id=repository_id,
                    blocking_job_id=blocking.id,
                    status=blocking.status.value,
                    retry_after=retry_after,
                )
                raise AnalysisConflictError(blocking.id, blocking.status.value, retry_after)

            job = await asyncio.to_thread(self._store.create_job, repository_id)

        logger.info("analysis_job_created", job_id=job.id, repository_id=repository_id)
        task = asyncio.create_task(
            self.run_analysis(
                job.id,
                repository_id,
                repository.repository_url,
                branch or repository.default_branch,
            ),
            name=f"analysis-{job.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job.id

    def _retry_after(self, job: AnalysisJob) -> int | None:
        if job.status != AnalysisStatus.COMPLETED or job.completed_at is None:
            return None
        elapsed = (utcnow() - job.completed_at).total_seconds()
        return max(1, math.ceil(self.cooldown_seconds - elapsed))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_analysis(
        self,
        job_id: str,
        repository_id: str,
        repository_url: str,
        branch: Optional[str] = None,
    ) -> None:
        """Execute one job to a terminal state.

        The previous generation of both stores is deleted first, so each
        successful run leaves exactly the files it analysed.  Any exception
        ends the job as FAILED; nothing propagates to the caller.
        """
        with bound_contextvars(job_id=job_id, repository_id=repository_id):
            try:
                if not await self._update(job_id, status=AnalysisStatus.CLONING):
                    logger.warning("analysis_job_not_runnable")
                    return
                logger.info("analysis_cloning", repository_url=repository_url, branch=branch)

                await self._update(job_id, status=AnalysisStatus.ANALYSING)
                await self._clear_previous_generation(repository_id)

                async def on_batch(batch: RepositoryAnalysis) -> None:
                    stored = await self._synchronizer.store_batch(job_id, repository_id, batch)
                    files_analysed, total, progress = await asyncio.to_thread(
                        self._store.increment_job_progress,
                        job_id,
                        stored,
                        batch.summary.total_files,
                    )
                    logger.info(
                        "analysis_progress",
                        files_analysed=files_analysed,
                        total_files=total,
                        progress=progress,
                    )

                analysis = await self._runner.analyse_repository(
                    repository_url, repository_id, branch=branch, on_batch=on_batch
                )
                await self._update(job_id, total_files=analysis.summary.total_files)

                await self._synchronizer.create_import_relationships(
                    job_id, repository_id, analysis
                )

                job = await asyncio.to_thread(self._store.get_job, job_id)
                persisted = job.files_analysed if job is not None else 0
                files_analysed = min(persisted, analysis.summary.successful_analyses)

                await self._update(
                    job_id,
                    status=AnalysisStatus.COMPLETED,
                    progress=100,
                    files_analysed=files_analysed,
                    completed_at=utcnow(),
                )
                logger.info(
                    "analysis_completed",
                    files_analysed=files_analysed,
                    total_files=analysis.summary.total_files,
                    failed=analysis.summary.failed_analyses,
                )
            except Exception as exc:
                logger.exception("analysis_failed", error=str(exc))
                await self._mark_failed(job_id, exc, traceback.format_exc())

    async def _clear_previous_generation(self, repository_id: str) -> None:
        deleted_rows = await asyncio.to_thread(self._store.delete_repository_files, repository_id)
        deleted_nodes = await asyncio.to_thread(self._graph.delete_repository_graph, repository_id)
        logger.info("previous_generation_cleared", files=deleted_rows, graph_nodes=deleted_nodes)

    async def _update(self, job_id: str, **fields) -> bool:
        return await asyncio.to_thread(self._store.update_job, job_id, **fields)

    async def _mark_failed(self, job_id: str, exc: Exception, details: str) -> None:
        try:
            await self._update(
                job_id,
                status=AnalysisStatus.FAILED,
                error_message=str(exc) or type(exc).__name__,
                error_details=details,
                completed_at=utcnow(),
            )
        except Exception:
            logger.exception("analysis_fail_status_not_recorded")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_analysis_job(self, job_id: str) -> AnalysisJob:
        job = await asyncio.to_thread(self._store.get_job, job_id)
        if job is None:
            raise NotFoundError("Analysis job", job_id)
        return job

    async def get_repository_files(self, repository_id: str) -> list[RepositoryFile]:
        """Files of the current generation with their entities, ordered by path."""
        repository = await asyncio.to_thread(self._store.get_repository, repository_id)
        if repository is None:
            raise NotFoundError("Repository", repository_id)
        return await asyncio.to_thread(self._store.list_repository_files, repository_id)

    async def wait_for_pending(self) -> None:
        """Wait until every background job launched by this instance finishes."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
