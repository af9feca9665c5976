"""Batch loop driving the external analysis tool over a repository.

The tool analyses a bounded window of files per call.  The runner walks
the windows with an advancing ``skipFiles`` offset, hands every
successful window to a callback for incremental storage, and returns the
accumulated result once ``skipFiles`` reaches the repository's total.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError

from cograph.analysis.tool_client import AnalysisToolClient
from cograph.exceptions import AnalysisToolError
from cograph.models.analysis import AnalysisSummary, FileAnalysisResult, RepositoryAnalysis

logger = structlog.get_logger(__name__)

ANALYSE_REPOSITORY_TOOL = "analyse-repository"

BatchCallback = Callable[[RepositoryAnalysis], Awaitable[None]]


class RepositoryAnalysisRunner:
    """Calls the ``analyse-repository`` tool window by window.

    A failed window (timeout, transport error, malformed envelope) is
    logged and skipped.  Once the total file count is known the loop is
    bounded by it; before that, the run stops after
    ``max_consecutive_failures`` failed windows in a row.

    Args:
        client: Tool client used for every invocation.
        batch_size: Files requested per window (``maxFiles``).
        max_consecutive_failures: Give-up bound while the total is unknown.
    """

    def __init__(
        self,
        client: AnalysisToolClient,
        batch_size: int = 5,
        max_consecutive_failures: int = 3,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._client = client
        self.batch_size = batch_size
        self.max_consecutive_failures = max(1, max_consecutive_failures)

    async def analyse_repository(
        self,
        repository_url: str,
        repository_id: str,
        branch: Optional[str] = None,
        on_batch: Optional[BatchCallback] = None,
    ) -> RepositoryAnalysis:
        """Analyse every window of a repository.

        Args:
            repository_url: Clone URL handed to the tool.
            repository_id: Repository identity handed to the tool.
            branch: Optional branch to analyse.
            on_batch: Awaited with each successful window; its failures
                are logged and do not stop the loop.

        Returns:
            All windows merged, with summed summary counters.
        """
        logger.info("repository_analysis_started", repository_url=repository_url)

        skip = 0
        total_files: int | None = None
        consecutive_failures = 0
        summary = AnalysisSummary()
        files = []

        while True:
            arguments = {
                "repositoryUrl": repository_url,
                "repositoryId": repository_id,
                "maxFiles": self.batch_size,
                "skipFiles": skip,
            }
            if branch:
                arguments["branch"] = branch

            logger.info("analysis_window_started", skip_files=skip, max_files=self.batch_size)
            try:
                raw = await asyncio.to_thread(
                    self._client.call_tool, ANALYSE_REPOSITORY_TOOL, arguments
                )
                batch = parse_window(raw)
            except (AnalysisToolError, ValidationError) as exc:
                consecutive_failures += 1
                logger.error(
                    "analysis_window_failed",
                    skip_files=skip,
                    end=skip + self.batch_size,
                    error=str(exc),
                    consecutive_failures=consecutive_failures,
                )
                skip += self.batch_size
                if total_files is None:
                    if consecutive_failures >= self.max_consecutive_failures:
                        logger.error("analysis_windows_exhausted", failures=consecutive_failures)
                        break
                    continue
                if skip >= total_files:
                    break
                continue

            consecutive_failures = 0
            total_files = batch.summary.total_files
            summary.total_files = total_files
            summary.successful_analyses += batch.summary.successful_analyses
            summary.failed_analyses += batch.summary.failed_analyses
            summary.total_lines += batch.summary.total_lines
            for file_type, count in batch.summary.files_by_type.items():
                summary.files_by_type[file_type] = summary.files_by_type.get(file_type, 0) + count
            files.extend(batch.files)

            logger.info(
                "analysis_window_complete",
                files=len(batch.files),
                successful=summary.successful_analyses,
                total_files=total_files,
            )

            if on_batch is not None:
                try:
                    await on_batch(batch)
                except Exception as exc:
                    logger.error("batch_callback_failed", skip_files=skip, error=str(exc))

            skip += self.batch_size
            if skip >= total_files:
                break

        logger.info(
            "repository_analysis_finished",
            successful=summary.successful_analyses,
            total_files=summary.total_files,
        )
        return RepositoryAnalysis(
            repository_url=repository_url,
            branch=branch,
            analysed_at=datetime.now(timezone.utc).isoformat(),
            summary=summary,
            files=files,
        )


def parse_window(raw: Any) -> RepositoryAnalysis:
    """Validate one tool response entry by entry.

    The envelope (URL, branch, summary) must be well formed or the whole
    window is rejected.  Each file entry is validated on its own; a
    malformed entry is logged and dropped so the rest of the window
    survives.

    Raises:
        ValidationError: The envelope is malformed.
        AnalysisToolError: The response is not an object or ``files`` is
            not a list.
    """
    if not isinstance(raw, dict):
        raise AnalysisToolError(f"Unexpected tool response type: {type(raw).__name__}")
    entries = raw.get("files") or []
    if not isinstance(entries, list):
        raise AnalysisToolError("Tool response 'files' is not a list")

    batch = RepositoryAnalysis.model_validate({**raw, "files": []})
    for index, entry in enumerate(entries):
        try:
            batch.files.append(FileAnalysisResult.model_validate(entry))
        except ValidationError as exc:
            path = entry.get("relativePath") if isinstance(entry, dict) else None
            logger.warning(
                "file_entry_invalid",
                index=index,
                path=path,
                errors=exc.error_count(),
                error=str(exc),
            )
    return batch
