"""Typed errors raised by the analysis engine.

Callers of :meth:`AnalysisOrchestrator.start_analysis` receive
:class:`NotFoundError` and :class:`AnalysisConflictError` synchronously;
everything raised inside a running job is converted into a FAILED job
instead of propagating.
"""

from __future__ import annotations


class CographError(Exception):
    """Base class for all engine errors."""


class NotFoundError(CographError):
    """A referenced repository, job or file does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class AnalysisConflictError(CographError):
    """An analysis was requested while another is active or cooling down.

    Attributes:
        job_id: The job that blocks the request.
        status: Status of the blocking job.
        retry_after_seconds: Remaining cooldown, or ``None`` when the
            blocking job is still running.
    """

    def __init__(
        self,
        job_id: str,
        status: str,
        retry_after_seconds: int | None = None,
    ) -> None:
        if retry_after_seconds is None:
            message = f"Analysis already in progress (job {job_id}, status {status})"
        else:
            message = (
                f"Repository was analysed recently (job {job_id}); "
                f"retry in {retry_after_seconds}s"
            )
        super().__init__(message)
        self.job_id = job_id
        self.status = status
        self.retry_after_seconds = retry_after_seconds


class AnalysisToolError(CographError):
    """An external analysis tool invocation timed out or failed."""


class InvalidEntityTypeError(CographError, ValueError):
    """An entity type outside the graph label allow-list was supplied."""


class ForbiddenError(CographError):
    """The caller may not modify a resource owned by someone else."""
