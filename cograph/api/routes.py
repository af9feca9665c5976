"""FastAPI routes for analysis jobs, analysed files and file summaries.

Provides endpoints for:

- ``POST /repositories/{id}/analysis``: start a background analysis.
- ``GET /analysis/jobs/{job_id}``: poll a job until it is terminal.
- ``GET /repositories/{id}/files``: files of the current generation.
- ``POST /files/{file_id}/summary``: generate and store an AI summary.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from cograph.api.deps import Services, get_services
from cograph.api.schemas import (
    AnalysisJobResponse,
    RepositoryFileResponse,
    StartAnalysisRequest,
    StartAnalysisResponse,
    SummaryRequest,
    SummaryResponse,
)
from cograph.exceptions import AnalysisConflictError, NotFoundError

router = APIRouter()


@router.post(
    "/repositories/{repository_id}/analysis",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a repository analysis",
    description=(
        "Create an analysis job and run it in the background. Rejected with "
        "409 while another job is active or the cooldown has not elapsed."
    ),
)
async def start_analysis(
    repository_id: str,
    request: StartAnalysisRequest | None = None,
    services: Services = Depends(get_services),
):
    branch = request.branch if request is not None else None
    try:
        job_id = await services.orchestrator.start_analysis(repository_id, branch=branch)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except AnalysisConflictError as exc:
        headers = {}
        if exc.retry_after_seconds is not None:
            headers["Retry-After"] = str(exc.retry_after_seconds)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "jobId": exc.job_id, "status": exc.status},
            headers=headers,
        )
    return StartAnalysisResponse(job_id=job_id).model_dump(by_alias=True)


@router.get(
    "/analysis/jobs/{job_id}",
    summary="Get an analysis job",
)
async def get_analysis_job(job_id: str, services: Services = Depends(get_services)):
    try:
        job = await services.orchestrator.get_analysis_job(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return AnalysisJobResponse.from_row(job).model_dump(by_alias=True, mode="json")


@router.get(
    "/repositories/{repository_id}/files",
    summary="List analysed files",
    description="Files of the latest analysis ordered by path, with their code entities.",
)
async def get_repository_files(repository_id: str, services: Services = Depends(get_services)):
    try:
        files = await services.orchestrator.get_repository_files(repository_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return [RepositoryFileResponse.from_row(f).model_dump(by_alias=True) for f in files]


@router.post(
    "/files/{file_id}/summary",
    summary="Generate an AI summary for a file",
)
async def generate_file_summary(
    file_id: str,
    request: SummaryRequest,
    services: Services = Depends(get_services),
):
    if services.summaries is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=(
                "Summaries are not configured. Set COGRAPH_OPENAI_API_KEY and "
                "COGRAPH_AZURE_ENDPOINT in your .env file."
            ),
        )
    try:
        summary = await services.summaries.generate_file_summary(file_id, request.content)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Summary generation failed: {exc}",
        )
    return SummaryResponse(file_id=file_id, summary=summary).model_dump(by_alias=True)
