"""FastAPI routes for user annotations on analysed files.

Provides endpoints for:

- ``GET /files/{file_id}/annotations``: every annotation of a file.
- ``POST /files/{file_id}/annotations``: add an annotation.
- ``PATCH /files/{file_id}/annotations/{annotation_id}``: edit your own annotation.
- ``DELETE /files/{file_id}/annotations/{annotation_id}``: delete your own annotation.

The caller is identified by the ``X-User-Id`` and ``X-User-Name`` headers
set by the fronting project layer.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status

from cograph.annotations.service import AnnotationsService
from cograph.api.deps import Services, get_services
from cograph.exceptions import ForbiddenError, NotFoundError
from cograph.models.annotations import (
    AnnotationAuthor,
    CreateAnnotationInput,
    FileAnnotation,
    UpdateAnnotationInput,
)

annotation_router = APIRouter()


def _annotations(services: Services) -> AnnotationsService:
    if services.annotations is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Annotations are not configured.",
        )
    return services.annotations


def _body(annotation: FileAnnotation) -> dict:
    return annotation.model_dump(by_alias=True, mode="json")


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@annotation_router.get("/files/{file_id}/annotations", summary="List file annotations")
async def get_annotations(file_id: str, services: Services = Depends(get_services)):
    try:
        annotations = await _annotations(services).get_annotations(file_id)
    except NotFoundError as exc:
        raise _http_error(exc)
    return [_body(a) for a in annotations]


@annotation_router.post(
    "/files/{file_id}/annotations",
    status_code=status.HTTP_201_CREATED,
    summary="Annotate a file",
)
async def create_annotation(
    file_id: str,
    request: CreateAnnotationInput,
    x_user_id: str = Header(...),
    x_user_name: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    author = AnnotationAuthor(id=x_user_id, name=x_user_name or x_user_id)
    try:
        annotation = await _annotations(services).create_annotation(file_id, request, author)
    except NotFoundError as exc:
        raise _http_error(exc)
    return _body(annotation)


@annotation_router.patch(
    "/files/{file_id}/annotations/{annotation_id}",
    summary="Edit an annotation",
    description="Only the author may edit an annotation; omitted fields are kept.",
)
async def update_annotation(
    file_id: str,
    annotation_id: str,
    request: UpdateAnnotationInput,
    x_user_id: str = Header(...),
    services: Services = Depends(get_services),
):
    try:
        annotation = await _annotations(services).update_annotation(
            file_id, annotation_id, request, x_user_id
        )
    except (NotFoundError, ForbiddenError) as exc:
        raise _http_error(exc)
    return _body(annotation)


@annotation_router.delete(
    "/files/{file_id}/annotations/{annotation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an annotation",
)
async def delete_annotation(
    file_id: str,
    annotation_id: str,
    x_user_id: str = Header(...),
    services: Services = Depends(get_services),
):
    try:
        await _annotations(services).delete_annotation(file_id, annotation_id, x_user_id)
    except (NotFoundError, ForbiddenError) as exc:
        raise _http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
