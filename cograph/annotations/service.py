"""Versioned user annotations stored on repository file rows.

User notes share the file row's JSON document with the imports/exports
payload of the analysis run.  Every write keeps the other keys intact
and only replaces ``version`` and ``annotations``.  A re-analysis
recreates file rows, so notes do not survive it.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from cograph.db.store import RelationalStore
from cograph.exceptions import ForbiddenError, NotFoundError
from cograph.models.annotations import (
    ANNOTATIONS_VERSION,
    AnnotationAuthor,
    CreateAnnotationInput,
    FileAnnotation,
    UpdateAnnotationInput,
)

logger = structlog.get_logger(__name__)


class AnnotationsService:
    """Get, create, update and delete annotations of one file.

    Only the author of an annotation may edit or delete it.

    Args:
        store: Relational adapter.
    """

    def __init__(self, store: RelationalStore) -> None:
        self._store = store

    async def get_annotations(self, file_id: str) -> list[FileAnnotation]:
        """Return the annotations of a file, oldest first.

        Raises:
            NotFoundError: No file row has id *file_id*.
        """
        exists, raw = await asyncio.to_thread(self._store.get_file_annotations, file_id)
        if not exists:
            raise NotFoundError("File", file_id)
        return parse_annotations(raw)

    async def create_annotation(
        self,
        file_id: str,
        data: CreateAnnotationInput,
        author: AnnotationAuthor,
    ) -> FileAnnotation:
        now = datetime.now(timezone.utc)
        annotation = FileAnnotation(
            id=str(uuid.uuid4()),
            title=data.title,
            content=data.content,
            tags=data.tags or [],
            linked_entity_ids=data.linked_entity_ids or [],
            author=author,
            created_at=now,
            updated_at=now,
        )

        def mutate(raw: Optional[str]) -> str:
            document = parse_document(raw)
            return serialize_annotations(document, [*parse_annotations(raw), annotation])

        await self._write(file_id, mutate)
        logger.info("annotation_created", file_id=file_id, annotation_id=annotation.id)
        return annotation

    async def update_annotation(
        self,
        file_id: str,
        annotation_id: str,
        data: UpdateAnnotationInput,
        user_id: str,
    ) -> FileAnnotation:
        """Apply the non-``None`` fields of *data* to an annotation.

        Raises:
            NotFoundError: The file or the annotation does not exist.
            ForbiddenError: *user_id* is not the annotation's author.
        """
        updated: list[FileAnnotation] = []

        def mutate(raw: Optional[str]) -> str:
            annotations = parse_annotations(raw)
            index = _find(annotations, annotation_id)
            current = annotations[index]
            if current.author.id != user_id:
                raise ForbiddenError("You can only edit your own annotations")
            changes = data.model_dump(exclude_none=True)
            changes["updated_at"] = datetime.now(timezone.utc)
            annotations[index] = current.model_copy(update=changes)
            updated.append(annotations[index])
            return serialize_annotations(parse_document(raw), annotations)

        await self._write(file_id, mutate)
        logger.info("annotation_updated", file_id=file_id, annotation_id=annotation_id)
        return updated[0]

    async def delete_annotation(self, file_id: str, annotation_id: str, user_id: str) -> bool:
        """Remove an annotation.

        Raises:
            NotFoundError: The file or the annotation does not exist.
            ForbiddenError: *user_id* is not the annotation's author.
        """

        def mutate(raw: Optional[str]) -> str:
            annotations = parse_annotations(raw)
            current = annotations[_find(annotations, annotation_id)]
            if current.author.id != user_id:
                raise ForbiddenError("You can only delete your own annotations")
            remaining = [a for a in annotations if a.id != annotation_id]
            return serialize_annotations(parse_document(raw), remaining)

        await self._write(file_id, mutate)
        logger.info("annotation_deleted", file_id=file_id, annotation_id=annotation_id)
        return True

    async def _write(self, file_id: str, mutate) -> None:
        found = await asyncio.to_thread(self._store.update_file_annotations, file_id, mutate)
        if not found:
            raise NotFoundError("File", file_id)


def _find(annotations: list[FileAnnotation], annotation_id: str) -> int:
    for index, annotation in enumerate(annotations):
        if annotation.id == annotation_id:
            return index
    raise NotFoundError("Annotation", annotation_id)


def parse_document(raw: Optional[str]) -> dict[str, Any]:
    """Decode a stored annotations document; unreadable text yields ``{}``."""
    if not raw:
        return {}
    try:
        document = json.loads(raw)
    except ValueError:
        logger.warning("annotations_unreadable", chars=len(raw))
        return {}
    return document if isinstance(document, dict) else {}


def parse_annotations(raw: Optional[str]) -> list[FileAnnotation]:
    """User annotations of a stored document; malformed entries are dropped."""
    entries = parse_document(raw).get("annotations") or []
    if not isinstance(entries, list):
        return []
    annotations = []
    for entry in entries:
        try:
            annotations.append(FileAnnotation.model_validate(entry))
        except ValidationError as exc:
            logger.warning("annotation_entry_invalid", error=str(exc))
    return annotations


def serialize_annotations(document: dict[str, Any], annotations: list[FileAnnotation]) -> str:
    """Encode *annotations* into *document*, keeping its other keys."""
    return json.dumps(
        {
            **document,
            "version": ANNOTATIONS_VERSION,
            "annotations": [a.model_dump(by_alias=True, mode="json") for a in annotations],
        }
    )
