"""Pydantic v2 models for user annotations on analysed files.

Annotations live in the file row's ``annotations`` JSON document under
the ``annotations`` key, next to the ``imports``/``exports`` payload
written by the analysis run:

.. code-block:: json

    {"version": 1, "imports": [...], "exports": [...], "annotations": [...]}
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ANNOTATIONS_VERSION = 1


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnnotationAuthor(_CamelModel):
    id: str
    name: str


class FileAnnotation(_CamelModel):
    """A user-written note attached to a repository file."""

    id: str
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    linked_entity_ids: list[str] = Field(
        default_factory=list, description="Ids of code entities the note refers to."
    )
    author: AnnotationAuthor
    created_at: datetime
    updated_at: datetime


class CreateAnnotationInput(_CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=10000, description="Markdown text.")
    tags: Optional[list[str]] = None
    linked_entity_ids: Optional[list[str]] = None


class UpdateAnnotationInput(_CamelModel):
    """Partial update; ``None`` fields keep their current value."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=10000)
    tags: Optional[list[str]] = None
    linked_entity_ids: Optional[list[str]] = None
