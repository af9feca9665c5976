"""User annotations on analysed files."""

from cograph.annotations.service import AnnotationsService

__all__ = ["AnnotationsService"]
