"""Pydantic v2 models for the external analysis tool contract.

The tool speaks camelCase JSON; every model accepts both the camelCase
wire names and the snake_case attribute names.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CodeEntity(_WireModel):
    """A function, class, interface, type or variable found in a file.

    Attributes:
        name: Entity name as declared in the source.
        type: Lower-case kind (``function``, ``class``, ``interface``, ...).
        start_line: 1-indexed first line.
        end_line: 1-indexed last line.
    """

    name: str
    type: str
    start_line: int = Field(..., description="1-indexed first line.")
    end_line: int = Field(..., description="1-indexed last line.")


class ImportStatement(_WireModel):
    """One import declaration of a file."""

    source: str = Field(..., description="Raw import specifier, e.g. './utils'.")
    specifiers: list[str] = Field(default_factory=list)
    is_external: bool = False


class ExportStatement(_WireModel):
    """One export declaration of a file."""

    name: str
    type: str


class FileAnalysis(_WireModel):
    """Structured result of analysing a single file."""

    file_path: str
    file_name: str
    file_type: str
    lines: int = 0
    imports: list[ImportStatement] = Field(default_factory=list)
    exports: list[ExportStatement] = Field(default_factory=list)
    entities: list[CodeEntity] = Field(default_factory=list)


class FileAnalysisResult(_WireModel):
    """Per-file entry of a tool response.

    ``analysis`` is ``None`` when the tool could not analyse the file; such
    files are skipped by every store.
    """

    file_path: str
    relative_path: str
    analysis: Optional[FileAnalysis] = None
    error: Optional[str] = None


class AnalysisSummary(_WireModel):
    """Counters reported by the tool for a window or a whole run."""

    total_files: int = 0
    total_lines: int = 0
    successful_analyses: int = 0
    failed_analyses: int = 0
    files_by_type: dict[str, int] = Field(default_factory=dict)


class RepositoryAnalysis(_WireModel):
    """One batch returned by the tool, or the accumulated result of a run."""

    repository_url: str = ""
    branch: Optional[str] = None
    analysed_at: Optional[str] = None
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)
    files: list[FileAnalysisResult] = Field(default_factory=list)

    def successful_files(self) -> list[FileAnalysisResult]:
        """Return only the files that carry an analysis payload."""
        return [f for f in self.files if f.analysis is not None]
