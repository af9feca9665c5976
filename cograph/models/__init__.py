"""Pydantic v2 data models for the tool contract, the graph schema and user annotations."""

from cograph.models.analysis import (
    AnalysisSummary,
    CodeEntity,
    ExportStatement,
    FileAnalysis,
    FileAnalysisResult,
    ImportStatement,
    RepositoryAnalysis,
)
from cograph.models.annotations import (
    AnnotationAuthor,
    CreateAnnotationInput,
    FileAnnotation,
    UpdateAnnotationInput,
)
from cograph.models.graph import (
    CircularDependency,
    DependencyGraph,
    EntityNodeRecord,
    ExportRelationshipRecord,
    FileNodeRecord,
    GraphEdge,
    GraphEdgeData,
    GraphNode,
    GraphNodeData,
    ImportRelationshipRecord,
    PaginationOptions,
    TraversalDepth,
)

__all__ = [
    "AnnotationAuthor",
    "CreateAnnotationInput",
    "FileAnnotation",
    "UpdateAnnotationInput",
    "AnalysisSummary",
    "CodeEntity",
    "ExportStatement",
    "FileAnalysis",
    "FileAnalysisResult",
    "ImportStatement",
    "RepositoryAnalysis",
    "CircularDependency",
    "DependencyGraph",
    "EntityNodeRecord",
    "ExportRelationshipRecord",
    "FileNodeRecord",
    "GraphEdge",
    "GraphEdgeData",
    "GraphNode",
    "GraphNodeData",
    "ImportRelationshipRecord",
    "PaginationOptions",
    "TraversalDepth",
]
