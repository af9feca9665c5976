"""Graph store adapter (Neo4j) and the read-side query engine."""

from cograph.graph.database import ENTITY_LABELS, GraphService
from cograph.graph.query_engine import GraphQueryEngine

__all__ = ["ENTITY_LABELS", "GraphService", "GraphQueryEngine"]
