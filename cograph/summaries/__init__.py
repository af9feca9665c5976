"""AI-generated file summaries."""

from cograph.summaries.llm_service import FileSummarizer
from cograph.summaries.service import SummaryService

__all__ = ["FileSummarizer", "SummaryService"]
