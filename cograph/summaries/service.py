"""Stores AI summaries on analysed files."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from cograph.db.store import RelationalStore
from cograph.exceptions import NotFoundError

logger = structlog.get_logger(__name__)


class Summarizer(Protocol):
    def summarize(
        self,
        file_path: str,
        content: str,
        entities: list[tuple[str, str]] | None = None,
    ) -> str: ...


class SummaryService:
    """Generates a summary for a file row and persists it as ``ai_summary``.

    Args:
        store: Relational adapter.
        summarizer: Anything with a :meth:`FileSummarizer.summarize` method.
        max_content_chars: Source text beyond this length is cut off before
            it is sent.
    """

    def __init__(
        self,
        store: RelationalStore,
        summarizer: Summarizer,
        max_content_chars: int = 12000,
    ) -> None:
        self._store = store
        self._summarizer = summarizer
        self.max_content_chars = max_content_chars

    async def generate_file_summary(self, file_id: str, content: str) -> str:
        """Summarise *content* as the source of file *file_id* and store it.

        Raises:
            ValueError: *content* is empty or whitespace.
            NotFoundError: No file row has id *file_id*.
        """
        if not content or not content.strip():
            raise ValueError("File content must not be empty")

        repository_file = await asyncio.to_thread(self._store.get_file, file_id)
        if repository_file is None:
            raise NotFoundError("File", file_id)

        truncated = content[: self.max_content_chars]
        if len(truncated) < len(content):
            logger.info("summary_content_truncated", file_id=file_id, chars=len(content))

        entities = [(e.type, e.name) for e in repository_file.code_entities]
        summary = await asyncio.to_thread(
            self._summarizer.summarize, repository_file.file_path, truncated, entities
        )
        await asyncio.to_thread(self._store.set_file_summary, file_id, summary)
        logger.info("file_summary_stored", file_id=file_id, chars=len(summary))
        return summary
