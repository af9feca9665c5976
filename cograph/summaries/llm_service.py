"""Azure OpenAI integration for per-file summaries.

Takes the source text of one analysed file plus its relational metadata
and asks a chat deployment for a short, plain-English description that
is stored on the file row and surfaced as ``aiSummary`` on graph nodes.
"""

from __future__ import annotations

import structlog
from openai import AzureOpenAI

logger = structlog.get_logger(__name__)

# ------------------------------------------------------------------
# System prompt
# ------------------------------------------------------------------

SYSTEM_PROMPT = """You are a Senior Technical Lead documenting a codebase. You will be given \
the path and source code of a single file, together with the functions, classes and interfaces \
found in it.

Write a concise summary of the file following these rules:

1. **Purpose first**: Start with one sentence describing what the file is responsible for.

2. **Key entities**: Mention the most important exported functions, classes or interfaces by \
   name and what they do.

3. **Dependencies**: If the file clearly depends on other modules, say what it uses them for.

4. **Be brief**: At most five sentences of plain prose. No headings, no code blocks.

5. **Honesty guardrail**: Describe only what appears in the provided source. Do NOT invent \
   behaviour that is not in the file.
"""


# ------------------------------------------------------------------
# Summarizer
# ------------------------------------------------------------------


class FileSummarizer:
    """Synchronous Azure OpenAI chat-completion wrapper for file summaries.

    Args:
        api_key: Azure OpenAI API key.
        azure_endpoint: Azure OpenAI endpoint URL.
        deployment: Azure deployment name (e.g. ``gpt-4o-mini``).
        max_tokens: Maximum tokens in the completion response.
        api_version: Azure OpenAI API version.
    """

    def __init__(
        self,
        api_key: str,
        azure_endpoint: str,
        deployment: str = "gpt-4o-mini",
        max_tokens: int = 512,
        api_version: str = "2024-12-01-preview",
    ) -> None:
        self._client = AzureOpenAI(
            api_key=api_key,
            azure_endpoint=azure_endpoint,
            api_version=api_version,
        )
        self.deployment = deployment
        self.max_tokens = max_tokens

    def summarize(
        self,
        file_path: str,
        content: str,
        entities: list[tuple[str, str]] | None = None,
    ) -> str:
        """Generate a summary for one file.

        Args:
            file_path: Repository-relative path of the file.
            content: Source text, already truncated by the caller.
            entities: ``(type, name)`` pairs found in the file.

        Returns:
            The summary text, stripped.
        """
        user_message = build_user_message(file_path, content, entities or [])

        logger.info(
            "summary_request",
            deployment=self.deployment,
            path=file_path,
            user_msg_chars=len(user_message),
        )

        response = self._client.chat.completions.create(
            model=self.deployment,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_message},
            ],
            max_completion_tokens=self.max_tokens,
        )

        summary = (response.choices[0].message.content or "").strip()

        logger.info(
            "summary_response",
            deployment=self.deployment,
            tokens_prompt=response.usage.prompt_tokens if response.usage else 0,
            tokens_completion=response.usage.completion_tokens if response.usage else 0,
        )
        return summary


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def build_user_message(
    file_path: str,
    content: str,
    entities: list[tuple[str, str]],
) -> str:
    """Format the user message with the file's path, entities and source."""
    parts = [f"## File\n\n`{file_path}`\n"]

    if entities:
        parts.append("## Entities\n")
        for kind, name in entities:
            parts.append(f"- {kind}: `{name}`")
        parts.append("")

    lang = "typescript" if file_path.endswith((".ts", ".tsx")) else "javascript"
    parts.append(f"## Source\n\n```{lang}\n{content}\n```")
    return "\n".join(parts)
