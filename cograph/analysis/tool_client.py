"""HTTP client for the external analysis tool.

The tool is a black box that parses source files; this client only
invokes it.  Calls are **synchronous** (``requests``) and the async
engine dispatches them via ``asyncio.to_thread``.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import requests
import structlog

from cograph.exceptions import AnalysisToolError

logger = structlog.get_logger(__name__)


class AnalysisToolClient:
    """Invokes named tools at ``{base_url}/tools/{name}``.

    Args:
        base_url: Root URL of the tool server.
        timeout: Seconds before a call is abandoned.
        session: Optional pre-configured ``requests.Session``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Invoke a tool and return its decoded JSON result.

        Args:
            name: Tool name, e.g. ``"analyse-repository"``.
            arguments: JSON-serialisable tool arguments.

        Returns:
            The tool result with any MCP ``content`` envelope removed.

        Raises:
            AnalysisToolError: On timeout, transport failure, HTTP error,
                a tool-reported error or an undecodable body.
        """
        url = f"{self.base_url}/tools/{name}"
        logger.debug("tool_call", tool=name, url=url)

        try:
            response = self._session.post(url, json=arguments, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.Timeout as exc:
            raise AnalysisToolError(f"Tool '{name}' timed out after {self.timeout}s") from exc
        except requests.HTTPError as exc:
            raise AnalysisToolError(
                f"Tool '{name}' returned HTTP {exc.response.status_code if exc.response is not None else '?'}"
            ) from exc
        except requests.RequestException as exc:
            raise AnalysisToolError(f"Tool '{name}' request failed: {exc}") from exc
        except ValueError as exc:
            raise AnalysisToolError(f"Tool '{name}' returned a non-JSON body") from exc

        return _unwrap(name, payload)

    def close(self) -> None:
        self._session.close()


def _unwrap(name: str, payload: Any) -> Any:
    """Strip an MCP-style ``{"content": [{"type": "text", "text": ...}]}`` envelope."""
    if not isinstance(payload, dict) or "content" not in payload:
        return payload

    if payload.get("isError"):
        raise AnalysisToolError(f"Tool '{name}' reported an error: {_first_text(payload)}")

    text = _first_text(payload)
    if text is None:
        raise AnalysisToolError(f"Tool '{name}' returned no text content")
    try:
        return json.loads(text)
    except ValueError:
        return text


def _first_text(payload: dict[str, Any]) -> str | None:
    for item in payload.get("content") or []:
        if isinstance(item, dict) and item.get("type") == "text":
            return item.get("text")
    return None
