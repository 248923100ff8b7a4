"""Agent-facing document search tool."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Union

from librarian.prompt_builder import detect_query_language
from librarian.service import DocumentIndexService

LOGGER = logging.getLogger(__name__)

TOOL_NAME = "document_search"
TOOL_DESCRIPTION = "Searches the library's uploaded documents and answers questions about the library."

EMPTY_QUERY_MESSAGE = "Lütfen arama yapmak için bir kelime girin."
NO_INDEX_MESSAGE = "Vektör deposu boş. Lütfen önce bir belge yükleyin."
ERROR_MESSAGES = {
    "tr": "Belgeler sorgulanırken bir hata oluştu. Lütfen daha sonra tekrar deneyin.",
    "en": "An error occurred while searching the documents. Please try again later.",
}

ToolInput = Union[str, Mapping[str, Any], None]


def extract_query(args: ToolInput) -> str:
    """Accept a bare string or a mapping carrying ``input`` or ``query``."""

    if isinstance(args, str):
        return args
    if isinstance(args, Mapping):
        value = args.get("input") or args.get("query") or ""
        return value if isinstance(value, str) else str(value)
    return ""


class DocumentSearchTool:
    """Callable wrapper that never raises to the calling agent."""

    name = TOOL_NAME
    description = TOOL_DESCRIPTION

    def __init__(self, service: DocumentIndexService) -> None:
        self.service = service

    def __call__(self, args: ToolInput = None, **kwargs: Any) -> str:
        return self.run(args if args is not None else kwargs)

    def run(self, args: ToolInput) -> str:
        query = extract_query(args).strip()
        LOGGER.info("Document search tool called (query length %s)", len(query))
        if not query:
            return EMPTY_QUERY_MESSAGE
        if not self.service.is_ready:
            return NO_INDEX_MESSAGE

        try:
            return self.service.answer(query).text
        except Exception:
            LOGGER.exception("Document search failed")
            return ERROR_MESSAGES[detect_query_language(query)]

    def schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {"input": {"type": "string", "description": "The user's question in natural language"}},
                "required": ["input"],
            },
        }


def create_document_search_tool(service: DocumentIndexService) -> DocumentSearchTool:
    return DocumentSearchTool(service)


__all__ = ["DocumentSearchTool", "TOOL_NAME", "create_document_search_tool", "extract_query"]
