"""Context search tool for agents.

This module provides both:
1. A library function `perform_context_search()` that can be called directly for prefetching
2. A LangChain tool factory `create_context_search_tool()` bound to one IndexService
"""

from typing import Optional

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from .logging_config import get_logger
from .service import IndexService

logger = get_logger(__name__)


class ContextSearchInput(BaseModel):
    query: str = Field(description="What the code you need does or is called (e.g. 'explain parseConfig')")
    current_file: Optional[str] = Field(
        default=None, description="Repository-relative path of the file being edited, if any"
    )
    max_tokens: int = Field(default=4000, description="Approximate token budget for the returned context")


def perform_context_search(
    service: IndexService,
    query: str,
    current_file: Optional[str] = None,
    max_tokens: int = 4000,
) -> str:
    """Build and format context for query.

    Args:
        service: Index service holding the project index
        query: Natural language request or symbol name
        current_file: File the user is working in (ranked first when indexed)
        max_tokens: Maximum tokens for formatted output

    Returns:
        Formatted context with file paths, match reasons and file content
    """
    try:
        return service.render_context(query, current_file=current_file, max_tokens=max_tokens)
    except Exception as e:
        logger.warning("Context search failed: %s", e)
        return f"Context search error: {e}"


def create_context_search_tool(service: IndexService) -> BaseTool:
    """LangChain tool answering context queries against service."""

    @tool("context_search", args_schema=ContextSearchInput)
    def context_search(query: str, current_file: Optional[str] = None, max_tokens: int = 4000) -> str:
        """Find the code most relevant to a request: matching symbols, the active file,
        semantically similar files, its imports and importers, and recently edited files.

        Use this before answering questions about or changing unfamiliar code.
        """
        return perform_context_search(service, query, current_file=current_file, max_tokens=max_tokens)

    return context_search
