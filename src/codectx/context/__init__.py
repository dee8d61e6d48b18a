"""Context assembly: ranking, budgeting and rendering of file context."""

from .assembler import ContextAssembler
from .budget import apply_token_limit, estimate_tokens, smart_chunk
from .formatting import format_context
from .search import (
    get_important_files,
    get_project_structure_files,
    hybrid_search,
    keyword_matches,
    language_for_path,
)

__all__ = [
    "ContextAssembler",
    "apply_token_limit",
    "estimate_tokens",
    "format_context",
    "get_important_files",
    "get_project_structure_files",
    "hybrid_search",
    "keyword_matches",
    "language_for_path",
    "smart_chunk",
]
