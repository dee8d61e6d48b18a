"""Render assembled context for a prompt."""

from typing import Sequence

from ..models import ContextEntry
from .budget import CHARS_PER_TOKEN
from .search import language_for_path


def format_context(entries: Sequence[ContextEntry], max_tokens: int = 8000) -> str:
    """Format context entries as fenced code sections.

    Args:
        entries: Ranked entries, highest score first
        max_tokens: Approximate max tokens (using ~4 chars per token)

    Returns:
        Formatted string suitable for agent prompts
    """
    if not entries:
        return "No relevant context found."

    lines = [f"Found {len(entries)} relevant files:\n"]

    total_chars = 0
    max_chars = max_tokens * CHARS_PER_TOKEN

    for i, entry in enumerate(entries, 1):
        symbol_str = f" [{', '.join(entry.relevant_symbols)}]" if entry.relevant_symbols else ""
        header = f"\n--- {i}. {entry.path}{symbol_str} ({entry.reason}, score {entry.score:.2f}) ---"
        body = f"```{language_for_path(entry.path)}\n{entry.content}\n```"

        if total_chars + len(header) + len(body) > max_chars:
            lines.append(f"\n... ({len(entries) - i + 1} more files truncated)")
            break

        lines.append(header)
        lines.append(body)
        total_chars += len(header) + len(body)

    return "\n".join(lines)
