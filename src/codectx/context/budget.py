"""Token budgeting and symbol-aware chunking of context entries.

Token counts are estimated as ceil(chars / 4). Once the budget runs out, the
first entry that does not fit is shrunk (chunked to its relevant symbols, or
truncated) and nothing after it is kept.
"""

import math
import re
from dataclasses import replace
from typing import Iterable, Optional

from ..models import ContextEntry, Symbol

CHARS_PER_TOKEN = 4
MIN_PARTIAL_CHARS = 500
TRUNCATED_MARKER = "\n\n[... truncated]"
CHUNKED_MARKER = "\n\n[... smart chunked]"

_COMMENT_PREFIXES = ("/**", "/*", "*", "//")


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def apply_token_limit(entries: Iterable[ContextEntry], max_tokens: int) -> list[ContextEntry]:
    """Keep entries in order until max_tokens is reached.

    The entry that overflows is replaced by a symbol chunk (when it has
    relevant symbols and the chunk is at least MIN_PARTIAL_CHARS long) or by
    its truncated content (when more than MIN_PARTIAL_CHARS remain), then
    iteration stops. The estimated total never exceeds max_tokens.
    """
    total = 0
    result = []
    for entry in entries:
        tokens = estimate_tokens(entry.content)
        if total + tokens <= max_tokens:
            result.append(entry)
            total += tokens
            continue

        remaining_chars = (max_tokens - total) * CHARS_PER_TOKEN
        if entry.relevant_symbols:
            chunk = smart_chunk(entry.content, entry.relevant_symbols, remaining_chars, entry.symbols)
            if len(chunk) >= MIN_PARTIAL_CHARS:
                result.append(replace(entry, content=chunk, reason=entry.reason + " (chunked)"))
                break

        if remaining_chars > MIN_PARTIAL_CHARS:
            body = entry.content[: remaining_chars - len(TRUNCATED_MARKER)]
            result.append(replace(entry, content=body + TRUNCATED_MARKER, reason=entry.reason + " (truncated)"))
        break

    return result


def _is_comment_line(line: str) -> bool:
    return line.strip().startswith(_COMMENT_PREFIXES)


def _extend_over_comments(lines: list[str], start: int) -> int:
    while start > 0 and _is_comment_line(lines[start - 1]):
        start -= 1
    return start


def _scan_for_block(lines: list[str], name: str) -> Optional[tuple[int, int]]:
    """Find a declaration of name by keyword, ending where its braces balance."""
    declaration = re.compile(
        r"\b(?:function\*?|class|interface|const|let|var|type|enum|export)\s+" + re.escape(name) + r"\b"
    )
    for i, line in enumerate(lines):
        if not declaration.search(line):
            continue
        depth = 0
        opened = False
        for j in range(i, len(lines)):
            depth += lines[j].count("{") - lines[j].count("}")
            opened = opened or "{" in lines[j]
            if opened and depth <= 0:
                return _extend_over_comments(lines, i), j
            if not opened and ";" in lines[j]:
                return _extend_over_comments(lines, i), j
        return _extend_over_comments(lines, i), len(lines) - 1
    return None


def _symbol_span(lines: list[str], name: str, symbols: Iterable[Symbol]) -> Optional[tuple[int, int]]:
    for symbol in symbols:
        if symbol.name == name and symbol.end_line > 0 and symbol.line <= len(lines):
            start = _extend_over_comments(lines, symbol.line - 1)
            return start, min(symbol.end_line, len(lines)) - 1
    return _scan_for_block(lines, name)


def smart_chunk(
    content: str,
    relevant_symbols: list[str],
    max_chars: int,
    symbols: Iterable[Symbol] = (),
) -> str:
    """Extract only the declarations of relevant_symbols, within max_chars.

    Uses extracted symbol spans when available and falls back to a keyword
    and brace-balance scan. Returns "" when no block fits.
    """
    budget = max_chars - len(CHUNKED_MARKER)
    if budget <= 0:
        return ""

    symbols = list(symbols)
    lines = content.split("\n")
    blocks = []
    taken: list[tuple[int, int]] = []
    used = 0

    for name in relevant_symbols:
        span = _symbol_span(lines, name, symbols)
        if span is None:
            continue
        start, end = span
        if any(s <= start and end <= e for s, e in taken):
            continue
        block = "\n".join(lines[start:end + 1])
        cost = len(block) + (2 if blocks else 0)
        if used + cost > budget:
            continue
        blocks.append(block)
        taken.append(span)
        used += cost

    if not blocks:
        return ""
    return "\n\n".join(blocks) + CHUNKED_MARKER
