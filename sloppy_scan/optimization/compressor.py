"""Progressive content compression for files that exceed a chunk budget.

Levels are tried in order and the first result that fits wins:

    0. unchanged
    1. comments stripped, runs of blank lines collapsed
    2. declarations kept with a few body lines, the rest collapsed
    3. hard truncation with a size marker

The result never exceeds the requested size.
"""

import dataclasses
import logging
import re
from typing import List, Tuple

from ..analysis.signatures import declaration_pattern
from ..models import FileRecord
from .token_budget import estimate_tokens

logger = logging.getLogger(__name__)

SIGNATURE_BODY_LINES = 3

_HASH_COMMENT_EXTS = {".py", ".rb", ".sh", ".yml", ".yaml"}

_TRIPLE_DOUBLE = re.compile(r'"""[\s\S]*?"""')
_TRIPLE_SINGLE = re.compile(r"'''[\s\S]*?'''")
_HASH_LINE_COMMENT = re.compile(r"^(\s*)#(?!!)(.*)$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_SLASH_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_BLANK_RUNS = re.compile(r"\n{3,}")


def strip_comments(content: str, ext: str) -> str:
    """Level 1: drop comments and docstrings, keep shebangs."""
    if ext in _HASH_COMMENT_EXTS:
        out = _TRIPLE_DOUBLE.sub('""""""', content)
        out = _TRIPLE_SINGLE.sub("''''''", out)
        out = _HASH_LINE_COMMENT.sub("", out)
    else:
        out = _BLOCK_COMMENT.sub("", content)
        out = _SLASH_LINE_COMMENT.sub("", out)
    return _BLANK_RUNS.sub("\n\n", out)


def _collapsed_marker(base_indent: int, count: int) -> str:
    return f"{' ' * (base_indent + 2)}// ... {count} lines collapsed"


def collapse_bodies(content: str, ext: str) -> str:
    """Level 2: keep each declaration plus SIGNATURE_BODY_LINES body lines.

    A body ends at the first non-blank line indented no deeper than its
    declaration. Nested declarations inside a body are treated as body lines.
    """
    decl = declaration_pattern(ext)
    result: List[str] = []
    in_body = False
    base_indent = 0
    body_lines = 0
    skipped = 0

    for line in content.split("\n"):
        match = decl.match(line)

        if match and not in_body:
            if skipped:
                result.append(_collapsed_marker(base_indent, skipped))
                skipped = 0
            in_body = True
            base_indent = len(match.group(1))
            body_lines = 0
            result.append(line)
            continue

        if not in_body:
            result.append(line)
            continue

        stripped = line.lstrip()
        indent = len(line) - len(stripped) if stripped else base_indent + 1
        if stripped and indent <= base_indent:
            if skipped:
                result.append(_collapsed_marker(base_indent, skipped))
                skipped = 0
            in_body = False
            result.append(line)
            continue

        body_lines += 1
        if body_lines <= SIGNATURE_BODY_LINES:
            result.append(line)
        else:
            skipped += 1

    if skipped:
        result.append(_collapsed_marker(base_indent, skipped))

    return "\n".join(result)


def truncation_marker(original_length: int) -> str:
    return f"\n// ... truncated ({round(original_length / 1024)}KB original)\n"


def compress_file(content: str, ext: str, max_chars: int) -> Tuple[str, bool]:
    """Shrink content to at most max_chars characters.

    Args:
        content: Original file text
        ext: Extension with dot, selects comment syntax and declaration pattern
        max_chars: Size the result must fit in

    Returns:
        (content, compressed) where compressed is False only for level 0
    """
    if len(content) <= max_chars:
        return content, False

    compressed = strip_comments(content, ext)
    if len(compressed) <= max_chars:
        return compressed, True

    compressed = collapse_bodies(compressed, ext)
    if len(compressed) <= max_chars:
        return compressed, True

    marker = truncation_marker(len(content))
    if max_chars <= len(marker):
        # No room for content at all, only (part of) the marker
        return marker[: max(max_chars, 0)], True
    return compressed[: max_chars - len(marker)] + marker, True


def compress_record(record: FileRecord, max_chars: int) -> FileRecord:
    """Return the record as it must be sent under max_chars.

    The input record is untouched; a fitting record is returned as-is.
    """
    content, compressed = compress_file(record.content, record.ext, max_chars)
    if not compressed:
        return record
    logger.debug(
        f"[COMPRESSOR] {record.relative_path}: {len(record.content)} -> {len(content)} chars"
    )
    return dataclasses.replace(
        record,
        content=content,
        tokens=estimate_tokens(content),
        compressed=True,
    )
