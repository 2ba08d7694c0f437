"""Pattern-based signature extraction, one pluggable matcher per language.

Matchers are line-oriented regexes, not parsers: they find declarations that
fit on one line and make no promise about semantic accuracy. New languages
are added with `register_matcher` without touching the compressor or the
fingerprinter.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Pattern

from ..models import Signature

LineMatcher = Callable[[str, int], Optional[Signature]]


@dataclass(frozen=True)
class LanguageMatcher:
    """Signature support for one language.

    Attributes:
        declaration: Matches a line that opens a declaration body; group 1
            must capture the leading indentation. Used by the compressor.
        match_line: Turns one left-trimmed line (and its 1-based number)
            into a Signature, or returns None.
    """

    declaration: Pattern[str]
    match_line: LineMatcher


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if value is not None else None


def _strip_or_none(value: Optional[str]) -> Optional[str]:
    value = _strip(value)
    return value or None


# Python

_PY_DECL = re.compile(r"^(\s*)(def |class |async def )")
_PY_FN = re.compile(r"^(async\s+)?def\s+(\w+)\s*\(([^)]*)\)(?:\s*->\s*(.+?))?:")
_PY_CLASS = re.compile(r"^class\s+(\w+)(?:\(([^)]*)\))?:")


def _match_python(trimmed: str, line_no: int) -> Optional[Signature]:
    m = _PY_FN.search(trimmed)
    if m:
        return Signature("fn", m.group(2), line_no, _strip(m.group(3)), _strip(m.group(4)))
    m = _PY_CLASS.search(trimmed)
    if m:
        return Signature("class", m.group(1), line_no, _strip(m.group(2)))
    return None


# TypeScript / JavaScript

_C_LIKE_DECL = re.compile(
    r"^(\s*)(function |class |const \w+\s*=\s*(?:async\s*)?\("
    r"|export (?:default )?(?:function|class|const|async)|interface |type \w+\s*=)"
)
_TS_FN = re.compile(
    r"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s+(\w+)\s*(?:<[^>]*>)?"
    r"\s*\(([^)]*)\)\s*(?::\s*([^{]+?))?(?:\s*\{|$)"
)
_TS_CLASS = re.compile(r"^(?:export\s+)?class\s+(\w+)")
_TS_ARROW = re.compile(
    r"^(?:export\s+)?const\s+(\w+)\s*(?::\s*([^=]+?))?\s*=\s*(?:async\s*)?"
    r"\(([^)]*)\)\s*(?::\s*([^=>{]+?))?(?:\s*=>|$)"
)
# Multi-line arrow functions: parameters start on a later line
_TS_ARROW_OPEN = re.compile(
    r"^(?:export\s+)?const\s+(\w+)\s*(?::\s*([^=]+?))?\s*=\s*(?:async\s*)?\("
)
_TS_TYPE = re.compile(r"^(?:export\s+)?(?:interface|type)\s+(\w+)")


def _match_typescript(trimmed: str, line_no: int) -> Optional[Signature]:
    m = _TS_FN.search(trimmed)
    if m:
        return Signature("fn", m.group(1), line_no, _strip(m.group(2)), _strip(m.group(3)))
    m = _TS_CLASS.search(trimmed)
    if m:
        return Signature("class", m.group(1), line_no)
    m = _TS_ARROW.search(trimmed)
    if m:
        # Return type sits after the params or on the variable annotation
        returns = _strip_or_none(m.group(4)) or _strip(m.group(2))
        return Signature("fn", m.group(1), line_no, _strip(m.group(3)), returns)
    m = _TS_ARROW_OPEN.search(trimmed)
    if m:
        return Signature("fn", m.group(1), line_no, returns=_strip(m.group(2)))
    m = _TS_TYPE.search(trimmed)
    if m:
        return Signature("type", m.group(1), line_no)
    return None


# Go

_GO_FN = re.compile(r"^func\s+(?:\([^)]+\)\s+)?(\w+)\s*\(([^)]*)\)\s*([^{]*)")
_GO_TYPE = re.compile(r"^type\s+(\w+)\s+(?:struct|interface)")


def _match_go(trimmed: str, line_no: int) -> Optional[Signature]:
    m = _GO_FN.search(trimmed)
    if m:
        return Signature("fn", m.group(1), line_no, _strip(m.group(2)), _strip_or_none(m.group(3)))
    m = _GO_TYPE.search(trimmed)
    if m:
        return Signature("type", m.group(1), line_no)
    return None


# Java / Kotlin

_JAVA_METHOD = re.compile(
    r"(?:public|private|protected)\s+(?:static\s+)?(\w[\w<>,\s]*?)\s+(\w+)\s*"
    r"\(([^)]*)\)\s*(?:throws\s+\w+\s*)?[{]"
)
_JAVA_KEYWORDS = {"if", "for", "while", "switch", "catch"}
_KOTLIN_FUN = re.compile(
    r"(?:(?:public|private|internal|override)\s+)?(?:suspend\s+)?fun\s+(\w+)\s*"
    r"\(([^)]*)\)\s*(?::\s*(\S+))?"
)


def _match_jvm(trimmed: str, line_no: int) -> Optional[Signature]:
    m = _JAVA_METHOD.search(trimmed)
    if m and m.group(2) not in _JAVA_KEYWORDS:
        return Signature("fn", m.group(2), line_no, _strip(m.group(3)), _strip(m.group(1)))
    m = _KOTLIN_FUN.search(trimmed)
    if m:
        return Signature("fn", m.group(1), line_no, _strip(m.group(2)), _strip(m.group(3)))
    return None


# Rust

_RS_FN = re.compile(
    r"^(?:pub\s+)?(?:async\s+)?fn\s+(\w+)\s*(?:<[^>]*>)?\s*\(([^)]*)\)\s*"
    r"(?:->\s*([^{]+?))?(?:\s*(?:where\s|{)|$)"
)
_RS_TYPE = re.compile(r"^(?:pub\s+)?(?:struct|enum|trait)\s+(\w+)")


def _match_rust(trimmed: str, line_no: int) -> Optional[Signature]:
    m = _RS_FN.search(trimmed)
    if m:
        return Signature("fn", m.group(1), line_no, _strip(m.group(2)), _strip(m.group(3)))
    m = _RS_TYPE.search(trimmed)
    if m:
        return Signature("type", m.group(1), line_no)
    return None


def _match_nothing(trimmed: str, line_no: int) -> Optional[Signature]:
    return None


_MATCHERS: Dict[str, LanguageMatcher] = {}

# Unknown languages still get C-like body detection for compression
_DEFAULT_MATCHER = LanguageMatcher(_C_LIKE_DECL, _match_nothing)


def register_matcher(extensions: Iterable[str], matcher: LanguageMatcher) -> None:
    """Register (or replace) the matcher for the given file extensions."""
    for ext in extensions:
        _MATCHERS[ext.lower()] = matcher


def get_matcher(language_hint: str) -> LanguageMatcher:
    return _MATCHERS.get(language_hint.lower(), _DEFAULT_MATCHER)


def declaration_pattern(language_hint: str) -> Pattern[str]:
    return get_matcher(language_hint).declaration


def extract_signatures(content: str, language_hint: str) -> List[Signature]:
    """Find declarations in content.

    Args:
        content: File text
        language_hint: File extension including the dot, e.g. ".py"

    Returns:
        Signatures in line order; empty for unsupported languages
    """
    match_line = get_matcher(language_hint).match_line
    signatures: List[Signature] = []
    for i, line in enumerate(content.split("\n")):
        sig = match_line(line.lstrip(), i + 1)
        if sig is not None:
            signatures.append(sig)
    return signatures


register_matcher([".py"], LanguageMatcher(_PY_DECL, _match_python))
register_matcher([".ts", ".tsx", ".js", ".jsx"], LanguageMatcher(_C_LIKE_DECL, _match_typescript))
register_matcher([".go"], LanguageMatcher(_C_LIKE_DECL, _match_go))
register_matcher([".java", ".kt"], LanguageMatcher(_C_LIKE_DECL, _match_jvm))
register_matcher([".rs"], LanguageMatcher(_C_LIKE_DECL, _match_rust))
