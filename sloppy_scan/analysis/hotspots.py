"""Line-level risk patterns surfaced in fingerprints."""

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Pattern, Set, Tuple

from ..models import Hotspot

SNIPPET_CHARS = 80


@dataclass(frozen=True)
class HotspotPattern:
    regex: Pattern[str]
    label: str
    extensions: Optional[FrozenSet[str]] = None  # None means every language

    def applies_to(self, ext: str) -> bool:
        return self.extensions is None or ext in self.extensions


def _p(pattern: str, label: str, *exts: str, flags: int = 0) -> HotspotPattern:
    return HotspotPattern(re.compile(pattern, flags), label, frozenset(exts) if exts else None)


_JS = (".ts", ".tsx", ".js", ".jsx")

HOTSPOT_PATTERNS: List[HotspotPattern] = [
    # Security-sensitive calls
    _p(r"\beval\s*\(", "EVAL"),
    _p(r"\bexec\s*\(", "EXEC"),
    _p(r"\bos\.system\s*\(", "SHELL", ".py"),
    _p(r"\bsubprocess", "SUBPROCESS", ".py"),
    _p(r"\bchild_process", "CHILD_PROC", ".ts", ".js"),
    _p(r"dangerouslySetInnerHTML", "RAW_HTML", ".tsx", ".jsx"),
    _p(r"innerHTML\s*=", "RAW_HTML"),
    # SQL built from strings
    _p(r"f[\"'][^\"']*(?:SELECT|INSERT|UPDATE|DELETE)\b", "SQL_FSTRING", ".py", flags=re.IGNORECASE),
    _p(r"`[^`]*(?:SELECT|INSERT|UPDATE|DELETE)\b[^`]*\$\{", "SQL_TEMPLATE", ".ts", ".js", flags=re.IGNORECASE),
    _p(r"\.raw\s*\(|\.execute\s*\(", "RAW_QUERY"),
    # Swallowed errors
    _p(r"except\s*(?:\w+\s*)?:\s*(?:pass|\.\.\.)\s*$", "EMPTY_EXCEPT", ".py"),
    _p(r"catch\s*\([^)]*\)\s*\{\s*\}", "EMPTY_CATCH"),
    # Secrets
    _p(r"(?:password|secret|api_key|token)\s*[=:]\s*['\"][^'\"]{6,}", "HARDCODED_SECRET"),
    # Stubs
    _p(r"\bTODO\b|\bFIXME\b|\bHACK\b|\bXXX\b", "STUB"),
    _p(r"NotImplementedError|not.implemented", "NOT_IMPL", flags=re.IGNORECASE),
    # Type escapes
    _p(r":\s*any\b|as\s+any\b", "ANY_TYPE", ".ts", ".tsx"),
    _p(r"type:\s*ignore", "TYPE_IGNORE", ".py"),
    # Debug leftovers
    _p(r"console\.log\s*\(", "CONSOLE_LOG", *_JS),
    _p(r"\bprint\s*\((?!.*file\s*=)", "PRINT", ".py"),
    _p(r"\bdebugger\b", "DEBUGGER", *_JS),
]


def find_hotspots(content: str, ext: str) -> List[Hotspot]:
    """All pattern hits in content, one per (line, label), sorted by line."""
    lines = content.split("\n")
    hotspots: List[Hotspot] = []
    seen: Set[Tuple[int, str]] = set()

    for pattern in HOTSPOT_PATTERNS:
        if not pattern.applies_to(ext):
            continue
        for i, line in enumerate(lines):
            key = (i + 1, pattern.label)
            if key in seen or not pattern.regex.search(line):
                continue
            seen.add(key)
            hotspots.append(Hotspot(line=i + 1, label=pattern.label, snippet=line.strip()[:SNIPPET_CHARS]))

    hotspots.sort(key=lambda h: h.line)
    return hotspots
