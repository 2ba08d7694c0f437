"""Data models shared across the scan pipeline."""

import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

IssueType = Literal[
    "security",
    "bugs",
    "types",
    "lint",
    "dead-code",
    "stubs",
    "duplicates",
    "coverage",
]
Severity = Literal["critical", "high", "medium", "low"]
ScanStrategy = Literal["deep", "fingerprint"]
ScanLevel = Literal["critical", "normal", "flush"]

VALID_ISSUE_TYPES = {
    "security",
    "bugs",
    "types",
    "lint",
    "dead-code",
    "stubs",
    "duplicates",
    "coverage",
}
VALID_SEVERITIES = {"critical", "high", "medium", "low"}


class Issue(BaseModel):
    """A single finding. Model output is coerced rather than rejected."""

    model_config = ConfigDict(frozen=True)

    type: IssueType = "lint"
    severity: Severity = "medium"
    file: str = "unknown"
    line: Optional[int] = None
    description: str = "Unknown issue"
    evidence: Optional[str] = None
    line_content: Optional[str] = None
    source: str = "ai"

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> str:
        return v if isinstance(v, str) and v in VALID_ISSUE_TYPES else "lint"

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, v: Any) -> str:
        return v if isinstance(v, str) and v in VALID_SEVERITIES else "medium"

    @field_validator("file", mode="before")
    @classmethod
    def _coerce_file(cls, v: Any) -> str:
        return v if isinstance(v, str) and v else "unknown"

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, v: Any) -> str:
        return v if isinstance(v, str) and v else "Unknown issue"

    @field_validator("line", mode="before")
    @classmethod
    def _coerce_line(cls, v: Any) -> Optional[int]:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        if isinstance(v, float) and not math.isfinite(v):
            return None
        return int(v)

    @field_validator("evidence", "line_content", mode="before")
    @classmethod
    def _coerce_optional_text(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None

    @property
    def key(self) -> str:
        """Identity used for de-duplication."""
        return f"{self.file}:{self.line}:{self.type}"


@dataclass(frozen=True)
class FileRecord:
    """A file read once for one scan pass.

    Compression never mutates a record; `compress_record` returns a new one.
    """

    relative_path: str
    full_path: str
    content: str
    original_size: int
    tokens: int
    imports: List[str]
    directory: str
    compressed: bool = False

    @property
    def ext(self) -> str:
        return os.path.splitext(self.relative_path)[1].lower()


@dataclass
class Chunk:
    """Budget-bounded group of files sent together in one deep-scan request."""

    files: List[FileRecord]
    total_chars: int
    manifest: str = ""

    @property
    def total_code_tokens(self) -> int:
        return sum(f.tokens for f in self.files)

    @property
    def paths(self) -> List[str]:
        return [f.relative_path for f in self.files]

    @property
    def compressed_count(self) -> int:
        return sum(1 for f in self.files if f.compressed)


@dataclass(frozen=True)
class Signature:
    """A function/class/type declaration found by a signature matcher."""

    kind: str  # 'fn', 'class', 'type'
    name: str
    line: int
    params: Optional[str] = None
    returns: Optional[str] = None


@dataclass(frozen=True)
class Hotspot:
    """A line matching a known risk pattern."""

    line: int
    label: str
    snippet: str  # trimmed line content, max 80 chars


@dataclass(frozen=True)
class Fingerprint:
    """Compact per-file summary used instead of full content."""

    relative_path: str
    full_path: str
    line_count: int
    ext: str
    imports: List[str]
    signatures: List[Signature]
    hotspots: List[Hotspot]
    text: str
    tokens: int
    local_issue_count: int = 0


@dataclass
class FingerprintChunk:
    """Fingerprints packed into one request plus the assembled prompt."""

    fingerprints: List[Fingerprint]
    total_tokens: int
    prompt_text: str

    @property
    def paths(self) -> List[str]:
        return [fp.relative_path for fp in self.fingerprints]


@dataclass
class ChunkOutcome:
    """Result of dispatching one chunk: issues and cost, or the error."""

    paths: List[str] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)
    tokens: int = 0
    model: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ScanResult:
    """Aggregate result of a full scan run."""

    issues: List[Issue]
    tokens: int = 0
    api_calls: int = 0
    cache_hits: int = 0
    files_scanned: int = 0
    failed_chunks: int = 0
    scan_level: Optional[str] = None
    strategy: Optional[str] = None
    rejected: int = 0

    def summary(self) -> Dict[str, Any]:
        return {
            "issues": len(self.issues),
            "tokens": self.tokens,
            "api_calls": self.api_calls,
            "cache_hits": self.cache_hits,
            "files_scanned": self.files_scanned,
            "failed_chunks": self.failed_chunks,
            "scan_level": self.scan_level,
            "strategy": self.strategy,
            "rejected": self.rejected,
        }
