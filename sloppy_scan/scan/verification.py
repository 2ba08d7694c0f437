"""Checks of model findings against the files on disk.

`verify_issues` costs no requests. The model confirmation pass in the runner
uses `build_verification_prompt` and `parse_verdicts` from here.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..models import Issue
from ..utils.json_extractor import extract_json_object

logger = logging.getLogger(__name__)

# Model line numbers are often off by a few lines
DUPLICATE_LINE_WINDOW = 3
CONTENT_LINE_WINDOW = 5

# Region searched around the claimed line for evidence, and shown to the
# verifying model
EVIDENCE_LINE_WINDOW = 15

# Shorter claims are too generic to check
MIN_CLAIM_CHARS = 10
MIN_EVIDENCE_CHARS = 15

_WHITESPACE = re.compile(r"\s+")

_SECRET_ASSIGNMENT = re.compile(
    r"(?:password|passwd|secret|api_key|apikey|auth_token|credential)\s*[=:]\s*['\"][^'\"]{4,}",
    re.IGNORECASE,
)
_RAW_HTML = re.compile(r"\.innerHTML\s*=|dangerouslySetInnerHTML|document\.write\s*\(", re.IGNORECASE)
_SQL_KEYWORD = re.compile(r"\b(?:SELECT|INSERT|UPDATE|DELETE|DROP)\b", re.IGNORECASE)
_INTERPOLATION = re.compile(r"\$\{|%s|\+\s*['\"]|\bf['\"].*\{")
_LOG_CALL = re.compile(r"console\.(?:log|info|debug)|logger\.\w+|\blog\.\w+|\bprint\s*\(", re.IGNORECASE)
_SENSITIVE_NAME = re.compile(r"password|token|secret|credential|api_key|private_key", re.IGNORECASE)
_SHELL_CALL = re.compile(r"\bexec\s*\(|\bspawn\s*\(|\bsystem\s*\(|subprocess", re.IGNORECASE)


@dataclass
class VerificationResult:
    verified: List[Issue] = field(default_factory=list)
    rejected: List[Issue] = field(default_factory=list)
    tokens: int = 0


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text.strip()).lower()


def _duplicates_local(issue: Issue, local_keys: Set[Tuple[str, Optional[int], str]]) -> bool:
    if issue.line is None:
        return (issue.file, None, issue.type) in local_keys
    return any(
        (issue.file, issue.line + offset, issue.type) in local_keys
        for offset in range(-DUPLICATE_LINE_WINDOW, DUPLICATE_LINE_WINDOW + 1)
    )


def _resolve_in_workspace(root: Path, relative: str) -> Optional[Path]:
    try:
        candidate = (root / relative).resolve()
        candidate.relative_to(root)
    except (OSError, ValueError):
        return None
    return candidate if candidate.is_file() else None


def _read_lines(path: Path) -> Optional[List[str]]:
    try:
        return path.read_text(encoding="utf-8").split("\n")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"[VERIFY] Cannot read {path}: {e}")
        return None


def _locate_claim(lines: List[str], line: int, claim: str) -> Optional[int]:
    """1-based line near `line` whose text matches the claim, if any."""
    start = max(0, line - CONTENT_LINE_WINDOW - 1)
    end = min(len(lines), line + CONTENT_LINE_WINDOW)
    for j in range(start, end):
        actual = _normalize(lines[j])
        if actual and (claim in actual or actual in claim):
            return j + 1
    return None


def _evidence_window(lines: List[str], line: Optional[int]) -> Tuple[int, int]:
    """0-based [start, end) slice of lines around a 1-based line."""
    center = line or 1
    return max(0, center - EVIDENCE_LINE_WINDOW - 1), min(len(lines), center + EVIDENCE_LINE_WINDOW)


def has_security_evidence(issue: Issue, lines: List[str]) -> bool:
    """Whether the file backs a security claim the model could not quote.

    The claim's evidence text is searched near the claimed line, then in the
    whole file. Otherwise the description picks a pattern family (secrets,
    raw HTML, SQL injection, sensitive logging, shell injection) that must
    match near the claimed line. Claims outside those families are rejected.
    """
    start, end = _evidence_window(lines, issue.line)
    region = "\n".join(lines[start:end])

    evidence = (issue.evidence or "").strip()
    if len(evidence) > MIN_EVIDENCE_CHARS:
        wanted = _normalize(evidence)
        if wanted in _normalize(region) or wanted in _normalize("\n".join(lines)):
            return True

    desc = issue.description.lower()

    if any(word in desc for word in ("hardcoded", "password", "secret", "api key", "credential")):
        return bool(_SECRET_ASSIGNMENT.search(region))

    if any(word in desc for word in ("xss", "cross-site", "innerhtml")):
        return bool(_RAW_HTML.search(region))

    if "sql" in desc and "injection" in desc:
        return bool(_SQL_KEYWORD.search(region) and _INTERPOLATION.search(region))

    if "log" in desc and any(word in desc for word in ("sensitive", "password", "token", "secret")):
        return bool(_LOG_CALL.search(region) and _SENSITIVE_NAME.search(region))

    if "command injection" in desc or "shell injection" in desc:
        return bool(_SHELL_CALL.search(region))

    return False


def verify_issues(ai_issues: List[Issue], local_issues: List[Issue], cwd: str) -> VerificationResult:
    """Drop model findings that are duplicates or hallucinations.

    An issue is rejected when it repeats a local finding (same file and type
    within a few lines), names a file that does not exist in the workspace,
    or quotes line content that cannot be found near the claimed line. When
    the quote is found on a nearby line, the issue is moved to that line.
    High and critical security issues whose quote did not confirm them must
    also pass `has_security_evidence`.
    """
    result = VerificationResult()
    root = Path(cwd).resolve()
    local_keys = {(i.file, i.line, i.type) for i in local_issues}
    file_lines: Dict[Path, Optional[List[str]]] = {}

    for issue in ai_issues:
        if _duplicates_local(issue, local_keys):
            result.rejected.append(issue)
            continue

        path = _resolve_in_workspace(root, issue.file)
        if path is None:
            result.rejected.append(issue)
            continue

        if path not in file_lines:
            file_lines[path] = _read_lines(path)
        lines = file_lines[path]

        # Unreadable files pass through unchecked
        if lines is None:
            result.verified.append(issue)
            continue

        content_verified = False
        claim = _normalize(issue.line_content or "")
        if issue.line and len(claim) > MIN_CLAIM_CHARS:
            found = _locate_claim(lines, issue.line, claim)
            if found is None:
                result.rejected.append(issue)
                continue
            content_verified = True
            if found != issue.line:
                issue = issue.model_copy(update={"line": found})

        if (
            not content_verified
            and issue.type == "security"
            and issue.severity in ("high", "critical")
            and not has_security_evidence(issue, lines)
        ):
            result.rejected.append(issue)
            continue

        result.verified.append(issue)

    if result.rejected:
        logger.info(
            f"[VERIFY] {len(result.verified)} verified, {len(result.rejected)} rejected "
            "(duplicates/hallucinations)"
        )
    return result


def code_context(issue: Issue, cwd: str) -> str:
    """Numbered source lines around an issue, or a placeholder."""
    path = _resolve_in_workspace(Path(cwd).resolve(), issue.file)
    lines = _read_lines(path) if path is not None else None
    if lines is None:
        return "[file not readable]"
    start, end = _evidence_window(lines, issue.line)
    return "\n".join(f"{start + j + 1}: {text}" for j, text in enumerate(lines[start:end]))


def build_verification_prompt(batch: Sequence[Issue], cwd: str, rules: str) -> str:
    """User prompt asking a model to confirm each issue of a batch."""
    snippets = []
    for i, issue in enumerate(batch):
        snippets.append(
            f"--- Issue #{i} ---\n"
            f"File: {issue.file}\n"
            f"Line: {issue.line}\n"
            f"Type: {issue.type} ({issue.severity})\n"
            f"Claim: {issue.description}\n"
            f"Actual code:\n{code_context(issue, cwd)}\n"
        )
    return (
        f"{rules}\n"
        + "\n".join(snippets)
        + "\nFor each issue, respond with its index (0-based within this batch), "
        "whether it's real, and a brief reason."
    )


def parse_verdicts(content: str) -> Set[int]:
    """Indices the model confirmed as real.

    Raises:
        ValueError: If the reply has no results list
    """
    data = extract_json_object(content)
    results = data.get("results")
    if not isinstance(results, list):
        raise ValueError("Verification reply has no results list")

    real = set()
    for item in results:
        if not isinstance(item, dict) or item.get("is_real") is not True:
            continue
        index = item.get("index")
        if isinstance(index, bool) or not isinstance(index, (int, float)):
            continue
        real.add(int(index))
    return real
