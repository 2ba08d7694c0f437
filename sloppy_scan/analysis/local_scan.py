"""Pattern-based static checks that cost no model requests.

Findings are reported as `source="local"` issues. The runner feeds them to
fingerprints as already-caught lines and drops model findings that repeat
them.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Pattern, Set

from ..models import Issue, IssueType, Severity
from .file_analyzer import relative_posix_path

logger = logging.getLogger(__name__)

STUB_DESCRIPTION_CHARS = 100

# How far a multi-line parameter list is followed
MAX_PARAM_LINES = 30

_COMMENT_PREFIXES = ("//", "#", "*")

_JS = (".ts", ".tsx", ".js", ".jsx")
_TS = (".ts", ".tsx")


@dataclass(frozen=True)
class LocalRule:
    regex: Pattern[str]
    type: IssueType
    severity: Severity
    description: str
    extensions: Optional[FrozenSet[str]] = None  # None means every language

    def applies_to(self, ext: str) -> bool:
        return self.extensions is None or ext in self.extensions


def _rule(
    pattern: str, issue_type: IssueType, severity: Severity, description: str, *exts: str, flags: int = 0
) -> LocalRule:
    return LocalRule(re.compile(pattern, flags), issue_type, severity, description, frozenset(exts) if exts else None)


LOCAL_RULES: List[LocalRule] = [
    # Hardcoded secrets
    _rule(
        r"(?:password|passwd|secret|api_key|apikey|auth_token)\s*[=:]\s*['\"][^'\"]{8,}['\"]",
        "security", "critical", "Hardcoded secret or password", flags=re.IGNORECASE,
    ),
    _rule(
        r"['\"](?:sk[-_]|pk[-_]|key[-_]|ghp_|gho_|ghs_|github_pat_|glpat-|xox[bpsar]-|AKIA)[A-Za-z0-9_\-]{16,}['\"]",
        "security", "critical", "Hardcoded API key or token",
    ),
    # Dangerous calls
    _rule(
        r"\beval\s*\([^)]*(?:req|request|input|user|data|param|query|body)",
        "security", "critical", "eval() called on user-controlled input", flags=re.IGNORECASE,
    ),
    _rule(
        r"\bexec\s*\([^)]*(?:req|request|input|user|data|param|query|body)",
        "security", "critical", "exec() called on user-controlled input", ".py", flags=re.IGNORECASE,
    ),
    _rule(
        r"\bdangerouslySetInnerHTML\b",
        "security", "high", "dangerouslySetInnerHTML usage, verify input is sanitized", *_JS,
    ),
    _rule(
        r"\bos\.system\s*\(",
        "security", "high", "os.system() is vulnerable to shell injection, use subprocess with shell=False", ".py",
    ),
    # SQL built from strings
    _rule(
        r"f[\"'][^\"']*?(?:SELECT|INSERT|UPDATE|DELETE|DROP)\b[^\"']*?\{",
        "security", "critical", "Possible SQL injection via f-string interpolation", ".py", flags=re.IGNORECASE,
    ),
    _rule(
        r"`[^`]*(?:SELECT|INSERT|UPDATE|DELETE|DROP)\b[^`]*\$\{",
        "security", "critical", "Possible SQL injection via template literal interpolation", *_JS,
        flags=re.IGNORECASE,
    ),
    _rule(
        r"[\"']\s*\+\s*\w+\s*\+\s*[\"'].*(?:SELECT|INSERT|UPDATE|DELETE|DROP)",
        "security", "high", "Possible SQL injection via string concatenation", flags=re.IGNORECASE,
    ),
    # Stubs
    _rule(r"\b(?:TODO|FIXME|HACK|XXX)\b[:\s]*.{0,80}", "stubs", "medium", "TODO/FIXME marker"),
    _rule(r"raise\s+NotImplementedError", "stubs", "medium", "NotImplementedError, stub implementation", ".py"),
    _rule(
        r"throw\s+new\s+Error\s*\(\s*['\"]not\s+implemented",
        "stubs", "medium", "Stub: throws \"not implemented\"", *_JS, flags=re.IGNORECASE,
    ),
    # Swallowed errors
    _rule(
        r"except\s*(?:(?:Exception|BaseException)(?:\s+as\s+\w+)?\s*)?:\s*(?:pass|\.\.\.)\s*$",
        "bugs", "high", "Empty except clause silently swallows errors", ".py", flags=re.MULTILINE,
    ),
    _rule(
        r"catch\s*\([^)]*\)\s*\{\s*\}",
        "bugs", "high", "Empty catch block silently swallows errors", *_JS, ".java", ".kt",
    ),
    # Debug leftovers
    _rule(r"\bconsole\.log\s*\(", "lint", "low", "console.log() left in code", *_JS),
    _rule(r"\bdebugger\b", "lint", "medium", "debugger statement left in code", *_JS),
    # Type escapes
    _rule(r":\s*any\b", "types", "medium", "Explicit `any` type, consider using a specific type", *_TS),
    _rule(r"\bas\s+any\b", "types", "medium", "Unsafe cast to `any`, consider using a specific type", *_TS),
]


@dataclass
class LocalScanResult:
    issues: List[Issue] = field(default_factory=list)
    flagged_files: Set[str] = field(default_factory=set)


def _line_of(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


def _local_issue(
    issue_type: IssueType, severity: Severity, file: str, line: int, description: str
) -> Issue:
    return Issue(type=issue_type, severity=severity, file=file, line=line, description=description, source="local")


_TS_FUNCTION = re.compile(r"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s+(\w+)\s*(?:<[^>]*>)?\s*\(")
_TS_CONST_ARROW = re.compile(r"^(?:export\s+)?const\s+(\w+)\s*(:\s*[^=]+?)?\s*=\s*(?:async\s*)?\(")


def _closing_paren_line(lines: List[str], start: int) -> Optional[int]:
    depth = 0
    for j in range(start, min(start + MAX_PARAM_LINES, len(lines))):
        for ch in lines[j]:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    return j
    return None


def detect_missing_return_types_ts(content: str, relative_path: str) -> List[Issue]:
    """TS function declarations and const arrow functions without a return type.

    Declaration files, constructors and consts whose variable carries a type
    annotation are skipped.
    """
    if relative_path.endswith(".d.ts"):
        return []

    lines = content.split("\n")
    issues: List[Issue] = []

    for i, line in enumerate(lines):
        trimmed = line.lstrip()
        if trimmed.startswith(("//", "*", "/*")):
            continue

        is_arrow = False
        match = _TS_FUNCTION.match(trimmed)
        if match:
            name = match.group(1)
        else:
            match = _TS_CONST_ARROW.match(trimmed)
            if not match:
                continue
            annotation = match.group(2)
            if annotation and len(annotation.strip()) > 1:
                continue
            name = match.group(1)
            is_arrow = True

        if name == "constructor":
            continue

        close = _closing_paren_line(lines, i)
        if close is None:
            continue

        after = lines[close][lines[close].rfind(")") + 1 :]
        for j in range(close + 1, min(close + 3, len(lines))):
            after += " " + lines[j].strip()

        if is_arrow:
            # `(x as Foo).bar` is a grouping, not a parameter list
            if "=>" not in after:
                continue
            has_return_type = bool(re.match(r"\s*:\s*\S", after)) and after.find(":") < after.find("=>")
        else:
            has_return_type = bool(re.match(r"\s*:", after))

        if not has_return_type:
            issues.append(
                _local_issue(
                    "types", "medium", relative_path, i + 1,
                    f"Function '{name}' is missing an explicit return type annotation",
                )
            )

    return issues


_JS_NAMED_IMPORT = re.compile(r"^import\s+(?:type\s+)?\{([^}]+)\}\s+from\s+['\"][^'\"]+['\"]", re.MULTILINE)
_JS_DEFAULT_IMPORT = re.compile(r"^import\s+(\w+)\s+from\s+['\"][^'\"]+['\"]", re.MULTILINE)
_PY_IMPORT = re.compile(r"^import\s+([\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)\s*$", re.MULTILINE)
_PY_FROM_IMPORT = re.compile(r"^from\s+([\w.]+)\s+import\s+([\w \t,]+?)\s*$", re.MULTILINE)


def _bound_name(entry: str) -> str:
    """Name an import entry binds: `a as b` binds b, `a.b` binds a."""
    parts = re.split(r"\s+as\s+", entry.strip())
    return parts[-1].strip() if len(parts) > 1 else parts[0].strip().split(".")[0]


def _used_once(content: str, name: str) -> bool:
    return len(re.findall(rf"\b{re.escape(name)}\b", content)) <= 1


def _unused(content: str, relative_path: str, line: int, names: List[str]) -> List[Issue]:
    return [
        _local_issue("lint", "low", relative_path, line, f"Unused import: '{name}'")
        for name in names
        if len(name) >= 2 and _used_once(content, name)
    ]


def detect_unused_imports(content: str, relative_path: str, ext: str) -> List[Issue]:
    """Imported names that never appear again in the file.

    Conservative: React (implicit in JSX), namespace imports, star imports,
    `__future__` and package `__init__.py` re-exports are never flagged.
    """
    issues: List[Issue] = []

    if ext in _JS:
        for m in _JS_NAMED_IMPORT.finditer(content):
            names = [_bound_name(n) for n in m.group(1).split(",") if n.strip()]
            issues.extend(_unused(content, relative_path, _line_of(content, m.start()), names))
        for m in _JS_DEFAULT_IMPORT.finditer(content):
            if m.group(1) == "React":
                continue
            issues.extend(_unused(content, relative_path, _line_of(content, m.start()), [m.group(1)]))

    elif ext == ".py" and not relative_path.endswith("__init__.py"):
        for m in _PY_IMPORT.finditer(content):
            names = [_bound_name(n) for n in m.group(1).split(",")]
            issues.extend(_unused(content, relative_path, _line_of(content, m.start()), names))
        for m in _PY_FROM_IMPORT.finditer(content):
            if m.group(1) == "__future__" or "*" in m.group(2):
                continue
            names = [_bound_name(n) for n in m.group(2).split(",") if n.strip()]
            issues.extend(_unused(content, relative_path, _line_of(content, m.start()), names))

    return issues


def scan_content(content: str, relative_path: str, ext: str) -> List[Issue]:
    """All local findings for one file's text."""
    lines = content.split("\n")
    issues: List[Issue] = []

    for rule in LOCAL_RULES:
        if not rule.applies_to(ext):
            continue
        for match in rule.regex.finditer(content):
            line = _line_of(content, match.start())
            if lines[line - 1].lstrip().startswith(_COMMENT_PREFIXES):
                continue
            description = rule.description
            if rule.type == "stubs":
                description = match.group(0).strip()[:STUB_DESCRIPTION_CHARS]
            issues.append(_local_issue(rule.type, rule.severity, relative_path, line, description))

    if ext in _TS:
        issues.extend(detect_missing_return_types_ts(content, relative_path))
    issues.extend(detect_unused_imports(content, relative_path, ext))
    return issues


def scan_file(file_path: str, cwd: str) -> List[Issue]:
    """Local findings for one file; unreadable files yield none."""
    try:
        with open(file_path, encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"[LOCAL] Skipping {file_path}: {e}")
        return []

    return scan_content(content, relative_posix_path(file_path, cwd), os.path.splitext(file_path)[1].lower())


def scan_files(file_paths: List[str], cwd: str) -> LocalScanResult:
    """Local findings for many files plus the set of files with any finding."""
    result = LocalScanResult()
    for path in file_paths:
        issues = scan_file(path, cwd)
        if issues:
            result.issues.extend(issues)
            result.flagged_files.add(issues[0].file)

    if result.issues:
        by_type = {}
        for issue in result.issues:
            by_type[issue.type] = by_type.get(issue.type, 0) + 1
        breakdown = ", ".join(f"{t}({n})" for t, n in sorted(by_type.items(), key=lambda kv: -kv[1]))
        logger.info(
            f"[LOCAL] {len(result.issues)} issues in {len(result.flagged_files)} files: {breakdown}"
        )
    else:
        logger.info("[LOCAL] No local issues found")
    return result
