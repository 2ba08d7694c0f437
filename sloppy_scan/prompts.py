"""Prompt text and response schema shared by every scan request."""

from typing import Any, Dict, List, Optional

SYSTEM_PROMPT = (
    "You are a code quality analyzer. Report only real issues with exact file "
    "paths and line numbers. Include the evidence field with the exact code "
    "pattern you saw, and line_content with the actual line text."
)

ISSUES_SCHEMA: Dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "scan_results",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "issues": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {
                                "type": "string",
                                "enum": [
                                    "security",
                                    "bugs",
                                    "types",
                                    "lint",
                                    "dead-code",
                                    "stubs",
                                    "duplicates",
                                    "coverage",
                                ],
                            },
                            "severity": {
                                "type": "string",
                                "enum": ["critical", "high", "medium", "low"],
                            },
                            "file": {"type": "string"},
                            "line": {"type": "number"},
                            "description": {"type": "string"},
                            "evidence": {"type": "string"},
                            "line_content": {"type": "string"},
                        },
                        "required": [
                            "type",
                            "severity",
                            "file",
                            "line",
                            "description",
                            "evidence",
                            "line_content",
                        ],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["issues"],
            "additionalProperties": False,
        },
    },
}

CHUNK_GUIDE = """ISSUE CATEGORIES:
  security    - SQL injection, XSS, hardcoded secrets, auth bypass, path traversal
  bugs        - null derefs, off-by-one, race conditions, wrong logic, unhandled errors
  types       - type mismatches, unsafe casts, missing generics, any-typed values
  lint        - unused vars/imports, inconsistent naming, missing returns, unreachable code
  dead-code   - functions/classes/exports never called or imported
  stubs       - TODO, FIXME, HACK, placeholder implementations, empty catch blocks
  duplicates  - copy-pasted logic that should be a shared function
  coverage    - public functions with zero test coverage, untested error paths

SEVERITY GUIDE:
  critical - exploitable in production (data loss, auth bypass, RCE)
  high     - will cause bugs in normal usage
  medium   - code smell, maintainability risk
  low      - style nit, minor improvement

RULES:
- Only report REAL issues. No false positives. No style preferences.
- Be specific: exact file, exact line number, exact description.
- If a file looks clean, return an empty issues array."""

FINGERPRINT_INTRO = """Analyze these {file_count} file fingerprints for code quality issues.
Each fingerprint shows: file path, line count, imports, function/class signatures (with line numbers and return types), and flagged hotspot lines.

Signature annotations:
- L42:funcName(params)->ReturnType  - function at line 42 WITH a return type
- L42:funcName(params) [NO_RETURN_TYPE]  - function at line 42 WITHOUT a return type
"""

LOCALLY_CAUGHT_NOTE = """
IMPORTANT: Some files have an ALREADY_CAUGHT_LOCALLY section listing issues that our static analyzer already detected. Do NOT re-report these issues. Focus only on NEW issues the static analyzer cannot catch.
"""

FINGERPRINT_GUIDE = """
Focus your analysis on issues that require REASONING - things a static analyzer cannot catch:
- SECURITY: Injection patterns, auth bypass, data exposure, unsafe data flows between functions.
- BUGS: Logic errors, race conditions, incorrect error handling, edge cases.
- DEAD-CODE: Functions/classes defined but never referenced by other files in the import graph.
- DUPLICATES: Similar function signatures across different files that should be shared.

DO NOT report these (already handled by local static analysis):
- Missing return types, console.log/debugger/print, any-type usage, unused imports, TODO/FIXME markers

CRITICAL - avoid false positives:
- ORM query builders, parameterized queries, and prepared statements are NOT SQL injection. Only flag raw SQL strings with unsanitized user input directly interpolated.
- String interpolation in log messages, error messages, or print statements is NOT SQL injection. SQL injection requires the string to reach a database query.
- Decorated route handlers or annotated endpoints where the framework infers the return type are NOT missing return types.
- Config defaults, environment variable fallbacks, and placeholder values are NOT hardcoded secrets.
- Input validation models or schemas that accept sensitive fields are normal. Only flag secrets appearing unmasked in responses or logs.
- Abstract methods, interface implementations, or overrides may intentionally omit types to match a parent signature.
- Re-export modules and package init files are NOT dead code.
- Test files: mock data, fixtures, assertions, and test helpers are NOT real issues. Only flag actual bugs in test logic.
- Catching specific exception types and ignoring them is intentional. Only flag broad catch-all exception handlers.

RULES:
- Only report REAL issues clearly visible from the fingerprints. No speculation.
- Be specific: exact file, use the exact line number from the L-prefixed signatures/flags.
- Provide the evidence field with the exact code pattern you observed.
- If everything looks clean, return an empty issues array. Prefer returning fewer, high-confidence issues over many uncertain ones.

"""


def build_messages(
    user_prompt: str, custom_prompt: Optional[str] = None
) -> List[Dict[str, str]]:
    """System + user message pair for one scan request."""
    system = SYSTEM_PROMPT
    if custom_prompt:
        system = f"{SYSTEM_PROMPT}\n\n{custom_prompt}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user_prompt},
    ]


VERIFICATION_SYSTEM_PROMPT = (
    "You verify whether reported code issues are real by examining actual "
    "source code. Be strict: reject anything uncertain."
)

VERIFICATION_RULES = """You are verifying code issues. For each issue, the ACTUAL source code is shown. Determine if each is REAL or FALSE POSITIVE.

Key rules:
- A framework decorator providing the return type (FastAPI response_model=, Flask, Django) means it is NOT missing a return type.
- f-strings or template literals in logger/print/error calls are NOT SQL injection.
- Config defaults, placeholder values, or env var fallbacks are NOT hardcoded secrets.
- Input models/schemas accepting secrets is normal. Only flag if secrets appear in unmasked output.
- When in doubt, mark FALSE POSITIVE. We prefer missing a real issue over reporting a fake one.
"""

VERIFICATION_SCHEMA: Dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "verification_results",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "results": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "index": {"type": "number"},
                            "is_real": {"type": "boolean"},
                            "reason": {"type": "string"},
                        },
                        "required": ["index", "is_real", "reason"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["results"],
            "additionalProperties": False,
        },
    },
}


def build_verification_messages(user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": VERIFICATION_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
