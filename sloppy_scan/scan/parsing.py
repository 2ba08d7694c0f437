"""Tolerant parsing of model replies into issues."""

import logging
from typing import Any, List

from ..models import Issue
from ..utils.json_extractor import extract_json_object

logger = logging.getLogger(__name__)


def issue_from_raw(raw: Any) -> Issue:
    """Coerce one raw item of the "issues" array; unknown values get defaults."""
    return Issue.model_validate({**raw, "source": "ai"})


def parse_issues(content: str) -> List[Issue]:
    """Parse a reply into issues.

    Never raises: unparseable replies and non-object items are dropped with a
    warning, so one bad reply only costs its own chunk.
    """
    try:
        data = extract_json_object(content)
    except ValueError as e:
        logger.warning(f"[PARSE] Failed to parse scan response: {e}")
        return []

    raw_issues = data.get("issues") or []
    if not isinstance(raw_issues, list):
        logger.warning(f"[PARSE] 'issues' is {type(raw_issues).__name__}, expected a list")
        return []

    issues = []
    for raw in raw_issues:
        if not isinstance(raw, dict):
            continue
        issues.append(issue_from_raw(raw))
    return issues
