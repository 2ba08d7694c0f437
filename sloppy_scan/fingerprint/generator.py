"""Compact per-file fingerprints: signatures, imports and flagged lines.

A fingerprint is usually 80-200 tokens, against thousands for full content,
which lets one request cover many files.
"""

import logging
from typing import List, Optional, Sequence

from ..analysis.file_analyzer import extract_imports, file_extension, relative_posix_path
from ..analysis.hotspots import find_hotspots
from ..analysis.signatures import extract_signatures
from ..models import Fingerprint, Hotspot, Issue, Signature
from ..optimization.token_budget import estimate_tokens

logger = logging.getLogger(__name__)

MAX_IMPORTS = 10
MAX_HOTSPOTS = 8
MAX_LOCAL_ISSUES = 6
PARAMS_CHARS = 60
RETURNS_CHARS = 40
LOCAL_DESCRIPTION_CHARS = 60


def _render_signature(sig: Signature) -> str:
    text = f"L{sig.line}:{sig.name}"
    if sig.params is not None:
        text += f"({sig.params[:PARAMS_CHARS]})"
    if sig.returns:
        text += f"->{sig.returns[:RETURNS_CHARS]}"
    else:
        text += " [NO_RETURN_TYPE]"
    return text


def render_fingerprint_text(
    relative_path: str,
    line_count: int,
    imports: List[str],
    signatures: List[Signature],
    hotspots: List[Hotspot],
    local_issues: Sequence[Issue] = (),
) -> str:
    text = f"=== {relative_path} ({line_count} lines) ===\n"

    if imports:
        text += f"IMPORTS: {', '.join(imports[:MAX_IMPORTS])}"
        if len(imports) > MAX_IMPORTS:
            text += f" +{len(imports) - MAX_IMPORTS} more"
        text += "\n"

    if signatures:
        text += f"DEFS: {', '.join(_render_signature(s) for s in signatures)}\n"

    if hotspots:
        text += "FLAGS:\n"
        for h in hotspots[:MAX_HOTSPOTS]:
            text += f"  L{h.line} [{h.label}]: {h.snippet}\n"
        if len(hotspots) > MAX_HOTSPOTS:
            text += f"  +{len(hotspots) - MAX_HOTSPOTS} more hotspots\n"

    if local_issues:
        text += "ALREADY_CAUGHT_LOCALLY:\n"
        for issue in local_issues[:MAX_LOCAL_ISSUES]:
            text += (
                f"  L{issue.line or '?'}:{issue.type}: "
                f"{issue.description[:LOCAL_DESCRIPTION_CHARS]}\n"
            )
        if len(local_issues) > MAX_LOCAL_ISSUES:
            text += f"  +{len(local_issues) - MAX_LOCAL_ISSUES} more local issues\n"

    return text


def generate_fingerprint(
    file_path: str, cwd: str, local_issues: Optional[Sequence[Issue]] = None
) -> Optional[Fingerprint]:
    """Build the fingerprint of one file.

    Args:
        file_path: Absolute path of the file
        cwd: Workspace root the rendered path is relative to
        local_issues: Issues already found for this file without a model
            call; they are listed so the model does not report them again

    Returns:
        The fingerprint, or None if the file cannot be read
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"[FINGERPRINT] Skipping unreadable file {file_path}: {e}")
        return None

    relative_path = relative_posix_path(file_path, cwd)
    ext = file_extension(file_path)
    line_count = len(content.split("\n"))
    imports = extract_imports(content, ext)
    signatures = extract_signatures(content, ext)
    hotspots = find_hotspots(content, ext)
    known = [i for i in (local_issues or []) if i is not None]

    text = render_fingerprint_text(relative_path, line_count, imports, signatures, hotspots, known)

    return Fingerprint(
        relative_path=relative_path,
        full_path=file_path,
        line_count=line_count,
        ext=ext,
        imports=imports,
        signatures=signatures,
        hotspots=hotspots,
        text=text,
        tokens=estimate_tokens(text),
        local_issue_count=len(known),
    )
