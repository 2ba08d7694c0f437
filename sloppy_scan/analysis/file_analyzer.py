"""Read a file once and extract what chunking needs from it."""

import logging
import os
import posixpath
import re
from typing import List, Optional

from ..models import FileRecord
from ..optimization.token_budget import estimate_tokens

logger = logging.getLogger(__name__)

_JS_EXTS = {".ts", ".tsx", ".js", ".jsx", ".vue", ".svelte"}
_JVM_EXTS = {".java", ".kt", ".scala"}

_JS_FROM = re.compile(r"""(?:import|export)\s.*?from\s+['"]([^'"]+)['"]""")
_JS_REQUIRE = re.compile(r"""require\s*\(\s*['"]([^'"]+)['"]\s*\)""")
_PY_FROM = re.compile(r"^from\s+([\w.]+)\s+import", re.MULTILINE)
_PY_IMPORT = re.compile(r"^import\s+([\w.]+)", re.MULTILINE)
_GO_BLOCK = re.compile(r"import\s*\(([\s\S]*?)\)")
_GO_QUOTED = re.compile(r'"([^"]+)"')
_GO_SINGLE = re.compile(r'import\s+"([^"]+)"')
_JVM_IMPORT = re.compile(r"^import\s+([\w.]+)", re.MULTILINE)
_RB_REQUIRE = re.compile(r"""require(?:_relative)?\s+['"]([^'"]+)['"]""")


def file_extension(path: str) -> str:
    """Lower-cased extension with the dot, "" for dotfiles and bare names."""
    return os.path.splitext(path)[1].lower()


def extract_imports(content: str, ext: str) -> List[str]:
    """Raw import references for one file, best effort.

    No existence checks happen here; resolution against the scanned file set
    is the dependency graph's job.
    """
    raw: List[str] = []

    if ext in _JS_EXTS:
        raw.extend(_JS_FROM.findall(content))
        raw.extend(_JS_REQUIRE.findall(content))
    elif ext == ".py":
        raw.extend(_PY_FROM.findall(content))
        raw.extend(_PY_IMPORT.findall(content))
    elif ext == ".go":
        block = _GO_BLOCK.search(content)
        if block:
            raw.extend(_GO_QUOTED.findall(block.group(1)))
        raw.extend(_GO_SINGLE.findall(content))
    elif ext in _JVM_EXTS:
        raw.extend(_JVM_IMPORT.findall(content))
    elif ext == ".rb":
        raw.extend(_RB_REQUIRE.findall(content))

    return raw


def relative_posix_path(full_path: str, cwd: str) -> str:
    return os.path.relpath(full_path, cwd).replace(os.sep, "/")


def analyze_file(full_path: str, cwd: str) -> Optional[FileRecord]:
    """Read a file and build its FileRecord.

    Returns:
        The record, or None when the file cannot be read as UTF-8 text
    """
    try:
        with open(full_path, "r", encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"[ANALYZER] Skipping unreadable file {full_path}: {e}")
        return None

    relative_path = relative_posix_path(full_path, cwd)
    return FileRecord(
        relative_path=relative_path,
        full_path=full_path,
        content=content,
        original_size=len(content),
        tokens=estimate_tokens(content),
        imports=extract_imports(content, file_extension(full_path)),
        directory=posixpath.dirname(relative_path) or ".",
    )


def analyze_files(file_paths: List[str], cwd: str) -> List[FileRecord]:
    records = []
    for path in file_paths:
        record = analyze_file(path, cwd)
        if record is not None:
            records.append(record)
    return records
