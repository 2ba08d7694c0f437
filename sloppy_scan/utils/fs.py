import os
from pathlib import Path
from typing import List, Set
import logging

logger = logging.getLogger(__name__)

# Source extensions worth scanning
CODE_EXTENSIONS = {
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".py",
    ".rb",
    ".go",
    ".rs",
    ".java",
    ".c",
    ".cpp",
    ".h",
    ".hpp",
    ".cs",
    ".php",
    ".swift",
    ".kt",
    ".scala",
    ".vue",
    ".svelte",
    ".html",
    ".css",
    ".scss",
    ".sql",
    ".sh",
    ".yaml",
    ".yml",
    ".json",
    ".toml",
    ".xml",
    ".dockerfile",
}

# Extension-less files that still contain code
CODE_FILENAMES = {
    "Dockerfile",
    "Makefile",
    "Rakefile",
    "Gemfile",
    "Procfile",
    "Vagrantfile",
    "Jenkinsfile",
    "Brewfile",
}

# Common directories to skip
SKIP_DIRS = {
    "node_modules",
    ".git",
    "dist",
    "build",
    "out",
    ".next",
    "vendor",
    "__pycache__",
    ".venv",
    "venv",
    "target",
    "coverage",
    ".sloppy",
}

# Hidden entries are skipped except these
ALLOWED_HIDDEN = {".github"}


def _should_skip(name: str, extra_skip: Set[str]) -> bool:
    if name.startswith(".") and name not in ALLOWED_HIDDEN:
        return True
    return name in SKIP_DIRS or name in extra_skip


def _is_code_file(name: str) -> bool:
    return Path(name).suffix.lower() in CODE_EXTENSIONS or name in CODE_FILENAMES


def collect_files(root: str, extra_skip_dirs: Set[str] = frozenset()) -> List[str]:
    """
    Recursively collect source files under root.

    Args:
        root: Directory to walk
        extra_skip_dirs: Additional directory names to ignore (e.g. the state dir)

    Returns:
        Sorted absolute paths of code files
    """
    out: List[str] = []
    for current, dirs, files in os.walk(root, onerror=lambda e: logger.warning(f"[FS] {e}")):
        dirs[:] = sorted(d for d in dirs if not _should_skip(d, extra_skip_dirs))
        for name in files:
            if _should_skip(name, extra_skip_dirs) or not _is_code_file(name):
                continue
            out.append(os.path.abspath(os.path.join(current, name)))

    result = sorted(out)
    logger.info(f"[FS] Collected {len(result)} source files under {root}")
    return result
