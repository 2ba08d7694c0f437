"""Import-connectivity graph over the scanned file set."""

import logging
import posixpath
import re
from typing import Dict, Iterable, List, Optional, Set

from ..models import FileRecord

logger = logging.getLogger(__name__)

DependencyGraph = Dict[str, Set[str]]

_RELATIVE_SUFFIXES = (
    "",
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    "/index.ts",
    "/index.tsx",
    "/index.js",
)
_PY_RELATIVE = re.compile(r"^(\.+)([\w.]*)$")


def _module_candidates(module_path: str) -> List[str]:
    return [module_path + ".py", module_path + "/__init__.py"]


def _source_dir(record: FileRecord) -> str:
    return "" if record.directory == "." else record.directory


def resolve_import(raw: str, from_file: FileRecord, file_set: Set[str]) -> Optional[str]:
    """Resolve one raw import string to a path in the file set.

    Relative imports are probed with common extensions and index forms,
    dotted imports are translated to a path. Returns None if nothing in the
    set matches.
    """
    base = _source_dir(from_file)

    if raw.startswith("."):
        for suffix in _RELATIVE_SUFFIXES:
            candidate = posixpath.normpath(posixpath.join(base, raw + suffix))
            if candidate in file_set:
                return candidate

        # Python package-relative: "..pkg.mod" climbs one directory per extra dot
        m = _PY_RELATIVE.match(raw)
        if m and from_file.ext == ".py":
            pkg_dir = base
            for _ in range(len(m.group(1)) - 1):
                pkg_dir = posixpath.dirname(pkg_dir)
            rest = m.group(2).replace(".", "/")
            target = posixpath.join(pkg_dir, rest) if rest else pkg_dir
            if target:
                for candidate in _module_candidates(posixpath.normpath(target)):
                    if candidate in file_set:
                        return candidate
        return None

    for candidate in _module_candidates(raw.replace(".", "/")):
        if candidate in file_set:
            return candidate

    return None


def build_dependency_graph(files: Iterable[FileRecord]) -> DependencyGraph:
    """Build the symmetric import relation.

    Every file gets a node, connected or not. A resolved import adds both
    directions; self-imports and unresolved imports are dropped.
    """
    files = list(files)
    file_set = {f.relative_path for f in files}
    graph: DependencyGraph = {f.relative_path: set() for f in files}

    for f in files:
        for raw in f.imports:
            resolved = resolve_import(raw, f, file_set)
            if resolved and resolved != f.relative_path:
                graph[f.relative_path].add(resolved)
                graph[resolved].add(f.relative_path)

    edge_count = sum(len(n) for n in graph.values()) // 2
    logger.debug(f"[GRAPH] {len(graph)} files, {edge_count} import edges")
    return graph
