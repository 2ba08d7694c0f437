"""Dependency-aware bin packing of files into budget-bounded chunks.

Greedy first-fit with locality heuristics: the most import-connected files
open chunks, then each chunk is filled with that file's graph neighbors,
its directory siblings, and finally any small file that still fits.
"""

import logging
import math
import posixpath
from typing import Dict, List, Optional

from ..analysis.dependency_graph import DependencyGraph, build_dependency_graph
from ..analysis.file_analyzer import analyze_files
from ..models import Chunk, FileRecord
from ..prompts import CHUNK_GUIDE
from .compressor import compress_record
from .token_budget import code_budget_for_model

logger = logging.getLogger(__name__)

# "--- path ---\n" around each file in the prompt
FILE_HEADER_OVERHEAD = 10

MAX_MANIFEST_CHARS = 600

# Kept free in a chunk for the manifest when a file has to be compressed
MANIFEST_HEADROOM = 200

MAX_RELATED_ENTRIES = 6

# Share of the code budget given to each half of a split chunk
SPLIT_BUDGET_RATIO = 0.45


def file_cost(record: FileRecord) -> int:
    """Characters a file occupies in a chunk, header included."""
    return len(record.content) + len(record.relative_path) + FILE_HEADER_OVERHEAD


def chunk_cost(files: List[FileRecord]) -> int:
    return sum(file_cost(f) for f in files)


def _fit_to_budget(record: FileRecord, code_budget: int) -> FileRecord:
    if file_cost(record) <= code_budget:
        return record
    max_chars = code_budget - MANIFEST_HEADROOM - len(record.relative_path) - FILE_HEADER_OVERHEAD
    if max_chars <= 0:
        raise ValueError(
            f"Code budget {code_budget} leaves no room for {record.relative_path}; "
            f"at least {file_cost(record) - len(record.content) + MANIFEST_HEADROOM + 1} chars needed"
        )
    return compress_record(record, max_chars)


def group_files(
    files: List[FileRecord], graph: DependencyGraph, code_budget: int
) -> List[List[FileRecord]]:
    """Assign every file to exactly one chunk.

    Files that cannot fit a chunk on their own are replaced by compressed
    variants first. The input records are never modified.

    Args:
        files: Records for the scan
        graph: Symmetric import relation over the same paths
        code_budget: Character budget per chunk

    Returns:
        Groups of records, each with chunk_cost(group) <= code_budget

    Raises:
        ValueError: If an oversized file's path and header alone use up the
            budget, so no compression can make it fit
    """
    files = [_fit_to_budget(f, code_budget) for f in files]
    by_path: Dict[str, FileRecord] = {f.relative_path: f for f in files}

    def degree(f: FileRecord) -> int:
        return len(graph.get(f.relative_path, ()))

    ordered = sorted(
        files, key=lambda f: (-degree(f), f.directory, len(f.content), f.relative_path)
    )

    groups: List[List[FileRecord]] = []
    assigned = set()

    for anchor in ordered:
        if anchor.relative_path in assigned:
            continue

        group = [anchor]
        used = file_cost(anchor)
        assigned.add(anchor.relative_path)

        def take(candidates: List[FileRecord]) -> None:
            nonlocal used
            for candidate in sorted(candidates, key=lambda f: (len(f.content), f.relative_path)):
                if candidate.relative_path in assigned:
                    continue
                cost = file_cost(candidate)
                if used + cost <= code_budget:
                    group.append(candidate)
                    used += cost
                    assigned.add(candidate.relative_path)

        take(
            [
                by_path[n]
                for n in graph.get(anchor.relative_path, ())
                if n in by_path and n not in assigned
            ]
        )
        take([f for f in files if f.relative_path not in assigned and f.directory == anchor.directory])
        take([f for f in files if f.relative_path not in assigned])

        groups.append(group)

    return groups


def _structure_lines(all_files: List[FileRecord]) -> List[str]:
    dirs: Dict[str, List[str]] = {}
    for f in all_files:
        dirs.setdefault(f.directory or ".", []).append(posixpath.basename(f.relative_path))

    lines = []
    for directory in sorted(dirs):
        names = dirs[directory]
        if len(names) <= 3:
            lines.append(f"  {directory}/ {', '.join(names)}")
            continue
        by_ext: Dict[str, int] = {}
        for name in names:
            ext = posixpath.splitext(name)[1] or "other"
            by_ext[ext] = by_ext.get(ext, 0) + 1
        summary = " ".join(f"{count}{ext}" for ext, count in by_ext.items())
        lines.append(f"  {directory}/ {summary}")
    return lines


def build_manifest(
    all_files: List[FileRecord],
    groups: List[List[FileRecord]],
    index: int,
    graph: Optional[DependencyGraph] = None,
) -> str:
    """Compact repo map for one chunk.

    Lists the directory structure of the whole scan and the files in other
    chunks that are import-related to this chunk. Never longer than
    MAX_MANIFEST_CHARS.
    """
    if graph is None:
        graph = build_dependency_graph(all_files)

    manifest = (
        f"REPO: {len(all_files)} files, {len(groups)} chunks. "
        f"This is chunk {index + 1}/{len(groups)}.\n"
        "Structure:\n"
    )
    manifest += "".join(line + "\n" for line in _structure_lines(all_files))

    neighbors = set()
    for f in groups[index]:
        neighbors.update(graph.get(f.relative_path, ()))

    related = []
    for i, group in enumerate(groups):
        if i == index:
            continue
        for f in group:
            if f.relative_path in neighbors:
                related.append(f"  chunk {i + 1}: {f.relative_path}")

    if related:
        manifest += "Related files in other chunks:\n"
        manifest += "\n".join(related[:MAX_RELATED_ENTRIES]) + "\n"
        if len(related) > MAX_RELATED_ENTRIES:
            manifest += f"  ... +{len(related) - MAX_RELATED_ENTRIES} more\n"

    if len(manifest) > MAX_MANIFEST_CHARS:
        manifest = manifest[: MAX_MANIFEST_CHARS - 20] + "\n  ... (trimmed)\n"

    return manifest


def assemble_chunks(
    files: List[FileRecord], code_budget: int, graph: Optional[DependencyGraph] = None
) -> List[Chunk]:
    """Group analyzed files and attach a manifest to each chunk."""
    if not files:
        return []
    if graph is None:
        graph = build_dependency_graph(files)

    groups = group_files(files, graph, code_budget)
    chunks = [
        Chunk(files=group, total_chars=chunk_cost(group), manifest=build_manifest(files, groups, i, graph))
        for i, group in enumerate(groups)
    ]

    compressed = sum(c.compressed_count for c in chunks)
    logger.info(
        f"[CHUNKER] {len(files)} files -> {len(chunks)} chunks "
        f"(budget {code_budget} chars, {compressed} compressed)"
    )
    return chunks


def prepare_chunks(file_paths: List[str], cwd: str, model: str) -> List[Chunk]:
    """Analyze files, build the import graph and pack chunks for a model.

    Unreadable files are skipped. Returns [] when nothing could be read.
    """
    files = analyze_files(file_paths, cwd)
    return assemble_chunks(files, code_budget_for_model(model))


def split_chunk(chunk: Chunk, code_budget: int) -> List[Chunk]:
    """Halve a chunk after a capacity rejection.

    Each half gets SPLIT_BUDGET_RATIO of the code budget, shared evenly by its
    files; files over their share are recompressed. The manifest is kept.
    """
    half_budget = math.floor(code_budget * SPLIT_BUDGET_RATIO)
    mid = math.ceil(len(chunk.files) / 2)

    halves = []
    for half in (chunk.files[:mid], chunk.files[mid:]):
        if not half:
            continue
        per_file = half_budget // len(half)
        files = [compress_record(f, per_file) for f in half]
        halves.append(Chunk(files=files, total_chars=chunk_cost(files), manifest=chunk.manifest))
    return halves


def build_chunk_prompt(chunk: Chunk, chunk_num: int, total_chunks: int) -> str:
    """User prompt for a deep (full-content) scan of one chunk."""
    file_list = "\n".join(
        f"  - {f.relative_path}{' (compressed)' if f.compressed else ''}" for f in chunk.files
    )
    prompt = (
        f"{chunk.manifest}\n"
        f"Analyze chunk {chunk_num}/{total_chunks} for code quality issues.\n\n"
        f"FILES IN THIS CHUNK:\n{file_list}\n\n"
        f"{CHUNK_GUIDE}\n\n"
        "SOURCE CODE:\n\n"
    )
    for f in chunk.files:
        prompt += f"--- {f.relative_path} ---\n{f.content}\n\n"
    return prompt
