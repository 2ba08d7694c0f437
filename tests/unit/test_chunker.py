"""Tests for chunk assembly, manifests and chunk splitting."""

import pytest

from sloppy_scan.analysis.dependency_graph import build_dependency_graph
from sloppy_scan.models import Chunk, FileRecord
from sloppy_scan.optimization.chunker import (
    MAX_MANIFEST_CHARS,
    assemble_chunks,
    build_chunk_prompt,
    build_manifest,
    chunk_cost,
    file_cost,
    group_files,
    prepare_chunks,
    split_chunk,
)
from sloppy_scan.optimization.token_budget import code_budget_for_model, estimate_tokens


def make_record(path: str, size: int, imports=None) -> FileRecord:
    directory = path.rsplit("/", 1)[0] if "/" in path else "."
    content = ("value = compute(1)\n" * (size // 19 + 1))[:size]
    return FileRecord(
        relative_path=path,
        full_path=f"/w/{path}",
        content=content,
        original_size=size,
        tokens=estimate_tokens(content),
        imports=list(imports or []),
        directory=directory,
    )


class TestPrepareChunks:
    def test_related_files_share_one_chunk(self, workspace):
        """A file and the file it imports end up in a single chunk."""
        a = workspace("src/a.ts", "import { b } from './b';\nexport const a = b + 1;\n")
        b = workspace("src/b.ts", "export const b = 2;\n")

        chunks = prepare_chunks([a, b], workspace.root, "openai/gpt-4o-mini")

        assert len(chunks) == 1
        assert sorted(chunks[0].paths) == ["src/a.ts", "src/b.ts"]

    def test_oversized_file_compressed_to_fit(self, workspace):
        """A single huge file is compressed until its chunk fits the budget."""
        content = "".join(f"value_{i} = compute({i})  # note {i}\n" for i in range(4000))
        path = workspace("big.py", content)
        budget = code_budget_for_model("openai/gpt-4o-mini")
        assert len(content) > budget

        chunks = prepare_chunks([path], workspace.root, "openai/gpt-4o-mini")

        assert len(chunks) == 1
        record = chunks[0].files[0]
        assert record.compressed is True
        assert record.original_size == len(content)
        assert record.tokens == estimate_tokens(record.content)
        assert chunks[0].total_chars <= budget

    def test_unreadable_files_skipped(self, workspace, tmp_path):
        good = workspace("ok.py", "x = 1\n")
        chunks = prepare_chunks([good, str(tmp_path / "missing.py")], workspace.root, "openai/gpt-4o-mini")
        assert [c.paths for c in chunks] == [["ok.py"]]

    def test_no_files(self, workspace):
        assert prepare_chunks([], workspace.root, "openai/gpt-4o-mini") == []


class TestGroupFiles:
    def test_budget_and_coverage_invariants(self):
        """Every file lands in exactly one chunk and no chunk exceeds the budget."""
        budget = 3000
        files = [make_record(f"pkg{i % 3}/f{i}.py", 150 + (i * 137) % 1400) for i in range(25)]
        files.append(make_record("pkg0/huge.py", 9000))
        graph = build_dependency_graph(files)

        groups = group_files(files, graph, budget)

        paths = [f.relative_path for group in groups for f in group]
        assert sorted(paths) == sorted(f.relative_path for f in files)
        assert len(paths) == len(set(paths))
        for group in groups:
            assert chunk_cost(group) <= budget

    def test_input_records_not_mutated(self):
        files = [make_record("a.py", 5000)]
        group_files(files, build_dependency_graph(files), 2000)
        assert files[0].compressed is False
        assert len(files[0].content) == 5000

    def test_budget_without_room_for_a_file_rejected(self):
        """An oversized file whose header alone eats the budget cannot be packed."""
        files = [make_record("deeply/nested/path/module.py", 5000)]
        too_small = len("deeply/nested/path/module.py") + 100

        with pytest.raises(ValueError, match="leaves no room"):
            group_files(files, build_dependency_graph(files), too_small)

    def test_smallest_usable_budget_still_holds(self):
        files = [make_record("a.py", 5000)]
        budget = len("a.py") + 10 + 200 + 1

        groups = group_files(files, build_dependency_graph(files), budget)

        assert chunk_cost(groups[0]) <= budget

    def test_neighbors_preferred_over_strangers(self):
        """The most connected file pulls in its import neighbors first."""
        hub = make_record("src/hub.ts", 400, ["./x", "./y"])
        x = make_record("src/x.ts", 400)
        y = make_record("src/y.ts", 400)
        stranger = make_record("other/z.ts", 400)
        files = [stranger, x, y, hub]
        budget = file_cost(hub) + file_cost(x) + file_cost(y)

        groups = group_files(files, build_dependency_graph(files), budget)

        assert sorted(f.relative_path for f in groups[0]) == ["src/hub.ts", "src/x.ts", "src/y.ts"]
        assert [f.relative_path for f in groups[1]] == ["other/z.ts"]


class TestManifest:
    def test_related_files_listed(self):
        a = make_record("src/a.ts", 2000, ["./b"])
        b = make_record("src/b.ts", 2000)
        graph = build_dependency_graph([a, b])
        groups = [[a], [b]]

        manifest = build_manifest([a, b], groups, 0, graph)

        assert "This is chunk 1/2" in manifest
        assert "chunk 2: src/b.ts" in manifest

    def test_manifest_bounded(self):
        """Manifests never exceed the size cap, even for wide trees."""
        files = [make_record(f"dir{i}/f{i}.py", 10) for i in range(100)]
        chunks = assemble_chunks(files, 400)
        for chunk in chunks:
            assert len(chunk.manifest) <= MAX_MANIFEST_CHARS


class TestSplitChunk:
    def test_halves_and_recompression(self):
        files = [make_record(f"f{i}.py", 4000) for i in range(4)]
        chunk = Chunk(files=files, total_chars=chunk_cost(files), manifest="M")

        halves = split_chunk(chunk, 10000)

        assert [len(h.files) for h in halves] == [2, 2]
        for half in halves:
            assert half.manifest == "M"
            # floor(10000 * 0.45) // 2 per file
            assert all(len(f.content) <= 2250 for f in half.files)
            assert all(f.compressed for f in half.files)

    def test_single_file_chunk(self):
        files = [make_record("only.py", 100)]
        halves = split_chunk(Chunk(files=files, total_chars=chunk_cost(files)), 10000)
        assert len(halves) == 1
        assert halves[0].files[0].content == files[0].content


class TestChunkPrompt:
    def test_contains_manifest_and_sources(self):
        record = make_record("src/a.py", 50)
        chunk = Chunk(files=[record], total_chars=chunk_cost([record]), manifest="REPO MAP\n")

        prompt = build_chunk_prompt(chunk, 2, 3)

        assert prompt.startswith("REPO MAP")
        assert "chunk 2/3" in prompt
        assert "--- src/a.py ---" in prompt
        assert record.content in prompt
