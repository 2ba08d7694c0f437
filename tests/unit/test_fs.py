"""Tests for source file collection."""

import os

from sloppy_scan.utils.fs import collect_files
from sloppy_scan.utils.token_counter import count_tokens, looks_pathological, safe_estimate_tokens


class TestCollectFiles:
    def test_skips_vendor_hidden_and_non_code(self, workspace):
        keep = [
            workspace("src/app.ts", "export {}\n"),
            workspace("Dockerfile", "FROM python\n"),
            workspace(".github/workflows/ci.yml", "on: push\n"),
        ]
        workspace("node_modules/lib/index.js", "x\n")
        workspace(".git/config", "[core]\n")
        workspace(".sloppy/scan-cache.json", "{}\n")
        workspace(".env", "SECRET=1\n")
        workspace("docs/readme.md", "# hi\n")

        assert collect_files(workspace.root) == sorted(keep)

    def test_extra_skip_dirs(self, workspace):
        workspace("generated/a.py", "x = 1\n")
        kept = workspace("src/b.py", "y = 1\n")
        assert collect_files(workspace.root, {"generated"}) == [kept]

    def test_absolute_paths(self, workspace):
        workspace("a.py", "x = 1\n")
        assert all(os.path.isabs(p) for p in collect_files(workspace.root))


class TestTokenCounter:
    def test_estimate_floor(self):
        assert safe_estimate_tokens("") == 1
        assert safe_estimate_tokens("a" * 40) == 10

    def test_pathological_detection(self):
        assert looks_pathological("a" * 20000) is True
        assert looks_pathological("short") is False

    def test_count_falls_back_without_encoding(self, monkeypatch):
        monkeypatch.setattr("sloppy_scan.utils.token_counter._get_encoding", lambda: None)
        assert count_tokens(["a" * 40, "b" * 8]) == 12
