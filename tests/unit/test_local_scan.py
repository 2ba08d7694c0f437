"""Tests for the pattern-based local scan."""

from sloppy_scan.analysis.local_scan import (
    detect_missing_return_types_ts,
    detect_unused_imports,
    scan_content,
    scan_file,
    scan_files,
)


def findings(issues):
    return [(i.type, i.line) for i in issues]


class TestRules:
    def test_hardcoded_secret_and_token(self):
        content = "db_password = 'hunter2hunter2'\nGH = 'ghp_abcdefghijklmnop1234'\n"
        issues = scan_content(content, "settings.py", ".py")
        assert findings(issues) == [("security", 1), ("security", 2)]
        assert all(i.severity == "critical" and i.source == "local" for i in issues)

    def test_python_specific_rules(self):
        content = "\n".join(
            [
                "import os",
                "def run(cmd):",
                "    os.system(cmd)",
                "    q = f\"SELECT * FROM t WHERE id = {cmd}\"",
                "    try:",
                "        pass",
                "    except Exception:",
                "        pass",
                "    raise NotImplementedError",
            ]
        )
        issues = scan_content(content, "svc.py", ".py")
        assert sorted(findings(issues)) == [("bugs", 7), ("security", 3), ("security", 4), ("stubs", 9)]

    def test_empty_except_on_one_line(self):
        issues = scan_content("try:\n    x()\nexcept: pass\n", "a.py", ".py")
        assert findings(issues) == [("bugs", 3)]

    def test_language_scoped_rules(self):
        """console.log is only reported for JS/TS files."""
        assert findings(scan_content("console.log(x)\n", "a.ts", ".ts")) == [("lint", 1)]
        assert scan_content("console.log(x)\n", "a.py", ".py") == []

    def test_comment_lines_skipped(self):
        content = "// password = 'hunter2hunter2'\n# api_key = 'abcdefghijkl'\n"
        assert scan_content(content, "a.ts", ".ts") == []

    def test_stub_description_is_marker_text(self):
        issues = scan_content("x = 1  # TODO: handle overflow\n", "a.py", ".py")
        assert [(i.type, i.description) for i in issues] == [("stubs", "TODO: handle overflow")]

    def test_any_type_in_typescript(self):
        content = "export const parse = (raw: any): Result => raw as any;\n"
        issues = scan_content(content, "parse.ts", ".ts")
        assert findings(issues) == [("types", 1), ("types", 1)]


class TestMissingReturnTypes:
    def test_declarations_and_arrows(self):
        content = "\n".join(
            [
                "export function typed(a: number): number {",
                "export async function untyped(a: number) {",
                "const arrow = (x) => x + 1;",
                "const typedArrow = (x: number): number => x;",
                "const annotated: Handler = (req) => req;",
                "const grouping = (value as Foo).bar;",
                "function multi(",
                "  a: string,",
                "  b: string",
                "): void {",
            ]
        )

        issues = detect_missing_return_types_ts(content, "src/fns.ts")

        assert [(i.line, i.description) for i in issues] == [
            (2, "Function 'untyped' is missing an explicit return type annotation"),
            (3, "Function 'arrow' is missing an explicit return type annotation"),
        ]

    def test_declaration_files_skipped(self):
        assert detect_missing_return_types_ts("export function f(a)\n", "types.d.ts") == []


class TestUnusedImports:
    def test_javascript_named_and_default(self):
        content = (
            "import React from 'react';\n"
            "import Foo from './foo';\n"
            "import { alpha, beta as gamma } from './m';\n"
            "\n"
            "export const x = alpha;\n"
        )
        issues = detect_unused_imports(content, "m.tsx", ".tsx")
        assert [(i.line, i.description) for i in issues] == [
            (3, "Unused import: 'gamma'"),
            (2, "Unused import: 'Foo'"),
        ]

    def test_python_imports(self):
        content = "\n".join(
            [
                "from __future__ import annotations",
                "import os.path",
                "import json as js, re",
                "from typing import List, Dict",
                "from .helpers import *",
                "",
                "def f(p: List[str]):",
                "    return os.path.join(*p), re.escape('x')",
            ]
        )
        issues = detect_unused_imports(content, "pkg/mod.py", ".py")
        assert sorted((i.line, i.description) for i in issues) == [
            (3, "Unused import: 'js'"),
            (4, "Unused import: 'Dict'"),
        ]
        assert all(i.type == "lint" and i.severity == "low" for i in issues)

    def test_package_init_reexports_not_flagged(self):
        assert detect_unused_imports("from .core import Engine\n", "pkg/__init__.py", ".py") == []


class TestScanFiles:
    def test_flagged_files_and_relative_paths(self, workspace):
        dirty = workspace("app/util.py", "import sys\n")
        clean = workspace("app/clean.py", "x = 1\n")

        result = scan_files([dirty, clean], workspace.root)

        assert [(i.file, i.line) for i in result.issues] == [("app/util.py", 1)]
        assert result.flagged_files == {"app/util.py"}

    def test_unreadable_file_yields_nothing(self, workspace, tmp_path):
        assert scan_file(str(tmp_path / "missing.py"), workspace.root) == []
