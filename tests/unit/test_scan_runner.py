"""Tests for scan orchestration with a scripted model caller."""

import json

import pytest

from sloppy_scan.adapters import MockCaller
from sloppy_scan.cache import partition_by_cache
from sloppy_scan.errors import CapacityExceededError, TransientRequestError
from sloppy_scan.models import Chunk, ChunkOutcome, FileRecord, Issue
from sloppy_scan.optimization.chunker import chunk_cost
from sloppy_scan.optimization.token_budget import estimate_tokens
from sloppy_scan.prompts import VERIFICATION_SCHEMA, VERIFICATION_SYSTEM_PROMPT
from sloppy_scan.routing import BudgetRouter
from sloppy_scan.routing.budget_router import MODEL_TIERS
from sloppy_scan.scan import ScanRunner

PRIMARY = "openai/gpt-4o-mini"
LOW_TIER = "mistral-ai/mistral-small"


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every pause."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def reply(*issues) -> str:
    return json.dumps({"issues": list(issues)})


def verdicts(*real_flags) -> str:
    return json.dumps(
        {"results": [{"index": i, "is_real": flag, "reason": "checked"} for i, flag in enumerate(real_flags)]}
    )


def drain(router, leave: int = 0) -> None:
    """Use up every model's daily quota except `leave` requests."""
    for model, tier in MODEL_TIERS.items():
        for _ in range(tier.requests_per_day - leave):
            router.record_request(model)


def make_record(path: str) -> FileRecord:
    content = f"# {path}\nvalue = 1\n"
    return FileRecord(
        relative_path=path,
        full_path=f"/w/{path}",
        content=content,
        original_size=len(content),
        tokens=estimate_tokens(content),
        imports=[],
        directory=".",
    )


@pytest.fixture
def router(workspace, settings, clock):
    return BudgetRouter(workspace.root, settings, clock=clock)


@pytest.fixture
def make_runner(workspace, settings, router):
    def build(caller, **kwargs):
        kwargs.setdefault("sleep", RecordingSleep())
        return ScanRunner(caller, workspace.root, settings=settings, router=router, **kwargs)

    return build


class TestScanChunk:
    @pytest.mark.asyncio
    async def test_capacity_error_splits_once(self, make_runner, router):
        """A rejected 4-file chunk is halved; both halves' issues are merged."""
        files = [make_record(f"f{i}.py") for i in range(4)]
        chunk = Chunk(files=files, total_chars=chunk_cost(files), manifest="MAP\n")
        caller = MockCaller(
            replies=[
                CapacityExceededError("413 payload too large"),
                reply({"type": "bugs", "file": "f0.py", "line": 1, "description": "a"}),
                reply({"type": "lint", "file": "f3.py", "line": 2, "description": "b"}),
            ]
        )
        runner = make_runner(caller)

        outcome = await runner.scan_chunk(chunk, 1, 1, PRIMARY)

        assert outcome.ok
        assert [(i.file, i.type) for i in outcome.issues] == [("f0.py", "bugs"), ("f3.py", "lint")]
        assert len(caller.calls) == 3
        first_half = caller.calls[1]["messages"][1]["content"]
        assert "--- f0.py ---" in first_half and "--- f1.py ---" in first_half
        assert "--- f2.py ---" not in first_half
        assert router.used(PRIMARY) == 3

    @pytest.mark.asyncio
    async def test_split_depth_is_bounded(self, make_runner):
        """Sub-chunks that keep failing stop splitting at the depth limit."""
        files = [make_record(f"f{i}.py") for i in range(4)]
        chunk = Chunk(files=files, total_chars=chunk_cost(files))
        caller = MockCaller(responder=lambda model, messages: CapacityExceededError("still too big"))
        runner = make_runner(caller)

        with pytest.raises(CapacityExceededError):
            await runner.scan_chunk(chunk, 1, 1, PRIMARY)

        # depth 0, first half at depth 1, its first quarter at depth 2
        assert len(caller.calls) == 3

    @pytest.mark.asyncio
    async def test_split_pause_between_halves(self, make_runner, settings):
        settings.scan.split_pause_seconds = 4.5
        files = [make_record(f"f{i}.py") for i in range(2)]
        chunk = Chunk(files=files, total_chars=chunk_cost(files))
        sleep = RecordingSleep()
        runner = make_runner(MockCaller(replies=[CapacityExceededError("big")]), sleep=sleep)

        await runner.scan_chunk(chunk, 1, 1, PRIMARY)

        assert sleep.calls == [4.5]


class TestDispatch:
    @pytest.mark.asyncio
    async def test_failures_isolated_and_batches_paced(self, make_runner, settings):
        """One failing item does not affect the others; batches wait for the rpm limit."""
        settings.scan.stagger_seconds = 0.5
        sleep = RecordingSleep()
        runner = make_runner(MockCaller(), sleep=sleep)

        async def send(item):
            if item == 2:
                raise TransientRequestError("boom", status_code=502)
            return ChunkOutcome(paths=[f"f{item}.py"], model="mistral-ai/mistral-small")

        outcomes = await runner._dispatch([1, 2, 3], 2, send, lambda item: [f"f{item}.py"])

        assert [o.ok for o in outcomes] == [True, False, True]
        assert outcomes[1].paths == ["f2.py"]
        # stagger inside the first batch, then 60 / 15 rpm between batches
        assert sleep.calls == [0.5, 4.0]


class TestRun:
    @pytest.mark.asyncio
    async def test_deep_scan_then_cache_reuse(self, workspace, settings, make_runner):
        workspace("app/config.py", "def load(path):\n    return open(path).read()\n")
        workspace("app/main.py", "from .config import load\n\nSETTINGS = load('app.cfg')\n")
        finding = {
            "type": "bugs",
            "severity": "high",
            "file": "app/config.py",
            "line": 2,
            "description": "File handle is never closed",
            "line_content": "return open(path).read()",
        }
        caller = MockCaller(replies=[reply(finding)])

        result = await make_runner(caller).run()

        assert result.strategy == "deep"
        assert result.scan_level == "flush"
        assert result.api_calls == 1
        assert result.files_scanned == 2
        assert [i.file for i in result.issues] == ["app/config.py"]
        assert len(caller.calls) == 1
        assert caller.calls[0]["model"] == PRIMARY

        second_caller = MockCaller()
        second = await make_runner(second_caller).run()

        assert second_caller.calls == []
        assert second.cache_hits == 2
        assert second.api_calls == 0
        assert [i.file for i in second.issues] == ["app/config.py"]

    @pytest.mark.asyncio
    async def test_hallucinations_and_local_duplicates_rejected(self, workspace, make_runner):
        path = workspace("svc.py", "import os\n\ndef run(cmd):\n    return os.system(cmd)\n")
        local = [Issue(type="lint", file="svc.py", line=1, description="unused import", source="local")]
        caller = MockCaller(
            replies=[
                reply(
                    {"type": "lint", "file": "svc.py", "line": 2, "description": "os unused"},
                    {"type": "bugs", "file": "ghost.py", "line": 1, "description": "made up"},
                    {"type": "security", "file": "svc.py", "line": 4, "description": "shell",
                     "line_content": "return os.system(cmd)"},
                )
            ]
        )

        result = await make_runner(caller).run([path], local_issues=local)

        assert result.rejected == 2
        assert sorted((i.source, i.type) for i in result.issues) == [("ai", "security"), ("local", "lint")]

    @pytest.mark.asyncio
    async def test_critical_budget_skips_model_calls(self, workspace, settings, router, make_runner):
        path = workspace("a.py", "x = 1\n")
        drain(router)
        caller = MockCaller()

        result = await make_runner(caller).run()

        assert result.scan_level == "critical"
        assert caller.calls == []
        assert result.issues == []
        assert partition_by_cache([path], workspace.root, PRIMARY, "deep", settings).uncached_files == [path]

    @pytest.mark.asyncio
    async def test_failed_chunk_not_cached(self, workspace, settings, make_runner):
        path = workspace("a.py", "x = 1\n")
        caller = MockCaller(replies=[TransientRequestError("upstream 502", status_code=502)])

        result = await make_runner(caller).run()

        assert result.failed_chunks == 1
        assert result.issues == []
        assert partition_by_cache([path], workspace.root, PRIMARY, "deep", settings).uncached_files == [path]

    @pytest.mark.asyncio
    async def test_fingerprint_scan_with_targeted_deep_scan(self, workspace, settings, make_runner):
        """Large file sets are fingerprinted on a low-tier model, then flagged files deep-scanned."""
        settings.scan.deep_scan_threshold = 1
        workspace("a.py", "def a():\n    return 1\n")
        workspace("b.py", "def b(x):\n    return eval(x)\n")
        workspace("c.py", "def c():\n    return 3\n")

        def responder(model, messages):
            if "FILE FINGERPRINTS" in messages[1]["content"]:
                return reply({"type": "security", "file": "b.py", "line": 2, "description": "eval of input"})
            return reply()

        caller = MockCaller(responder=responder)

        result = await make_runner(caller).run()

        assert result.strategy == "fingerprint"
        assert [i.file for i in result.issues] == ["b.py"]
        assert [c["model"] for c in caller.calls] == ["mistral-ai/mistral-small", PRIMARY]
        assert "--- b.py ---" in caller.calls[1]["messages"][1]["content"]
        assert result.api_calls == 2

    @pytest.mark.asyncio
    async def test_empty_workspace(self, make_runner):
        caller = MockCaller()
        result = await make_runner(caller).run()
        assert result.issues == []
        assert caller.calls == []

    @pytest.mark.asyncio
    async def test_custom_prompt_reaches_system_message(self, workspace, make_runner):
        workspace("a.py", "x = 1\n")
        caller = MockCaller()
        await make_runner(caller, custom_prompt="Only report security issues.").run()
        assert caller.calls[0]["messages"][0]["content"].endswith("Only report security issues.")

    @pytest.mark.asyncio
    async def test_reduced_budget_caches_fingerprint_strategy(self, workspace, settings, router, make_runner):
        """A small set scanned by fingerprint at normal level must not satisfy a later deep request."""
        path = workspace("a.py", "def a():\n    return 1\n")
        drain(router, leave=5)
        caller = MockCaller()

        result = await make_runner(caller).run()

        assert result.scan_level == "normal"
        assert result.strategy == "fingerprint"
        assert "FILE FINGERPRINTS" in caller.calls[0]["messages"][1]["content"]
        assert partition_by_cache([path], workspace.root, PRIMARY, "deep", settings).uncached_files == [path]
        assert partition_by_cache([path], workspace.root, PRIMARY, "fingerprint", settings).cache_hits == 1


class TestLocalAnalysis:
    @pytest.mark.asyncio
    async def test_local_findings_collected_by_default(self, workspace, make_runner):
        """Without caller-supplied findings the local scan runs and suppresses model duplicates."""
        workspace("svc.py", "import os\nimport sys\n\ndef run(cmd):\n    return os.system(cmd)\n")
        caller = MockCaller(
            replies=[
                reply(
                    {"type": "security", "severity": "high", "file": "svc.py", "line": 5,
                     "description": "shell injection", "line_content": "return os.system(cmd)"}
                )
            ]
        )

        result = await make_runner(caller).run()

        assert result.rejected == 1
        assert sorted((i.source, i.type, i.line) for i in result.issues) == [
            ("local", "lint", 2),
            ("local", "security", 5),
        ]

    @pytest.mark.asyncio
    async def test_local_findings_reported_at_critical_budget(self, workspace, router, make_runner):
        workspace("stub.py", "def todo():\n    raise NotImplementedError\n")
        drain(router)
        caller = MockCaller()

        result = await make_runner(caller).run()

        assert caller.calls == []
        assert [(i.type, i.line, i.source) for i in result.issues] == [("stubs", 2, "local")]

    @pytest.mark.asyncio
    async def test_local_analysis_can_be_disabled(self, workspace, settings, make_runner):
        settings.scan.local_analysis = False
        workspace("svc.py", "import sys\n")

        result = await make_runner(MockCaller()).run()

        assert result.issues == []


def bug(file: str, line: int, text: str) -> dict:
    return {"type": "bugs", "severity": "high", "file": file, "line": line,
            "description": f"bug at {line}", "line_content": text}


class TestModelVerification:
    @pytest.mark.asyncio
    async def test_only_confirmed_issues_kept(self, workspace, settings, make_runner):
        settings.scan.ai_verification = True
        workspace("calc.py", "def ratio(a, b):\n    return a / b\n\ndef total(xs):\n    return sum(xs)\n")

        def responder(model, messages):
            if messages[0]["content"] == VERIFICATION_SYSTEM_PROMPT:
                return verdicts(True, False)
            return reply(bug("calc.py", 2, "return a / b"), bug("calc.py", 5, "return sum(xs)"))

        caller = MockCaller(responder=responder)

        result = await make_runner(caller).run()

        assert [(i.file, i.line) for i in result.issues] == [("calc.py", 2)]
        assert result.rejected == 1
        assert result.api_calls == 2
        check = caller.calls[1]
        assert check["model"] == LOW_TIER
        assert check["response_format"] is VERIFICATION_SCHEMA
        assert "Actual code:\n1: def ratio(a, b):" in check["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_batches_paced_and_failed_batch_kept(self, workspace, settings, make_runner):
        """Ten issues go out as batches of eight and two; an unreadable reply keeps its batch."""
        settings.scan.verification_pause_seconds = 2.0
        issues = [Issue(type="bugs", file="ghost.py", line=i + 1, description=f"bug {i}") for i in range(10)]
        sleep = RecordingSleep()
        caller = MockCaller(replies=[verdicts(True), "garbled"])

        result = await make_runner(caller, sleep=sleep).ai_verification_pass(issues, PRIMARY)

        assert result.verified == [issues[0]] + issues[8:]
        assert result.rejected == issues[1:8]
        assert sleep.calls == [2.0]
        assert result.tokens == 100

    @pytest.mark.asyncio
    async def test_request_failure_keeps_batch(self, make_runner):
        issues = [Issue(type="bugs", file="a.py", line=1, description="bug")]
        caller = MockCaller(replies=[TransientRequestError("upstream 502", status_code=502)])

        result = await make_runner(caller).ai_verification_pass(issues, PRIMARY)

        assert result.verified == issues
        assert result.rejected == []

    @pytest.mark.asyncio
    async def test_no_budget_keeps_everything_without_requests(self, router, make_runner):
        drain(router)
        issues = [Issue(type="bugs", file="a.py", line=1, description="bug")]
        caller = MockCaller()

        result = await make_runner(caller).ai_verification_pass(issues, PRIMARY)

        assert result.verified == issues
        assert caller.calls == []
