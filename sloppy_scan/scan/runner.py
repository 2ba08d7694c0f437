"""Scan orchestration: local checks, cache, strategy, dispatch, verification, persistence.

Chunks are dispatched in small sequential batches. Requests within a batch
run concurrently with staggered starts and fail independently; a pause
sized to the tightest per-minute limit separates batches. A chunk rejected
for its size is halved, recompressed and retried, up to a fixed depth.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from ..adapters.protocol import ModelCaller, ModelResponse
from ..analysis.file_analyzer import relative_posix_path
from ..analysis.local_scan import scan_files
from ..cache.scan_cache import partition_by_cache, save_cache, update_cache_entries
from ..config import Settings, get_settings
from ..errors import CapacityExceededError
from ..fingerprint.generator import generate_fingerprint
from ..fingerprint.packing import pack_fingerprints
from ..models import Chunk, ChunkOutcome, FingerprintChunk, Issue, ScanResult, ScanStrategy
from ..optimization.chunker import build_chunk_prompt, prepare_chunks, split_chunk
from ..optimization.token_budget import code_budget_for_model
from ..prompts import (
    ISSUES_SCHEMA,
    VERIFICATION_RULES,
    VERIFICATION_SCHEMA,
    build_messages,
    build_verification_messages,
)
from ..routing.budget_router import BudgetRouter, get_model_tier
from ..utils.fs import collect_files
from .parsing import parse_issues
from .verification import VerificationResult, build_verification_prompt, parse_verdicts, verify_issues

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def dedupe_issues(issues: Sequence[Issue]) -> List[Issue]:
    """Keep the first issue per (file, line, type)."""
    seen = set()
    unique = []
    for issue in issues:
        if issue.key in seen:
            continue
        seen.add(issue.key)
        unique.append(issue)
    return unique


class ScanRunner:
    """Runs one scan of a workspace against a model-call collaborator.

    The budget router is an explicit handle: pass one in to share it across
    runs, or let the runner load it from the workspace state directory.
    """

    def __init__(
        self,
        caller: ModelCaller,
        cwd: str,
        settings: Optional[Settings] = None,
        router: Optional[BudgetRouter] = None,
        custom_prompt: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.caller = caller
        self.cwd = cwd
        self.settings = settings or get_settings()
        self.router = router or BudgetRouter(cwd, self.settings)
        self.custom_prompt = custom_prompt
        self._sleep = sleep
        self.requests_made = 0

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)

    async def _request(
        self, model: str, messages: List[Dict[str, str]], response_format: Dict[str, Any]
    ) -> ModelResponse:
        # Every attempt costs quota, including rejected ones
        self.router.record_request(model)
        self.requests_made += 1
        return await self.caller.call(model, messages, response_format)

    async def _call(self, model: str, prompt: str) -> ModelResponse:
        return await self._request(model, build_messages(prompt, self.custom_prompt), ISSUES_SCHEMA)

    def _concurrency(self, model: str) -> int:
        return max(1, min(self.settings.scan.concurrency, get_model_tier(model).concurrent))

    async def _dispatch(
        self,
        items: List[T],
        concurrency: int,
        send: Callable[[T], Awaitable[ChunkOutcome]],
        describe: Callable[[T], List[str]],
    ) -> List[ChunkOutcome]:
        """Send items in sequential batches; one failure never affects another item."""
        scan = self.settings.scan
        outcomes: List[ChunkOutcome] = []

        async def staggered(item: T, position: int) -> ChunkOutcome:
            await self._pause(scan.stagger_seconds * position)
            return await send(item)

        for start in range(0, len(items), concurrency):
            batch = items[start : start + concurrency]
            for j, item in enumerate(batch):
                paths = describe(item)
                more = f" +{len(paths) - 3}" if len(paths) > 3 else ""
                logger.info(f"[SCAN] Chunk {start + j + 1}/{len(items)}: {', '.join(paths[:3])}{more}")

            results = await asyncio.gather(
                *(staggered(item, j) for j, item in enumerate(batch)), return_exceptions=True
            )

            models_used = set()
            for item, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.warning(f"[SCAN] Chunk failed: {result}")
                    outcomes.append(ChunkOutcome(paths=describe(item), error=result))
                    continue
                if isinstance(result, BaseException):
                    raise result
                models_used.add(result.model)
                label = f"{len(result.issues)} issues" if result.issues else "clean"
                logger.info(f"[SCAN] {label} ({result.tokens} tokens via {result.model})")
                outcomes.append(result)

            if start + concurrency < len(items):
                interval = self.router.min_request_interval(m for m in models_used if m)
                await self._pause(max(scan.batch_pause_seconds, interval))

        return outcomes

    async def scan_chunk(
        self, chunk: Chunk, chunk_num: int, total_chunks: int, model: str, depth: int = 0
    ) -> ChunkOutcome:
        """Deep-scan one chunk, splitting it on capacity rejections.

        Raises:
            CapacityExceededError: If the chunk still does not fit after
                max_split_depth halvings
            ScanException: Any other request failure, unchanged
        """
        prompt = build_chunk_prompt(chunk, chunk_num, total_chunks)
        try:
            response = await self._call(model, prompt)
        except CapacityExceededError:
            if depth >= self.settings.scan.max_split_depth:
                raise
            logger.info(
                f"[SCAN] Chunk {chunk_num} too large for {model}, splitting "
                f"{len(chunk.files)} files (depth {depth + 1})"
            )
            outcome = ChunkOutcome(paths=chunk.paths, model=model)
            halves = split_chunk(chunk, code_budget_for_model(model))
            for i, half in enumerate(halves):
                if i > 0:
                    await self._pause(self.settings.scan.split_pause_seconds)
                sub = await self.scan_chunk(half, chunk_num, total_chunks, model, depth + 1)
                outcome.issues.extend(sub.issues)
                outcome.tokens += sub.tokens
            return outcome

        return ChunkOutcome(
            paths=chunk.paths,
            issues=parse_issues(response.content),
            tokens=response.tokens_used,
            model=model,
        )

    async def deep_scan(self, file_paths: List[str], primary_model: str) -> List[ChunkOutcome]:
        """Full-content scan of a small file set with the model chosen for deep scans."""
        model = self.router.select_model(primary_model, "deep")
        if model != primary_model:
            logger.info(f"[SCAN] Deep scan routed to {model} (primary budget exhausted)")

        chunks = prepare_chunks(file_paths, self.cwd, model)
        total = len(chunks)
        numbered = list(enumerate(chunks, start=1))

        async def send(item) -> ChunkOutcome:
            num, chunk = item
            return await self.scan_chunk(chunk, num, total, model)

        return await self._dispatch(numbered, self._concurrency(model), send, lambda item: item[1].paths)

    async def fingerprint_scan(
        self, file_paths: List[str], primary_model: str, local_issues: Sequence[Issue] = ()
    ) -> List[ChunkOutcome]:
        """Compact scan of a large file set; each chunk is routed separately."""
        local_by_file: Dict[str, List[Issue]] = {}
        for issue in local_issues:
            local_by_file.setdefault(issue.file, []).append(issue)

        fingerprints = []
        for path in file_paths:
            relative = relative_posix_path(path, self.cwd)
            fp = generate_fingerprint(path, self.cwd, local_by_file.get(relative))
            if fp is not None:
                fingerprints.append(fp)

        chunks = pack_fingerprints(fingerprints, primary_model)

        async def send(chunk: FingerprintChunk) -> ChunkOutcome:
            model = self.router.select_model(primary_model, "fingerprint")
            response = await self._call(model, chunk.prompt_text)
            return ChunkOutcome(
                paths=chunk.paths,
                issues=parse_issues(response.content),
                tokens=response.tokens_used,
                model=model,
            )

        return await self._dispatch(chunks, self._concurrency(primary_model), send, lambda c: c.paths)

    async def targeted_deep_scan(
        self, file_paths: List[str], ai_issues: Sequence[Issue], primary_model: str
    ) -> List[ChunkOutcome]:
        """Deep-scan the files a fingerprint scan flagged, while deep budget lasts."""
        flagged = {issue.file for issue in ai_issues}
        suspicious = [p for p in file_paths if relative_posix_path(p, self.cwd) in flagged]
        suspicious = suspicious[: self.settings.scan.targeted_deep_scan_files]
        if not suspicious:
            return []

        model = self.router.select_model(primary_model, "deep")
        if self.router.remaining(model) <= 0:
            return []

        logger.info(f"[SCAN] Targeted deep scan: {len(suspicious)} suspicious files")
        chunks = prepare_chunks(suspicious, self.cwd, model)
        outcomes = []
        for num, chunk in enumerate(chunks, start=1):
            if self.router.remaining(model) < 1:
                break
            try:
                outcomes.append(await self.scan_chunk(chunk, num, len(chunks), model))
            except Exception as e:
                # The fingerprint pass already covered these files
                logger.warning(f"[SCAN] Targeted deep scan chunk failed: {e}")
        return outcomes

    async def ai_verification_pass(self, issues: List[Issue], primary_model: str) -> VerificationResult:
        """Ask a low-tier model to confirm issues against the code around them.

        Issues are sent in batches with numbered source lines. A batch whose
        request fails or whose reply cannot be read is kept whole, and so is
        everything left once the verifying model runs out of budget.
        """
        result = VerificationResult()
        if not issues:
            return result

        model = self.router.select_model(primary_model, "fingerprint")
        if self.router.remaining(model) < 1:
            logger.info("[VERIFY] No request budget for model verification, keeping all issues")
            result.verified = list(issues)
            return result

        scan = self.settings.scan
        batch_size = scan.verification_batch_size
        logger.info(f"[VERIFY] Confirming {len(issues)} AI issues against actual code")

        for start in range(0, len(issues), batch_size):
            batch = issues[start : start + batch_size]
            model = self.router.select_model(primary_model, "fingerprint")
            if self.router.remaining(model) < 1:
                result.verified.extend(issues[start:])
                break

            prompt = build_verification_prompt(batch, self.cwd, VERIFICATION_RULES)
            try:
                response = await self._request(model, build_verification_messages(prompt), VERIFICATION_SCHEMA)
                real = parse_verdicts(response.content)
            except Exception as e:
                logger.warning(f"[VERIFY] Model verification failed: {e}. Keeping batch.")
                result.verified.extend(batch)
            else:
                result.tokens += response.tokens_used
                for j, issue in enumerate(batch):
                    (result.verified if j in real else result.rejected).append(issue)

            if start + batch_size < len(issues):
                await self._pause(scan.verification_pause_seconds)

        if result.rejected:
            logger.info(f"[VERIFY] {len(result.rejected)} issues rejected by model verification")
        return result

    async def run(
        self,
        file_paths: Optional[List[str]] = None,
        local_issues: Optional[Sequence[Issue]] = None,
    ) -> ScanResult:
        """Scan the workspace (or the given files) and persist cache and budget.

        Args:
            file_paths: Absolute paths to scan; collected from cwd when None
            local_issues: Findings already made without model calls for these
                files. When None, the local pattern scan produces them. They
                are reported, cached and used to suppress duplicates.

        Returns:
            Aggregate result; failed chunks are counted, never raised
        """
        settings = self.settings
        primary = settings.models.primary
        self.requests_made = 0
        self.router.log_status(primary)

        if file_paths is None:
            file_paths = collect_files(self.cwd, {settings.state.directory})
        if not file_paths:
            logger.info("[SCAN] No source files found, nothing to scan")
            return ScanResult(issues=[])

        requested: ScanStrategy = (
            "deep" if len(file_paths) <= settings.scan.deep_scan_threshold else "fingerprint"
        )
        partition = partition_by_cache(file_paths, self.cwd, primary, requested, settings)
        to_scan = partition.uncached_files
        result = ScanResult(
            issues=[],
            cache_hits=partition.cache_hits,
            files_scanned=len(to_scan),
            strategy=requested,
        )

        if local_issues is None:
            local = scan_files(to_scan, self.cwd).issues if settings.scan.local_analysis else []
        else:
            scanned_paths = {relative_posix_path(p, self.cwd) for p in to_scan}
            local = [i for i in local_issues if i.file in scanned_paths]
        all_issues: List[Issue] = list(partition.cached_issues) + local

        if not to_scan:
            logger.info("[SCAN] All files cached, no model calls needed")
            result.issues = dedupe_issues(all_issues)
            return result

        level = self.router.scan_level(primary)
        result.scan_level = level

        if level == "critical":
            logger.warning("[SCAN] Request budget critical, skipping model scan")
        else:
            # A full-content scan needs both a small file set and a full budget
            used: ScanStrategy = "deep" if requested == "deep" and level == "flush" else "fingerprint"
            if used != requested:
                logger.info(f"[SCAN] Budget level {level}, fingerprint scan instead of deep")
            result.strategy = used

            if used == "deep":
                outcomes = await self.deep_scan(to_scan, primary)
            else:
                outcomes = await self.fingerprint_scan(to_scan, primary, local)
                found = [i for o in outcomes for i in o.issues]
                if found and level == "flush":
                    outcomes += await self.targeted_deep_scan(to_scan, found, primary)

            ai_issues = [i for o in outcomes if o.ok for i in o.issues]
            failed = [o for o in outcomes if not o.ok]
            result.failed_chunks = len(failed)
            result.tokens = sum(o.tokens for o in outcomes)

            if settings.scan.verify_issues and ai_issues:
                verification = verify_issues(ai_issues, local, self.cwd)
                ai_issues = verification.verified
                result.rejected = len(verification.rejected)

            if settings.scan.ai_verification and ai_issues:
                confirmation = await self.ai_verification_pass(ai_issues, primary)
                ai_issues = confirmation.verified
                result.rejected += len(confirmation.rejected)
                result.tokens += confirmation.tokens

            all_issues.extend(ai_issues)

            # Files of failed chunks stay uncached so the next run retries them
            failed_paths = {p for o in failed for p in o.paths}
            completed = [
                p for p in to_scan if relative_posix_path(p, self.cwd) not in failed_paths
            ]
            # Fingerprint results must never answer a later deep request
            update_cache_entries(partition.cache, local + ai_issues, completed, self.cwd, used)
            save_cache(self.cwd, partition.cache, settings)

        self.router.save()
        result.api_calls = self.requests_made
        result.issues = dedupe_issues(all_issues)
        logger.info(f"[SCAN] Done: {result.summary()}")
        return result
