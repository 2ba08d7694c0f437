"""Per-model request budget tracking and model routing.

Rate limits are per model, so spreading requests over several models
multiplies daily capacity. High-tier models are kept for deep scans;
fingerprint scans go to low-tier models first.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..cache.errors import StateError
from ..cache.state_store import read_state, write_state
from ..config import Settings, get_settings
from ..models import ScanLevel, ScanStrategy

logger = logging.getLogger(__name__)

Tier = Literal["high", "low"]

# Scan level thresholds, in requests remaining today
CRITICAL_BELOW_TOTAL = 15
FLUSH_AT_PRIMARY = 20
FLUSH_AT_TOTAL = 40


@dataclass(frozen=True)
class ModelTier:
    requests_per_day: int
    requests_per_minute: int
    input_tokens: int
    output_tokens: int
    concurrent: int
    tier: Tier


_HIGH = ModelTier(50, 10, 8000, 4000, 2, "high")
_LOW = ModelTier(150, 15, 8000, 4000, 5, "low")

MODEL_TIERS: Dict[str, ModelTier] = {
    "openai/gpt-4o": _HIGH,
    "openai/gpt-4o-mini": _HIGH,
    "mistral-ai/mistral-small": _LOW,
    "meta-llama/Meta-Llama-3.1-70B-Instruct": _LOW,
    "meta-llama/Meta-Llama-3.1-8B-Instruct": _LOW,
}

# Unknown models are assumed to have the tightest quota
DEFAULT_TIER = _HIGH


def get_model_tier(model: str) -> ModelTier:
    return MODEL_TIERS.get(model, DEFAULT_TIER)


class BudgetEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    model: str
    date: str  # YYYY-MM-DD, UTC
    requests_used: int = Field(0, alias="requestsUsed", ge=0)
    last_request_at: int = Field(0, alias="lastRequestAt")  # epoch ms


class BudgetState(BaseModel):
    entries: List[BudgetEntry] = Field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BudgetRouter:
    """Tracks requests used today per model and picks models for scans.

    Loaded once per scan and saved once by the caller via `save()`. Entries
    from earlier days are dropped on load, which resets the counters.
    """

    def __init__(
        self,
        cwd: str,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.settings = settings or get_settings()
        self.path: Path = self.settings.state_path(cwd, self.settings.state.budget_file)
        self._clock = clock
        self._state = self._load()

    def _today(self) -> str:
        return self._clock().date().isoformat()

    def _load(self) -> BudgetState:
        try:
            state = read_state(self.path, BudgetState)
        except StateError as e:
            logger.warning(f"[ROUTER] Ignoring unusable budget file: {e}")
            return BudgetState()
        if state is None:
            return BudgetState()
        today = self._today()
        state.entries = [e for e in state.entries if e.date == today]
        return state

    def save(self) -> bool:
        """Persist today's usage. Returns False (after logging) on failure."""
        try:
            write_state(self.path, self._state)
        except StateError as e:
            logger.warning(f"[ROUTER] Failed to save budget: {e}")
            return False
        return True

    def _entry(self, model: str) -> Optional[BudgetEntry]:
        today = self._today()
        for entry in self._state.entries:
            if entry.model == model and entry.date == today:
                return entry
        return None

    def record_request(self, model: str) -> None:
        """Count one request against a model's daily quota."""
        entry = self._entry(model)
        if entry is None:
            entry = BudgetEntry(model=model, date=self._today())
            self._state.entries.append(entry)
        entry.requests_used += 1
        entry.last_request_at = int(time.time() * 1000)

    def used(self, model: str) -> int:
        entry = self._entry(model)
        return entry.requests_used if entry else 0

    def remaining(self, model: str) -> int:
        return max(0, get_model_tier(model).requests_per_day - self.used(model))

    def total_remaining(self) -> int:
        """Remaining requests summed over every model in the tier table."""
        return sum(self.remaining(model) for model in MODEL_TIERS)

    def find_available_model(self, tier: Optional[Tier] = None) -> Optional[str]:
        """Known model with the most remaining requests, optionally within a tier."""
        candidates = [
            model
            for model, t in MODEL_TIERS.items()
            if (tier is None or t.tier == tier) and self.remaining(model) > 0
        ]
        if not candidates:
            return None
        return max(candidates, key=self.remaining)

    def select_model(self, primary_model: str, scan_type: ScanStrategy) -> str:
        """Pick the model for one request.

        Deep scans use the primary model while it has budget, then the best
        low-tier model. Fingerprint scans use the best low-tier model first,
        then the primary, then any model with budget. When everything is
        exhausted the primary model is returned anyway.
        """
        if scan_type == "deep":
            if self.remaining(primary_model) > 0:
                return primary_model
            return self.find_available_model("low") or primary_model

        low_tier = self.find_available_model("low")
        if low_tier:
            return low_tier
        if self.remaining(primary_model) > 0:
            return primary_model
        return self.find_available_model() or primary_model

    def scan_level(self, primary_model: str) -> ScanLevel:
        """Coarse aggressiveness band from remaining capacity.

        critical: skip model calls; normal: fingerprint only; flush: everything.
        """
        total = self.total_remaining()
        if total < CRITICAL_BELOW_TOTAL:
            return "critical"
        if self.remaining(primary_model) >= FLUSH_AT_PRIMARY or total >= FLUSH_AT_TOTAL:
            return "flush"
        return "normal"

    def min_request_interval(self, models: Iterable[str]) -> float:
        """Seconds between requests that keeps every given model under its per-minute limit."""
        rpms = [get_model_tier(m).requests_per_minute for m in models]
        if not rpms:
            return 0.0
        return 60.0 / min(rpms)

    def log_status(self, primary_model: str) -> None:
        level = self.scan_level(primary_model)
        logger.info(
            f"[ROUTER] Budget: {self.remaining(primary_model)} primary ({primary_model}), "
            f"{self.total_remaining()} total across all models [{level}]"
        )
