from functools import lru_cache
from typing import Optional, Sequence
import logging

import tiktoken

logger = logging.getLogger(__name__)

# Max characters to pass to tiktoken encoder (prevents hangs on pathological content)
TOKEN_ENCODE_CHAR_CAP = 5_000_000


@lru_cache(maxsize=1)
def _get_encoding() -> Optional[tiktoken.Encoding]:
    # Loaded on first use: the encoding file may need a download.
    try:
        return tiktoken.get_encoding("o200k_base")
    except Exception as e:
        logger.warning(f"tiktoken encoding unavailable, using estimation: {e}")
        return None


def looks_pathological(text: str, threshold: float = 0.15) -> bool:
    """
    Detect low-entropy content that may cause tiktoken to hang.

    Args:
        text: Text to analyze
        threshold: Ratio of distinct chars to total length below which content is considered pathological

    Returns:
        True if content appears to be highly repetitive
    """
    if len(text) < 10000:  # Too small to matter
        return False
    return len(set(text)) / len(text) < threshold


def safe_estimate_tokens(text: str) -> int:
    """Estimate token count without using tiktoken (fast fallback)."""
    return max(1, len(text) // 4)


def count_tokens(texts: Sequence[str]) -> int:
    """Count tokens actually consumed by texts.

    Used for usage reporting only; request budgeting goes through
    `optimization.token_budget.estimate_tokens`, which over-estimates.
    """
    enc = _get_encoding()
    if enc is None:
        return sum(safe_estimate_tokens(t) for t in texts)

    total_tokens = 0
    for text in texts:
        if len(text) > TOKEN_ENCODE_CHAR_CAP or looks_pathological(text):
            logger.debug(f"Using estimation for {len(text)} chars of content")
            total_tokens += safe_estimate_tokens(text)
            continue
        try:
            total_tokens += len(enc.encode(text, disallowed_special=()))
        except Exception as e:
            logger.warning(f"tiktoken encoding failed: {e}, falling back to estimation")
            total_tokens += safe_estimate_tokens(text)

    return total_tokens
