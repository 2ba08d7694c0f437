"""Greedy packing of fingerprints into token-budgeted requests."""

import logging
from typing import List

from ..models import Fingerprint, FingerprintChunk
from ..optimization.token_budget import OVERHEAD_TOKENS, get_model_input_limit
from ..prompts import FINGERPRINT_GUIDE, FINGERPRINT_INTRO, LOCALLY_CAUGHT_NOTE

logger = logging.getLogger(__name__)


def build_fingerprint_prompt(fingerprints: List[Fingerprint]) -> str:
    file_count = len(fingerprints)
    hotspot_count = sum(len(fp.hotspots) for fp in fingerprints)
    local_count = sum(fp.local_issue_count for fp in fingerprints)

    prompt = FINGERPRINT_INTRO.format(file_count=file_count)
    if local_count > 0:
        prompt += LOCALLY_CAUGHT_NOTE
    prompt += FINGERPRINT_GUIDE
    if hotspot_count > 0:
        prompt += f"Note: {hotspot_count} hotspot lines flagged across {file_count} files.\n"
    prompt += "\nFILE FINGERPRINTS:\n\n"
    prompt += "".join(fp.text + "\n" for fp in fingerprints)
    return prompt


def pack_fingerprints(fingerprints: List[Fingerprint], model: str) -> List[FingerprintChunk]:
    """Pack fingerprints into chunks for a model.

    Files with the most hotspots go first. A chunk is closed when the next
    fingerprint would push it past the budget; a single fingerprint larger
    than the budget still gets a chunk of its own.
    """
    budget_tokens = get_model_input_limit(model) - OVERHEAD_TOKENS
    ordered = sorted(fingerprints, key=lambda fp: len(fp.hotspots), reverse=True)

    chunks: List[FingerprintChunk] = []
    current: List[Fingerprint] = []
    current_tokens = 0

    for fp in ordered:
        if current and current_tokens + fp.tokens > budget_tokens:
            chunks.append(FingerprintChunk(current, current_tokens, build_fingerprint_prompt(current)))
            current = []
            current_tokens = 0
        current.append(fp)
        current_tokens += fp.tokens

    if current:
        chunks.append(FingerprintChunk(current, current_tokens, build_fingerprint_prompt(current)))

    logger.info(
        f"[FINGERPRINT] {len(fingerprints)} fingerprints -> {len(chunks)} chunks "
        f"(budget {budget_tokens} tokens)"
    )
    return chunks
