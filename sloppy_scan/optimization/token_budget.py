"""Token budgeting for models with a small, strictly enforced input limit.

Code tokenizes at roughly 3.0-3.5 characters per token, so a single
conservative ratio is used. Over-estimating costs an unneeded split;
under-estimating costs a rejected request.
"""

import math
from typing import Dict, Optional

from ..config import get_settings

CHARS_PER_TOKEN = 3.2

# System message, response schema, prompt template and framing margin.
OVERHEAD_TOKENS = 500

MIN_CODE_TOKENS = 1000

DEFAULT_INPUT_LIMIT = 8000

MODEL_INPUT_LIMITS: Dict[str, int] = {
    "openai/gpt-4o-mini": 8000,
    "openai/gpt-4o": 8000,
    "mistral-ai/mistral-small": 8000,
    "meta-llama/Meta-Llama-3.1-70B-Instruct": 8000,
    "meta-llama/Meta-Llama-3.1-8B-Instruct": 8000,
}


def estimate_tokens(text: str) -> int:
    """Conservative token estimate: ceil(len / CHARS_PER_TOKEN)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def tokens_to_chars(tokens: int) -> int:
    return math.floor(tokens * CHARS_PER_TOKEN)


def calculate_code_budget(model_limit: int) -> int:
    """Character budget left for code in one request.

    Args:
        model_limit: Total input token ceiling of the model

    Returns:
        Characters available for code, never below MIN_CODE_TOKENS worth
    """
    code_tokens = model_limit - OVERHEAD_TOKENS
    return tokens_to_chars(max(code_tokens, MIN_CODE_TOKENS))


def get_model_input_limit(model: str, overrides: Optional[Dict[str, int]] = None) -> int:
    """Input token ceiling for a model.

    Configured overrides win over the built-in table; unknown models get the
    configured default ceiling.
    """
    if overrides is None:
        models = get_settings().models
        overrides = models.input_limits
        default = models.default_input_limit
    else:
        default = DEFAULT_INPUT_LIMIT
    if model in overrides:
        return overrides[model]
    return MODEL_INPUT_LIMITS.get(model, default)


def code_budget_for_model(model: str) -> int:
    return calculate_code_budget(get_model_input_limit(model))
