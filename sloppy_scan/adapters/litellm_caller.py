"""ModelCaller backed by LiteLLM."""

import logging
from typing import Any, Dict, List, Optional

import litellm

from ..config import Settings, get_settings
from ..errors import (
    AuthenticationException,
    CapacityExceededError,
    RateLimitException,
    ScanException,
    TransientRequestError,
)
from ..utils.token_counter import count_tokens
from .protocol import ModelResponse

logger = logging.getLogger(__name__)


def _retry_after(exc: Exception) -> Optional[float]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("retry-after") if hasattr(headers, "get") else None
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def translate_error(exc: Exception, model: str) -> ScanException:
    """Map a LiteLLM/provider exception onto the scan error taxonomy."""
    status_code = getattr(exc, "status_code", 0) or 0
    if isinstance(exc, litellm.ContextWindowExceededError) or status_code == 413:
        return CapacityExceededError(str(exc), model=model)
    if isinstance(exc, litellm.RateLimitError) or status_code == 429:
        return RateLimitException(str(exc), retry_after=_retry_after(exc), model=model)
    if isinstance(exc, litellm.AuthenticationError) or status_code in (401, 403):
        return AuthenticationException(str(exc), model=model)
    return TransientRequestError(str(exc), status_code=status_code, model=model)


class LiteLLMCaller:
    """Calls models through `litellm.acompletion`.

    Model ids are the tier-table ids ("openai/gpt-4o-mini"); the configured
    provider prefix is prepended for routing.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def _route(self, model: str) -> str:
        prefix = self.settings.models.provider_prefix
        if prefix and not model.startswith(prefix):
            return f"{prefix}{model}"
        return model

    async def call(
        self,
        model: str,
        messages: List[Dict[str, str]],
        response_format: Dict[str, Any],
    ) -> ModelResponse:
        try:
            response = await litellm.acompletion(
                model=self._route(model),
                messages=messages,
                response_format=response_format,
                timeout=self.settings.models.request_timeout,
            )
        except Exception as e:
            error = translate_error(e, model)
            logger.debug(f"[LITELLM] {model} request failed: {error}")
            raise error from e

        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", 0) if usage else 0
        if not tokens:
            tokens = count_tokens([m.get("content", "") for m in messages] + [content])
        return ModelResponse(content=content, tokens_used=tokens)
