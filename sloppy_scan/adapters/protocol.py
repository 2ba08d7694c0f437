"""Model-call collaborator protocol."""

from dataclasses import dataclass
from typing import Any, Dict, List, Protocol


@dataclass
class ModelResponse:
    """Raw reply of one request."""

    content: str
    tokens_used: int = 0


class ModelCaller(Protocol):
    """Interface the scan pipeline needs from whatever invokes the model.

    This is a Protocol (structural typing) - callers don't need to inherit
    from it. Implementations must raise `CapacityExceededError` when a
    request was rejected for its size; that is the only failure the pipeline
    answers by splitting and retrying. Timeouts and cancellation are the
    implementation's business.
    """

    async def call(
        self,
        model: str,
        messages: List[Dict[str, str]],
        response_format: Dict[str, Any],
    ) -> ModelResponse:
        ...
