"""Model-call collaborators.

The pipeline depends only on the `ModelCaller` protocol; `LiteLLMCaller`
is the production implementation and `MockCaller` a scripted one.
"""

from .protocol import ModelCaller, ModelResponse
from .litellm_caller import LiteLLMCaller
from .mock_caller import MockCaller

__all__ = [
    "ModelCaller",
    "ModelResponse",
    "LiteLLMCaller",
    "MockCaller",
]
