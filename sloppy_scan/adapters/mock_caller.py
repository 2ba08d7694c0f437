"""Scripted ModelCaller for tests and dry runs."""

from typing import Any, Callable, Dict, List, Optional, Union

from .protocol import ModelResponse

Reply = Union[str, ModelResponse, BaseException]
Responder = Callable[[str, List[Dict[str, str]]], Reply]


class MockCaller:
    """Replies from a script instead of a model.

    A responder callable decides each reply from (model, messages); without
    one, queued replies are returned in order and an empty issue list after
    that. Exceptions in the script are raised. Every call is recorded.
    """

    def __init__(
        self,
        replies: Optional[List[Reply]] = None,
        responder: Optional[Responder] = None,
        tokens_per_call: int = 100,
    ):
        self._replies = list(replies or [])
        self._responder = responder
        self.tokens_per_call = tokens_per_call
        self.calls: List[Dict[str, Any]] = []

    async def call(
        self,
        model: str,
        messages: List[Dict[str, str]],
        response_format: Dict[str, Any],
    ) -> ModelResponse:
        self.calls.append({"model": model, "messages": messages, "response_format": response_format})

        if self._responder is not None:
            reply = self._responder(model, messages)
        elif self._replies:
            reply = self._replies.pop(0)
        else:
            reply = '{"issues": []}'

        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, ModelResponse):
            return reply
        return ModelResponse(content=reply, tokens_used=self.tokens_per_call)
