"""Mock completion transport for testing.

Returns scripted responses without any network access.
"""

import asyncio
import time
from typing import Any

from .base import CompletionRequest, CompletionResponse, CompletionTransport


class MockTransport(CompletionTransport):
    """Transport that replays configured responses.

    Usage:
        transport = MockTransport(default_response="Hello World")

        # Or with a response sequence, mixing in failures
        transport = MockTransport(responses=["First", Exception("429 Rate limit")])

    Streaming requests receive the response word by word, each word followed
    by a space, with ``chunk_delay`` seconds between chunks.
    """

    def __init__(
        self,
        default_response: str = "Mock response",
        responses: list[str | Exception] | None = None,
        chunk_delay: float = 0.0,
        model: str = "mock",
    ):
        self.default_response = default_response
        self.responses = list(responses) if responses else []
        self.chunk_delay = chunk_delay
        self.model = model
        self.requests: list[CompletionRequest] = []  # Track all calls for assertions

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def chunks_for(self, content: str) -> list[str]:
        return [word + " " for word in content.split(" ")] if content else []

    async def send_request(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)

        response: Any = self.responses.pop(0) if self.responses else self.default_response
        if isinstance(response, Exception):
            raise response

        if request.stream and request.on_stream:
            for chunk in self.chunks_for(response):
                # Yield between chunks so concurrent requests interleave.
                await asyncio.sleep(self.chunk_delay)
                request.on_stream(chunk)
        else:
            await asyncio.sleep(0)

        return CompletionResponse(
            id=request.id,
            content=response,
            model=self.model,
            timestamp=time.time(),
            tokens_used=len(response.split()),
            finish_reason="stop",
        )

    def reset(self) -> None:
        """Reset call tracking."""
        self.requests.clear()
