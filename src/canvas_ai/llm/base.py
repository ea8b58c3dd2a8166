"""Abstract base classes for completion transports.

These define what the canvas orchestrator needs from an AI backend. Host
applications use one of the bundled transports or implement their own.

A transport receives a CompletionRequest carrying the assembled context,
the user's prompt and, for streaming requests, an ``on_stream`` callback.
Chunks must be delivered to ``on_stream`` in generation order. The final
CompletionResponse carries the authoritative full content.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable
import time

from ..exceptions import TransportCancelledError

StreamCallback = Callable[[str], None]


class CancellationToken:
    """Cooperative cancellation flag shared by a request and its transport."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        """Raise TransportCancelledError once cancel() was called."""
        if self._cancelled:
            raise TransportCancelledError()


@dataclass
class CompletionRequest:
    """A single completion request."""

    id: str
    context: str
    prompt: str
    stream: bool = False
    on_stream: StreamCallback | None = None
    cancellation: CancellationToken | None = None


@dataclass
class CompletionResponse:
    """Response from a completion transport."""

    id: str
    content: str
    model: str = ""
    timestamp: float = field(default_factory=time.time)
    tokens_used: int = 0
    finish_reason: str | None = "stop"


class CompletionTransport(ABC):
    """Abstract interface for completion backends.

    Implementations own their retry and timeout policies; callers only see
    the final response or a raised error.
    """

    system_prompt: str | None = None

    @abstractmethod
    async def send_request(self, request: CompletionRequest) -> CompletionResponse:
        """Run a completion.

        Args:
            request: The request; when ``request.stream`` is true, chunks are
                passed to ``request.on_stream`` as they arrive

        Returns:
            CompletionResponse with the full content

        Raises:
            TransportError: On any backend failure
        """
        ...

    def build_messages(self, request: CompletionRequest) -> list[dict[str, Any]]:
        """Chat messages for a request: system prompt, then context + prompt."""
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})

        user_content = request.prompt
        if request.context:
            user_content = f"{request.context}\n\n---\n\n{request.prompt}"
        messages.append({"role": "user", "content": user_content})
        return messages
