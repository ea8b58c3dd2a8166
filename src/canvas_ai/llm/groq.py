"""Groq completion transport.

Streams completions from Groq, or from any OpenAI-compatible endpoint the
groq SDK can be pointed at through ``TransportConfig.api_endpoint``.
"""

import asyncio
import logging
import os
import time
from typing import Any

from ..config import TransportConfig
from ..exceptions import (
    TransportCancelledError,
    TransportError,
    TransportErrorKind,
    classify_transport_error,
)
from .base import CompletionRequest, CompletionResponse, CompletionTransport

logger = logging.getLogger(__name__)

# Retrying these cannot succeed.
_NON_RETRYABLE = {TransportErrorKind.AUTH, TransportErrorKind.CANCELLED}


def _wrap_error(error: Exception) -> TransportError:
    if isinstance(error, TransportError):
        return error
    if isinstance(error, asyncio.TimeoutError):
        return TransportError("Request timeout", kind=TransportErrorKind.TIMEOUT, cause=error)
    return TransportError(
        str(error) or type(error).__name__,
        status_code=getattr(error, "status_code", None),
        cause=error,
    )


class GroqTransport(CompletionTransport):
    """Groq transport with retries and cooperative cancellation.

    Usage:
        transport = GroqTransport(config=TransportConfig(api_key="gsk-..."))

        response = await transport.send_request(CompletionRequest(
            id="canvas_1",
            context="## 当前节点内容\\nHello",
            prompt="Translate to French",
            stream=True,
            on_stream=print,
        ))
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        api_key: str | None = None,
    ):
        """Initialize the transport.

        Args:
            config: Transport configuration
            api_key: Overrides ``config.api_key`` (or set GROQ_API_KEY)
        """
        self.config = config or TransportConfig()
        self.config.api_key = api_key or self.config.api_key or os.environ.get("GROQ_API_KEY")

        if not self.config.api_key:
            raise ValueError("API key required. Set GROQ_API_KEY or pass api_key.")

        self.system_prompt = self.config.system_prompt
        self._client = None

    @property
    def client(self):
        """Lazy-load the Groq client."""
        if self._client is None:
            try:
                from groq import AsyncGroq
            except ImportError:
                raise ImportError(
                    "groq package required. Install with: pip install groq"
                )
            self._client = AsyncGroq(
                api_key=self.config.api_key,
                base_url=self.config.api_endpoint,
                timeout=self.config.timeout_seconds,
                max_retries=0,  # retries are handled here
            )
        return self._client

    async def send_request(self, request: CompletionRequest) -> CompletionResponse:
        """Run a completion, streaming chunks to ``request.on_stream`` if asked."""
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self.build_messages(request),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

        if request.stream:
            return await self._stream(request, kwargs)

        response = await self._create_with_retries(request, kwargs)
        choice = response.choices[0]
        return CompletionResponse(
            id=request.id,
            content=choice.message.content or "",
            model=response.model,
            timestamp=time.time(),
            tokens_used=response.usage.total_tokens if response.usage else 0,
            finish_reason=choice.finish_reason,
        )

    async def _create_with_retries(self, request: CompletionRequest, kwargs: dict[str, Any]) -> Any:
        last_error: TransportError | None = None
        for attempt in range(max(1, self.config.max_retries)):
            if request.cancellation:
                request.cancellation.raise_if_cancelled()
            try:
                return await self.client.chat.completions.create(**kwargs)
            except Exception as e:
                last_error = _wrap_error(e)
                kind = classify_transport_error(last_error)
                logger.warning(f"Request {request.id} attempt {attempt + 1} failed ({kind.value}): {e}")
                if kind in _NON_RETRYABLE:
                    break
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.retry_delay_seconds * (attempt + 1))
        raise last_error

    async def _stream(self, request: CompletionRequest, kwargs: dict[str, Any]) -> CompletionResponse:
        stream = await self._create_with_retries(request, {**kwargs, "stream": True})

        parts: list[str] = []
        model = self.config.model
        finish_reason: str | None = None
        tokens_used = 0

        try:
            async for chunk in stream:
                if request.cancellation and request.cancellation.cancelled:
                    raise TransportCancelledError()

                model = getattr(chunk, "model", None) or model
                usage = getattr(getattr(chunk, "x_groq", None), "usage", None)
                if usage is not None:
                    tokens_used = usage.total_tokens

                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    finish_reason = choice.finish_reason

                delta = choice.delta.content
                if delta:
                    parts.append(delta)
                    if request.on_stream:
                        request.on_stream(delta)
        except TransportError:
            await self._close(stream)
            raise
        except Exception as e:
            await self._close(stream)
            raise _wrap_error(e)

        return CompletionResponse(
            id=request.id,
            content="".join(parts),
            model=model,
            timestamp=time.time(),
            tokens_used=tokens_used,
            finish_reason=finish_reason,
        )

    async def _close(self, stream: Any) -> None:
        close = getattr(stream, "close", None)
        if close is None:
            return
        try:
            await close()
        except Exception as e:
            logger.debug(f"Error closing stream: {e}")
