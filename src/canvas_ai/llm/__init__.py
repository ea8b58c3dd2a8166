"""Completion transport layer for canvas-ai.

Implementations:
    - GroqTransport: Streaming completions via the Groq API
    - MockTransport: Scripted responses for tests

Usage:
    from canvas_ai.llm import create_transport

    transport = create_transport(config=config.transport)
"""

from canvas_ai.llm.base import (
    CancellationToken,
    CompletionRequest,
    CompletionResponse,
    CompletionTransport,
    StreamCallback,
)
from canvas_ai.llm.factory import create_transport
from canvas_ai.llm.mock import MockTransport

__all__ = [
    "CancellationToken",
    "CompletionRequest",
    "CompletionResponse",
    "CompletionTransport",
    "StreamCallback",
    "create_transport",
    "MockTransport",
]
