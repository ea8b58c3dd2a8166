"""Factory functions for creating completion transports."""

import os
from typing import Any

from ..config import TransportConfig
from .base import CompletionTransport


def create_transport(
    provider: str = "auto",
    config: TransportConfig | None = None,
    **kwargs: Any,
) -> CompletionTransport:
    """Create a completion transport by name.

    Args:
        provider: Transport name ("groq", "mock", "auto")
        config: Transport configuration, used by network transports
        **kwargs: Transport-specific arguments

    Returns:
        Configured transport

    Examples:
        # Groq if an API key is configured, otherwise a mock
        transport = create_transport(config=config.transport)

        # Mock for testing
        transport = create_transport("mock", responses=["Response 1"])
    """
    if provider == "auto":
        has_key = bool((config and config.api_key) or os.environ.get("GROQ_API_KEY"))
        provider = "groq" if has_key else "mock"

    if provider == "groq":
        from .groq import GroqTransport
        return GroqTransport(config=config, **kwargs)

    elif provider == "mock":
        from .mock import MockTransport
        return MockTransport(**kwargs)

    else:
        raise ValueError(f"Unknown provider: {provider}")
