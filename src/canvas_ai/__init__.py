"""Canvas AI - streamed AI answers inside a canvas graph.

A prompt anchored to a canvas node becomes an AI completion that is
streamed into a new node placed below the trigger and connected to it:
- Context from the trigger node, optionally with its parents and children
- Any number of concurrent, independently cancellable requests
- Edge creation that falls back to a data splice when the host API fails
- Failures shown as classified error text instead of raised exceptions

Example:
    from canvas_ai import CanvasController, load_config
    from canvas_ai.llm import create_transport

    config = load_config()
    controller = CanvasController(create_transport(config=config.transport), config.canvas)

    await controller.submit(canvas, trigger_node, "What are the risks here?")
"""

__version__ = "0.1.0"

from canvas_ai.config import (
    CanvasAIConfig,
    CanvasSettings,
    TransportConfig,
    load_config,
)
from canvas_ai.events import CanvasEvent, CanvasEventKind, EventEmitter
from canvas_ai.exceptions import (
    CanvasAIError,
    ConfigurationError,
    ContextExtractionError,
    GraphUnavailableError,
    NodeOperationError,
    TransportCancelledError,
    TransportError,
    TransportErrorKind,
    classify_transport_error,
    describe_error,
    format_error_block,
)
from canvas_ai.graph import (
    CanvasEdge,
    CanvasNode,
    CanvasNodeManager,
    InMemoryCanvas,
    extract_current_node_context,
    extract_node_content,
    extract_related_nodes_context,
    get_active_graph,
)
from canvas_ai.llm import (
    CompletionRequest,
    CompletionResponse,
    CompletionTransport,
    create_transport,
)
from canvas_ai.orchestration import CanvasController

__all__ = [
    "__version__",
    # Config
    "CanvasAIConfig",
    "CanvasSettings",
    "TransportConfig",
    "load_config",
    # Events
    "CanvasEvent",
    "CanvasEventKind",
    "EventEmitter",
    # Errors
    "CanvasAIError",
    "ConfigurationError",
    "ContextExtractionError",
    "GraphUnavailableError",
    "NodeOperationError",
    "TransportCancelledError",
    "TransportError",
    "TransportErrorKind",
    "classify_transport_error",
    "describe_error",
    "format_error_block",
    # Graph
    "CanvasEdge",
    "CanvasNode",
    "CanvasNodeManager",
    "InMemoryCanvas",
    "extract_current_node_context",
    "extract_node_content",
    "extract_related_nodes_context",
    "get_active_graph",
    # Transport
    "CompletionRequest",
    "CompletionResponse",
    "CompletionTransport",
    "create_transport",
    # Orchestration
    "CanvasController",
]
