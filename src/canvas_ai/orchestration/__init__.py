"""Canvas AI request orchestration.

Usage:
    from canvas_ai.orchestration import CanvasController
    from canvas_ai.llm import create_transport

    controller = CanvasController(create_transport(config=config.transport), config.canvas)
    request_id = await controller.submit(canvas, trigger_node, "Summarize")
"""

from .controller import CanvasController
from .registry import (
    REQUEST_ID_PREFIX,
    CanvasRequest,
    RequestRegistry,
    RequestState,
    generate_request_id,
)

__all__ = [
    "CanvasController",
    "REQUEST_ID_PREFIX",
    "CanvasRequest",
    "RequestRegistry",
    "RequestState",
    "generate_request_id",
]
