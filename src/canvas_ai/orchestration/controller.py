"""Canvas AI request orchestration.

Turns a prompt anchored to a canvas node into a streamed AI answer:

    submit(canvas, trigger, prompt)
        │
        ▼
    [pre-flight]      reject: no canvas, no trigger node, blank prompt
        │
        ▼
    [context]         trigger node alone, or with parents/children
        │
        ▼
    [response node]   loading placeholder below the trigger + edge to it
        │
        ▼
    [streaming]       every chunk rewrites the node with the running text
        │
        ▼
    [settle]          final content, or a formatted error block

Any number of submissions may run concurrently on one event loop. They
share the canvas but nothing else: each request owns its response node
handle, its accumulator and its cancellation token, and is tracked in the
RequestRegistry until it settles. Failures after pre-flight never escape
submit(); they end up as visible text in the canvas.
"""

import logging
from functools import partial
from typing import Any

from ..config import CanvasSettings
from ..events import CanvasEvent, CanvasEventKind, EventEmitter
from ..exceptions import (
    CanvasAIError,
    ContextExtractionError,
    GraphUnavailableError,
    format_error_block,
)
from ..graph.context import build_context
from ..graph.host import bind_node
from ..graph.nodes import CanvasNodeManager, calculate_node_position, get_active_graph
from ..llm.base import CompletionRequest, CompletionTransport
from .registry import (
    CanvasRequest,
    RequestRegistry,
    RequestState,
    generate_request_id,
)

logger = logging.getLogger(__name__)

EMPTY_PROMPT_MESSAGE = "请输入问题内容"
DISABLED_MESSAGE = "Canvas AI 功能已禁用"
TRIGGER_NODE_MISSING_MESSAGE = "无法获取触发节点"


class CanvasController:
    """Orchestrates canvas AI requests.

    Usage:
        controller = CanvasController(GroqTransport(config.transport), config.canvas)
        controller.events.subscribe(lambda e: print(e.kind.value, e.message))

        await controller.submit(canvas, trigger_node, "Expand on this", include_related=True)

        # On shutdown
        controller.cleanup()
    """

    def __init__(
        self,
        transport: CompletionTransport,
        settings: CanvasSettings | None = None,
        node_manager: CanvasNodeManager | None = None,
        events: EventEmitter | None = None,
    ):
        self.transport = transport
        self.settings = settings or CanvasSettings()
        self.settings.validate()

        if events is None:
            events = node_manager.events if node_manager else EventEmitter()
        self.events = events
        self.node_manager = node_manager or CanvasNodeManager(events)
        self.registry = RequestRegistry()

        if self.settings.debug_mode:
            logging.getLogger("canvas_ai").setLevel(logging.DEBUG)

    # =========================================================================
    # Public API
    # =========================================================================

    async def submit(
        self,
        graph: Any,
        trigger_node: Any,
        prompt: str,
        include_related: bool | None = None,
    ) -> str | None:
        """Submit a prompt anchored to ``trigger_node``.

        Args:
            graph: The canvas to write into
            trigger_node: Node the prompt is about
            prompt: The user's question
            include_related: Include parent and child nodes in the context;
                defaults to ``settings.include_related_default``

        Returns:
            The request id, or None if the submission was rejected before
            anything was created (including when the feature is disabled)
        """
        if not self.settings.enabled:
            self._notice(None, DISABLED_MESSAGE)
            return None

        if include_related is None:
            include_related = self.settings.include_related_default

        if graph is None:
            self._notice(GraphUnavailableError())
            return None
        if trigger_node is None:
            self._notice(ContextExtractionError("node-content", TRIGGER_NODE_MISSING_MESSAGE))
            return None
        if not prompt or not prompt.strip():
            self._notice(None, EMPTY_PROMPT_MESSAGE)
            return None

        request = CanvasRequest(
            request_id=generate_request_id(),
            trigger_node_id=getattr(trigger_node, "id", ""),
            prompt=prompt.strip(),
            include_related=include_related,
        )
        self.registry.add(request)
        logger.info(
            f"Request {request.request_id} submitted for node {request.trigger_node_id} "
            f"(include_related={include_related})"
        )
        self.events.emit(CanvasEvent(
            kind=CanvasEventKind.REQUEST_STARTED,
            request_id=request.request_id,
            node_id=request.trigger_node_id,
        ))

        try:
            await self._run(graph, trigger_node, request)
        except Exception as e:
            self._settle_failure(graph, trigger_node, request, e)
        finally:
            self.registry.remove(request.request_id)

        return request.request_id

    async def submit_from_workspace(
        self,
        workspace: Any,
        trigger_node_id: str,
        prompt: str,
        include_related: bool | None = None,
    ) -> str | None:
        """Submit against the workspace's focused canvas.

        Returns:
            The request id, or None if rejected
        """
        graph = get_active_graph(workspace)
        trigger_node = None
        if graph is not None:
            nodes = getattr(graph, "nodes", None) or {}
            trigger_node = nodes.get(trigger_node_id)
        return await self.submit(graph, trigger_node, prompt, include_related)

    def cancel(self, request_id: str) -> bool:
        """Cancel one in-flight request. Returns False if it is not in flight."""
        cancelled = self.registry.cancel(request_id)
        if cancelled:
            logger.info(f"Request {request_id} cancelled")
        return cancelled

    def cleanup(self) -> None:
        """Cancel every in-flight request. Safe to call any number of times."""
        try:
            count = self.registry.cancel_all()
            if count:
                logger.info(f"Cancelled {count} in-flight canvas request(s)")
        except Exception as e:
            logger.error(f"Error during canvas controller cleanup: {e}")

    @property
    def active_request_ids(self) -> list[str]:
        return self.registry.request_ids

    @property
    def active_count(self) -> int:
        return len(self.registry)

    # =========================================================================
    # Request lifecycle
    # =========================================================================

    async def _run(self, graph: Any, trigger_node: Any, request: CanvasRequest) -> None:
        settings = self.settings

        context = build_context(
            graph,
            trigger_node,
            include_related=request.include_related,
            max_chars=settings.max_context_chars,
        )
        request.advance(RequestState.CONTEXT_EXTRACTED)

        x, y = calculate_node_position(
            trigger_node, settings.new_node_offset_x, settings.new_node_offset_y
        )
        node = self.node_manager.create_text_node(
            graph, settings.loading_text, x, y, settings.new_node_width, settings.new_node_height
        )
        request.response_node = bind_node(node)
        request.advance(RequestState.NODE_CREATED)
        logger.info(f"Request {request.request_id}: response node {request.response_node_id} created")

        self.node_manager.create_edge(graph, trigger_node, node, settings.edge_label)

        request.advance(RequestState.STREAMING)
        response = await self.transport.send_request(CompletionRequest(
            id=request.request_id,
            context=context,
            prompt=request.prompt,
            stream=True,
            on_stream=partial(self._on_chunk, graph, request),
            cancellation=request.token,
        ))

        if request.cancelled:
            self._settle_cancelled(request)
            return

        # The transport's content is authoritative; fall back to the
        # streamed text only when it returned nothing.
        final_text = response.content or request.accumulated
        self.node_manager.update_node_content(graph, request.response_node, final_text)
        request.advance(RequestState.SUCCEEDED)
        logger.info(
            f"Request {request.request_id} completed "
            f"({request.chunk_count} chunks, {response.tokens_used} tokens)"
        )
        self.events.emit(CanvasEvent(
            kind=CanvasEventKind.REQUEST_COMPLETED,
            request_id=request.request_id,
            node_id=request.response_node_id,
        ))

    def _on_chunk(self, graph: Any, request: CanvasRequest, chunk: str) -> None:
        if request.cancelled:
            return

        request.accumulated += chunk
        request.chunk_count += 1
        if request.chunk_count == 1:
            self.events.emit(CanvasEvent(
                kind=CanvasEventKind.REQUEST_STREAMING,
                request_id=request.request_id,
                node_id=request.response_node_id,
            ))

        try:
            self.node_manager.update_node_content(graph, request.response_node, request.accumulated)
        except CanvasAIError as e:
            # The final update rewrites the whole text anyway.
            logger.warning(f"Request {request.request_id}: streaming update failed: {e}")

    def _settle_cancelled(self, request: CanvasRequest) -> None:
        request.advance(RequestState.CANCELLED)
        logger.info(f"Request {request.request_id} cancelled; result discarded")
        self.events.emit(CanvasEvent(
            kind=CanvasEventKind.REQUEST_CANCELLED,
            request_id=request.request_id,
            node_id=request.response_node_id,
        ))

    def _settle_failure(
        self,
        graph: Any,
        trigger_node: Any,
        request: CanvasRequest,
        error: Exception,
    ) -> None:
        if request.cancelled:
            self._settle_cancelled(request)
            return

        request.advance(RequestState.FAILED)
        logger.error(f"Request {request.request_id} failed: {error}")
        text = format_error_block(error)

        try:
            if request.response_node is not None:
                self.node_manager.update_node_content(graph, request.response_node, text)
            else:
                # Failed before the response node existed; show the error in a node of its own.
                settings = self.settings
                x, y = calculate_node_position(
                    trigger_node, settings.new_node_offset_x, settings.new_node_offset_y
                )
                node = self.node_manager.create_text_node(
                    graph, text, x, y, settings.new_node_width, settings.new_node_height
                )
                request.response_node = bind_node(node)
        except Exception as e:
            logger.error(f"Request {request.request_id}: could not show error in canvas: {e}")
            self._notice(error)

        self.events.emit(CanvasEvent(
            kind=CanvasEventKind.REQUEST_FAILED,
            message=text,
            request_id=request.request_id,
            node_id=request.response_node_id,
            error=error,
        ))

    def _notice(self, error: Exception | None, message: str | None = None) -> None:
        if message is None:
            message = error.message if isinstance(error, CanvasAIError) else str(error)
        logger.warning(f"Canvas AI notice: {message}")
        self.events.emit(CanvasEvent(kind=CanvasEventKind.NOTICE, message=message, error=error))
