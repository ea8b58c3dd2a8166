"""Tests for CanvasController request orchestration."""

import asyncio
import logging
import re
import time

import pytest

from canvas_ai.config import LOADING_TEXT, CanvasSettings
from canvas_ai.events import CanvasEventKind
from canvas_ai.exceptions import (
    ERROR_HEADER,
    ERROR_HINT,
    TransportError,
    format_error_block,
)
from canvas_ai.graph.context import CHILD_NODES_LABEL, CURRENT_NODE_LABEL, PARENT_NODES_LABEL
from canvas_ai.graph.memory import CanvasView, InMemoryCanvas, InMemoryWorkspace
from canvas_ai.graph.models import CanvasNode
from canvas_ai.llm.base import CompletionRequest, CompletionResponse, CompletionTransport
from canvas_ai.llm.mock import MockTransport
from canvas_ai.orchestration import CanvasController


# =============================================================================
# Helpers
# =============================================================================


class RecordingTransport(MockTransport):
    """MockTransport that snapshots one node's text before and during streaming."""

    def __init__(self, canvas, **kwargs):
        super().__init__(**kwargs)
        self.canvas = canvas
        self.snapshots: list[str] = []

    def _response_text(self):
        response_nodes = [n for n in self.canvas.nodes.values() if n.id.startswith("node-")]
        return response_nodes[-1].text

    async def send_request(self, request: CompletionRequest) -> CompletionResponse:
        self.snapshots.append(self._response_text())
        on_stream = request.on_stream

        def record(chunk):
            on_stream(chunk)
            self.snapshots.append(self._response_text())

        request.on_stream = record
        return await super().send_request(request)


class EchoTransport(MockTransport):
    """Answers every prompt with "Answer to <prompt>"."""

    async def send_request(self, request: CompletionRequest) -> CompletionResponse:
        self.responses.append(f"Answer to {request.prompt}")
        return await super().send_request(request)


class StreamOnlyTransport(CompletionTransport):
    """Streams chunks but returns an empty final content."""

    async def send_request(self, request: CompletionRequest) -> CompletionResponse:
        for piece in ("partial ", "answer"):
            request.on_stream(piece)
        return CompletionResponse(id=request.id, content="", timestamp=time.time())


def response_node_for(canvas, trigger_id):
    """Node connected from the trigger."""
    targets = [e.to_node for e in canvas.edges if e.from_node == trigger_id]
    assert len(targets) == 1, f"expected one response node for {trigger_id}, got {targets}"
    return canvas.nodes[targets[0]]


def kinds(events):
    return [e.kind for e in events.history]


async def wait_for(event_kind, events, timeout=2.0):
    seen = asyncio.Event()
    unsubscribe = events.subscribe(lambda e: seen.set() if e.kind is event_kind else None)
    try:
        await asyncio.wait_for(seen.wait(), timeout)
    finally:
        unsubscribe()


# =============================================================================
# Successful requests
# =============================================================================


class TestSubmitSuccess:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_full_flow(self, controller, canvas, trigger_node, mock_transport, events):
        request_id = await controller.submit(canvas, trigger_node, "  Explain it  ")

        assert re.match(r"^canvas_\d+_\d+_[0-9a-f]{8}$", request_id)

        node = response_node_for(canvas, "trigger")
        assert node.text == "Hello World"
        assert (node.x, node.y, node.width, node.height) == (100, 350, 400, 200)

        sent = mock_transport.requests[0]
        assert sent.id == request_id
        assert sent.prompt == "Explain it"
        assert sent.context == f"{CURRENT_NODE_LABEL}\nWhat is a canvas?"
        assert sent.stream is True

        assert kinds(events) == [
            CanvasEventKind.REQUEST_STARTED,
            CanvasEventKind.REQUEST_STREAMING,
            CanvasEventKind.REQUEST_COMPLETED,
        ]
        assert events.history[-1].node_id == node.id
        assert controller.active_count == 0

    @pytest.mark.asyncio
    async def test_edge_points_down(self, controller, canvas, trigger_node):
        await controller.submit(canvas, trigger_node, "Go")

        edge = canvas.edges[0]
        assert (edge.from_side.value, edge.to_side.value) == ("bottom", "top")

    @pytest.mark.asyncio
    async def test_loading_text_then_streamed_prefixes(self, canvas, trigger_node, events):
        transport = RecordingTransport(canvas, default_response="one two three")
        controller = CanvasController(transport, events=events)

        await controller.submit(canvas, trigger_node, "Count")

        assert transport.snapshots[0] == LOADING_TEXT
        assert transport.snapshots[1:] == ["one ", "one two ", "one two three "]
        assert response_node_for(canvas, "trigger").text == "one two three"

    @pytest.mark.asyncio
    async def test_final_text_falls_back_to_stream(self, canvas, trigger_node):
        controller = CanvasController(StreamOnlyTransport())

        await controller.submit(canvas, trigger_node, "Go")

        assert response_node_for(canvas, "trigger").text == "partial answer"

    @pytest.mark.asyncio
    async def test_settings_applied(self, canvas, trigger_node, mock_transport):
        settings = CanvasSettings(
            new_node_offset_x=-50,
            new_node_offset_y=20,
            new_node_width=300,
            new_node_height=120,
            loading_text="...",
            edge_label="AI",
        )
        controller = CanvasController(mock_transport, settings)

        await controller.submit(canvas, trigger_node, "Go")

        node = response_node_for(canvas, "trigger")
        assert (node.x, node.y, node.width, node.height) == (50, 220, 300, 120)
        assert canvas.create_node_calls[0]["text"] == "..."
        assert canvas.edges[0].label == "AI"

    @pytest.mark.asyncio
    async def test_no_save_during_request(self, controller, canvas, trigger_node):
        await controller.submit(canvas, trigger_node, "Go")

        # Only the edge API requests a save; node creation and updates never do.
        assert canvas.save_requests == 1
        assert canvas.frame_requests >= 2

    @pytest.mark.asyncio
    async def test_plain_host_nodes(self, trigger_node, mock_transport):
        canvas = InMemoryCanvas([trigger_node], rich_nodes=False)
        controller = CanvasController(mock_transport)

        await controller.submit(canvas, trigger_node, "Go")

        assert response_node_for(canvas, "trigger").text == "Hello World"


class TestContextSelection:
    """Tests for include_related handling."""

    @pytest.mark.asyncio
    async def test_related_included(self, family_canvas, mock_transport):
        controller = CanvasController(mock_transport)

        await controller.submit(family_canvas, family_canvas.nodes["me"], "Go", include_related=True)

        context = mock_transport.requests[0].context
        assert f"{PARENT_NODES_LABEL}\nParent text" in context
        assert f"{CURRENT_NODE_LABEL}\nMy text" in context
        assert f"{CHILD_NODES_LABEL}\nChild text" in context
        assert "Unrelated" not in context

    @pytest.mark.asyncio
    async def test_related_excluded(self, family_canvas, mock_transport):
        controller = CanvasController(mock_transport)

        await controller.submit(family_canvas, family_canvas.nodes["me"], "Go", include_related=False)

        assert mock_transport.requests[0].context == f"{CURRENT_NODE_LABEL}\nMy text"

    @pytest.mark.asyncio
    async def test_default_from_settings(self, family_canvas, mock_transport):
        controller = CanvasController(mock_transport, CanvasSettings(include_related_default=True))

        await controller.submit(family_canvas, family_canvas.nodes["me"], "Go")

        assert PARENT_NODES_LABEL in mock_transport.requests[0].context

    @pytest.mark.asyncio
    async def test_context_truncated(self, family_canvas, mock_transport):
        controller = CanvasController(mock_transport, CanvasSettings(max_context_chars=12))

        await controller.submit(family_canvas, family_canvas.nodes["me"], "Go", include_related=True)

        assert mock_transport.requests[0].context.endswith("[上下文已截断]")


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    """Tests for concurrent requests on one canvas."""

    @pytest.mark.asyncio
    async def test_independent_requests(self, make_node):
        triggers = [make_node(f"t{i}", f"Topic {i}", x=i * 500, y=0) for i in range(3)]
        canvas = InMemoryCanvas(triggers)
        transport = EchoTransport(chunk_delay=0.001)
        controller = CanvasController(transport)

        ids = await asyncio.gather(*(
            controller.submit(canvas, trigger, f"question {i}")
            for i, trigger in enumerate(triggers)
        ))

        assert len(set(ids)) == 3
        assert all(request_id.startswith("canvas_") for request_id in ids)
        for i in range(3):
            assert response_node_for(canvas, f"t{i}").text == f"Answer to question {i}"
        assert controller.active_count == 0

    @pytest.mark.asyncio
    async def test_same_trigger_twice(self, canvas, trigger_node):
        transport = EchoTransport(chunk_delay=0.001)
        controller = CanvasController(transport)

        await asyncio.gather(
            controller.submit(canvas, trigger_node, "first"),
            controller.submit(canvas, trigger_node, "second"),
        )

        texts = sorted(
            canvas.nodes[e.to_node].text for e in canvas.edges if e.from_node == "trigger"
        )
        assert texts == ["Answer to first", "Answer to second"]

    @pytest.mark.asyncio
    async def test_active_requests_tracked(self, canvas, trigger_node, events):
        controller = CanvasController(MockTransport("a b c d e f", chunk_delay=0.01), events=events)

        task = asyncio.create_task(controller.submit(canvas, trigger_node, "Go"))
        await wait_for(CanvasEventKind.REQUEST_STREAMING, events)

        assert controller.active_count == 1
        assert controller.active_request_ids[0].startswith("canvas_")

        await task
        assert controller.active_count == 0


# =============================================================================
# Failures
# =============================================================================


class TestSubmitFailures:
    """Tests for errors rendered into the canvas."""

    @pytest.mark.asyncio
    async def test_auth_error(self, canvas, trigger_node, events):
        transport = MockTransport(responses=[Exception("401 Unauthorized")])
        controller = CanvasController(transport, events=events)

        request_id = await controller.submit(canvas, trigger_node, "Go")

        node = response_node_for(canvas, "trigger")
        assert node.text == f"{ERROR_HEADER}\n\nAPI 密钥无效或已过期\n\n{ERROR_HINT}"
        assert request_id is not None

        failed = events.history[-1]
        assert failed.kind is CanvasEventKind.REQUEST_FAILED
        assert failed.message == node.text
        assert failed.request_id == request_id

    @pytest.mark.parametrize(
        "error,expected",
        [
            (Exception("429 Too Many Requests"), "API 调用频率超限，请稍后重试"),
            (TransportError("Request timeout"), "AI 服务响应超时，请稍后重试"),
            (ConnectionError("Network unreachable"), "无法连接到 AI 服务，请检查网络连接"),
            (Exception("Weird"), "AI 请求失败: Weird"),
        ],
    )
    @pytest.mark.asyncio
    async def test_classified_messages(self, canvas, trigger_node, error, expected):
        controller = CanvasController(MockTransport(responses=[error]))

        await controller.submit(canvas, trigger_node, "Go")

        text = response_node_for(canvas, "trigger").text
        assert text.split("\n\n")[1] == expected

    @pytest.mark.asyncio
    async def test_context_failure_creates_error_node(self, events):
        trigger = CanvasNode(id="bad", type="text", text=None, x=0, y=0, width=200, height=100)
        canvas = InMemoryCanvas([trigger])
        transport = MockTransport()
        controller = CanvasController(transport, events=events)

        await controller.submit(canvas, trigger, "Go")

        assert transport.call_count == 0
        error_nodes = [n for n in canvas.nodes.values() if n.id != "bad"]
        assert len(error_nodes) == 1
        assert "无法提取节点内容" in error_nodes[0].text
        assert (error_nodes[0].x, error_nodes[0].y) == (0, 250)
        assert events.history[-1].kind is CanvasEventKind.REQUEST_FAILED

    @pytest.mark.asyncio
    async def test_node_creation_failure_notifies(self, canvas, trigger_node, events):
        canvas.fail_create_node = True
        transport = MockTransport()
        controller = CanvasController(transport, events=events)

        await controller.submit(canvas, trigger_node, "Go")

        assert transport.call_count == 0
        assert list(canvas.nodes) == ["trigger"]
        notices = [e for e in events.history if e.kind is CanvasEventKind.NOTICE]
        assert notices[-1].message == "无法创建节点"
        assert events.history[-1].kind is CanvasEventKind.REQUEST_FAILED

    @pytest.mark.asyncio
    async def test_edge_failure_does_not_abort(self, canvas, trigger_node, events, mock_transport):
        canvas.fail_create_edge = True
        canvas.fail_import_data = True
        controller = CanvasController(mock_transport, events=events)

        await controller.submit(canvas, trigger_node, "Go")

        response = [n for n in canvas.nodes.values() if n.id != "trigger"]
        assert response[0].text == "Hello World"
        assert CanvasEventKind.NOTICE in kinds(events)
        assert events.history[-1].kind is CanvasEventKind.REQUEST_COMPLETED

    @pytest.mark.asyncio
    async def test_stream_redraw_failure_does_not_abort(self, canvas, trigger_node, mock_transport, events):
        def flaky_frame():
            texts = [n.text for n in canvas.nodes.values() if n.id != "trigger"]
            if texts != ["Hello World"]:
                raise RuntimeError("view detached")
            canvas.frame_requests += 1

        canvas.request_frame = flaky_frame
        controller = CanvasController(mock_transport, events=events)

        request_id = await controller.submit(canvas, trigger_node, "Go")

        assert request_id is not None
        assert response_node_for(canvas, "trigger").text == "Hello World"
        assert events.history[-1].kind is CanvasEventKind.REQUEST_COMPLETED
        assert canvas.frame_requests >= 1

    @pytest.mark.asyncio
    async def test_edge_splice_fallback(self, canvas, trigger_node, mock_transport):
        canvas.fail_create_edge = True
        controller = CanvasController(mock_transport)

        await controller.submit(canvas, trigger_node, "Go")

        assert canvas.import_calls == 1
        assert response_node_for(canvas, "trigger").text == "Hello World"

    @pytest.mark.asyncio
    async def test_error_text_matches_formatter(self, canvas, trigger_node):
        error = Exception("connection refused")
        controller = CanvasController(MockTransport(responses=[error]))

        await controller.submit(canvas, trigger_node, "Go")

        assert response_node_for(canvas, "trigger").text == format_error_block(error)


class TestPreflight:
    """Tests for submissions rejected before anything is created."""

    @pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
    @pytest.mark.asyncio
    async def test_blank_prompt(self, controller, canvas, trigger_node, mock_transport, events, prompt):
        result = await controller.submit(canvas, trigger_node, prompt)

        assert result is None
        assert mock_transport.call_count == 0
        assert list(canvas.nodes) == ["trigger"]
        assert kinds(events) == [CanvasEventKind.NOTICE]
        assert events.history[0].message == "请输入问题内容"

    @pytest.mark.asyncio
    async def test_disabled(self, canvas, trigger_node, mock_transport, events):
        controller = CanvasController(mock_transport, CanvasSettings(enabled=False), events=events)

        assert await controller.submit(canvas, trigger_node, "Go") is None

        assert mock_transport.call_count == 0
        assert list(canvas.nodes) == ["trigger"]
        assert canvas.edges == []
        assert kinds(events) == [CanvasEventKind.NOTICE]
        assert events.history[0].message == "Canvas AI 功能已禁用"
        assert controller.active_count == 0

    @pytest.mark.asyncio
    async def test_no_graph(self, controller, trigger_node, mock_transport, events):
        assert await controller.submit(None, trigger_node, "Go") is None

        assert mock_transport.call_count == 0
        assert events.history[0].message == "请先打开一个 Canvas 文件"

    @pytest.mark.asyncio
    async def test_no_trigger(self, controller, canvas, mock_transport, events):
        assert await controller.submit(canvas, None, "Go") is None

        assert mock_transport.call_count == 0
        assert events.history[0].message == "无法获取触发节点"

    @pytest.mark.asyncio
    async def test_from_workspace(self, controller, canvas):
        request_id = await controller.submit_from_workspace(
            InMemoryWorkspace(CanvasView(canvas)), "trigger", "Go"
        )

        assert request_id is not None
        assert response_node_for(canvas, "trigger").text == "Hello World"

    @pytest.mark.asyncio
    async def test_from_workspace_without_canvas(self, controller, events):
        assert await controller.submit_from_workspace(InMemoryWorkspace(), "trigger", "Go") is None
        assert events.history[0].message == "请先打开一个 Canvas 文件"

    @pytest.mark.asyncio
    async def test_from_workspace_unknown_node(self, controller, canvas, events):
        workspace = InMemoryWorkspace(CanvasView(canvas))
        assert await controller.submit_from_workspace(workspace, "missing", "Go") is None
        assert events.history[0].message == "无法获取触发节点"


# =============================================================================
# Cancellation and cleanup
# =============================================================================


class TestCancellation:
    """Tests for cancel() and cleanup()."""

    @pytest.mark.asyncio
    async def test_cancel_discards_result(self, canvas, trigger_node, events):
        full = "alpha beta gamma delta epsilon zeta eta theta"
        controller = CanvasController(MockTransport(full, chunk_delay=0.01), events=events)

        task = asyncio.create_task(controller.submit(canvas, trigger_node, "Go"))
        await wait_for(CanvasEventKind.REQUEST_STREAMING, events)

        request_id = controller.active_request_ids[0]
        assert controller.cancel(request_id) is True
        frozen = response_node_for(canvas, "trigger").text

        assert await task == request_id
        node = response_node_for(canvas, "trigger")
        assert node.text == frozen
        assert node.text != full
        assert full.startswith(node.text.rstrip())
        assert CanvasEventKind.REQUEST_CANCELLED in kinds(events)
        assert CanvasEventKind.REQUEST_COMPLETED not in kinds(events)
        assert CanvasEventKind.REQUEST_FAILED not in kinds(events)

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, controller):
        assert controller.cancel("canvas_0_0_deadbeef") is False

    @pytest.mark.asyncio
    async def test_cleanup_cancels_all(self, make_node, events):
        triggers = [make_node(f"t{i}", f"Topic {i}", x=i * 500) for i in range(2)]
        canvas = InMemoryCanvas(triggers)
        controller = CanvasController(MockTransport("a b c d e f g h", chunk_delay=0.01), events=events)

        tasks = [asyncio.create_task(controller.submit(canvas, t, "Go")) for t in triggers]
        await wait_for(CanvasEventKind.REQUEST_STREAMING, events)

        controller.cleanup()
        assert controller.active_count == 0
        await asyncio.gather(*tasks)

        cancelled = [e for e in events.history if e.kind is CanvasEventKind.REQUEST_CANCELLED]
        assert len(cancelled) == 2
        for i in range(2):
            assert response_node_for(canvas, f"t{i}").text != "a b c d e f g h"

    def test_cleanup_idempotent(self, controller):
        controller.cleanup()
        controller.cleanup()
        assert controller.active_count == 0

    @pytest.mark.asyncio
    async def test_transport_cancel_error_is_cancellation(self, canvas, trigger_node, events):
        class CancelAwareTransport(CompletionTransport):
            async def send_request(self, request):
                request.on_stream("first ")
                await asyncio.sleep(0.05)
                request.cancellation.raise_if_cancelled()
                return CompletionResponse(id=request.id, content="done")

        controller = CanvasController(CancelAwareTransport(), events=events)

        task = asyncio.create_task(controller.submit(canvas, trigger_node, "Go"))
        await wait_for(CanvasEventKind.REQUEST_STREAMING, events)
        controller.cleanup()
        await task

        assert response_node_for(canvas, "trigger").text == "first "
        assert events.history[-1].kind is CanvasEventKind.REQUEST_CANCELLED


class TestDebugMode:
    """Tests for debug logging."""

    def test_debug_mode_sets_level(self, mock_transport):
        package_logger = logging.getLogger("canvas_ai")
        previous = package_logger.level
        try:
            CanvasController(mock_transport, CanvasSettings(debug_mode=True))
            assert package_logger.level == logging.DEBUG
        finally:
            package_logger.setLevel(previous)
