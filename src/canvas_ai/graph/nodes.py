"""Canvas node and edge mutation.

Wraps the host's canvas primitives:

- create_text_node: host creation with ``save=False`` so the host does not
  persist mid-creation (its save path crashes on malformed legacy data)
- update_node_content: text mutation through the node handle, followed by
  a render request; persistence is left to the host's debounced save
- create_edge: two-tier. The host's ``create_edge`` is tried first. If it
  raises, a new edge record is spliced into ``get_data()`` and re-imported.
  If the splice fails as well, nothing is raised: the result carries a
  NodeOperationError holding both failure reasons.

No knowledge of AI requests lives here.
"""

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Literal, NamedTuple

from ..exceptions import NodeOperationError
from ..events import CanvasEvent, CanvasEventKind, EventEmitter
from .host import NodeHandle, View, bind_node, is_canvas_view
from .models import EdgeSide, GraphData

logger = logging.getLogger(__name__)


@dataclass
class EdgeSides:
    """Anchor pair for a new edge."""

    from_side: EdgeSide
    to_side: EdgeSide

    def to_dict(self) -> dict[str, str]:
        return {"fromSide": self.from_side.value, "toSide": self.to_side.value}


@dataclass
class EdgeCreationResult:
    """Outcome of create_edge.

    ``method`` is "api" when the host primitive worked, "splice" when the
    data fallback did, and None when both failed (see ``error``).
    """

    method: Literal["api", "splice"] | None
    edge_id: str | None = None
    primary_error: Exception | None = None
    error: NodeOperationError | None = None

    @property
    def success(self) -> bool:
        return self.method is not None


class Position(NamedTuple):
    x: float
    y: float


def generate_edge_id() -> str:
    """Timestamp plus random suffix. Unique in practice, not cryptographically."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"edge-{int(time.time() * 1000)}-{suffix}"


def determine_edge_sides(from_node: Any, to_node: Any) -> EdgeSides:
    """Pick anchor sides from the dominant axis between two node origins.

    Horizontal wins only when strictly larger; ties connect vertically.
    """
    dx = to_node.x - from_node.x
    dy = to_node.y - from_node.y

    if abs(dx) > abs(dy):
        if dx > 0:
            return EdgeSides(EdgeSide.RIGHT, EdgeSide.LEFT)
        return EdgeSides(EdgeSide.LEFT, EdgeSide.RIGHT)

    if dy > 0:
        return EdgeSides(EdgeSide.BOTTOM, EdgeSide.TOP)
    return EdgeSides(EdgeSide.TOP, EdgeSide.BOTTOM)


def calculate_node_position(trigger_node: Any, offset_x: float, offset_y: float) -> Position:
    """Position below the trigger node: ``(x + ox, y + height + oy)``."""
    return Position(
        trigger_node.x + offset_x,
        trigger_node.y + trigger_node.height + offset_y,
    )


def get_active_graph(workspace: Any) -> Any | None:
    """The focused canvas, or None when the active view is not a canvas."""
    try:
        view = workspace.get_active_view_of_type(View)
        if view is not None and is_canvas_view(view):
            return getattr(view, "canvas", view)
    except Exception as e:
        logger.debug(f"Could not resolve active canvas: {e}")
    return None


class CanvasNodeManager:
    """Creates, updates and connects canvas nodes.

    Example:
        manager = CanvasNodeManager()
        canvas = manager.get_active_graph(workspace)
        if canvas:
            node = manager.create_text_node(canvas, "Hello", 0, 0, 400, 200)
            manager.create_edge(canvas, trigger, node)
    """

    def __init__(self, events: EventEmitter | None = None):
        self.events = events or EventEmitter()

    # Pure helpers exposed on the manager for callers holding only an instance
    determine_edge_sides = staticmethod(determine_edge_sides)
    calculate_node_position = staticmethod(calculate_node_position)
    get_active_graph = staticmethod(get_active_graph)

    def create_text_node(
        self,
        graph: Any,
        text: str,
        x: float,
        y: float,
        width: float,
        height: float,
    ) -> Any:
        """Create a text node without triggering the host's save.

        Returns:
            The node object exactly as returned by the host

        Raises:
            NodeOperationError: If the host primitive fails
        """
        try:
            node = graph.create_text_node({
                "pos": {"x": x, "y": y},
                "size": {"width": width, "height": height},
                "text": text,
                "focus": False,
                "save": False,
            })
        except Exception as e:
            logger.error(f"Failed to create text node: {e}")
            raise NodeOperationError("create", cause=e)

        if node is None:
            raise NodeOperationError("create", details="host returned no node")

        if not callable(getattr(node, "get_data", None)):
            logger.warning(
                f"Created node {getattr(node, 'id', '?')} has no get_data(); "
                "the host may fail to save it"
            )
        return node

    def update_node_content(self, graph: Any, node: Any, text: str) -> NodeHandle:
        """Replace a node's text and request a redraw.

        Accepts a raw node or a NodeHandle; raw nodes are bound on the fly.
        Never requests a save.

        Returns:
            The handle used, so callers can reuse it

        Raises:
            NodeOperationError: If the text could not be set or the redraw
                request failed
        """
        handle = bind_node(node)
        try:
            handle.set_text(text)
            request_frame = getattr(graph, "request_frame", None)
            if callable(request_frame):
                request_frame()
        except Exception as e:
            raise NodeOperationError("update", node_id=getattr(handle.node, "id", None), cause=e)
        return handle

    def create_edge(
        self,
        graph: Any,
        from_node: Any,
        to_node: Any,
        label: str | None = None,
    ) -> EdgeCreationResult:
        """Connect two nodes; never raises.

        Returns:
            EdgeCreationResult describing which path succeeded
        """
        if isinstance(from_node, NodeHandle):
            from_node = from_node.node
        if isinstance(to_node, NodeHandle):
            to_node = to_node.node

        try:
            edge = self._create_edge_via_api(graph, from_node, to_node)
        except Exception as primary:
            logger.warning(f"Canvas createEdge failed, falling back to data splice: {primary}")
            primary_error = primary
        else:
            # The host already holds the edge; later steps must not add a second one.
            self._finish_api_edge(graph, edge, label)
            edge_id = getattr(edge, "id", None)
            logger.info(f"Edge created via canvas API: {edge_id}")
            return EdgeCreationResult(method="api", edge_id=edge_id)

        try:
            edge_id = self._create_edge_via_splice(graph, from_node, to_node, label)
            logger.info(f"Edge created via data splice: {edge_id}")
            return EdgeCreationResult(method="splice", edge_id=edge_id, primary_error=primary_error)
        except Exception as fallback:
            logger.error(f"Edge creation failed on both paths: {fallback}")
            error = NodeOperationError(
                "connect",
                node_id=getattr(to_node, "id", None),
                details=f"api: {primary_error}; splice: {fallback}",
                cause=fallback,
                primary_error=primary_error,
                fallback_error=fallback,
            )

        self.events.emit(CanvasEvent(
            kind=CanvasEventKind.NOTICE,
            message=error.message,
            node_id=error.node_id,
            error=error,
        ))
        return EdgeCreationResult(method=None, primary_error=primary_error, error=error)

    def _create_edge_via_api(self, graph: Any, from_node: Any, to_node: Any) -> Any:
        sides = determine_edge_sides(from_node, to_node)
        edge = graph.create_edge(from_node, to_node, sides.to_dict())
        if edge is None:
            raise NodeOperationError("connect", details="host returned no edge")
        return edge

    def _finish_api_edge(self, graph: Any, edge: Any, label: str | None) -> None:
        if label:
            try:
                set_text = getattr(edge, "set_text", None)
                if callable(set_text):
                    set_text(label)
                else:
                    edge.label = label
            except Exception as e:
                logger.warning(f"Could not label edge {getattr(edge, 'id', '?')}: {e}")

        try:
            graph.request_save()
        except Exception as e:
            logger.warning(f"Save request after edge creation failed: {e}")

    def _create_edge_via_splice(self, graph: Any, from_node: Any, to_node: Any, label: str | None) -> str:
        data = graph.get_data()
        if not data:
            raise NodeOperationError("connect", details="canvas data unavailable")

        sides = determine_edge_sides(from_node, to_node)
        edge_id = generate_edge_id()
        new_edge = {
            "id": edge_id,
            "fromNode": from_node.id,
            "fromSide": sides.from_side.value,
            "toNode": to_node.id,
            "toSide": sides.to_side.value,
            "label": label or "",
        }

        graph.import_data(GraphData(
            nodes=list(data.get("nodes") or []),
            edges=[*(data.get("edges") or []), new_edge],
        ).to_dict())
        graph.request_frame()
        return edge_id
