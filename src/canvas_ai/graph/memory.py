"""In-memory canvas host.

A self-contained implementation of the CanvasHost and Workspace protocols.
Useful for tests, scripted demos and headless tooling that wants to run
the orchestrator against a canvas document loaded from disk.

Usage:
    canvas = InMemoryCanvas.from_data(json.loads(Path("notes.canvas").read_text()))
    workspace = InMemoryWorkspace(CanvasView(canvas))

    controller = CanvasController(transport)
    await controller.submit_from_workspace(workspace, "node-1", "Summarize this")

Failure injection flags (``fail_create_node``, ``fail_create_edge``,
``fail_import_data``, ``data_unavailable``) make each host primitive raise
or return nothing so fallback paths can be exercised.
"""

import itertools
import logging
from collections.abc import Mapping
from typing import Any

from .host import CANVAS_VIEW_TYPE
from .models import CanvasEdge, CanvasNode, EdgeSide, GraphData

logger = logging.getLogger(__name__)


class RichTextNode(CanvasNode):
    """Text node with host-style mutation methods."""

    def set_text(self, text: str) -> None:
        self.text = text

    def get_data(self) -> dict[str, Any]:
        return self.to_dict()


def _record(item: Any) -> dict[str, Any]:
    if isinstance(item, Mapping):
        return dict(item)
    return item.to_dict()


class InMemoryCanvas:
    """Canvas host backed by a dict of nodes and a list of edges."""

    def __init__(
        self,
        nodes: list[Any] | None = None,
        edges: list[Any] | None = None,
        file: str = "untitled.canvas",
        rich_nodes: bool = True,
    ):
        self.file = file
        self.nodes: dict[str, Any] = {node.id: node for node in nodes or []}
        self.edges: list[Any] = list(edges or [])
        self.rich_nodes = rich_nodes

        # Observability for callers and tests
        self.save_requests = 0
        self.frame_requests = 0
        self.create_node_calls: list[dict[str, Any]] = []
        self.create_edge_calls: list[tuple[str, str, dict[str, str]]] = []
        self.import_calls = 0

        # Failure injection
        self.fail_create_node = False
        self.fail_create_edge = False
        self.fail_import_data = False
        self.data_unavailable = False

        self._node_ids = itertools.count(1)
        self._edge_ids = itertools.count(1)

    @classmethod
    def from_data(cls, data: Mapping[str, Any], file: str = "untitled.canvas") -> "InMemoryCanvas":
        """Build a canvas from JSON-canvas ``{"nodes": [...], "edges": [...]}``."""
        canvas = cls(file=file)
        canvas._load(data)
        return canvas

    def create_text_node(self, options: dict[str, Any]) -> Any:
        self.create_node_calls.append(options)
        if self.fail_create_node:
            raise RuntimeError("createTextNode failed")

        pos = options.get("pos", {})
        size = options.get("size", {})
        node_cls = RichTextNode if self.rich_nodes else CanvasNode
        node = node_cls(
            id=f"node-{next(self._node_ids)}",
            type="text",
            text=options.get("text", ""),
            x=pos.get("x", 0),
            y=pos.get("y", 0),
            width=size.get("width", 250),
            height=size.get("height", 60),
        )
        self.nodes[node.id] = node

        if options.get("save", True):
            self.request_save()
        return node

    def create_edge(self, from_node: Any, to_node: Any, sides: dict[str, str]) -> Any:
        self.create_edge_calls.append((from_node.id, to_node.id, dict(sides)))
        if self.fail_create_edge:
            raise RuntimeError("createEdge is not a function")

        edge = CanvasEdge(
            id=f"edge-api-{next(self._edge_ids)}",
            from_node=from_node.id,
            to_node=to_node.id,
            from_side=EdgeSide(sides["fromSide"]),
            to_side=EdgeSide(sides["toSide"]),
        )
        self.edges.append(edge)
        return edge

    def get_data(self) -> dict[str, Any] | None:
        if self.data_unavailable:
            return None
        return GraphData(
            nodes=[_record(node) for node in self.nodes.values()],
            edges=[_record(edge) for edge in self.edges],
        ).to_dict()

    def import_data(self, data: dict[str, Any]) -> None:
        self.import_calls += 1
        if self.fail_import_data:
            raise RuntimeError("importData failed")
        self._load(data)

    def request_save(self) -> None:
        self.save_requests += 1

    def request_frame(self) -> None:
        self.frame_requests += 1

    def _load(self, data: Mapping[str, Any]) -> None:
        # Existing node objects survive a reload so held references stay live.
        nodes: dict[str, Any] = {}
        for record in data.get("nodes") or []:
            existing = self.nodes.get(record["id"])
            nodes[record["id"]] = existing if existing is not None else CanvasNode.from_dict(record)
        self.nodes = nodes
        self.edges = [CanvasEdge.from_dict(record) for record in data.get("edges") or []]
        logger.debug(f"Loaded {len(self.nodes)} nodes and {len(self.edges)} edges into {self.file}")

    def __repr__(self) -> str:
        return f"InMemoryCanvas(file={self.file!r}, nodes={len(self.nodes)}, edges={len(self.edges)})"


class CanvasView:
    """Workspace view wrapping a canvas."""

    def __init__(self, canvas: Any):
        self.canvas = canvas

    def get_view_type(self) -> str:
        return CANVAS_VIEW_TYPE


class InMemoryWorkspace:
    """Workspace with a single, settable active view."""

    def __init__(self, active_view: Any = None):
        self.active_view = active_view

    def get_active_view_of_type(self, kind: Any) -> Any:
        return self.active_view
