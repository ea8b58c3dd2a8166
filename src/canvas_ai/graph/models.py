"""Canvas graph data models.

Nodes and edges mirror the host's JSON-canvas record shape:

    node: {"id", "type", "x", "y", "width", "height", "text" | "file" | "url", ...}
    edge: {"id", "fromNode", "fromSide", "toNode", "toSide", "label"}

The host's own in-memory node objects do not always populate ``type``,
so the variant guards below fall back to structural inspection when the
discriminator is missing.

Example:
    >>> node = CanvasNode(id="n1", x=0, y=0, width=200, height=100, text="Hi")
    >>> node_kind(node)
    <NodeKind.TEXT: 'text'>
    >>> CanvasEdge(id="e1", from_node="n1", to_node="n2").to_dict()["fromNode"]
    'n1'
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeKind(str, Enum):
    """Node variants. Exactly one content field is meaningful per variant."""

    TEXT = "text"
    FILE = "file"
    LINK = "link"
    GROUP = "group"


class EdgeSide(str, Enum):
    """Connector anchor points on a node."""

    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"


@dataclass
class CanvasNode:
    """A positioned, sized entity in the canvas.

    ``file`` is a vault path string; hosts may also hand us objects that
    expose the path as ``.path``.
    """

    id: str
    x: float = 0
    y: float = 0
    width: float = 250
    height: float = 60
    type: str | None = None
    text: str | None = None
    file: Any = None
    url: str | None = None
    label: str | None = None
    color: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-canvas node record."""
        kind = node_kind(self)
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type or (kind.value if kind else None),
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
        if self.text is not None:
            data["text"] = self.text
        if self.file is not None:
            data["file"] = file_path(self.file)
        if self.url is not None:
            data["url"] = self.url
        if self.label is not None:
            data["label"] = self.label
        if self.color is not None:
            data["color"] = self.color
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CanvasNode":
        """Create from a JSON-canvas node record."""
        return cls(
            id=data["id"],
            x=data.get("x", 0),
            y=data.get("y", 0),
            width=data.get("width", 250),
            height=data.get("height", 60),
            type=data.get("type"),
            text=data.get("text"),
            file=data.get("file"),
            url=data.get("url"),
            label=data.get("label"),
            color=data.get("color"),
        )


@dataclass
class CanvasEdge:
    """A directed connection between two nodes."""

    id: str
    from_node: str
    to_node: str
    from_side: EdgeSide | None = None
    to_side: EdgeSide | None = None
    label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-canvas edge record."""
        data: dict[str, Any] = {
            "id": self.id,
            "fromNode": self.from_node,
            "toNode": self.to_node,
        }
        if self.from_side is not None:
            data["fromSide"] = EdgeSide(self.from_side).value
        if self.to_side is not None:
            data["toSide"] = EdgeSide(self.to_side).value
        if self.label is not None:
            data["label"] = self.label
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CanvasEdge":
        """Create from a JSON-canvas edge record."""
        from_side = data.get("fromSide")
        to_side = data.get("toSide")
        return cls(
            id=data["id"],
            from_node=data["fromNode"],
            to_node=data["toNode"],
            from_side=EdgeSide(from_side) if from_side else None,
            to_side=EdgeSide(to_side) if to_side else None,
            label=data.get("label") or None,
        )


@dataclass
class GraphData:
    """Serializable snapshot of a whole canvas."""

    nodes: list[dict[str, Any]] = field(default_factory=list)
    edges: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"nodes": list(self.nodes), "edges": list(self.edges)}


# =============================================================================
# Variant guards
# =============================================================================


def _declared_type(node: Any) -> str | None:
    declared = getattr(node, "type", None)
    if isinstance(declared, NodeKind):
        return declared.value
    return declared or None


def file_path(file: Any) -> str | None:
    """Path of a file payload, which is either a string or has ``.path``."""
    if isinstance(file, str):
        return file
    path = getattr(file, "path", None)
    return path if isinstance(path, str) else None


def is_text_node(node: Any) -> bool:
    declared = _declared_type(node)
    if declared:
        return declared == NodeKind.TEXT.value
    return isinstance(getattr(node, "text", None), str)


def is_file_node(node: Any) -> bool:
    declared = _declared_type(node)
    if declared:
        return declared == NodeKind.FILE.value
    return file_path(getattr(node, "file", None)) is not None


def is_link_node(node: Any) -> bool:
    declared = _declared_type(node)
    if declared:
        return declared == NodeKind.LINK.value
    return isinstance(getattr(node, "url", None), str)


def is_group_node(node: Any) -> bool:
    """A node without a discriminator and with no content field is a group."""
    declared = _declared_type(node)
    if declared:
        return declared == NodeKind.GROUP.value
    return (
        getattr(node, "text", None) is None
        and getattr(node, "file", None) is None
        and getattr(node, "url", None) is None
    )


def node_kind(node: Any) -> NodeKind | None:
    """Infer the node variant; None when nothing matches."""
    if is_text_node(node):
        return NodeKind.TEXT
    if is_file_node(node):
        return NodeKind.FILE
    if is_link_node(node):
        return NodeKind.LINK
    if is_group_node(node):
        return NodeKind.GROUP
    return None


def edge_endpoints(edge: Any) -> tuple[str, str]:
    """Read ``(from_id, to_id)`` from an edge object or a JSON-canvas record.

    Raises:
        ValueError: If the edge has no readable endpoints
    """
    if isinstance(edge, Mapping):
        from_id, to_id = edge.get("fromNode"), edge.get("toNode")
    else:
        from_id, to_id = getattr(edge, "from_node", None), getattr(edge, "to_node", None)

    if not isinstance(from_id, str) or not isinstance(to_id, str):
        raise ValueError(f"Edge has no readable endpoints: {edge!r}")
    return from_id, to_id
