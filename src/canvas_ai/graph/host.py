"""Protocol definitions for the canvas host.

These protocols define what the orchestrator needs from the application
that owns the canvas. The host keeps the canonical node/edge data; this
package only reads it and issues discrete create/update calls.

Node objects handed out by hosts come in two flavors: rich nodes that
expose ``set_text`` (keeping host render state in sync) and plain records
that only carry fields. The capability is detected once, when a node is
bound to a NodeHandle, instead of being re-probed on every update.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

CANVAS_VIEW_TYPE = "canvas"


# =============================================================================
# Host Protocols
# =============================================================================


@runtime_checkable
class CanvasHost(Protocol):
    """The host's canvas surface.

    Example:
        class MyCanvas:
            nodes: dict[str, Any]
            edges: list[Any]

            def create_text_node(self, options):
                # options = {"pos": {...}, "size": {...}, "text": ..., "focus": False, "save": False}
                ...
    """

    nodes: Mapping[str, Any]
    edges: list[Any]

    def create_text_node(self, options: dict[str, Any]) -> Any:
        """Create a text node from ``pos``, ``size``, ``text``, ``focus`` and ``save``."""
        ...

    def create_edge(self, from_node: Any, to_node: Any, sides: dict[str, str]) -> Any:
        """Create an edge between two node objects anchored at ``sides``."""
        ...

    def get_data(self) -> dict[str, Any] | None:
        """Return ``{"nodes": [...], "edges": [...]}`` for the whole canvas."""
        ...

    def import_data(self, data: dict[str, Any]) -> None:
        """Replace the canvas contents with ``data``."""
        ...

    def request_save(self) -> None:
        ...

    def request_frame(self) -> None:
        ...


@runtime_checkable
class View(Protocol):
    """A workspace view. Canvas views expose the canvas as ``.canvas``."""

    def get_view_type(self) -> str:
        ...


@runtime_checkable
class Workspace(Protocol):
    """The host's workspace, used to locate the focused view."""

    def get_active_view_of_type(self, kind: Any) -> View | None:
        ...


def is_canvas_view(view: Any) -> bool:
    """Check whether a view is a canvas view by its type tag."""
    get_view_type = getattr(view, "get_view_type", None)
    return callable(get_view_type) and get_view_type() == CANVAS_VIEW_TYPE


# =============================================================================
# Node Capability Handles
# =============================================================================


class NodeHandle(ABC):
    """Uniform text-mutation interface over a host node object."""

    def __init__(self, node: Any):
        self.node = node

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def text(self) -> str | None:
        return getattr(self.node, "text", None)

    @abstractmethod
    def set_text(self, text: str) -> None:
        """Replace the node's text."""
        ...


class RichNodeHandle(NodeHandle):
    """Node that supports direct mutation through its own ``set_text``."""

    def set_text(self, text: str) -> None:
        self.node.set_text(text)


class PlainNodeHandle(NodeHandle):
    """Plain record; text is assigned to the field directly."""

    def set_text(self, text: str) -> None:
        self.node.text = text


def bind_node(node: Any) -> NodeHandle:
    """Select the handle implementation for a node once."""
    if isinstance(node, NodeHandle):
        return node
    if callable(getattr(node, "set_text", None)):
        return RichNodeHandle(node)
    return PlainNodeHandle(node)
