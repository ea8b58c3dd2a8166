"""Context extraction from the canvas graph.

Builds the context string sent along with a prompt. Either the trigger
node alone, or the trigger node together with its direct neighbors:

    parents  = every node X with an edge X -> node
    children = every node Y with an edge node -> Y

Neighbors are listed in edge order. Duplicate edges and self-loops are
kept literally, so the number of parent (child) entries always equals the
number of incoming (outgoing) edges.

Everything here is a pure function of the graph snapshot: no mutation,
no I/O, no caching.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import ContextExtractionError
from .models import (
    NodeKind,
    edge_endpoints,
    file_path,
    node_kind,
)

logger = logging.getLogger(__name__)

CURRENT_NODE_LABEL = "## 当前节点内容"
PARENT_NODES_LABEL = "## 父节点内容"
CHILD_NODES_LABEL = "## 子节点内容"

FILE_TAG = "文件:"
LINK_TAG = "链接:"
GROUP_TAG = "分组:"

TRUNCATION_MARKER = "\n\n[上下文已截断]"


@dataclass
class RelatedNodesContext:
    """Context of a node and its direct neighbors."""

    current_node: str
    parent_nodes: list[str] = field(default_factory=list)
    child_nodes: list[str] = field(default_factory=list)
    full_context: str = ""


def _node_id(node: Any) -> str | None:
    return getattr(node, "id", None)


def extract_node_content(node: Any) -> str:
    """Extract the content of a single node.

    - text nodes: the text, verbatim
    - file nodes: file tag plus the file's base name
    - link nodes: link tag plus the URL
    - group nodes: group tag plus the label, or "" without a label

    Raises:
        ContextExtractionError: If the node is missing or its content field
            is unreadable
    """
    if node is None:
        raise ContextExtractionError("node-content", details="node is None")

    try:
        kind = node_kind(node)

        if kind is NodeKind.TEXT:
            text = getattr(node, "text", None)
            if not isinstance(text, str):
                raise ContextExtractionError(
                    "node-content",
                    node_id=_node_id(node),
                    details=f"text node has non-string text: {type(text).__name__}",
                )
            return text

        if kind is NodeKind.FILE:
            path = file_path(getattr(node, "file", None))
            if not path:
                raise ContextExtractionError(
                    "node-content",
                    node_id=_node_id(node),
                    details="file node has no readable path",
                )
            name = path.rsplit("/", 1)[-1] or path
            return f"[{FILE_TAG} {name}]"

        if kind is NodeKind.LINK:
            url = getattr(node, "url", None)
            if not isinstance(url, str):
                raise ContextExtractionError(
                    "node-content",
                    node_id=_node_id(node),
                    details="link node has no URL",
                )
            return f"[{LINK_TAG} {url}]"

        if kind is NodeKind.GROUP:
            label = getattr(node, "label", None)
            return f"[{GROUP_TAG} {label}]" if label else ""

        return ""
    except ContextExtractionError:
        raise
    except Exception as e:
        raise ContextExtractionError("node-content", node_id=_node_id(node), cause=e)


def extract_current_node_context(node: Any) -> str:
    """Context containing only the current node."""
    return f"{CURRENT_NODE_LABEL}\n{extract_node_content(node)}"


def _graph_collections(graph: Any) -> tuple[Mapping[str, Any], Iterable[Any]]:
    try:
        nodes = graph.nodes
        edges = graph.edges
    except Exception as e:
        raise ContextExtractionError("connected-nodes", cause=e)

    if not isinstance(nodes, Mapping):
        raise ContextExtractionError("connected-nodes", details="graph has no node mapping")
    if edges is None or isinstance(edges, (str, bytes)) or not isinstance(edges, Iterable):
        raise ContextExtractionError("connected-nodes", details="graph has no edge collection")
    return nodes, edges


def _neighbor(nodes: Mapping[str, Any], node_id: str, edge: Any) -> Any:
    neighbor = nodes.get(node_id)
    if neighbor is None:
        raise ContextExtractionError(
            "connected-nodes",
            node_id=node_id,
            details=f"edge {getattr(edge, 'id', edge)!r} references a missing node",
        )
    return neighbor


def extract_related_nodes_context(graph: Any, node: Any) -> RelatedNodesContext:
    """Context of a node plus its parents and children.

    The edge collection is scanned once.

    Raises:
        ContextExtractionError: "node-content" for unreadable nodes,
            "connected-nodes" if the edge collection or an edge endpoint is
            unavailable
    """
    if node is None:
        raise ContextExtractionError("node-content", details="node is None")

    current = extract_node_content(node)
    nodes, edges = _graph_collections(graph)
    node_id = _node_id(node)

    parent_nodes: list[str] = []
    child_nodes: list[str] = []

    for edge in edges:
        try:
            from_id, to_id = edge_endpoints(edge)
        except ValueError as e:
            raise ContextExtractionError("connected-nodes", node_id=node_id, cause=e)

        # Not elif: a self-loop is both a parent and a child.
        if to_id == node_id:
            parent_nodes.append(extract_node_content(_neighbor(nodes, from_id, edge)))
        if from_id == node_id:
            child_nodes.append(extract_node_content(_neighbor(nodes, to_id, edge)))

    sections = []
    if parent_nodes:
        sections.append(f"{PARENT_NODES_LABEL}\n" + "\n\n".join(parent_nodes))
    sections.append(f"{CURRENT_NODE_LABEL}\n{current}")
    if child_nodes:
        sections.append(f"{CHILD_NODES_LABEL}\n" + "\n\n".join(child_nodes))

    logger.debug(
        f"Related context for {node_id}: "
        f"{len(parent_nodes)} parent(s), {len(child_nodes)} child(ren)"
    )

    return RelatedNodesContext(
        current_node=current,
        parent_nodes=parent_nodes,
        child_nodes=child_nodes,
        full_context="\n\n".join(sections),
    )


def truncate_context(context: str, max_chars: int | None) -> str:
    """Keep the first ``max_chars`` characters and append a marker.

    ``None`` disables truncation.
    """
    if max_chars is None or len(context) <= max_chars:
        return context
    return context[:max_chars] + TRUNCATION_MARKER


def build_context(
    graph: Any,
    node: Any,
    include_related: bool = False,
    max_chars: int | None = None,
) -> str:
    """Build the context string for a request.

    Raises:
        ContextExtractionError: On any extraction failure; unexpected errors
            are reported as the "context-build" stage
    """
    try:
        if include_related:
            context = extract_related_nodes_context(graph, node).full_context
        else:
            context = extract_current_node_context(node)
    except ContextExtractionError:
        raise
    except Exception as e:
        raise ContextExtractionError("context-build", node_id=_node_id(node), cause=e)

    return truncate_context(context, max_chars)
