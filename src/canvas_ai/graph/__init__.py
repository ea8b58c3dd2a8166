"""Canvas graph access: models, host protocols, context extraction and mutation.

Example:
    from canvas_ai.graph import InMemoryCanvas, CanvasNode, extract_current_node_context

    canvas = InMemoryCanvas([CanvasNode(id="n1", type="text", text="Hello")])
    print(extract_current_node_context(canvas.nodes["n1"]))
"""

from canvas_ai.graph.models import (
    CanvasEdge,
    CanvasNode,
    EdgeSide,
    GraphData,
    NodeKind,
    edge_endpoints,
    is_file_node,
    is_group_node,
    is_link_node,
    is_text_node,
    node_kind,
)
from canvas_ai.graph.host import (
    CANVAS_VIEW_TYPE,
    CanvasHost,
    NodeHandle,
    PlainNodeHandle,
    RichNodeHandle,
    View,
    Workspace,
    bind_node,
    is_canvas_view,
)
from canvas_ai.graph.context import (
    RelatedNodesContext,
    build_context,
    extract_current_node_context,
    extract_node_content,
    extract_related_nodes_context,
    truncate_context,
)
from canvas_ai.graph.nodes import (
    CanvasNodeManager,
    EdgeCreationResult,
    EdgeSides,
    Position,
    calculate_node_position,
    determine_edge_sides,
    generate_edge_id,
    get_active_graph,
)
from canvas_ai.graph.memory import (
    CanvasView,
    InMemoryCanvas,
    InMemoryWorkspace,
    RichTextNode,
)

__all__ = [
    # Models
    "CanvasEdge",
    "CanvasNode",
    "EdgeSide",
    "GraphData",
    "NodeKind",
    "edge_endpoints",
    "is_file_node",
    "is_group_node",
    "is_link_node",
    "is_text_node",
    "node_kind",
    # Host
    "CANVAS_VIEW_TYPE",
    "CanvasHost",
    "NodeHandle",
    "PlainNodeHandle",
    "RichNodeHandle",
    "View",
    "Workspace",
    "bind_node",
    "is_canvas_view",
    # Context
    "RelatedNodesContext",
    "build_context",
    "extract_current_node_context",
    "extract_node_content",
    "extract_related_nodes_context",
    "truncate_context",
    # Mutation
    "CanvasNodeManager",
    "EdgeCreationResult",
    "EdgeSides",
    "Position",
    "calculate_node_position",
    "determine_edge_sides",
    "generate_edge_id",
    "get_active_graph",
    # In-memory host
    "CanvasView",
    "InMemoryCanvas",
    "InMemoryWorkspace",
    "RichTextNode",
]
