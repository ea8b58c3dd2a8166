"""Pytest configuration for canvas-ai tests."""

import os
from pathlib import Path

import pytest

from canvas_ai.config import CanvasSettings
from canvas_ai.events import EventEmitter
from canvas_ai.graph.memory import InMemoryCanvas, RichTextNode
from canvas_ai.graph.models import CanvasEdge, CanvasNode
from canvas_ai.llm.mock import MockTransport
from canvas_ai.orchestration import CanvasController


def _load_env_file(path: Path) -> None:
    """Load environment variables from a .env file."""
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip().strip("'\"")
                if key and key not in os.environ:
                    os.environ[key] = value


# Local .env (GROQ_API_KEY for integration runs)
_load_env_file(Path(__file__).parent.parent / ".env")


# =============================================================================
# Canvas Fixtures
# =============================================================================


def text_node(node_id: str, text: str, x: float = 0, y: float = 0, width: float = 200, height: float = 100):
    """Rich text node as a host would hand it out."""
    return RichTextNode(id=node_id, type="text", text=text, x=x, y=y, width=width, height=height)


def edge(edge_id: str, from_node: str, to_node: str) -> CanvasEdge:
    return CanvasEdge(id=edge_id, from_node=from_node, to_node=to_node)


@pytest.fixture
def trigger_node():
    """Trigger node at (100, 100), 200x100."""
    return text_node("trigger", "What is a canvas?", x=100, y=100)


@pytest.fixture
def canvas(trigger_node):
    """Canvas holding only the trigger node."""
    return InMemoryCanvas([trigger_node])


@pytest.fixture
def family_canvas():
    """Canvas with one parent, one child and one unrelated node around "me".

        parent -> me -> child        stranger
    """
    nodes = [
        text_node("parent", "Parent text", x=0, y=0),
        text_node("me", "My text", x=0, y=300),
        text_node("child", "Child text", x=0, y=600),
        text_node("stranger", "Unrelated", x=500, y=0),
    ]
    edges = [
        edge("e1", "parent", "me"),
        edge("e2", "me", "child"),
    ]
    return InMemoryCanvas(nodes, edges)


@pytest.fixture
def plain_node():
    """Plain record without set_text."""
    return CanvasNode(id="plain", type="text", text="plain", x=0, y=0, width=200, height=100)


# =============================================================================
# Transport / Controller Fixtures
# =============================================================================


@pytest.fixture
def mock_transport():
    """Mock transport answering "Hello World"."""
    return MockTransport(default_response="Hello World")


@pytest.fixture
def events():
    return EventEmitter()


@pytest.fixture
def settings():
    return CanvasSettings()


@pytest.fixture
def controller(mock_transport, settings, events):
    """Controller wired to the mock transport."""
    controller = CanvasController(mock_transport, settings, events=events)
    yield controller
    controller.cleanup()


@pytest.fixture
def make_node():
    """Factory for rich text nodes."""
    return text_node


@pytest.fixture
def make_edge():
    """Factory for edges."""
    return edge
