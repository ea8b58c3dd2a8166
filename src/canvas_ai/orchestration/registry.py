"""Registry of in-flight canvas AI requests.

Every submitted request is registered under its request id together with
its cancellation token. The registry is the only owner of a request:
teardown cancels each token and drops the entries.
"""

import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..llm.base import CancellationToken

logger = logging.getLogger(__name__)

REQUEST_ID_PREFIX = "canvas_"

_sequence = itertools.count(1)


def generate_request_id() -> str:
    """A process-unique request id, e.g. ``canvas_1718000000000_7_3f9a1c2b``."""
    return f"{REQUEST_ID_PREFIX}{int(time.time() * 1000)}_{next(_sequence)}_{uuid.uuid4().hex[:8]}"


class RequestState(str, Enum):
    """Lifecycle states of a canvas request."""

    SUBMITTED = "submitted"
    CONTEXT_EXTRACTED = "context_extracted"
    NODE_CREATED = "node_created"
    STREAMING = "streaming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def settled(self) -> bool:
        return self in (RequestState.SUCCEEDED, RequestState.FAILED, RequestState.CANCELLED)


@dataclass
class CanvasRequest:
    """A single in-flight request.

    ``response_node`` is the handle of the node this request writes to; it
    is captured once at creation and never shared with other requests.
    """

    request_id: str
    trigger_node_id: str
    prompt: str
    include_related: bool = False
    state: RequestState = RequestState.SUBMITTED
    response_node: Any = None
    accumulated: str = ""
    chunk_count: int = 0
    token: CancellationToken = field(default_factory=CancellationToken)
    created_at: float = field(default_factory=time.time)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    @property
    def response_node_id(self) -> str | None:
        return getattr(self.response_node, "id", None) if self.response_node is not None else None

    def advance(self, state: RequestState) -> None:
        logger.debug(f"Request {self.request_id}: {self.state.value} -> {state.value}")
        self.state = state


class RequestRegistry:
    """In-flight requests keyed by request id."""

    def __init__(self):
        self._requests: dict[str, CanvasRequest] = {}

    def add(self, request: CanvasRequest) -> None:
        if request.request_id in self._requests:
            raise ValueError(f"Duplicate request id: {request.request_id}")
        self._requests[request.request_id] = request

    def get(self, request_id: str) -> CanvasRequest | None:
        return self._requests.get(request_id)

    def remove(self, request_id: str) -> CanvasRequest | None:
        return self._requests.pop(request_id, None)

    def cancel(self, request_id: str) -> bool:
        """Cancel one request and drop it. Returns False if unknown."""
        request = self._requests.pop(request_id, None)
        if request is None:
            return False
        request.token.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every request and clear the registry.

        Returns:
            Number of requests cancelled
        """
        requests = list(self._requests.values())
        self._requests.clear()
        for request in requests:
            request.token.cancel()
        return len(requests)

    @property
    def request_ids(self) -> list[str]:
        return list(self._requests)

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._requests
