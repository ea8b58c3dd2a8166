"""Standard exception hierarchy for canvas-ai.

All canvas-ai exceptions inherit from CanvasAIError, making it easy
to catch all library-specific errors.

Exception Hierarchy:
    CanvasAIError (base)
    ├── ConfigurationError - Invalid configuration
    ├── GraphUnavailableError - No focused canvas view
    ├── NodeOperationError - Node create/update/connect failed
    ├── ContextExtractionError - Malformed node or edge data
    └── TransportError - Completion transport failed
        └── TransportCancelledError - Request was cancelled

Transport failures are additionally classified into a TransportErrorKind
by matching status codes and message substrings. The classification only
selects the human-readable text shown in the error node; retry behavior
belongs to the transport itself.
"""

from enum import Enum
from typing import Any, Literal


class CanvasAIError(Exception):
    """Base exception for all canvas-ai errors.

    Catch this to handle any library-specific exception:
        try:
            controller.node_manager.create_text_node(canvas, "hi", 0, 0, 400, 200)
        except CanvasAIError as e:
            logger.error(f"Canvas AI error: {e}")
    """

    retryable: bool = False
    default_message: str = "Canvas AI 错误"

    def __init__(
        self,
        message: str | None = None,
        details: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details
        self.cause = cause

    @property
    def name(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        if self.cause:
            return f"{super().__str__()} (caused by: {self.cause})"
        return super().__str__()

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for structured events."""
        return {
            "name": self.name,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(CanvasAIError):
    """Invalid configuration.

    Raised when CanvasAIConfig has invalid settings, missing required
    values, or an unreadable config file.
    """

    default_message = "配置无效"


# =============================================================================
# Canvas Errors
# =============================================================================


class GraphUnavailableError(CanvasAIError):
    """No canvas is available.

    The active view is not a canvas view, or the caller passed no graph.
    Not retryable: the user has to focus a canvas first.
    """

    default_message = "请先打开一个 Canvas 文件"


NodeOperation = Literal["create", "update", "connect"]


class NodeOperationError(CanvasAIError):
    """A node could not be created, updated or connected.

    Raised when the host primitive (and, for edges, the data splice
    fallback) failed. Retryable: usually transient host state.
    """

    retryable = True

    _DEFAULT_MESSAGES: dict[str, str] = {
        "create": "无法创建节点",
        "update": "无法更新节点内容",
        "connect": "无法创建节点连接",
    }

    def __init__(
        self,
        operation: NodeOperation,
        message: str | None = None,
        node_id: str | None = None,
        details: str | None = None,
        cause: Exception | None = None,
        primary_error: Exception | None = None,
        fallback_error: Exception | None = None,
    ):
        super().__init__(
            message or self._DEFAULT_MESSAGES[operation],
            details=details,
            cause=cause,
        )
        self.operation = operation
        self.node_id = node_id
        self.primary_error = primary_error
        self.fallback_error = fallback_error

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "operation": self.operation,
            "node_id": self.node_id,
            "primary_error": str(self.primary_error) if self.primary_error else None,
            "fallback_error": str(self.fallback_error) if self.fallback_error else None,
        })
        return data


ExtractionStage = Literal["node-content", "connected-nodes", "context-build"]


class ContextExtractionError(CanvasAIError):
    """Node content or connected nodes could not be read.

    Not retryable: the node or edge data itself is malformed.
    """

    _DEFAULT_MESSAGES: dict[str, str] = {
        "node-content": "无法提取节点内容",
        "connected-nodes": "无法访问连接的节点",
        "context-build": "无法构建上下文字符串",
    }

    def __init__(
        self,
        stage: ExtractionStage,
        message: str | None = None,
        node_id: str | None = None,
        details: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message or self._DEFAULT_MESSAGES[stage],
            details=details,
            cause=cause,
        )
        self.stage = stage
        self.node_id = node_id

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"stage": self.stage, "node_id": self.node_id})
        return data


# =============================================================================
# Transport Errors
# =============================================================================


class TransportErrorKind(str, Enum):
    """Classification of completion transport failures."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class TransportError(CanvasAIError):
    """Completion transport error.

    Raised when:
    - The API endpoint is unreachable
    - The request times out
    - The API key is rejected
    - Rate limits are exceeded
    """

    default_message = "AI 请求失败"

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        kind: TransportErrorKind | None = None,
        details: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, details=details, cause=cause)
        self.status_code = status_code
        self.kind = kind

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "kind": self.kind.value if self.kind else None,
        })
        return data


class TransportCancelledError(TransportError):
    """The request was cancelled before the transport finished."""

    default_message = "Request cancelled"

    def __init__(self, message: str | None = None, cause: Exception | None = None):
        super().__init__(message, kind=TransportErrorKind.CANCELLED, cause=cause)


# =============================================================================
# Classification
# =============================================================================


TRANSPORT_MESSAGES: dict[TransportErrorKind, str] = {
    TransportErrorKind.NETWORK: "无法连接到 AI 服务，请检查网络连接",
    TransportErrorKind.TIMEOUT: "AI 服务响应超时，请稍后重试",
    TransportErrorKind.AUTH: "API 密钥无效或已过期",
    TransportErrorKind.RATE_LIMIT: "API 调用频率超限，请稍后重试",
    TransportErrorKind.CANCELLED: "请求已取消",
    TransportErrorKind.UNKNOWN: "AI 请求失败",
}

# Checked in order; the first matching kind wins.
_MESSAGE_PATTERNS: list[tuple[TransportErrorKind, tuple[str, ...]]] = [
    (TransportErrorKind.AUTH, ("401", "unauthorized", "invalid api key")),
    (TransportErrorKind.RATE_LIMIT, ("429", "rate limit", "too many requests")),
    (TransportErrorKind.TIMEOUT, ("timeout", "timed out")),
    (TransportErrorKind.CANCELLED, ("cancel", "abort")),
    (TransportErrorKind.NETWORK, ("network", "connection", "econnrefused", "fetch")),
]

ERROR_HEADER = "❌ AI 错误"
ERROR_HINT = "💡 提示：请检查插件设置与网络连接，然后重新提问。"


def classify_transport_error(error: BaseException) -> TransportErrorKind:
    """Classify a transport failure by status code, then by message text."""
    kind = getattr(error, "kind", None)
    if isinstance(kind, TransportErrorKind):
        return kind

    status = getattr(error, "status_code", None)
    if status == 401:
        return TransportErrorKind.AUTH
    if status == 429:
        return TransportErrorKind.RATE_LIMIT

    text = str(error).lower()
    for candidate, needles in _MESSAGE_PATTERNS:
        if any(needle in text for needle in needles):
            return candidate
    return TransportErrorKind.UNKNOWN


def describe_error(error: BaseException) -> str:
    """Human-readable message for an error shown inside a canvas node."""
    if isinstance(error, CanvasAIError) and not isinstance(error, TransportError):
        return error.message

    kind = classify_transport_error(error)
    message = TRANSPORT_MESSAGES[kind]
    if kind is TransportErrorKind.UNKNOWN and str(error):
        message = f"{message}: {error}"
    return message


def format_error_block(error: BaseException) -> str:
    """Format the text that replaces a response node after a failure."""
    return f"{ERROR_HEADER}\n\n{describe_error(error)}\n\n{ERROR_HINT}"
