"""Unified configuration for canvas-ai.

CanvasAIConfig provides a clean way to configure all components:
- Canvas behavior (response node placement, size, loading text)
- Context assembly (related nodes, truncation)
- Completion transport (endpoint, model, key, timeouts)

Configuration can come from code, environment variables, or a YAML file.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILES = ["canvas_ai.yaml", "canvas_ai.yml", ".canvas_ai.yaml"]

LOADING_TEXT = "⏳ 正在思考..."


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None


@dataclass
class CanvasSettings:
    """Canvas-side behavior of the AI request orchestrator."""

    enabled: bool = True

    # Response node placement, relative to the trigger node's bottom edge
    new_node_offset_x: float = 0
    new_node_offset_y: float = 150
    new_node_width: float = 400
    new_node_height: float = 200

    loading_text: str = LOADING_TEXT
    edge_label: str | None = None

    # Context assembly
    include_related_default: bool = False
    max_context_chars: int | None = None  # None = no truncation

    debug_mode: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError if any value is out of range."""
        if self.new_node_width < 0 or self.new_node_height < 0:
            raise ConfigurationError(
                "新节点尺寸不能为负数",
                details=f"width={self.new_node_width}, height={self.new_node_height}",
            )
        if self.max_context_chars is not None and self.max_context_chars <= 0:
            raise ConfigurationError(
                "max_context_chars 必须为正整数",
                details=f"max_context_chars={self.max_context_chars}",
            )


@dataclass
class TransportConfig:
    """Configuration for the completion transport."""

    api_endpoint: str = "https://api.groq.com"
    api_key: str | None = None
    model: str = "llama-3.3-70b-versatile"

    timeout_seconds: float = 60.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0

    temperature: float = 0.7
    max_tokens: int = 2048
    system_prompt: str | None = None


@dataclass
class CanvasAIConfig:
    """Main configuration for canvas-ai.

    Create from environment variables:
        config = CanvasAIConfig.from_env()

    Or from a YAML file:
        config = CanvasAIConfig.from_yaml("canvas_ai.yaml")

    Or specify directly:
        config = CanvasAIConfig(
            canvas=CanvasSettings(new_node_offset_y=200),
            transport=TransportConfig(model="llama-3.1-8b-instant"),
        )
    """

    canvas: CanvasSettings = field(default_factory=CanvasSettings)
    transport: TransportConfig = field(default_factory=TransportConfig)
    source_path: Path | None = None

    @classmethod
    def from_env(cls) -> "CanvasAIConfig":
        """Load configuration from environment variables.

        Environment variables:
        - CANVAS_AI_ENABLED: true/false
        - CANVAS_AI_NODE_OFFSET_X / CANVAS_AI_NODE_OFFSET_Y: Response node offset
        - CANVAS_AI_NODE_WIDTH / CANVAS_AI_NODE_HEIGHT: Response node size
        - CANVAS_AI_EDGE_LABEL: Label for trigger -> response edges
        - CANVAS_AI_INCLUDE_RELATED: true/false
        - CANVAS_AI_MAX_CONTEXT_CHARS: Truncate context beyond this length
        - CANVAS_AI_DEBUG: true/false
        - CANVAS_AI_API_ENDPOINT: Base URL of the completion API
        - CANVAS_AI_API_KEY: API key (falls back to GROQ_API_KEY)
        - CANVAS_AI_MODEL: Model name
        - CANVAS_AI_TIMEOUT: Request timeout in seconds
        - CANVAS_AI_MAX_RETRIES: Retry attempts
        """
        api_key = os.getenv("CANVAS_AI_API_KEY") or os.getenv("GROQ_API_KEY")

        canvas = CanvasSettings(
            enabled=_env_bool("CANVAS_AI_ENABLED", "true"),
            new_node_offset_x=float(os.getenv("CANVAS_AI_NODE_OFFSET_X", "0")),
            new_node_offset_y=float(os.getenv("CANVAS_AI_NODE_OFFSET_Y", "150")),
            new_node_width=float(os.getenv("CANVAS_AI_NODE_WIDTH", "400")),
            new_node_height=float(os.getenv("CANVAS_AI_NODE_HEIGHT", "200")),
            edge_label=os.getenv("CANVAS_AI_EDGE_LABEL") or None,
            include_related_default=_env_bool("CANVAS_AI_INCLUDE_RELATED", "false"),
            max_context_chars=_env_optional_int("CANVAS_AI_MAX_CONTEXT_CHARS"),
            debug_mode=_env_bool("CANVAS_AI_DEBUG", "false"),
        )
        canvas.validate()

        return cls(
            canvas=canvas,
            transport=TransportConfig(
                api_endpoint=os.getenv("CANVAS_AI_API_ENDPOINT", "https://api.groq.com"),
                api_key=api_key,
                model=os.getenv("CANVAS_AI_MODEL", "llama-3.3-70b-versatile"),
                timeout_seconds=float(os.getenv("CANVAS_AI_TIMEOUT", "60")),
                max_retries=int(os.getenv("CANVAS_AI_MAX_RETRIES", "3")),
            ),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "CanvasAIConfig":
        """Load configuration from a YAML file.

        The document may contain ``canvas:`` and ``transport:`` sections
        whose keys match the dataclass fields. ``${VAR}`` and ``$VAR``
        references are expanded from the environment.

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"无法读取配置文件: {path}", cause=e)

        if not isinstance(raw, dict):
            raise ConfigurationError(f"配置文件格式无效: {path}")

        return _parse_config(_expand_env_vars(raw), source_path=path)

    @classmethod
    def default(cls) -> "CanvasAIConfig":
        """Create a default configuration (same as no-arg constructor)."""
        return cls()


def load_config(path: str | Path | None = None) -> CanvasAIConfig:
    """Load configuration from a file, or discover one, or use the environment.

    Args:
        path: Explicit config file path. If None, searches the current
            directory and its parents for a default config file name.

    Returns:
        Loaded configuration.
    """
    if path is not None:
        return CanvasAIConfig.from_yaml(path)

    config_path = _find_config_file()
    if config_path is None:
        logger.debug("No config file found, using environment")
        return CanvasAIConfig.from_env()

    return CanvasAIConfig.from_yaml(config_path)


def _find_config_file() -> Path | None:
    """Search for a config file in current and parent directories."""
    current = Path.cwd()

    for _ in range(5):
        for filename in DEFAULT_CONFIG_FILES:
            config_path = current / filename
            if config_path.exists():
                logger.debug(f"Found config file: {config_path}")
                return config_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _parse_config(raw: dict[str, Any], source_path: Path | None = None) -> CanvasAIConfig:
    canvas_raw = raw.get("canvas") or {}
    transport_raw = raw.get("transport") or {}

    try:
        canvas = CanvasSettings(**canvas_raw)
        transport = TransportConfig(**transport_raw)
    except TypeError as e:
        raise ConfigurationError("配置文件包含未知字段", details=str(e), cause=e)

    canvas.validate()
    return CanvasAIConfig(canvas=canvas, transport=transport, source_path=source_path)


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in config values.

    Supports ${VAR} and $VAR syntax. Unknown variables are left as-is.
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    if isinstance(data, str):
        def replace(match: re.Match) -> str:
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return _ENV_PATTERN.sub(replace, data)
    return data
