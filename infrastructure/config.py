"""
FLOWBUILDER CONFIG - Typed configuration loaded from flowbuilder.toml

Configuration is read once from config/flowbuilder.toml and converted into
msgspec Structs. A missing or malformed file is not fatal: a warning is
issued and the defaults below apply.

Usage:
    from infrastructure.config import get_config

    config = get_config()
    config.editor.default_message     # "test message"
    config.editor.allow_self_loops    # False
"""
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import msgspec


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "flowbuilder.toml"


class EditorConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Behaviour of the flow graph engine."""
    default_message: str = "test message"    # Text of a freshly dropped message node
    id_prefix: str = "node-"                 # Prefix of issued node IDs
    max_outgoing_edges: Optional[int] = 1    # Out-degree limit, None = unlimited
    allow_self_loops: bool = False           # Permit source == target edges


class LoggingConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Mutation log destinations."""
    enable_file_log: bool = False            # Write JSONL mutation logs
    log_path: str = "./workspace/logs"       # Directory for JSONL files
    buffer_size: int = 10000                 # In-memory ring buffer size
    level: str = "INFO"                      # stdlib logging level for flowbuilder.*


class FlowConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Complete configuration tree."""
    editor: EditorConfig = msgspec.field(default_factory=EditorConfig)
    logging: LoggingConfig = msgspec.field(default_factory=LoggingConfig)


def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load raw configuration sections from flowbuilder.toml.

    Returns:
        Dict of sections, empty if the file cannot be read
    """
    config_path = path or DEFAULT_CONFIG_PATH
    try:
        import tomllib
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, ValueError) as e:
        warnings.warn(f"Failed to load config from {config_path}: {e}")
        return {}


def parse_config(raw: Dict[str, Any]) -> FlowConfig:
    """
    Convert raw TOML sections into a FlowConfig.

    Unknown sections and keys are ignored. Values of the wrong type fall
    back to defaults with a warning.
    """
    try:
        return msgspec.convert(raw, FlowConfig)
    except msgspec.ValidationError as e:
        warnings.warn(f"Invalid configuration, using defaults: {e}")
        return FlowConfig()


def load_config(path: Optional[Path] = None) -> FlowConfig:
    """Read and parse the configuration file."""
    return parse_config(load_toml_config(path))


# =============================================================================
# SINGLETON INSTANCE
# =============================================================================

_config: Optional[FlowConfig] = None


def get_config() -> FlowConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[FlowConfig]) -> None:
    """Replace the process-wide configuration (None forces a reload)."""
    global _config
    _config = config
