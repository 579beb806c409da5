"""Configuration module for botbridge."""

from botbridge.config.loader import (
    load_config,
    save_config,
    get_config_path,
    get_botbridge_home,
)
from botbridge.config.schema import (
    AgentBinding,
    Config,
    FeishuAccountConfig,
    FeishuConfig,
    ForwardingConfig,
)

__all__ = [
    "AgentBinding",
    "Config",
    "FeishuAccountConfig",
    "FeishuConfig",
    "ForwardingConfig",
    "load_config",
    "save_config",
    "get_config_path",
    "get_botbridge_home",
]
