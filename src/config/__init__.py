"""
Configuration loader: reads config.yaml, validates it against the JSON Schema,
resolves secrets and trading switches from the environment.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    ConfigError,
    DataConfig,
    ExecutionConfig,
    HypothesisConfig,
    JournalConfig,
    TradingConfig,
    load_config,
)

__all__ = [
    "AlertingConfig",
    "AppConfig",
    "ConfigError",
    "DataConfig",
    "ExecutionConfig",
    "HypothesisConfig",
    "JournalConfig",
    "TradingConfig",
    "load_config",
]
