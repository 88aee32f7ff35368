"""
Config loader: YAML file -> frozen dataclass tree, validated against JSON Schema.

Schema: ``app_config.schema.json`` next to this module.

API secrets resolved from environment variables (APCA_API_KEY_ID, APCA_API_SECRET_KEY).
Config file holds only non-secret values. The trading switches can also be
overridden from the environment:

    MAX_ORDER_QTY      integer, per-order share cap
    ALLOWED_SYMBOLS    comma-separated allow-list (empty = all symbols)
    TRADING_ENABLED    "false" / "0" / "no" turns order placement off
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import jsonschema
import yaml

logger = logging.getLogger("tradebook.config")

DEFAULT_SCHEMA_PATH = Path(__file__).with_name("app_config.schema.json")


class ConfigError(Exception):
    """Raised when config loading or validation fails."""


@dataclass(frozen=True)
class TradingConfig:
    enabled: bool = True
    max_order_qty: int = 1000
    allowed_symbols: tuple[str, ...] = ()
    oversell_policy: str = "clamp"


@dataclass(frozen=True)
class ExecutionConfig:
    state_path: str = "data/trading_state.db"
    latency_ms: int = 0


@dataclass(frozen=True)
class DataConfig:
    quote_source: str = "synthetic"
    feed: str = "iex"
    synthetic_seed: int | None = None
    static_prices: dict[str, float] = field(default_factory=dict)
    api_key: str = ""
    api_secret: str = ""


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class HypothesisConfig:
    timezone: str = ""


@dataclass(frozen=True)
class AppConfig:
    trading: TradingConfig = field(default_factory=TradingConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    data: DataConfig = field(default_factory=DataConfig)
    journal: JournalConfig = field(default_factory=JournalConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    hypothesis: HypothesisConfig = field(default_factory=HypothesisConfig)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    """Validate *data* against the JSON Schema at *schema_path*."""
    if not schema_path.exists():
        raise ConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        where = ".".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigError(f"Config validation failed at {where}: {exc.message}") from exc


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

_FALSE_WORDS = {"false", "0", "no", "off"}


def _parse_symbols(value: str) -> tuple[str, ...]:
    return tuple(s.strip().upper() for s in value.split(",") if s.strip())


def _trading_from_env(base: TradingConfig, env: Mapping[str, str]) -> TradingConfig:
    enabled = base.enabled
    max_qty = base.max_order_qty
    allowed = base.allowed_symbols

    if "TRADING_ENABLED" in env:
        enabled = env["TRADING_ENABLED"].strip().lower() not in _FALSE_WORDS
    if env.get("MAX_ORDER_QTY", "").strip():
        try:
            max_qty = int(env["MAX_ORDER_QTY"])
        except ValueError as exc:
            raise ConfigError(f"MAX_ORDER_QTY must be an integer, got {env['MAX_ORDER_QTY']!r}") from exc
        if max_qty < 1:
            raise ConfigError("MAX_ORDER_QTY must be at least 1")
    if "ALLOWED_SYMBOLS" in env:
        allowed = _parse_symbols(env["ALLOWED_SYMBOLS"])

    return TradingConfig(
        enabled=enabled,
        max_order_qty=max_qty,
        allowed_symbols=allowed,
        oversell_policy=base.oversell_policy,
    )


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def _build_config(raw: dict[str, Any], env: Mapping[str, str]) -> AppConfig:
    """Convert a raw dict (already validated) into the frozen dataclass tree."""
    t_raw = raw.get("trading", {})
    trading = TradingConfig(
        enabled=bool(t_raw.get("enabled", True)),
        max_order_qty=int(t_raw.get("max_order_qty", 1000)),
        allowed_symbols=tuple(s.upper() for s in t_raw.get("allowed_symbols", [])),
        oversell_policy=t_raw.get("oversell_policy", "clamp"),
    )

    ex_raw = raw.get("execution", {})
    execution = ExecutionConfig(
        state_path=ex_raw.get("state_path", "data/trading_state.db"),
        latency_ms=int(ex_raw.get("latency_ms", 0)),
    )

    d_raw = raw.get("data", {})
    data = DataConfig(
        quote_source=d_raw.get("quote_source", "synthetic"),
        feed=d_raw.get("feed", "iex"),
        synthetic_seed=d_raw.get("synthetic_seed"),
        static_prices={k.upper(): float(v) for k, v in d_raw.get("static_prices", {}).items()},
        api_key=env.get("APCA_API_KEY_ID", ""),
        api_secret=env.get("APCA_API_SECRET_KEY", ""),
    )

    j_raw = raw.get("journal", {})
    journal = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    alerting = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    h_raw = raw.get("hypothesis", {})
    hypothesis = HypothesisConfig(timezone=str(h_raw.get("timezone", "")))

    return AppConfig(
        trading=_trading_from_env(trading, env),
        execution=execution,
        data=data,
        journal=journal,
        alerting=alerting,
        hypothesis=hypothesis,
    )


def load_config(
    path: str | Path = "config.yaml",
    *,
    schema_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    """
    Load configuration from a YAML file.

    API keys are resolved from environment variables:
      - APCA_API_KEY_ID
      - APCA_API_SECRET_KEY
    These follow Alpaca's standard env var names.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ConfigError
        If the file is not a YAML mapping, fails schema validation, or an
        environment override is malformed.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config is not valid YAML: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    _validate_schema(raw, Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH)
    cfg = _build_config(raw, os.environ if env is None else env)
    logger.debug("Loaded config from %s", config_path)
    return cfg
