"""Configuration loader for Consilium."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict
import logging
import os
import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "defaults.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "consilium" / "config.yaml"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_number(name: str, cast: Any) -> Any:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return cast(value)
    except ValueError:
        return None


def load_config() -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if DEFAULT_CONFIG_PATH.exists():
        data = yaml.safe_load(DEFAULT_CONFIG_PATH.read_text()) or {}
    user_path = Path(os.getenv("CONSILIUM_CONFIG") or USER_CONFIG_PATH)
    if user_path.exists():
        override = yaml.safe_load(user_path.read_text()) or {}
        data = _deep_merge(data, override)

    # Environment overrides - Logging
    log_level = os.getenv("CONSILIUM_LOG_LEVEL")
    if log_level:
        data.setdefault("logging", {})["level"] = log_level.upper()

    # Environment overrides - Dispatch
    call_timeout = _env_number("CONSILIUM_CALL_TIMEOUT", float)
    if call_timeout is not None:
        data.setdefault("dispatch", {})["call_timeout_seconds"] = call_timeout

    fanout_timeout = _env_number("CONSILIUM_FANOUT_TIMEOUT", float)
    if fanout_timeout is not None:
        data.setdefault("dispatch", {})["fanout_timeout_seconds"] = fanout_timeout

    max_concurrency = _env_number("CONSILIUM_MAX_CONCURRENCY", int)
    if max_concurrency is not None:
        data.setdefault("dispatch", {})["max_concurrency"] = max_concurrency

    # Environment overrides - Audit trail
    audit_path = os.getenv("CONSILIUM_AUDIT_PATH")
    if audit_path:
        data["audit_path"] = audit_path

    return data


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def models(self) -> Dict[str, Any]:
        return self.raw.get("models", {})

    @property
    def routing(self) -> Dict[str, Any]:
        return self.raw.get("routing", {})

    @property
    def dispatch(self) -> Dict[str, Any]:
        return self.raw.get("dispatch", {})

    @property
    def call_timeout_seconds(self) -> float:
        """Per-call timeout applied when a catalog card sets none. Default 60s."""
        return float(self.dispatch.get("call_timeout_seconds", 60))

    @property
    def fanout_timeout_seconds(self) -> float | None:
        """Deadline for a whole fan-out; 0 or missing disables it."""
        value = float(self.dispatch.get("fanout_timeout_seconds", 0) or 0)
        return value if value > 0 else None

    @property
    def max_concurrency(self) -> int:
        return int(self.dispatch.get("max_concurrency", 0) or 0)

    @property
    def audit_path(self) -> Path | None:
        path = self.raw.get("audit_path")
        return Path(path).expanduser() if path else None

    @property
    def log_level(self) -> str:
        return str(self.raw.get("logging", {}).get("level", "INFO")).upper()


def get_config() -> Config:
    return Config(load_config())


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
