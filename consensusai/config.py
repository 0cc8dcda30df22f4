"""Configuration loader for ConsensusAI."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict
import os
import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "consensusai" / "config.yaml"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def load_config(
    default_path: Path | None = None,
    user_path: Path | None = None,
) -> Dict[str, Any]:
    default_path = default_path or DEFAULT_CONFIG_PATH
    user_path = user_path or USER_CONFIG_PATH
    data: Dict[str, Any] = {}
    if default_path.exists():
        data = yaml.safe_load(default_path.read_text()) or {}
    if user_path.exists():
        override = yaml.safe_load(user_path.read_text()) or {}
        data = _deep_merge(data, override)

    # Environment overrides - Server
    host = os.getenv("CONSENSUSAI_HOST")
    if host:
        data.setdefault("server", {})["host"] = host
    port = _env_int("CONSENSUSAI_PORT")
    if port is not None:
        data.setdefault("server", {})["port"] = port

    data_dir = os.getenv("CONSENSUSAI_DATA_DIR")
    if data_dir:
        data["data_dir"] = data_dir

    # Environment overrides - Oracle
    provider = os.getenv("CONSENSUSAI_PROVIDER")
    if provider:
        data.setdefault("oracle", {})["provider"] = provider.strip().lower()
    model = os.getenv("CONSENSUSAI_MODEL")
    if model:
        data.setdefault("oracle", {})["model"] = model
    oracle_timeout = _env_int("CONSENSUSAI_ORACLE_TIMEOUT")
    if oracle_timeout is not None:
        data.setdefault("oracle", {})["timeout_seconds"] = oracle_timeout

    # Environment overrides - Negotiation
    round_cap = _env_int("CONSENSUSAI_VENDOR_ROUND_CAP")
    if round_cap is not None:
        data.setdefault("negotiation", {})["vendor_round_cap"] = round_cap

    log_level = os.getenv("CONSENSUSAI_LOG_LEVEL")
    if log_level:
        data.setdefault("logging", {})["level"] = log_level.upper()

    return data


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def server(self) -> Dict[str, Any]:
        return self.raw.get("server", {})

    @property
    def data_dir(self) -> Path:
        default = str(Path.home() / ".consensusai")
        return Path(self.raw.get("data_dir", default)).expanduser()

    @property
    def oracle(self) -> Dict[str, Any]:
        return self.raw.get("oracle", {})

    @property
    def negotiation(self) -> Dict[str, Any]:
        return self.raw.get("negotiation", {})

    @property
    def intake(self) -> Dict[str, Any]:
        return self.raw.get("intake", {})

    @property
    def logging(self) -> Dict[str, Any]:
        return self.raw.get("logging", {})

    @property
    def log_level(self) -> str:
        return str(self.logging.get("level", "INFO")).upper()

    @property
    def oracle_timeout_seconds(self) -> float:
        """HTTP timeout for a single oracle call. Default 60 seconds."""
        return float(self.oracle.get("timeout_seconds", 60))

    @property
    def vendor_round_cap(self) -> int:
        """Rounds after which vendor comparison is forced to converge."""
        return int(self.negotiation.get("vendor_round_cap", 5))

    @property
    def max_workers(self) -> int:
        return int(self.negotiation.get("max_workers", 4))

    @property
    def auto_interval_seconds(self) -> float:
        return float(self.negotiation.get("auto_interval_seconds", 3.0))

    @property
    def auto_max_rounds(self) -> int:
        return int(self.negotiation.get("auto_max_rounds", 10))


def get_config() -> Config:
    return Config(load_config())
