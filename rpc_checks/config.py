"""Configuration management for the RPC endpoint checker."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from rpc_checks.chainlist import DEFAULT_CHAINLIST_URL
from rpc_checks.common_check import (
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_DNS_TIMEOUT_SECONDS,
    DEFAULT_RPC_TIMEOUT_SECONDS,
    ProbeTimeouts,
)
from rpc_checks.sink import DEFAULT_MERGED_FILENAME


DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")
DEFAULT_CONCURRENCY = 16
MAX_CONCURRENCY = 128


def clamp_concurrency(value: Any) -> int:
    """Invalid or < 1 falls back to the default; anything above the ceiling is capped."""
    try:
        n = int(value)
    except (TypeError, ValueError):
        return DEFAULT_CONCURRENCY
    if n < 1:
        return DEFAULT_CONCURRENCY
    return min(n, MAX_CONCURRENCY)


class CheckerSettings(BaseModel):
    """Settings for one checker run."""

    # Input
    chainlist_url: str = Field(default=DEFAULT_CHAINLIST_URL, description="Chain directory URL or local JSON path")
    chain_ids: Optional[list[int]] = Field(default=None, description="Only process these chain IDs")
    directory_timeout_seconds: float = Field(default=30.0, description="Timeout for fetching the chain directory")

    # Output
    out_dir: str = Field(default="./rpcs", description="Directory for per-chain and merged JSON files")
    merged_filename: str = Field(default=DEFAULT_MERGED_FILENAME, description="Merged document file name")
    skip_existing: bool = Field(default=False, description="Reuse chains whose per-chain file already exists")

    # Probing
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, description="Max endpoint probes in flight per chain")
    connect_timeout_seconds: float = Field(default=DEFAULT_CONNECT_TIMEOUT_SECONDS, description="Connectivity stage timeout")
    rpc_timeout_seconds: float = Field(default=DEFAULT_RPC_TIMEOUT_SECONDS, description="eth_blockNumber stage timeout")
    dns_timeout_seconds: float = Field(default=DEFAULT_DNS_TIMEOUT_SECONDS, description="AAAA lookup timeout")
    dns_resolvers: Optional[list[str]] = Field(default=None, description="Nameservers for AAAA lookups (system default if unset)")
    user_agent: str = Field(default="rpc-endpoint-checker/0.1", description="User-Agent header for probes")

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("concurrency", mode="before")
    @classmethod
    def _clamp_concurrency(cls, value: Any) -> int:
        return clamp_concurrency(value)

    @field_validator("connect_timeout_seconds", "rpc_timeout_seconds", "dns_timeout_seconds", "directory_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @property
    def probe_timeouts(self) -> ProbeTimeouts:
        return ProbeTimeouts(
            connect_seconds=self.connect_timeout_seconds,
            rpc_seconds=self.rpc_timeout_seconds,
            dns_seconds=self.dns_timeout_seconds,
        )


def load_config_file(path: Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> CheckerSettings:
    """Load settings from YAML, then environment variables, then explicit overrides."""
    if config_path is None:
        env_path = os.getenv("RPC_CHECKER_CONFIG")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

    config_data: dict[str, Any] = {}
    if Path(config_path).exists():
        config_data = load_config_file(Path(config_path))

    env_overrides = {
        "log_level": os.getenv("LOG_LEVEL"),
        "out_dir": os.getenv("RPC_CHECKER_OUT_DIR"),
        "concurrency": os.getenv("RPC_CHECKER_CONCURRENCY"),
    }
    for key, value in env_overrides.items():
        if value is not None and value.strip():
            config_data[key] = value.strip()

    for key, value in (overrides or {}).items():
        if value is not None:
            config_data[key] = value

    return CheckerSettings(**config_data)
