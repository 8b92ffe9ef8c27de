"""Settings for the validator agent.

Layering (lowest to highest priority): built-in defaults, the JSON config
file, command-line flags, ``STORKWATCH__*`` environment variables.
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any

import bittensor as bt
from pydantic import BaseModel, Field, ValidationError

from storkwatch.validator.client import DEFAULT_BASE_URL, DEFAULT_ORIGIN, DEFAULT_USER_AGENT

ENV_PREFIX = "STORKWATCH__"


class AccountConfig(BaseModel):
    username: str = Field(min_length=1)
    password: str = ""


class CognitoConfig(BaseModel):
    region: str = "ap-northeast-1"
    user_pool_id: str = "ap-northeast-1_M22I44OpC"
    client_id: str = "5msns4n49hmg3dftp2tp1t2iuh"
    auth_flow: str = Field(default="USER_PASSWORD_AUTH", pattern=r"^USER_PASSWORD_AUTH$")
    endpoint_url: str | None = None


class StorkConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    interval_seconds: float = Field(default=10.0, gt=0)
    keepalive_interval_seconds: float = Field(default=3000.0, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    max_age_minutes: float = Field(default=60.0, gt=0)
    origin: str = DEFAULT_ORIGIN
    user_agent: str = DEFAULT_USER_AGENT


class ThreadsConfig(BaseModel):
    max_workers: int = Field(default=10, ge=1, le=500)


class WatchSettings(BaseModel):
    """Complete agent configuration."""

    accounts: list[AccountConfig] = Field(default_factory=list)
    proxies: list[str] = Field(default_factory=list)
    proxy_file: str | None = None
    cognito: CognitoConfig = Field(default_factory=CognitoConfig)
    stork: StorkConfig = Field(default_factory=StorkConfig)
    threads: ThreadsConfig = Field(default_factory=ThreadsConfig)
    data_dir: str = "data"

    def token_path(self, account: AccountConfig) -> Path:
        """Token file for an account; a single-account setup keeps tokens.json."""
        if len(self.accounts) <= 1:
            return Path(self.data_dir) / "tokens.json"
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in account.username)
        return Path(self.data_dir) / f"tokens_{safe}.json"


def add_args(parser: argparse.ArgumentParser) -> None:
    """Adds agent arguments to the parser."""
    parser.add_argument("--config", type=str, default="config.json", help="Path to the JSON config file.")
    parser.add_argument("--data_dir", type=str, default=None, help="Directory for token files.")
    parser.add_argument("--proxy_file", type=str, default=None, help="Plain-text proxy list, one URL per line.")
    parser.add_argument("--stork.interval", type=float, default=None, help="Seconds between validation cycles.")
    parser.add_argument("--threads.max_workers", type=int, default=None, help="Dispatch fan-out width.")


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        bt.logging.info({"config": "no_config_file, using defaults", "path": str(path)})
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ValueError(f"Failed to load configuration from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Configuration in {path} must be a JSON object")
    return data


def _set(data: dict[str, Any], dotted: str, value: Any) -> None:
    section, _, key = dotted.rpartition(".")
    target = data
    if section:
        target = data.setdefault(section, {})
    target[key] = value


def _apply_env(data: dict[str, Any], environ: dict[str, str]) -> None:
    mapping = {
        f"{ENV_PREFIX}STORK__BASE_URL": "stork.base_url",
        f"{ENV_PREFIX}STORK__INTERVAL_SECONDS": "stork.interval_seconds",
        f"{ENV_PREFIX}STORK__KEEPALIVE_INTERVAL_SECONDS": "stork.keepalive_interval_seconds",
        f"{ENV_PREFIX}THREADS__MAX_WORKERS": "threads.max_workers",
        f"{ENV_PREFIX}COGNITO__REGION": "cognito.region",
        f"{ENV_PREFIX}COGNITO__CLIENT_ID": "cognito.client_id",
        f"{ENV_PREFIX}DATA_DIR": "data_dir",
        f"{ENV_PREFIX}PROXY_FILE": "proxy_file",
    }
    for env_key, dotted in mapping.items():
        value = environ.get(env_key)
        if value:
            _set(data, dotted, value)

    # A single account can be supplied entirely through the environment
    username = environ.get(f"{ENV_PREFIX}ACCOUNT__USERNAME")
    password = environ.get(f"{ENV_PREFIX}ACCOUNT__PASSWORD")
    if username:
        data["accounts"] = [{"username": username, "password": password or ""}]


def load_settings(
    args: argparse.Namespace | None = None,
    environ: dict[str, str] | None = None,
) -> WatchSettings:
    """Build WatchSettings from file, CLI args and environment.

    Raises:
        ValueError: the config file is unreadable or fails validation.
    """
    environ = dict(os.environ) if environ is None else environ
    config_path = Path(getattr(args, "config", None) or environ.get(f"{ENV_PREFIX}CONFIG", "config.json"))
    data = _read_config_file(config_path)

    if args is not None:
        for dest, dotted in (
            ("data_dir", "data_dir"),
            ("proxy_file", "proxy_file"),
            ("stork.interval", "stork.interval_seconds"),
            ("threads.max_workers", "threads.max_workers"),
        ):
            value = getattr(args, dest, None)
            if value is not None:
                _set(data, dotted, value)

    _apply_env(data, environ)

    try:
        return WatchSettings(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e


__all__ = [
    "AccountConfig",
    "CognitoConfig",
    "StorkConfig",
    "ThreadsConfig",
    "WatchSettings",
    "add_args",
    "load_settings",
]
