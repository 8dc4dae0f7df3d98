"""Runtime settings and logging configuration.

Settings come from ``GHOSTSPEAK_*`` environment variables, layered over an
optional ``.env`` file (python-dotenv). Process environment wins over the
file. Unset values fall back to the runtime policy defaults.

Environment variables:
    GHOSTSPEAK_CONFIG_DIR    directory holding the policy JSON files
    GHOSTSPEAK_DATA_DIR      directory for the record store and event log
    GHOSTSPEAK_KEYSTORE_DIR  directory of encrypted wallet keystores
    GHOSTSPEAK_NETWORK       network name selecting the token table
    GHOSTSPEAK_LOG_LEVEL     DEBUG | INFO | WARNING | ERROR
    GHOSTSPEAK_LOG_FORMAT    text | json
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

from ghostspeak.policy.resolver import PolicyResolver

PACKAGE_LOGGER = "ghostspeak"
_LOG_FORMATS = ("text", "json")


@dataclass(frozen=True)
class Settings:
    config_dir: Path
    data_dir: Path
    keystore_dir: Path
    network: Optional[str] = None
    log_level: Optional[str] = None
    log_format: Optional[str] = None

    @property
    def store_path(self) -> Path:
        return self.data_dir / "records.json"

    @property
    def event_log_path(self) -> Path:
        return self.data_dir / "events.jsonl"

    def resolved_network(self, resolver: PolicyResolver) -> str:
        network = self.network or resolver.default_network()
        if network not in resolver.networks():
            raise ValueError(f"Unknown network: {network}")
        return network

    def resolved_logging(self, resolver: PolicyResolver) -> tuple[str, str]:
        level, fmt = resolver.logging_defaults()
        return (self.log_level or level).upper(), (self.log_format or fmt).lower()


def load_settings(
    env_file: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build Settings from an optional .env file and the environment."""
    values: dict[str, Optional[str]] = {}
    if env_file is not None and env_file.exists():
        values.update(dotenv_values(env_file))
    values.update(os.environ if environ is None else environ)

    def get(name: str) -> Optional[str]:
        value = values.get(f"GHOSTSPEAK_{name}")
        return value or None

    cwd = Path.cwd()
    data_dir = Path(get("DATA_DIR") or cwd / ".ghostspeak")
    log_format = get("LOG_FORMAT")
    if log_format is not None and log_format.lower() not in _LOG_FORMATS:
        raise ValueError(f"GHOSTSPEAK_LOG_FORMAT must be one of {_LOG_FORMATS}")
    return Settings(
        config_dir=Path(get("CONFIG_DIR") or cwd / "config"),
        data_dir=data_dir,
        keystore_dir=Path(get("KEYSTORE_DIR") or data_dir / "wallets"),
        network=get("NETWORK"),
        log_level=get("LOG_LEVEL"),
        log_format=log_format,
    )


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, sort_keys=True)


def configure_logging(level: str = "INFO", fmt: str = "text") -> logging.Logger:
    """Install a single stderr handler on the package logger.

    Calling again replaces the handler instead of stacking another one.
    """
    if fmt not in _LOG_FORMATS:
        raise ValueError(f"Log format must be one of {_LOG_FORMATS}, got {fmt!r}")
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_ghostspeak", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._ghostspeak = True  # type: ignore[attr-defined]
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
