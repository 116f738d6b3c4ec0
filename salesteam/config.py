"""
Configuration.

Settings come from a YAML file (salesteam.yml by default, or the path in
SALESTEAM_CONFIG). A missing file means defaults: an append-only ledger store
under .salesteam/ and the default revoke lookup.

    store:
      kind: ledger          # ledger | memory | webapi
      path: .salesteam/records.jsonl
      url: https://org.crm.dynamics.com
      token: env:DATAVERSE_TOKEN
      timeout_s: 10
    revoke:
      require_open: false
    log_level: INFO
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .store.base import RecordStore

CONFIG_ENV_VAR = "SALESTEAM_CONFIG"
DEFAULT_CONFIG_NAME = "salesteam.yml"
STORE_KINDS = ("ledger", "memory", "webapi")
# Credentials are configured as references, never raw values
SECRET_PREFIX = "env:"


@dataclass
class StoreSettings:
    kind: str = "ledger"
    path: Path = Path(".salesteam/records.jsonl")
    url: str | None = None
    token: str | None = None  # secrets reference, e.g. env:DATAVERSE_TOKEN
    timeout_s: float = 10.0


@dataclass
class RevokeSettings:
    # Only close intervals that are still open (end date unset)
    require_open: bool = False


@dataclass
class Settings:
    store: StoreSettings = field(default_factory=StoreSettings)
    revoke: RevokeSettings = field(default_factory=RevokeSettings)
    log_level: str = "INFO"
    source: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["store"]["path"] = str(self.store.path)
        data["source"] = str(self.source) if self.source else None
        return data


def _coerce_dict(value: Any, section: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section {section!r} must be a mapping")
    return value


def _bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{name} must be true or false, got {value!r}")


def is_secret_ref(value: str) -> bool:
    return value.startswith(SECRET_PREFIX) and len(value) > len(SECRET_PREFIX)


def resolve_secret(ref: str) -> str | None:
    """Value of an env: reference; None when unset or not a reference."""
    if not is_secret_ref(ref):
        return None
    return os.environ.get(ref[len(SECRET_PREFIX) :])


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV_VAR)
    return Path(env) if env else Path.cwd() / DEFAULT_CONFIG_NAME


def parse_settings(data: dict[str, Any], base_dir: Path | None = None) -> Settings:
    """Build Settings from a parsed YAML mapping."""
    store_raw = _coerce_dict(data.get("store"), "store")
    revoke_raw = _coerce_dict(data.get("revoke"), "revoke")

    kind = str(store_raw.get("kind", "ledger")).strip().lower()
    if kind not in STORE_KINDS:
        raise ConfigError(f"store.kind must be one of {', '.join(STORE_KINDS)}, got {kind!r}")

    path = Path(str(store_raw.get("path", StoreSettings.path)))
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path

    token = store_raw.get("token")
    if token is not None and not is_secret_ref(str(token)):
        raise ConfigError("store.token must be a secrets reference such as env:DATAVERSE_TOKEN")

    try:
        timeout_s = float(store_raw.get("timeout_s", 10.0))
    except (TypeError, ValueError):
        raise ConfigError(f"store.timeout_s must be a number, got {store_raw.get('timeout_s')!r}") from None

    log_level = str(data.get("log_level", "INFO")).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"Unknown log_level {log_level!r}")

    return Settings(
        store=StoreSettings(
            kind=kind,
            path=path,
            url=store_raw.get("url"),
            token=str(token) if token is not None else None,
            timeout_s=timeout_s,
        ),
        revoke=RevokeSettings(
            require_open=_bool(revoke_raw.get("require_open", False), "revoke.require_open"),
        ),
        log_level=log_level,
    )


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from YAML; a missing file yields defaults."""
    config_path = path or default_config_path()
    if not config_path.exists():
        if path is not None:
            raise ConfigError(f"Config file {config_path} does not exist")
        return Settings()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    settings = parse_settings(data, base_dir=config_path.resolve().parent)
    settings.source = config_path
    return settings


def build_store(settings: Settings) -> RecordStore:
    """Instantiate the configured RecordStore."""
    from .store.ledger_store import LedgerRecordStore
    from .store.memory import MemoryRecordStore
    from .store.webapi import WebApiConfig, WebApiRecordStore

    cfg = settings.store
    if cfg.kind == "memory":
        return MemoryRecordStore()
    if cfg.kind == "ledger":
        return LedgerRecordStore(cfg.path)

    if not cfg.url:
        raise ConfigError("store.url is required for the webapi store")
    if not cfg.token:
        raise ConfigError("store.token is required for the webapi store")
    token = resolve_secret(cfg.token)
    if token is None:
        raise ConfigError(f"Secret {cfg.token} is not set")
    return WebApiRecordStore(WebApiConfig(url=cfg.url, token=token, timeout_s=cfg.timeout_s))
