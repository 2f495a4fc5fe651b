from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

import yaml


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    timeout_seconds: int


@dataclass(frozen=True)
class IdentityConfig:
    url: str
    anon_key: str


@dataclass(frozen=True)
class SessionConfig:
    secret_key: str
    cookie_name: str
    max_age_seconds: int


@dataclass(frozen=True)
class SiteConfig:
    name: str
    url: str


@dataclass(frozen=True)
class Config:
    api: ApiConfig
    identity: IdentityConfig
    session: SessionConfig
    site: SiteConfig

    def describe(self) -> dict[str, Any]:
        return {
            "api": {
                "base_url": self.api.base_url,
                "timeout_seconds": self.api.timeout_seconds,
            },
            "identity": {
                "url": self.identity.url,
                "anon_key": _mask(self.identity.anon_key),
            },
            "session": {
                "secret_key": _mask(self.session.secret_key),
                "cookie_name": self.session.cookie_name,
                "max_age_seconds": self.session.max_age_seconds,
            },
            "site": {"name": self.site.name, "url": self.site.url},
        }


DEFAULT_CONFIG: dict[str, Any] = {
    "api": {
        "base_url": "http://localhost:8000",
        "timeout_seconds": 30,
    },
    "identity": {
        "url": "",
        "anon_key": "",
    },
    "session": {
        "secret_key": "",
        "cookie_name": "ds_session",
        "max_age_seconds": 7 * 24 * 3600,
    },
    "site": {
        "name": "DataScrap",
        "url": "http://localhost:3000",
    },
}

REQUIRED_KEYS = [
    ("identity", "url"),
    ("identity", "anon_key"),
    ("session", "secret_key"),
]

# (section, key) -> environment variable
ENV_OVERRIDES: dict[tuple[str, str], str] = {
    ("api", "base_url"): "DATASCRAP_API_URL",
    ("api", "timeout_seconds"): "DATASCRAP_API_TIMEOUT",
    ("identity", "url"): "DATASCRAP_IDENTITY_URL",
    ("identity", "anon_key"): "DATASCRAP_IDENTITY_ANON_KEY",
    ("session", "secret_key"): "DATASCRAP_SESSION_KEY",
    ("site", "url"): "DATASCRAP_SITE_URL",
}

CONFIG_PATH_ENV = "DATASCRAP_CONFIG_PATH"


def get_config_path() -> str | None:
    return os.environ.get(CONFIG_PATH_ENV) or None


def load_config(path: str | None = None) -> Config:
    cfg = load_raw_config(path)
    errors = validate_config(cfg)
    if errors:
        raise ConfigError("Invalid configuration: " + "; ".join(errors))
    return _build_config(cfg)


def load_raw_config(path: str | None = None) -> dict[str, Any]:
    cfg = _deep_copy(DEFAULT_CONFIG)
    path = path or get_config_path()
    if path:
        _merge(cfg, _read_config_file(path))
    _apply_env_overrides(cfg)
    return cfg


def validate_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config", errors)
    if errors:
        return errors
    for section, key in REQUIRED_KEYS:
        if not str(cfg[section][key]).strip():
            env_name = ENV_OVERRIDES.get((section, key))
            hint = f" (set {env_name})" if env_name else ""
            errors.append(f"missing config.{section}.{key}{hint}")
    if cfg["api"]["timeout_seconds"] <= 0:
        errors.append("config.api.timeout_seconds must be positive")
    if cfg["session"]["max_age_seconds"] <= 0:
        errors.append("config.session.max_age_seconds must be positive")
    return errors


def _read_config_file(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    for (section, key), env_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is None or value == "":
            continue
        default = DEFAULT_CONFIG[section][key]
        if isinstance(default, int):
            try:
                cfg.setdefault(section, {})[key] = int(value)
            except ValueError as exc:
                raise ConfigError(f"{env_name} must be an integer") from exc
        else:
            cfg.setdefault(section, {})[key] = value


def _merge(base: dict[str, Any], override: dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def _validate_dict(value: dict[str, Any], schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema.keys():
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value.keys():
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key not in value:
            continue
        _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        if not isinstance(value, dict):
            errors.append(f"{path} must be an object")
            return
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{path} must be an integer")
        return
    if isinstance(default, str):
        if not isinstance(value, str):
            errors.append(f"{path} must be a string")
        return


def _build_config(cfg: dict[str, Any]) -> Config:
    api_cfg = cfg["api"]
    identity_cfg = cfg["identity"]
    session_cfg = cfg["session"]
    site_cfg = cfg["site"]

    api = ApiConfig(
        base_url=str(api_cfg["base_url"]).rstrip("/"),
        timeout_seconds=int(api_cfg["timeout_seconds"]),
    )
    identity = IdentityConfig(
        url=str(identity_cfg["url"]).rstrip("/"),
        anon_key=str(identity_cfg["anon_key"]),
    )
    session = SessionConfig(
        secret_key=str(session_cfg["secret_key"]),
        cookie_name=str(session_cfg["cookie_name"]),
        max_age_seconds=int(session_cfg["max_age_seconds"]),
    )
    site = SiteConfig(
        name=str(site_cfg["name"]),
        url=str(site_cfg["url"]).rstrip("/"),
    )
    return Config(api=api, identity=identity, session=session, site=site)


def _mask(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return value[:4] + "****" + value[-4:]


def _deep_copy(value: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(value))
