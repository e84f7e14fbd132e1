"""Configuration management for the Intern Connect chat client."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

logger = logging.getLogger("internconnect.config")

# Placeholders shipped with the client; anything running with these is a development setup.
DEFAULT_HTTP_ENDPOINT = "YOUR_HASURA_HTTP_ENDPOINT"
DEFAULT_WS_ENDPOINT = "YOUR_HASURA_WS_ENDPOINT"
DEFAULT_ADMIN_SECRET = "YOUR_HASURA_ADMIN_SECRET"
DEFAULT_SESSION_SECRET = "intern-connect-development-secret"

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_REGISTER_REDIRECT_DELAY = 2

REALTIME_MODES = ("poll", "subscription")

_ENV_KEYS: Dict[str, str] = {
    "graphql_http_url": "HASURA_HTTP",
    "graphql_ws_url": "HASURA_WS",
    "admin_secret": "HASURA_ADMIN_SECRET",
    "session_secret": "INTERNCONNECT_SESSION_SECRET",
    "poll_interval": "INTERNCONNECT_POLL_INTERVAL",
    "request_timeout": "INTERNCONNECT_REQUEST_TIMEOUT",
    "realtime": "INTERNCONNECT_REALTIME",
    "secure_cookies": "INTERNCONNECT_SESSION_SECURE",
    "trusted_proxies": "INTERNCONNECT_TRUSTED_PROXIES",
}

_FALLBACKS: Dict[str, str] = {
    "graphql_http_url": DEFAULT_HTTP_ENDPOINT,
    "graphql_ws_url": DEFAULT_WS_ENDPOINT,
    "admin_secret": DEFAULT_ADMIN_SECRET,
    "session_secret": DEFAULT_SESSION_SECRET,
}


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _positive_float(name: str, value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc
    if number <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return number


@dataclass(frozen=True)
class Settings:
    """Endpoints, secrets and timings used by the web client."""

    graphql_http_url: str = DEFAULT_HTTP_ENDPOINT
    graphql_ws_url: str = DEFAULT_WS_ENDPOINT
    admin_secret: str = DEFAULT_ADMIN_SECRET
    session_secret: str = DEFAULT_SESSION_SECRET
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    realtime: str = "poll"
    secure_cookies: bool = False
    register_redirect_delay: int = DEFAULT_REGISTER_REDIRECT_DELAY
    trusted_proxies: str = "*"

    @property
    def uses_subscriptions(self) -> bool:
        return self.realtime == "subscription"

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from raw configuration values."""

        realtime = str(data.get("realtime") or "poll").strip().lower()
        if realtime not in REALTIME_MODES:
            raise ValueError(
                f"Unknown realtime mode {realtime!r}; expected one of {', '.join(REALTIME_MODES)}"
            )

        secure = data.get("secure_cookies", False)
        if isinstance(secure, str):
            secure = _env_flag(secure)

        values: Dict[str, str] = {}
        for key, fallback in _FALLBACKS.items():
            raw = data.get(key)
            cleaned = str(raw).strip() if raw is not None else ""
            if not cleaned:
                logger.warning(
                    "%s is not configured; falling back to the insecure built-in default",
                    _ENV_KEYS[key],
                )
                cleaned = fallback
            values[key] = cleaned

        return Settings(
            graphql_http_url=values["graphql_http_url"],
            graphql_ws_url=values["graphql_ws_url"],
            admin_secret=values["admin_secret"],
            session_secret=values["session_secret"],
            poll_interval=_positive_float(
                "poll_interval", data.get("poll_interval", DEFAULT_POLL_INTERVAL)
            ),
            request_timeout=_positive_float(
                "request_timeout", data.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)
            ),
            realtime=realtime,
            secure_cookies=bool(secure),
            register_redirect_delay=int(
                data.get("register_redirect_delay", DEFAULT_REGISTER_REDIRECT_DELAY)  # type: ignore[arg-type]
            ),
            trusted_proxies=str(data.get("trusted_proxies") or "*").strip() or "*",
        )


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional YAML configuration file."""

    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def _load_yaml(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return raw


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file overlaid with environment variables."""

    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("INTERNCONNECT_CONFIG"))

    data: Dict[str, object] = {}
    if config_path is not None:
        data.update(_load_yaml(config_path))
        logger.info("Loaded configuration from %s", config_path)

    for key, env_name in _ENV_KEYS.items():
        value = env.get(env_name)
        if value is not None and value.strip():
            data[key] = value.strip()

    return Settings.from_dict(data)


__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "REALTIME_MODES",
    "Settings",
    "load_settings",
    "resolve_config_path",
]
