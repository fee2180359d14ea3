"""
Process configuration.

`Settings` is built once at startup (see `api/main.py`) and handed to request
handlers through `app.state`. Request-handling code never reads the
environment directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

FETCH_MODES = {"sequential", "parallel"}

REQUIRED_ENV_VARS = ("PORT", "STUDENT_SERVICE_URL", "DRIVE_SERVICE_URL")


class ConfigError(RuntimeError):
    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


@dataclass(frozen=True)
class Settings:
    port: int
    student_service_url: str
    drive_service_url: str
    upstream_timeout_s: float = 5.0
    overview_fetch_mode: str = "sequential"
    stats_fetch_mode: str = "parallel"
    jwt_secret: str = "dev-change-this-secret"
    jwt_algorithm: str = "HS256"
    environment: str = "development"
    log_level: str = "INFO"


def _env_str(environ: Mapping[str, str], name: str, default: str = "") -> str:
    return (environ.get(name) or "").strip() or default


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = _env_str(environ, name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _fetch_mode(environ: Mapping[str, str], name: str, default: str) -> str:
    mode = _env_str(environ, name, default).lower()
    if mode not in FETCH_MODES:
        raise ConfigError(f"{name} must be one of: {', '.join(sorted(FETCH_MODES))}.")
    return mode


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Build settings from the environment.

    Raises `ConfigError` listing every missing required variable, so a
    misconfigured process refuses to start instead of failing per request.
    """
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED_ENV_VARS if not _env_str(env, name)]
    if missing:
        raise ConfigError(
            "Missing required environment variables: " + ", ".join(missing),
            missing=missing,
        )

    raw_port = _env_str(env, "PORT")
    try:
        port = int(raw_port)
    except ValueError as exc:
        raise ConfigError(f"PORT must be an integer, got {raw_port!r}.") from exc

    timeout_s = _env_float(env, "UPSTREAM_TIMEOUT_S", 5.0)
    if timeout_s <= 0:
        timeout_s = 5.0

    return Settings(
        port=port,
        student_service_url=_env_str(env, "STUDENT_SERVICE_URL").rstrip("/"),
        drive_service_url=_env_str(env, "DRIVE_SERVICE_URL").rstrip("/"),
        upstream_timeout_s=timeout_s,
        overview_fetch_mode=_fetch_mode(env, "OVERVIEW_FETCH_MODE", "sequential"),
        stats_fetch_mode=_fetch_mode(env, "STATS_FETCH_MODE", "parallel"),
        # Local default keeps development simple.
        # In production, set JWT_SECRET in environment.
        jwt_secret=_env_str(env, "JWT_SECRET", "dev-change-this-secret"),
        jwt_algorithm=_env_str(env, "JWT_ALG", "HS256"),
        environment=_env_str(env, "APP_ENV", "development"),
        log_level=_env_str(env, "LOG_LEVEL", "INFO").upper(),
    )
