from __future__ import annotations
import os
import sqlite3
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from .constants import DEFAULTS, MIN_POLL_INTERVAL_MS, POLL_INTERVAL_ENV
from .db import PathLike, init_db, get_config as _get, set_config as _set, all_config as _all
from .errors import ConfigError

# Public API for config access; ensures DB exists first


def _positive_int(value: str) -> int:
    n = int(value)
    if n <= 0:
        raise ValueError("must be a positive integer")
    return n


def _poll_interval(value: str) -> int:
    n = int(value)
    if n < MIN_POLL_INTERVAL_MS:
        raise ValueError(f"must be at least {MIN_POLL_INTERVAL_MS}ms")
    return n


def _multiplier(value: str) -> float:
    f = float(value)
    if f < 1:
        raise ValueError("must be >= 1")
    return f


def _positive_float(value: str) -> float:
    f = float(value)
    if f <= 0:
        raise ValueError("must be > 0")
    return f


_PARSERS: Dict[str, Callable[[str], object]] = {
    "max_attempts": _positive_int,
    "poll_interval_ms": _poll_interval,
    "max_backoff_ms": _positive_int,
    "backoff_multiplier": _multiplier,
    "status_interval_seconds": _positive_float,
}

ALLOWED_CONFIG_KEYS = set(DEFAULTS.keys())


def parse_value(key: str, value: str):
    if key not in ALLOWED_CONFIG_KEYS:
        raise ConfigError(f"Unknown config key {key!r}. Allowed keys: {', '.join(sorted(ALLOWED_CONFIG_KEYS))}")
    try:
        return _PARSERS[key](value)
    except ValueError as e:
        raise ConfigError(f"Invalid value for {key}: {value!r} ({e})") from e


def ensure_bootstrapped(path: Optional[PathLike] = None) -> None:
    try:
        init_db(path)
    except sqlite3.Error as e:
        raise ConfigError(f"Cannot open queue database: {e}") from e


def get_value(key: str, default: Optional[str] = None, path: Optional[PathLike] = None) -> Optional[str]:
    ensure_bootstrapped(path)
    return _get(key, default, path)


def set_value(key: str, value: str, path: Optional[PathLike] = None) -> None:
    parse_value(key, value)
    ensure_bootstrapped(path)
    _set(key, value, path)


def get_all(path: Optional[PathLike] = None) -> dict:
    ensure_bootstrapped(path)
    return _all(path)


@dataclass
class WorkerSettings:
    poll_interval_ms: int
    max_backoff_ms: int
    backoff_multiplier: float
    max_attempts: int
    status_interval_seconds: float


def load_worker_settings(
    path: Optional[PathLike] = None,
    environ: Optional[Mapping[str, str]] = None,
    poll_interval_ms: Optional[int] = None,
) -> WorkerSettings:
    """Resolve worker settings.

    Order of poll interval priority:
    1. explicit argument (CLI flag)
    2. QUEUE_POLL_INTERVAL environment variable
    3. config table
    """
    environ = os.environ if environ is None else environ
    stored = get_all(path)
    values = {k: parse_value(k, stored.get(k, v)) for k, v in DEFAULTS.items()}

    if poll_interval_ms is not None:
        values["poll_interval_ms"] = parse_value("poll_interval_ms", str(poll_interval_ms))
    elif environ.get(POLL_INTERVAL_ENV):
        try:
            values["poll_interval_ms"] = parse_value("poll_interval_ms", environ[POLL_INTERVAL_ENV])
        except ConfigError as e:
            raise ConfigError(f"{POLL_INTERVAL_ENV}: {e}") from e

    if values["max_backoff_ms"] < values["poll_interval_ms"]:
        raise ConfigError(
            f"max_backoff_ms ({values['max_backoff_ms']}) must not be below "
            f"poll_interval_ms ({values['poll_interval_ms']})"
        )

    return WorkerSettings(**values)
