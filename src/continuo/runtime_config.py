"""Runtime configuration loading and normalization.

Configuration comes from an optional JSON file (see `paths.config_path`) and
is then overridden by ``CONTINUO_*`` environment variables. Loading is
tolerant: missing files, corrupt JSON or wrongly typed values degrade to the
defaults below with a logged warning instead of aborting startup.
"""

from __future__ import annotations

import json
import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

COOLDOWN_POLICIES = ("rolling", "midnight")
ENV_PREFIX = "CONTINUO_"

DEFAULT_INVIDIOUS_INSTANCES = (
    "https://inv.riverside.rocks",
    "https://yewtu.be",
    "https://invidious.zapashcanon.fr",
    "https://vid.puffyan.us",
)
DEFAULT_PIPED_INSTANCES = (
    "https://pipedapi.kavin.rocks",
    "https://api.piped.projectsegfau.lt",
    "https://pipedapi.adminforge.de",
)


@dataclass(frozen=True)
class EngineConfig:
    """Effective engine settings after file + environment resolution."""

    youtube_api_key: str | None = None
    youtube_base_url: str = "https://www.googleapis.com/youtube/v3"
    deezer_base_url: str = "https://api.deezer.com"
    itunes_base_url: str = "https://itunes.apple.com"
    invidious_instances: tuple[str, ...] = DEFAULT_INVIDIOUS_INSTANCES
    piped_instances: tuple[str, ...] = DEFAULT_PIPED_INSTANCES
    request_timeout_s: float = 10.0
    frontend_timeout_s: float = 8.0
    fallback_attempts: int = 2
    cooldown_policy: str = "rolling"
    cooldown_s: float = 3600.0
    cache_ttl_s: float = 30 * 24 * 3600.0
    response_cache_ttl_s: float = 3600.0
    history_limit: int = 20
    low_water_mark: int = 2
    recent_exclusion: int = 5
    radio_batch_size: int = 10
    poll_interval_s: float = 0.4


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def normalize_cooldown_policy(value: str) -> str:
    normalized = value.strip().lower()
    if normalized in COOLDOWN_POLICIES:
        return normalized
    return "rolling"


def _coerce_config(data: Mapping[str, Any], base: EngineConfig) -> EngineConfig:
    """Coerce untyped values onto `base`, keeping base values for bad input."""

    def _positive_float(value: Any, default: float) -> float:
        if isinstance(value, bool):
            return default
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return default
        if isinstance(value, (int, float)):
            normalized = float(value)
            if math.isfinite(normalized) and normalized > 0:
                return normalized
        return default

    def _positive_int(value: Any, default: int) -> int:
        if isinstance(value, bool):
            return default
        if isinstance(value, str):
            try:
                value = int(value.strip())
            except ValueError:
                return default
        if isinstance(value, int) and value > 0:
            return value
        return default

    def _str_or_default(value: Any, default: str) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return default

    def _optional_str(value: Any, default: str | None) -> str | None:
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip() or None
        return default

    def _instances(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            return default
        cleaned = tuple(
            item.strip().rstrip("/")
            for item in value
            if isinstance(item, str) and item.strip().startswith(("http://", "https://"))
        )
        return cleaned or default

    return EngineConfig(
        youtube_api_key=_optional_str(data.get("youtube_api_key"), base.youtube_api_key),
        youtube_base_url=_str_or_default(
            data.get("youtube_base_url"), base.youtube_base_url
        ),
        deezer_base_url=_str_or_default(
            data.get("deezer_base_url"), base.deezer_base_url
        ),
        itunes_base_url=_str_or_default(
            data.get("itunes_base_url"), base.itunes_base_url
        ),
        invidious_instances=_instances(
            data.get("invidious_instances"), base.invidious_instances
        ),
        piped_instances=_instances(data.get("piped_instances"), base.piped_instances),
        request_timeout_s=_positive_float(
            data.get("request_timeout_s"), base.request_timeout_s
        ),
        frontend_timeout_s=_positive_float(
            data.get("frontend_timeout_s"), base.frontend_timeout_s
        ),
        fallback_attempts=_positive_int(
            data.get("fallback_attempts"), base.fallback_attempts
        ),
        cooldown_policy=normalize_cooldown_policy(
            _str_or_default(data.get("cooldown_policy"), base.cooldown_policy)
        ),
        cooldown_s=_positive_float(data.get("cooldown_s"), base.cooldown_s),
        cache_ttl_s=_positive_float(data.get("cache_ttl_s"), base.cache_ttl_s),
        response_cache_ttl_s=_positive_float(
            data.get("response_cache_ttl_s"), base.response_cache_ttl_s
        ),
        history_limit=_positive_int(data.get("history_limit"), base.history_limit),
        low_water_mark=_positive_int(data.get("low_water_mark"), base.low_water_mark),
        recent_exclusion=_positive_int(
            data.get("recent_exclusion"), base.recent_exclusion
        ),
        radio_batch_size=_positive_int(
            data.get("radio_batch_size"), base.radio_batch_size
        ),
        poll_interval_s=_positive_float(
            data.get("poll_interval_s"), base.poll_interval_s
        ),
    )


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Failed to read config file %s: %s; using defaults.", path, exc)
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Config file at %s is invalid JSON; using defaults.", path)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file at %s is not a JSON object; using defaults.", path)
        return {}
    return data


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    known = {field.name for field in fields(EngineConfig)}
    overrides: dict[str, str] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX) :].lower()
        if name in known:
            overrides[name] = value
    return overrides


def load_config(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> EngineConfig:
    """Load config file (optional) then apply ``CONTINUO_*`` env overrides."""
    config = EngineConfig()
    if path is not None:
        config = _coerce_config(_read_config_file(path), config)
    overrides = _env_overrides(os.environ if environ is None else environ)
    if overrides:
        config = _coerce_config(overrides, config)
    if config.youtube_api_key is None:
        logger.warning(
            "YouTube API key not configured; resolution will use alternate frontends only."
        )
    return config


def with_overrides(config: EngineConfig, **changes: Any) -> EngineConfig:
    """Return a copy with typed overrides (used by CLI flags and tests)."""
    return replace(config, **changes)
