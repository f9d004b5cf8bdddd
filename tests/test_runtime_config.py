"""Tests for runtime config loading, coercion and precedence."""

from __future__ import annotations

import json

from continuo.runtime_config import (
    DEFAULT_INVIDIOUS_INSTANCES,
    EngineConfig,
    load_config,
    normalize_cooldown_policy,
    resolve_log_level,
    with_overrides,
)


def test_resolve_log_level_precedence_matrix() -> None:
    assert resolve_log_level(verbose=False, quiet=False) == "INFO"
    assert resolve_log_level(verbose=True, quiet=False) == "DEBUG"
    assert resolve_log_level(verbose=False, quiet=True) == "WARNING"
    assert resolve_log_level(verbose=True, quiet=True) == "WARNING"


def test_cooldown_policy_normalization() -> None:
    assert normalize_cooldown_policy("MIDNIGHT") == "midnight"
    assert normalize_cooldown_policy(" rolling ") == "rolling"
    assert normalize_cooldown_policy("weekly") == "rolling"


def test_defaults_when_nothing_configured(tmp_path, caplog) -> None:
    config = load_config(tmp_path / "missing.json", environ={})
    assert config == EngineConfig()
    assert config.request_timeout_s == 10.0
    assert config.frontend_timeout_s == 8.0
    assert config.history_limit == 20
    assert config.low_water_mark == 2
    assert config.recent_exclusion == 5
    assert config.poll_interval_s == 0.4
    assert any("API key not configured" in record.message for record in caplog.records)


def test_config_file_values_are_coerced(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "youtube_api_key": "  key-123 ",
                "cooldown_policy": "Midnight",
                "history_limit": 30,
                "request_timeout_s": "12.5",
                "piped_instances": ["https://piped.example/", "ftp://nope", 7],
                "low_water_mark": -1,
                "poll_interval_s": True,
            }
        ),
        encoding="utf-8",
    )
    config = load_config(path, environ={})
    assert config.youtube_api_key == "key-123"
    assert config.cooldown_policy == "midnight"
    assert config.history_limit == 30
    assert config.request_timeout_s == 12.5
    assert config.piped_instances == ("https://piped.example",)
    assert config.low_water_mark == 2
    assert config.poll_interval_s == 0.4


def test_invalid_json_falls_back_to_defaults(tmp_path, caplog) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    config = load_config(path, environ={})
    assert config.invidious_instances == DEFAULT_INVIDIOUS_INSTANCES
    assert any("invalid JSON" in record.message for record in caplog.records)


def test_environment_overrides_file(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"history_limit": 30, "cooldown_s": 60}), encoding="utf-8")
    config = load_config(
        path,
        environ={
            "CONTINUO_HISTORY_LIMIT": "15",
            "CONTINUO_INVIDIOUS_INSTANCES": "https://a.example, https://b.example/",
            "CONTINUO_UNKNOWN_KEY": "ignored",
            "HOME": "/root",
        },
    )
    assert config.history_limit == 15
    assert config.cooldown_s == 60.0
    assert config.invidious_instances == ("https://a.example", "https://b.example")


def test_with_overrides_returns_copy() -> None:
    base = EngineConfig()
    updated = with_overrides(base, youtube_api_key="abc")
    assert updated.youtube_api_key == "abc"
    assert base.youtube_api_key is None
