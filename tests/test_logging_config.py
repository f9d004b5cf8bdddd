"""Tests for logging configuration and entrypoint wiring."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import SimpleNamespace

import continuo.cli as cli_module
from continuo.logging_utils import LOG_FILE_NAME, setup_logging


def _flush_root_handlers() -> None:
    for handler in logging.getLogger().handlers:
        flush = getattr(handler, "flush", None)
        if callable(flush):
            flush()


def _restore_root(original_handlers: list[logging.Handler], level: int) -> None:
    root = logging.getLogger()
    for handler in root.handlers:
        if handler not in original_handlers:
            handler.close()
    root.handlers.clear()
    for handler in original_handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_logging_default_path_writes_json_lines(tmp_path) -> None:
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    try:
        log_path = setup_logging(log_dir=tmp_path, level="INFO")
        logger = logging.getLogger("continuo.test")
        logger.info("default-log-path", extra={"identity": "deezer_1"})
        _flush_root_handlers()
        assert log_path == tmp_path / LOG_FILE_NAME
        lines = log_path.read_text(encoding="utf-8").splitlines()
        payload = json.loads(lines[-1])
        assert payload["message"] == "default-log-path"
        assert payload["level"] == "INFO"
        assert payload["context"] == {"identity": "deezer_1"}
    finally:
        _restore_root(original_handlers, original_level)


def test_setup_logging_custom_log_file_and_quiet_transport(tmp_path) -> None:
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    custom_path = tmp_path / "custom" / "engine.log"
    try:
        setup_logging(log_dir=tmp_path, level="DEBUG", log_file=custom_path)
        logging.getLogger("continuo.test").debug("custom-log-path")
        _flush_root_handlers()
        assert "custom-log-path" in custom_path.read_text(encoding="utf-8")
        assert logging.getLogger("urllib3").level == logging.WARNING
    finally:
        _restore_root(original_handlers, original_level)


def test_cli_main_passes_effective_level_and_log_file(monkeypatch, tmp_path) -> None:
    captured: dict[str, object] = {}

    def fake_setup_logging(*, log_dir: Path, level: str, log_file: Path | None):
        captured["log_dir"] = log_dir
        captured["level"] = level
        captured["log_file"] = log_file

    def fake_cache(_console, _config, command: str) -> int:
        captured["command"] = command
        return 0

    monkeypatch.setattr(cli_module, "setup_logging", fake_setup_logging)
    monkeypatch.setattr(cli_module, "log_dir", lambda: tmp_path / "logs")
    monkeypatch.setattr(cli_module, "config_path", lambda: tmp_path / "config.json")
    monkeypatch.setattr(cli_module, "_cache", fake_cache)

    rc = cli_module.main(
        ["--verbose", "--quiet", "--log-file", str(tmp_path / "cli.log"), "cache", "stats"]
    )

    assert rc == 0
    assert captured["level"] == "WARNING"
    assert captured["log_file"] == tmp_path / "cli.log"
    assert captured["command"] == "stats"


def test_cli_main_returns_nonzero_when_logging_setup_fails(
    monkeypatch, tmp_path, capsys
) -> None:
    args = SimpleNamespace(
        verbose=False,
        quiet=False,
        log_file=None,
        command="cache",
        cache_command="stats",
    )

    class FakeParser:
        def parse_args(self, _argv):
            return args

    def fail_setup_logging(**kwargs):
        del kwargs
        raise OSError("cannot open log")

    monkeypatch.setattr(cli_module, "build_parser", lambda: FakeParser())
    monkeypatch.setattr(cli_module, "setup_logging", fail_setup_logging)
    monkeypatch.setattr(cli_module, "log_dir", lambda: tmp_path / "logs")

    rc = cli_module.main([])
    captured = capsys.readouterr()

    assert rc == 1
    assert "Unexpected error. Re-run with --verbose for details." in captured.err
