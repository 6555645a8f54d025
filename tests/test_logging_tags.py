"""Tests for log tags, color switches and configuration validation."""

from __future__ import annotations

import pytest

from triagesim.config import Config
from triagesim.logging_utils import (
    LOG_TAG_DEBUG,
    LOG_TAG_ERROR,
    LOG_TAG_WARNING,
    Color,
    colored,
    log_debug,
    log_error,
    log_warning,
)


def test_colored_wraps_text(monkeypatch):
    monkeypatch.delenv("TRIAGESIM_NO_COLOR", raising=False)

    text = colored("hello", Color.RED, bold=True)

    assert text.startswith(Color.BOLD.value + Color.RED.value)
    assert text.endswith(Color.RESET.value)


def test_no_color_env_disables_ansi(monkeypatch, capsys):
    monkeypatch.setenv("TRIAGESIM_NO_COLOR", "1")

    log_warning("careful")
    log_error("broken")

    lines = capsys.readouterr().out.splitlines()
    assert lines == [f"{LOG_TAG_WARNING} careful", f"{LOG_TAG_ERROR} broken"]


def test_debug_traces_need_debug_flag(monkeypatch, capsys):
    monkeypatch.setenv("TRIAGESIM_NO_COLOR", "1")
    monkeypatch.delenv("DEBUG_PHYSIOLOGY", raising=False)
    log_debug("hidden")
    assert capsys.readouterr().out == ""

    monkeypatch.setenv("DEBUG_PHYSIOLOGY", "true")
    log_debug("shown")
    assert capsys.readouterr().out.strip() == f"{LOG_TAG_DEBUG} shown"


def test_config_validate_accepts_defaults(monkeypatch):
    monkeypatch.setattr(Config, "FOG_TYPE", "NONE")
    monkeypatch.setattr(Config, "STEP_DURATION_SECONDS", 10.0)
    monkeypatch.setattr(Config, "FIO2", 0.21)

    Config.validate()

    assert "Step Duration: 10.0s" in Config.display()


@pytest.mark.parametrize(
    "name, value, message",
    [
        ("FOG_TYPE", "FOGGY", "FOG_TYPE"),
        ("STEP_DURATION_SECONDS", 0.0, "STEP_DURATION_SECONDS"),
        ("FIO2", 1.5, "FIO2"),
    ],
)
def test_config_validate_rejects_bad_values(monkeypatch, name, value, message):
    monkeypatch.setattr(Config, "FOG_TYPE", "NONE")
    monkeypatch.setattr(Config, "STEP_DURATION_SECONDS", 10.0)
    monkeypatch.setattr(Config, "FIO2", 0.21)
    monkeypatch.setattr(Config, name, value)

    with pytest.raises(ValueError, match=message):
        Config.validate()
