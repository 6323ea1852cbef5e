"""
tests/unit/test_logger.py — structlog setup
"""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from superego.agent.orchestrator import Orchestrator
from superego.config.settings import Settings
from superego.observability.logger import clip, get_logger, setup_logging


@pytest.fixture
def reset_logging():
    yield
    structlog.reset_defaults()
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)


def test_json_file_output(tmp_path, reset_logging):
    setup_logging(level="DEBUG", log_dir=tmp_path, console_output=False)
    log = get_logger("superego.test", component="orchestrator")
    log.info("orchestrator.evaluate.start", provider="anthropic")
    logging.shutdown()

    lines = (tmp_path / "superego.log").read_text(encoding="utf-8").strip().splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "orchestrator.evaluate.start"
    assert record["provider"] == "anthropic"
    assert record["component"] == "orchestrator"
    assert record["level"] == "info"


def test_level_filters(tmp_path, reset_logging):
    setup_logging(level="WARNING", log_dir=tmp_path, console_output=False)
    get_logger("superego.test").info("context_builder.built")
    logging.shutdown()
    assert (tmp_path / "superego.log").read_text(encoding="utf-8") == ""


def test_clip():
    assert clip("short") == "short"
    clipped = clip("x" * 500, limit=10)
    assert clipped.startswith("x" * 10)
    assert len(clipped) == 11


def test_orchestrator_from_settings_configures_logging(tmp_path, reset_logging):
    settings = Settings(logging={
        "level": "DEBUG",
        "log_dir": str(tmp_path),
        "console_output": False,
    })
    orc = Orchestrator.from_settings(settings)
    get_logger("superego.test").info("orchestrator.ready")
    logging.shutdown()

    assert isinstance(orc, Orchestrator)
    lines = (tmp_path / "superego.log").read_text(encoding="utf-8").strip().splitlines()
    assert json.loads(lines[-1])["event"] == "orchestrator.ready"


def test_from_settings_can_leave_logging_alone(tmp_path, reset_logging):
    settings = Settings(logging={"log_dir": str(tmp_path / "logs")})
    Orchestrator.from_settings(settings, configure_logging=False)
    assert not (tmp_path / "logs").exists()
