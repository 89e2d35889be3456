"""Tests for logging setup."""

import io
import logging
from pathlib import Path

import pytest

from task_orchestrator.logging_config import HOOKS_LOGGER_NAME, LOGGER_NAME, setup_logging


@pytest.fixture(autouse=True)
def clean_loggers():
	"""Leave the package loggers without handlers after each test."""
	yield
	for name in (LOGGER_NAME, HOOKS_LOGGER_NAME):
		logger = logging.getLogger(name)
		for handler in list(logger.handlers):
			logger.removeHandler(handler)
			handler.close()
		logger.setLevel(logging.NOTSET)


def test_console_only(tmp_path: Path):
	stream = io.StringIO()
	logger = setup_logging("warning", stream=stream)

	logging.getLogger(f"{LOGGER_NAME}.task").info("quiet")
	logging.getLogger(f"{LOGGER_NAME}.task").warning("loud")

	assert len(logger.handlers) == 1
	assert "loud" in stream.getvalue()
	assert "quiet" not in stream.getvalue()
	assert not any(tmp_path.iterdir())


def test_files_and_hook_log(tmp_path: Path):
	setup_logging("INFO", log_dir=tmp_path / "logs", stream=io.StringIO())

	logging.getLogger(f"{LOGGER_NAME}.agent.loop").debug("step detail")
	logging.getLogger(f"{HOOKS_LOGGER_NAME}.manager").warning("hook guard raised")

	main_log = (tmp_path / "logs" / f"{LOGGER_NAME}.log").read_text()
	hooks_log = (tmp_path / "logs" / "hooks.log").read_text()
	assert "step detail" in main_log
	assert "hook guard raised" in main_log
	assert "hook guard raised" in hooks_log
	assert "step detail" not in hooks_log


def test_second_call_updates_level():
	stream = io.StringIO()
	setup_logging("ERROR", stream=stream)
	logger = setup_logging("DEBUG", stream=io.StringIO())

	assert len(logger.handlers) == 1
	logging.getLogger(f"{LOGGER_NAME}.cli").debug("now visible")
	assert "now visible" in stream.getvalue()


def test_unknown_level_falls_back_to_info():
	stream = io.StringIO()
	setup_logging("chatty", stream=stream)

	logging.getLogger(LOGGER_NAME).debug("hidden")
	logging.getLogger(LOGGER_NAME).info("shown")
	assert stream.getvalue().count("\n") == 1
