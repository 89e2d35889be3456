"""Logging setup for the task_orchestrator package."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

LOGGER_NAME = "task_orchestrator"
HOOKS_LOGGER_NAME = f"{LOGGER_NAME}.hooks"

CONSOLE_FORMAT = "%(asctime)s %(levelname).1s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d %(message)s"

MB = 1024 * 1024


def _rotating(path: Path, level: int, max_mb: int, backups: int) -> RotatingFileHandler:
	handler = RotatingFileHandler(path, maxBytes=max_mb * MB, backupCount=backups, encoding="utf-8")
	handler.setLevel(level)
	handler.setFormatter(logging.Formatter(FILE_FORMAT))
	return handler


def setup_logging(
	level: str = "INFO",
	log_dir: str | Path | None = None,
	stream: TextIO = sys.stderr,
) -> logging.Logger:
	"""
	Attach handlers to the package logger. Calling it again only updates the level.

	Console output goes to stderr so stdout stays free for the MCP stdio
	transport. With a log_dir, everything at DEBUG and up is kept in
	task_orchestrator.log, and warnings raised while running user hooks
	are also written to hooks.log.
	"""
	log_level = logging.getLevelName(level.upper())
	if not isinstance(log_level, int):
		log_level = logging.INFO

	logger = logging.getLogger(LOGGER_NAME)
	logger.setLevel(logging.DEBUG if log_dir else log_level)
	if logger.handlers:
		for handler in logger.handlers:
			if not isinstance(handler, RotatingFileHandler):
				handler.setLevel(log_level)
		return logger

	console = logging.StreamHandler(stream)
	console.setLevel(log_level)
	console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
	logger.addHandler(console)

	if log_dir:
		directory = Path(log_dir)
		directory.mkdir(parents=True, exist_ok=True)
		logger.addHandler(_rotating(directory / f"{LOGGER_NAME}.log", logging.DEBUG, max_mb=10, backups=5))
		logging.getLogger(HOOKS_LOGGER_NAME).addHandler(
			_rotating(directory / "hooks.log", logging.WARNING, max_mb=5, backups=3)
		)

	return logger
