"""
Logging setup for the oracle-orchestrator CLI.

Handlers:
- stderr, at the requested level, so prompts and tables on stdout stay clean
- <log_dir>/oracle_orchestrator.log, every record at DEBUG
- <log_dir>/events.log, the engine's event stream only
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "oracle_orchestrator"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s"
CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def resolve_level(level: Optional[str] = None) -> int:
	"""Argument first, then ORACLE_ORCHESTRATOR_LOG_LEVEL, then LOG_LEVEL, then INFO."""
	name = level or os.getenv("ORACLE_ORCHESTRATOR_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO"
	return getattr(logging, name.upper(), logging.INFO)


def _rotating(path: Path, level: int) -> RotatingFileHandler:
	handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
	handler.setLevel(level)
	handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
	return handler


def setup_logging(
	name: str = LOGGER_NAME,
	level: Optional[str] = None,
	log_dir: Optional[str | Path] = None,
) -> logging.Logger:
	"""
	Configure the package logger once per process.

	Args:
		name: Logger name
		level: Console log level (DEBUG, INFO, WARNING, ERROR)
		log_dir: Directory for rotating log files; console only when omitted

	Returns:
		Configured logger
	"""
	console_level = resolve_level(level)
	logger = logging.getLogger(name)

	# Already configured
	if logger.handlers:
		return logger

	console_handler = logging.StreamHandler(sys.stderr)
	console_handler.setLevel(console_level)
	console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
	logger.addHandler(console_handler)
	logger.setLevel(console_level)

	if log_dir is None:
		return logger

	log_path = Path(log_dir)
	log_path.mkdir(parents=True, exist_ok=True)
	logger.addHandler(_rotating(log_path / f"{name}.log", logging.DEBUG))

	# Event records still propagate to the main log
	logging.getLogger(f"{name}.events").addHandler(_rotating(log_path / "events.log", logging.DEBUG))

	# The console handler filters by its own level
	logger.setLevel(logging.DEBUG)
	return logger
