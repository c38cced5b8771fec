"""
Tests for configuration loading.

Tests:
- Platform paths, env overrides and config.toml keys
- The [orchestration] table and its nested tables
- Invalid values surfacing as ConfigurationError
- Logging handlers and level resolution
"""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from oracle_orchestrator.config import (
	Config,
	load_autonomous_config,
	load_config,
	load_orchestration_settings,
)
from oracle_orchestrator.errors import ConfigurationError
from oracle_orchestrator.hitl.models import InterventionPoint
from oracle_orchestrator.logging_config import resolve_level, setup_logging
from oracle_orchestrator.models import CompletionMode


def write_toml(tmp_path: Path, body: str) -> Path:
	path = tmp_path / "config.toml"
	path.write_text(body)
	return path


class TestConfig:
	"""Tests for the application config."""

	def test_derived_paths(self, tmp_path):
		config = Config(config_dir=tmp_path / "cfg", data_dir=tmp_path / "data")

		assert config.config_file == tmp_path / "cfg" / "config.toml"
		assert config.checkpoints_db_path == tmp_path / "data" / "checkpoints.db"
		assert config.memory_db_path == tmp_path / "data" / "memory.db"
		assert config.log_dir == tmp_path / "data" / "logs"

	def test_ensure_dirs(self, tmp_path):
		config = Config(config_dir=tmp_path / "cfg", data_dir=tmp_path / "data")

		config.ensure_dirs()

		assert config.config_dir.is_dir()
		assert config.log_dir.is_dir()

	def test_env_overrides(self, tmp_path):
		env = {
			"ORACLE_ORCHESTRATOR_CONFIG_DIR": str(tmp_path / "cfg"),
			"ORACLE_ORCHESTRATOR_DATA_DIR": str(tmp_path / "data"),
			"ORACLE_ORCHESTRATOR_LOG_LEVEL": "debug",
		}
		with patch.dict(os.environ, env):
			config = load_config()

		assert config.data_dir == tmp_path / "data"
		assert config.checkpoints_db_path == tmp_path / "data" / "checkpoints.db"
		assert config.log_level == "DEBUG"
		assert config.data_dir.is_dir()

	def test_toml_top_level_keys(self, tmp_path):
		"""Test that config.toml keys apply and the orchestration table is skipped."""
		cfg_dir = tmp_path / "cfg"
		cfg_dir.mkdir()
		(cfg_dir / "config.toml").write_text(
			f'log_level = "WARNING"\ndata_dir = "{(tmp_path / "elsewhere").as_posix()}"\n'
			"[orchestration]\nmax_iterations = 3\n"
		)
		env = {"ORACLE_ORCHESTRATOR_CONFIG_DIR": str(cfg_dir)}
		with patch.dict(os.environ, env):
			os.environ.pop("ORACLE_ORCHESTRATOR_DATA_DIR", None)
			os.environ.pop("ORACLE_ORCHESTRATOR_LOG_LEVEL", None)
			config = load_config()

		assert config.log_level == "WARNING"
		assert config.data_dir == tmp_path / "elsewhere"
		assert not hasattr(config, "orchestration")


class TestOrchestrationSettings:
	"""Tests for the [orchestration] table."""

	def test_missing_table_gives_defaults(self, tmp_path):
		settings = load_orchestration_settings(write_toml(tmp_path, 'log_level = "INFO"\n'))

		assert settings.autonomous.max_iterations == 10
		assert settings.resilience.max_retries == 3
		assert settings.saturation.max_tokens == 128000

	def test_nested_tables(self, tmp_path):
		path = write_toml(tmp_path, """
[orchestration]
max_iterations = 4
completion_mode = "until-goal-achieved"
continue_on_failure = true
something_new = "ignored"

[orchestration.oracle]
enabled = false
max_iterations = 2
min_confidence_threshold = 0.8
model = "local-judge"

[orchestration.human_in_the_loop]
enabled = true
required_approval_points = ["before_task_start", "task_failed"]
approval_timeout_seconds = 0
review_confidence_threshold = 0.3

[orchestration.context]
max_learnings = 4

[orchestration.resilience]
max_retries = 5
initial_delay_seconds = 0.1

[orchestration.saturation]
max_tokens = 4000
""")

		settings = load_orchestration_settings(path)
		config = settings.autonomous

		assert config.max_iterations == 4
		assert config.completion_mode == CompletionMode.UNTIL_GOAL_ACHIEVED
		assert config.continue_on_failure
		assert not config.enable_oracle
		assert config.max_oracle_iterations == 2
		assert config.min_confidence_threshold == 0.8
		assert config.oracle_config.model == "local-judge"
		assert config.enable_human_in_the_loop
		assert config.required_approval_points == [InterventionPoint.BEFORE_TASK_START, InterventionPoint.TASK_FAILED]
		assert config.approval_timeout_seconds is None
		assert config.human_review_confidence_threshold == 0.3
		assert config.max_context_learnings == 4
		assert settings.resilience.max_retries == 5
		assert settings.saturation.max_tokens == 4000

	def test_load_autonomous_config(self, tmp_path):
		path = write_toml(tmp_path, "[orchestration]\nmax_iterations = 2\n")
		assert load_autonomous_config(path).max_iterations == 2

	def test_invalid_value(self, tmp_path):
		path = write_toml(tmp_path, "[orchestration]\nmax_iterations = 0\n")

		with pytest.raises(ConfigurationError):
			load_orchestration_settings(path)

	def test_invalid_saturation_order(self, tmp_path):
		path = write_toml(tmp_path, "[orchestration.saturation]\nelevated_threshold = 90.0\nhigh_threshold = 80.0\n")

		with pytest.raises(ConfigurationError):
			load_orchestration_settings(path)

	def test_nested_value_must_be_table(self, tmp_path):
		path = write_toml(tmp_path, '[orchestration]\noracle = "yes"\n')

		with pytest.raises(ConfigurationError):
			load_orchestration_settings(path)

	def test_missing_file(self, tmp_path):
		with pytest.raises(ConfigurationError, match="not found"):
			load_orchestration_settings(tmp_path / "absent.toml")

	def test_invalid_toml(self, tmp_path):
		with pytest.raises(ConfigurationError, match="Invalid TOML"):
			load_orchestration_settings(write_toml(tmp_path, "[orchestration\n"))


class TestSetupLogging:
	"""Tests for logging setup."""

	@pytest.fixture
	def logger_name(self, request):
		name = f"oracle_orchestrator_test_{request.node.name}"
		yield name
		for logger_name in (name, f"{name}.events"):
			logger = logging.getLogger(logger_name)
			for handler in list(logger.handlers):
				logger.removeHandler(handler)
				handler.close()

	def test_level_precedence(self):
		with patch.dict(os.environ, {"ORACLE_ORCHESTRATOR_LOG_LEVEL": "warning", "LOG_LEVEL": "DEBUG"}):
			assert resolve_level() == logging.WARNING
			assert resolve_level("error") == logging.ERROR
		with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}):
			os.environ.pop("ORACLE_ORCHESTRATOR_LOG_LEVEL", None)
			assert resolve_level() == logging.DEBUG
		assert resolve_level("nonsense") == logging.INFO

	def test_console_only(self, logger_name):
		logger = setup_logging(logger_name, level="WARNING")

		assert len(logger.handlers) == 1
		assert logger.level == logging.WARNING

	def test_files_and_no_duplicates(self, logger_name, tmp_path):
		"""Test that log files are created once and event records get their own file."""
		logger = setup_logging(logger_name, level="INFO", log_dir=tmp_path)
		setup_logging(logger_name, level="INFO", log_dir=tmp_path)

		logging.getLogger(f"{logger_name}.events").debug("iteration started")
		for handler in logger.handlers + logging.getLogger(f"{logger_name}.events").handlers:
			handler.flush()

		assert len(logger.handlers) == 2
		assert logger.level == logging.DEBUG
		assert "iteration started" in (tmp_path / "events.log").read_text()
		assert "iteration started" in (tmp_path / f"{logger_name}.log").read_text()
