"""Configuration system using platformdirs for cross-platform paths."""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, ValidationError

from .context.saturation import SaturationConfig
from .errors import ConfigurationError
from .executors.resilient import ResilienceSettings
from .models import AutonomousConfig, OracleConfig

APP_NAME = "oracle-orchestrator"
APP_AUTHOR = "oracle-orchestrator"

ORCHESTRATION_TABLE = "orchestration"


@dataclass
class Config:
	"""Central configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	config_file: Path = field(init=False)
	checkpoints_db_path: Path = field(init=False)
	memory_db_path: Path = field(init=False)
	log_dir: Path = field(init=False)

	# User-configurable
	log_level: str = field(default="INFO")

	def __post_init__(self) -> None:
		self.config_file = self.config_dir / "config.toml"
		self.checkpoints_db_path = self.data_dir / "checkpoints.db"
		self.memory_db_path = self.data_dir / "memory.db"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)


def _apply_env_overrides(config: Config) -> Config:
	"""Apply ORACLE_ORCHESTRATOR_* environment variable overrides."""
	env_map = {
		"ORACLE_ORCHESTRATOR_CONFIG_DIR": "config_dir",
		"ORACLE_ORCHESTRATOR_DATA_DIR": "data_dir",
	}
	for env_key, attr in env_map.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, Path(val))

	level = os.getenv("ORACLE_ORCHESTRATOR_LOG_LEVEL")
	if level:
		config.log_level = level.upper()

	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply top-level config.toml keys if the file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	path_fields = {"config_dir", "data_dir"}
	for key, val in data.items():
		if key == ORCHESTRATION_TABLE or not hasattr(config, key):
			continue
		if key in path_fields:
			setattr(config, key, Path(os.path.expanduser(val)))
		else:
			setattr(config, key, val)

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config


# Singleton
_config: Config | None = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config


# =============================================================================
# Orchestration settings
# =============================================================================

# Nested table keys that map onto differently named AutonomousConfig fields
_ORACLE_KEYS = {
	"enabled": "enable_oracle",
	"max_iterations": "max_oracle_iterations",
	"min_confidence_threshold": "min_confidence_threshold",
}
_HITL_KEYS = {
	"enabled": "enable_human_in_the_loop",
	"required_approval_points": "required_approval_points",
	"approval_timeout_seconds": "approval_timeout_seconds",
	"auto_approve_on_timeout": "auto_approve_on_timeout",
	"request_feedback_on_complete": "request_feedback_on_complete",
	"review_confidence_threshold": "human_review_confidence_threshold",
}
_CONTEXT_KEYS = {
	"enabled": "enable_context_tracking",
	"enable_reflection": "enable_reflection",
	"max_learnings": "max_context_learnings",
	"max_outputs": "max_context_outputs",
}


@dataclass
class OrchestrationSettings:
	"""Everything an orchestrator run needs from a config file."""
	autonomous: AutonomousConfig = field(default_factory=AutonomousConfig)
	resilience: ResilienceSettings = field(default_factory=ResilienceSettings)
	saturation: SaturationConfig = field(default_factory=SaturationConfig)


def _known(model: type[BaseModel], data: dict[str, Any]) -> dict[str, Any]:
	return {key: val for key, val in data.items() if key in model.model_fields}


def _table(data: dict[str, Any], name: str) -> dict[str, Any]:
	value = data.get(name, {})
	if not isinstance(value, dict):
		raise ConfigurationError(f"[{ORCHESTRATION_TABLE}.{name}] must be a table")
	return value


def _build_autonomous(data: dict[str, Any]) -> AutonomousConfig:
	values = _known(AutonomousConfig, {k: v for k, v in data.items() if not isinstance(v, dict)})

	oracle = _table(data, "oracle")
	for key, target in _ORACLE_KEYS.items():
		if key in oracle:
			values[target] = oracle[key]
	oracle_settings = _known(OracleConfig, oracle)
	if oracle_settings:
		values["oracle_config"] = OracleConfig(**oracle_settings)

	hitl = _table(data, "human_in_the_loop")
	for key, target in _HITL_KEYS.items():
		if key in hitl:
			values[target] = hitl[key]
	# TOML has no null; a non-positive timeout waits forever
	timeout = values.get("approval_timeout_seconds")
	if isinstance(timeout, (int, float)) and timeout <= 0:
		values["approval_timeout_seconds"] = None

	context = _table(data, "context")
	for key, target in _CONTEXT_KEYS.items():
		if key in context:
			values[target] = context[key]

	return AutonomousConfig(**values)


def load_orchestration_settings(path: str | Path) -> OrchestrationSettings:
	"""
	Read the [orchestration] table of a TOML file.

	Args:
		path: TOML file with an [orchestration] table and optional nested
			oracle, human_in_the_loop, context, resilience and saturation tables

	Returns:
		Validated settings; a missing table yields the defaults

	Raises:
		ConfigurationError: If the file is unreadable or a value is invalid
	"""
	toml_path = Path(path)
	try:
		with open(toml_path, "rb") as f:
			document = tomllib.load(f)
	except FileNotFoundError as e:
		raise ConfigurationError(f"Config file not found: {toml_path}") from e
	except tomllib.TOMLDecodeError as e:
		raise ConfigurationError(f"Invalid TOML in {toml_path}: {e}") from e

	data = document.get(ORCHESTRATION_TABLE, {})
	if not isinstance(data, dict):
		raise ConfigurationError(f"[{ORCHESTRATION_TABLE}] must be a table")

	try:
		return OrchestrationSettings(
			autonomous=_build_autonomous(data),
			resilience=ResilienceSettings(**_known(ResilienceSettings, _table(data, "resilience"))),
			saturation=SaturationConfig(**_known(SaturationConfig, _table(data, "saturation"))),
		)
	except ValidationError as e:
		raise ConfigurationError(f"Invalid orchestration settings in {toml_path}: {e}") from e


def load_autonomous_config(path: str | Path) -> AutonomousConfig:
	"""Read only the AutonomousConfig part of a TOML file."""
	return load_orchestration_settings(path).autonomous
