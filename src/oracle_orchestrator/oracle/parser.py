"""
Verdict parsing for model-backed oracles.

Extracts the JSON object from a model reply (fenced ```json block or the
outermost braces), accepts camelCase or snake_case keys, checks value types,
and clamps confidence into [0, 1]. Anything unusable becomes an error verdict.
"""

import json
import logging
import re
from typing import Any, Optional

from ..models import OracleReflection, OracleVerdict

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL | re.IGNORECASE)
_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")

VERDICT_TYPES = {
	"is_complete": "boolean",
	"can_continue": "boolean",
	"analysis": "string",
	"next_prompt_suggestion": "string",
	"confidence": "number",
	"reflection": "object",
}
REQUIRED_KEYS = ("is_complete",)


def _snake(key: str) -> str:
	return _CAMEL.sub("_", key).lower()


def _check_type(value: Any, expected: str) -> bool:
	if value is None:
		return True
	if expected == "boolean":
		return isinstance(value, bool)
	if expected == "number":
		return isinstance(value, (int, float)) and not isinstance(value, bool)
	if expected == "string":
		return isinstance(value, str)
	if expected == "object":
		return isinstance(value, dict)
	return True


def extract_json(content: str) -> Optional[str]:
	"""Return the JSON object text embedded in a reply, or None."""
	if not content or not content.strip():
		return None

	fenced = _FENCE.search(content)
	if fenced and "{" in fenced.group(1):
		return fenced.group(1).strip()

	start = content.find("{")
	end = content.rfind("}")
	if start >= 0 and end > start:
		return content[start:end + 1]
	return None


def parse_verdict(content: str) -> OracleVerdict:
	"""
	Turn a model reply into an OracleVerdict.

	Args:
		content: Raw model reply

	Returns:
		The parsed verdict, or OracleVerdict.error(...) if the reply is unusable
	"""
	raw = extract_json(content)
	if raw is None:
		return OracleVerdict.error("No JSON object in oracle response")

	try:
		data = json.loads(raw)
	except json.JSONDecodeError as e:
		logger.warning(f"Oracle returned invalid JSON: {e}")
		return OracleVerdict.error(f"Invalid JSON: {e}")

	if not isinstance(data, dict):
		return OracleVerdict.error("Oracle response is not a JSON object")

	data = {_snake(k): v for k, v in data.items()}
	for key in REQUIRED_KEYS:
		if key not in data:
			return OracleVerdict.error(f"Missing required key: {key}")
	for key, expected in VERDICT_TYPES.items():
		if key in data and not _check_type(data[key], expected):
			return OracleVerdict.error(f"Key '{key}' expected type '{expected}', got '{type(data[key]).__name__}'")

	reflection = None
	if isinstance(data.get("reflection"), dict):
		fields = {_snake(k): v for k, v in data["reflection"].items()}
		reflection = OracleReflection(**{
			k: str(v) for k, v in fields.items()
			if k in OracleReflection.model_fields and v is not None
		})

	suggestion = data.get("next_prompt_suggestion")
	if isinstance(suggestion, str) and (not suggestion.strip() or suggestion.strip().lower() == "null"):
		suggestion = None

	confidence = float(data.get("confidence") or 0.0)
	return OracleVerdict(
		is_complete=bool(data["is_complete"]),
		can_continue=bool(data.get("can_continue", True)),
		analysis=data.get("analysis") or "",
		next_prompt_suggestion=suggestion,
		confidence=min(max(confidence, 0.0), 1.0),
		reflection=reflection,
	)
