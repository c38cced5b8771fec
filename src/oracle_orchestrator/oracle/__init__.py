"""Oracle verifiers and verdict parsing."""

from .base import (
	BaseOracleVerifier,
	CompletionOracleVerifier,
	OracleVerifier,
	build_verification_prompt,
	render_template,
)
from .keyword import KeywordOracleVerifier
from .parser import extract_json, parse_verdict

__all__ = [
	"BaseOracleVerifier",
	"CompletionOracleVerifier",
	"KeywordOracleVerifier",
	"OracleVerifier",
	"build_verification_prompt",
	"extract_json",
	"parse_verdict",
	"render_template",
]
