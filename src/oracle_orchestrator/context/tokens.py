"""Character-based token estimation."""

import math

CODE_CHARS = frozenset("{}[]();,<>=+-*/%&|!~^")


def _is_hangul(ch: str) -> bool:
	return "가" <= ch <= "힣"


def estimate_tokens(text: str) -> int:
	"""
	Estimate how many model tokens a string will cost.

	Plain prose is counted at 4 characters per token, code-heavy text at 3,
	and Hangul-heavy text at 1.5.
	"""
	if not text:
		return 0

	length = len(text)
	hangul = sum(1 for ch in text if _is_hangul(ch))
	if hangul / length > 0.3:
		return math.ceil(length / 1.5)

	code = sum(1 for ch in text if ch in CODE_CHARS)
	if code / length > 0.1:
		return math.ceil(length / 3.0)

	return math.ceil(length / 4.0)
