"""Banned-word evaluation for group messages.

Matching is case-insensitive and bidirectional: a whitespace-delimited token
matches when it contains a banned word or is itself contained in one. Other
rules plug into the pipeline as a ``ContentEvaluator``.
"""

from __future__ import annotations

from typing import Iterable, List, Protocol, Sequence


class ContentEvaluator(Protocol):
	def violations(self, text: str, banned_words: Sequence[str]) -> List[str]:
		"""Return the banned words the text trips, empty when clean."""


def _tokens(text: str) -> List[str]:
	return [token for token in text.lower().split() if token]


def _words(banned_words: Iterable[str]) -> List[str]:
	return [word.strip().lower() for word in banned_words if word and word.strip()]


def find_matches(text: str, banned_words: Iterable[str]) -> List[str]:
	words = _words(banned_words)
	if not words or not text:
		return []
	tokens = _tokens(text)
	matched: List[str] = []
	for word in words:
		if word in matched:
			continue
		if any(word in token or token in word for token in tokens):
			matched.append(word)
	return matched


def contains_banned_word(text: str, banned_words: Iterable[str]) -> bool:
	return bool(find_matches(text, banned_words))


class BannedWordEvaluator:
	def violations(self, text: str, banned_words: Sequence[str]) -> List[str]:
		return find_matches(text, banned_words)


__all__ = ["BannedWordEvaluator", "ContentEvaluator", "contains_banned_word", "find_matches"]
