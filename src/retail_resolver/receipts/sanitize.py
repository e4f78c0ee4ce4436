"""Normalise receipt product names and fuzzy-correct their tokens against a word list."""

from __future__ import annotations

import json
import re
from importlib import resources
from typing import Iterable, List, Optional

from rapidfuzz import fuzz, process

from ..logging import get_logger

LOG = get_logger("receipts-sanitize")

DICTIONARY_RESOURCE = "dictionary.json"

_CASE_BOUNDARY = re.compile(r"([a-zäöüß])([A-ZÄÖÜ])")
_LETTER_DIGIT = re.compile(r"(?<=[a-zäöüß])(?=\d)", re.IGNORECASE)
_DIGIT_LETTER = re.compile(r"(?<=\d)(?=[a-zäöüß])", re.IGNORECASE)
_DISALLOWED = re.compile(r"[^a-z0-9äöüß ]+", re.IGNORECASE)
_UNIT_SUFFIX = re.compile(r"\b\d+\s?(?:g|kg|ml|l)\b", re.IGNORECASE)
_SPACES = re.compile(r"\s+")


def load_dictionary() -> List[str]:
    """Read the bundled drugstore word list."""
    raw = resources.files(__package__).joinpath(DICTIONARY_RESOURCE).read_text(encoding="utf-8")
    words = json.loads(raw)
    return [str(w).lower() for w in words if str(w).strip()]


class TokenCorrector:
    """Replaces a token by its closest dictionary word when the match is close enough.

    ``index_threshold`` bounds the candidates considered at all,
    ``accept_score`` is the largest normalised distance (0 = identical)
    still substituted.
    """

    def __init__(self, words: Iterable[str], index_threshold: float = 0.7, accept_score: float = 0.3) -> None:
        self.words = sorted({w.lower() for w in words if w})
        self._lookup = set(self.words)
        self.index_threshold = index_threshold
        self.accept_score = accept_score

    @classmethod
    def bundled(cls, index_threshold: float = 0.7, accept_score: float = 0.3) -> "TokenCorrector":
        return cls(load_dictionary(), index_threshold=index_threshold, accept_score=accept_score)

    def __contains__(self, token: str) -> bool:
        return token in self._lookup

    def correct(self, token: str) -> str:
        if not self.words or token in self._lookup:
            return token
        match = process.extractOne(
            token,
            self.words,
            scorer=fuzz.ratio,
            score_cutoff=(1.0 - self.index_threshold) * 100,
        )
        if match is None:
            return token
        word, score, _ = match
        distance = 1.0 - score / 100.0
        return word if distance < self.accept_score else token


def normalise_text(raw: str) -> str:
    """Split casing and letter/digit transitions, drop symbols and unit sizes, lowercase."""
    text = _CASE_BOUNDARY.sub(r"\1 \2", raw)
    text = _LETTER_DIGIT.sub(" ", text)
    text = _DIGIT_LETTER.sub(" ", text)
    text = _DISALLOWED.sub(" ", text)
    text = _UNIT_SUFFIX.sub("", text)
    return _SPACES.sub(" ", text).strip().lower()


def sanitize_product_name(raw: str, corrector: Optional[TokenCorrector] = None) -> str:
    text = normalise_text(raw)
    tokens = [t for t in text.split(" ") if t]
    if corrector is None:
        return " ".join(t for t in tokens if len(t) > 2)
    kept = [t for t in tokens if len(t) > 2 or t in corrector]
    corrected = [corrector.correct(t) for t in kept]
    if corrected != kept:
        LOG.debug(f"Corrected {kept} -> {corrected}")
    return " ".join(corrected)


__all__ = ["TokenCorrector", "load_dictionary", "normalise_text", "sanitize_product_name"]
