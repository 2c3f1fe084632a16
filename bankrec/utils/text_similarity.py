"""
Description similarity for statement/ledger matching.
"""

import re
from typing import Optional

import structlog
from rapidfuzz import fuzz

from ..config import get_settings

logger = structlog.get_logger()

_WHITESPACE = re.compile(r"\s+")


class DescriptionMatcher:
    """
    Decides whether a statement description and a ledger description refer
    to the same movement.

    Two descriptions match when either contains the other (after
    normalization) or when their token-set similarity reaches the threshold.
    Blank descriptions never match.
    """

    def __init__(self, threshold: Optional[float] = None):
        self.settings = get_settings()
        self.threshold = (
            threshold if threshold is not None
            else self.settings.description_similarity_threshold
        )

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        if not text:
            return ""
        return _WHITESPACE.sub(" ", text).strip().lower()

    def similarity(self, left: Optional[str], right: Optional[str]) -> float:
        """Similarity in [0, 1]."""
        a = self.normalize(left)
        b = self.normalize(right)
        if not a or not b:
            return 0.0
        if a in b or b in a:
            return 1.0
        return fuzz.token_set_ratio(a, b) / 100.0

    def matches(self, left: Optional[str], right: Optional[str]) -> bool:
        return self.similarity(left, right) >= self.threshold
