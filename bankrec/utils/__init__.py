"""Utility modules."""

from .money import from_cents, to_cents
from .text_similarity import DescriptionMatcher

__all__ = ["DescriptionMatcher", "from_cents", "to_cents"]
