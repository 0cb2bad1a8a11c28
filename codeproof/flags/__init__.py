"""Heuristic authenticity flags and the author's review of them."""

from .analyzer import RULES, analyze
from .review import FlagNotFoundError, FlagReview, merge_reviews

__all__ = ["RULES", "FlagNotFoundError", "FlagReview", "analyze", "merge_reviews"]
