"""Predicate evaluator deciding which alerts an offer satisfies.

This module provides:
- AlertMatcher: Service to evaluate offers against alert criteria
- MatchResult: Result of a single alert/offer evaluation
- matches / matching_alerts: Module-level shortcuts using a default matcher
"""

from .engine import AlertMatcher, matches, matching_alerts
from .models import MatchResult

__all__ = [
    "AlertMatcher",
    "MatchResult",
    "matches",
    "matching_alerts",
]
