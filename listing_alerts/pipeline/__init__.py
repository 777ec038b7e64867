"""Matching orchestration and the reconciliation cycle.

This package provides:
- MatchingOrchestrator: process_offer, process_all_offers, reprocess_alert
- ReconciliationService: periodic fetch/persist cycle that triggers sweeps
- OfferRunStats, SweepResult, ReconciliationResult: run reporting
"""

from .models import OfferRunStats, ReconciliationResult, SweepResult
from .reconciliation import ReconciliationService
from .runner import MatchingOrchestrator

__all__ = [
    "MatchingOrchestrator",
    "ReconciliationService",
    "OfferRunStats",
    "SweepResult",
    "ReconciliationResult",
]
