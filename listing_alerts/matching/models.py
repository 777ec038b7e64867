"""Data models for the matching engine."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class MatchResult:
    """Result of evaluating one offer against one alert.

    Attributes:
        alert_id: Alert that was evaluated
        offer_id: Offer that was evaluated (None for unsaved offers)
        is_match: True if the alert is ACTIVE and every set criterion passed
        failed_criteria: Names of the criteria that rejected the offer, in
            evaluation order ("status" when the alert is not ACTIVE)
    """

    alert_id: Optional[int]
    offer_id: Optional[int]
    is_match: bool
    failed_criteria: List[str] = field(default_factory=list)

    @property
    def reason(self) -> Optional[str]:
        """Comma-separated failed criteria, or None for a match."""
        if self.is_match:
            return None
        return ", ".join(self.failed_criteria)
