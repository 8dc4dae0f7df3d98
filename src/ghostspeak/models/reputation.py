"""Reputation record and Ghost Score data models.

A reputation record is the off-ledger replica of an agent's performance
history. Its ``score``, ``tier`` and ``tags`` are always a pure function of
the other fields: they are recomputed by the ReputationEngine after every
applied event and never set independently.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class ReputationTier(str, enum.Enum):
    """Ordered Ghost Score bands, lowest first."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER = [
    ReputationTier.BRONZE,
    ReputationTier.SILVER,
    ReputationTier.GOLD,
    ReputationTier.PLATINUM,
]


class ReputationTag(str, enum.Enum):
    """Qualitative labels derived from a record."""
    VERIFIED = "verified"
    NEWCOMER = "newcomer"
    EXPERIENCED = "experienced"
    HIGH_PERFORMER = "high-performer"
    RELIABLE = "reliable"
    TRUSTED = "trusted"


@dataclass(frozen=True)
class ScoreInputs:
    """The metrics a Ghost Score is computed from."""
    success_rate: float
    average_rating: float
    completed_jobs: int
    response_time_seconds: int
    completion_time_seconds: int
    admin_verified: bool
    has_integration: bool


@dataclass(frozen=True)
class ReputationRecord:
    """Current reputation state for a single subject.

    Frozen — every applied event produces a new record.
    Amounts are base units of the earnings token.
    """
    subject: str
    total_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    success_rate: float = 0.0
    average_rating: float = 0.0
    response_time_seconds: int = 0
    completion_time_seconds: int = 0
    total_earnings: int = 0
    average_earnings: int = 0
    admin_verified: bool = False
    verified_at: Optional[datetime] = None
    integration_events: int = 0
    integration_revenue: int = 0
    last_integration_sync: Optional[datetime] = None
    score: int = 0
    tier: ReputationTier = ReputationTier.BRONZE
    tags: frozenset[ReputationTag] = frozenset()
    updated_at: Optional[datetime] = None
