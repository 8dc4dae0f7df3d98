"""Staking position models.

Invariants enforced by the StakingEngine:
- claimed_rewards + unclaimed_rewards == total_rewards after every operation.
- tier and tier benefits are a pure function of the principal.
- UNSTAKED is terminal; staking again creates a new position.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


class StakingTier(str, enum.Enum):
    """Ordered staking bands, lowest first."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class LockPeriod(str, enum.Enum):
    """Selectable lock durations."""
    NONE = "none"
    DAYS_30 = "30days"
    DAYS_90 = "90days"
    YEAR_1 = "1year"


class StakingStatus(str, enum.Enum):
    """Lifecycle state of a staking position.

    ACTIVE ↔ LOCKED (lock expiry moves LOCKED → ACTIVE)
    ACTIVE | LOCKED → UNSTAKED (terminal)
    """
    ACTIVE = "active"
    LOCKED = "locked"
    UNSTAKED = "unstaked"


@dataclass(frozen=True)
class TierBenefits:
    """What a staking tier grants."""
    reputation_boost_pct: float
    verified_badge: bool
    premium_benefits: bool


@dataclass(frozen=True)
class StakingPosition:
    """A staker's position. Amounts are base units of the staking token."""
    staker: str
    principal: int
    principal_tokens: Decimal
    staked_at: datetime
    lock_period: LockPeriod
    unlocks_at: datetime
    status: StakingStatus
    tier: StakingTier
    benefits: TierBenefits
    current_apy: float
    estimated_apy: float
    last_accrual_at: datetime
    total_rewards: int = 0
    claimed_rewards: int = 0
    unclaimed_rewards: int = 0
    last_claim_at: Optional[datetime] = None
    unstaked_at: Optional[datetime] = None

    @property
    def rewards_balanced(self) -> bool:
        return self.claimed_rewards + self.unclaimed_rewards == self.total_rewards


@dataclass(frozen=True)
class StakeSettlement:
    """What an unstake returns to the staker."""
    principal: int
    rewards: int

    @property
    def total(self) -> int:
        return self.principal + self.rewards


@dataclass(frozen=True)
class StakingStats:
    """Aggregate view across positions."""
    total_staked: int
    total_stakers: int
    average_apy: float
    total_rewards: int
