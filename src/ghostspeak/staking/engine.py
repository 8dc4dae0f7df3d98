"""Staking engine — tiered positions, lock periods and linear reward accrual.

Accrual model:
  reward = principal × (apy / 100) × (elapsed_seconds / seconds_per_year)

truncated to whole base units. Accrued rewards are added to both
``unclaimed_rewards`` and ``total_rewards``, so
claimed + unclaimed == total holds after every operation.

State machine:
    LOCKED → ACTIVE      (accrual at or after unlocks_at)
    ACTIVE | LOCKED → UNSTAKED
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional

from ghostspeak.errors import (
    AlreadyStaking,
    NoRewardsToClaim,
    NotStaking,
    StillLocked,
    ValidationError,
)
from ghostspeak.models.staking import (
    LockPeriod,
    StakeSettlement,
    StakingPosition,
    StakingStats,
    StakingStatus,
    StakingTier,
    TierBenefits,
)
from ghostspeak.models.tokens import TokenMetadata, from_base_units
from ghostspeak.policy.resolver import PolicyResolver


class StakingEngine:
    """Manages staking positions for a single staking token.

    Usage:
        ghost = resolver.token_metadata(PaymentToken.GHOST, "devnet")
        engine = StakingEngine(resolver, ghost)
        position = engine.stake("staker_1", 5_000 * ghost.unit, LockPeriod.NONE)
        position = engine.accrue_rewards(position, now)
    """

    def __init__(self, resolver: PolicyResolver, token: TokenMetadata) -> None:
        if token.symbol != resolver.staking_token():
            raise ValueError(
                f"Staking token is {resolver.staking_token().value}, "
                f"got {token.symbol.value}"
            )
        self._resolver = resolver
        self._token = token

    @property
    def token(self) -> TokenMetadata:
        return self._token

    @property
    def minimum_stake(self) -> int:
        """Minimum principal in base units."""
        return self._resolver.minimum_stake_tokens() * self._token.unit

    # ------------------------------------------------------------------
    # Tiers and lock periods
    # ------------------------------------------------------------------

    def determine_tier(self, principal: int) -> StakingTier:
        floors = self._resolver.staking_tier_floors()
        for tier in (StakingTier.GOLD, StakingTier.SILVER):
            if principal >= floors[tier.value] * self._token.unit:
                return tier
        return StakingTier.BRONZE

    def tier_benefits(self, tier: StakingTier) -> TierBenefits:
        raw = self._resolver.staking_tier_benefits(tier.value)
        return TierBenefits(
            reputation_boost_pct=float(raw["reputation_boost_pct"]),
            verified_badge=bool(raw["verified_badge"]),
            premium_benefits=bool(raw["premium_benefits"]),
        )

    def lock_duration(self, lock_period: LockPeriod) -> timedelta:
        return timedelta(days=self._resolver.lock_period_days(lock_period.value))

    # ------------------------------------------------------------------
    # Position lifecycle
    # ------------------------------------------------------------------

    def stake(
        self,
        staker: str,
        principal: int,
        lock_period: LockPeriod = LockPeriod.NONE,
        existing: Optional[StakingPosition] = None,
        now: Optional[datetime] = None,
    ) -> StakingPosition:
        """Open a new position.

        Args:
            staker: The staking address.
            principal: Amount in base units of the staking token.
            lock_period: Lock selection. NONE starts ACTIVE, anything else LOCKED.
            existing: The staker's current position, if any.
            now: Current time (defaults to UTC now).
        """
        if not staker:
            raise ValidationError("Staker is required")
        if principal < self.minimum_stake:
            raise ValidationError(
                f"Minimum stake is {self._resolver.minimum_stake_tokens()} "
                f"{self._token.symbol.value}"
            )
        if existing is not None and existing.status != StakingStatus.UNSTAKED:
            raise AlreadyStaking(details={"staker": staker})
        if now is None:
            now = datetime.now(timezone.utc)

        tier = self.determine_tier(principal)
        apy = self._resolver.estimated_apy(tier.value)
        locked = lock_period != LockPeriod.NONE
        return StakingPosition(
            staker=staker,
            principal=principal,
            principal_tokens=from_base_units(principal, self._token),
            staked_at=now,
            lock_period=lock_period,
            unlocks_at=now + self.lock_duration(lock_period),
            status=StakingStatus.LOCKED if locked else StakingStatus.ACTIVE,
            tier=tier,
            benefits=self.tier_benefits(tier),
            current_apy=apy,
            estimated_apy=apy,
            last_accrual_at=now,
        )

    def pending_rewards(self, position: StakingPosition, now: datetime) -> int:
        """Rewards an accrual at ``now`` would add, without applying them."""
        if position.status == StakingStatus.UNSTAKED:
            return 0
        elapsed = _elapsed_seconds(position.last_accrual_at, now)
        if elapsed <= 0:
            return 0
        reward = (
            Decimal(position.principal)
            * Decimal(str(position.current_apy)) / Decimal(100)
            * elapsed / Decimal(self._resolver.seconds_per_year())
        )
        return int(reward)

    def accrue_rewards(self, position: StakingPosition, now: datetime) -> StakingPosition:
        """Accrue rewards up to ``now``. A second call at the same ``now`` adds nothing."""
        if position.status == StakingStatus.UNSTAKED:
            raise NotStaking(details={"staker": position.staker})
        reward = self.pending_rewards(position, now)
        status = position.status
        if status == StakingStatus.LOCKED and now >= position.unlocks_at:
            status = StakingStatus.ACTIVE
        return dataclasses.replace(
            position,
            total_rewards=position.total_rewards + reward,
            unclaimed_rewards=position.unclaimed_rewards + reward,
            last_accrual_at=max(position.last_accrual_at, now),
            status=status,
        )

    def can_unstake(self, position: StakingPosition, now: datetime) -> bool:
        if position.status == StakingStatus.UNSTAKED:
            return False
        return position.lock_period == LockPeriod.NONE or now >= position.unlocks_at

    def is_locked(self, position: StakingPosition, now: datetime) -> bool:
        if position.status == StakingStatus.UNSTAKED:
            return False
        return position.lock_period != LockPeriod.NONE and now < position.unlocks_at

    def time_until_unlock(self, position: StakingPosition, now: datetime) -> timedelta:
        if not self.is_locked(position, now):
            return timedelta(0)
        return position.unlocks_at - now

    def unstake(
        self,
        position: StakingPosition,
        now: Optional[datetime] = None,
    ) -> tuple[StakingPosition, StakeSettlement]:
        """Close a position, settling principal plus every unclaimed reward."""
        if now is None:
            now = datetime.now(timezone.utc)
        if position.status == StakingStatus.UNSTAKED:
            raise NotStaking(details={"staker": position.staker})
        if not self.can_unstake(position, now):
            raise StillLocked(details={
                "staker": position.staker,
                "unlocks_at": position.unlocks_at.isoformat(),
            })

        accrued = self.accrue_rewards(position, now)
        rewards = accrued.unclaimed_rewards
        closed = dataclasses.replace(
            accrued,
            claimed_rewards=accrued.claimed_rewards + rewards,
            unclaimed_rewards=0,
            status=StakingStatus.UNSTAKED,
            unstaked_at=now,
        )
        return closed, StakeSettlement(principal=position.principal, rewards=rewards)

    def claim_rewards(
        self,
        position: StakingPosition,
        now: Optional[datetime] = None,
    ) -> tuple[StakingPosition, int]:
        """Move the full unclaimed balance to claimed. Status is unchanged."""
        if now is None:
            now = datetime.now(timezone.utc)
        accrued = self.accrue_rewards(position, now)
        amount = accrued.unclaimed_rewards
        if amount == 0:
            raise NoRewardsToClaim(details={"staker": position.staker})
        claimed = dataclasses.replace(
            accrued,
            claimed_rewards=accrued.claimed_rewards + amount,
            unclaimed_rewards=0,
            last_claim_at=now,
        )
        return claimed, amount

    # ------------------------------------------------------------------
    # Yield
    # ------------------------------------------------------------------

    @staticmethod
    def variable_apy(
        stake: int,
        weight_multiplier: float,
        monthly_revenue: float,
        total_weighted_stake: float,
    ) -> float:
        """Revenue-share APY: the staker's weighted share of monthly revenue, annualised."""
        if stake == 0 or total_weighted_stake == 0:
            return 0.0
        monthly_reward = stake * weight_multiplier / total_weighted_stake * monthly_revenue
        return monthly_reward * 12 / stake * 100

    def update_apy(
        self,
        position: StakingPosition,
        apy: float,
        now: datetime,
    ) -> StakingPosition:
        """Accrue at the old rate up to ``now``, then switch to ``apy``."""
        if apy < 0:
            raise ValidationError("APY must be non-negative")
        accrued = self.accrue_rewards(position, now)
        return dataclasses.replace(accrued, current_apy=apy)

    @staticmethod
    def summarize(positions: Iterable[StakingPosition]) -> StakingStats:
        """Aggregate statistics across positions. Unstaked positions hold no stake."""
        live = []
        total_rewards = 0
        for position in positions:
            total_rewards += position.total_rewards
            if position.status != StakingStatus.UNSTAKED:
                live.append(position)
        average_apy = sum(p.current_apy for p in live) / len(live) if live else 0.0
        return StakingStats(
            total_staked=sum(p.principal for p in live),
            total_stakers=len(live),
            average_apy=average_apy,
            total_rewards=total_rewards,
        )


def _elapsed_seconds(start: datetime, end: datetime) -> Decimal:
    """Exact elapsed seconds between two instants (negative if end < start)."""
    delta = end - start
    return (
        Decimal(delta.days) * 86400
        + Decimal(delta.seconds)
        + Decimal(delta.microseconds) / Decimal(1_000_000)
    )
