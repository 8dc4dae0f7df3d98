"""Staking positions, lock periods and reward accrual."""

from ghostspeak.staking.engine import StakingEngine

__all__ = ["StakingEngine"]
