"""Multisig wallets, proposals, voting and role-based access control."""

from ghostspeak.governance.engine import GovernanceEngine

__all__ = ["GovernanceEngine"]
