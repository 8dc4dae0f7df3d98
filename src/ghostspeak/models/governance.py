"""Governance models — proposals, votes, multisig wallets, and roles.

Weighted voting:
- total_votes = for + against + abstain
- approval_rate = for / (for + against) * 100 (abstain excluded)
- has_quorum = total_votes >= quorum_required

Role-based access control uses a fixed role → permission matrix.
Roles are ordered: ADMIN > MODERATOR > VERIFIER > USER.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional


class ProposalStatus(str, enum.Enum):
    """Lifecycle state of a proposal.

    ACTIVE → PASSED → EXECUTED
    ACTIVE → FAILED
    ACTIVE → CANCELED
    """
    ACTIVE = "active"
    PASSED = "passed"
    FAILED = "failed"
    EXECUTED = "executed"
    CANCELED = "canceled"


class ProposalType(str, enum.Enum):
    PARAMETER_CHANGE = "parameter_change"
    TREASURY_SPEND = "treasury_spend"
    UPGRADE_PROGRAM = "upgrade_program"
    EMERGENCY = "emergency"
    GENERAL = "general"


class VoteChoice(str, enum.Enum):
    FOR = "for"
    AGAINST = "against"
    ABSTAIN = "abstain"


class Role(str, enum.Enum):
    """Governance roles, highest first."""
    ADMIN = "admin"
    MODERATOR = "moderator"
    VERIFIER = "verifier"
    USER = "user"

    @property
    def rank(self) -> int:
        """Higher rank means more authority."""
        return len(ROLE_PRIORITY) - 1 - ROLE_PRIORITY.index(self)


ROLE_PRIORITY = [Role.ADMIN, Role.MODERATOR, Role.VERIFIER, Role.USER]


class Permission(str, enum.Enum):
    CREATE_PROPOSAL = "create_proposal"
    VOTE = "vote"
    EXECUTE_PROPOSAL = "execute_proposal"
    CANCEL_PROPOSAL = "cancel_proposal"
    VETO_PROPOSAL = "veto_proposal"
    GRANT_ROLE = "grant_role"
    REVOKE_ROLE = "revoke_role"
    VERIFY_AGENT = "verify_agent"
    MANAGE_TREASURY = "manage_treasury"
    UPGRADE_PROGRAM = "upgrade_program"
    EMERGENCY_ACTION = "emergency_action"


ROLE_PERMISSIONS: Dict[Role, frozenset] = {
    Role.ADMIN: frozenset(Permission),
    Role.MODERATOR: frozenset({
        Permission.CREATE_PROPOSAL,
        Permission.VOTE,
        Permission.CANCEL_PROPOSAL,
        Permission.VERIFY_AGENT,
    }),
    Role.VERIFIER: frozenset({
        Permission.VOTE,
        Permission.VERIFY_AGENT,
    }),
    Role.USER: frozenset({Permission.VOTE}),
}


@dataclass(frozen=True)
class Proposal:
    """A governance proposal with weighted tallies."""
    proposal_id: str
    proposer: str
    proposal_type: ProposalType
    title: str
    description: str
    voting_starts_at: datetime
    voting_ends_at: datetime
    quorum_required: int
    created_at: datetime
    status: ProposalStatus = ProposalStatus.ACTIVE
    votes_for: int = 0
    votes_against: int = 0
    votes_abstain: int = 0
    actions: Optional[str] = None
    multisig_address: Optional[str] = None
    executed_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total_votes(self) -> int:
        return self.votes_for + self.votes_against + self.votes_abstain

    @property
    def quorum_progress(self) -> float:
        if self.quorum_required == 0:
            return 0.0
        return self.total_votes / self.quorum_required * 100.0

    @property
    def approval_rate(self) -> Optional[float]:
        """Share of decisive weight voting FOR; None when nobody voted for/against."""
        decisive = self.votes_for + self.votes_against
        if decisive == 0:
            return None
        return self.votes_for / decisive * 100.0

    @property
    def has_quorum(self) -> bool:
        return self.total_votes >= self.quorum_required

    def is_approved(self, threshold_pct: float = 50.0) -> bool:
        rate = self.approval_rate
        return rate is not None and rate > threshold_pct


@dataclass(frozen=True)
class Vote:
    """A single weighted vote. Exactly one per (proposal, voter)."""
    proposal_id: str
    voter: str
    choice: VoteChoice
    weight: int
    voted_at: datetime


@dataclass(frozen=True)
class MultisigWallet:
    """A multisig governance wallet."""
    address: str
    owners: tuple[str, ...]
    threshold: int
    created_at: datetime
    nonce: int = 0
    proposal_count: int = 0
    executed_count: int = 0
    treasury_balance: int = 0

    def is_owner(self, address: str) -> bool:
        return address in self.owners


@dataclass(frozen=True)
class RoleAssignment:
    """A role held by an address.

    An assignment past its expiry is inactive regardless of ``active``.
    """
    address: str
    role: Role
    granted_by: str
    granted_at: datetime
    expires_at: Optional[datetime] = None
    active: bool = True

    def is_active_at(self, now: datetime) -> bool:
        if not self.active:
            return False
        return self.expires_at is None or now < self.expires_at
