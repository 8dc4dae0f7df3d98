"""Governance engine — multisig wallets, proposals, weighted voting, and RBAC.

Proposal lifecycle:
    ACTIVE → PASSED | FAILED    (finalize, after the voting window closes)
    PASSED → EXECUTED           (quorum and approval re-checked)
    ACTIVE → CANCELED

The voting window opens a fixed grace interval after creation and is
half-open: a vote at ``voting_ends_at`` is rejected.

Role checks are made against the caller's effective role, which the
caller resolves with ``effective_role`` from its stored assignments.
Expired assignments are inactive regardless of their stored flag.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence
from uuid import uuid4

from ghostspeak.errors import (
    AlreadyVoted,
    CannotRevokeOwnRole,
    InvalidTransition,
    PermissionDenied,
    ProposalNotApproved,
    ProposalNotPassed,
    QuorumNotReached,
    RoleAlreadyAssigned,
    RoleNotFound,
    ValidationError,
    VotingClosed,
    VotingNotStarted,
    VotingStillOpen,
)
from ghostspeak.models.governance import (
    ROLE_PERMISSIONS,
    ROLE_PRIORITY,
    MultisigWallet,
    Permission,
    Proposal,
    ProposalStatus,
    ProposalType,
    Role,
    RoleAssignment,
    Vote,
    VoteChoice,
)
from ghostspeak.policy.resolver import PolicyResolver


class GovernanceEngine:
    """Validates and applies governance operations.

    Usage:
        engine = GovernanceEngine(resolver)
        proposal = engine.create_proposal(
            "alice", ProposalType.GENERAL, "Raise fee", "…", 86400, now=now,
        )
        proposal, vote = engine.vote(proposal, "bob", VoteChoice.FOR, 100, now=later)
    """

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver

    # ------------------------------------------------------------------
    # Multisig
    # ------------------------------------------------------------------

    def create_multisig(
        self,
        owners: Sequence[str],
        threshold: int,
        address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MultisigWallet:
        """Create a multisig wallet with an ordered owner list."""
        min_owners, max_owners = self._resolver.multisig_owner_bounds()
        if not min_owners <= len(owners) <= max_owners:
            raise ValidationError(
                f"Multisig requires {min_owners}-{max_owners} owners, got {len(owners)}"
            )
        if any(not owner for owner in owners):
            raise ValidationError("Owner address must not be empty")
        if len(set(owners)) != len(owners):
            raise ValidationError("Duplicate multisig owners")
        if not 1 <= threshold <= len(owners):
            raise ValidationError(
                f"Threshold must be between 1 and {len(owners)}, got {threshold}"
            )
        if now is None:
            now = datetime.now(timezone.utc)
        if address is None:
            address = f"multisig_{uuid4().hex[:16]}"
        return MultisigWallet(
            address=address,
            owners=tuple(owners),
            threshold=threshold,
            created_at=now,
        )

    @staticmethod
    def is_owner(wallet: MultisigWallet, address: str) -> bool:
        return wallet.is_owner(address)

    @staticmethod
    def record_proposal(wallet: MultisigWallet) -> MultisigWallet:
        return dataclasses.replace(
            wallet, proposal_count=wallet.proposal_count + 1, nonce=wallet.nonce + 1,
        )

    @staticmethod
    def record_execution(wallet: MultisigWallet) -> MultisigWallet:
        return dataclasses.replace(
            wallet, executed_count=wallet.executed_count + 1, nonce=wallet.nonce + 1,
        )

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    def create_proposal(
        self,
        proposer: str,
        proposal_type: ProposalType,
        title: str,
        description: str,
        voting_period_seconds: int,
        quorum_required: Optional[int] = None,
        actions: Optional[str] = None,
        multisig_address: Optional[str] = None,
        proposal_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Proposal:
        """Create an ACTIVE proposal whose window opens after the grace interval.

        Args:
            proposer: Creating address.
            proposal_type: One of ProposalType.
            title: Non-empty, bounded length.
            description: Non-empty, bounded length.
            voting_period_seconds: Window length, within the configured bounds.
            quorum_required: Absolute vote weight required (config default if absent).
            actions: Optional opaque execution payload.
            multisig_address: Optional owning multisig.
            proposal_id: Optional explicit ID (auto-generated if absent).
            now: Current time (defaults to UTC now).
        """
        title_max, description_max = self._resolver.proposal_text_limits()
        period_min, period_max = self._resolver.voting_period_bounds()
        if not proposer:
            raise ValidationError("Proposer is required")
        if not title:
            raise ValidationError("Title is required")
        if len(title) > title_max:
            raise ValidationError(f"Title must be at most {title_max} characters")
        if not description:
            raise ValidationError("Description is required")
        if len(description) > description_max:
            raise ValidationError(
                f"Description must be at most {description_max} characters"
            )
        if not period_min <= voting_period_seconds <= period_max:
            raise ValidationError(
                f"Voting period must be between {period_min} and {period_max} seconds"
            )
        if quorum_required is None:
            quorum_required = self._resolver.default_quorum_required()
        if quorum_required < 1:
            raise ValidationError("Quorum must be at least 1")
        if now is None:
            now = datetime.now(timezone.utc)
        if proposal_id is None:
            proposal_id = f"proposal_{uuid4().hex[:16]}"

        starts = now + timedelta(seconds=self._resolver.voting_grace_seconds())
        return Proposal(
            proposal_id=proposal_id,
            proposer=proposer,
            proposal_type=proposal_type,
            title=title,
            description=description,
            voting_starts_at=starts,
            voting_ends_at=starts + timedelta(seconds=voting_period_seconds),
            quorum_required=quorum_required,
            created_at=now,
            actions=actions,
            multisig_address=multisig_address,
            updated_at=now,
        )

    def vote(
        self,
        proposal: Proposal,
        voter: str,
        choice: VoteChoice,
        weight: int,
        existing_vote: Optional[Vote] = None,
        now: Optional[datetime] = None,
    ) -> tuple[Proposal, Vote]:
        """Cast a weighted vote. Returns the updated proposal and the vote."""
        if not voter:
            raise ValidationError("Voter is required")
        if weight <= 0:
            raise ValidationError("Vote weight must be positive")
        if now is None:
            now = datetime.now(timezone.utc)
        if proposal.status != ProposalStatus.ACTIVE:
            raise VotingClosed(details={
                "proposal_id": proposal.proposal_id,
                "status": proposal.status.value,
            })
        if now < proposal.voting_starts_at:
            raise VotingNotStarted(details={"proposal_id": proposal.proposal_id})
        if now >= proposal.voting_ends_at:
            raise VotingClosed(details={"proposal_id": proposal.proposal_id})
        if existing_vote is not None:
            raise AlreadyVoted(details={"proposal_id": proposal.proposal_id, "voter": voter})

        if choice == VoteChoice.FOR:
            updated = dataclasses.replace(proposal, votes_for=proposal.votes_for + weight)
        elif choice == VoteChoice.AGAINST:
            updated = dataclasses.replace(
                proposal, votes_against=proposal.votes_against + weight,
            )
        else:
            updated = dataclasses.replace(
                proposal, votes_abstain=proposal.votes_abstain + weight,
            )
        ballot = Vote(
            proposal_id=proposal.proposal_id,
            voter=voter,
            choice=choice,
            weight=weight,
            voted_at=now,
        )
        return dataclasses.replace(updated, updated_at=now), ballot

    def is_approved(self, proposal: Proposal) -> bool:
        return proposal.is_approved(self._resolver.approval_threshold_pct())

    def finalize_proposal(
        self,
        proposal: Proposal,
        now: Optional[datetime] = None,
    ) -> Proposal:
        """Close voting: PASSED if quorum and approval hold, else FAILED."""
        if proposal.status != ProposalStatus.ACTIVE:
            raise InvalidTransition(
                f"Only active proposals can be finalized (status: {proposal.status.value})",
                details={"proposal_id": proposal.proposal_id},
            )
        if now is None:
            now = datetime.now(timezone.utc)
        if now < proposal.voting_ends_at:
            raise VotingStillOpen(details={"proposal_id": proposal.proposal_id})
        passed = proposal.has_quorum and self.is_approved(proposal)
        return dataclasses.replace(
            proposal,
            status=ProposalStatus.PASSED if passed else ProposalStatus.FAILED,
            updated_at=now,
        )

    def execute_proposal(
        self,
        proposal: Proposal,
        now: Optional[datetime] = None,
    ) -> Proposal:
        """Execute a passed proposal. Fails with the first unmet condition."""
        if proposal.status != ProposalStatus.PASSED:
            raise ProposalNotPassed(details={
                "proposal_id": proposal.proposal_id,
                "status": proposal.status.value,
            })
        if not proposal.has_quorum:
            raise QuorumNotReached(details={
                "proposal_id": proposal.proposal_id,
                "total_votes": proposal.total_votes,
                "quorum_required": proposal.quorum_required,
            })
        if not self.is_approved(proposal):
            raise ProposalNotApproved(details={
                "proposal_id": proposal.proposal_id,
                "approval_rate": proposal.approval_rate,
            })
        if now is None:
            now = datetime.now(timezone.utc)
        return dataclasses.replace(
            proposal, status=ProposalStatus.EXECUTED, executed_at=now, updated_at=now,
        )

    def cancel_proposal(
        self,
        proposal: Proposal,
        caller: str,
        caller_role: Role,
        now: Optional[datetime] = None,
    ) -> Proposal:
        """Cancel an active proposal. Allowed for the proposer or a cancel-permission holder."""
        if proposal.status != ProposalStatus.ACTIVE:
            raise InvalidTransition(
                f"Only active proposals can be canceled (status: {proposal.status.value})",
                details={"proposal_id": proposal.proposal_id},
            )
        if caller != proposal.proposer and not self.has_permission(
            caller_role, Permission.CANCEL_PROPOSAL,
        ):
            raise PermissionDenied(details={
                "caller": caller,
                "permission": Permission.CANCEL_PROPOSAL.value,
            })
        if now is None:
            now = datetime.now(timezone.utc)
        return dataclasses.replace(
            proposal, status=ProposalStatus.CANCELED, canceled_at=now, updated_at=now,
        )

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    @staticmethod
    def role_permissions(role: Role) -> frozenset:
        return ROLE_PERMISSIONS[role]

    @staticmethod
    def has_permission(role: Role, permission: Permission) -> bool:
        return permission in ROLE_PERMISSIONS[role]

    @staticmethod
    def effective_role(
        assignments: Iterable[RoleAssignment],
        address: str,
        now: datetime,
    ) -> Role:
        """Highest active role held by ``address``; USER when none."""
        held = {
            a.role for a in assignments
            if a.address == address and a.is_active_at(now)
        }
        for role in ROLE_PRIORITY:
            if role in held:
                return role
        return Role.USER

    def require_permission(self, role: Role, permission: Permission, caller: str) -> None:
        if not self.has_permission(role, permission):
            raise PermissionDenied(details={
                "caller": caller,
                "role": role.value,
                "permission": permission.value,
            })

    def grant_role(
        self,
        granter: str,
        granter_role: Role,
        address: str,
        role: Role,
        existing: Optional[RoleAssignment] = None,
        expires_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> RoleAssignment:
        """Grant ``role`` to ``address``.

        ``existing`` is the stored assignment for the same (address, role)
        pair, if any. An expired or revoked one may be replaced.
        """
        if not address:
            raise ValidationError("Address is required")
        if now is None:
            now = datetime.now(timezone.utc)
        if expires_at is not None and expires_at.tzinfo is None:
            raise ValidationError("Expiry must be timezone-aware")
        if expires_at is not None and expires_at <= now:
            raise ValidationError("Expiry must be in the future")
        self.require_permission(granter_role, Permission.GRANT_ROLE, granter)
        if existing is not None and existing.is_active_at(now):
            raise RoleAlreadyAssigned(details={"address": address, "role": role.value})
        return RoleAssignment(
            address=address,
            role=role,
            granted_by=granter,
            granted_at=now,
            expires_at=expires_at,
        )

    def revoke_role(
        self,
        revoker: str,
        revoker_role: Role,
        address: str,
        role: Role,
        existing: Optional[RoleAssignment] = None,
        now: Optional[datetime] = None,
    ) -> RoleAssignment:
        """Deactivate the stored assignment for (address, role)."""
        if now is None:
            now = datetime.now(timezone.utc)
        self.require_permission(revoker_role, Permission.REVOKE_ROLE, revoker)
        if address == revoker:
            raise CannotRevokeOwnRole(details={"address": address})
        if existing is None or not existing.is_active_at(now):
            raise RoleNotFound(details={"address": address, "role": role.value})
        return dataclasses.replace(existing, active=False)

    def bootstrap_admin(
        self,
        address: str,
        assignments: Iterable[RoleAssignment],
        now: Optional[datetime] = None,
    ) -> RoleAssignment:
        """Seed the first admin. Refused once any active admin exists."""
        if not address:
            raise ValidationError("Address is required")
        if now is None:
            now = datetime.now(timezone.utc)
        for assignment in assignments:
            if assignment.role == Role.ADMIN and assignment.is_active_at(now):
                raise RoleAlreadyAssigned(
                    "An active admin already exists",
                    details={"address": assignment.address},
                )
        return RoleAssignment(
            address=address,
            role=Role.ADMIN,
            granted_by=address,
            granted_at=now,
        )
