"""Durable record schema — JSON-safe dicts for every persisted record.

Timestamps are ISO-8601 strings, enums their string values, Decimals
strings. Any storage backend must round-trip these shapes unchanged.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ghostspeak.models.escrow import (
    Dispute,
    DisputeResolution,
    DisputeStatus,
    Escrow,
    EscrowStatus,
)
from ghostspeak.models.governance import (
    MultisigWallet,
    Proposal,
    ProposalStatus,
    ProposalType,
    Role,
    RoleAssignment,
    Vote,
    VoteChoice,
)
from ghostspeak.models.reputation import ReputationRecord, ReputationTag, ReputationTier
from ghostspeak.models.staking import (
    LockPeriod,
    StakingPosition,
    StakingStatus,
    StakingTier,
    TierBenefits,
)
from ghostspeak.models.tokens import PaymentToken


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# ------------------------------------------------------------------
# Reputation
# ------------------------------------------------------------------

def reputation_to_dict(record: ReputationRecord) -> dict[str, Any]:
    return {
        "subject": record.subject,
        "total_jobs": record.total_jobs,
        "completed_jobs": record.completed_jobs,
        "failed_jobs": record.failed_jobs,
        "success_rate": record.success_rate,
        "average_rating": record.average_rating,
        "response_time_seconds": record.response_time_seconds,
        "completion_time_seconds": record.completion_time_seconds,
        "total_earnings": record.total_earnings,
        "average_earnings": record.average_earnings,
        "admin_verified": record.admin_verified,
        "verified_at": _ts(record.verified_at),
        "integration_events": record.integration_events,
        "integration_revenue": record.integration_revenue,
        "last_integration_sync": _ts(record.last_integration_sync),
        "score": record.score,
        "tier": record.tier.value,
        "tags": sorted(t.value for t in record.tags),
        "updated_at": _ts(record.updated_at),
    }


def reputation_from_dict(data: dict[str, Any]) -> ReputationRecord:
    return ReputationRecord(
        subject=data["subject"],
        total_jobs=data["total_jobs"],
        completed_jobs=data["completed_jobs"],
        failed_jobs=data["failed_jobs"],
        success_rate=data["success_rate"],
        average_rating=data["average_rating"],
        response_time_seconds=data["response_time_seconds"],
        completion_time_seconds=data["completion_time_seconds"],
        total_earnings=data["total_earnings"],
        average_earnings=data["average_earnings"],
        admin_verified=data["admin_verified"],
        verified_at=_dt(data.get("verified_at")),
        integration_events=data["integration_events"],
        integration_revenue=data["integration_revenue"],
        last_integration_sync=_dt(data.get("last_integration_sync")),
        score=data["score"],
        tier=ReputationTier(data["tier"]),
        tags=frozenset(ReputationTag(t) for t in data["tags"]),
        updated_at=_dt(data.get("updated_at")),
    )


# ------------------------------------------------------------------
# Staking
# ------------------------------------------------------------------

def staking_to_dict(position: StakingPosition) -> dict[str, Any]:
    return {
        "staker": position.staker,
        "principal": position.principal,
        "principal_tokens": str(position.principal_tokens),
        "staked_at": _ts(position.staked_at),
        "lock_period": position.lock_period.value,
        "unlocks_at": _ts(position.unlocks_at),
        "status": position.status.value,
        "tier": position.tier.value,
        "benefits": {
            "reputation_boost_pct": position.benefits.reputation_boost_pct,
            "verified_badge": position.benefits.verified_badge,
            "premium_benefits": position.benefits.premium_benefits,
        },
        "current_apy": position.current_apy,
        "estimated_apy": position.estimated_apy,
        "last_accrual_at": _ts(position.last_accrual_at),
        "total_rewards": position.total_rewards,
        "claimed_rewards": position.claimed_rewards,
        "unclaimed_rewards": position.unclaimed_rewards,
        "last_claim_at": _ts(position.last_claim_at),
        "unstaked_at": _ts(position.unstaked_at),
    }


def staking_from_dict(data: dict[str, Any]) -> StakingPosition:
    b = data["benefits"]
    return StakingPosition(
        staker=data["staker"],
        principal=data["principal"],
        principal_tokens=Decimal(data["principal_tokens"]),
        staked_at=_dt(data["staked_at"]),
        lock_period=LockPeriod(data["lock_period"]),
        unlocks_at=_dt(data["unlocks_at"]),
        status=StakingStatus(data["status"]),
        tier=StakingTier(data["tier"]),
        benefits=TierBenefits(
            reputation_boost_pct=b["reputation_boost_pct"],
            verified_badge=b["verified_badge"],
            premium_benefits=b["premium_benefits"],
        ),
        current_apy=data["current_apy"],
        estimated_apy=data["estimated_apy"],
        last_accrual_at=_dt(data["last_accrual_at"]),
        total_rewards=data["total_rewards"],
        claimed_rewards=data["claimed_rewards"],
        unclaimed_rewards=data["unclaimed_rewards"],
        last_claim_at=_dt(data.get("last_claim_at")),
        unstaked_at=_dt(data.get("unstaked_at")),
    )


# ------------------------------------------------------------------
# Escrow
# ------------------------------------------------------------------

def dispute_to_dict(dispute: Dispute) -> dict[str, Any]:
    return {
        "dispute_id": dispute.dispute_id,
        "initiator": dispute.initiator,
        "reason": dispute.reason,
        "evidence": list(dispute.evidence),
        "created_at": _ts(dispute.created_at),
        "status": dispute.status.value,
        "resolution": dispute.resolution.value if dispute.resolution else None,
        "resolved_by": dispute.resolved_by,
        "client_amount": dispute.client_amount,
        "agent_amount": dispute.agent_amount,
        "resolved_at": _ts(dispute.resolved_at),
    }


def dispute_from_dict(data: dict[str, Any]) -> Dispute:
    resolution = data.get("resolution")
    return Dispute(
        dispute_id=data["dispute_id"],
        initiator=data["initiator"],
        reason=data["reason"],
        evidence=tuple(data["evidence"]),
        created_at=_dt(data["created_at"]),
        status=DisputeStatus(data["status"]),
        resolution=DisputeResolution(resolution) if resolution else None,
        resolved_by=data.get("resolved_by"),
        client_amount=data["client_amount"],
        agent_amount=data["agent_amount"],
        resolved_at=_dt(data.get("resolved_at")),
    )


def escrow_to_dict(escrow: Escrow) -> dict[str, Any]:
    return {
        "escrow_id": escrow.escrow_id,
        "client": escrow.client,
        "agent": escrow.agent,
        "amount": escrow.amount,
        "token": escrow.token.value,
        "token_mint": escrow.token_mint,
        "token_decimals": escrow.token_decimals,
        "description": escrow.description,
        "created_at": _ts(escrow.created_at),
        "status": escrow.status.value,
        "job_id": escrow.job_id,
        "deadline": _ts(escrow.deadline),
        "milestones": list(escrow.milestones),
        "mediator": escrow.mediator,
        "funded_at": _ts(escrow.funded_at),
        "started_at": _ts(escrow.started_at),
        "completed_at": _ts(escrow.completed_at),
        "released_at": _ts(escrow.released_at),
        "canceled_at": _ts(escrow.canceled_at),
        "dispute": dispute_to_dict(escrow.dispute) if escrow.dispute else None,
        "updated_at": _ts(escrow.updated_at),
    }


def escrow_from_dict(data: dict[str, Any]) -> Escrow:
    dispute = data.get("dispute")
    return Escrow(
        escrow_id=data["escrow_id"],
        client=data["client"],
        agent=data["agent"],
        amount=data["amount"],
        token=PaymentToken(data["token"]),
        token_mint=data["token_mint"],
        token_decimals=data["token_decimals"],
        description=data["description"],
        created_at=_dt(data["created_at"]),
        status=EscrowStatus(data["status"]),
        job_id=data.get("job_id"),
        deadline=_dt(data.get("deadline")),
        milestones=tuple(data.get("milestones", ())),
        mediator=data.get("mediator"),
        funded_at=_dt(data.get("funded_at")),
        started_at=_dt(data.get("started_at")),
        completed_at=_dt(data.get("completed_at")),
        released_at=_dt(data.get("released_at")),
        canceled_at=_dt(data.get("canceled_at")),
        dispute=dispute_from_dict(dispute) if dispute else None,
        updated_at=_dt(data.get("updated_at")),
    )


# ------------------------------------------------------------------
# Governance
# ------------------------------------------------------------------

def proposal_to_dict(proposal: Proposal) -> dict[str, Any]:
    return {
        "proposal_id": proposal.proposal_id,
        "proposer": proposal.proposer,
        "proposal_type": proposal.proposal_type.value,
        "title": proposal.title,
        "description": proposal.description,
        "voting_starts_at": _ts(proposal.voting_starts_at),
        "voting_ends_at": _ts(proposal.voting_ends_at),
        "quorum_required": proposal.quorum_required,
        "created_at": _ts(proposal.created_at),
        "status": proposal.status.value,
        "votes_for": proposal.votes_for,
        "votes_against": proposal.votes_against,
        "votes_abstain": proposal.votes_abstain,
        "actions": proposal.actions,
        "multisig_address": proposal.multisig_address,
        "executed_at": _ts(proposal.executed_at),
        "canceled_at": _ts(proposal.canceled_at),
        "updated_at": _ts(proposal.updated_at),
    }


def proposal_from_dict(data: dict[str, Any]) -> Proposal:
    return Proposal(
        proposal_id=data["proposal_id"],
        proposer=data["proposer"],
        proposal_type=ProposalType(data["proposal_type"]),
        title=data["title"],
        description=data["description"],
        voting_starts_at=_dt(data["voting_starts_at"]),
        voting_ends_at=_dt(data["voting_ends_at"]),
        quorum_required=data["quorum_required"],
        created_at=_dt(data["created_at"]),
        status=ProposalStatus(data["status"]),
        votes_for=data["votes_for"],
        votes_against=data["votes_against"],
        votes_abstain=data["votes_abstain"],
        actions=data.get("actions"),
        multisig_address=data.get("multisig_address"),
        executed_at=_dt(data.get("executed_at")),
        canceled_at=_dt(data.get("canceled_at")),
        updated_at=_dt(data.get("updated_at")),
    )


def vote_to_dict(vote: Vote) -> dict[str, Any]:
    return {
        "proposal_id": vote.proposal_id,
        "voter": vote.voter,
        "choice": vote.choice.value,
        "weight": vote.weight,
        "voted_at": _ts(vote.voted_at),
    }


def vote_from_dict(data: dict[str, Any]) -> Vote:
    return Vote(
        proposal_id=data["proposal_id"],
        voter=data["voter"],
        choice=VoteChoice(data["choice"]),
        weight=data["weight"],
        voted_at=_dt(data["voted_at"]),
    )


def multisig_to_dict(wallet: MultisigWallet) -> dict[str, Any]:
    return {
        "address": wallet.address,
        "owners": list(wallet.owners),
        "threshold": wallet.threshold,
        "created_at": _ts(wallet.created_at),
        "nonce": wallet.nonce,
        "proposal_count": wallet.proposal_count,
        "executed_count": wallet.executed_count,
        "treasury_balance": wallet.treasury_balance,
    }


def multisig_from_dict(data: dict[str, Any]) -> MultisigWallet:
    return MultisigWallet(
        address=data["address"],
        owners=tuple(data["owners"]),
        threshold=data["threshold"],
        created_at=_dt(data["created_at"]),
        nonce=data["nonce"],
        proposal_count=data["proposal_count"],
        executed_count=data["executed_count"],
        treasury_balance=data["treasury_balance"],
    )


def role_to_dict(assignment: RoleAssignment) -> dict[str, Any]:
    return {
        "address": assignment.address,
        "role": assignment.role.value,
        "granted_by": assignment.granted_by,
        "granted_at": _ts(assignment.granted_at),
        "expires_at": _ts(assignment.expires_at),
        "active": assignment.active,
    }


def role_from_dict(data: dict[str, Any]) -> RoleAssignment:
    return RoleAssignment(
        address=data["address"],
        role=Role(data["role"]),
        granted_by=data["granted_by"],
        granted_at=_dt(data["granted_at"]),
        expires_at=_dt(data.get("expires_at")),
        active=data["active"],
    )
