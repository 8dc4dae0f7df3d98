"""Escrow engine — two-party payment holding with dispute resolution.

The engine is a pure state machine: every operation takes the current
Escrow value and returns a new one. Persistence and event logging are
handled by the service layer.

Guards are checked in a fixed order: record state first, then caller
identity. A failed guard leaves the input escrow untouched.

Disputes are reviewed and resolved by the mediator when one is named,
otherwise by either party.

Dispute resolution splits exactly the escrowed amount:
    CLIENT_FAVOR → client gets everything
    AGENT_FAVOR  → agent gets everything
    SPLIT        → agent gets amount // 2, client gets the remainder
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence
from uuid import uuid4

from ghostspeak.errors import (
    DisputeAlreadyOpen,
    DisputeAlreadyResolved,
    EscrowAlreadyFunded,
    EscrowNotReleasable,
    InvalidTransition,
    NoDispute,
    NotAuthorized,
    ValidationError,
)
from ghostspeak.models.escrow import (
    ESCROW_TRANSITIONS,
    Dispute,
    DisputeResolution,
    DisputeStatus,
    Escrow,
    EscrowSettlement,
    EscrowStatus,
)
from ghostspeak.models.tokens import TokenMetadata
from ghostspeak.policy.resolver import PolicyResolver


_FUNDED_OR_LATER = frozenset({
    EscrowStatus.FUNDED,
    EscrowStatus.IN_PROGRESS,
    EscrowStatus.COMPLETED,
    EscrowStatus.RELEASED,
    EscrowStatus.DISPUTED,
})


class EscrowEngine:
    """Manages escrow lifecycles.

    Usage:
        engine = EscrowEngine(resolver)
        usdc = resolver.token_metadata(PaymentToken.USDC, "devnet")
        escrow = engine.create("client_1", "agent_1", 1_000_000, usdc, "Translate docs")
        escrow = engine.fund(escrow, "client_1")
        escrow = engine.mark_completed(escrow, "agent_1")
        escrow = engine.release(escrow, "client_1")
    """

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver

    def create(
        self,
        client: str,
        agent: str,
        amount: int,
        token: TokenMetadata,
        description: str,
        job_id: Optional[str] = None,
        deadline: Optional[datetime] = None,
        milestones: Sequence[str] = (),
        mediator: Optional[str] = None,
        escrow_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Create a new escrow in CREATED state.

        Args:
            client: The paying party.
            agent: The party performing the work.
            amount: Amount in base units of ``token``.
            token: Token metadata from the active network's token table.
            description: Terms of the work.
            job_id: Optional job reference.
            deadline: Optional deadline, strictly in the future.
            milestones: Optional milestone descriptions.
            mediator: Optional address allowed to resolve disputes.
            escrow_id: Optional explicit ID (auto-generated if absent).
            now: Current time (defaults to UTC now).
        """
        limits = self._resolver.escrow_limits()
        if now is None:
            now = datetime.now(timezone.utc)
        if not client:
            raise ValidationError("Client address is required")
        if not agent:
            raise ValidationError("Agent address is required")
        if agent == client:
            raise ValidationError("Client and agent must differ")
        if amount < limits["minimum_amount_units"]:
            raise ValidationError(
                f"Minimum escrow amount is {limits['minimum_amount_units']} base units"
            )
        if not description:
            raise ValidationError("Description is required")
        if len(description) > limits["description_max_length"]:
            raise ValidationError(
                f"Description must be at most {limits['description_max_length']} characters"
            )
        if deadline is not None and deadline.tzinfo is None:
            raise ValidationError("Deadline must be timezone-aware")
        if deadline is not None and deadline <= now:
            raise ValidationError("Deadline must be in the future")
        if mediator is not None and mediator in (client, agent):
            raise ValidationError("Mediator must not be a party to the escrow")
        if escrow_id is None:
            escrow_id = f"escrow_{uuid4().hex[:12]}"

        return Escrow(
            escrow_id=escrow_id,
            client=client,
            agent=agent,
            amount=amount,
            token=token.symbol,
            token_mint=token.mint,
            token_decimals=token.decimals,
            description=description,
            created_at=now,
            job_id=job_id,
            deadline=deadline,
            milestones=tuple(milestones),
            mediator=mediator,
            updated_at=now,
        )

    def fund(
        self,
        escrow: Escrow,
        caller: str,
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Client deposits the amount. CREATED → FUNDED."""
        if escrow.status in _FUNDED_OR_LATER:
            raise EscrowAlreadyFunded(details={"escrow_id": escrow.escrow_id})
        self._require(escrow, EscrowStatus.FUNDED)
        self._require_client(escrow, caller)
        if now is None:
            now = datetime.now(timezone.utc)
        return dataclasses.replace(
            escrow, status=EscrowStatus.FUNDED, funded_at=now, updated_at=now,
        )

    def start_work(
        self,
        escrow: Escrow,
        caller: str,
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Agent accepts the job. FUNDED → IN_PROGRESS."""
        self._require(escrow, EscrowStatus.IN_PROGRESS)
        self._require_agent(escrow, caller)
        if now is None:
            now = datetime.now(timezone.utc)
        return dataclasses.replace(
            escrow, status=EscrowStatus.IN_PROGRESS, started_at=now, updated_at=now,
        )

    def mark_completed(
        self,
        escrow: Escrow,
        caller: str,
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Agent delivers the work. FUNDED | IN_PROGRESS → COMPLETED."""
        if escrow.status == EscrowStatus.DISPUTED:
            raise InvalidTransition(
                "Disputed escrows complete through dispute resolution",
                details={"escrow_id": escrow.escrow_id},
            )
        self._require(escrow, EscrowStatus.COMPLETED)
        self._require_agent(escrow, caller)
        if now is None:
            now = datetime.now(timezone.utc)
        return dataclasses.replace(
            escrow, status=EscrowStatus.COMPLETED, completed_at=now, updated_at=now,
        )

    def release(
        self,
        escrow: Escrow,
        caller: str,
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Client releases payment to the agent. COMPLETED → RELEASED."""
        if not self.can_release(escrow):
            raise EscrowNotReleasable(details={
                "escrow_id": escrow.escrow_id,
                "status": escrow.status.value,
            })
        self._require_client(escrow, caller)
        if now is None:
            now = datetime.now(timezone.utc)
        return dataclasses.replace(
            escrow, status=EscrowStatus.RELEASED, released_at=now, updated_at=now,
        )

    def cancel(
        self,
        escrow: Escrow,
        caller: str,
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Client cancels and is refunded in full. CREATED | FUNDED → CANCELLED."""
        if not self.can_cancel(escrow):
            raise InvalidTransition(
                f"Escrow cannot be cancelled (status: {escrow.status.value})",
                details={"escrow_id": escrow.escrow_id},
            )
        self._require_client(escrow, caller)
        if now is None:
            now = datetime.now(timezone.utc)
        return dataclasses.replace(
            escrow, status=EscrowStatus.CANCELLED, canceled_at=now, updated_at=now,
        )

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    def open_dispute(
        self,
        escrow: Escrow,
        caller: str,
        reason: str,
        evidence: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Either party disputes the escrow. FUNDED | COMPLETED → DISPUTED."""
        limit = self._resolver.escrow_limits()["dispute_reason_max_length"]
        if not reason:
            raise ValidationError("Dispute reason is required")
        if len(reason) > limit:
            raise ValidationError(f"Reason must be at most {limit} characters")
        if escrow.dispute is not None:
            raise DisputeAlreadyOpen(details={"escrow_id": escrow.escrow_id})
        if not self.can_dispute(escrow):
            raise InvalidTransition(
                f"Escrow cannot be disputed (status: {escrow.status.value})",
                details={"escrow_id": escrow.escrow_id},
            )
        if not escrow.is_party(caller):
            raise NotAuthorized(details={"escrow_id": escrow.escrow_id, "caller": caller})
        if now is None:
            now = datetime.now(timezone.utc)

        dispute = Dispute(
            dispute_id=f"dispute_{uuid4().hex[:12]}",
            initiator=caller,
            reason=reason,
            evidence=tuple(evidence),
            created_at=now,
        )
        return dataclasses.replace(
            escrow, status=EscrowStatus.DISPUTED, dispute=dispute, updated_at=now,
        )

    def review_dispute(
        self,
        escrow: Escrow,
        caller: str,
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Mark an open dispute as under review."""
        dispute = self._open_dispute_of(escrow)
        if dispute.status != DisputeStatus.OPEN:
            raise InvalidTransition(
                "Dispute is already under review",
                details={"escrow_id": escrow.escrow_id},
            )
        self._require_resolver(escrow, caller)
        if now is None:
            now = datetime.now(timezone.utc)
        return dataclasses.replace(
            escrow,
            dispute=dataclasses.replace(dispute, status=DisputeStatus.UNDER_REVIEW),
            updated_at=now,
        )

    def resolve_dispute(
        self,
        escrow: Escrow,
        caller: str,
        resolution: DisputeResolution,
        now: Optional[datetime] = None,
    ) -> Escrow:
        """Resolve the dispute and split the held amount. DISPUTED → COMPLETED."""
        dispute = self._open_dispute_of(escrow)
        self._require_resolver(escrow, caller)
        if now is None:
            now = datetime.now(timezone.utc)

        client_amount, agent_amount = self.split_amount(escrow.amount, resolution)
        resolved = dataclasses.replace(
            dispute,
            status=DisputeStatus.RESOLVED,
            resolution=resolution,
            resolved_by=caller,
            client_amount=client_amount,
            agent_amount=agent_amount,
            resolved_at=now,
        )
        return dataclasses.replace(
            escrow,
            status=EscrowStatus.COMPLETED,
            completed_at=now,
            dispute=resolved,
            updated_at=now,
        )

    @staticmethod
    def split_amount(amount: int, resolution: DisputeResolution) -> tuple[int, int]:
        """Return (client_amount, agent_amount). The odd unit of a split goes to the client."""
        if resolution == DisputeResolution.CLIENT_FAVOR:
            return amount, 0
        if resolution == DisputeResolution.AGENT_FAVOR:
            return 0, amount
        agent_amount = amount // 2
        return amount - agent_amount, agent_amount

    # ------------------------------------------------------------------
    # Guards and queries
    # ------------------------------------------------------------------

    @staticmethod
    def can_release(escrow: Escrow) -> bool:
        return escrow.can_release

    @staticmethod
    def can_dispute(escrow: Escrow) -> bool:
        return escrow.can_dispute

    @staticmethod
    def can_cancel(escrow: Escrow) -> bool:
        return escrow.can_cancel

    @staticmethod
    def settlement(escrow: Escrow) -> Optional[EscrowSettlement]:
        """Final payout for a settled escrow, or None while funds are still held."""
        if escrow.status == EscrowStatus.RELEASED:
            return EscrowSettlement(client_amount=0, agent_amount=escrow.amount)
        if escrow.status == EscrowStatus.CANCELLED:
            return EscrowSettlement(client_amount=escrow.amount, agent_amount=0)
        dispute = escrow.dispute
        if dispute is not None and dispute.status == DisputeStatus.RESOLVED:
            return EscrowSettlement(dispute.client_amount, dispute.agent_amount)
        return None

    @staticmethod
    def is_overdue(escrow: Escrow, now: datetime) -> bool:
        if escrow.deadline is None:
            return False
        if escrow.status in (EscrowStatus.RELEASED, EscrowStatus.CANCELLED):
            return False
        return now > escrow.deadline

    @staticmethod
    def time_until_deadline(escrow: Escrow, now: datetime) -> timedelta:
        if escrow.deadline is None or now >= escrow.deadline:
            return timedelta(0)
        return escrow.deadline - now

    @staticmethod
    def duration(escrow: Escrow, now: datetime) -> timedelta:
        """Time from creation to release, cancellation, or ``now``."""
        end = escrow.released_at or escrow.canceled_at or now
        return end - escrow.created_at

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _require(escrow: Escrow, target: EscrowStatus) -> None:
        if target not in ESCROW_TRANSITIONS[escrow.status]:
            raise InvalidTransition(
                f"Illegal escrow transition: {escrow.status.value} → {target.value}",
                details={"escrow_id": escrow.escrow_id},
            )

    @staticmethod
    def _require_client(escrow: Escrow, caller: str) -> None:
        if caller != escrow.client:
            raise NotAuthorized(details={"escrow_id": escrow.escrow_id, "caller": caller})

    @staticmethod
    def _require_agent(escrow: Escrow, caller: str) -> None:
        if caller != escrow.agent:
            raise NotAuthorized(details={"escrow_id": escrow.escrow_id, "caller": caller})

    @staticmethod
    def _require_resolver(escrow: Escrow, caller: str) -> None:
        # Without a mediator the parties settle between themselves
        if escrow.mediator is not None:
            allowed = caller == escrow.mediator
        else:
            allowed = escrow.is_party(caller)
        if not allowed:
            raise NotAuthorized(details={"escrow_id": escrow.escrow_id, "caller": caller})

    @staticmethod
    def _open_dispute_of(escrow: Escrow) -> Dispute:
        if escrow.dispute is None:
            raise NoDispute(details={"escrow_id": escrow.escrow_id})
        if not escrow.dispute.is_open:
            raise DisputeAlreadyResolved(details={"escrow_id": escrow.escrow_id})
        return escrow.dispute
