"""Escrow and dispute models.

Amounts are base units of the escrow's token. The escrow lifecycle is a
strict state machine (no skipped states, no regressions).

State machine:
    CREATED → FUNDED → IN_PROGRESS → COMPLETED → RELEASED
    FUNDED → COMPLETED
    FUNDED | COMPLETED → DISPUTED → COMPLETED   (dispute resolved)
    CREATED | FUNDED → CANCELLED

Invariants:
- At most one dispute per escrow.
- A resolved dispute splits exactly the escrowed amount:
  client_amount + agent_amount == amount.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from ghostspeak.models.tokens import PaymentToken


class EscrowStatus(str, enum.Enum):
    """Lifecycle state of an escrow."""
    CREATED = "created"
    FUNDED = "funded"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RELEASED = "released"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


ESCROW_TRANSITIONS: Dict[EscrowStatus, frozenset] = {
    EscrowStatus.CREATED: frozenset({
        EscrowStatus.FUNDED,
        EscrowStatus.CANCELLED,
    }),
    EscrowStatus.FUNDED: frozenset({
        EscrowStatus.IN_PROGRESS,
        EscrowStatus.COMPLETED,
        EscrowStatus.DISPUTED,
        EscrowStatus.CANCELLED,
    }),
    EscrowStatus.IN_PROGRESS: frozenset({EscrowStatus.COMPLETED}),
    EscrowStatus.COMPLETED: frozenset({
        EscrowStatus.RELEASED,
        EscrowStatus.DISPUTED,
    }),
    EscrowStatus.DISPUTED: frozenset({EscrowStatus.COMPLETED}),
    EscrowStatus.RELEASED: frozenset(),
    EscrowStatus.CANCELLED: frozenset(),
}


class DisputeStatus(str, enum.Enum):
    """Lifecycle state of a dispute."""
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"


class DisputeResolution(str, enum.Enum):
    """How a disputed amount is divided."""
    CLIENT_FAVOR = "client_favor"
    AGENT_FAVOR = "agent_favor"
    SPLIT = "split"


@dataclass(frozen=True)
class Dispute:
    """A dispute attached to an escrow."""
    dispute_id: str
    initiator: str
    reason: str
    evidence: tuple[str, ...]
    created_at: datetime
    status: DisputeStatus = DisputeStatus.OPEN
    resolution: Optional[DisputeResolution] = None
    resolved_by: Optional[str] = None
    client_amount: int = 0
    agent_amount: int = 0
    resolved_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status in (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)


@dataclass(frozen=True)
class Escrow:
    """A two-party payment holding, with an optional mediator."""
    escrow_id: str
    client: str
    agent: str
    amount: int
    token: PaymentToken
    token_mint: str
    token_decimals: int
    description: str
    created_at: datetime
    status: EscrowStatus = EscrowStatus.CREATED
    job_id: Optional[str] = None
    deadline: Optional[datetime] = None
    milestones: tuple[str, ...] = ()
    mediator: Optional[str] = None
    funded_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    dispute: Optional[Dispute] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in (EscrowStatus.FUNDED, EscrowStatus.COMPLETED)

    @property
    def can_release(self) -> bool:
        return self.status == EscrowStatus.COMPLETED and self.dispute is None

    @property
    def can_dispute(self) -> bool:
        return (
            self.status in (EscrowStatus.FUNDED, EscrowStatus.COMPLETED)
            and self.dispute is None
        )

    @property
    def can_cancel(self) -> bool:
        return self.status in (EscrowStatus.CREATED, EscrowStatus.FUNDED)

    def is_party(self, address: str) -> bool:
        return address in (self.client, self.agent)


@dataclass(frozen=True)
class EscrowSettlement:
    """Final payout of an escrow to each party."""
    client_amount: int
    agent_amount: int

    @property
    def total(self) -> int:
        return self.client_amount + self.agent_amount
