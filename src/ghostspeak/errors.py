"""Failure taxonomy shared by every engine.

Engines raise; they never log and never swallow. Every failure is a typed,
recoverable error that the orchestration layer turns into a ServiceResult.
An engine raising leaves the caller's prior state untouched because engines
only ever return new record values.

Categories:
- validation:      malformed or out-of-range input, rejected before any state read.
- state_conflict:  the operation is illegal for the record's current status.
- not_found:       the referenced entity is absent.
- authorization:   the caller lacks the role/permission or is not a party.
- precondition:    a business precondition is unmet (quorum, lock, rewards).
"""

from __future__ import annotations

from typing import Any, Optional


class GhostspeakError(Exception):
    """Base class for all engine failures."""

    category = "error"

    def __init__(self, message: str = "", details: Optional[dict[str, Any]] = None) -> None:
        self.message = message or (self.__doc__ or self.__class__.__name__).strip()
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "category": self.category,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(GhostspeakError, ValueError):
    """Invalid input."""

    category = "validation"


class StateConflictError(GhostspeakError):
    """Operation not allowed in the current state."""

    category = "state_conflict"


class NotFoundError(GhostspeakError, LookupError):
    """Referenced entity not found."""

    category = "not_found"


class AuthorizationError(GhostspeakError):
    """Not authorized to perform this action."""

    category = "authorization"


class PreconditionError(GhostspeakError):
    """Precondition not satisfied."""

    category = "precondition"


class RecordNotFound(NotFoundError):
    """Record not found."""


class InvalidTransition(StateConflictError):
    """Invalid status transition."""


# ------------------------------------------------------------------
# Staking
# ------------------------------------------------------------------

class AlreadyStaking(StateConflictError):
    """Already staking."""


class NotStaking(StateConflictError):
    """Not staking."""


class StillLocked(PreconditionError):
    """Staking position is still locked."""


class NoRewardsToClaim(PreconditionError):
    """No rewards to claim."""


# ------------------------------------------------------------------
# Escrow
# ------------------------------------------------------------------

class EscrowAlreadyFunded(StateConflictError):
    """Escrow is already funded."""


class EscrowNotReleasable(StateConflictError):
    """Escrow cannot be released."""


class DisputeAlreadyOpen(StateConflictError):
    """Escrow already has a dispute."""


class DisputeAlreadyResolved(StateConflictError):
    """Dispute already resolved."""


class NoDispute(NotFoundError):
    """No dispute found for escrow."""


class NotAuthorized(AuthorizationError):
    """Not authorized to perform this action."""


# ------------------------------------------------------------------
# Governance
# ------------------------------------------------------------------

class VotingNotStarted(StateConflictError):
    """Voting period has not started."""


class VotingClosed(StateConflictError):
    """Voting period has ended."""


class VotingStillOpen(StateConflictError):
    """Voting period has not ended yet."""


class AlreadyVoted(StateConflictError):
    """Already voted on this proposal."""


class ProposalNotPassed(StateConflictError):
    """Proposal must be in passed status."""


class QuorumNotReached(PreconditionError):
    """Quorum not reached."""


class ProposalNotApproved(PreconditionError):
    """Proposal did not reach the approval threshold."""


class PermissionDenied(AuthorizationError):
    """Permission denied."""


class CannotRevokeOwnRole(AuthorizationError):
    """Cannot revoke your own role."""


class RoleAlreadyAssigned(StateConflictError):
    """Role already assigned."""


class RoleNotFound(NotFoundError):
    """Role assignment not found."""
