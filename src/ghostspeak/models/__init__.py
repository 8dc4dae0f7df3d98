"""Core data models for ghostspeak."""

from ghostspeak.models.tokens import PaymentToken, TokenMetadata
from ghostspeak.models.reputation import (
    ReputationRecord,
    ReputationTag,
    ReputationTier,
    ScoreInputs,
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
from ghostspeak.models.escrow import (
    Dispute,
    DisputeResolution,
    DisputeStatus,
    Escrow,
    EscrowSettlement,
    EscrowStatus,
)
from ghostspeak.models.governance import (
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

__all__ = [
    "PaymentToken",
    "TokenMetadata",
    "ReputationRecord",
    "ReputationTag",
    "ReputationTier",
    "ScoreInputs",
    "LockPeriod",
    "StakeSettlement",
    "StakingPosition",
    "StakingStats",
    "StakingStatus",
    "StakingTier",
    "TierBenefits",
    "Dispute",
    "DisputeResolution",
    "DisputeStatus",
    "Escrow",
    "EscrowSettlement",
    "EscrowStatus",
    "MultisigWallet",
    "Permission",
    "Proposal",
    "ProposalStatus",
    "ProposalType",
    "Role",
    "RoleAssignment",
    "Vote",
    "VoteChoice",
]
