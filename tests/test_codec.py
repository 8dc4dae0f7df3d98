"""Tests for the durable record schema — records survive a JSON store."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ghostspeak.escrow.engine import EscrowEngine
from ghostspeak.governance.engine import GovernanceEngine
from ghostspeak.models.escrow import DisputeResolution
from ghostspeak.models.governance import ProposalType, Role, VoteChoice
from ghostspeak.models.staking import LockPeriod
from ghostspeak.models.tokens import PaymentToken
from ghostspeak.persistence import codec
from ghostspeak.policy.resolver import PolicyResolver
from ghostspeak.reputation.engine import ReputationEngine
from ghostspeak.staking.engine import StakingEngine


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _through_json(data: dict) -> dict:
    return json.loads(json.dumps(data))


class TestRecordSchema:
    def test_reputation_tags_and_timestamps(self, resolver: PolicyResolver) -> None:
        engine = ReputationEngine(resolver)
        record = engine.apply_admin_verification(engine.new_record("agent_1", _now()), _now())
        data = _through_json(codec.reputation_to_dict(record))
        assert data["tags"] == ["newcomer", "verified"]
        assert data["verified_at"] == "2026-02-16T12:00:00+00:00"
        assert codec.reputation_from_dict(data) == record

    def test_staking_principal_tokens_stay_exact(self, resolver: PolicyResolver) -> None:
        ghost = resolver.token_metadata(PaymentToken.GHOST, "devnet")
        engine = StakingEngine(resolver, ghost)
        position = engine.stake("s1", 1_234_567_891, LockPeriod.DAYS_90, now=_now())
        position, _ = engine.claim_rewards(position, _now() + timedelta(days=91))
        data = _through_json(codec.staking_to_dict(position))
        assert data["principal_tokens"] == "1234.567891"
        assert codec.staking_from_dict(data) == position

    def test_escrow_with_resolved_dispute(self, resolver: PolicyResolver) -> None:
        usdc = resolver.token_metadata(PaymentToken.USDC, "devnet")
        engine = EscrowEngine(resolver)
        escrow = engine.create(
            "client_1", "agent_1", 1_000_001, usdc, "Audit",
            deadline=_now() + timedelta(days=3), milestones=["report"], now=_now(),
        )
        escrow = engine.fund(escrow, "client_1", _now())
        escrow = engine.open_dispute(escrow, "client_1", "Late", ["ipfs://a"], _now())
        escrow = engine.resolve_dispute(escrow, "agent_1", DisputeResolution.SPLIT, _now())
        data = _through_json(codec.escrow_to_dict(escrow))
        assert data["dispute"]["resolution"] == "split"
        assert data["dispute"]["client_amount"] == 500_001
        assert codec.escrow_from_dict(data) == escrow

    def test_governance_records(self, resolver: PolicyResolver) -> None:
        engine = GovernanceEngine(resolver)
        wallet = engine.record_proposal(engine.create_multisig(["a", "b"], 2, now=_now()))
        proposal = engine.create_proposal(
            "a", ProposalType.TREASURY_SPEND, "Fund audit", "Pay for the audit", 86_400,
            actions='{"transfer": 10}', multisig_address=wallet.address, now=_now(),
        )
        proposal, vote = engine.vote(
            proposal, "b", VoteChoice.AGAINST, 7, now=proposal.voting_starts_at,
        )
        role = engine.grant_role(
            "a", Role.ADMIN, "b", Role.VERIFIER,
            expires_at=_now() + timedelta(days=1), now=_now(),
        )
        assert codec.multisig_from_dict(_through_json(codec.multisig_to_dict(wallet))) == wallet
        assert codec.proposal_from_dict(_through_json(codec.proposal_to_dict(proposal))) == proposal
        assert codec.vote_from_dict(_through_json(codec.vote_to_dict(vote))) == vote
        assert codec.role_from_dict(_through_json(codec.role_to_dict(role))) == role
