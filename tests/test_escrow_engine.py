"""Tests for the escrow engine — lifecycle guards, disputes and settlement."""

import dataclasses
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

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
from ghostspeak.escrow.engine import EscrowEngine
from ghostspeak.models.escrow import (
    DisputeResolution,
    DisputeStatus,
    Escrow,
    EscrowStatus,
)
from ghostspeak.models.tokens import PaymentToken, TokenMetadata
from ghostspeak.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

CLIENT = "client_1"
AGENT = "agent_1"
MEDIATOR = "mediator_1"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def usdc(resolver: PolicyResolver) -> TokenMetadata:
    return resolver.token_metadata(PaymentToken.USDC, "devnet")


@pytest.fixture
def engine(resolver: PolicyResolver) -> EscrowEngine:
    return EscrowEngine(resolver)


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _create(engine: EscrowEngine, usdc: TokenMetadata, **kwargs) -> Escrow:
    params = dict(
        client=CLIENT,
        agent=AGENT,
        amount=1_000_000,
        token=usdc,
        description="Translate the onboarding guide",
        now=_now(),
    )
    params.update(kwargs)
    return engine.create(**params)


def _funded(engine: EscrowEngine, usdc: TokenMetadata, **kwargs) -> Escrow:
    return engine.fund(_create(engine, usdc, **kwargs), CLIENT, now=_now())


class TestCreate:
    def test_creates_in_created_state(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _create(engine, usdc, job_id="job_7", milestones=["draft", "final"])
        assert escrow.status == EscrowStatus.CREATED
        assert escrow.escrow_id.startswith("escrow_")
        assert escrow.token == PaymentToken.USDC
        assert escrow.token_mint == usdc.mint
        assert escrow.token_decimals == 6
        assert escrow.milestones == ("draft", "final")
        assert escrow.created_at == _now()
        assert escrow.dispute is None

    def test_explicit_id(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        assert _create(engine, usdc, escrow_id="escrow_fixed").escrow_id == "escrow_fixed"

    def test_minimum_amount(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        assert _create(engine, usdc, amount=1_000).amount == 1_000
        with pytest.raises(ValidationError, match="Minimum escrow amount"):
            _create(engine, usdc, amount=999)

    def test_description_bounds(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(ValidationError, match="Description is required"):
            _create(engine, usdc, description="")
        assert len(_create(engine, usdc, description="x" * 500).description) == 500
        with pytest.raises(ValidationError, match="at most 500"):
            _create(engine, usdc, description="x" * 501)

    def test_deadline_must_be_future(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(ValidationError, match="Deadline"):
            _create(engine, usdc, deadline=_now())

    def test_naive_deadline_rejected(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(ValidationError, match="timezone-aware"):
            _create(engine, usdc, deadline=datetime(2099, 1, 1))

    def test_parties_required_and_distinct(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(ValidationError):
            _create(engine, usdc, agent="")
        with pytest.raises(ValidationError):
            _create(engine, usdc, client="")
        with pytest.raises(ValidationError, match="differ"):
            _create(engine, usdc, agent=CLIENT)

    def test_mediator_cannot_be_party(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(ValidationError, match="Mediator"):
            _create(engine, usdc, mediator=AGENT)


class TestFunding:
    def test_client_funds(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc)
        assert escrow.status == EscrowStatus.FUNDED
        assert escrow.funded_at == _now()
        assert escrow.is_active

    def test_only_client_funds(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(NotAuthorized):
            engine.fund(_create(engine, usdc), AGENT, now=_now())

    def test_fund_twice(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc)
        with pytest.raises(EscrowAlreadyFunded):
            engine.fund(escrow, CLIENT, now=_now())

    def test_state_checked_before_caller(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc)
        with pytest.raises(EscrowAlreadyFunded):
            engine.fund(escrow, "stranger", now=_now())

    def test_fund_cancelled(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.cancel(_create(engine, usdc), CLIENT, now=_now())
        with pytest.raises(InvalidTransition):
            engine.fund(escrow, CLIENT, now=_now())


class TestHappyPath:
    def test_full_lifecycle_pays_agent(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc)
        escrow = engine.start_work(escrow, AGENT, now=_now())
        assert escrow.status == EscrowStatus.IN_PROGRESS
        escrow = engine.mark_completed(escrow, AGENT, now=_now() + timedelta(hours=2))
        assert escrow.status == EscrowStatus.COMPLETED
        assert engine.can_release(escrow)
        escrow = engine.release(escrow, CLIENT, now=_now() + timedelta(hours=3))
        assert escrow.status == EscrowStatus.RELEASED
        settlement = engine.settlement(escrow)
        assert settlement.agent_amount == 1_000_000
        assert settlement.client_amount == 0
        assert engine.duration(escrow, _now() + timedelta(days=9)) == timedelta(hours=3)

    def test_complete_without_start(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.mark_completed(_funded(engine, usdc), AGENT, now=_now())
        assert escrow.status == EscrowStatus.COMPLETED

    def test_only_agent_starts_and_completes(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc)
        with pytest.raises(NotAuthorized):
            engine.start_work(escrow, CLIENT, now=_now())
        with pytest.raises(NotAuthorized):
            engine.mark_completed(escrow, CLIENT, now=_now())

    def test_start_before_funding(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(InvalidTransition):
            engine.start_work(_create(engine, usdc), AGENT, now=_now())

    def test_release_before_completion(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(EscrowNotReleasable):
            engine.release(_funded(engine, usdc), CLIENT, now=_now())

    def test_only_client_releases(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.mark_completed(_funded(engine, usdc), AGENT, now=_now())
        with pytest.raises(NotAuthorized):
            engine.release(escrow, AGENT, now=_now())

    def test_failed_guard_leaves_input_untouched(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc)
        snapshot = dataclasses.replace(escrow)
        with pytest.raises(EscrowNotReleasable):
            engine.release(escrow, CLIENT, now=_now())
        assert escrow == snapshot


class TestCancel:
    @pytest.mark.parametrize("fund_first", [False, True])
    def test_client_cancels_and_is_refunded(
        self, engine: EscrowEngine, usdc: TokenMetadata, fund_first: bool,
    ) -> None:
        escrow = _funded(engine, usdc) if fund_first else _create(engine, usdc)
        cancelled = engine.cancel(escrow, CLIENT, now=_now())
        assert cancelled.status == EscrowStatus.CANCELLED
        assert cancelled.canceled_at == _now()
        settlement = engine.settlement(cancelled)
        assert (settlement.client_amount, settlement.agent_amount) == (1_000_000, 0)

    def test_agent_cannot_cancel(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(NotAuthorized):
            engine.cancel(_create(engine, usdc), AGENT, now=_now())

    def test_cannot_cancel_completed(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.mark_completed(_funded(engine, usdc), AGENT, now=_now())
        with pytest.raises(InvalidTransition):
            engine.cancel(escrow, CLIENT, now=_now())

    def test_no_settlement_while_held(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        assert engine.settlement(_funded(engine, usdc)) is None


class TestDisputes:
    def test_either_party_opens(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.open_dispute(
            _funded(engine, usdc), AGENT, "Client unresponsive", evidence=["ipfs://log"], now=_now(),
        )
        assert escrow.status == EscrowStatus.DISPUTED
        assert escrow.dispute.initiator == AGENT
        assert escrow.dispute.status == DisputeStatus.OPEN
        assert escrow.dispute.evidence == ("ipfs://log",)
        assert not escrow.can_release

    def test_dispute_after_completion(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.mark_completed(_funded(engine, usdc), AGENT, now=_now())
        disputed = engine.open_dispute(escrow, CLIENT, "Work incomplete", now=_now())
        assert disputed.status == EscrowStatus.DISPUTED

    def test_second_dispute(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.open_dispute(_funded(engine, usdc), CLIENT, "Late", now=_now())
        with pytest.raises(DisputeAlreadyOpen):
            engine.open_dispute(escrow, AGENT, "Also late", now=_now())

    def test_dispute_before_funding(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(InvalidTransition):
            engine.open_dispute(_create(engine, usdc), CLIENT, "Nothing to hold", now=_now())

    def test_outsider_cannot_dispute(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(NotAuthorized):
            engine.open_dispute(_funded(engine, usdc), "stranger", "Meddling", now=_now())

    def test_reason_bounds(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc)
        with pytest.raises(ValidationError, match="required"):
            engine.open_dispute(escrow, CLIENT, "", now=_now())
        with pytest.raises(ValidationError, match="1000"):
            engine.open_dispute(escrow, CLIENT, "r" * 1001, now=_now())

    def test_cannot_complete_while_disputed(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.open_dispute(_funded(engine, usdc), CLIENT, "Late", now=_now())
        with pytest.raises(InvalidTransition):
            engine.mark_completed(escrow, AGENT, now=_now())


class TestResolution:
    def test_split_halves_the_amount(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.open_dispute(_funded(engine, usdc), CLIENT, "Partial", now=_now())
        resolved = engine.resolve_dispute(escrow, CLIENT, DisputeResolution.SPLIT, now=_now())
        assert resolved.status == EscrowStatus.COMPLETED
        assert resolved.dispute.status == DisputeStatus.RESOLVED
        assert resolved.dispute.client_amount == 500_000
        assert resolved.dispute.agent_amount == 500_000
        assert resolved.dispute.resolved_by == CLIENT
        assert not resolved.can_release
        settlement = engine.settlement(resolved)
        assert settlement.total == resolved.amount

    def test_odd_unit_goes_to_client(self) -> None:
        assert EscrowEngine.split_amount(1_000_001, DisputeResolution.SPLIT) == (500_001, 500_000)

    @pytest.mark.parametrize("resolution,expected", [
        (DisputeResolution.CLIENT_FAVOR, (1_000_000, 0)),
        (DisputeResolution.AGENT_FAVOR, (0, 1_000_000)),
        (DisputeResolution.SPLIT, (500_000, 500_000)),
    ])
    def test_split_conserves_amount(self, resolution: DisputeResolution, expected: tuple) -> None:
        client, agent = EscrowEngine.split_amount(1_000_000, resolution)
        assert (client, agent) == expected
        assert client + agent == 1_000_000

    def test_resolve_without_dispute(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        with pytest.raises(NoDispute):
            engine.resolve_dispute(_funded(engine, usdc), CLIENT, DisputeResolution.SPLIT, now=_now())

    def test_resolve_twice(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.open_dispute(_funded(engine, usdc), CLIENT, "Late", now=_now())
        resolved = engine.resolve_dispute(escrow, CLIENT, DisputeResolution.CLIENT_FAVOR, now=_now())
        with pytest.raises(DisputeAlreadyResolved):
            engine.resolve_dispute(resolved, CLIENT, DisputeResolution.AGENT_FAVOR, now=_now())

    def test_mediator_only_resolver(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc, mediator=MEDIATOR)
        escrow = engine.open_dispute(escrow, CLIENT, "Late", now=_now())
        with pytest.raises(NotAuthorized):
            engine.resolve_dispute(escrow, CLIENT, DisputeResolution.CLIENT_FAVOR, now=_now())
        reviewed = engine.review_dispute(escrow, MEDIATOR, now=_now())
        assert reviewed.dispute.status == DisputeStatus.UNDER_REVIEW
        resolved = engine.resolve_dispute(reviewed, MEDIATOR, DisputeResolution.AGENT_FAVOR, now=_now())
        assert engine.settlement(resolved).agent_amount == 1_000_000

    def test_outsider_cannot_settle_without_mediator(
        self, engine: EscrowEngine, usdc: TokenMetadata,
    ) -> None:
        escrow = engine.open_dispute(_funded(engine, usdc), CLIENT, "Late", now=_now())
        with pytest.raises(NotAuthorized):
            engine.review_dispute(escrow, "mallory", now=_now())
        with pytest.raises(NotAuthorized):
            engine.resolve_dispute(escrow, "mallory", DisputeResolution.AGENT_FAVOR, now=_now())
        resolved = engine.resolve_dispute(escrow, AGENT, DisputeResolution.CLIENT_FAVOR, now=_now())
        assert resolved.dispute.resolved_by == AGENT

    def test_review_twice(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = engine.open_dispute(_funded(engine, usdc), CLIENT, "Late", now=_now())
        reviewed = engine.review_dispute(escrow, CLIENT, now=_now())
        with pytest.raises(InvalidTransition):
            engine.review_dispute(reviewed, CLIENT, now=_now())


class TestDeadlines:
    def test_overdue_and_remaining(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        deadline = _now() + timedelta(days=2)
        escrow = _funded(engine, usdc, deadline=deadline)
        assert engine.time_until_deadline(escrow, _now()) == timedelta(days=2)
        assert not engine.is_overdue(escrow, deadline)
        assert engine.is_overdue(escrow, deadline + timedelta(seconds=1))
        assert engine.time_until_deadline(escrow, deadline + timedelta(days=1)) == timedelta(0)

    def test_settled_escrow_never_overdue(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        deadline = _now() + timedelta(days=2)
        escrow = engine.cancel(_create(engine, usdc, deadline=deadline), CLIENT, now=_now())
        assert not engine.is_overdue(escrow, deadline + timedelta(days=30))

    def test_no_deadline(self, engine: EscrowEngine, usdc: TokenMetadata) -> None:
        escrow = _funded(engine, usdc)
        assert not engine.is_overdue(escrow, _now() + timedelta(days=3650))
        assert engine.time_until_deadline(escrow, _now()) == timedelta(0)
