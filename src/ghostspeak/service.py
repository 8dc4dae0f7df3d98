"""Ghostspeak service — orchestration facade over the four rule engines.

This is the primary interface for programmatic access to ghostspeak.
It wires the pure engines to storage and audit:
- Reputation (job outcomes, integration events, admin verification)
- Staking (stake, accrual, claims, unstake, global stats)
- Escrow (create, fund, work, release, cancel, disputes)
- Governance (multisig, proposals, voting, execution, roles)

Every operation returns a ServiceResult. Engine failures are typed
(GhostspeakError) and surface as ``success=False`` with the failure
category in ``data``; the caller decides whether to retry, prompt or abort.

Mutations are serialized per logical key (one in-flight mutation per
subject, staker, escrow, proposal or role). Each accepted mutation is
appended to the event log before the record is written, so no record
change exists without an audit entry. Wall-clock reads happen only here.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional, Sequence

from ghostspeak.errors import (
    GhostspeakError,
    NotStaking,
    RecordNotFound,
)
from ghostspeak.escrow.engine import EscrowEngine
from ghostspeak.governance.engine import GovernanceEngine
from ghostspeak.models.escrow import DisputeResolution, Escrow, EscrowStatus
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
from ghostspeak.models.reputation import ReputationRecord
from ghostspeak.models.staking import LockPeriod, StakingPosition, StakingStats
from ghostspeak.models.tokens import PaymentToken, TokenMetadata
from ghostspeak.persistence import codec
from ghostspeak.persistence.event_log import EventKind, EventLog, EventRecord
from ghostspeak.policy.resolver import PolicyResolver
from ghostspeak.ports import AuthError, KeyValueStore, Signer
from ghostspeak.reputation.engine import ReputationEngine
from ghostspeak.staking.engine import StakingEngine

logger = logging.getLogger(__name__)

_STATS_CACHE_KEY = "cache:staking_stats"


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class GhostspeakService:
    """Unified facade over reputation, staking, escrow and governance.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = GhostspeakService(resolver, MemoryStore())

        service.stake("staker_1", 5_000_000_000, LockPeriod.NONE)
        result = service.create_escrow("client_1", "agent_1", 1_000_000,
                                       PaymentToken.USDC, "Translate docs")
        escrow_id = result.data["escrow"]["escrow_id"]
        service.fund_escrow(escrow_id, "client_1")

    Persistence:
        service = GhostspeakService(resolver, JsonFileStore(path),
                                    event_log=EventLog(log_path))
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        store: KeyValueStore,
        network: Optional[str] = None,
        event_log: Optional[EventLog] = None,
        signer: Optional[Signer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._network = network or resolver.default_network()
        self._tokens = resolver.token_table(self._network)
        self._event_log = event_log
        self._signer = signer
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._reputation = ReputationEngine(resolver)
        self._staking = StakingEngine(
            resolver, self.token_metadata(resolver.staking_token()),
        )
        self._escrow = EscrowEngine(resolver)
        self._governance = GovernanceEngine(resolver)

        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()
        self._audit_guard = threading.Lock()
        # Initialize counter from persisted log to avoid ID collision on restart
        self._event_counter = event_log.count if event_log is not None else 0

    @property
    def network(self) -> str:
        return self._network

    def token_metadata(self, token: PaymentToken) -> TokenMetadata:
        metadata = self._tokens.get(token)
        if metadata is None:
            raise ValueError(f"Token {token.value} not configured on {self._network}")
        return metadata

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    def unlock_wallet(self, wallet_id: str, passphrase: str) -> ServiceResult:
        """Unlock a wallet through the configured Signer."""
        if self._signer is None:
            return ServiceResult(success=False, errors=["No signer configured"])
        try:
            account = self._signer.sign(wallet_id, passphrase)
        except AuthError as e:
            logger.warning("wallet unlock rejected: %s", wallet_id)
            return ServiceResult(
                success=False, errors=[str(e)], data={"category": "authorization"},
            )
        return ServiceResult(
            success=True,
            data={"wallet_id": wallet_id, "address": getattr(account, "address", None)},
        )

    # ------------------------------------------------------------------
    # Reputation
    # ------------------------------------------------------------------

    def get_reputation(self, subject: str) -> Optional[ReputationRecord]:
        data = self._store.get(f"reputation:{subject}")
        return codec.reputation_from_dict(data) if data else None

    def record_job_completion(
        self,
        subject: str,
        rating: float,
        amount: int,
        response_time_seconds: int,
        completion_time_seconds: int,
    ) -> ServiceResult:
        """Apply a completed job. ``amount`` is in base units of the earnings token."""
        key = f"reputation:{subject}"
        with self._lock(key):
            now = self._clock()
            try:
                record = self.get_reputation(subject) or self._reputation.new_record(subject, now)
                record = self._reputation.apply_job_completion(
                    record, rating, amount,
                    response_time_seconds, completion_time_seconds, now,
                )
            except GhostspeakError as e:
                return self._reject("record_job_completion", e)
            return self._commit(
                EventKind.JOB_COMPLETED, subject, key,
                {key: codec.reputation_to_dict(record)},
                {"rating": rating, "amount": amount, "score": record.score},
                {"reputation": codec.reputation_to_dict(record)},
            )

    def record_job_failure(self, subject: str) -> ServiceResult:
        key = f"reputation:{subject}"
        with self._lock(key):
            now = self._clock()
            try:
                record = self.get_reputation(subject) or self._reputation.new_record(subject, now)
                record = self._reputation.apply_job_failure(record, now)
            except GhostspeakError as e:
                return self._reject("record_job_failure", e)
            return self._commit(
                EventKind.JOB_FAILED, subject, key,
                {key: codec.reputation_to_dict(record)},
                {"score": record.score},
                {"reputation": codec.reputation_to_dict(record)},
            )

    def record_integration_event(self, subject: str, amount: int = 0) -> ServiceResult:
        """Apply a third-party payment integration event (e.g. a facilitator webhook)."""
        key = f"reputation:{subject}"
        with self._lock(key):
            now = self._clock()
            try:
                record = self.get_reputation(subject) or self._reputation.new_record(subject, now)
                record = self._reputation.apply_integration_event(record, amount, now)
            except GhostspeakError as e:
                return self._reject("record_integration_event", e)
            return self._commit(
                EventKind.INTEGRATION_RECORDED, subject, key,
                {key: codec.reputation_to_dict(record)},
                {"amount": amount, "score": record.score},
                {"reputation": codec.reputation_to_dict(record)},
            )

    def verify_agent(self, caller: str, subject: str) -> ServiceResult:
        """Admin-verify an agent. Requires the verify_agent permission."""
        key = f"reputation:{subject}"
        with self._lock(key):
            now = self._clock()
            try:
                self._governance.require_permission(
                    self._role_of(caller, now), Permission.VERIFY_AGENT, caller,
                )
                record = self.get_reputation(subject)
                if record is None:
                    raise RecordNotFound(details={"key": key})
                record = self._reputation.apply_admin_verification(record, now)
            except GhostspeakError as e:
                return self._reject("verify_agent", e)
            return self._commit(
                EventKind.AGENT_VERIFIED, caller, key,
                {key: codec.reputation_to_dict(record)},
                {"subject": subject, "score": record.score},
                {"reputation": codec.reputation_to_dict(record)},
            )

    def leaderboard(self, limit: int = 10) -> list[ReputationRecord]:
        records = [
            codec.reputation_from_dict(self._store.get(k))
            for k in self._store.keys_by_prefix("reputation:")
        ]
        return self._reputation.leaderboard(records, limit)

    # ------------------------------------------------------------------
    # Staking
    # ------------------------------------------------------------------

    def get_staking_position(self, staker: str) -> Optional[StakingPosition]:
        data = self._store.get(f"staking:{staker}")
        return codec.staking_from_dict(data) if data else None

    def pending_rewards(self, staker: str) -> int:
        position = self.get_staking_position(staker)
        if position is None:
            return 0
        return self._staking.pending_rewards(position, self._clock())

    def stake(
        self,
        staker: str,
        amount: int,
        lock_period: LockPeriod = LockPeriod.NONE,
    ) -> ServiceResult:
        """Open a position. ``amount`` is in base units of the staking token."""
        key = f"staking:{staker}"
        with self._lock(key):
            now = self._clock()
            try:
                position = self._staking.stake(
                    staker, amount, lock_period,
                    existing=self.get_staking_position(staker), now=now,
                )
            except GhostspeakError as e:
                return self._reject("stake", e)
            return self._commit(
                EventKind.STAKED, staker, key,
                {key: codec.staking_to_dict(position)},
                {"amount": amount, "lock_period": lock_period.value, "tier": position.tier.value},
                {"position": codec.staking_to_dict(position)},
                invalidate=(_STATS_CACHE_KEY,),
            )

    def accrue_rewards(self, staker: str) -> ServiceResult:
        key = f"staking:{staker}"
        with self._lock(key):
            now = self._clock()
            try:
                position = self._require_position(staker)
                before = position.total_rewards
                position = self._staking.accrue_rewards(position, now)
            except GhostspeakError as e:
                return self._reject("accrue_rewards", e)
            return self._commit(
                EventKind.REWARDS_ACCRUED, staker, key,
                {key: codec.staking_to_dict(position)},
                {"accrued": position.total_rewards - before},
                {"position": codec.staking_to_dict(position)},
                invalidate=(_STATS_CACHE_KEY,),
            )

    def claim_rewards(self, staker: str) -> ServiceResult:
        key = f"staking:{staker}"
        with self._lock(key):
            now = self._clock()
            try:
                position, amount = self._staking.claim_rewards(
                    self._require_position(staker), now,
                )
            except GhostspeakError as e:
                return self._reject("claim_rewards", e)
            return self._commit(
                EventKind.REWARDS_CLAIMED, staker, key,
                {key: codec.staking_to_dict(position)},
                {"amount": amount},
                {"claimed": amount, "position": codec.staking_to_dict(position)},
                invalidate=(_STATS_CACHE_KEY,),
            )

    def update_apy(self, staker: str, apy: float) -> ServiceResult:
        key = f"staking:{staker}"
        with self._lock(key):
            now = self._clock()
            try:
                position = self._staking.update_apy(self._require_position(staker), apy, now)
            except GhostspeakError as e:
                return self._reject("update_apy", e)
            return self._commit(
                EventKind.APY_UPDATED, staker, key,
                {key: codec.staking_to_dict(position)},
                {"apy": apy},
                {"position": codec.staking_to_dict(position)},
                invalidate=(_STATS_CACHE_KEY,),
            )

    def unstake(self, staker: str) -> ServiceResult:
        key = f"staking:{staker}"
        with self._lock(key):
            now = self._clock()
            try:
                position, settlement = self._staking.unstake(
                    self._require_position(staker), now,
                )
            except GhostspeakError as e:
                return self._reject("unstake", e)
            return self._commit(
                EventKind.UNSTAKED, staker, key,
                {key: codec.staking_to_dict(position)},
                {"principal": settlement.principal, "rewards": settlement.rewards},
                {
                    "principal": settlement.principal,
                    "rewards": settlement.rewards,
                    "total": settlement.total,
                    "position": codec.staking_to_dict(position),
                },
                invalidate=(_STATS_CACHE_KEY,),
            )

    def staking_stats(self) -> StakingStats:
        """Global staking statistics, cached for the configured TTL."""
        cached = self._store.get(_STATS_CACHE_KEY)
        if cached is not None:
            return StakingStats(**cached)
        positions = [
            codec.staking_from_dict(self._store.get(k))
            for k in self._store.keys_by_prefix("staking:")
        ]
        stats = self._staking.summarize(positions)
        self._store.set_with_expiry(
            _STATS_CACHE_KEY,
            {
                "total_staked": stats.total_staked,
                "total_stakers": stats.total_stakers,
                "average_apy": stats.average_apy,
                "total_rewards": stats.total_rewards,
            },
            self._resolver.cache_ttl_seconds("staking_stats"),
        )
        return stats

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    def get_escrow(self, escrow_id: str) -> Optional[Escrow]:
        data = self._store.get(f"escrow:{escrow_id}")
        return codec.escrow_from_dict(data) if data else None

    def list_escrows(
        self,
        address: Optional[str] = None,
        status: Optional[EscrowStatus] = None,
    ) -> list[Escrow]:
        """Escrows where ``address`` is client or agent, optionally filtered by status."""
        result = []
        for key in self._store.keys_by_prefix("escrow:"):
            escrow = codec.escrow_from_dict(self._store.get(key))
            if address is not None and not escrow.is_party(address):
                continue
            if status is not None and escrow.status != status:
                continue
            result.append(escrow)
        return result

    def create_escrow(
        self,
        client: str,
        agent: str,
        amount: int,
        token: PaymentToken,
        description: str,
        job_id: Optional[str] = None,
        deadline: Optional[datetime] = None,
        milestones: Sequence[str] = (),
        mediator: Optional[str] = None,
    ) -> ServiceResult:
        now = self._clock()
        try:
            escrow = self._escrow.create(
                client, agent, amount, self.token_metadata(token), description,
                job_id=job_id, deadline=deadline, milestones=milestones,
                mediator=mediator, now=now,
            )
        except GhostspeakError as e:
            return self._reject("create_escrow", e)
        key = f"escrow:{escrow.escrow_id}"
        with self._lock(key):
            return self._commit(
                EventKind.ESCROW_CREATED, client, key,
                {key: codec.escrow_to_dict(escrow)},
                {"amount": amount, "token": token.value, "agent": agent},
                {"escrow": codec.escrow_to_dict(escrow)},
            )

    def fund_escrow(self, escrow_id: str, caller: str) -> ServiceResult:
        return self._escrow_step(
            "fund_escrow", EventKind.ESCROW_FUNDED, escrow_id, caller,
            lambda e, now: self._escrow.fund(e, caller, now),
        )

    def start_work(self, escrow_id: str, caller: str) -> ServiceResult:
        return self._escrow_step(
            "start_work", EventKind.ESCROW_STARTED, escrow_id, caller,
            lambda e, now: self._escrow.start_work(e, caller, now),
        )

    def mark_completed(self, escrow_id: str, caller: str) -> ServiceResult:
        return self._escrow_step(
            "mark_completed", EventKind.ESCROW_COMPLETED, escrow_id, caller,
            lambda e, now: self._escrow.mark_completed(e, caller, now),
        )

    def release_payment(self, escrow_id: str, caller: str) -> ServiceResult:
        return self._escrow_step(
            "release_payment", EventKind.ESCROW_RELEASED, escrow_id, caller,
            lambda e, now: self._escrow.release(e, caller, now),
        )

    def cancel_escrow(self, escrow_id: str, caller: str) -> ServiceResult:
        return self._escrow_step(
            "cancel_escrow", EventKind.ESCROW_CANCELLED, escrow_id, caller,
            lambda e, now: self._escrow.cancel(e, caller, now),
        )

    def open_dispute(
        self,
        escrow_id: str,
        caller: str,
        reason: str,
        evidence: Sequence[str] = (),
    ) -> ServiceResult:
        return self._escrow_step(
            "open_dispute", EventKind.DISPUTE_OPENED, escrow_id, caller,
            lambda e, now: self._escrow.open_dispute(e, caller, reason, evidence, now),
        )

    def review_dispute(self, escrow_id: str, caller: str) -> ServiceResult:
        return self._escrow_step(
            "review_dispute", EventKind.DISPUTE_REVIEWED, escrow_id, caller,
            lambda e, now: self._escrow.review_dispute(e, caller, now),
        )

    def resolve_dispute(
        self,
        escrow_id: str,
        caller: str,
        resolution: DisputeResolution,
    ) -> ServiceResult:
        return self._escrow_step(
            "resolve_dispute", EventKind.DISPUTE_RESOLVED, escrow_id, caller,
            lambda e, now: self._escrow.resolve_dispute(e, caller, resolution, now),
        )

    def _escrow_step(
        self,
        operation: str,
        kind: EventKind,
        escrow_id: str,
        caller: str,
        step: Callable[[Escrow, datetime], Escrow],
    ) -> ServiceResult:
        key = f"escrow:{escrow_id}"
        with self._lock(key):
            now = self._clock()
            try:
                escrow = self.get_escrow(escrow_id)
                if escrow is None:
                    raise RecordNotFound(details={"key": key})
                escrow = step(escrow, now)
            except GhostspeakError as e:
                return self._reject(operation, e)
            payload: dict[str, Any] = {"status": escrow.status.value}
            settlement = self._escrow.settlement(escrow)
            if settlement is not None:
                payload["client_amount"] = settlement.client_amount
                payload["agent_amount"] = settlement.agent_amount
            return self._commit(
                kind, caller, key,
                {key: codec.escrow_to_dict(escrow)},
                payload,
                {"escrow": codec.escrow_to_dict(escrow)},
            )

    # ------------------------------------------------------------------
    # Governance: multisig and proposals
    # ------------------------------------------------------------------

    def get_multisig(self, address: str) -> Optional[MultisigWallet]:
        data = self._store.get(f"multisig:{address}")
        return codec.multisig_from_dict(data) if data else None

    def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        data = self._store.get(f"proposal:{proposal_id}")
        return codec.proposal_from_dict(data) if data else None

    def get_vote(self, proposal_id: str, voter: str) -> Optional[Vote]:
        data = self._store.get(f"vote:{proposal_id}:{voter}")
        return codec.vote_from_dict(data) if data else None

    def list_proposals(self, status: Optional[ProposalStatus] = None) -> list[Proposal]:
        proposals = [
            codec.proposal_from_dict(self._store.get(k))
            for k in self._store.keys_by_prefix("proposal:")
        ]
        if status is not None:
            proposals = [p for p in proposals if p.status == status]
        return sorted(proposals, key=lambda p: p.created_at)

    def create_multisig(
        self,
        creator: str,
        owners: Sequence[str],
        threshold: int,
    ) -> ServiceResult:
        now = self._clock()
        try:
            wallet = self._governance.create_multisig(owners, threshold, now=now)
        except GhostspeakError as e:
            return self._reject("create_multisig", e)
        key = f"multisig:{wallet.address}"
        with self._lock(key):
            return self._commit(
                EventKind.MULTISIG_CREATED, creator, key,
                {key: codec.multisig_to_dict(wallet)},
                {"owners": list(wallet.owners), "threshold": wallet.threshold},
                {"multisig": codec.multisig_to_dict(wallet)},
            )

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
    ) -> ServiceResult:
        """Create a proposal. Requires the create_proposal permission."""
        now = self._clock()
        try:
            proposal = self._governance.create_proposal(
                proposer, proposal_type, title, description, voting_period_seconds,
                quorum_required=quorum_required, actions=actions,
                multisig_address=multisig_address, now=now,
            )
            self._governance.require_permission(
                self._role_of(proposer, now), Permission.CREATE_PROPOSAL, proposer,
            )
        except GhostspeakError as e:
            return self._reject("create_proposal", e)

        key = f"proposal:{proposal.proposal_id}"
        writes = {key: codec.proposal_to_dict(proposal)}
        with self._lock(key):
            if multisig_address is None:
                return self._commit(
                    EventKind.PROPOSAL_CREATED, proposer, key, writes,
                    {"proposal_type": proposal_type.value, "title": title},
                    {"proposal": codec.proposal_to_dict(proposal)},
                )
            wallet_key = f"multisig:{multisig_address}"
            with self._lock(wallet_key):
                wallet = self.get_multisig(multisig_address)
                if wallet is None:
                    return self._reject(
                        "create_proposal", RecordNotFound(details={"key": wallet_key}),
                    )
                writes[wallet_key] = codec.multisig_to_dict(
                    self._governance.record_proposal(wallet),
                )
                return self._commit(
                    EventKind.PROPOSAL_CREATED, proposer, key, writes,
                    {"proposal_type": proposal_type.value, "title": title,
                     "multisig_address": multisig_address},
                    {"proposal": codec.proposal_to_dict(proposal)},
                )

    def cast_vote(
        self,
        proposal_id: str,
        voter: str,
        choice: VoteChoice,
        weight: int,
    ) -> ServiceResult:
        """Cast a weighted vote. ``weight`` comes from the voter's token holdings."""
        key = f"proposal:{proposal_id}"
        with self._lock(key):
            now = self._clock()
            try:
                self._governance.require_permission(
                    self._role_of(voter, now), Permission.VOTE, voter,
                )
                proposal = self._require_proposal(proposal_id)
                proposal, vote = self._governance.vote(
                    proposal, voter, choice, weight,
                    existing_vote=self.get_vote(proposal_id, voter), now=now,
                )
            except GhostspeakError as e:
                return self._reject("cast_vote", e)
            vote_key = f"vote:{proposal_id}:{voter}"
            return self._commit(
                EventKind.VOTE_CAST, voter, key,
                {key: codec.proposal_to_dict(proposal), vote_key: codec.vote_to_dict(vote)},
                {"choice": choice.value, "weight": weight},
                {"proposal": codec.proposal_to_dict(proposal), "vote": codec.vote_to_dict(vote)},
            )

    def finalize_proposal(self, proposal_id: str) -> ServiceResult:
        key = f"proposal:{proposal_id}"
        with self._lock(key):
            now = self._clock()
            try:
                proposal = self._governance.finalize_proposal(
                    self._require_proposal(proposal_id), now,
                )
            except GhostspeakError as e:
                return self._reject("finalize_proposal", e)
            return self._commit(
                EventKind.PROPOSAL_FINALIZED, "system", key,
                {key: codec.proposal_to_dict(proposal)},
                {"status": proposal.status.value, "total_votes": proposal.total_votes},
                {"proposal": codec.proposal_to_dict(proposal)},
            )

    def execute_proposal(self, proposal_id: str, caller: str) -> ServiceResult:
        """Execute a passed proposal. Requires the execute_proposal permission."""
        key = f"proposal:{proposal_id}"
        with self._lock(key):
            now = self._clock()
            try:
                self._governance.require_permission(
                    self._role_of(caller, now), Permission.EXECUTE_PROPOSAL, caller,
                )
                proposal = self._governance.execute_proposal(
                    self._require_proposal(proposal_id), now,
                )
            except GhostspeakError as e:
                return self._reject("execute_proposal", e)
            writes = {key: codec.proposal_to_dict(proposal)}
            if proposal.multisig_address is None:
                return self._commit(
                    EventKind.PROPOSAL_EXECUTED, caller, key, writes,
                    {"status": proposal.status.value},
                    {"proposal": codec.proposal_to_dict(proposal)},
                )
            wallet_key = f"multisig:{proposal.multisig_address}"
            with self._lock(wallet_key):
                wallet = self.get_multisig(proposal.multisig_address)
                if wallet is not None:
                    writes[wallet_key] = codec.multisig_to_dict(
                        self._governance.record_execution(wallet),
                    )
                return self._commit(
                    EventKind.PROPOSAL_EXECUTED, caller, key, writes,
                    {"status": proposal.status.value},
                    {"proposal": codec.proposal_to_dict(proposal)},
                )

    def cancel_proposal(self, proposal_id: str, caller: str) -> ServiceResult:
        key = f"proposal:{proposal_id}"
        with self._lock(key):
            now = self._clock()
            try:
                proposal = self._governance.cancel_proposal(
                    self._require_proposal(proposal_id), caller,
                    self._role_of(caller, now), now,
                )
            except GhostspeakError as e:
                return self._reject("cancel_proposal", e)
            return self._commit(
                EventKind.PROPOSAL_CANCELED, caller, key,
                {key: codec.proposal_to_dict(proposal)},
                {"status": proposal.status.value},
                {"proposal": codec.proposal_to_dict(proposal)},
            )

    # ------------------------------------------------------------------
    # Governance: roles
    # ------------------------------------------------------------------

    def get_role(self, address: str) -> Role:
        """Effective role of ``address`` right now."""
        return self._role_of(address, self._clock())

    def list_roles(self) -> list[RoleAssignment]:
        return [
            codec.role_from_dict(self._store.get(k))
            for k in self._store.keys_by_prefix("role:")
        ]

    def bootstrap_admin(self, address: str) -> ServiceResult:
        """Seed the first admin of a fresh deployment."""
        key = f"role:{address}:{Role.ADMIN.value}"
        with self._lock("role:*"):
            now = self._clock()
            try:
                assignment = self._governance.bootstrap_admin(
                    address, self.list_roles(), now,
                )
            except GhostspeakError as e:
                return self._reject("bootstrap_admin", e)
            return self._commit(
                EventKind.ROLE_GRANTED, address, key,
                {key: codec.role_to_dict(assignment)},
                {"address": address, "role": Role.ADMIN.value, "bootstrap": True},
                {"assignment": codec.role_to_dict(assignment)},
            )

    def grant_role(
        self,
        granter: str,
        address: str,
        role: Role,
        expires_at: Optional[datetime] = None,
    ) -> ServiceResult:
        key = f"role:{address}:{role.value}"
        with self._lock("role:*"):
            now = self._clock()
            try:
                assignment = self._governance.grant_role(
                    granter, self._role_of(granter, now), address, role,
                    existing=self._get_assignment(key), expires_at=expires_at, now=now,
                )
            except GhostspeakError as e:
                return self._reject("grant_role", e)
            return self._commit(
                EventKind.ROLE_GRANTED, granter, key,
                {key: codec.role_to_dict(assignment)},
                {"address": address, "role": role.value},
                {"assignment": codec.role_to_dict(assignment)},
            )

    def revoke_role(self, revoker: str, address: str, role: Role) -> ServiceResult:
        key = f"role:{address}:{role.value}"
        with self._lock("role:*"):
            now = self._clock()
            try:
                assignment = self._governance.revoke_role(
                    revoker, self._role_of(revoker, now), address, role,
                    existing=self._get_assignment(key), now=now,
                )
            except GhostspeakError as e:
                return self._reject("revoke_role", e)
            return self._commit(
                EventKind.ROLE_REVOKED, revoker, key,
                {key: codec.role_to_dict(assignment)},
                {"address": address, "role": role.value},
                {"assignment": codec.role_to_dict(assignment)},
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _lock(self, key: str) -> Iterator[None]:
        """Serialize mutations on one logical key.

        Locks are reference-counted and dropped once no caller holds or
        waits on them, so the table only holds keys in flight.
        """
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def _role_of(self, address: str, now: datetime) -> Role:
        assignments = [
            codec.role_from_dict(self._store.get(k))
            for k in self._store.keys_by_prefix(f"role:{address}:")
        ]
        return self._governance.effective_role(assignments, address, now)

    def _get_assignment(self, key: str) -> Optional[RoleAssignment]:
        data = self._store.get(key)
        return codec.role_from_dict(data) if data else None

    def _require_position(self, staker: str) -> StakingPosition:
        position = self.get_staking_position(staker)
        if position is None:
            raise NotStaking(details={"staker": staker})
        return position

    def _require_proposal(self, proposal_id: str) -> Proposal:
        proposal = self.get_proposal(proposal_id)
        if proposal is None:
            raise RecordNotFound(details={"key": f"proposal:{proposal_id}"})
        return proposal

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _commit(
        self,
        kind: EventKind,
        actor: str,
        key: str,
        writes: dict[str, dict[str, Any]],
        event_payload: dict[str, Any],
        result_data: dict[str, Any],
        invalidate: Sequence[str] = (),
    ) -> ServiceResult:
        """Audit first, then persist every write as one batch.

        Events and writes are committed in the same order. A store failure
        leaves every record as it was and is reported as a failed result.
        """
        with self._audit_guard:
            event_id = None
            if self._event_log is not None:
                try:
                    event = EventRecord.create(
                        event_id=self._next_event_id(),
                        event_kind=kind,
                        actor_id=actor,
                        payload={"key": key, **event_payload},
                        timestamp_utc=self._clock(),
                    )
                    self._event_log.append(event)
                except (ValueError, OSError) as e:
                    logger.error("event log failure on %s: %s", kind.value, e)
                    return ServiceResult(success=False, errors=[f"Event log failure: {e}"])
                event_id = event.event_id

            try:
                self._store.set_many(writes)
            except OSError as e:
                logger.error(
                    "store failure on %s (event %s not applied): %s", kind.value, event_id, e,
                )
                return ServiceResult(success=False, errors=[f"Store failure: {e}"])

        for cache_key in invalidate:
            try:
                self._store.delete(cache_key)
            except OSError as e:
                logger.warning("could not invalidate %s: %s", cache_key, e)
        logger.info("%s accepted: %s by %s", kind.value, key, actor)
        return ServiceResult(success=True, data=result_data)

    @staticmethod
    def _reject(operation: str, error: GhostspeakError) -> ServiceResult:
        logger.warning(
            "%s rejected (%s): %s", operation, error.category, error.message,
        )
        return ServiceResult(success=False, errors=[error.message], data=error.to_dict())
