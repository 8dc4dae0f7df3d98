"""Policy resolver — loads protocol_params.json and runtime_policy.json
and exposes every engine threshold as a typed method call.

No magic. No defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ghostspeak.models.tokens import PaymentToken, TokenMetadata


@dataclass(frozen=True)
class TimeBand:
    """Points awarded when a measured duration is at or below ``max_seconds``."""
    max_seconds: int
    points: float


@dataclass(frozen=True)
class TagThresholds:
    """Resolved thresholds for reputation tag derivation."""
    newcomer_below_jobs: int
    experienced_min_jobs: int
    high_performer_rate: float
    reliable_rate: float
    reliable_min_jobs: int
    trusted_min_score: int


class PolicyResolver:
    """Loads and resolves all protocol and runtime policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        floors = resolver.reputation_tier_floors()
        usdc = resolver.token_metadata(PaymentToken.USDC, network="devnet")
    """

    def __init__(self, params: dict[str, Any], policy: dict[str, Any]) -> None:
        self._params = params
        self._policy = policy
        self._validate_versions()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        params = _load_json(config_dir / "protocol_params.json")
        policy = _load_json(config_dir / "runtime_policy.json")
        return cls(params, policy)

    def _validate_versions(self) -> None:
        if "version" not in self._params:
            raise ValueError("protocol_params.json missing version")
        if "version" not in self._policy:
            raise ValueError("runtime_policy.json missing version")

    @property
    def params_version(self) -> str:
        return self._params["version"]

    # ------------------------------------------------------------------
    # Reputation scoring
    # ------------------------------------------------------------------

    def max_score(self) -> int:
        return self._params["reputation"]["max_score"]

    def success_rate_multiplier(self) -> float:
        return self._params["reputation"]["success_rate_multiplier"]

    def rating_scale(self) -> tuple[float, float]:
        """Return (max_rating, points awarded at max_rating)."""
        rep = self._params["reputation"]
        return rep["max_rating"], rep["rating_points"]

    def experience_points(self) -> tuple[float, float]:
        """Return (points per completed job, experience cap)."""
        rep = self._params["reputation"]
        return rep["experience_points_per_job"], rep["experience_cap"]

    def response_time_bands(self) -> list[TimeBand]:
        """Response-time bands, tightest first."""
        return _bands(self._params["reputation"]["response_time_bands"])

    def completion_time_bands(self) -> list[TimeBand]:
        """Completion-time bands, tightest first."""
        return _bands(self._params["reputation"]["completion_time_bands"])

    def verification_bonuses(self) -> tuple[float, float]:
        """Return (admin-verified bonus, third-party integration bonus)."""
        rep = self._params["reputation"]
        return rep["admin_verified_bonus"], rep["integration_bonus"]

    def reputation_tier_floors(self) -> dict[str, int]:
        """Lower (inclusive) score bound for each tier above bronze."""
        return dict(self._params["reputation"]["tier_floors"])

    def tag_thresholds(self) -> TagThresholds:
        t = self._params["reputation"]["tags"]
        return TagThresholds(
            newcomer_below_jobs=t["newcomer_below_jobs"],
            experienced_min_jobs=t["experienced_min_jobs"],
            high_performer_rate=t["high_performer_rate"],
            reliable_rate=t["reliable_rate"],
            reliable_min_jobs=t["reliable_min_jobs"],
            trusted_min_score=t["trusted_min_score"],
        )

    # ------------------------------------------------------------------
    # Staking
    # ------------------------------------------------------------------

    def staking_token(self) -> PaymentToken:
        return PaymentToken(self._params["staking"]["token"])

    def minimum_stake_tokens(self) -> int:
        return self._params["staking"]["minimum_stake_tokens"]

    def staking_tier_floors(self) -> dict[str, int]:
        """Lower (inclusive) whole-token bound for each tier above bronze."""
        return dict(self._params["staking"]["tier_floors_tokens"])

    def staking_tier_benefits(self, tier_value: str) -> dict[str, Any]:
        benefits = self._params["staking"]["tier_benefits"].get(tier_value)
        if benefits is None:
            raise ValueError(f"Unknown staking tier: {tier_value}")
        return dict(benefits)

    def lock_period_days(self, lock_value: str) -> int:
        days = self._params["staking"]["lock_period_days"].get(lock_value)
        if days is None:
            raise ValueError(f"Unknown lock period: {lock_value}")
        return days

    def estimated_apy(self, tier_value: str) -> float:
        apy = self._params["staking"]["estimated_apy_pct"].get(tier_value)
        if apy is None:
            raise ValueError(f"Unknown staking tier: {tier_value}")
        return apy

    def seconds_per_year(self) -> int:
        return self._params["staking"]["seconds_per_year"]

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    def escrow_limits(self) -> dict[str, int]:
        """Keys: minimum_amount_units, description_max_length, dispute_reason_max_length."""
        return dict(self._params["escrow"])

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def multisig_owner_bounds(self) -> tuple[int, int]:
        g = self._params["governance"]
        return g["multisig_min_owners"], g["multisig_max_owners"]

    def proposal_text_limits(self) -> tuple[int, int]:
        """Return (title max length, description max length)."""
        g = self._params["governance"]
        return g["title_max_length"], g["description_max_length"]

    def voting_period_bounds(self) -> tuple[int, int]:
        """Return (min seconds, max seconds) for a voting period."""
        g = self._params["governance"]
        return g["voting_period_min_seconds"], g["voting_period_max_seconds"]

    def voting_grace_seconds(self) -> int:
        return self._params["governance"]["voting_grace_seconds"]

    def approval_threshold_pct(self) -> float:
        return self._params["governance"]["approval_threshold_pct"]

    def default_quorum_required(self) -> int:
        return self._params["governance"]["default_quorum_required"]

    # ------------------------------------------------------------------
    # Runtime: networks and tokens
    # ------------------------------------------------------------------

    def default_network(self) -> str:
        return self._policy["default_network"]

    def networks(self) -> list[str]:
        return sorted(self._policy["networks"])

    def token_table(self, network: str) -> dict[PaymentToken, TokenMetadata]:
        """Token metadata for every supported token on a network."""
        tokens = self._network(network)["tokens"]
        return {
            PaymentToken(symbol): TokenMetadata(
                symbol=PaymentToken(symbol),
                mint=entry["mint"],
                decimals=entry["decimals"],
            )
            for symbol, entry in tokens.items()
        }

    def token_metadata(self, token: PaymentToken, network: str) -> TokenMetadata:
        table = self.token_table(network)
        metadata = table.get(token)
        if metadata is None:
            raise ValueError(f"Token {token.value} not configured on {network}")
        return metadata

    def cache_ttl_seconds(self, name: str) -> int:
        return self._policy["cache_ttl_seconds"][name]

    def logging_defaults(self) -> tuple[str, str]:
        """Return (level, format)."""
        log = self._policy["logging"]
        return log["level"], log["format"]

    def _network(self, network: str) -> dict[str, Any]:
        entry = self._policy["networks"].get(network)
        if entry is None:
            raise ValueError(f"Unknown network: {network}")
        return entry


def _bands(raw: list[list[float]]) -> list[TimeBand]:
    bands = [TimeBand(max_seconds=int(b[0]), points=float(b[1])) for b in raw]
    return sorted(bands, key=lambda b: b.max_seconds)


def _load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
