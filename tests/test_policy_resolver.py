"""Tests for PolicyResolver — proves the config files load and validate."""

import json
from pathlib import Path

import pytest

from ghostspeak.models.tokens import PaymentToken
from ghostspeak.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


class TestLoading:
    def test_version_present(self, resolver: PolicyResolver) -> None:
        assert resolver.params_version == "1.0.0"

    def test_missing_params_version(self) -> None:
        with pytest.raises(ValueError, match="protocol_params"):
            PolicyResolver({}, {"version": "1"})

    def test_missing_policy_version(self) -> None:
        with pytest.raises(ValueError, match="runtime_policy"):
            PolicyResolver({"version": "1"}, {})

    def test_loads_from_other_directory(self, tmp_path: Path) -> None:
        for name in ("protocol_params.json", "runtime_policy.json"):
            data = json.loads((CONFIG_DIR / name).read_text(encoding="utf-8"))
            if name == "runtime_policy.json":
                data["default_network"] = "mainnet"
            (tmp_path / name).write_text(json.dumps(data), encoding="utf-8")
        assert PolicyResolver.from_config_dir(tmp_path).default_network() == "mainnet"


class TestReputationParams:
    def test_bands_sorted_ascending(self, resolver: PolicyResolver) -> None:
        bands = resolver.response_time_bands()
        assert [b.max_seconds for b in bands] == [60, 300, 900]
        assert [b.points for b in bands] == [150.0, 100.0, 50.0]

    def test_point_budget_sums_to_max(self, resolver: PolicyResolver) -> None:
        _, rating_points = resolver.rating_scale()
        _, experience_cap = resolver.experience_points()
        admin, integration = resolver.verification_bonuses()
        total = (
            100 * resolver.success_rate_multiplier()
            + rating_points
            + experience_cap
            + resolver.response_time_bands()[0].points
            + resolver.completion_time_bands()[0].points
            + admin + integration
        )
        assert total == resolver.max_score()

    def test_tier_floors_ascending(self, resolver: PolicyResolver) -> None:
        floors = resolver.reputation_tier_floors()
        assert floors["silver"] < floors["gold"] < floors["platinum"]


class TestStakingParams:
    def test_staking_token_is_ghost(self, resolver: PolicyResolver) -> None:
        assert resolver.staking_token() == PaymentToken.GHOST

    def test_unknown_lock_period(self, resolver: PolicyResolver) -> None:
        with pytest.raises(ValueError, match="lock period"):
            resolver.lock_period_days("forever")

    def test_unknown_tier(self, resolver: PolicyResolver) -> None:
        with pytest.raises(ValueError, match="staking tier"):
            resolver.estimated_apy("diamond")


class TestNetworks:
    def test_default_network_is_configured(self, resolver: PolicyResolver) -> None:
        assert resolver.default_network() in resolver.networks()

    def test_token_table_covers_every_token(self, resolver: PolicyResolver) -> None:
        for network in resolver.networks():
            assert set(resolver.token_table(network)) == set(PaymentToken)

    def test_token_precision(self, resolver: PolicyResolver) -> None:
        assert resolver.token_metadata(PaymentToken.SOL, "devnet").decimals == 9
        assert resolver.token_metadata(PaymentToken.USDC, "devnet").decimals == 6
        assert resolver.token_metadata(PaymentToken.GHOST, "devnet").decimals == 6

    def test_ghost_mint_differs_per_network(self, resolver: PolicyResolver) -> None:
        devnet = resolver.token_metadata(PaymentToken.GHOST, "devnet")
        mainnet = resolver.token_metadata(PaymentToken.GHOST, "mainnet")
        assert devnet.mint != mainnet.mint

    def test_unknown_network(self, resolver: PolicyResolver) -> None:
        with pytest.raises(ValueError, match="Unknown network"):
            resolver.token_table("testnet-9")

    def test_runtime_defaults(self, resolver: PolicyResolver) -> None:
        assert resolver.cache_ttl_seconds("staking_stats") == 300
        assert resolver.logging_defaults() == ("INFO", "text")
