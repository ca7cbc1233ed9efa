"""Tests for the commission tier catalog."""

import dataclasses
from datetime import datetime, timezone

import pytest

from commission_engine.errors import ConfigurationError
from commission_engine.storage.models import PerformanceMetrics, Period, PeriodType
from commission_engine.team.tiers import DEFAULT_TIERS, TierCatalog

PERIOD = Period(
    PeriodType.MONTHLY,
    datetime(2024, 3, 1, tzinfo=timezone.utc),
    datetime(2024, 3, 31, 23, 59, 59, tzinfo=timezone.utc),
)


def make_metrics(revenue=0, conversions=0, satisfaction=0, retention=0):
    return PerformanceMetrics(
        agent_id="a1",
        period=PERIOD,
        total_revenue=revenue,
        leads_converted=conversions,
        customer_satisfaction=satisfaction,
        retention_rate=retention,
    )


@pytest.fixture
def catalog():
    return TierCatalog()


class TestTierCatalog:
    """Tests for TierCatalog lookups."""

    def test_default_order(self, catalog):
        """Tiers are ordered lowest first."""
        assert catalog.names == ["bronze", "silver", "gold", "platinum"]
        assert catalog.lowest.name == "bronze"

    def test_default_rates(self, catalog):
        """Default rates and multipliers."""
        gold = catalog.get("gold")
        assert gold.base_rate == 10
        assert gold.bonus_multiplier == 1.25
        assert catalog.get("platinum").requirements.monthly_revenue == 50000

    def test_unknown_tier(self, catalog):
        """Unknown tier names raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            catalog.get("diamond")

    def test_next_tier(self, catalog):
        """next_tier walks up and stops at the top."""
        assert catalog.next_tier("silver").name == "gold"
        assert catalog.next_tier("platinum") is None

    def test_definitions_are_frozen(self):
        """Tier definitions cannot be modified."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_TIERS[0].base_rate = 50


class TestEvaluateUpgrade:
    """Tests for tier promotion."""

    def test_bronze_jumps_straight_to_platinum(self, catalog):
        """Meeting platinum thresholds skips silver and gold."""
        metrics = make_metrics(revenue=60000, conversions=50, satisfaction=4.5, retention=90)
        assert catalog.evaluate_upgrade(metrics, "bronze") == "platinum"

    def test_highest_qualifying_tier_wins(self, catalog):
        """Gold thresholds met but not platinum gives gold."""
        metrics = make_metrics(revenue=30000, conversions=30, satisfaction=4.4, retention=86)
        assert catalog.evaluate_upgrade(metrics, "bronze") == "gold"

    def test_every_threshold_must_be_met(self, catalog):
        """Revenue alone is not enough."""
        metrics = make_metrics(revenue=60000, conversions=50, satisfaction=4.5, retention=70)
        assert catalog.evaluate_upgrade(metrics, "bronze") == "bronze"

    def test_never_downgrades(self, catalog):
        """A gold agent with no activity stays gold."""
        assert catalog.evaluate_upgrade(make_metrics(), "gold") == "gold"

    def test_top_tier_stays(self, catalog):
        """Platinum has nothing above it."""
        metrics = make_metrics(revenue=10 ** 6, conversions=500, satisfaction=5, retention=100)
        assert catalog.evaluate_upgrade(metrics, "platinum") == "platinum"

    def test_unknown_current_tier(self, catalog):
        """Evaluating from an unknown tier raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            catalog.evaluate_upgrade(make_metrics(), "tin")

    def test_progress_toward_next_tier(self, catalog):
        """Progress is a capped percentage of each threshold."""
        metrics = make_metrics(revenue=5000, conversions=20, satisfaction=2.0, retention=40)
        progress = catalog.progress(metrics, "bronze")
        assert progress["next_tier"] == "silver"
        assert progress["progress"] == {
            "monthly_revenue": 50.0,
            "monthly_conversions": 100,
            "customer_satisfaction": 50.0,
            "retention_rate": 50.0,
        }

    def test_progress_at_top(self, catalog):
        """No next tier at platinum."""
        assert catalog.progress(make_metrics(), "platinum")["next_tier"] is None


class TestCatalogFromConfig:
    """Tests for building catalogs from configuration."""

    def test_none_uses_defaults(self):
        """No override means the built-in tiers."""
        assert TierCatalog.from_config(None).names == ["bronze", "silver", "gold", "platinum"]

    def test_custom_tiers(self):
        """Custom tiers keep their listed order."""
        catalog = TierCatalog.from_config([
            {"name": "starter", "base_rate": 4},
            {"name": "pro", "base_rate": 8, "bonus_multiplier": 1.2,
             "requirements": {"monthly_revenue": 20000}},
        ])
        assert catalog.names == ["starter", "pro"]
        assert catalog.get("pro").requirements.monthly_revenue == 20000

    def test_duplicate_names_rejected(self):
        """Duplicate tier names are a configuration error."""
        with pytest.raises(ConfigurationError):
            TierCatalog.from_config([
                {"name": "a", "base_rate": 1},
                {"name": "a", "base_rate": 2},
            ])

    def test_missing_rate_rejected(self):
        """Entries without a base rate are rejected."""
        with pytest.raises(ConfigurationError):
            TierCatalog.from_config([{"name": "a"}])

    def test_invalid_multiplier_rejected(self):
        """Multipliers must be positive."""
        with pytest.raises(ConfigurationError):
            TierCatalog.from_config([{"name": "a", "base_rate": 5, "bonus_multiplier": 0}])

    def test_empty_catalog_rejected(self):
        """A catalog needs at least one tier."""
        with pytest.raises(ConfigurationError):
            TierCatalog([])
