"""Commission tier catalog and tier evaluation."""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import ConfigurationError
from ..storage.models import PerformanceMetrics

logger = logging.getLogger(__name__)

# Requirement name -> PerformanceMetrics attribute it is checked against
REQUIREMENT_METRICS = {
    "monthly_revenue": "total_revenue",
    "monthly_conversions": "leads_converted",
    "customer_satisfaction": "customer_satisfaction",
    "retention_rate": "retention_rate",
}


@dataclass(frozen=True)
class TierRequirements:
    """Thresholds an agent must meet to hold a tier."""

    monthly_revenue: float = 0
    monthly_conversions: int = 0
    customer_satisfaction: float = 0
    retention_rate: float = 0

    def items(self) -> List[Tuple[str, float]]:
        return [(name, getattr(self, name)) for name in REQUIREMENT_METRICS]

    def is_met_by(self, metrics: PerformanceMetrics) -> bool:
        return all(
            getattr(metrics, REQUIREMENT_METRICS[name]) >= threshold
            for name, threshold in self.items()
        )


@dataclass(frozen=True)
class TierDefinition:
    """A named performance bracket."""

    name: str
    base_rate: float  # percent of transaction value
    bonus_multiplier: float
    requirements: TierRequirements = field(default_factory=TierRequirements)
    benefits: Tuple[str, ...] = ()


DEFAULT_TIERS = (
    TierDefinition(
        name="bronze",
        base_rate=5,
        bonus_multiplier=1.0,
        requirements=TierRequirements(),
        benefits=("Basic commission rate", "Monthly payouts"),
    ),
    TierDefinition(
        name="silver",
        base_rate=7,
        bonus_multiplier=1.1,
        requirements=TierRequirements(10000, 10, 4.0, 80),
        benefits=("Higher commission rate", "Performance bonuses", "Priority support"),
    ),
    TierDefinition(
        name="gold",
        base_rate=10,
        bonus_multiplier=1.25,
        requirements=TierRequirements(25000, 25, 4.3, 85),
        benefits=("Premium commission rate", "Quarterly bonuses", "Advanced tools"),
    ),
    TierDefinition(
        name="platinum",
        base_rate=15,
        bonus_multiplier=1.5,
        requirements=TierRequirements(50000, 50, 4.5, 90),
        benefits=("Maximum commission rate", "Monthly bonuses", "Dedicated manager"),
    ),
)


class TierCatalog:
    """Immutable, ordered table of commission tiers (lowest first)."""

    def __init__(self, tiers: Iterable[TierDefinition] = DEFAULT_TIERS):
        ordered = tuple(tiers)
        if not ordered:
            raise ConfigurationError("Tier catalog must define at least one tier")

        names = [t.name for t in ordered]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate tier names in catalog: {names}")

        for tier in ordered:
            if tier.base_rate < 0 or tier.bonus_multiplier <= 0:
                raise ConfigurationError(
                    f"Tier {tier.name} has invalid rate {tier.base_rate} "
                    f"or multiplier {tier.bonus_multiplier}"
                )

        self._tiers = ordered
        self._by_name: Mapping[str, TierDefinition] = MappingProxyType({t.name: t for t in ordered})
        self._rank: Mapping[str, int] = MappingProxyType({t.name: i for i, t in enumerate(ordered)})

    @classmethod
    def from_config(cls, data: Optional[List[Dict[str, Any]]]) -> "TierCatalog":
        """Build a catalog from config dicts, or the defaults when None."""
        if data is None:
            return cls()

        tiers = []
        for entry in data:
            try:
                tiers.append(TierDefinition(
                    name=entry["name"],
                    base_rate=float(entry["base_rate"]),
                    bonus_multiplier=float(entry.get("bonus_multiplier", 1.0)),
                    requirements=TierRequirements(**entry.get("requirements", {})),
                    benefits=tuple(entry.get("benefits", ())),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid tier definition {entry!r}: {e}") from e

        catalog = cls(tiers)
        logger.info(f"Commission tiers loaded from config: {catalog.names}")
        return catalog

    @property
    def names(self) -> List[str]:
        return [t.name for t in self._tiers]

    @property
    def lowest(self) -> TierDefinition:
        return self._tiers[0]

    def __iter__(self):
        return iter(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> TierDefinition:
        tier = self._by_name.get(name)
        if tier is None:
            raise ConfigurationError(f"Unknown commission tier: {name}")
        return tier

    def rank(self, name: str) -> int:
        """Position of a tier, 0 for the lowest."""
        self.get(name)
        return self._rank[name]

    def next_tier(self, name: str) -> Optional[TierDefinition]:
        index = self.rank(name)
        if index + 1 < len(self._tiers):
            return self._tiers[index + 1]
        return None

    def evaluate_upgrade(self, metrics: PerformanceMetrics, current_tier: str) -> str:
        """Highest tier above ``current_tier`` whose thresholds are all met.

        Tiers are scanned from the top down so an agent can skip levels;
        returns ``current_tier`` when nothing above it qualifies.
        """
        current_index = self.rank(current_tier)
        for tier in reversed(self._tiers[current_index + 1:]):
            if tier.requirements.is_met_by(metrics):
                return tier.name
        return current_tier

    def progress(self, metrics: PerformanceMetrics, current_tier: str) -> Dict[str, Any]:
        """Percent progress toward each requirement of the next tier."""
        upcoming = self.next_tier(current_tier)
        if upcoming is None:
            return {"current_tier": current_tier, "next_tier": None, "progress": None}

        progress = {}
        for name, threshold in upcoming.requirements.items():
            value = getattr(metrics, REQUIREMENT_METRICS[name])
            if threshold <= 0:
                progress[name] = 100.0
            else:
                progress[name] = round(min(value / threshold * 100, 100), 1)

        return {
            "current_tier": current_tier,
            "next_tier": upcoming.name,
            "progress": progress,
        }
