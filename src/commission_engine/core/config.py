"""Engine configuration: commission rules, payout fees and cache TTLs."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


DEFAULT_METRICS_TTL = {
    "daily": 3600,  # 1 hour
    "weekly": 7200,  # 2 hours
    "monthly": 14400,  # 4 hours
    "quarterly": 43200,  # 12 hours
    "yearly": 86400,  # 24 hours
}


@dataclass
class EngineConfig:
    """Tunable commission, payout and caching parameters."""

    # Tier catalog override (None = built-in bronze/silver/gold/platinum)
    tiers: Optional[List[Dict[str, Any]]] = None

    # Bonus rules
    fast_conversion_days: float = 7
    fast_conversion_percent: float = 2.0
    high_value_threshold: float = 10000
    high_value_percent: float = 1.0
    first_conversion_bonus: float = 100

    # Penalty rules
    late_follow_up_hours: float = 48
    late_follow_up_penalty: float = 50

    # Payouts
    payout_day: int = 15
    processing_fee_percent: float = 3.0
    processing_fee_cap: float = 25.0
    auto_approve_limit: float = 1000
    overdue_after_days: int = 30
    conversion_tier_points: int = 10

    # Caching
    metrics_cache_ttl: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_METRICS_TTL))
    leaderboard_cache_ttl: int = 3600

    # Leaderboards
    leaderboard_limit: int = 50
    leaderboard_group_limit: int = 20

    # Background jobs
    job_interval_seconds: int = 3600

    updated_at: datetime = field(default_factory=datetime.now)

    def ttl_for_period(self, period_type: str) -> int:
        return self.metrics_cache_ttl.get(period_type, 3600)


class EngineConfigManager:
    """Load and persist engine configuration as JSON."""

    FIELDS = (
        "tiers",
        "fast_conversion_days",
        "fast_conversion_percent",
        "high_value_threshold",
        "high_value_percent",
        "first_conversion_bonus",
        "late_follow_up_hours",
        "late_follow_up_penalty",
        "payout_day",
        "processing_fee_percent",
        "processing_fee_cap",
        "auto_approve_limit",
        "overdue_after_days",
        "conversion_tier_points",
        "metrics_cache_ttl",
        "leaderboard_cache_ttl",
        "leaderboard_limit",
        "leaderboard_group_limit",
        "job_interval_seconds",
    )

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager."""
        self.config_path = config_path or Path.home() / ".commission-engine" / "config.json"
        self.config = self._load_config()

    def _load_config(self) -> EngineConfig:
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                config = EngineConfig(**{k: data[k] for k in self.FIELDS if k in data})
                ttl = dict(DEFAULT_METRICS_TTL)
                ttl.update(config.metrics_cache_ttl)
                config.metrics_cache_ttl = ttl
                return config
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"Error loading engine config: {e}")

        return EngineConfig()

    def save_config(self):
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        data = {name: getattr(self.config, name) for name in self.FIELDS}
        data["updated_at"] = self.config.updated_at.isoformat()
        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

    def update_fees(self, percent: float, cap: float):
        """Update payout processing fee parameters."""
        self.config.processing_fee_percent = percent
        self.config.processing_fee_cap = cap
        self.config.updated_at = datetime.now()
        self.save_config()

    def set_metrics_ttl(self, period_type: str, seconds: int):
        """Override the cache TTL for one period granularity."""
        self.config.metrics_cache_ttl[period_type] = seconds
        self.config.updated_at = datetime.now()
        self.save_config()

    def set_tiers(self, tiers: List[Dict[str, Any]]):
        """Replace the tier catalog definition."""
        self.config.tiers = tiers
        self.config.updated_at = datetime.now()
        self.save_config()
