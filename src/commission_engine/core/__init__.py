"""Core scoring and configuration."""

from .scoring import (
    LeadScorer,
    LeadScoreResult,
    lead_score,
    conversion_probability,
    performance_score,
)
from .config import EngineConfig, EngineConfigManager

__all__ = [
    "LeadScorer",
    "LeadScoreResult",
    "lead_score",
    "conversion_probability",
    "performance_score",
    "EngineConfig",
    "EngineConfigManager",
]
