"""Agent performance reporting."""

from .agent_performance import (
    PerformanceAggregator,
    StaticMetricsSource,
    resolve_period,
    previous_period,
)
from .commission_report import build_agent_commission_summary, build_commission_report

__all__ = [
    'PerformanceAggregator',
    'StaticMetricsSource',
    'resolve_period',
    'previous_period',
    'build_commission_report',
    'build_agent_commission_summary',
]
