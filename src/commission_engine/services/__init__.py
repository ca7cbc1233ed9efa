"""Service layer."""

from .commissions import CommissionService, TierChange

__all__ = ['CommissionService', 'TierChange']
