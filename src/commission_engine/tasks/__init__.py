"""Background jobs for payouts and tier evaluation."""

from .scheduler import CommissionTaskRunner

__all__ = ['CommissionTaskRunner']
