"""Commission payout batching."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..errors import ConcurrencyConflict, ValidationError
from ..storage.models import (
    AgentFailure,
    CommissionStatus,
    PAYABLE_STATUSES,
    PayoutBatch,
    PayoutFee,
    PayoutStatus,
    Period,
    as_utc,
    utcnow,
)
from .commissions import to_money

logger = logging.getLogger(__name__)


@dataclass
class PayoutRun:
    """Outcome of one payout job."""

    batches: List[PayoutBatch] = field(default_factory=list)
    skipped: List[AgentFailure] = field(default_factory=list)
    failures: List[AgentFailure] = field(default_factory=list)

    @property
    def total_net(self) -> float:
        return to_money(sum(b.net_amount for b in self.batches))


class PayoutBatcher:
    """Group each agent's due commissions into one payout batch per period.

    A per-agent lock serializes batching inside this process, and the ledger's
    ``claim_batch`` enforces the ``(agent_id, period)`` idempotency key across
    processes. Commissions are never marked paid here; see ``mark_batch_paid``.
    """

    def __init__(self, ledger, fee_percent: float = 3.0, fee_cap: float = 25.0):
        self.ledger = ledger
        self.fee_percent = fee_percent
        self.fee_cap = fee_cap
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _agent_lock(self, agent_id: str) -> threading.Lock:
        with self._locks_guard:
            if agent_id not in self._locks:
                self._locks[agent_id] = threading.Lock()
            return self._locks[agent_id]

    def processing_fee(self, total: float) -> float:
        return to_money(min(total * self.fee_percent / 100, self.fee_cap))

    @staticmethod
    def batch_key(agent_id: str, period: Period) -> str:
        return f"{agent_id}:{period.key}"

    @staticmethod
    def batch_id(agent_id: str, period: Period) -> str:
        return f"payout_{agent_id}_{period.start:%Y%m%d}_{period.end:%Y%m%d}"

    def build_batch(self, agent_id: str, period: Period, now: Optional[datetime] = None) -> Optional[PayoutBatch]:
        """Batch one agent's due commissions, or None if nothing positive is due.

        Raises ConcurrencyConflict if this agent and period were already batched.
        """
        now = as_utc(now) or utcnow()

        with self._agent_lock(agent_id):
            due = self.ledger.find({
                'agent_id': agent_id,
                'statuses': PAYABLE_STATUSES,
                'payout_due_by': now,
                'unbatched': True,
            })
            if not due:
                return None

            total = to_money(sum(a.total_amount for a in due))
            if total <= 0:
                logger.info(f"No payout for {agent_id}: due commissions total {total:.2f}")
                return None

            fee = self.processing_fee(total)
            batch_id = self.batch_id(agent_id, period)

            self.ledger.claim_batch(self.batch_key(agent_id, period), batch_id, [a.id for a in due])

            batch = PayoutBatch(
                id=batch_id,
                agent_id=agent_id,
                period=period,
                commission_ids=[a.id for a in due],
                total_amount=total,
                fees=[PayoutFee(type="processing", amount=fee)],
                net_amount=to_money(total - fee),
                created_at=now,
            )
            self.ledger.save_batch(batch)

        logger.info(f"Payout batch {batch.id}: {len(due)} commissions, net {batch.net_amount:.2f}")
        return batch

    def run(self, agent_ids: Iterable[str], period: Period, now: Optional[datetime] = None) -> PayoutRun:
        """Batch every listed agent; conflicts and errors only skip that agent."""
        result = PayoutRun()
        for agent_id in sorted(set(agent_ids)):
            try:
                batch = self.build_batch(agent_id, period, now)
            except ConcurrencyConflict as e:
                logger.warning(f"Skipping payout for {agent_id}: {e}")
                result.skipped.append(AgentFailure(agent_id, str(e)))
                continue
            except Exception as e:
                logger.exception(f"Payout batching failed for {agent_id}")
                result.failures.append(AgentFailure(agent_id, str(e)))
                continue

            if batch is not None:
                result.batches.append(batch)

        logger.info(
            f"Commission payouts processed: {len(result.batches)} batches, "
            f"{len(result.skipped)} skipped, {len(result.failures)} failed"
        )
        return result

    def mark_batch_paid(self, batch_id: str, payment_reference: str = "", now: Optional[datetime] = None) -> PayoutBatch:
        """Settle a batch and its commissions. Repeating the call is a no-op."""
        now = as_utc(now) or utcnow()
        batch = self.ledger.get_batch(batch_id)
        if batch.status == PayoutStatus.PAID:
            return batch
        if batch.status == PayoutStatus.CANCELLED:
            raise ValidationError(f"Payout batch {batch_id} was cancelled")

        awards = [self.ledger.get(cid) for cid in batch.commission_ids]
        blocked = [a.id for a in awards if a.status not in PAYABLE_STATUSES + (CommissionStatus.PAID,)]
        if blocked:
            raise ValidationError(f"Payout batch {batch_id} holds unpayable commissions: {blocked}")

        for award in awards:
            if award.status == CommissionStatus.PENDING:
                self.ledger.update_status(award.id, CommissionStatus.APPROVED, when=now)
            if award.status != CommissionStatus.PAID:
                self.ledger.update_status(award.id, CommissionStatus.PAID, when=now)

        batch.status = PayoutStatus.PAID
        batch.payment_reference = payment_reference
        batch.processed_at = now
        self.ledger.save_batch(batch)
        logger.info(f"Payout batch {batch_id} marked paid ({len(awards)} commissions)")
        return batch
