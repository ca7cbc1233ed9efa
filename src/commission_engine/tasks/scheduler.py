"""Background runner for auto-approval, payout batching and tier re-evaluation."""

import logging
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class CommissionTaskRunner:
    """Run auto-approval, payout batching and tier evaluation on a fixed interval.

    Every job is idempotent, so a run that overlaps a manual one only
    skips the agents already handled.
    """

    def __init__(self, service, interval_seconds: int = 3600, period_type: str = "monthly"):
        self.service = service
        self.interval = interval_seconds
        self.period_type = period_type
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._wake = threading.Event()

    def start(self):
        self.running = True
        self._wake.clear()
        self.thread = threading.Thread(target=self._run_loop, daemon=True)
        self.thread.start()
        logger.info(f"Commission task runner started (interval: {self.interval}s)")

    def stop(self):
        self.running = False
        self._wake.set()
        if self.thread:
            self.thread.join(timeout=5)

    def _run_loop(self):
        while self.running:
            try:
                self.run_once()
            except Exception as e:
                logger.exception(f"Commission task runner error: {e}")
            self._wake.wait(self.interval)

    def run_once(self) -> Dict[str, Any]:
        """One pass of every job; returns a summary for logging and the CLI."""
        approved = self.service.approve_pending_commissions()
        run = self.service.process_commission_payouts(self.period_type)
        changes = self.service.evaluate_all_tiers()

        summary = {
            'auto_approved': len(approved),
            'batches': len(run.batches),
            'skipped': [f.agent_id for f in run.skipped],
            'failures': [f.agent_id for f in run.failures],
            'promotions': [(c.agent_id, c.old_tier, c.new_tier) for c in changes],
        }
        logger.info(
            f"Scheduled run: {summary['auto_approved']} auto-approved, {summary['batches']} payout batches, "
            f"{len(summary['promotions'])} tier promotions"
        )
        return summary
