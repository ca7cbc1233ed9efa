"""Collaborator interfaces the engine depends on.

The engine only talks to persistence, caching and notification through these
protocols; ``storage.memory``, ``storage.cache`` and ``notifications`` provide
the bundled implementations.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .models import Agent, CommissionAward, CommissionStatus, Lead, PayoutBatch


class AgentStore(Protocol):
    def add(self, agent: Agent) -> Agent: ...

    def get(self, agent_id: str) -> Agent: ...

    def update(self, agent_id: str, patch: Dict[str, Any]) -> Agent: ...

    def find_active(self, filter: Optional[Dict[str, Any]] = None) -> List[Agent]: ...


class LeadStore(Protocol):
    def add(self, lead: Lead) -> Lead: ...

    def save(self, lead: Lead) -> Lead: ...

    def get(self, lead_id: str) -> Lead: ...

    def find(self, filter: Optional[Dict[str, Any]] = None) -> List[Lead]: ...

    def count_by_agent(self, agent_id: str, filter: Optional[Dict[str, Any]] = None) -> int: ...


class CommissionLedger(Protocol):
    def insert(self, award: CommissionAward) -> CommissionAward: ...

    def get(self, commission_id: str) -> CommissionAward: ...

    def find(self, filter: Optional[Dict[str, Any]] = None) -> List[CommissionAward]: ...

    def count(self, agent_id: str) -> int: ...

    def update_status(
        self,
        commission_id: str,
        status: CommissionStatus,
        note: str = "",
        when: Optional[datetime] = None
    ) -> CommissionAward: ...

    def claim_batch(self, batch_key: str, batch_id: str, commission_ids: Iterable[str]) -> None: ...

    def save_batch(self, batch: PayoutBatch) -> PayoutBatch: ...

    def get_batch(self, batch_id: str) -> PayoutBatch: ...

    def find_batches(self, agent_id: Optional[str] = None) -> List[PayoutBatch]: ...


class Cache(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl_seconds: int, tags: Iterable[str] = ()) -> None: ...

    def invalidate_by_tag(self, tag: str) -> int: ...


class NotificationDispatcher(Protocol):
    def notify(self, agent_id: str, event_type: str, payload: Dict[str, Any]) -> None: ...
