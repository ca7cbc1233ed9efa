"""In-process agent, lead and commission stores with optional JSON persistence."""

import json
import logging
import os
import threading
from dataclasses import fields
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..errors import ConcurrencyConflict, NotFound, ValidationError
from .models import (
    Agent,
    AgentStatus,
    CommissionAward,
    CommissionStatus,
    Lead,
    LeadStatus,
    PayoutBatch,
    as_utc,
)


class _JsonBacked:
    """Shared load/save plumbing. A ``storage_path`` of None keeps data in memory only."""

    filename = ""

    def __init__(self, storage_path: Optional[str] = None):
        self.storage_path = storage_path
        self._lock = threading.RLock()

    @property
    def data_file(self) -> Optional[str]:
        if not self.storage_path:
            return None
        return f"{self.storage_path}/{self.filename}"

    def _read(self) -> Optional[Dict[str, Any]]:
        if not self.data_file or not os.path.exists(self.data_file):
            return None
        with open(self.data_file, 'r') as f:
            return json.load(f)

    def _write(self, payload: Dict[str, Any]):
        if not self.data_file:
            return
        os.makedirs(self.storage_path, exist_ok=True)
        with open(self.data_file, 'w') as f:
            json.dump(payload, f, indent=2)


class InMemoryAgentStore(_JsonBacked):
    """Agent profiles keyed by id."""

    filename = "agents.json"
    _fields = {f.name for f in fields(Agent)} - {"id"}

    def __init__(self, storage_path: Optional[str] = None):
        super().__init__(storage_path)
        self.agents: Dict[str, Agent] = {}
        self._load_data()

    def _load_data(self):
        data = self._read()
        if data:
            for a in data.get('agents', []):
                agent = Agent.from_dict(a)
                self.agents[agent.id] = agent

    def _save_data(self):
        self._write({'agents': [a.to_dict() for a in self.agents.values()]})

    def add(self, agent: Agent) -> Agent:
        with self._lock:
            self.agents[agent.id] = agent
            self._save_data()
        return agent

    def get(self, agent_id: str) -> Agent:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise NotFound("Agent", agent_id)
        return agent

    def update(self, agent_id: str, patch: Dict[str, Any]) -> Agent:
        unknown = set(patch) - self._fields
        if unknown:
            raise ValidationError(f"Unknown agent fields: {sorted(unknown)}")

        with self._lock:
            agent = self.get(agent_id)
            for name, value in patch.items():
                setattr(agent, name, value)
            self._save_data()
        return agent

    def find_active(self, filter: Optional[Dict[str, Any]] = None) -> List[Agent]:
        """Active agents, optionally narrowed by ``ids``, ``tier`` or ``region``."""
        filter = filter or {}
        ids = filter.get('ids')
        agents = [a for a in self.agents.values() if a.status == AgentStatus.ACTIVE]
        if ids is not None:
            wanted = set(ids)
            agents = [a for a in agents if a.id in wanted]
        if filter.get('tier'):
            agents = [a for a in agents if a.tier == filter['tier']]
        if filter.get('region'):
            agents = [a for a in agents if a.region == filter['region']]
        return sorted(agents, key=lambda a: a.id)

    def all(self) -> List[Agent]:
        return sorted(self.agents.values(), key=lambda a: a.id)


def _in_range(moment: Optional[datetime], bounds) -> bool:
    if moment is None:
        return False
    start, end = bounds
    return as_utc(start) <= as_utc(moment) <= as_utc(end)


class InMemoryLeadStore(_JsonBacked):
    """Leads keyed by id."""

    filename = "leads.json"

    def __init__(self, storage_path: Optional[str] = None):
        super().__init__(storage_path)
        self.leads: Dict[str, Lead] = {}
        self._load_data()

    def _load_data(self):
        data = self._read()
        if data:
            for l in data.get('leads', []):
                lead = Lead.from_dict(l)
                self.leads[lead.id] = lead

    def _save_data(self):
        self._write({'leads': [l.to_dict() for l in self.leads.values()]})

    def add(self, lead: Lead) -> Lead:
        with self._lock:
            self.leads[lead.id] = lead
            self._save_data()
        return lead

    save = add

    def get(self, lead_id: str) -> Lead:
        lead = self.leads.get(lead_id)
        if lead is None:
            raise NotFound("Lead", lead_id)
        return lead

    def find(self, filter: Optional[Dict[str, Any]] = None) -> List[Lead]:
        """Leads matching ``agent_id``, ``status`` or ``assigned_between``."""
        filter = filter or {}
        leads = list(self.leads.values())
        if filter.get('agent_id'):
            leads = [l for l in leads if l.agent_id == filter['agent_id']]
        if filter.get('status'):
            status = LeadStatus(filter['status'])
            leads = [l for l in leads if l.status == status]
        if filter.get('assigned_between'):
            leads = [l for l in leads if _in_range(l.assigned_at, filter['assigned_between'])]
        return sorted(leads, key=lambda l: l.id)

    def count_by_agent(self, agent_id: str, filter: Optional[Dict[str, Any]] = None) -> int:
        query = dict(filter or {})
        query['agent_id'] = agent_id
        return len(self.find(query))


class InMemoryCommissionLedger(_JsonBacked):
    """Append-only commission awards plus payout batches."""

    filename = "commissions.json"

    def __init__(self, storage_path: Optional[str] = None):
        super().__init__(storage_path)
        self.awards: Dict[str, CommissionAward] = {}
        self.batches: Dict[str, PayoutBatch] = {}
        self.claims: Dict[str, str] = {}  # batch key -> batch id
        self._load_data()

    def _load_data(self):
        data = self._read()
        if data:
            for a in data.get('awards', []):
                award = CommissionAward.from_dict(a)
                self.awards[award.id] = award
            for b in data.get('batches', []):
                batch = PayoutBatch.from_dict(b)
                self.batches[batch.id] = batch
            self.claims = data.get('claims', {})

    def _save_data(self):
        self._write({
            'awards': [a.to_dict() for a in self.awards.values()],
            'batches': [b.to_dict() for b in self.batches.values()],
            'claims': self.claims
        })

    def insert(self, award: CommissionAward) -> CommissionAward:
        with self._lock:
            if award.id in self.awards:
                raise ValidationError(f"Commission {award.id} already recorded")
            self.awards[award.id] = award
            self._save_data()
        return award

    def get(self, commission_id: str) -> CommissionAward:
        award = self.awards.get(commission_id)
        if award is None:
            raise NotFound("Commission", commission_id)
        return award

    def find(self, filter: Optional[Dict[str, Any]] = None) -> List[CommissionAward]:
        """Awards matching ``agent_id``, ``agent_ids``, ``lead_id``, ``statuses``,
        ``payout_due_by``, ``unbatched`` or ``calculated_between``."""
        filter = filter or {}
        awards = list(self.awards.values())
        if filter.get('agent_id'):
            awards = [a for a in awards if a.agent_id == filter['agent_id']]
        if filter.get('agent_ids') is not None:
            wanted = set(filter['agent_ids'])
            awards = [a for a in awards if a.agent_id in wanted]
        if filter.get('lead_id'):
            awards = [a for a in awards if a.lead_id == filter['lead_id']]
        if filter.get('statuses'):
            statuses = {CommissionStatus(s) for s in filter['statuses']}
            awards = [a for a in awards if a.status in statuses]
        if filter.get('payout_due_by'):
            due = as_utc(filter['payout_due_by'])
            awards = [a for a in awards if a.payout_date is not None and as_utc(a.payout_date) <= due]
        if filter.get('unbatched'):
            awards = [a for a in awards if a.batch_id is None]
        if filter.get('calculated_between'):
            awards = [a for a in awards if _in_range(a.calculated_at, filter['calculated_between'])]
        return sorted(awards, key=lambda a: (a.calculated_at, a.id))

    def count(self, agent_id: str) -> int:
        return sum(1 for a in self.awards.values() if a.agent_id == agent_id)

    def update_status(
        self,
        commission_id: str,
        status: CommissionStatus,
        note: str = "",
        when: Optional[datetime] = None
    ) -> CommissionAward:
        with self._lock:
            award = self.get(commission_id)
            award.transition(status, when=when, note=note)
            self._save_data()
        return award

    def claim_batch(self, batch_key: str, batch_id: str, commission_ids: Iterable[str]):
        """Atomically reserve commissions for one payout batch.

        Raises ConcurrencyConflict when the key was already claimed or any of
        the commissions already belongs to another batch.
        """
        ids = list(commission_ids)
        with self._lock:
            if batch_key in self.claims:
                raise ConcurrencyConflict(batch_key, f"claimed by {self.claims[batch_key]}")
            awards = [self.get(cid) for cid in ids]
            taken = [a.id for a in awards if a.batch_id is not None]
            if taken:
                raise ConcurrencyConflict(batch_key, f"commissions already batched: {taken}")
            for award in awards:
                award.batch_id = batch_id
            self.claims[batch_key] = batch_id
            self._save_data()

    def save_batch(self, batch: PayoutBatch) -> PayoutBatch:
        with self._lock:
            self.batches[batch.id] = batch
            self._save_data()
        return batch

    def get_batch(self, batch_id: str) -> PayoutBatch:
        batch = self.batches.get(batch_id)
        if batch is None:
            raise NotFound("Payout batch", batch_id)
        return batch

    def find_batches(self, agent_id: Optional[str] = None) -> List[PayoutBatch]:
        batches = [b for b in self.batches.values() if not agent_id or b.agent_id == agent_id]
        return sorted(batches, key=lambda b: (b.created_at, b.id))
