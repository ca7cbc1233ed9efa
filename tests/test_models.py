"""Tests for lead lifecycle, award status transitions and JSON stores."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from commission_engine.errors import ConcurrencyConflict, NotFound, ValidationError
from commission_engine.storage.memory import (
    InMemoryAgentStore,
    InMemoryCommissionLedger,
    InMemoryLeadStore,
)
from commission_engine.storage.models import (
    Adjustment,
    Agent,
    AgentStatus,
    CommissionAward,
    CommissionStatus,
    InteractionType,
    Lead,
    LeadStatus,
    LeadTemperature,
)

NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def make_award(award_id="c1", status=CommissionStatus.PENDING, **kwargs):
    return CommissionAward(
        id=award_id,
        agent_id=kwargs.pop("agent_id", "a1"),
        lead_id=kwargs.pop("lead_id", "l1"),
        transaction_value=1000,
        base_amount=50,
        rate=5,
        tier="bronze",
        tier_multiplier=1.0,
        total_amount=50,
        status=status,
        calculated_at=NOW,
        payout_date=NOW + timedelta(days=25),
        **kwargs
    )


class TestLeadLifecycle:
    """Tests for lead interactions and status changes."""

    def test_interaction_updates_contact(self):
        """Interactions bump the count and last contact date."""
        lead = Lead(id="l1", agent_id="a1")
        lead.add_interaction(InteractionType.CALL, "Intro call", when=NOW)
        assert lead.interaction_count == 1
        assert lead.last_contact_date == NOW
        assert lead.temperature == LeadTemperature.COLD

    def test_meeting_makes_lead_hot(self):
        """A meeting warms the lead straight to hot."""
        lead = Lead(id="l1", agent_id="a1")
        lead.add_interaction(InteractionType.MEETING, "Site visit", when=NOW)
        assert lead.temperature == LeadTemperature.HOT

    def test_interested_outcome_makes_lead_hot(self):
        """An 'interested' outcome counts like a meeting."""
        lead = Lead(id="l1", agent_id="a1")
        lead.add_interaction(InteractionType.EMAIL, "Sent catalog", outcome="Very Interested", when=NOW)
        assert lead.temperature == LeadTemperature.HOT

    def test_repeated_contact_warms_lead(self):
        """More than three interactions warm a cold lead."""
        lead = Lead(id="l1", agent_id="a1")
        for i in range(3):
            lead.add_interaction(InteractionType.CALL, f"Call {i}", when=NOW)
        assert lead.temperature == LeadTemperature.COLD
        lead.add_interaction(InteractionType.CALL, "Call 4", when=NOW)
        assert lead.temperature == LeadTemperature.WARM

    def test_won_sets_close_date(self):
        """Closing a lead stamps the close date and logs a note."""
        lead = Lead(id="l1", agent_id="a1")
        lead.update_status(LeadStatus.WON, "Signed", when=NOW)
        assert lead.close_date == NOW
        assert lead.is_closed
        assert "new to won" in lead.interactions[-1].description

    def test_status_change_counts_as_contact(self):
        """A status change is logged like any other interaction."""
        lead = Lead(id="l1", agent_id="a1")
        lead.update_status(LeadStatus.QUALIFIED, "Budget confirmed", when=NOW)
        assert lead.interaction_count == 1
        assert lead.last_contact_date == NOW
        assert lead.interactions[-1].type == InteractionType.NOTE
        assert lead.close_date is None

    def test_reassign_keeps_history(self):
        """Reassignment records where the lead came from."""
        lead = Lead(id="l1", agent_id="a1", assigned_at=NOW - timedelta(days=9))
        lead.reassign_to("a2", "Agent on leave", when=NOW)
        lead.reassign_to("a3", "Language match", when=NOW)

        assert lead.agent_id == "a3"
        assert lead.assigned_at == NOW
        assert [(r.from_agent, r.to_agent) for r in lead.reassignment_history] == [("a1", "a2"), ("a2", "a3")]
        assert lead.interaction_count == 2
        assert lead.interactions[-1].description == "Lead reassigned: Language match"

    def test_value_temperature(self):
        """Large estimated values raise temperature at intake."""
        big = Lead(id="l1", agent_id="a1", estimated_value=150000)
        mid = Lead(id="l2", agent_id="a1", estimated_value=60000)
        big.apply_value_temperature()
        mid.apply_value_temperature()
        assert big.temperature == LeadTemperature.HOT
        assert mid.temperature == LeadTemperature.WARM


class TestAwardTransitions:
    """Tests for the commission status lifecycle."""

    def test_happy_path(self):
        """pending -> approved -> paid."""
        award = make_award()
        award.transition(CommissionStatus.APPROVED, NOW)
        award.transition(CommissionStatus.PAID, NOW)
        assert award.approved_at == NOW
        assert award.paid_at == NOW

    def test_paid_is_immutable(self):
        """Paid awards cannot be disputed or cancelled."""
        award = make_award(status=CommissionStatus.PAID)
        with pytest.raises(ValidationError):
            award.transition(CommissionStatus.DISPUTED, note="late claim")
        with pytest.raises(ValidationError):
            award.transition(CommissionStatus.CANCELLED)

    def test_pending_cannot_skip_to_paid(self):
        """Payment requires approval first."""
        with pytest.raises(ValidationError):
            make_award().transition(CommissionStatus.PAID)

    def test_dispute_and_resolve(self):
        """Disputes record their reason and resolution."""
        award = make_award()
        award.transition(CommissionStatus.DISPUTED, note="Wrong amount")
        award.transition(CommissionStatus.APPROVED, note="Amount confirmed")
        assert award.dispute_reason == "Wrong amount"
        assert award.dispute_resolution == "Amount confirmed"

    def test_same_status_is_noop(self):
        """Repeating the current status does nothing."""
        award = make_award(status=CommissionStatus.APPROVED)
        award.transition(CommissionStatus.APPROVED)
        assert award.status == CommissionStatus.APPROVED


class TestJsonStores:
    """Tests for the JSON-backed stores."""

    def test_agent_round_trip(self, temp_data_dir):
        """Agents survive a reload from disk."""
        store = InMemoryAgentStore(str(temp_data_dir))
        store.add(Agent(id="a1", name="Ada", tier="gold", region="north"))
        store.update("a1", {"converted_leads": 3})

        reloaded = InMemoryAgentStore(str(temp_data_dir))
        agent = reloaded.get("a1")
        assert agent.tier == "gold"
        assert agent.converted_leads == 3

    def test_unknown_agent(self):
        """Missing agents raise NotFound."""
        with pytest.raises(NotFound):
            InMemoryAgentStore().get("ghost")

    def test_unknown_patch_field(self):
        """Patching an unknown field is rejected."""
        store = InMemoryAgentStore()
        store.add(Agent(id="a1"))
        with pytest.raises(ValidationError):
            store.update("a1", {"salary": 1})

    def test_find_active_filters(self):
        """Inactive agents are excluded and filters apply."""
        store = InMemoryAgentStore()
        store.add(Agent(id="b", region="north"))
        store.add(Agent(id="a", region="south"))
        store.add(Agent(id="c", region="north"))
        store.update("c", {"status": AgentStatus.INACTIVE})
        assert [a.id for a in store.find_active()] == ["a", "b"]
        assert [a.id for a in store.find_active({"region": "north"})] == ["b"]

    def test_ledger_round_trip(self, temp_data_dir):
        """Awards, including adjustments, reload from disk."""
        ledger = InMemoryCommissionLedger(str(temp_data_dir))
        ledger.insert(make_award(bonuses=[Adjustment("high_value", 10, "big deal")]))

        award = InMemoryCommissionLedger(str(temp_data_dir)).get("c1")
        assert award.bonuses[0].kind == "high_value"
        assert award.calculated_at == NOW

    def test_duplicate_insert(self):
        """Awards are append-only by id."""
        ledger = InMemoryCommissionLedger()
        ledger.insert(make_award())
        with pytest.raises(ValidationError):
            ledger.insert(make_award())

    def test_claim_batch_once(self):
        """A batch key can only be claimed once."""
        ledger = InMemoryCommissionLedger()
        ledger.insert(make_award("c1"))
        ledger.insert(make_award("c2"))
        ledger.claim_batch("a1:march", "batch1", ["c1"])
        assert ledger.get("c1").batch_id == "batch1"
        with pytest.raises(ConcurrencyConflict):
            ledger.claim_batch("a1:march", "batch2", ["c2"])
        assert ledger.get("c2").batch_id is None

    def test_lead_round_trip(self, temp_data_dir):
        """Lead interactions and reassignments reload from disk."""
        store = InMemoryLeadStore(str(temp_data_dir))
        lead = Lead(id="l1", agent_id="a1", assigned_at=NOW)
        lead.reassign_to("a2", "Coverage", when=NOW)
        store.add(lead)

        reloaded = InMemoryLeadStore(str(temp_data_dir)).get("l1")
        assert reloaded.agent_id == "a2"
        assert reloaded.reassignment_history[0].from_agent == "a1"
        assert reloaded.reassignment_history[0].date == NOW
        assert reloaded.interactions[0].description == "Lead reassigned: Coverage"

    def test_ledger_find_by_lead(self):
        """Awards filter by lead."""
        ledger = InMemoryCommissionLedger()
        ledger.insert(make_award("c1", lead_id="l1"))
        ledger.insert(make_award("c2", lead_id="l2"))
        assert [a.id for a in ledger.find({"lead_id": "l2"})] == ["c2"]

    def test_update_status_uses_given_time(self):
        """Status changes are stamped with the caller's time."""
        ledger = InMemoryCommissionLedger()
        ledger.insert(make_award())
        award = ledger.update_status("c1", CommissionStatus.APPROVED, when=NOW)
        assert award.approved_at == NOW

    def test_lead_find_by_assignment(self):
        """Leads filter by agent and assignment window."""
        store = InMemoryLeadStore()
        store.add(Lead(id="l1", agent_id="a1", assigned_at=NOW))
        store.add(Lead(id="l2", agent_id="a1", assigned_at=NOW - timedelta(days=60)))
        store.add(Lead(id="l3", agent_id="a2", assigned_at=NOW))
        window = (NOW - timedelta(days=1), NOW + timedelta(days=1))
        assert [l.id for l in store.find({"agent_id": "a1", "assigned_between": window})] == ["l1"]
        assert store.count_by_agent("a1") == 2
