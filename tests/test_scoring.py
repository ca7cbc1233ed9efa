"""Tests for lead and agent scoring."""

from datetime import datetime, timedelta, timezone

import pytest

from commission_engine.core.scoring import (
    LeadScorer,
    conversion_probability,
    lead_score,
    lead_score_components,
    performance_score,
    round_half_up,
)
from commission_engine.storage.models import (
    Agent,
    Lead,
    LeadStatus,
    LeadTemperature,
    LeadUrgency,
)

NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


def make_lead(lead_id="l1", **kwargs):
    kwargs.setdefault("assigned_at", NOW)
    return Lead(id=lead_id, agent_id="a1", **kwargs)


class TestLeadScore:
    """Tests for lead_score."""

    def test_high_value_urgent_hot_lead_is_capped(self):
        """Raw score of 142 should be capped at 100."""
        lead = make_lead(
            estimated_value=120000,
            urgency=LeadUrgency.URGENT,
            temperature=LeadTemperature.HOT,
            interaction_count=6,
            last_contact_date=NOW,
        )
        components = lead_score_components(lead, NOW)
        assert components == {
            "value": 50,
            "urgency": 30,
            "temperature": 30,
            "interactions": 12,
            "recency": 20,
        }
        assert sum(components.values()) == 142
        assert lead_score(lead, NOW) == 100

    def test_missing_value_and_contact_contribute_nothing(self):
        """A bare lead scores only its urgency and temperature weights."""
        lead = make_lead()
        assert lead_score(lead, NOW) == 20

    def test_half_point_rounds_up(self):
        """A raw score ending in .5 should round up."""
        lead = make_lead(estimated_value=500)
        assert lead_score(lead, NOW) == 21

    def test_stale_contact_adds_no_recency(self):
        """Contact older than 20 days gives no recency points."""
        lead = make_lead(last_contact_date=NOW - timedelta(days=25))
        assert lead_score_components(lead, NOW)["recency"] == 0

    def test_recent_contact_recency(self):
        """Contact 5 days ago gives 15 recency points."""
        lead = make_lead(last_contact_date=NOW - timedelta(days=5))
        assert lead_score_components(lead, NOW)["recency"] == 15

    def test_interactions_capped_at_twenty(self):
        """Interaction points should stop at 20."""
        lead = make_lead(interaction_count=40)
        assert lead_score_components(lead, NOW)["interactions"] == 20

    @pytest.mark.parametrize("value", [0, 1, 999, 50000, 10 ** 9])
    def test_score_always_in_range(self, value):
        """Score should stay within [0, 100] for any value."""
        lead = make_lead(
            estimated_value=value,
            urgency=LeadUrgency.URGENT,
            temperature=LeadTemperature.HOT,
            interaction_count=100,
            last_contact_date=NOW,
        )
        assert 0 <= lead_score(lead, NOW) <= 100


class TestConversionProbability:
    """Tests for conversion_probability."""

    def test_new_cold_lead(self):
        """New cold lead: 10% base times the cold multiplier."""
        assert conversion_probability(make_lead(), NOW) == 8

    def test_hot_negotiating_lead_is_capped(self):
        """Multipliers above 100% are capped."""
        lead = make_lead(
            status=LeadStatus.NEGOTIATING,
            temperature=LeadTemperature.HOT,
            interaction_count=6,
            assigned_at=NOW - timedelta(days=10),
        )
        assert conversion_probability(lead, NOW) == 100

    def test_decay_after_thirty_days(self):
        """Leads in the pipeline over 30 days lose 20%."""
        lead = make_lead(
            status=LeadStatus.QUALIFIED,
            temperature=LeadTemperature.WARM,
            interaction_count=3,
            assigned_at=NOW - timedelta(days=45),
        )
        # 0.30 x 1.2 x 1.1 x 0.8
        assert conversion_probability(lead, NOW) == 32

    def test_decay_after_ninety_days(self):
        """Leads in the pipeline over 90 days lose half."""
        lead = make_lead(
            status=LeadStatus.PROPOSAL_SENT,
            assigned_at=NOW - timedelta(days=100),
        )
        assert conversion_probability(lead, NOW) == 28

    def test_lost_lead_is_zero(self):
        """Lost leads never convert."""
        lead = make_lead(status=LeadStatus.LOST, temperature=LeadTemperature.HOT)
        assert conversion_probability(lead, NOW) == 0

    def test_partial_day_counts_as_full_day(self):
        """Days in pipeline round up."""
        lead = make_lead(assigned_at=NOW - timedelta(days=1, hours=12))
        assert lead.days_in_pipeline(NOW) == 2

    def test_closed_lead_uses_close_date(self):
        """Pipeline age stops at the close date."""
        lead = make_lead(
            assigned_at=NOW - timedelta(days=100),
            close_date=NOW - timedelta(days=90),
        )
        assert lead.days_in_pipeline(NOW) == 10


class TestPerformanceScore:
    """Tests for performance_score."""

    def test_missing_inputs_score_zero(self):
        """An agent with no data should score 0 without raising."""
        assert performance_score(Agent(id="a1"), NOW) == 0

    def test_weighted_score(self):
        """Components are weighted 40/30/20/10."""
        agent = Agent(
            id="a1",
            conversion_rate=50,
            experience_years=5,
            supplier_connections=4,
            buyer_connections=6,
            last_active_at=NOW,
        )
        assert performance_score(agent, NOW) == 55

    def test_inactive_agent_loses_activity(self):
        """Twenty or more idle days removes the activity component."""
        agent = Agent(id="a1", experience_years=20, last_active_at=NOW - timedelta(days=30))
        assert performance_score(agent, NOW) == 30

    def test_round_half_up(self):
        """Rounding helper rounds .5 upward."""
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestLeadScorer:
    """Tests for LeadScorer."""

    def setup_method(self):
        """Set up test fixtures."""
        self.scorer = LeadScorer(now=NOW)

    def test_prioritize_orders_by_score_then_id(self):
        """Best leads first, ties broken by lead id."""
        leads = [
            make_lead("b", urgency=LeadUrgency.URGENT),
            make_lead("a", urgency=LeadUrgency.URGENT),
            make_lead("c", estimated_value=120000, temperature=LeadTemperature.HOT),
        ]
        results = self.scorer.prioritize(leads)
        assert [r.lead_id for r in results] == ["c", "a", "b"]

    def test_prioritize_skips_closed_leads(self):
        """Won, lost and dormant leads are left out by default."""
        leads = [
            make_lead("open"),
            make_lead("won", status=LeadStatus.WON),
            make_lead("dormant", status=LeadStatus.DORMANT),
        ]
        assert [r.lead_id for r in self.scorer.prioritize(leads)] == ["open"]
        assert len(self.scorer.prioritize(leads, include_closed=True)) == 3

    def test_priority_buckets(self):
        """Scores map to high/medium/low priority."""
        hot = self.scorer.score(make_lead(
            estimated_value=120000,
            urgency=LeadUrgency.URGENT,
            temperature=LeadTemperature.HOT,
        ))
        cold = self.scorer.score(make_lead())
        assert hot.priority == "high"
        assert cold.priority == "low"

    def test_explain_mentions_cap(self):
        """Explanation notes when the raw total was capped."""
        result = self.scorer.score(make_lead(
            estimated_value=120000,
            urgency=LeadUrgency.URGENT,
            temperature=LeadTemperature.HOT,
            interaction_count=6,
            last_contact_date=NOW,
        ))
        text = self.scorer.explain_score(result)
        assert "100/100" in text
        assert "capped at 100" in text
