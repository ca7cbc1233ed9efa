"""Main CLI entry point for the cengine command."""

import functools
import json
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..core.config import EngineConfigManager
from ..core.scoring import LeadScorer
from ..errors import CommissionEngineError
from ..notifications import create_notifier
from ..services import CommissionService
from ..storage.models import (
    Agent,
    InteractionType,
    Lead,
    LeadStatus,
    LeadTemperature,
    LeadUrgency,
    LeaderboardMetric,
    PeriodType,
)
from ..tasks.scheduler import CommissionTaskRunner

console = Console()

DEFAULT_HOME = Path.home() / ".commission-engine"

PERIODS = [p.value for p in PeriodType]
PRIORITY_COLORS = {"high": "red", "medium": "yellow", "low": "dim"}
TIER_COLORS = {"bronze": "dark_orange3", "silver": "white", "gold": "yellow", "platinum": "cyan"}


def get_service(data_path: Optional[str] = None, config_path: Optional[str] = None) -> CommissionService:
    """Service over the JSON stores in ``data_path``."""
    data_dir = data_path or str(DEFAULT_HOME / "data")
    config = EngineConfigManager(Path(config_path) if config_path else None).config
    return CommissionService.from_storage_path(data_dir, config=config, notifier=create_notifier())


def handle_errors(func):
    """Print engine errors in red and exit non-zero instead of a traceback."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except CommissionEngineError as e:
            console.print(f"[red]{type(e).__name__}: {e}[/red]")
            raise SystemExit(1)
    return wrapper


def store_options(func):
    func = click.option("--config", "config_path", help="Custom engine config path")(func)
    func = click.option("--data", "data_path", help="Custom data directory")(func)
    return func


def _tier(name: str) -> str:
    color = TIER_COLORS.get(name, "")
    return f"[{color}]{name}[/{color}]" if color else name


@click.group()
@click.version_option(version=__version__, prog_name="cengine")
def cli():
    """Commission Engine - tiers, commissions, payouts and lead scoring.

    \b
    Quick Start:
      cengine init                                  # Create data dir and config
      cengine add-agent a1 --name "Ada" --region north
      cengine add-lead l1 a1 --value 12000 --urgency high
      cengine calculate l1 12000                    # Record a commission
      cengine payouts                               # Batch due commissions
      cengine leaderboard --metric revenue
    """
    pass


# ============================================================================
# SETUP
# ============================================================================

@cli.command()
@store_options
def init(data_path: Optional[str], config_path: Optional[str]):
    """Create the data directory and a default config file."""
    data_dir = Path(data_path) if data_path else DEFAULT_HOME / "data"
    data_dir.mkdir(parents=True, exist_ok=True)

    manager = EngineConfigManager(Path(config_path) if config_path else None)
    manager.save_config()

    console.print(Panel.fit(
        f"[green]✓ Commission engine initialized[/green]\n\n"
        f"Data:   [cyan]{data_dir}[/cyan]\n"
        f"Config: [cyan]{manager.config_path}[/cyan]\n\n"
        f"Payout day: {manager.config.payout_day} | "
        f"Fee: {manager.config.processing_fee_percent:g}% (cap {manager.config.processing_fee_cap:g})",
        title=f"Commission Engine v{__version__}"
    ))


@cli.command("add-agent")
@click.argument("agent_id")
@click.option("--name", default="", help="Display name")
@click.option("--tier", default="bronze", help="Starting tier")
@click.option("--region", default="", help="Sales region")
@store_options
@handle_errors
def add_agent(agent_id: str, name: str, tier: str, region: str, data_path: Optional[str], config_path: Optional[str]):
    """Register an agent."""
    service = get_service(data_path, config_path)
    service.catalog.get(tier)
    service.agents.add(Agent(id=agent_id, name=name, tier=tier, region=region))
    console.print(f"[green]✓ Agent {agent_id} added ({_tier(tier)})[/green]")


@cli.command("add-lead")
@click.argument("lead_id")
@click.argument("agent_id")
@click.option("--company", default="", help="Company name")
@click.option("--value", type=float, help="Estimated deal value")
@click.option("--urgency", type=click.Choice([u.value for u in LeadUrgency]), default="medium")
@click.option("--temperature", type=click.Choice([t.value for t in LeadTemperature]), default="cold")
@store_options
@handle_errors
def add_lead(
    lead_id: str,
    agent_id: str,
    company: str,
    value: Optional[float],
    urgency: str,
    temperature: str,
    data_path: Optional[str],
    config_path: Optional[str]
):
    """Assign a new lead to an agent."""
    service = get_service(data_path, config_path)
    lead = service.add_lead(Lead(
        id=lead_id,
        agent_id=agent_id,
        company_name=company,
        urgency=LeadUrgency(urgency),
        temperature=LeadTemperature(temperature),
        estimated_value=value,
    ))

    console.print(f"[green]✓ Lead {lead_id} assigned to {agent_id} ({lead.temperature.value})[/green]")


# ============================================================================
# LEADS
# ============================================================================

@cli.command()
@click.argument("lead_id")
@click.argument("interaction_type", type=click.Choice([i.value for i in InteractionType]))
@click.argument("description")
@click.option("--outcome", default="", help="Outcome of the interaction")
@store_options
@handle_errors
def interact(
    lead_id: str,
    interaction_type: str,
    description: str,
    outcome: str,
    data_path: Optional[str],
    config_path: Optional[str]
):
    """Log an interaction with a lead."""
    service = get_service(data_path, config_path)
    lead = service.record_lead_interaction(lead_id, interaction_type, description, outcome)
    console.print(
        f"[green]✓ Logged {interaction_type} on {lead_id}[/green] "
        f"({lead.interaction_count} interactions, {lead.temperature.value})"
    )


@cli.command("status")
@click.argument("lead_id")
@click.argument("new_status", type=click.Choice([s.value for s in LeadStatus]))
@click.option("--reason", default="", help="Reason for the change")
@store_options
@handle_errors
def status(lead_id: str, new_status: str, reason: str, data_path: Optional[str], config_path: Optional[str]):
    """Move a lead to a new pipeline status."""
    service = get_service(data_path, config_path)
    service.update_lead_status(lead_id, new_status, reason)
    console.print(f"[green]✓ Lead {lead_id} is now {new_status}[/green]")


@cli.command()
@click.argument("lead_id")
@click.argument("agent_id")
@click.option("--reason", required=True, help="Why the lead is moving")
@store_options
@handle_errors
def reassign(lead_id: str, agent_id: str, reason: str, data_path: Optional[str], config_path: Optional[str]):
    """Hand a lead to another agent."""
    lead = get_service(data_path, config_path).reassign_lead(lead_id, agent_id, reason)
    previous = lead.reassignment_history[-1].from_agent
    console.print(f"[green]✓ Lead {lead_id} moved from {previous} to {agent_id}[/green]")


@cli.command()
@click.option("--agent", "agent_id", help="Only this agent's leads")
@click.option("--all", "include_closed", is_flag=True, help="Include won/lost/dormant leads")
@click.option("--limit", "-n", default=20, help="Number of leads to show")
@store_options
def leads(agent_id: Optional[str], include_closed: bool, limit: int, data_path: Optional[str], config_path: Optional[str]):
    """Display leads by priority."""
    service = get_service(data_path, config_path)
    results = service.prioritize_leads(agent_id, include_closed=include_closed)[:limit]

    if not results:
        console.print("[yellow]No leads found matching criteria.[/yellow]")
        return

    table = Table(title=f"Prioritized Leads ({len(results)})")
    table.add_column("Lead", style="cyan")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Win %", justify="right")
    table.add_column("Priority", justify="center")

    for r in results:
        color = PRIORITY_COLORS[r.priority]
        table.add_row(r.lead_id, str(r.score), str(r.conversion_probability), f"[{color}]{r.priority}[/{color}]")

    console.print(table)


@cli.command()
@click.argument("lead_id")
@store_options
@handle_errors
def explain(lead_id: str, data_path: Optional[str], config_path: Optional[str]):
    """Show how a lead's score was computed."""
    service = get_service(data_path, config_path)
    scorer = LeadScorer()
    result = scorer.score(service.leads.get(lead_id))
    console.print(Panel(scorer.explain_score(result), title=f"Lead {lead_id}"))


# ============================================================================
# COMMISSIONS
# ============================================================================

@cli.command()
@click.argument("lead_id")
@click.argument("amount", type=float)
@click.option("--days", type=float, help="Days to convert (default: since assignment)")
@click.option("--delay-hours", type=float, default=0, help="Follow-up delay in hours")
@store_options
@handle_errors
def calculate(
    lead_id: str,
    amount: float,
    days: Optional[float],
    delay_hours: float,
    data_path: Optional[str],
    config_path: Optional[str]
):
    """Calculate and record the commission for a converted lead."""
    service = get_service(data_path, config_path)
    award = service.calculate_commission(lead_id, amount, {
        'days_to_convert': days,
        'follow_up_delay_hours': delay_hours,
    })

    console.print(Panel.fit(
        f"{award.breakdown}\n\n"
        f"Payout date: [cyan]{award.payout_date:%Y-%m-%d}[/cyan]",
        title=f"Commission {award.id} - [bold green]{award.total_amount:,.2f}[/bold green]"
    ))


@cli.command()
@click.argument("commission_id")
@store_options
@handle_errors
def approve(commission_id: str, data_path: Optional[str], config_path: Optional[str]):
    """Approve a pending commission."""
    award = get_service(data_path, config_path).approve_commission(commission_id)
    console.print(f"[green]✓ Commission {award.id} approved[/green]")


@cli.command()
@click.argument("commission_id")
@click.argument("reason")
@store_options
@handle_errors
def dispute(commission_id: str, reason: str, data_path: Optional[str], config_path: Optional[str]):
    """Dispute a commission."""
    award = get_service(data_path, config_path).dispute_commission(commission_id, reason)
    console.print(f"[yellow]Commission {award.id} disputed[/yellow]")


@cli.command()
@click.argument("commission_id")
@click.option("--approve/--cancel", "approve_it", required=True, help="Approve or cancel the commission")
@click.option("--resolution", default="", help="Resolution note")
@store_options
@handle_errors
def resolve(commission_id: str, approve_it: bool, resolution: str, data_path: Optional[str], config_path: Optional[str]):
    """Resolve a disputed commission."""
    award = get_service(data_path, config_path).resolve_dispute(commission_id, approve_it, resolution)
    console.print(f"[green]✓ Commission {award.id} {award.status.value}[/green]")


@cli.command("auto-approve")
@click.option("--limit", type=float, help="Largest total to approve (default: config)")
@store_options
@handle_errors
def auto_approve(limit: Optional[float], data_path: Optional[str], config_path: Optional[str]):
    """Approve small pending commissions in bulk."""
    approved = get_service(data_path, config_path).approve_pending_commissions(limit)
    console.print(f"[green]✓ {len(approved)} commissions approved[/green]")


@cli.command()
@click.option("--agent", "agent_id", help="Only this agent's commissions")
@store_options
@handle_errors
def overdue(agent_id: Optional[str], data_path: Optional[str], config_path: Optional[str]):
    """List approved commissions still waiting for payment."""
    service = get_service(data_path, config_path)
    awards = service.overdue_commissions(agent_id)

    if not awards:
        console.print("[dim]No overdue commissions[/dim]")
        return

    table = Table(title=f"Overdue Commissions ({len(awards)})")
    table.add_column("Commission", style="dim")
    table.add_column("Agent", style="cyan")
    table.add_column("Approved")
    table.add_column("Amount", justify="right", style="bold red")
    for a in awards:
        table.add_row(a.id, a.agent_id, f"{a.approved_at:%Y-%m-%d}", f"{a.total_amount:,.2f}")
    console.print(table)


# ============================================================================
# PERFORMANCE & TIERS
# ============================================================================

@cli.command()
@click.argument("agent_id")
@click.option("--period", "-p", type=click.Choice(PERIODS), default="monthly")
@store_options
@handle_errors
def metrics(agent_id: str, period: str, data_path: Optional[str], config_path: Optional[str]):
    """Show an agent's performance metrics."""
    service = get_service(data_path, config_path)
    m = service.get_agent_performance_metrics(agent_id, period)

    table = Table(title=f"{agent_id} - {period} ({m.period.start:%Y-%m-%d} to {m.period.end:%Y-%m-%d})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Revenue", f"{m.total_revenue:,.2f}")
    table.add_row("Commission earned", f"{m.commission_earned:,.2f}")
    table.add_row("Avg commission / lead", f"{m.average_commission_per_lead:,.2f}")
    table.add_row("Revenue growth", f"{m.revenue_growth:g}%")
    table.add_row("Leads", str(m.leads_generated))
    table.add_row("Converted", str(m.leads_converted))
    table.add_row("Conversion rate", f"{m.conversion_rate:g}%")
    table.add_row("Avg lead value", f"{m.average_lead_value:,.2f}")
    table.add_row("Satisfaction", f"{m.customer_satisfaction:g}")
    table.add_row("Retention", f"{m.retention_rate:g}%")

    console.print(table)


@cli.command("evaluate-tier")
@click.argument("agent_id", required=False)
@click.option("--all", "all_agents", is_flag=True, help="Evaluate every active agent")
@store_options
@handle_errors
def evaluate_tier(agent_id: Optional[str], all_agents: bool, data_path: Optional[str], config_path: Optional[str]):
    """Promote agents whose monthly metrics qualify for a higher tier."""
    service = get_service(data_path, config_path)

    if all_agents:
        changes = service.evaluate_all_tiers()
        if not changes:
            console.print("[dim]No tier changes[/dim]")
        for c in changes:
            console.print(f"[green]↑ {c.agent_id}: {_tier(c.old_tier)} → {_tier(c.new_tier)}[/green]")
        return

    if not agent_id:
        raise click.UsageError("Give an AGENT_ID or --all")

    change = service.evaluate_agent_tier(agent_id)
    if change.changed:
        console.print(f"[green]↑ {agent_id}: {_tier(change.old_tier)} → {_tier(change.new_tier)}[/green]")
        return

    progress = service.tier_progress(agent_id)
    lines = [f"{agent_id} stays {_tier(change.old_tier)}"]
    if progress["next_tier"]:
        lines.append(f"\nProgress toward {_tier(progress['next_tier'])}:")
        for name, pct in progress["progress"].items():
            lines.append(f"  {name}: {pct:g}%")
    console.print(Panel.fit("\n".join(lines), title="Tier Evaluation"))


@cli.command()
@click.argument("agent_id")
@click.argument("points", type=int)
@click.option("--reason", required=True, help="What the points are for")
@store_options
@handle_errors
def points(agent_id: str, points: int, reason: str, data_path: Optional[str], config_path: Optional[str]):
    """Award (or deduct) tier points."""
    agent = get_service(data_path, config_path).add_tier_points(agent_id, points, reason)
    console.print(f"[green]✓ {agent_id} now has {agent.tier_points} tier points[/green]")


# ============================================================================
# PAYOUTS, LEADERBOARDS, REPORTS
# ============================================================================

@cli.command()
@click.option("--period", "-p", type=click.Choice(PERIODS), default="monthly")
@click.option("--agent", "agent_ids", multiple=True, help="Limit to these agents")
@store_options
@handle_errors
def payouts(period: str, agent_ids: Tuple[str, ...], data_path: Optional[str], config_path: Optional[str]):
    """Batch due commissions into payouts."""
    service = get_service(data_path, config_path)
    run = service.process_commission_payouts(period, list(agent_ids) if agent_ids else None)

    if not run.batches:
        console.print("[dim]No commissions due for payout[/dim]")
    else:
        table = Table(title=f"Payout Batches ({len(run.batches)})")
        table.add_column("Batch", style="dim")
        table.add_column("Agent", style="cyan")
        table.add_column("Commissions", justify="right")
        table.add_column("Total", justify="right")
        table.add_column("Fee", justify="right")
        table.add_column("Net", justify="right", style="bold green")

        for b in run.batches:
            table.add_row(
                b.id, b.agent_id, str(len(b.commission_ids)),
                f"{b.total_amount:,.2f}", f"{b.fee_total:,.2f}", f"{b.net_amount:,.2f}"
            )
        console.print(table)

    for f in run.skipped:
        console.print(f"[yellow]Skipped {f.agent_id}: {f.reason}[/yellow]")
    for f in run.failures:
        console.print(f"[red]Failed {f.agent_id}: {f.reason}[/red]")


@cli.command()
@click.argument("batch_id")
@click.option("--reference", default="", help="Payment reference")
@store_options
@handle_errors
def paid(batch_id: str, reference: str, data_path: Optional[str], config_path: Optional[str]):
    """Mark a payout batch and its commissions as paid."""
    batch = get_service(data_path, config_path).mark_batch_paid(batch_id, reference)
    console.print(f"[green]✓ Batch {batch.id} paid ({batch.net_amount:,.2f})[/green]")


@cli.command()
@click.option("--metric", "-m", type=click.Choice([m.value for m in LeaderboardMetric]), default="revenue")
@click.option("--period", "-p", type=click.Choice(PERIODS), default="monthly")
@click.option("--limit", "-n", type=int, help="Overall board size")
@click.option("--by", "group", type=click.Choice(["overall", "tier", "region"]), default="overall")
@store_options
@handle_errors
def leaderboard(
    metric: str,
    period: str,
    limit: Optional[int],
    group: str,
    data_path: Optional[str],
    config_path: Optional[str]
):
    """Show agent rankings."""
    service = get_service(data_path, config_path)
    boards = service.generate_leaderboards(period, metric, limit)

    if group == "overall":
        sections = {"Overall": boards.overall}
    elif group == "tier":
        sections = boards.by_tier
    else:
        sections = boards.by_region

    for title, entries in sections.items():
        table = Table(title=f"{title} - {metric} ({period})")
        table.add_column("#", justify="right", style="bold")
        table.add_column("Agent", style="cyan")
        table.add_column("Tier")
        table.add_column("Region")
        table.add_column("Score", justify="right")
        for e in entries:
            table.add_row(str(e.rank), e.agent_name or e.agent_id, _tier(e.tier), e.region, f"{e.score:,.2f}")
        console.print(table)

    for f in boards.failures:
        console.print(f"[red]Left out {f.agent_id}: {f.reason}[/red]")


@cli.command()
@click.option("--period", "-p", type=click.Choice(PERIODS), default="monthly")
@click.option("--detailed", is_flag=True, help="Include every commission")
@click.option("--output", "-o", type=click.Path(), help="Save report JSON to file")
@store_options
@handle_errors
def report(period: str, detailed: bool, output: Optional[str], data_path: Optional[str], config_path: Optional[str]):
    """Commission report for a period."""
    data = get_service(data_path, config_path).generate_commission_report(period, detailed=detailed)

    if output:
        with open(output, 'w') as f:
            json.dump(data, f, indent=2)
        console.print(f"[green]✓ Report saved to {output}[/green]")
        return

    summary = data["summary"]
    console.print(Panel.fit(
        f"Commissions: {summary['total_commissions']}\n"
        f"Total:       {summary['total_amount']:,.2f}\n"
        f"Average:     {summary['average_commission']:,.2f}",
        title=f"Commission Report {data['period']['start'][:10]} to {data['period']['end'][:10]}"
    ))

    table = Table(title="By Tier")
    table.add_column("Tier")
    table.add_column("Commissions", justify="right")
    table.add_column("Amount", justify="right")
    for name, row in data["breakdown"]["by_tier"].items():
        table.add_row(_tier(name), str(row["commissions"]), f"{row['amount']:,.2f}")
    console.print(table)


@cli.command()
@click.argument("agent_id")
@store_options
@handle_errors
def summary(agent_id: str, data_path: Optional[str], config_path: Optional[str]):
    """One agent's commissions by status."""
    data = get_service(data_path, config_path).agent_commission_summary(agent_id)
    total = data["total"]

    table = Table(title=f"{agent_id} commissions")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    table.add_column("Amount", justify="right")
    for status_name, row in data["by_status"].items():
        table.add_row(status_name, str(row["count"]), f"{row['total_amount']:,.2f}")
    console.print(table)

    console.print(Panel.fit(
        f"Pending:  {total['pending_amount']:,.2f}\n"
        f"Approved: {total['approved_amount']:,.2f}\n"
        f"Paid:     {total['paid_amount']:,.2f}",
        title=f"Earnings {total['total_earnings']:,.2f}"
    ))


@cli.command("run-jobs")
@store_options
def run_jobs(data_path: Optional[str], config_path: Optional[str]):
    """Run one pass of the scheduled approval, payout and tier jobs."""
    service = get_service(data_path, config_path)
    summary = CommissionTaskRunner(service).run_once()
    console.print(
        f"[green]✓ {summary['auto_approved']} auto-approved, {summary['batches']} payout batches, "
        f"{len(summary['promotions'])} promotions[/green] "
        f"[dim]({datetime.now():%Y-%m-%d %H:%M})[/dim]"
    )


if __name__ == "__main__":
    cli()
