"""CLI entry point for Agent Dispatch."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from dispatch import __version__
from dispatch.errors import DispatchError

if TYPE_CHECKING:
    from dispatch.engine.orchestrator import Orchestrator

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="dispatch")
@click.option("--config", "config_path", default=None, help="Path to config JSON")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug)")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: int) -> None:
    """Agent Dispatch: capacity-aware task assignment for AI agent pools."""
    from dispatch.log import setup_logging

    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    setup_logging(level, console=Console(stderr=True))
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _get_orchestrator(ctx: click.Context) -> Orchestrator:
    from dispatch.config import load_config
    from dispatch.engine.orchestrator import Orchestrator

    try:
        config = load_config(ctx.obj.get("config_path"))
    except DispatchError as e:
        raise click.ClickException(str(e)) from e
    return Orchestrator(config)


@main.command()
@click.pass_context
def agents(ctx: click.Context) -> None:
    """Show the agent pool."""
    orch = _get_orchestrator(ctx)

    table = Table(title="Agent Pool")
    table.add_column("Agent ID", style="cyan")
    table.add_column("Kind")
    table.add_column("Capabilities", max_width=40)
    table.add_column("Capacity", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Quality", justify="right", style="green")
    table.add_column("Avg Response", justify="right")
    table.add_column("State", style="yellow")

    for agent in orch.agent_status():
        table.add_row(
            agent.id,
            agent.kind.value,
            ", ".join(sorted(agent.capabilities)),
            f"{len(agent.current_tasks)}/{agent.max_concurrent}",
            f"${agent.cost_per_task:.2f}",
            f"{agent.quality_score:.2f}",
            f"{agent.average_response_time_ms / 1000:.1f}s",
            agent.availability.value,
        )

    console.print(table)


@main.command()
@click.argument("kind")
@click.option("--priority", default="medium", help="low, medium, high or critical")
@click.option("--complexity", default=5, type=click.IntRange(1, 10), help="Task complexity 1-10")
@click.option("--cap", "caps", multiple=True, help="Required capability (repeatable)")
@click.pass_context
def rank(ctx: click.Context, kind: str, priority: str, complexity: int, caps: tuple[str, ...]) -> None:
    """Score the pool for a hypothetical task of KIND and show the pick."""
    from dispatch.engine.models import TaskRequest
    from dispatch.scoring.agent_scorer import rank_agents

    orch = _get_orchestrator(ctx)
    try:
        task = TaskRequest(
            id="preview",
            kind=kind,
            priority=priority,
            complexity=complexity,
            required_capabilities=frozenset(caps),
        )
        prediction = orch.predict(task)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    except DispatchError as e:
        raise click.ClickException(str(e)) from e

    capable = {agent_id for agent_id, _ in prediction.candidates}
    scored = rank_agents(
        [a for a in orch.agent_status() if a.id in capable], task, orch.config
    )

    table = Table(title=f"Ranking for {task.kind.value} ({task.priority.value}, c={complexity})")
    table.add_column("Agent ID", style="cyan")
    table.add_column("Score", style="bold")
    table.add_column("Quality")
    table.add_column("Avail")
    table.add_column("Cost")
    table.add_column("Speed")
    table.add_column("Match")
    table.add_column("Load")
    table.add_column("Bonus")

    for s in scored:
        b = s.breakdown
        marker = " ✓" if s.agent_id == prediction.agent_id else ""
        table.add_row(
            s.agent_id + marker,
            f"{s.score:.3f}",
            f"{b.quality:.3f}",
            f"{b.availability:.3f}",
            f"{b.cost:.3f}",
            f"{b.speed:.3f}",
            f"{b.capability:.3f}",
            f"{b.load:.3f}",
            f"{b.bonus:.2f}",
        )

    console.print(table)
    console.print(
        f"[bold]Selected:[/bold] {prediction.agent_id} "
        f"(confidence {prediction.confidence:.0%})"
    )


@main.command()
@click.option("--tasks", "task_count", default=50, help="Number of tasks to submit")
@click.option("--seed", default=7, help="Random seed for the synthetic workload")
@click.option("--completion-rate", default=0.5, help="Chance a running task completes per step")
@click.option("--failure-rate", default=0.1, help="Chance a completion is a failure")
@click.option("--rebalance-every", default=10, help="Run a rebalance pass every N steps")
@click.pass_context
def simulate(
    ctx: click.Context,
    task_count: int,
    seed: int,
    completion_rate: float,
    failure_rate: float,
    rebalance_every: int,
) -> None:
    """Run a synthetic workload through submit/report/rebalance."""
    from dispatch.engine.models import Priority, TaskKind, TaskRequest

    orch = _get_orchestrator(ctx)
    rng = random.Random(seed)
    kinds = list(TaskKind)
    priorities = [Priority.LOW, Priority.MEDIUM, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]

    rejected = 0
    migrated = 0
    for step in range(1, task_count + 1):
        task = TaskRequest(
            id=f"sim-{step:04d}",
            kind=rng.choice(kinds),
            priority=rng.choice(priorities),
            complexity=rng.randint(1, 10),
        )
        try:
            if task.priority == Priority.CRITICAL:
                orch.assign_critical(task)
            else:
                orch.submit(task)
        except DispatchError:
            rejected += 1

        for assignment in orch.active_assignments():
            if rng.random() < completion_rate:
                success = rng.random() >= failure_rate
                orch.report(
                    assignment.task_id,
                    success,
                    round(rng.uniform(0.6, 1.0), 2) if success else 0.0,
                    rng.uniform(1_000, 60_000),
                )

        if rebalance_every > 0 and step % rebalance_every == 0:
            migrated += len(orch.rebalance())

    m = orch.system_metrics()
    table = Table(title="Simulation Metrics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Tasks submitted", str(task_count))
    table.add_row("Assigned", str(m.total_tasks_assigned))
    table.add_row("Rejected", str(rejected))
    table.add_row("Completed", str(m.total_tasks_completed))
    table.add_row("Success rate", f"{m.task_success_rate:.0%}")
    table.add_row("Still active", str(m.active_assignments))
    table.add_row("Migrated", str(migrated))
    table.add_row("Capacity overrides", str(m.capacity_overrides))
    table.add_row("Avg assignment time", f"{m.average_assignment_time_ms:.3f} ms")
    table.add_row("Utilization", f"{m.resource_utilization:.0%}")
    console.print(table)


@main.command()
@click.option("--port", default=3850, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.pass_context
def serve(ctx: click.Context, port: int, host: str) -> None:
    """Start the HTTP API with the background rebalancer."""
    import uvicorn

    from dispatch.api.server import create_app

    orch = _get_orchestrator(ctx)
    uvicorn.run(create_app(orch), host=host, port=port)
