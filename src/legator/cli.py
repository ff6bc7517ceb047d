"""
CLI — operator interface for the Legator coordination substrate.

Commands:
    legator events publish   — Publish an AgentEvent
    legator events list      — Show events a consumer has not seen yet
    legator events consume   — Acknowledge an event on behalf of an agent
    legator events gc        — Delete events past their TTL
    legator anomaly scan     — Run one anomaly detection pass
    legator serve            — Run the detector and event reaper until stopped
    legator config show      — Print the effective configuration
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from legator import __version__
from legator.core import LegatorConfig, load_config
from legator.core.durations import parse_duration
from legator.core.resources import AgentEvent, EventSeverity
from legator.store import ObjectStore, StoreError, open_store

console = Console()

_SEVERITIES = [s.value for s in EventSeverity]


def _run(config: LegatorConfig, action: Callable[[ObjectStore], Awaitable[Any]]) -> Any:
    """Open the configured store, run one coroutine against it, close it."""

    async def runner() -> Any:
        store = open_store(config.store)
        try:
            return await action(store)
        finally:
            await store.close()

    try:
        return asyncio.run(runner())
    except (StoreError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _parse_labels(pairs: tuple[str, ...]) -> dict[str, str]:
    labels = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--label")
        labels[key] = value
    return labels


def _events_table(events: list[AgentEvent]) -> Table:
    table = Table(title="Agent events")
    table.add_column("Name", style="bold")
    table.add_column("Source")
    table.add_column("Type")
    table.add_column("Severity")
    table.add_column("Target")
    table.add_column("Summary")
    for e in events:
        table.add_row(
            e.name,
            e.spec.source_agent,
            e.spec.event_type,
            e.spec.severity.value,
            e.spec.target_agent or "*",
            e.spec.summary,
        )
    return table


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_file", type=click.Path(path_type=Path), default=None,
              help="Config YAML (default: ~/.legator/config.yaml)")
@click.option("--log-level", default="INFO", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def main(ctx: click.Context, config_file: Path | None, log_level: str) -> None:
    """Legator — event bus and anomaly detection for infrastructure agents."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    ctx.obj = load_config(config_file)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.group()
def events() -> None:
    """Publish, inspect and consume agent events."""


@events.command()
@click.argument("source_agent")
@click.argument("event_type")
@click.option("--namespace", "-n", default=None)
@click.option("--severity", "-s", type=click.Choice(_SEVERITIES), default="info", show_default=True)
@click.option("--summary", default="")
@click.option("--detail", default="")
@click.option("--target", "target_agent", default="", help="Only this agent may consume the event")
@click.option("--label", "labels", multiple=True, help="key=value, repeatable")
@click.option("--ttl", default="24h", show_default=True)
@click.pass_obj
def publish(config: LegatorConfig, source_agent, event_type, namespace, severity,
            summary, detail, target_agent, labels, ttl):
    """Publish an event from SOURCE_AGENT."""
    from legator.events import EventBus, PublishParams

    if ttl:
        try:
            parse_duration(ttl)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--ttl")

    params = PublishParams(
        source_agent=source_agent,
        namespace=namespace or config.events.namespace,
        event_type=event_type,
        severity=EventSeverity(severity),
        summary=summary,
        detail=detail,
        target_agent=target_agent,
        labels=_parse_labels(labels),
        ttl=ttl,
    )
    event = _run(config, lambda store: EventBus(store).publish(params))
    console.print(f"[green]>[/green] Published {event.namespace}/[bold]{event.name}[/bold]")


@events.command("list")
@click.option("--consumer", "-c", required=True, help="Agent polling for events")
@click.option("--namespace", "-n", default=None)
@click.option("--type", "event_type", default="")
@click.option("--source", "source_agent", default="")
@click.option("--min-severity", type=click.Choice(_SEVERITIES), default=None)
@click.pass_obj
def list_events(config: LegatorConfig, consumer, namespace, event_type, source_agent, min_severity):
    """List events CONSUMER has not consumed yet."""
    from legator.events import EventBus, SubscribeParams

    params = SubscribeParams(
        namespace=namespace or config.events.namespace,
        consumer_agent=consumer,
        event_type=event_type,
        source_agent=source_agent,
        min_severity=EventSeverity(min_severity) if min_severity else None,
    )
    found = _run(config, lambda store: EventBus(store).find_new_events(params))
    if not found:
        console.print("[dim]No new events.[/dim]")
        return
    console.print(_events_table(found))


@events.command()
@click.argument("event_name")
@click.option("--agent", "-a", required=True)
@click.option("--run", "run_name", default="", help="Run triggered by this event")
@click.option("--namespace", "-n", default=None)
@click.pass_obj
def consume(config: LegatorConfig, event_name, agent, run_name, namespace):
    """Mark EVENT_NAME as consumed by an agent."""
    from legator.events import EventBus

    ns = namespace or config.events.namespace
    _run(config, lambda store: EventBus(store).consume(event_name, ns, agent, run_name))
    console.print(f"[green]>[/green] {event_name} consumed by {agent}")


@events.command()
@click.option("--namespace", "-n", default=None)
@click.option("--default-ttl", default=None, help="TTL for events without one, e.g. 24h")
@click.pass_obj
def gc(config: LegatorConfig, namespace, default_ttl):
    """Delete events older than their TTL."""
    from legator.events import EventBus

    ns = namespace or config.events.namespace
    try:
        ttl = parse_duration(default_ttl) if default_ttl else config.events.default_ttl
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--default-ttl")
    deleted = _run(config, lambda store: EventBus(store).clean_expired(ns, ttl))
    console.print(f"[green]>[/green] Deleted {deleted} expired event(s) in {ns}")


# ---------------------------------------------------------------------------
# Anomaly detection
# ---------------------------------------------------------------------------


@main.group()
def anomaly() -> None:
    """Anomaly detection over run history."""


@anomaly.command()
@click.option("--namespace", "-n", default=None)
@click.pass_obj
def scan(config: LegatorConfig, namespace):
    """Run a single anomaly scan."""
    from legator.anomaly import AnomalyDetector

    cfg = config.anomaly
    if namespace:
        cfg = cfg.model_copy(update={"namespace": namespace})

    result = _run(config, lambda store: AnomalyDetector(store, cfg).scan_once())

    table = Table(title=f"Anomaly scan: {cfg.namespace}", show_header=False)
    table.add_row("Runs considered", str(result.runs_considered))
    table.add_row("Events emitted", str(result.events_emitted))
    table.add_row("Already recorded", str(result.events_skipped))
    table.add_row("Errors", str(result.errors))
    console.print(table)


# ---------------------------------------------------------------------------
# Controller process
# ---------------------------------------------------------------------------


async def _serve(config: LegatorConfig, store: ObjectStore, is_leader: bool) -> None:
    from legator.anomaly import AnomalyDetector
    from legator.events import EventBus, EventReaper
    from legator.notifications import build_router
    from legator.runtime import Manager

    router = build_router(config.notifications)
    await router.connect_all()

    bus = EventBus(store, notifier=router)
    manager = Manager()
    manager.add(AnomalyDetector(store, config.anomaly, notifier=router))
    manager.add(EventReaper(
        bus,
        config.events.namespace,
        default_ttl=config.events.default_ttl,
        interval=config.events.gc_interval,
    ))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows

    try:
        await manager.run(stop_event, is_leader=is_leader)
    finally:
        await router.disconnect_all()


@main.command()
@click.option("--no-leader", is_flag=True, help="Skip duties that require leader election")
@click.pass_obj
def serve(config: LegatorConfig, no_leader):
    """Run the anomaly detector and event reaper until interrupted."""
    if config.store.backend == "memory":
        console.print("[yellow]Warning: memory store, nothing is shared or persisted.[/yellow]")
    console.print(f"[bold green]Legator {__version__}[/bold green] serving "
                  f"(store: {config.store.backend})")
    _run(config, lambda store: _serve(config, store, is_leader=not no_leader))


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@main.group("config")
def config_group() -> None:
    """Inspect configuration."""


@config_group.command()
@click.pass_obj
def show(config: LegatorConfig):
    """Print the effective configuration as YAML."""
    data = config.model_dump(mode="json")
    if data["store"].get("token"):
        data["store"]["token"] = "***"
    console.print(yaml.dump(data, default_flow_style=False), end="", markup=False)


if __name__ == "__main__":
    main()
