"""
Console channel — Rich terminal output for published events.

The default when no external channels are configured, and what
`legator serve` uses to show events as they are emitted.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

from legator.core.resources import AgentEvent, EventSeverity
from legator.notifications.channel import NotificationChannel

_SEVERITY_STYLE = {
    EventSeverity.INFO: "blue",
    EventSeverity.WARNING: "yellow",
    EventSeverity.CRITICAL: "bold red",
}

_SEVERITY_EMOJI = {
    EventSeverity.INFO: "\u2139\ufe0f",       # information
    EventSeverity.WARNING: "\u26a0\ufe0f",    # warning
    EventSeverity.CRITICAL: "\U0001f6a8",     # rotating light
}


class ConsoleChannel(NotificationChannel):
    """Rich terminal output channel."""

    name: str = "console"

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    async def send(self, event: AgentEvent) -> None:
        spec = event.spec
        emoji = _SEVERITY_EMOJI.get(spec.severity, "\u2139\ufe0f")
        style = _SEVERITY_STYLE.get(spec.severity, "blue")
        title = f"{emoji} [{spec.event_type}] {spec.source_agent}"

        if spec.severity == EventSeverity.CRITICAL:
            body = spec.summary
            if spec.detail:
                body += f"\n\n{spec.detail}"
            self._console.print(Panel(body, title=title, border_style=style))
            return

        self._console.print(f"\n[bold {style}]{title}[/bold {style}]")
        if spec.summary:
            self._console.print(f"  {spec.summary}")
