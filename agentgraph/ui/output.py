"""Output rendering for the command line."""

import json
from typing import Any, Iterable, Mapping

from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from ..runtime.executor import EventType, RunEvent, RunOutcome
from .theme import DEFAULT_THEME, console, err_console


def render_error(text: str) -> None:
    """Render an error message."""
    palette = DEFAULT_THEME.palette
    err = Text()
    err.append("err ", style=f"bold {palette.error}")
    err.append("| ", style=f"dim {palette.text_muted}")
    err.append(text, style=palette.error)
    err_console.print(err)


def render_event(event: RunEvent) -> None:
    """One progress line per scheduling event."""
    palette = DEFAULT_THEME.palette
    labels = {
        EventType.NODE_STARTED: ("run ", palette.accent),
        EventType.NODE_RETRYING: ("rty ", palette.warn),
        EventType.NODE_COMPLETED: ("ok  ", palette.ok),
        EventType.NODE_FAILED: ("fail", palette.error),
        EventType.NODE_SKIPPED: ("skip", palette.warn),
        EventType.CHECKPOINT_APPROVED: ("appr", palette.ok),
        EventType.CHECKPOINT_REJECTED: ("rej ", palette.error),
    }
    if event.type not in labels:
        return
    label, color = labels[event.type]
    line = Text()
    line.append(f"{label} ", style=f"bold {color}")
    line.append("| ", style=f"dim {palette.text_muted}")
    line.append(event.node_id or "", style=palette.text_bright)
    detail = ""
    if event.type is EventType.NODE_RETRYING:
        detail = f"attempt {event.data.get('attempt')} failed, retrying in {event.data.get('delay', 0):.1f}s"
    elif event.type is EventType.NODE_FAILED:
        detail = (event.data.get("error") or {}).get("message", "")
    elif event.type is EventType.NODE_SKIPPED:
        detail = event.data.get("reason", "")
    if detail:
        line.append(f"  {detail}", style=f"dim {palette.text}")
    err_console.print(line)


def render_checkpoint(event: RunEvent) -> None:
    """Show the output a reviewer is asked to approve."""
    body = json.dumps(event.data.get("payload") or {}, indent=2, default=str)
    title = f"checkpoint: {event.node_id} ({event.data.get('agent_type', '?')})"
    err_console.print(Panel(
        Syntax(body, "json", word_wrap=True),
        title=title,
        border_style=DEFAULT_THEME.palette.pending,
        expand=False,
    ))


def render_run_summary(outcome: RunOutcome) -> None:
    """Per-node status table followed by run totals."""
    theme = DEFAULT_THEME
    diag = outcome.diagnostics
    table = Table(title=f"{outcome.workflow_id}  [{outcome.run_id}]", title_justify="left")
    table.add_column("Node")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Detail", overflow="fold")

    for node_id, status in diag.node_statuses.items():
        result = outcome.results.get(node_id)
        elapsed = diag.timings.get(node_id, {}).get("elapsed_ms")
        detail = ""
        if node_id in diag.errors:
            detail = diag.errors[node_id].message
        elif node_id in diag.skip_reasons:
            detail = diag.skip_reasons[node_id]
        table.add_row(
            node_id,
            Text(status, style=theme.status_style(status)),
            str(diag.attempts.get(node_id, 0)),
            f"{elapsed / 1000:.1f}s" if elapsed is not None else "-",
            f"${result.metadata.cost_usd:.4f}" if result else "-",
            detail,
        )
    console.print(table)

    totals = Text()
    totals.append(outcome.status.value, style=f"bold {theme.status_style(outcome.status.value)}")
    totals.append(f"  ${diag.total_cost_usd:.4f}", style=theme.palette.text_bright)
    totals.append(f"  {diag.tokens.format()} tokens", style=f"dim {theme.palette.text}")
    totals.append(f"  {diag.elapsed_ms / 1000:.1f}s", style=f"dim {theme.palette.text}")
    console.print(totals)


def render_merged_result(merged: Mapping[str, Any]) -> None:
    console.print(Syntax(json.dumps(merged, indent=2, default=str), "json", word_wrap=True))


def render_table(title: str, columns: Iterable[str], rows: Iterable[Iterable[Any]]) -> None:
    """Plain listing table (agents, workflows, estimates)."""
    table = Table(title=title, title_justify="left")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*(str(v) for v in row))
    console.print(table)
