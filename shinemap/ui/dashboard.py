"""Live terminal view of an engine using rich."""

from __future__ import annotations

import asyncio
import time

from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shinemap.engine import ShineEngine
from shinemap.grid.aggregator import GridCell
from shinemap.tracking.pulse import PulseType

_MAX_ROWS = 12


def _header(engine: ShineEngine) -> Panel:
    title = Text()
    title.append("shinemap", "bold white")
    title.append(f"  {time.strftime('%H:%M:%S')}  ", "dim")
    if engine.tracking:
        title.append("tracking", "green")
    else:
        title.append("stopped", "red")
    title.append(f"  flush every {engine.config.flush_interval:g}s", "dim")
    return Panel(title, style="bold", height=3)


def _anchor_line(engine: ShineEngine, now: int) -> Text:
    anchor, last_fix = engine.classifier.state()
    text = Text()
    if anchor is None:
        text.append("no anchor", "dim")
        return text
    held = (now - anchor.since) / 1000.0
    resting = now - anchor.since > engine.config.resting_threshold_ms
    text.append(f"anchor {anchor.lat:.6f},{anchor.lng:.6f} ")
    text.append(f"held {held:.0f}s", "magenta" if resting else "cyan")
    if last_fix is not None:
        text.append(f"  last fix {last_fix.lat:.6f},{last_fix.lng:.6f} floor {last_fix.floor}", "dim")
    text.append(f"  {engine.classifier.last_speed:.1f} m/s", "dim")
    return text


def _cell_table(cells: list[GridCell]) -> Table:
    table = Table(expand=True, box=None)
    table.add_column("cell")
    table.add_column("type")
    table.add_column("energy", justify="right")
    table.add_column("floor", justify="right")
    for cell in sorted(cells, key=lambda c: c.intensity, reverse=True)[:_MAX_ROWS]:
        color = "magenta" if cell.type is PulseType.RESTING else "blue"
        table.add_row(cell.grid_id, Text(cell.type.value, color), str(cell.intensity), str(cell.floor))
    if len(cells) > _MAX_ROWS:
        table.add_row(f"+{len(cells) - _MAX_ROWS} more", "", "", "")
    return table


def _footer(engine: ShineEngine) -> Text:
    up = engine.uploader
    text = Text()
    text.append(f"samples {engine.samples_seen} (dropped {engine.samples_dropped})  ")
    text.append(f"heartbeats {engine.heartbeat.beats}  ")
    text.append(f"sent {up.batches_sent}", "green")
    text.append("  ")
    text.append(f"lost {up.batches_lost}", "red" if up.batches_lost else "dim")
    text.append(f"  unsent {up.batches_unsent}", "dim")
    return text


def render(engine: ShineEngine, now: int | None = None) -> Group:
    """Build one frame for the engine's current state."""
    now = now if now is not None else engine.now()
    cells = engine.aggregator.snapshot()
    body = Group(_anchor_line(engine, now), _cell_table(cells))
    return Group(
        _header(engine),
        Panel(body, title=f"pending cells ({len(cells)})", title_align="left", border_style="blue"),
        Panel(_footer(engine), title="status", title_align="left", height=3),
    )


class Dashboard:
    def __init__(self, engine: ShineEngine, refresh: float = 1.0) -> None:
        self._engine = engine
        self._refresh = refresh

    async def run(self, shutdown: asyncio.Event) -> None:
        with Live(render(self._engine), refresh_per_second=2) as live:
            while not shutdown.is_set():
                live.update(render(self._engine))
                try:
                    await asyncio.wait_for(shutdown.wait(), timeout=self._refresh)
                except asyncio.TimeoutError:
                    pass
