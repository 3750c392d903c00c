from __future__ import annotations

from rich.console import Console

from shinemap.config import ShineConfig
from shinemap.engine import ShineEngine
from shinemap.scheduler import ManualScheduler
from shinemap.tracking.pulse import Sample
from shinemap.ui.dashboard import render


def test_render_lists_pending_cells() -> None:
    scheduler = ManualScheduler()
    engine = ShineEngine(config=ShineConfig(), scheduler=scheduler)
    engine.start_tracking()
    engine.on_sample(Sample(lat=22.3, lng=114.17, time=0))
    scheduler.advance(12.0)

    console = Console(record=True, width=120)
    console.print(render(engine, now=scheduler.now()))
    text = console.export_text()

    assert "pending cells (1)" in text
    assert "223000_1141700" in text
    assert "resting" in text
    assert "tracking" in text
