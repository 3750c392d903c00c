"""Main entry point: sample stream → classify → aggregate → flush."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from shinemap.config import ShineConfig, apply_overrides, load_config_file, parse_interval
from shinemap.engine import ShineEngine
from shinemap.scheduler import AsyncioScheduler, ReplayScheduler
from shinemap.source import ClockedSource, StreamSampleSource, file_opener, stdin_opener, tcp_opener
from shinemap.uplink.client import RemoteStore

log = logging.getLogger("shinemap")

_SHUTDOWN_GRACE = 5.0


def _source_target(config: ShineConfig) -> str:
    return getattr(config, "_source", "-")


def _stall_timeout(config: ShineConfig) -> float | None:
    return getattr(config, "_stall_timeout", None)


def _realtime(config: ShineConfig) -> bool:
    return getattr(config, "_realtime", False)


def build_source(target: str, stall_timeout: float | None = None, pace: bool = False) -> StreamSampleSource:
    """'-' for stdin, 'tcp://host:port', or a path to a JSON-lines file."""
    if target == "-":
        return StreamSampleSource(stdin_opener(), stall_timeout=stall_timeout)
    if target.startswith("tcp://"):
        host, _, port = target.removeprefix("tcp://").rpartition(":")
        return StreamSampleSource(tcp_opener(host or "127.0.0.1", int(port)), stall_timeout=stall_timeout)
    return StreamSampleSource(file_opener(Path(target)), stall_timeout=stall_timeout, pace=pace)


def is_replay(target: str, realtime: bool = False) -> bool:
    """A file source not paced in real time."""
    return not realtime and target != "-" and not target.startswith("tcp://")


def build_config(argv: list[str] | None = None) -> ShineConfig:
    parser = argparse.ArgumentParser(prog="shinemap", description="Motion energy grid tracker")
    parser.add_argument("source", nargs="?", default="-", help="'-' (stdin), tcp://host:port or a .jsonl file")
    parser.add_argument("--server", type=str, default=None, help="Remote store base URL")
    parser.add_argument("--token", type=str, default=None, help="Upload credential")
    parser.add_argument("--flush", type=str, default=None, help="Flush interval, e.g. 60s or 1m")
    parser.add_argument("--stall-timeout", type=str, default=None, help="Report a silent source after e.g. 30s")
    parser.add_argument("--realtime", action="store_true", help="Replay files at recorded speed")
    parser.add_argument("--ui", action="store_true", help="Show live dashboard")
    parser.add_argument("--debug", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    config = ShineConfig()

    # Load from config file
    config_path = config.data_dir / "config.toml"
    apply_overrides(config, load_config_file(config_path))

    # Apply CLI overrides
    if args.server:
        config.base_url = args.server
    if args.token:
        config.token = args.token
    if args.flush:
        apply_overrides(config, {"flush_interval": args.flush})
    if args.ui:
        config.ui_enabled = True

    config._source = args.source  # type: ignore[attr-defined]
    config._realtime = args.realtime  # type: ignore[attr-defined]
    config._stall_timeout = (  # type: ignore[attr-defined]
        parse_interval(args.stall_timeout) if args.stall_timeout else None
    )
    return config


async def run(config: ShineConfig) -> None:
    """Run one tracking session until the source ends or a signal arrives."""
    store = RemoteStore(config.base_url, timeout=config.request_timeout)
    target = _source_target(config)
    source = build_source(target, stall_timeout=_stall_timeout(config), pace=_realtime(config))
    if is_replay(target, _realtime(config)):
        # Fast replay: time follows the recording, not the wall clock.
        scheduler = ReplayScheduler()
        source = ClockedSource(source, scheduler.advance_to)
    else:
        scheduler = AsyncioScheduler()
    engine = ShineEngine(config=config, source=source, store=store, scheduler=scheduler)

    shutdown = asyncio.Event()

    def handle_signal() -> None:
        log.info("shutting down...")
        shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await engine.load_remote_config()
    engine.start()
    engine.start_tracking()
    if not engine.token:
        log.warning("no upload credential, batches will be discarded")

    tasks = [asyncio.create_task(shutdown.wait())]
    if config.ui_enabled:
        from shinemap.ui.dashboard import Dashboard

        tasks.append(asyncio.create_task(Dashboard(engine, config.ui_refresh).run(shutdown)))

    subscription = engine.subscription
    try:
        while not shutdown.is_set():
            if subscription is not None and getattr(subscription, "done", False):
                log.info("source exhausted")
                break
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=1.0)
            except asyncio.TimeoutError:
                pass
    except asyncio.CancelledError:
        pass
    finally:
        shutdown.set()
        engine.close()
        await scheduler.wait_idle(timeout=_SHUTDOWN_GRACE)
        await asyncio.gather(*tasks, return_exceptions=True)
        await store.aclose()
        log.info(
            "shinemap stopped (%d samples, %d batches sent, %d lost)",
            engine.samples_seen,
            engine.uploader.batches_sent,
            engine.uploader.batches_lost,
        )


def main() -> None:
    config = build_config()
    asyncio.run(run(config))


if __name__ == "__main__":
    main()
