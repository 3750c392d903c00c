"""The tracking engine: one instance per device session.

Three drivers touch the same state: sample arrival, the heartbeat tick and the
flush tick. The anchor lives in the classifier and the cell table in the
aggregator, each behind its own lock, so drivers may call in from any thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from shinemap.config import ShineConfig, apply_remote
from shinemap.errors import ConfigLoadError, SensorError
from shinemap.grid.aggregator import GridAggregator, PendingBatch
from shinemap.scheduler import AsyncioScheduler, Scheduler
from shinemap.source import SampleSource, Subscription
from shinemap.tracking.classifier import MotionClassifier
from shinemap.tracking.heartbeat import Heartbeat
from shinemap.tracking.pulse import Pulse, Sample
from shinemap.uplink.uploader import BatchStore, CircuitBreakerUploader

log = logging.getLogger(__name__)


class ConfigStore(Protocol):
    async def fetch_config(self) -> dict: ...


class ShineEngine:
    def __init__(
        self,
        config: ShineConfig | None = None,
        source: SampleSource | None = None,
        store: BatchStore | None = None,
        scheduler: Scheduler | None = None,
        token: str | None = None,
    ) -> None:
        self.config = config or ShineConfig()
        self.token = token if token is not None else self.config.token
        self._source = source
        self._store = store
        self._scheduler = scheduler or AsyncioScheduler()

        self.classifier = MotionClassifier(self.config)
        self.aggregator = GridAggregator()
        self.heartbeat = Heartbeat(self.classifier, self.aggregator, self.config)
        self.uploader = CircuitBreakerUploader(
            self.aggregator,
            store,
            token=lambda: self.token,
            spawn=self._scheduler.spawn,
        )

        self._heartbeat_timer = self._scheduler.every(
            self.config.heartbeat_interval, self._on_heartbeat, name="heartbeat",
        )
        self._flush_timer = self._scheduler.every(
            self.config.flush_interval, self._on_flush, name="flush",
        )

        self._lock = threading.Lock()
        self._tracking = False
        self._subscription: Subscription | None = None
        self.samples_seen = 0
        self.samples_dropped = 0

    # -- Public API --

    @property
    def tracking(self) -> bool:
        return self._tracking

    @property
    def subscription(self) -> Subscription | None:
        return self._subscription

    @property
    def flush_running(self) -> bool:
        return self._flush_timer.running

    def now(self) -> int:
        """Engine clock in epoch ms; recorded time during a fast replay."""
        return self._scheduler.now()

    def start(self) -> None:
        """Start the flush timer. It keeps running until close()."""
        self._flush_timer.start()

    def close(self) -> None:
        self.stop_tracking()
        self._flush_timer.stop()

    async def load_remote_config(self, store: ConfigStore | None = None) -> list[str]:
        """Pull tuning from the remote store. Failures keep the current values."""
        store = store or self._store
        if store is None or not hasattr(store, "fetch_config"):
            return []
        try:
            payload = await store.fetch_config()
        except ConfigLoadError as e:
            log.warning("remote config unavailable, using defaults: %s", e)
            return []
        changed = apply_remote(self.config, payload)
        if changed:
            log.info("remote config applied: %s", ", ".join(changed))
        if "flush_interval_ms" in changed:
            self._flush_timer.set_period(self.config.flush_interval)
        return changed

    def start_tracking(self) -> None:
        with self._lock:
            if self._tracking:
                return
            self._tracking = True
        if self._source is not None:
            self._subscription = self._source.subscribe(self.on_sample, self.on_sample_error)
        self._heartbeat_timer.start()
        log.info("tracking started")

    def stop_tracking(self) -> None:
        """Stop the sample subscription and heartbeat. Safe to call repeatedly."""
        with self._lock:
            if not self._tracking:
                return
            self._tracking = False
            subscription, self._subscription = self._subscription, None
            self.classifier.reset()
        if subscription is not None:
            subscription.cancel()
        self._heartbeat_timer.stop()
        log.info("tracking stopped")
        if self.config.flush_on_stop:
            self.flush()

    def on_sample(self, sample: Sample) -> Pulse | None:
        # Held across classify so stop_tracking cannot reset the anchor mid-sample.
        with self._lock:
            if not self._tracking:
                return None
            self.samples_seen += 1
            try:
                pulse = self.classifier.classify(sample, self._scheduler.now())
                if pulse is None:
                    self.samples_dropped += 1
                    return None
                self.aggregator.merge(pulse)
            except Exception:
                self.samples_dropped += 1
                log.exception("failed to process sample")
                return None
        return pulse

    def on_sample_error(self, error: SensorError) -> None:
        log.warning("sample source error: %s", error)

    def flush(self) -> PendingBatch | None:
        return self.uploader.flush()

    # -- Timer callbacks --

    def _on_heartbeat(self) -> None:
        if not self._tracking:
            return
        pulse = self.heartbeat.tick(self._scheduler.now())
        if pulse is not None:
            log.debug("heartbeat resting pulse at %.6f,%.6f", pulse.lat, pulse.lng)

    def _on_flush(self) -> None:
        self.flush()
