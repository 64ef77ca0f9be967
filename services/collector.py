"""Collection window for the two datapoint streams of one validation run.

Each source gets its own bounded queue. A single collector thread drains
both queues and owns the growing sequences; nothing else touches them until
the window is closed, after which :meth:`SampleCollector.snapshot` hands out
immutable copies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from queue import Empty, Full, Queue
from threading import Event, Lock, Thread
from typing import Dict, List, Optional, Set, Tuple

from models.records import Datapoint, SourceTag
from services.errors import ConfigurationError, NoDataCollected
from services.sensor_config import SensorType, SensorTypeConfig

logger = logging.getLogger(__name__)

_PUT_RETRY_S = 0.05


@dataclass(frozen=True)
class CollectedSnapshot:
    reference: Tuple[Datapoint, ...]
    device: Tuple[Datapoint, ...]


class SampleCollector:
    """Single-shot collector for reference and device-under-test datapoints."""

    def __init__(
        self,
        sensor_type: SensorType,
        config: SensorTypeConfig,
        queue_size: int = 1024,
        poll_interval: float = 0.01,
    ) -> None:
        self.sensor_type = sensor_type
        self.config = config
        self._poll_interval = poll_interval
        self._queues: Dict[SourceTag, Queue[Datapoint]] = {
            tag: Queue(maxsize=queue_size) for tag in SourceTag
        }
        self._collected: Dict[SourceTag, List[Datapoint]] = {tag: [] for tag in SourceTag}
        self._rejected: Set[SourceTag] = set()
        self._errors: List[str] = []
        self._complete = Event()
        self._closed = Event()
        self._wakeup = Event()
        self._dropped = 0
        # Held across the closed check and the enqueue so close() cannot slip between them.
        self._submit_lock = Lock()
        self._thread = Thread(
            target=self._run,
            name=f"collector-{sensor_type.value}",
            daemon=True,
        )

    def __enter__(self) -> "SampleCollector":
        self.start()
        return self

    def __exit__(self, *_exc) -> None:
        if not self._closed.is_set():
            self.close()

    @property
    def dropped(self) -> int:
        """Samples submitted after the window closed."""
        with self._submit_lock:
            return self._dropped

    def start(self) -> None:
        self._thread.start()

    def submit(self, datapoint: Datapoint) -> bool:
        """Queue a datapoint for its source. Returns False once the window has closed."""
        queue = self._queues[datapoint.source]
        while True:
            with self._submit_lock:
                if self._closed.is_set():
                    self._dropped += 1
                    return False
                try:
                    queue.put_nowait(datapoint)
                except Full:
                    pass
                else:
                    self._wakeup.set()
                    return True
            self._closed.wait(_PUT_RETRY_S)

    def mark_complete(self) -> None:
        """Signal that collection finished early."""
        self._complete.set()

    def close(self, timeout_s: Optional[float] = None) -> bool:
        """Close the window, waiting up to ``timeout_s`` for :meth:`mark_complete`.

        Returns True when the window closed through the completion latch.
        """
        if self._closed.is_set():
            return self._complete.is_set()
        completed = self._complete.is_set()
        if timeout_s is not None and not completed:
            completed = self._complete.wait(timeout_s)
        with self._submit_lock:
            self._closed.set()
        self._wakeup.set()
        if self._thread.is_alive():
            self._thread.join()
        logger.info(
            "Collection window closed",
            extra={
                "sensor_type": self.sensor_type.value,
                "status": "complete" if completed else "timeout",
            },
        )
        return completed

    def snapshot(self) -> CollectedSnapshot:
        if not self._closed.is_set():
            raise RuntimeError("Collection window is still open")
        if self._errors:
            raise ConfigurationError(self._errors[0])

        reference = tuple(self._collected[SourceTag.reference])
        device = tuple(self._collected[SourceTag.device_under_test])
        if not device:
            raise NoDataCollected("Did not find any device datapoints")
        if not reference:
            raise NoDataCollected("Did not find any reference datapoints")
        return CollectedSnapshot(reference=reference, device=device)

    def _run(self) -> None:
        while True:
            self._wakeup.wait(self._poll_interval)
            self._wakeup.clear()
            closing = self._closed.is_set()
            self._drain()
            if closing:
                return

    def _drain(self) -> None:
        for source, queue in self._queues.items():
            while True:
                try:
                    datapoint = queue.get_nowait()
                except Empty:
                    break
                self._ingest(source, datapoint)

    def _ingest(self, source: SourceTag, datapoint: Datapoint) -> None:
        if source in self._rejected:
            return
        length = len(datapoint.values)
        expected = self.config.expected_values_length
        if length != expected:
            message = (
                f"Incorrect {source.value} datapoint values length {length} "
                f"when expecting {expected}"
            )
            logger.error(message, extra={"sensor_type": self.sensor_type.value, "source": source.value})
            self._errors.append(message)
            self._rejected.add(source)
            return
        self._collected[source].append(datapoint)
