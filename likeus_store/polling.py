"""Fixed-interval polling that republishes externally changed records.

Every collection gets its own poller. A tick asks the backend for records
updated after the current watermark (minus a small overlap window), publishes
each unseen record as ``<entity>Updated`` and moves the watermark to the
newest ``updatedAt`` it saw, or to the tick's start time when nothing changed.
Records already delivered inside the overlap window are skipped, so a change
landing on the boundary is delivered at least once without repeating forever.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from .client import Collection, DataClient
from .errors import ApiError
from .events import ChangeEvent, EventBus
from .utils import parse_iso_date, utcnow

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
# The watermark mixes client time (quiet ticks) with server updatedAt stamps, so
# the overlap must exceed the clock skew between the two or writes are missed.
DEFAULT_OVERLAP = timedelta(seconds=1)
STOP_TIMEOUT = 10.0

StopFn = Callable[[], None]
SeenKey = Tuple[str, str]


def _halt(stop_event: threading.Event, thread: Optional[threading.Thread]) -> None:
    stop_event.set()
    if thread is None or thread is threading.current_thread():
        return
    thread.join(STOP_TIMEOUT)
    if thread.is_alive():
        logger.warning("Poller %s did not stop within %ss", thread.name, STOP_TIMEOUT)


class CollectionPoller:
    def __init__(
        self,
        collection: Collection,
        bus: EventBus,
        interval: float = DEFAULT_INTERVAL,
        overlap: timedelta = DEFAULT_OVERLAP,
        clock: Callable[[], datetime] = utcnow,
    ):
        if interval <= 0:
            raise ValueError("Polling interval must be positive.")
        self.collection = collection
        self.bus = bus
        self.interval = interval
        self.overlap = overlap
        self._clock = clock
        self.watermark: datetime = clock()
        self._seen: Dict[SeenKey, datetime] = {}
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> int:
        """Run one poll. Returns the number of records republished."""
        with self._lock:
            started_at = self._clock()
            since = self.watermark - self.overlap
            try:
                records = self.collection.changed_since(since)
            except ApiError as exc:
                logger.warning("Polling error for %s: %s", self.collection.name, exc)
                return 0

            delivered = 0
            newest: Optional[datetime] = None
            fresh_seen: Dict[SeenKey, datetime] = {}
            for record in records:
                updated_at = parse_iso_date(record.get("updatedAt"))
                seen_key = (str(record.get("_id")), str(record.get("updatedAt")))
                if updated_at is not None:
                    fresh_seen[seen_key] = updated_at
                if seen_key in self._seen:
                    continue
                if updated_at is not None and (newest is None or updated_at > newest):
                    newest = updated_at
                self.bus.publish(ChangeEvent("updated", self.collection.entity_type, record))
                delivered += 1

            if newest is None:
                self.watermark = started_at
            else:
                self.watermark = max(self.watermark, newest)
            boundary = self.watermark - self.overlap
            self._seen = {
                key: stamp
                for key, stamp in {**self._seen, **fresh_seen}.items()
                if stamp > boundary
            }
            return delivered

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Unexpected polling failure for %s", self.collection.name)

    def start(self) -> StopFn:
        self.stop()
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(stop_event,),
            name=f"poll-{self.collection.name}",
            daemon=True,
        )
        self._stop_event = stop_event
        self._thread = thread
        thread.start()
        logger.debug("Started polling %s every %ss", self.collection.name, self.interval)

        def stop() -> None:
            if self._stop_event is stop_event:
                self._stop_event = None
                self._thread = None
            _halt(stop_event, thread)

        return stop

    def stop(self) -> None:
        stop_event, thread = self._stop_event, self._thread
        self._stop_event = None
        self._thread = None
        if stop_event is not None:
            _halt(stop_event, thread)


class PollingSynchronizer:
    def __init__(
        self,
        client: DataClient,
        bus: EventBus,
        interval: float = DEFAULT_INTERVAL,
        overlap: timedelta = DEFAULT_OVERLAP,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.pollers: List[CollectionPoller] = [
            CollectionPoller(collection, bus, interval=interval, overlap=overlap, clock=clock)
            for collection in client.collections
        ]

    def poller_for(self, collection_name: str) -> CollectionPoller:
        for poller in self.pollers:
            if poller.collection.name == collection_name:
                return poller
        raise KeyError(collection_name)

    def tick_all(self) -> int:
        return sum(poller.tick() for poller in self.pollers)

    def start_all(self) -> StopFn:
        stoppers = [poller.start() for poller in self.pollers]

        def stop_all() -> None:
            for stop in stoppers:
                stop()

        return stop_all

    def stop_all(self) -> None:
        for poller in self.pollers:
            poller.stop()
