"""
Snapshot channel: delivers published portfolio snapshots to subscribers.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotChannel(Generic[T]):
    """
    Holds the latest published snapshot and notifies subscribers asynchronously.

    Snapshots are delivered on a single worker thread, so every subscriber sees
    them in publish order. A subscriber that raises is logged and skipped.
    """

    def __init__(self, name: str = "portfolio"):
        self.name = name
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[T], Any]] = []
        self._latest: Optional[T] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{name}-channel")
        self._closed = False

    def latest(self) -> Optional[T]:
        """Most recently published snapshot, or None before the first publish."""
        return self._latest

    def subscribe(self, callback: Callable[[T], Any], replay: bool = False) -> Callable[[], None]:
        """
        Register a callback for future snapshots.

        Args:
            callback: Called with each snapshot on the channel's worker thread
            replay: Also deliver the current snapshot, if there is one

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)
            latest = self._latest
        if replay and latest is not None:
            self._submit([callback], latest)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, snapshot: T):
        """Swap in a new snapshot and schedule delivery to all subscribers."""
        with self._lock:
            self._latest = snapshot
            subscribers = list(self._subscribers)
        if subscribers:
            self._submit(subscribers, snapshot)

    def _submit(self, subscribers: List[Callable[[T], Any]], snapshot: T):
        if self._closed:
            logger.debug(f"Channel {self.name} closed, dropping snapshot")
            return
        self._executor.submit(self._deliver, subscribers, snapshot)

    def _deliver(self, subscribers: List[Callable[[T], Any]], snapshot: T):
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Subscriber {callback!r} on channel {self.name} failed: {e}")

    def close(self, wait: bool = True):
        """Stop delivering snapshots. Pending deliveries finish when wait is True."""
        self._closed = True
        self._executor.shutdown(wait=wait)
