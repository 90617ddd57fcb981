"""Process-wide holder of the latest aggregate snapshot."""

import threading

from usercount.validator import AggregateSnapshot


class SnapshotCache:
    """Single-writer, multi-reader store for the last published snapshot.

    The aggregator is the only writer. Readers get the snapshot object
    itself; snapshots are frozen, so sharing it is safe. Publishing swaps
    the reference under a lock, so a reader sees either the previous
    snapshot or the new one, never a mix.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: AggregateSnapshot | None = None
        self._ever_populated = False

    def publish(self, snapshot: AggregateSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            self._ever_populated = True

    def current_snapshot(self) -> AggregateSnapshot | None:
        """Return the latest snapshot, or None before the first success."""
        with self._lock:
            return self._snapshot

    @property
    def ever_populated(self) -> bool:
        with self._lock:
            return self._ever_populated
