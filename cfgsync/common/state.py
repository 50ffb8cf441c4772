"""
Shared State Management

Holds the reference to the current configuration snapshot.
Readers and writers only ever exchange whole snapshots. Writers are
serialized by the store, so installs happen in the order snapshots were read.
"""

import threading
import time
from typing import Generic, TypeVar

T = TypeVar("T")


class SnapshotCell(Generic[T]):
    """
    Atomic reference cell.

    The lock guards only the reference swap/read and is never held across I/O,
    so a reader sees either the previous or the next value, never a mix.
    """

    def __init__(self, initial: T):
        self._lock = threading.Lock()
        self._value = initial
        self._version = 0
        self._swapped_at: float | None = None

    def get(self) -> T:
        """Return the current value"""
        with self._lock:
            return self._value

    def swap(self, new_value: T) -> T:
        """
        Replace the current value.

        Returns:
            The value that was replaced
        """
        with self._lock:
            old_value = self._value
            self._value = new_value
            self._version += 1
            self._swapped_at = time.time()
        return old_value

    @property
    def version(self) -> int:
        """Number of swaps performed"""
        with self._lock:
            return self._version

    @property
    def swapped_at(self) -> float | None:
        """Unix time of the last swap, None before the first"""
        with self._lock:
            return self._swapped_at
