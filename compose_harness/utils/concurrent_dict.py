"""Thread-safe mapping with atomic "compute if absent"."""

import threading
import typing as tp

K = tp.TypeVar("K")
V = tp.TypeVar("V")


class ConcurrentDict(tp.Generic[K, V]):
    """Mapping that can be read and populated from multiple threads.

    Reads don't take the lock. Writes go through `compute_if_absent` or `put_if_absent`, so an
    existing value is never replaced and every caller observes the same value for a key.
    """

    def __init__(self) -> None:
        self._data: dict[K, V] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> V | None:
        return self._data.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def put_if_absent(self, key: K, value: V) -> V:
        """Store `value` unless the key is already present, return the stored value."""
        with self._lock:
            return self._data.setdefault(key, value)

    def compute_if_absent(self, key: K, factory: tp.Callable[[K], V]) -> V:
        """Return value for `key`, creating it with `factory` when it is missing.

        The `factory` is called at most once per key.
        """
        value = self._data.get(key)
        if value is not None:
            return value

        with self._lock:
            value = self._data.get(key)
            if value is None:
                value = factory(key)
                self._data[key] = value
            return value

    def snapshot(self) -> dict[K, V]:
        """Return a shallow copy of the current content."""
        with self._lock:
            return dict(self._data)
