# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Per-incident write serialization within one process."""
import threading
from contextlib import contextmanager
from typing import Iterator


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class IncidentLockRegistry:
    """
    One lock per incident id; every incident write runs while holding it.
    A lock lives only while some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, incident_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(incident_id)
            if entry is None:
                entry = self._entries[incident_id] = _Entry()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[incident_id]
