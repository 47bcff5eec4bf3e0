from __future__ import annotations

import threading
from typing import Dict


class MetricsStore:
    """Thread-safe in-memory metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {
            "uploads": 0,
            "deduplicated": 0,
            "downloads": 0,
            "bytes_uploaded": 0,
        }

    def record_upload(self, size_bytes: int, created: bool) -> None:
        with self._lock:
            if created:
                self._counters["uploads"] += 1
                self._counters["bytes_uploaded"] += size_bytes
            else:
                self._counters["deduplicated"] += 1

    def record_download(self) -> None:
        with self._lock:
            self._counters["downloads"] += 1

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)


metrics = MetricsStore()
