"""
Adaptive per-probe timeout shared by every probe of one scan.

Probes report the connect latency of each definitive TCP outcome
(connected or refused). Once enough samples exist the timeout shrinks to
a generous multiple of the slowest recent sample. It never grows back
within a scan.
"""

import math
import threading
from collections import deque
from typing import List


class AdaptiveTimeout:
    def __init__(
        self,
        initial_ms: int,
        floor_ms: int = 50,
        history: int = 10,
        min_samples: int = 3,
        multiplier: float = 3.0,
        buffer: float = 0.2,
    ):
        self.floor_ms = floor_ms
        self.min_samples = min_samples
        self.multiplier = multiplier
        self.buffer = buffer
        self._history = history
        self._lock = threading.Lock()
        self._samples: deque = deque(maxlen=history)
        self._current_ms = max(int(initial_ms), floor_ms)

    def reset(self, initial_ms: int) -> None:
        with self._lock:
            self._samples = deque(maxlen=self._history)
            self._current_ms = max(int(initial_ms), self.floor_ms)

    def observe(self, latency_ms: float) -> int:
        with self._lock:
            self._samples.append(max(0.0, float(latency_ms)))
            if len(self._samples) >= self.min_samples:
                scaled = max(self._samples) * self.multiplier
                # round off float noise before ceil
                candidate = max(self.floor_ms, math.ceil(round(scaled + scaled * self.buffer, 6)))
                if candidate < self._current_ms:
                    self._current_ms = candidate
            return self._current_ms

    def current_timeout(self) -> int:
        with self._lock:
            return self._current_ms

    @property
    def samples(self) -> List[float]:
        with self._lock:
            return list(self._samples)
