# Time-ordered ticket ids (snowflake layout: 41 bits of milliseconds,
# 10 bits of node id, 12 bits of per-millisecond sequence).

import threading
import time
from typing import Callable

EPOCH_MS = 1288834974657
NODE_BITS = 10
SEQUENCE_BITS = 12
TIME_BITS = 41

MAX_NODE_ID = (1 << NODE_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class IdGenerationError(RuntimeError):
    """Raised when no valid id can be produced (e.g. the clock moved backwards)."""


class SnowflakeGenerator:
    def __init__(self, node_id: int = 1, clock: Callable[[], int] = _now_ms):
        if not 0 <= node_id <= MAX_NODE_ID:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE_ID}, got {node_id}")
        self.node_id = node_id
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def _millis(self) -> int:
        return int(self._clock())

    def next_id(self) -> str:
        """
        Returns the next id as a decimal string. Ids from one generator are
        strictly increasing; up to 4096 ids are handed out per millisecond
        before waiting for the clock to tick.
        """
        with self._lock:
            now = self._millis()
            if now < self._last_ms:
                raise IdGenerationError(f"Clock moved backwards by {self._last_ms - now} ms")

            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    # Sequence exhausted for this millisecond
                    while now <= self._last_ms:
                        now = self._millis()
            else:
                self._sequence = 0

            self._last_ms = now
            elapsed = now - EPOCH_MS
            if not 0 <= elapsed < (1 << TIME_BITS):
                raise IdGenerationError(f"Timestamp {now} ms is outside the id range")

            value = (elapsed << (NODE_BITS + SEQUENCE_BITS)) | (self.node_id << SEQUENCE_BITS) | self._sequence
            return str(value)

    __call__ = next_id
