# certledger/state/memory.py
import bisect
import threading
from typing import Dict, Iterable, List, Optional

from . import WorldState, Write
from .iterator import KeyValue


class MemoryWorldState(WorldState):
    """Dict-backed world state with a sorted key index. Used by tests and `--state memory:`."""

    def __init__(self):
        self._values: Dict[str, bytes] = {}
        self._keys: List[str] = []
        self._lock = threading.RLock()

    def get_state(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._values.get(key)

    def put_state(self, key: str, value: bytes) -> None:
        with self._lock:
            if key not in self._values:
                bisect.insort(self._keys, key)
            self._values[key] = bytes(value)

    def delete_state(self, key: str) -> None:
        with self._lock:
            if key in self._values:
                del self._values[key]
                self._keys.pop(bisect.bisect_left(self._keys, key))

    def _scan_page(self, start_key: str, end_key: str, after: Optional[str], limit: int) -> List[KeyValue]:
        with self._lock:
            if after is None:
                i = bisect.bisect_left(self._keys, start_key)
            else:
                i = bisect.bisect_right(self._keys, after)
            page = []
            while i < len(self._keys) and len(page) < limit:
                key = self._keys[i]
                if end_key and key >= end_key:
                    break
                page.append(KeyValue(key, self._values[key]))
                i += 1
            return page

    def apply(self, writes: Iterable[Write]) -> None:
        with self._lock:
            for w in writes:
                if w.value is None:
                    self.delete_state(w.key)
                else:
                    self.put_state(w.key, w.value)

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._values)
