"""
World-state backends: the key/value map every replica derives from the
ordered transaction log.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional

from .iterator import KeyValue, RangeScanIterator


class Write(NamedTuple):
    """One entry of a write set; ``value`` None means delete."""
    key: str
    value: Optional[bytes]


class WorldState(ABC):
    """Abstract base for all world-state implementations."""

    page_size: int = 100

    @abstractmethod
    def get_state(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    def put_state(self, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    def delete_state(self, key: str) -> None:
        pass

    @abstractmethod
    def _scan_page(self, start_key: str, end_key: str, after: Optional[str], limit: int) -> List[KeyValue]:
        pass

    @abstractmethod
    def apply(self, writes: Iterable[Write]) -> None:
        """Apply a whole write set atomically."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def get_state_by_range(self, start_key: str = "", end_key: str = "") -> RangeScanIterator:
        return RangeScanIterator(self._scan_page, start_key, end_key, page_size=self.page_size)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_world_state(uri: str) -> WorldState:
    if uri in ("memory:", "memory://"):
        from .memory import MemoryWorldState
        return MemoryWorldState()

    elif uri.startswith("sqlite://"):
        from .sqlite import SQLiteWorldState
        # Extract everything after sqlite://
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError(f"Missing database path in URI: {uri}")
        return SQLiteWorldState(Path(raw_path).resolve())

    else:
        raise ValueError(f"Unsupported world state URI: {uri}")


from .memory import MemoryWorldState
from .sqlite import SQLiteWorldState

__all__ = [
    "KeyValue", "RangeScanIterator", "Write", "WorldState",
    "create_world_state", "MemoryWorldState", "SQLiteWorldState",
]
