# certledger/contract/context.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from certledger.errors import ValidationError
from certledger.state import RangeScanIterator, WorldState, Write


@dataclass
class TransactionContext:
    """
    Execution context for one contract invocation (a simulation).

    Reads always see the committed world state, never this transaction's own
    pending writes. Writes are buffered in ``write_set`` and only reach the
    world state when the transaction is committed; an evaluate call simply
    drops them.
    """
    world_state: WorldState
    tx_id: str = ""
    creator_msp_id: str = ""
    _writes: Dict[str, Write] = field(default_factory=dict, repr=False)

    def get_state(self, key: str) -> Optional[bytes]:
        return self.world_state.get_state(key)

    def put_state(self, key: str, value: bytes) -> None:
        if not key:
            raise ValidationError("Empty key is not allowed in world state")
        self._writes.pop(key, None)
        self._writes[key] = Write(key, bytes(value))

    def delete_state(self, key: str) -> None:
        if not key:
            raise ValidationError("Empty key is not allowed in world state")
        self._writes.pop(key, None)
        self._writes[key] = Write(key, None)

    def get_state_by_range(self, start_key: str = "", end_key: str = "") -> RangeScanIterator:
        return self.world_state.get_state_by_range(start_key, end_key)

    @property
    def write_set(self) -> List[Write]:
        """Pending writes in the order they were last touched."""
        return list(self._writes.values())
