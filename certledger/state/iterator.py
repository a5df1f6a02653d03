# certledger/state/iterator.py
from typing import Callable, List, NamedTuple, Optional


class KeyValue(NamedTuple):
    key: str
    value: bytes


# fetch(start, end, after, limit) -> next page of pairs in key order.
# ``after`` is the last key already returned (exclusive), None on the first page.
PageFetcher = Callable[[str, str, Optional[str], int], List[KeyValue]]


class RangeScanIterator:
    """
    Lazy, forward-only cursor over ``(key, value)`` pairs in ledger key order.

    Start key is inclusive, end key exclusive; an empty string on either side
    leaves that side unbounded, so ``("", "")`` walks the whole namespace.
    Pages are pulled from the backend on demand (keyset pagination), never
    the whole namespace at once. There is no rewind: a fresh scan needs a
    fresh range request.
    """

    def __init__(self, fetch: PageFetcher, start_key: str = "", end_key: str = "", page_size: int = 100):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._fetch = fetch
        self.start_key = start_key
        self.end_key = end_key
        self.page_size = page_size
        self._buffer: List[KeyValue] = []
        self._last_key: Optional[str] = None
        self._exhausted = False
        self._closed = False

    def _fill(self) -> None:
        if self._buffer or self._exhausted:
            return
        page = self._fetch(self.start_key, self.end_key, self._last_key, self.page_size)
        if len(page) < self.page_size:
            self._exhausted = True
        if page:
            self._last_key = page[-1].key
        self._buffer = list(page)

    def has_next(self) -> bool:
        if self._closed:
            raise RuntimeError("Range iterator is closed")
        self._fill()
        return bool(self._buffer)

    def advance(self) -> KeyValue:
        """Return the next pair; raises StopIteration once exhausted."""
        if not self.has_next():
            raise StopIteration
        return self._buffer.pop(0)

    def close(self) -> None:
        self._closed = True
        self._buffer = []

    def __iter__(self):
        return self

    def __next__(self) -> KeyValue:
        return self.advance()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
