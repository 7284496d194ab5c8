"""
Change Journal
Bounded, insertion-ordered log of committed configuration mutations
"""

from collections import deque
from typing import Deque, List, Optional

from .contracts import ChangeRecord

DEFAULT_CAPACITY = 100


class ChangeJournal:
    """FIFO of ChangeRecords; the oldest record is evicted past capacity"""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("Journal capacity must be at least 1")
        self.capacity = capacity
        self._records: Deque[ChangeRecord] = deque(maxlen=capacity)

    def record(self, record: ChangeRecord) -> None:
        self._records.append(record)

    def history(self, key: Optional[str] = None) -> List[ChangeRecord]:
        """Records in chronological order, optionally only those for ``key``"""
        if key is None:
            return list(self._records)
        return [record for record in self._records if record.key == key]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
