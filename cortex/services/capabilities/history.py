"""History store used to populate ``ReasoningContext.history``."""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional, Protocol

from pydantic import BaseModel

from cortex.core.config import settings
from cortex.services.capabilities.schemas import HistoryRecord
from cortex.utils.logger import get_logger

logger = get_logger(__name__)


class HistoryFilter(BaseModel):
    """Query parameters understood by history stores."""

    session_id: Optional[str] = None
    domain: Optional[str] = None
    limit: int = 10


class HistoryStore(Protocol):
    """Persistence collaborator. Callers treat every call as best-effort."""

    async def append(self, record: HistoryRecord) -> None:
        ...

    async def query(self, history_filter: HistoryFilter) -> List[HistoryRecord]:
        """Return matching records, oldest first, at most ``limit`` of them."""
        ...


class InMemoryHistoryStore:
    """Bounded in-process history store."""

    def __init__(self, max_records: Optional[int] = None) -> None:
        self.max_records = max_records or settings.HISTORY_STORE_MAX_RECORDS
        self._records: Deque[HistoryRecord] = deque(maxlen=self.max_records)

    async def append(self, record: HistoryRecord) -> None:
        if len(self._records) == self.max_records:
            logger.debug(
                "History store full; evicting oldest record",
                max_records=self.max_records,
                evicted_session_id=self._records[0].session_id,
            )
        self._records.append(record)

    async def query(self, history_filter: HistoryFilter) -> List[HistoryRecord]:
        matches = [
            record
            for record in self._records
            if (history_filter.session_id is None or record.session_id == history_filter.session_id)
            and (history_filter.domain is None or record.domain == history_filter.domain)
        ]
        if history_filter.limit <= 0:
            return []
        return matches[-history_filter.limit:]

    def __len__(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()
