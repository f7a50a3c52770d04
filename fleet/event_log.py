"""
Fleet event log — bounded rolling console shown to the operator.
Newest entries first. Everything is mirrored to the process log.
"""

from __future__ import annotations
from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional, Union
import logging

logger = logging.getLogger(__name__)

MAX_EVENTS = 100


class EventLog:

    def __init__(self, max_events: int = MAX_EVENTS, clock: Callable[[], datetime] = datetime.now):
        self._events: Deque[str] = deque(maxlen=max_events)
        self._clock = clock

    def add(self, message: str, slot_id: Optional[Union[int, str]] = None) -> str:
        source = slot_id if slot_id is not None else "SYSTEM"
        entry = f"[{self._clock().strftime('%H:%M:%S')}] [BOT {source}] {message}"
        # deque(maxlen) drops from the right when we push left
        self._events.appendleft(entry)
        logger.info(entry)
        return entry

    def recent(self, limit: int = 30) -> List[str]:
        return list(self._events)[:limit]

    def clear(self):
        self._events.clear()
        self.add("Console cleared")

    def __len__(self) -> int:
        return len(self._events)
