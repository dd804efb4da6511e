"""Bounded replay buffer of recent chat events.

Newcomers receive the cache contents right after they join so they can see
what was said before they arrived. The cache keeps only the last
``MAX_MESSAGES`` events; anything older is evicted oldest-first.
"""
import logging
from collections import deque
from typing import Deque, List

from .schemas import Event

logger = logging.getLogger(__name__)

# Number of events replayed to a newly joined client
MAX_MESSAGES = 100


class HistoryCache:
    """Append-only FIFO of the most recent events.

    There is no API to edit or remove individual events. The only way an
    event leaves the cache is by being pushed out when a newer one arrives
    and the cache is full.

    Note:
        Not synchronized on its own. Callers mutate it only while holding
        the broadcast engine's lock so that append order equals delivery
        order.
    """

    def __init__(self, capacity: int = MAX_MESSAGES) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._events: Deque[Event] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, event: Event) -> None:
        """Add an event at the tail, evicting the oldest one if over capacity."""
        self._events.append(event)
        if len(self._events) > self._capacity:
            self._events.popleft()

    def snapshot(self) -> List[Event]:
        """Return the cached events, oldest first."""
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)
