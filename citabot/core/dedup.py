"""
Deduplicación en memoria de entregas repetidas del webhook (por message_id).
"""
import time
from typing import Callable, Dict


class MessageDeduplicator:
    def __init__(self, ttl_seconds: int = 600, clock: Callable[[], float] = time.time):
        self._seen: Dict[str, float] = {}
        self._ttl = ttl_seconds
        self._clock = clock

    def _cleanup_expired(self):
        now = self._clock()
        expired = [mid for mid, seen_at in self._seen.items() if now - seen_at > self._ttl]
        for mid in expired:
            self._seen.pop(mid, None)

    def first_delivery(self, message_id: str | None) -> bool:
        """
        True si es la primera vez que vemos este message_id dentro del TTL.
        Mensajes sin id no se pueden deduplicar y siempre pasan.
        """
        if not message_id:
            return True

        self._cleanup_expired()
        if message_id in self._seen:
            return False

        self._seen[message_id] = self._clock()
        return True
