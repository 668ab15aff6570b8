"""
Sesiones efímeras por usuario (una por identificador de WhatsApp).

El almacén es el único que muta las sesiones: `get` entrega una copia de
trabajo y solo `save`/`clear` escriben. Cada usuario tiene su propio candado
para que dos mensajes del mismo usuario se apliquen en orden de llegada,
mientras usuarios distintos avanzan en paralelo.
"""

import asyncio
import copy
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict

from citabot.agents.state import Session
from citabot.core.logger import app_logger

DEFAULT_TTL_SECONDS = 20 * 60


@dataclass
class _LockEntry:
    lock: asyncio.Lock
    users: int = 0


class KeyedLocks:
    """Un asyncio.Lock por clave, creado bajo demanda y descartado al liberarse."""

    def __init__(self):
        self._entries: Dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _LockEntry(lock=asyncio.Lock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class SessionStore(ABC):
    """Contrato inyectable; permite respaldar las sesiones en un almacén externo."""

    @abstractmethod
    def get(self, user_id: str) -> Session:
        """Sesión viva (o una nueva en modo idle). Renueva la expiración."""

    @abstractmethod
    def save(self, session: Session) -> None:
        ...

    @abstractmethod
    def clear(self, user_id: str) -> None:
        ...

    @abstractmethod
    def lock(self, user_id: str):
        """Context manager asíncrono que serializa los turnos de un usuario."""

    def purge_expired(self) -> int:
        return 0


class InMemorySessionStore(SessionStore):
    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._locks = KeyedLocks()

    def _fresh(self, user_id: str) -> Session:
        return Session(user_id=user_id, expires_at=self._clock() + self.ttl_seconds)

    def get(self, user_id: str) -> Session:
        # Barrido en cada acceso: las conversaciones abandonadas no se acumulan
        self.purge_expired()
        now = self._clock()
        session = self._sessions.get(user_id)

        if session is None:
            session = self._fresh(user_id)
            self._sessions[user_id] = session

        session.expires_at = now + self.ttl_seconds
        return copy.deepcopy(session)

    def save(self, session: Session) -> None:
        self.purge_expired()
        stored = copy.deepcopy(session)
        stored.expires_at = self._clock() + self.ttl_seconds
        self._sessions[session.user_id] = stored

    def clear(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def lock(self, user_id: str):
        return self._locks.hold(user_id)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [uid for uid, s in self._sessions.items() if now > s.expires_at]
        for uid in expired:
            self._sessions.pop(uid, None)
            app_logger.info("⌛ Sesión expirada, se descarta", extra={"user_id": uid})
        return len(expired)

    def __contains__(self, user_id: str) -> bool:
        session = self._sessions.get(user_id)
        return session is not None and self._clock() <= session.expires_at

    def __len__(self) -> int:
        return len(self._sessions)
