"""
Reserva de horarios: a lo sumo una escritura por (fecha, hora).

El candado por slot es consultivo y local al proceso; sirve para no ofrecer a
dos usuarios un horario que está a punto de ocuparse. La frontera real de
correctitud es la re-verificación contra la persistencia dentro de la sección
bloqueada.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

from citabot.agents.state import AppointmentRecord, slot_key
from citabot.core.logger import app_logger
from citabot.core.storage import AppointmentStore


class SlotLockTable:
    """Tabla de candados por slot_key con dueño; nunca expone el mapa interno."""

    def __init__(self):
        self._held: Dict[str, str] = {}

    def try_acquire(self, key: str, owner: str) -> bool:
        # Sin await entre la consulta y la escritura: atómico dentro del event loop
        if key in self._held:
            return False
        self._held[key] = owner
        return True

    def release(self, key: str, owner: str) -> None:
        if self._held.get(key) == owner:
            del self._held[key]

    def is_held(self, key: str) -> bool:
        return key in self._held

    def held_times(self, date: str) -> List[str]:
        prefix = f"{date}|"
        return [k[len(prefix):] for k in self._held if k.startswith(prefix)]

    @asynccontextmanager
    async def hold(self, key: str, owner: str) -> AsyncIterator[bool]:
        """
        Uso:
            async with locks.hold(key, owner) as acquired:
                if not acquired:
                    ...  # otro usuario está reservando
        """
        acquired = self.try_acquire(key, owner)
        if acquired:
            app_logger.info("🔒 Slot bloqueado", extra={"slot_key": key, "user_id": owner})
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key, owner)
                app_logger.info("🔓 Slot liberado", extra={"slot_key": key, "user_id": owner})

    def __len__(self) -> int:
        return len(self._held)


@dataclass(frozen=True)
class ClinicSchedule:
    open_hour: int = 8
    close_hour: int = 17
    step_minutes: int = 60

    def daily_times(self) -> List[str]:
        times = []
        minute = self.open_hour * 60
        while minute < self.close_hour * 60:
            times.append(f"{minute // 60:02d}:{minute % 60:02d}")
            minute += self.step_minutes
        return times

    def is_bookable_time(self, value: Optional[str]) -> bool:
        return value in self.daily_times()


class ReservationOutcome(str, Enum):
    COMMITTED = "committed"
    OCCUPIED = "occupied"
    BEING_RESERVED = "being_reserved"


@dataclass
class ReservationResult:
    outcome: ReservationOutcome
    appointment_number: Optional[str] = None
    free_times: List[str] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.outcome == ReservationOutcome.COMMITTED


CommitFn = Callable[[AppointmentRecord], Awaitable[str]]


class SlotReservationGuard:
    def __init__(
        self,
        store: AppointmentStore,
        schedule: Optional[ClinicSchedule] = None,
        locks: Optional[SlotLockTable] = None,
    ):
        self.store = store
        self.schedule = schedule or ClinicSchedule()
        self.locks = locks or SlotLockTable()

    async def available_times(self, date: str) -> List[str]:
        """Horarios del día menos los ya registrados y los que se están reservando."""
        booked = await self.store.list_booked_slots_for_date(date)
        in_flight = set(self.locks.held_times(date))
        return [t for t in self.schedule.daily_times() if t not in booked and t not in in_flight]

    async def reserve(
        self,
        record: AppointmentRecord,
        owner: str,
        commit: Optional[CommitFn] = None,
    ) -> ReservationResult:
        """
        Verifica y registra la cita bajo el candado de su slot.

        El candado se libera en todos los caminos (éxito, conflicto o
        excepción del almacén, que se propaga al llamador).
        """
        key = slot_key(record.date, record.time)
        commit = commit or self.store.append_record

        async with self.locks.hold(key, owner) as acquired:
            if not acquired:
                app_logger.info("⏳ Slot en reserva por otro usuario", extra={"slot_key": key, "user_id": owner})
                return ReservationResult(
                    outcome=ReservationOutcome.BEING_RESERVED,
                    free_times=await self.available_times(record.date),
                )

            booked = await self.store.list_booked_slots_for_date(record.date)
            if record.time in booked:
                app_logger.info("⚠️ Slot ocupado", extra={"slot_key": key, "user_id": owner})
                return ReservationResult(
                    outcome=ReservationOutcome.OCCUPIED,
                    free_times=await self.available_times(record.date),
                )

            number = await commit(record)
            app_logger.info(
                "✅ Cita registrada",
                extra={"slot_key": key, "user_id": owner, "appointment_number": number},
            )
            return ReservationResult(outcome=ReservationOutcome.COMMITTED, appointment_number=number)
