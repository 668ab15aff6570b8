"""
Contrato de persistencia de citas y una implementación en memoria.

El mapeo entre la cita lógica y las columnas de la hoja es responsabilidad de
cada implementación (ver citabot/core/sheets.py).
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Set

from citabot.agents.state import ACTIVE_STATUSES, AppointmentRecord


class StorageWriteError(RuntimeError):
    """El almacén no aplicó una escritura (p. ej. la fila ya no existe)."""


class AppointmentStore(ABC):
    @abstractmethod
    async def append_record(self, record: AppointmentRecord) -> str:
        """Guarda la cita y devuelve el número de cita asignado."""

    @abstractmethod
    async def list_records(self) -> List[AppointmentRecord]:
        ...

    async def find_by_national_id(self, national_id: str, active_only: bool = False) -> Optional[AppointmentRecord]:
        # La más reciente gana
        for record in reversed(await self.list_records()):
            if record.national_id != national_id:
                continue
            if active_only and record.status not in ACTIVE_STATUSES:
                continue
            return record
        return None

    async def find_by_appointment_number(self, number: str) -> Optional[AppointmentRecord]:
        for record in await self.list_records():
            if record.appointment_number == str(number):
                return record
        return None

    async def list_booked_slots_for_date(self, date: str) -> Set[str]:
        return {
            r.time
            for r in await self.list_records()
            if r.date == date and r.time and r.status in ACTIVE_STATUSES
        }

    async def update_status_by_national_id(self, national_id: str, status: str) -> bool:
        record = await self.find_by_national_id(national_id, active_only=True)
        if record is None:
            return False
        return await self.update_status_by_appointment_number(record.appointment_number, status)

    @abstractmethod
    async def update_status_by_appointment_number(self, number: str, status: str) -> bool:
        ...


class InMemoryAppointmentStore(AppointmentStore):
    """
    Almacén en memoria (desarrollo local y pruebas).

    Numera las citas como filas de una hoja con cabecera: la primera cita es
    la número 2. Cada operación cede el control al event loop para comportarse
    como E/S real frente a tareas concurrentes.
    """

    def __init__(self, records: Optional[List[AppointmentRecord]] = None):
        self._records: List[AppointmentRecord] = []
        for record in records or []:
            self._store(record)

    def _store(self, record: AppointmentRecord) -> str:
        number = str(len(self._records) + 2)
        self._records.append(
            replace(
                record,
                appointment_number=number,
                created_at=record.created_at or datetime.now(timezone.utc).isoformat(),
            )
        )
        return number

    async def append_record(self, record: AppointmentRecord) -> str:
        await asyncio.sleep(0)
        return self._store(record)

    async def list_records(self) -> List[AppointmentRecord]:
        await asyncio.sleep(0)
        return [replace(r) for r in self._records]

    async def update_status_by_appointment_number(self, number: str, status: str) -> bool:
        await asyncio.sleep(0)
        for idx, record in enumerate(self._records):
            if record.appointment_number == str(number):
                self._records[idx] = replace(record, status=status)
                return True
        return False
