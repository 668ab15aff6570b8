"""
Persistencia de citas en Google Sheets (pestaña CITAS).

Columnas A–I:
    nombre_paciente | numero_cedula | nombre_contacto | celular_contacto |
    fecha_cita | hora_cita | status_cita | observaciones | creado_en

El número de cita es el número de fila que Sheets reporta al insertar; como
solo se agregan filas, nunca se reutiliza.
"""

import asyncio
import base64
import json
import re
from datetime import datetime, timezone
from typing import List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from citabot.agents.state import AppointmentRecord
from citabot.core.logger import app_logger
from citabot.core.storage import AppointmentStore

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
HEADER_FIRST_CELL = "nombre_paciente"
STATUS_COLUMN = "G"
COLUMNS = 9


def load_credentials(credentials_b64: str):
    """Decodifica el JSON de la cuenta de servicio (Base64) y crea credenciales."""
    info = json.loads(base64.b64decode(credentials_b64).decode("utf-8"))
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)


def record_to_row(record: AppointmentRecord) -> List[str]:
    # Mapeo exacto al orden de columnas de la hoja CITAS
    return [
        record.patient_name or "",
        record.national_id or "",
        record.contact_name or "",
        record.contact_phone or "",
        record.date or "",
        record.time or "",
        record.status or "",
        record.notes or "",
        record.created_at or datetime.now(timezone.utc).isoformat(),
    ]


def row_to_record(row: List[str], row_number: int) -> AppointmentRecord:
    cells = list(row) + [""] * (COLUMNS - len(row))
    return AppointmentRecord(
        patient_name=cells[0] or None,
        national_id=cells[1] or None,
        contact_name=cells[2] or None,
        contact_phone=cells[3] or None,
        date=cells[4] or None,
        time=cells[5] or None,
        status=cells[6],
        notes=cells[7],
        created_at=cells[8] or None,
        appointment_number=str(row_number),
    )


class SheetsAppointmentStore(AppointmentStore):
    def __init__(
        self,
        spreadsheet_id: str,
        credentials_b64: Optional[str] = None,
        sheet_range: str = "CITAS!A:I",
        service=None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.sheet_range = sheet_range
        self.tab = sheet_range.split("!")[0]
        self._credentials_b64 = credentials_b64
        self._service = service

    def _get_service(self):
        if self._service is None:
            app_logger.info("🔑 Inicializando cliente de Google Sheets...")
            credentials = load_credentials(self._credentials_b64)
            self._service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return self._service

    # ------------------------------------------------------
    # Llamadas bloqueantes (se ejecutan en un hilo aparte)
    # ------------------------------------------------------

    def _append_sync(self, row: List[str]) -> dict:
        return (
            self._get_service()
            .spreadsheets()
            .values()
            .append(
                spreadsheetId=self.spreadsheet_id,
                range=self.sheet_range,
                valueInputOption="USER_ENTERED",
                insertDataOption="INSERT_ROWS",
                body={"values": [row]},
            )
            .execute()
        )

    def _read_sync(self) -> List[List[str]]:
        response = (
            self._get_service()
            .spreadsheets()
            .values()
            .get(spreadsheetId=self.spreadsheet_id, range=self.sheet_range)
            .execute()
        )
        return response.get("values", [])

    def _update_cell_sync(self, cell: str, value: str) -> dict:
        return (
            self._get_service()
            .spreadsheets()
            .values()
            .update(
                spreadsheetId=self.spreadsheet_id,
                range=cell,
                valueInputOption="USER_ENTERED",
                body={"values": [[value]]},
            )
            .execute()
        )

    # ------------------------------------------------------
    # Contrato AppointmentStore
    # ------------------------------------------------------

    async def append_record(self, record: AppointmentRecord) -> str:
        row = record_to_row(record)
        app_logger.info(f"📤 [append_record] Fila a insertar: {row}")
        try:
            response = await asyncio.to_thread(self._append_sync, row)
        except Exception:
            app_logger.error("💥 [append_record] Error al guardar en Google Sheets", exc_info=True)
            raise

        updated_range = (response.get("updates") or {}).get("updatedRange", "")
        match = re.search(r"(\d+)$", updated_range)
        if not match:
            raise RuntimeError(f"Respuesta de append sin rango actualizado: {response}")

        number = match.group(1)
        app_logger.info(
            "🎯 [append_record] Número de cita asignado",
            extra={"appointment_number": number},
        )
        return number

    async def list_records(self) -> List[AppointmentRecord]:
        rows = await asyncio.to_thread(self._read_sync)
        records = []
        for idx, row in enumerate(rows):
            if not row or (idx == 0 and row[0].strip().lower() == HEADER_FIRST_CELL):
                continue
            records.append(row_to_record(row, idx + 1))
        return records

    async def update_status_by_appointment_number(self, number: str, status: str) -> bool:
        try:
            row_number = int(number)
        except (TypeError, ValueError):
            return False

        rows = await asyncio.to_thread(self._read_sync)
        if row_number < 1 or row_number > len(rows) or not rows[row_number - 1]:
            app_logger.warning(f"⚠️ [update_status] No se encontró la cita {number}")
            return False

        cell = f"{self.tab}!{STATUS_COLUMN}{row_number}"
        app_logger.info(f"✏️ [update_status] Actualizando celda {cell} a {status}")
        await asyncio.to_thread(self._update_cell_sync, cell, status)
        return True
