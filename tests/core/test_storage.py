"""
Appointment persistence: in-memory store and the Google Sheets mapping.
"""
import base64
import json

import pytest

from citabot.agents.state import AppointmentStatus
from citabot.core import sheets
from citabot.core.sheets import SheetsAppointmentStore, record_to_row, row_to_record
from citabot.core.storage import InMemoryAppointmentStore
from tests.utils.fakes import FakeSheetsService, booked_record

HEADER = [
    "nombre_paciente", "numero_cedula", "nombre_contacto", "celular_contacto",
    "fecha_cita", "hora_cita", "status_cita", "observaciones", "creado_en",
]


class TestInMemoryAppointmentStore:
    @pytest.mark.asyncio
    async def test_numbers_are_row_like_and_never_reused(self):
        store = InMemoryAppointmentStore()
        first = await store.append_record(booked_record(time="08:00"))
        second = await store.append_record(booked_record(time="09:00"))
        assert (first, second) == ("2", "3")

        await store.update_status_by_appointment_number(first, AppointmentStatus.CANCELLED.value)
        assert await store.append_record(booked_record(time="10:00")) == "4"

    @pytest.mark.asyncio
    async def test_find_by_national_id_latest_wins(self):
        store = InMemoryAppointmentStore([
            booked_record(time="08:00"),
            booked_record(time="11:00", status=AppointmentStatus.CANCELLED.value),
        ])

        latest = await store.find_by_national_id("1802525254")
        assert latest.time == "11:00"

        active = await store.find_by_national_id("1802525254", active_only=True)
        assert active.time == "08:00"

        assert await store.find_by_national_id("0000000000") is None

    @pytest.mark.asyncio
    async def test_booked_slots_ignore_inactive_records(self):
        store = InMemoryAppointmentStore([
            booked_record(time="08:00"),
            booked_record(time="09:00", status=AppointmentStatus.RESCHEDULED.value),
            booked_record(time="10:00", status=AppointmentStatus.CONFIRMED.value),
            booked_record(date="11/10/2025", time="11:00"),
        ])
        assert await store.list_booked_slots_for_date("10/10/2025") == {"08:00", "10:00"}

    @pytest.mark.asyncio
    async def test_update_status_by_national_id(self):
        store = InMemoryAppointmentStore([booked_record()])
        assert await store.update_status_by_national_id("1802525254", AppointmentStatus.CONFIRMED.value)
        assert (await store.find_by_appointment_number("2")).status == "confirmada"
        assert not await store.update_status_by_national_id("0000000000", "confirmada")

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self):
        store = InMemoryAppointmentStore([booked_record()])
        record = (await store.list_records())[0]
        record.status = AppointmentStatus.CANCELLED.value
        assert (await store.list_records())[0].status == AppointmentStatus.PENDING.value


class TestSheetsMapping:
    def test_row_round_trip_keeps_column_order(self):
        record = booked_record(created_at="2025-10-01T10:00:00+00:00")
        row = record_to_row(record)
        assert row[:8] == [
            "Ana Pérez", "1802525254", "Ana Pérez", "593987654321",
            "10/10/2025", "09:00", "pendiente", "Control",
        ]
        assert row_to_record(row, 7).appointment_number == "7"

    def test_short_rows_are_padded(self):
        record = row_to_record(["Ana Pérez", "1802525254"], 3)
        assert record.date is None
        assert record.notes == ""


class TestSheetsAppointmentStore:
    @pytest.mark.asyncio
    async def test_append_returns_row_number(self):
        service = FakeSheetsService([HEADER])
        store = SheetsAppointmentStore("sheet-id", service=service)

        number = await store.append_record(booked_record())

        assert number == "2"
        kind, kwargs = service.requests[0]
        assert kind == "append"
        assert kwargs["spreadsheetId"] == "sheet-id"
        assert kwargs["range"] == "CITAS!A:I"
        assert kwargs["body"]["values"][0][1] == "1802525254"

    @pytest.mark.asyncio
    async def test_list_skips_header_and_numbers_by_row(self):
        service = FakeSheetsService([HEADER, record_to_row(booked_record()), []])
        store = SheetsAppointmentStore("sheet-id", service=service)
        service.rows.append(record_to_row(booked_record(time="10:00")))

        records = await store.list_records()

        assert [r.appointment_number for r in records] == ["2", "4"]
        assert await store.list_booked_slots_for_date("10/10/2025") == {"09:00", "10:00"}

    @pytest.mark.asyncio
    async def test_update_status_writes_column_g(self):
        service = FakeSheetsService([HEADER, record_to_row(booked_record())])
        store = SheetsAppointmentStore("sheet-id", service=service)

        assert await store.update_status_by_appointment_number("2", "cancelada")
        assert service.requests[-1][1]["range"] == "CITAS!G2"
        assert service.rows[1][6] == "cancelada"

        assert not await store.update_status_by_appointment_number("9", "cancelada")
        assert not await store.update_status_by_appointment_number("abc", "cancelada")

    @pytest.mark.asyncio
    async def test_append_failure_propagates(self):
        class BrokenService(FakeSheetsService):
            def append(self, **kwargs):
                raise ConnectionError("sheets down")

        store = SheetsAppointmentStore("sheet-id", service=BrokenService())
        with pytest.raises(ConnectionError):
            await store.append_record(booked_record())

    def test_service_built_lazily_from_base64_credentials(self, monkeypatch):
        built = {}
        info = {"type": "service_account", "client_email": "bot@example.iam.gserviceaccount.com"}
        encoded = base64.b64encode(json.dumps(info).encode()).decode()

        monkeypatch.setattr(
            sheets.service_account.Credentials,
            "from_service_account_info",
            classmethod(lambda cls, data, scopes=None: ("creds", data["client_email"], tuple(scopes))),
        )

        def fake_build(api, version, credentials=None, cache_discovery=True):
            built.update(api=api, version=version, credentials=credentials)
            return FakeSheetsService()

        monkeypatch.setattr(sheets, "build", fake_build)

        store = SheetsAppointmentStore("sheet-id", credentials_b64=encoded)
        assert not built

        store._get_service()
        assert built["api"] == "sheets"
        assert built["version"] == "v4"
        assert built["credentials"][1] == "bot@example.iam.gserviceaccount.com"
        assert built["credentials"][2] == tuple(sheets.SCOPES)
