"""
Dialogue controller: multi-turn conversations through the compiled graph.
"""
import asyncio

import pytest

from citabot.agents.prompts import ASK_REASON, CHANGE_QUESTION, CONFIRM_QUESTION, GENERIC_RETRY
from citabot.agents.state import AppointmentStatus, SessionMode
from citabot.core.nlu import NluResult
from citabot.core.slots import ClinicSchedule
from citabot.core.storage import InMemoryAppointmentStore
from tests.utils.fakes import (
    OTHER_USER,
    USER,
    FailingAppointmentStore,
    FlakyStatusStore,
    ScriptedExtractor,
    SlowAppointmentStore,
    booked_record,
)

FULL_REQUEST = "Me llamo Ana Pérez, cédula 1802525254, para el 10/10/2025"


async def converse(controller, user, *messages):
    replies = []
    for text in messages:
        replies.append(await controller.handle_message(user, text, "Ana"))
    return replies


class TestBookingFlow:
    @pytest.mark.asyncio
    async def test_first_message_asks_for_everything(self, controller, sessions):
        extractor = controller.ctx.extractor
        extractor.script["Quiero agendar una cita"] = NluResult(intent="crear_cita")

        [reply] = await converse(controller, USER, "Quiero agendar una cita")

        assert reply.startswith("📋 Ana, para agendar necesito:")
        assert "nombre del paciente" in reply
        assert "número de cédula" in reply
        assert sessions.get(USER).mode == SessionMode.CREATING.value

    @pytest.mark.asyncio
    async def test_full_booking(self, controller, sessions, store, sender):
        replies = await converse(
            controller,
            USER,
            FULL_REQUEST,
            "14:00",
            "Control de presión",
        )

        assert "Horarios disponibles para el 10/10/2025" in replies[0]
        assert "• 14:00" in replies[0]
        assert replies[1] == ASK_REASON
        assert "Motivo: Control de presión" in replies[2]
        assert replies[2].endswith(CONFIRM_QUESTION)

        final = await controller.process_message(USER, "Sí, confirmo", "Ana")

        assert "✅" in final and "registrada" in final
        assert "cédula 1802525254" in final
        assert "número interno 2" in final
        assert sender.sent == [(USER, final)]
        assert USER not in sessions

        [record] = await store.list_records()
        assert record.patient_name == "Ana Pérez"
        assert record.contact_name == "Ana Pérez"
        assert record.contact_phone == USER
        assert (record.date, record.time) == ("10/10/2025", "14:00")
        assert record.notes == "Control de presión"
        assert record.status == AppointmentStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_slot_choice_goes_to_reason_note(self, controller, sessions):
        await converse(controller, USER, FULL_REQUEST)
        session = sessions.get(USER)
        assert session.expecting == "time"
        assert "14:00" in session.offered_times

        [reply] = await converse(controller, USER, "14:00")

        assert reply == ASK_REASON
        assert sessions.get(USER).expecting == "notes"

    @pytest.mark.asyncio
    async def test_reason_can_be_omitted(self, controller, sessions):
        replies = await converse(controller, USER, FULL_REQUEST, "9", "omitir")

        assert "Motivo: N/A" in replies[2]
        session = sessions.get(USER)
        assert session.draft.notes == ""
        assert session.draft.time == "09:00"
        assert session.expecting == "confirmation"

    @pytest.mark.asyncio
    async def test_time_not_offered_is_rejected(self, controller, sessions):
        replies = await converse(controller, USER, FULL_REQUEST, "19:00")

        assert replies[1].startswith("Ese horario no está entre los disponibles")
        assert sessions.get(USER).draft.time is None
        assert sessions.get(USER).expecting == "time"

    @pytest.mark.asyncio
    async def test_off_grid_time_in_request_is_ignored(self, controller, sessions):
        [reply] = await converse(
            controller, USER, "Nombre Ana Pérez, cédula 1802525254, 10/10/2025 a las 7:00 pm"
        )

        assert reply.startswith("⚠️ Las 19:00 no es un horario de atención")
        assert "Horarios disponibles" in reply
        assert sessions.get(USER).draft.time is None

    @pytest.mark.asyncio
    async def test_filled_fields_are_never_overwritten(self, controller, sessions):
        await converse(
            controller,
            USER,
            "Me llamo Ana Pérez, cédula 1802525254",
            "cédula 0999999999 para el 10/10/2025",
        )

        draft = sessions.get(USER).draft
        assert draft.national_id == "1802525254"
        assert draft.date == "10/10/2025"

    @pytest.mark.asyncio
    async def test_missing_fields_are_asked_again(self, controller):
        replies = await converse(controller, USER, "Me llamo Ana Pérez", "cédula 1802525254")

        assert replies[0].startswith("📋 Ana, para agendar necesito: número de cédula y fecha de la cita")
        assert replies[1].startswith("Aún me falta: fecha de la cita")

    @pytest.mark.asyncio
    async def test_day_without_free_slots_asks_for_another_date(self, make_controller, sessions):
        store = InMemoryAppointmentStore([
            booked_record(time="08:00", national_id="1111111111"),
            booked_record(time="09:00", national_id="2222222222"),
        ])
        controller = make_controller(
            store, ScriptedExtractor(), schedule=ClinicSchedule(open_hour=8, close_hour=10)
        )

        [reply] = await converse(controller, USER, FULL_REQUEST)

        assert reply.startswith("😕 No hay horarios disponibles para el 10/10/2025")
        assert sessions.get(USER).draft.date is None
        assert sessions.get(USER).expecting == "fields"


class TestConfirmation:
    async def _at_confirmation(self, controller):
        await converse(controller, USER, FULL_REQUEST, "14:00", "Control")

    @pytest.mark.asyncio
    async def test_unclear_answer_repeats_question(self, controller, sessions):
        await self._at_confirmation(controller)

        [reply] = await converse(controller, USER, "tal vez")

        assert reply == CONFIRM_QUESTION
        assert sessions.get(USER).expecting == "confirmation"

    @pytest.mark.asyncio
    async def test_no_then_change_date(self, controller, sessions, store):
        await self._at_confirmation(controller)

        replies = await converse(controller, USER, "no", "fecha 12/10/2025", "10:00")

        assert replies[0] == CHANGE_QUESTION
        assert "Horarios disponibles para el 12/10/2025" in replies[1]
        assert "Fecha: 12/10/2025" in replies[2]
        assert "Hora: 10:00" in replies[2]
        assert "Motivo: Control" in replies[2]

        draft = sessions.get(USER).draft
        assert draft.patient_name == "Ana Pérez"
        assert draft.national_id == "1802525254"
        assert await store.list_records() == []

    @pytest.mark.asyncio
    async def test_change_without_known_field(self, controller):
        await self._at_confirmation(controller)

        replies = await converse(controller, USER, "no", "mejor otra cosa")

        assert replies[1].startswith("No identifiqué el dato a cambiar.")


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_two_users_same_slot_only_one_books(self, make_controller):
        store = SlowAppointmentStore()
        controller = make_controller(store, ScriptedExtractor())

        for user, cedula in ((USER, "1802525254"), (OTHER_USER, "0102030405")):
            await converse(
                controller, user, f"Me llamo Ana Pérez, cédula {cedula}, para el 10/10/2025", "15:00", "omitir"
            )

        replies = await asyncio.gather(
            controller.handle_message(USER, "si"),
            controller.handle_message(OTHER_USER, "si"),
        )

        booked = [r for r in replies if "registrada" in r]
        rejected = [r for r in replies if "Horarios libres" in r]
        assert len(booked) == 1
        assert len(rejected) == 1
        assert "• 15:00" not in rejected[0]
        assert store.appends == 1
        assert len(controller.guard.locks) == 0


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_without_identifier_asks_for_it(self, controller, sessions, store):
        await store.append_record(booked_record())

        [reply] = await converse(controller, USER, "cancelar")

        assert "necesito tu número de cédula" in reply
        session = sessions.get(USER)
        assert session.mode == SessionMode.CANCELLING.value
        assert session.expecting == "identifier"
        assert (await store.list_records())[0].status == AppointmentStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_cancel_after_identifier(self, controller, sessions, store, extractor):
        await store.append_record(booked_record())

        replies = await converse(controller, USER, "cancelar", "1802525254")

        assert "fue cancelada" in replies[1]
        assert (await store.list_records())[0].status == AppointmentStatus.CANCELLED.value
        assert USER not in sessions
        assert extractor.calls == []

    @pytest.mark.asyncio
    async def test_cancel_by_appointment_number(self, controller, store):
        number = await store.append_record(booked_record())

        [reply] = await converse(controller, USER, f"quiero cancelar la cita {number}")

        assert f"número {number}" in reply
        assert (await store.find_by_appointment_number(number)).status == AppointmentStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_cancel_unknown_identifier(self, controller, sessions):
        [reply] = await converse(controller, USER, "cancelar cédula 0999999999")

        assert reply.startswith("⚠️ No encontré ninguna cita activa")
        assert USER not in sessions

    @pytest.mark.asyncio
    async def test_cancel_discards_draft_in_progress(self, controller, sessions, store):
        await store.append_record(booked_record())
        await converse(controller, USER, FULL_REQUEST)

        [reply] = await converse(controller, USER, "cancelar")

        assert reply.startswith("Listo, descarté la solicitud de cita en curso.")
        assert sessions.get(USER).draft.national_id is None
        assert (await store.list_records())[0].status == AppointmentStatus.PENDING.value


class TestReschedule:
    @pytest.mark.asyncio
    async def test_reschedule_flow(self, controller, sessions, store):
        await store.append_record(booked_record(time="09:00"))

        replies = await converse(
            controller, USER, "quiero reagendar mi cita", "1802525254", "11/10/2025", "10:00"
        )

        assert "necesito tu número de cédula" in replies[0]
        assert "Encontré tu cita número 2" in replies[1]
        assert "Horarios disponibles para el 11/10/2025" in replies[2]
        assert "reagendada para el 11/10/2025 a las 10:00" in replies[3]
        assert "Nuevo número de cita: 3" in replies[3]
        assert USER not in sessions

        old, new = await store.list_records()
        assert old.status == AppointmentStatus.RESCHEDULED.value
        assert (new.date, new.time, new.status) == ("11/10/2025", "10:00", "pendiente")
        assert new.patient_name == old.patient_name
        assert new.national_id == old.national_id

    @pytest.mark.asyncio
    async def test_reschedule_with_id_and_date_in_one_message(self, controller, sessions, store):
        await store.append_record(booked_record(time="09:00"))

        [reply] = await converse(controller, USER, "reagendar cédula 1802525254 para el 11/10/2025")

        assert "Horarios disponibles para el 11/10/2025" in reply
        session = sessions.get(USER)
        assert session.mode == SessionMode.RESCHEDULING.value
        assert session.draft.appointment_number == "2"


class TestIdleRequests:
    @pytest.mark.asyncio
    async def test_lookup(self, make_controller, sessions, store):
        await store.append_record(booked_record())
        extractor = ScriptedExtractor({"consultar cédula 1802525254": NluResult(intent="consultar_cita")})
        controller = make_controller(store, extractor)

        [reply] = await converse(controller, USER, "consultar cédula 1802525254")

        assert reply.startswith("📄 Cita de Ana Pérez (número 2)")
        assert "Estado: pendiente" in reply
        assert USER not in sessions

    @pytest.mark.asyncio
    async def test_status_update(self, make_controller, store):
        await store.append_record(booked_record())
        text = "actualizar 1802525254 a confirmada"
        controller = make_controller(store, ScriptedExtractor({text: NluResult(intent="actualizar_estado")}))

        [reply] = await converse(controller, USER, text)

        assert "actualizado a: confirmada" in reply
        assert (await store.list_records())[0].status == AppointmentStatus.CONFIRMED.value

    @pytest.mark.asyncio
    async def test_greeting_gets_help(self, controller, sessions):
        [reply] = await converse(controller, USER, "hola")

        assert "Puedes decir:" in reply
        assert USER not in sessions


class TestFailures:
    @pytest.mark.asyncio
    async def test_nlu_failure_keeps_draft(self, make_controller, sessions, store):
        extractor = ScriptedExtractor(fail_on=("cédula 0999999999",))
        controller = make_controller(store, extractor)

        await converse(controller, USER, "Me llamo Ana Pérez, cédula 1802525254")
        before = sessions.get(USER)

        [reply] = await converse(controller, USER, "cédula 0999999999")

        assert reply == GENERIC_RETRY
        after = sessions.get(USER)
        assert after.draft == before.draft
        assert after.expecting == before.expecting

    @pytest.mark.asyncio
    async def test_commit_failure_keeps_confirmation_state(self, make_controller, sessions):
        controller = make_controller(FailingAppointmentStore(), ScriptedExtractor())
        await converse(controller, USER, FULL_REQUEST, "14:00", "Control")

        [reply] = await converse(controller, USER, "si")

        assert reply == GENERIC_RETRY
        session = sessions.get(USER)
        assert session.expecting == "confirmation"
        assert session.draft.time == "14:00"
        assert len(controller.guard.locks) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("silent", [False, True])
    async def test_reschedule_status_failure_writes_nothing(self, make_controller, sessions, silent):
        store = FlakyStatusStore([booked_record(time="09:00")], silent=silent)
        controller = make_controller(store, ScriptedExtractor())

        replies = await converse(controller, USER, "reagendar", "1802525254", "11/10/2025", "10:00")

        assert replies[3] == GENERIC_RETRY
        [old] = await store.list_records()
        assert old.status == AppointmentStatus.PENDING.value
        assert sessions.get(USER).mode == SessionMode.RESCHEDULING.value

        [retry] = await converse(controller, USER, "10:00")

        assert "reagendada para el 11/10/2025 a las 10:00" in retry
        records = await store.list_records()
        active = [r for r in records if r.status == AppointmentStatus.PENDING.value]
        assert [(r.date, r.time) for r in active] == [("11/10/2025", "10:00")]
        assert records[0].status == AppointmentStatus.RESCHEDULED.value

    @pytest.mark.asyncio
    async def test_reschedule_append_failure_restores_previous_status(self, make_controller, sessions):
        store = FailingAppointmentStore([booked_record(time="09:00", status=AppointmentStatus.CONFIRMED.value)])
        controller = make_controller(store, ScriptedExtractor())

        replies = await converse(controller, USER, "reagendar", "1802525254", "11/10/2025", "10:00")

        assert replies[3] == GENERIC_RETRY
        [old] = await store.list_records()
        assert old.status == AppointmentStatus.CONFIRMED.value
        assert len(controller.guard.locks) == 0
