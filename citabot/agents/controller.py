"""
Controlador de diálogo: un turno por mensaje entrante.

Los turnos de un mismo usuario se serializan con el candado de su sesión; el
grafo trabaja sobre una copia y la sesión solo se guarda si el turno termina
sin errores, así un fallo del NLU o de la hoja nunca corrompe el borrador.
"""

from typing import Iterable, Optional

from citabot.agents.graph import app_graph
from citabot.agents.nodes import DialogueContext
from citabot.agents.prompts import GENERIC_RETRY
from citabot.agents.state import AgentState
from citabot.config import settings
from citabot.core.logger import app_logger
from citabot.core.merger import REQUIRED_FIELDS
from citabot.core.nlu import EntityExtractor
from citabot.core.sessions import InMemorySessionStore, SessionStore
from citabot.core.sheets import SheetsAppointmentStore
from citabot.core.slots import ClinicSchedule, SlotReservationGuard
from citabot.core.storage import AppointmentStore, InMemoryAppointmentStore
from citabot.core.whatsapp import WhatsAppSender


class DialogueController:
    def __init__(
        self,
        sessions: SessionStore,
        store: AppointmentStore,
        extractor,
        sender: Optional[WhatsAppSender] = None,
        guard: Optional[SlotReservationGuard] = None,
        schedule: Optional[ClinicSchedule] = None,
        required_fields: Iterable[str] = REQUIRED_FIELDS,
    ):
        self.sessions = sessions
        self.store = store
        self.sender = sender
        self.guard = guard or SlotReservationGuard(store, schedule)
        self.ctx = DialogueContext(
            extractor=extractor,
            store=store,
            guard=self.guard,
            # El conjunto mínimo siempre se exige; la configuración solo lo amplía
            required_fields=tuple(dict.fromkeys((*REQUIRED_FIELDS, *required_fields))),
        )

    async def handle_message(self, user_id: str, text: str, display_name: Optional[str] = None) -> str:
        """Procesa un mensaje y devuelve la respuesta (no la envía)."""
        async with self.sessions.lock(user_id):
            session = self.sessions.get(user_id)

            state: AgentState = {
                "user_id": user_id,
                "user_message": text or "",
                "display_name": display_name or "Paciente",
                "mode": session.mode,
                "expecting": session.expecting,
                "draft": session.draft,
                "offered_times": list(session.offered_times),
                "clear_session": False,
                "understood": False,
            }

            try:
                result = await app_graph.ainvoke(state, config={"configurable": {"ctx": self.ctx}})
            except Exception:
                app_logger.error("💥 Error procesando el turno", exc_info=True, extra={"user_id": user_id})
                return GENERIC_RETRY

            if result.get("clear_session"):
                self.sessions.clear(user_id)
            else:
                session.mode = result.get("mode", session.mode)
                session.expecting = result.get("expecting")
                session.draft = result.get("draft", session.draft)
                session.offered_times = list(result.get("offered_times") or [])
                self.sessions.save(session)

        return result.get("ai_response") or GENERIC_RETRY

    async def process_message(self, user_id: str, text: str, display_name: Optional[str] = None) -> str:
        """Turno completo: procesar y responder por WhatsApp (tarea en segundo plano)."""
        reply = await self.handle_message(user_id, text, display_name)
        if self.sender is not None:
            await self.sender.send(user_id, reply)
        return reply


def build_controller() -> DialogueController:
    """Arma el controlador con la configuración del entorno."""
    if settings.SPREADSHEET_ID and settings.GOOGLE_CREDENTIALS_BASE64:
        store = SheetsAppointmentStore(
            settings.SPREADSHEET_ID,
            credentials_b64=settings.GOOGLE_CREDENTIALS_BASE64,
            sheet_range=settings.SHEET_RANGE,
        )
    else:
        app_logger.warning("⚠️ Google Sheets no configurado: usando almacén de citas en memoria")
        store = InMemoryAppointmentStore()

    schedule = ClinicSchedule(
        open_hour=settings.CLINIC_OPEN_HOUR,
        close_hour=settings.CLINIC_CLOSE_HOUR,
        step_minutes=settings.SLOT_MINUTES,
    )
    return DialogueController(
        sessions=InMemorySessionStore(ttl_seconds=settings.SESSION_TTL_MINUTES * 60),
        store=store,
        extractor=EntityExtractor(),
        sender=WhatsAppSender(),
        schedule=schedule,
        required_fields=settings.REQUIRED_FIELDS,
    )
