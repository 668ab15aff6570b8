from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict, List, Optional


class AppointmentStatus(str, Enum):
    PENDING = "pendiente"
    CONFIRMED = "confirmada"
    CANCELLED = "cancelada"
    RESCHEDULED = "reagendada"


# Estados que ocupan un horario
ACTIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


class SessionMode(str, Enum):
    IDLE = "idle"
    CREATING = "creating"
    RESCHEDULING = "rescheduling"
    CANCELLING = "cancelling"


@dataclass
class AppointmentRecord:
    """Cita en borrador (sesión) o ya registrada (persistencia)."""

    patient_name: Optional[str] = None
    national_id: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    date: Optional[str] = None           # DD/MM/YYYY
    time: Optional[str] = None           # HH:MM (24h)
    status: str = AppointmentStatus.PENDING.value
    notes: Optional[str] = None          # None = no preguntado, "" = omitido
    appointment_number: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def slot_key(self) -> str:
        return slot_key(self.date, self.time)


def slot_key(date: Optional[str], time: Optional[str]) -> str:
    return f"{date or ''}|{time or ''}"


@dataclass
class Session:
    user_id: str
    expires_at: float
    draft: AppointmentRecord = field(default_factory=AppointmentRecord)
    mode: str = SessionMode.IDLE.value
    # Campo que el bot está esperando:
    # "fields" | "time" | "notes" | "confirmation" | "change" | "identifier"
    expecting: Optional[str] = None
    offered_times: List[str] = field(default_factory=list)


# total=False para que los campos sean opcionales a nivel de type-checking
class AgentState(TypedDict, total=False):
    # Datos básicos del turno
    user_id: str
    user_message: str
    display_name: str

    # Sesión (copia de trabajo)
    mode: str
    expecting: Optional[str]
    draft: AppointmentRecord
    offered_times: List[str]

    # Extracción del turno
    intent: Optional[str]
    nlu_fields: dict
    nlu_reply: Optional[str]
    local_fields: dict
    missing_fields: List[str]

    # Enrutamiento interno del grafo
    route: Optional[str]

    # Salida
    ai_response: str
    clear_session: bool
    understood: bool
