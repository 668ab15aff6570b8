import random
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from langchain_core.runnables import RunnableConfig

from citabot.agents.state import (
    ACTIVE_STATUSES,
    AgentState,
    AppointmentRecord,
    AppointmentStatus,
    SessionMode,
)
from citabot.agents.prompts import (
    ASK_IDENTIFIER,
    ASK_REASON,
    CHANGE_QUESTION,
    CLOSINGS,
    CONFIRM_QUESTION,
    GREETINGS,
    HELP_LINES,
    INSTRUCTIONS,
)
from citabot.core.logger import app_logger
from citabot.core.merger import (
    FIELD_LABELS,
    REQUIRED_FIELDS,
    extract_local_fields,
    merge_entities,
    missing_fields,
)
from citabot.core.normalizer import (
    fold_text,
    is_time_unset,
    normalize_national_id,
    normalize_time,
)
from citabot.core.slots import ReservationOutcome, SlotReservationGuard
from citabot.core.storage import AppointmentStore, StorageWriteError

# ==========================================================
# CONTEXTO / CONSTANTES
# ==========================================================


@dataclass
class DialogueContext:
    """Colaboradores que el grafo recibe vía config["configurable"]["ctx"]."""

    extractor: Any
    store: AppointmentStore
    guard: SlotReservationGuard
    required_fields: Tuple[str, ...] = REQUIRED_FIELDS


def _ctx(config: RunnableConfig) -> DialogueContext:
    return config["configurable"]["ctx"]


END_TURN = "end"

CANCEL_RE = re.compile(r"\b(cancelar|cancela|cancelo|cancelemos|anular|anula|anulen)\b")
RESCHEDULE_RE = re.compile(
    r"\b(reagendar|reagenda|reagendemos|re-agendar|re agendar|reprogramar|"
    r"(?:cambiar|mover) (?:mi |la )?cita)\b"
)

YES_WORDS = {"si", "s", "confirmo", "confirmar", "ok", "okay", "dale", "correcto", "claro", "listo", "acepto", "yes"}
YES_PHRASES = ("de acuerdo", "esta bien", "por supuesto")
NO_WORDS = {"no", "n", "nop", "negativo", "incorrecto", "corregir", "cambiar"}
OMIT_WORDS = {"omitir", "omite", "ninguno", "ninguna", "nada", "no", "n/a", "na", "-", "sin motivo", "ningun motivo"}

# Palabras clave → campos a corregir tras un "no" en la confirmación
CHANGE_KEYWORDS = {
    "nombre": ("patient_name",),
    "paciente": ("patient_name",),
    "cedula": ("national_id",),
    "fecha": ("date", "time"),
    "dia": ("date", "time"),
    "hora": ("time",),
    "horario": ("time",),
    "motivo": ("notes",),
    "observacion": ("notes",),
    "celular": ("contact_phone",),
    "telefono": ("contact_phone",),
    "contacto": ("contact_name",),
}

FIELD_HINTS = {
    "patient_name": "Ej: *nombre Ana Pérez*",
    "national_id": "Ej: *cédula 1802525254*",
    "date": "Formato DD/MM/AAAA, ej: *10/10/2025*",
}

ALLOWED_STATUS_UPDATES = {
    "confirmada": AppointmentStatus.CONFIRMED.value,
    "confirmar": AppointmentStatus.CONFIRMED.value,
    "confirmado": AppointmentStatus.CONFIRMED.value,
    "pendiente": AppointmentStatus.PENDING.value,
}


def classify_reply(text: str) -> Optional[str]:
    """'yes' / 'no' / None según palabras clave fijas."""
    folded = fold_text(text)
    words = re.findall(r"[a-z]+", folded)
    if any(folded.startswith(p) for p in YES_PHRASES) or (words and words[0] in YES_WORDS):
        return "yes"
    if words and words[0] in NO_WORDS:
        return "no"
    return None


def format_times(times: List[str]) -> str:
    return "\n".join(f"• {t}" for t in times)


def format_summary(draft: AppointmentRecord) -> str:
    contact = draft.contact_name or draft.patient_name or ""
    if draft.contact_phone:
        contact = f"{contact} ({draft.contact_phone})"
    return (
        "Este es el resumen de tu cita:\n"
        f"- Paciente: {draft.patient_name}\n"
        f"- Cédula: {draft.national_id}\n"
        f"- Contacto: {contact}\n"
        f"- Fecha: {draft.date}\n"
        f"- Hora: {draft.time}\n"
        f"- Motivo: {draft.notes or 'N/A'}\n\n"
        f"{CONFIRM_QUESTION}"
    )


def _greeting(state: AgentState) -> str:
    return random.choice(GREETINGS).format(name=state.get("display_name") or "Paciente")


def _ask_missing(state: AgentState, pending: List[str]) -> str:
    labels = [FIELD_LABELS[f] for f in pending]
    listed = labels[0] if len(labels) == 1 else ", ".join(labels[:-1]) + " y " + labels[-1]
    hint = FIELD_HINTS.get(pending[0])
    hint_text = f"\n{hint}" if hint else ""

    if state.get("mode") in (None, SessionMode.IDLE.value):
        name = state.get("display_name") or "Paciente"
        return f"📋 {name}, para agendar necesito: {listed}.{hint_text}"
    if pending == ["date"] and state.get("mode") == SessionMode.RESCHEDULING.value:
        return f"🗓️ ¿Para qué fecha deseas reagendar tu cita?{hint_text}"
    return f"Aún me falta: {listed}.{hint_text}"


def _identifier(local: Dict[str, str], nlu: Dict[str, str], draft: AppointmentRecord, use_draft: bool):
    national_id = local.get("national_id") or normalize_national_id(nlu.get("national_id"))
    number = local.get("appointment_number")
    if not national_id and not number and use_draft:
        national_id = draft.national_id
        number = draft.appointment_number
    return national_id, number


async def _find_active(ctx: DialogueContext, national_id: Optional[str], number: Optional[str]):
    if number:
        record = await ctx.store.find_by_appointment_number(number)
        if record and record.status in ACTIVE_STATUSES:
            return record
        if not national_id:
            return None
    return await ctx.store.find_by_national_id(national_id, active_only=True)


async def _advance(
    ctx: DialogueContext,
    state: AgentState,
    draft: AppointmentRecord,
    mode: str,
    prefix: str = "",
) -> AgentState:
    """
    Decide el siguiente paso con el borrador ya fusionado:

    - faltan datos (excepto la hora) → pedirlos
    - hay fecha pero no hora → ofrecer horarios libres
    - completo y reagendando → registrar
    - completo sin motivo preguntado → pedir motivo
    - completo → resumen y confirmación
    """
    rescheduling = mode == SessionMode.RESCHEDULING.value
    required = ("date", "time") if rescheduling else ctx.required_fields
    missing = missing_fields(draft, required)

    pending = [f for f in missing if f != "time"]
    if not draft.date and "date" not in pending:
        pending.append("date")

    update: AgentState = {
        "draft": draft,
        "mode": mode,
        "missing_fields": missing,
        "offered_times": [],
        "route": END_TURN,
    }

    if pending:
        return {
            **update,
            "expecting": "fields",
            "ai_response": prefix + _ask_missing(state, pending),
        }

    if is_time_unset(draft.time):
        free = await ctx.guard.available_times(draft.date)
        if not free:
            app_logger.info(f"📭 Sin horarios para {draft.date}", extra={"user_id": state["user_id"]})
            text = (
                f"😕 No hay horarios disponibles para el {draft.date}.\n"
                "¿Qué otra fecha te queda bien? (DD/MM/AAAA)"
            )
            return {
                **update,
                "draft": replace(draft, date=None, time=None),
                "expecting": "fields",
                "ai_response": prefix + text,
            }

        text = (
            f"🗓️ Horarios disponibles para el {draft.date}:\n"
            f"{format_times(free)}\n\n"
            f"Responde con la hora que prefieras (por ejemplo {free[0]})."
        )
        return {
            **update,
            "expecting": "time",
            "offered_times": free,
            "ai_response": prefix + text,
        }

    if rescheduling:
        return {**update, "expecting": None, "route": "commit"}

    if draft.notes is None:
        return {**update, "expecting": "notes", "ai_response": prefix + ASK_REASON}

    return {
        **update,
        "expecting": "confirmation",
        "ai_response": prefix + format_summary(draft),
    }


# ==========================================================
# NODO 1: TRIAGE (cancelar / reagendar / paso pendiente)
# ==========================================================

async def triage_node(state: AgentState) -> AgentState:
    msg = fold_text(state.get("user_message"))
    expecting = state.get("expecting")
    mode = state.get("mode")

    # Cancelar / reagendar cortan cualquier flujo
    if CANCEL_RE.search(msg):
        route = "cancel"
    elif RESCHEDULE_RE.search(msg):
        route = "reschedule"
    elif expecting == "identifier":
        route = "cancel" if mode == SessionMode.CANCELLING.value else "reschedule"
    elif expecting == "time":
        route = "choose_slot"
    elif expecting == "notes":
        route = "reason"
    elif expecting == "confirmation":
        route = "confirm"
    else:
        route = "understand"

    app_logger.info(f"🧭 triage → {route} (mode={mode}, expecting={expecting})", extra={"user_id": state["user_id"]})
    return {"route": route}


# ==========================================================
# NODO 2: EXTRACCIÓN (NLU + regex local)
# ==========================================================

def _has_booking_fields(*sources: Dict[str, str]) -> bool:
    return any(
        source.get(name)
        for source in sources
        for name in ("patient_name", "national_id", "date", "time")
    )


async def understand_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    msg = state.get("user_message", "")

    nlu = await ctx.extractor.extract(msg)
    local = extract_local_fields(msg)

    mode = state.get("mode") or SessionMode.IDLE.value
    if state.get("expecting") == "change":
        route = "change"
    elif mode != SessionMode.IDLE.value:
        route = "collect"
    elif nlu.intent == "cancelar_cita":
        route = "cancel"
    elif nlu.intent == "reagendar_cita":
        route = "reschedule"
    elif nlu.intent == "consultar_cita":
        route = "lookup"
    elif nlu.intent == "actualizar_estado":
        route = "update_status"
    elif nlu.intent == "crear_cita" or _has_booking_fields(local, nlu.fields):
        route = "collect"
    else:
        route = "help"

    return {
        "intent": nlu.intent,
        "nlu_fields": nlu.fields,
        "nlu_reply": nlu.reply,
        "local_fields": local,
        "understood": True,
        "route": route,
    }


# ==========================================================
# NODO 3: RECOLECCIÓN DE CAMPOS
# ==========================================================

async def collect_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    mode = state.get("mode") or SessionMode.IDLE.value
    rescheduling = mode == SessionMode.RESCHEDULING.value
    local = state.get("local_fields") or {}
    nlu_fields = state.get("nlu_fields") or {}

    result = merge_entities(
        state.get("draft") or AppointmentRecord(),
        nlu_fields,
        local,
        sender_id=state["user_id"],
        required_fields=("date", "time") if rescheduling else ctx.required_fields,
        only=("date", "time") if rescheduling else None,
        accept={"time": ctx.guard.schedule.is_bookable_time},
    )
    draft = result.draft

    # Hora indicada fuera de la agenda de la clínica
    prefix = ""
    offered_time = normalize_time(local.get("time") or nlu_fields.get("time"))
    if not is_time_unset(offered_time) and is_time_unset(draft.time):
        prefix = f"⚠️ Las {offered_time} no es un horario de atención.\n"

    app_logger.info(
        f"🧩 Campos nuevos={result.filled_fields} faltan={result.missing_fields}",
        extra={"user_id": state["user_id"]},
    )

    next_mode = mode if rescheduling else SessionMode.CREATING.value
    return await _advance(ctx, state, draft, next_mode, prefix)


# ==========================================================
# NODO 4: ELEGIR HORARIO
# ==========================================================

async def choose_slot_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    msg = state.get("user_message", "").strip()
    offered = state.get("offered_times") or []
    draft = state.get("draft") or AppointmentRecord()
    mode = state.get("mode") or SessionMode.CREATING.value

    chosen = next((t for t in offered if t in msg), None)
    if chosen is None:
        candidate = normalize_time(msg)
        bare_hour = re.fullmatch(r"(?:a las\s+)?(\d{1,2})", fold_text(msg))
        if candidate is None and bare_hour and int(bare_hour.group(1)) < 24:
            candidate = f"{int(bare_hour.group(1)):02d}:00"
        if candidate in offered:
            chosen = candidate

    if chosen is None:
        if not offered:
            return await _advance(ctx, state, draft, mode)
        text = (
            "Ese horario no está entre los disponibles. Elige uno de estos:\n"
            f"{format_times(offered)}\n\n"
            f"Responde con la hora, por ejemplo {offered[0]}."
        )
        return {"expecting": "time", "ai_response": text, "route": END_TURN}

    return await _advance(ctx, state, replace(draft, time=chosen), mode)


# ==========================================================
# NODO 5: MOTIVO / OBSERVACIONES
# ==========================================================

async def reason_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    raw = state.get("user_message", "").strip()
    omitted = fold_text(raw).strip(" .!¡") in OMIT_WORDS
    draft = replace(state.get("draft") or AppointmentRecord(), notes="" if omitted else raw)
    return await _advance(ctx, state, draft, state.get("mode") or SessionMode.CREATING.value)


# ==========================================================
# NODO 6: CONFIRMACIÓN
# ==========================================================

async def confirm_node(state: AgentState) -> AgentState:
    answer = classify_reply(state.get("user_message", ""))

    if answer == "yes":
        return {"route": "commit"}

    if answer == "no":
        return {"expecting": "change", "ai_response": CHANGE_QUESTION, "route": END_TURN}

    return {"expecting": "confirmation", "ai_response": CONFIRM_QUESTION, "route": END_TURN}


async def change_node(state: AgentState, config: RunnableConfig) -> AgentState:
    folded = fold_text(state.get("user_message"))
    words = set(re.findall(r"[a-z]+", folded))
    targets = []
    for keyword, fields in CHANGE_KEYWORDS.items():
        if keyword in words:
            targets.extend(f for f in fields if f not in targets)

    draft = state.get("draft") or AppointmentRecord()

    if not targets:
        if classify_reply(folded) == "yes":
            return {
                "expecting": "confirmation",
                "ai_response": format_summary(draft),
                "route": END_TURN,
            }
        return {
            "expecting": "change",
            "ai_response": "No identifiqué el dato a cambiar. " + CHANGE_QUESTION,
            "route": END_TURN,
        }

    cleared = {name: None for name in targets}
    if "patient_name" in targets and draft.contact_name == draft.patient_name:
        cleared["contact_name"] = None

    app_logger.info(f"✏️ Corrigiendo campos {targets}", extra={"user_id": state["user_id"]})
    return {"draft": replace(draft, **cleared), "expecting": "fields", "route": "collect"}


# ==========================================================
# NODO 7: REGISTRO (bajo candado de slot)
# ==========================================================

async def commit_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    draft = state["draft"]
    mode = state.get("mode") or SessionMode.CREATING.value
    rescheduling = mode == SessionMode.RESCHEDULING.value

    commit = None
    if rescheduling:
        previous_number = draft.appointment_number

        async def commit(record: AppointmentRecord) -> str:
            # La cita anterior se marca antes de escribir la nueva; si la
            # escritura falla se restaura su estado y el reintento parte de cero
            previous = None
            if previous_number:
                previous = await ctx.store.find_by_appointment_number(previous_number)
                marked = await ctx.store.update_status_by_appointment_number(
                    previous_number, AppointmentStatus.RESCHEDULED.value
                )
                if not marked:
                    raise StorageWriteError(f"No se pudo marcar la cita {previous_number} como reagendada")
            try:
                return await ctx.store.append_record(
                    replace(record, appointment_number=None, created_at=None)
                )
            except Exception:
                if previous is not None:
                    app_logger.warning(
                        "↩️ Restaurando estado de la cita anterior",
                        extra={"user_id": state["user_id"], "appointment_number": previous_number},
                    )
                    await ctx.store.update_status_by_appointment_number(previous_number, previous.status)
                raise

    record = replace(draft, status=AppointmentStatus.PENDING.value)
    if not rescheduling:
        record = replace(record, appointment_number=None)

    result = await ctx.guard.reserve(record, owner=state["user_id"], commit=commit)

    if result.outcome == ReservationOutcome.COMMITTED:
        if rescheduling:
            text = (
                f"✅ Tu cita fue reagendada para el {draft.date} a las {draft.time}.\n"
                f"Nuevo número de cita: {result.appointment_number}. {random.choice(CLOSINGS)}"
            )
        else:
            text = (
                f"✅ {_greeting(state)} Tu cita quedó registrada (cédula {draft.national_id}), "
                f"número interno {result.appointment_number}.\n"
                f"📅 {draft.date} a las {draft.time}. {random.choice(CLOSINGS)}"
            )
        return {"clear_session": True, "ai_response": text, "route": END_TURN}

    if result.outcome == ReservationOutcome.BEING_RESERVED:
        header = f"⏳ El horario de las {draft.time} del {draft.date} está siendo reservado por otra persona."
    else:
        header = f"⚠️ El horario de las {draft.time} del {draft.date} ya está ocupado."

    pending = replace(draft, time=None)
    if not result.free_times:
        return {
            "draft": replace(pending, date=None),
            "expecting": "fields",
            "offered_times": [],
            "ai_response": f"{header}\nNo quedan horarios libres ese día. ¿Qué otra fecha te queda bien? (DD/MM/AAAA)",
            "route": END_TURN,
        }

    return {
        "draft": pending,
        "expecting": "time",
        "offered_times": result.free_times,
        "ai_response": (
            f"{header}\nHorarios libres para el {draft.date}:\n"
            f"{format_times(result.free_times)}\n\n"
            "Responde con la hora que prefieras."
        ),
        "route": END_TURN,
    }


# ==========================================================
# NODO 8: CANCELAR CITA
# ==========================================================

async def cancel_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    msg = state.get("user_message", "")
    mode = state.get("mode") or SessionMode.IDLE.value
    draft = state.get("draft") or AppointmentRecord()
    follow_up = mode == SessionMode.CANCELLING.value and state.get("expecting") == "identifier"

    local = state.get("local_fields") or extract_local_fields(msg)
    national_id, number = _identifier(
        local, state.get("nlu_fields") or {}, draft,
        use_draft=mode == SessionMode.RESCHEDULING.value,
    )

    if not national_id and not number:
        if follow_up and not re.search(r"\d", msg):
            return {
                "clear_session": True,
                "ai_response": "No recibí una cédula ni un número de cita, así que no cancelé nada.\n" + INSTRUCTIONS,
                "route": END_TURN,
            }

        discarded = ""
        if mode == SessionMode.CREATING.value:
            discarded = "Listo, descarté la solicitud de cita en curso.\n"
        return {
            "mode": SessionMode.CANCELLING.value,
            "expecting": "identifier",
            "draft": AppointmentRecord(),
            "offered_times": [],
            "ai_response": discarded + ASK_IDENTIFIER.format(action="cancelar"),
            "route": END_TURN,
        }

    record = await _find_active(ctx, national_id, number)
    if record is None:
        reference = f"la cédula {national_id}" if national_id else f"el número {number}"
        return {
            "clear_session": True,
            "ai_response": f"⚠️ No encontré ninguna cita activa con {reference}.",
            "route": END_TURN,
        }

    ok = await ctx.store.update_status_by_appointment_number(
        record.appointment_number, AppointmentStatus.CANCELLED.value
    )
    if not ok:
        text = f"⚠️ No pude cancelar la cita número {record.appointment_number}. Inténtalo nuevamente."
    else:
        app_logger.info(
            "🗑️ Cita cancelada",
            extra={"user_id": state["user_id"], "appointment_number": record.appointment_number},
        )
        text = (
            f"✅ Tu cita número {record.appointment_number} del {record.date} "
            f"a las {record.time} fue cancelada."
        )
    return {"clear_session": True, "ai_response": text, "route": END_TURN}


# ==========================================================
# NODO 9: REAGENDAR CITA
# ==========================================================

async def reschedule_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    msg = state.get("user_message", "")
    mode = state.get("mode") or SessionMode.IDLE.value
    draft = state.get("draft") or AppointmentRecord()
    follow_up = mode == SessionMode.RESCHEDULING.value and state.get("expecting") == "identifier"

    local = state.get("local_fields") or extract_local_fields(msg)
    national_id, number = _identifier(
        local, state.get("nlu_fields") or {}, draft,
        use_draft=mode == SessionMode.RESCHEDULING.value,
    )

    if not national_id and not number:
        if follow_up and not re.search(r"\d", msg):
            return {
                "clear_session": True,
                "ai_response": "No recibí una cédula ni un número de cita, así que no reagendé nada.\n" + INSTRUCTIONS,
                "route": END_TURN,
            }
        return {
            "mode": SessionMode.RESCHEDULING.value,
            "expecting": "identifier",
            "draft": AppointmentRecord(),
            "offered_times": [],
            "ai_response": ASK_IDENTIFIER.format(action="reagendar"),
            "route": END_TURN,
        }

    record = await _find_active(ctx, national_id, number)
    if record is None:
        reference = f"la cédula {national_id}" if national_id else f"el número {number}"
        return {
            "clear_session": True,
            "ai_response": f"⚠️ No encontré ninguna cita activa con {reference}.",
            "route": END_TURN,
        }

    # La fecha/hora se vuelven a pedir: es el único caso en que se pisan
    new_draft = replace(record, date=None, time=None, status=AppointmentStatus.PENDING.value)
    update: AgentState = {
        "mode": SessionMode.RESCHEDULING.value,
        "expecting": "fields",
        "draft": new_draft,
        "offered_times": [],
        "local_fields": local,
    }

    if local.get("date") or (state.get("nlu_fields") or {}).get("date"):
        return {**update, "route": "collect" if state.get("understood") else "understand"}

    return {
        **update,
        "ai_response": (
            f"🔁 Encontré tu cita número {record.appointment_number} "
            f"del {record.date} a las {record.time}.\n"
            "¿Para qué nueva fecha deseas reagendarla? (DD/MM/AAAA)"
        ),
        "route": END_TURN,
    }


# ==========================================================
# NODO 10: CONSULTAR / ACTUALIZAR ESTADO / AYUDA
# ==========================================================

async def lookup_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    local = state.get("local_fields") or {}
    national_id = local.get("national_id") or normalize_national_id((state.get("nlu_fields") or {}).get("national_id"))

    if not national_id:
        text = "Por favor envíame la cédula para consultar la cita. Ej: consultar cédula 1802525254"
        return {"clear_session": True, "ai_response": text, "route": END_TURN}

    record = await ctx.store.find_by_national_id(national_id)
    if record is None:
        text = f"⚠️ No encontré ninguna cita con la cédula {national_id}."
    else:
        text = (
            f"📄 Cita de {record.patient_name} (número {record.appointment_number}):\n"
            f"- Fecha: {record.date}\n"
            f"- Hora: {record.time}\n"
            f"- Estado: {record.status}\n"
            f"- Obs: {record.notes or 'N/A'}"
        )
    return {"clear_session": True, "ai_response": text, "route": END_TURN}


async def update_status_node(state: AgentState, config: RunnableConfig) -> AgentState:
    ctx = _ctx(config)
    local = state.get("local_fields") or {}
    nlu_fields = state.get("nlu_fields") or {}
    national_id = local.get("national_id") or normalize_national_id(nlu_fields.get("national_id"))

    new_status = ALLOWED_STATUS_UPDATES.get(fold_text(nlu_fields.get("status")))
    if new_status is None:
        words = re.findall(r"[a-z]+", fold_text(state.get("user_message")))
        new_status = next((ALLOWED_STATUS_UPDATES[w] for w in words if w in ALLOWED_STATUS_UPDATES), None)

    if not national_id or not new_status:
        text = "Indica cédula y nuevo estado. Ej: actualizar 1802525254 a confirmada"
        return {"clear_session": True, "ai_response": text, "route": END_TURN}

    ok = await ctx.store.update_status_by_national_id(national_id, new_status)
    text = (
        f"✅ Estado de la cita con cédula {national_id} actualizado a: {new_status}."
        if ok
        else f"⚠️ No pude actualizar la cita con cédula {national_id}. Verifica si existe."
    )
    return {"clear_session": True, "ai_response": text, "route": END_TURN}


async def help_node(state: AgentState) -> AgentState:
    body = state.get("nlu_reply") or random.choice(HELP_LINES)
    return {
        "clear_session": True,
        "ai_response": f"{_greeting(state)} {body}\n{INSTRUCTIONS}",
        "route": END_TURN,
    }
