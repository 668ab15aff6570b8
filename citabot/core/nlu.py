"""
Cliente de extracción de entidades (NLU) sobre Azure OpenAI.

Dado un texto libre devuelve la intención y un registro parcial de campos.
Una respuesta mal formada del modelo se traduce en un resultado vacío; los
errores de red/servicio se propagan para que el controlador responda con el
mensaje genérico de reintento.
"""

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Optional

from langchain_core.messages import HumanMessage

from citabot.agents.prompts import ENTITY_EXTRACTION_PROMPT
from citabot.core.llm import get_llm
from citabot.core.logger import app_logger

INTENTS = {
    "crear_cita",
    "consultar_cita",
    "actualizar_estado",
    "cancelar_cita",
    "reagendar_cita",
    "otro",
}

# Claves del JSON del modelo → campos de AppointmentRecord
FIELD_MAP = {
    "nombre_paciente": "patient_name",
    "numero_cedula": "national_id",
    "nombre_contacto": "contact_name",
    "celular_contacto": "contact_phone",
    "fecha_cita": "date",
    "hora_cita": "time",
    "observaciones": "notes",
    "status_cita": "status",
}


@dataclass
class NluResult:
    intent: Optional[str] = None
    fields: Dict[str, str] = field(default_factory=dict)
    reply: Optional[str] = None


def parse_nlu_response(content) -> NluResult:
    if not isinstance(content, str):
        return NluResult()

    clean = content.replace("```json", "").replace("```", "").strip()
    try:
        payload = json.loads(clean)
    except json.JSONDecodeError:
        app_logger.warning(f"⚠️ Respuesta NLU no es JSON: {clean[:200]}")
        return NluResult()

    if not isinstance(payload, dict):
        return NluResult()

    intent = payload.get("intent")
    if not isinstance(intent, str) or intent.strip() not in INTENTS:
        intent = None
    else:
        intent = intent.strip()

    fields = {}
    data = payload.get("datos")
    if isinstance(data, dict):
        for key, target in FIELD_MAP.items():
            value = data.get(key)
            if isinstance(value, (str, int)) and str(value).strip():
                fields[target] = str(value).strip()

    reply = payload.get("respuesta")
    return NluResult(
        intent=intent,
        fields=fields,
        reply=reply.strip() if isinstance(reply, str) and reply.strip() else None,
    )


class EntityExtractor:
    def __init__(self, llm=None, today: Callable[[], date] = date.today):
        self._llm = llm
        self._today = today

    def _get_llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    async def extract(self, text: str) -> NluResult:
        if not text or not text.strip():
            return NluResult()

        prompt = ENTITY_EXTRACTION_PROMPT.format(
            today=self._today().strftime("%d/%m/%Y"),
            message=text.replace('"', "'"),
        )
        resp = await self._get_llm().ainvoke([HumanMessage(content=prompt)])
        result = parse_nlu_response(resp.content)
        app_logger.info(f"🧠 NLU intent={result.intent} campos={sorted(result.fields)}")
        return result
