"""
Fusión de entidades: regex local + NLU + borrador previo de la sesión.

Política "solo rellenar vacíos": un campo del borrador que ya tiene valor
nunca se pisa en un turno posterior. Para cada campo vacío se adopta el primer
candidato no vacío, revisando primero el regex local (coincidencias literales,
más confiables) y luego la salida del NLU.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional

from citabot.agents.state import AppointmentRecord
from citabot.core.normalizer import (
    fold_text,
    normalize_date,
    normalize_name,
    normalize_national_id,
    normalize_phone,
    normalize_time,
)

REQUIRED_FIELDS = ("patient_name", "national_id", "date", "time")

# Orden en el que se revisan/piden los campos
FIELD_ORDER = (
    "patient_name",
    "national_id",
    "contact_name",
    "contact_phone",
    "date",
    "time",
    "notes",
)

FIELD_LABELS = {
    "patient_name": "nombre del paciente",
    "national_id": "número de cédula",
    "contact_name": "nombre de contacto",
    "contact_phone": "celular de contacto",
    "date": "fecha de la cita",
    "time": "hora de la cita",
    "notes": "motivo de la consulta",
}

# ==========================================================
# PATRONES LOCALES
# ==========================================================

_LABELED_ID_RE = re.compile(
    r"(?i:c[ée]dula|\bci\b|\bdni\b|identificaci[óo]n)\D{0,20}?(\d{10})(?!\d)"
)
_BARE_ID_RE = re.compile(r"(?<!\d)(\d{10})(?!\d)")

_LABELED_PHONE_RE = re.compile(
    r"(?i:celular|tel[ée]fono|\bcel\b)\D{0,12}?(\+?\d[\d\s-]{7,14}\d)"
)
_LOCAL_PHONE_RE = re.compile(r"(?<!\d)(09\d{8})(?!\d)")

_APPOINTMENT_NUMBER_RE = re.compile(
    r"(?i:\bcita\b|n[úu]mero|\bnro\b\.?|\bno\.)\s*(?:de\s+cita\s*)?#?\s*(\d{1,6})"
    r"(?![\d/\-.:])(?!\s*[ap]\.?\s*m)"
)

_NAME_WORD = r"[A-Za-zÁÉÍÓÚÑáéíóúñÜü]+"
_LABELED_NAME_RE = re.compile(
    r"(?i:nombre\s+(?:del\s+paciente\s+)?(?:es\s+)?|paciente\s+(?:es\s+)?|me\s+llamo\s+|\bsoy\s+)"
    rf"({_NAME_WORD}(?:\s+{_NAME_WORD}){{0,3}})"
)
_FREE_NAME_RE = re.compile(
    r"\b([A-ZÁÉÍÓÚÑ][a-záéíóúñ]+(?:\s+[A-ZÁÉÍÓÚÑ][a-záéíóúñ]+){1,3})\b"
)

_DATE_RE = re.compile(
    r"(?<!\d)(\d{4}-\d{1,2}-\d{1,2}|\d{1,2}\s*[/\-.]\s*\d{1,2}\s*[/\-.]\s*(?:\d{4}|\d{2}))(?!\d)"
)
_TIME_RE = re.compile(
    r"(?<!\d)(\d{1,2}(?:\s*[:h.]\s*\d{2})?\s*[ap]\.?\s*m\.?(?![a-záéíóúñ])|\d{1,2}\s*[:h]\s*\d{2})(?!\d)",
    re.IGNORECASE,
)

# Palabras que cortan un nombre etiquetado ("me llamo ana perez y mi cédula...")
_NAME_STOPWORDS = {
    "y", "e", "con", "mi", "su", "cedula", "ci", "dni", "celular", "telefono",
    "para", "el", "la", "fecha", "hora", "cita", "numero", "a", "al", "en",
    "por", "que", "quiero", "necesito", "agendar", "manana", "hoy",
}
# Palabras que descartan un nombre libre en mayúsculas ("Hola Buenos Días")
_FREE_NAME_BLOCKLIST = {
    "hola", "buenos", "buenas", "dias", "tardes", "noches", "quiero", "cita",
    "agendar", "gracias", "por", "favor", "doctor", "doctora", "necesito",
    "cancelar", "reagendar", "consultar", "mi", "la", "el", "para", "si", "no",
}


def _clean_labeled_name(raw: str) -> Optional[str]:
    kept: List[str] = []
    for word in raw.split():
        if fold_text(word) in _NAME_STOPWORDS:
            break
        kept.append(word)
    return normalize_name(" ".join(kept)) if kept else None


def _find_name(text: str) -> Optional[str]:
    for match in _LABELED_NAME_RE.finditer(text):
        name = _clean_labeled_name(match.group(1))
        if name:
            return name

    for match in _FREE_NAME_RE.finditer(text):
        words = [w for w in match.group(1).split() if fold_text(w) not in _FREE_NAME_BLOCKLIST]
        if len(words) >= 2:
            return normalize_name(" ".join(words))
    return None


def extract_local_fields(text: str) -> Dict[str, str]:
    """
    Extracción determinística por regex sobre el mensaje crudo.

    Devuelve solo los campos encontrados, ya normalizados.
    """
    data: Dict[str, str] = {}
    if not text:
        return data

    labeled_id = _LABELED_ID_RE.search(text)
    labeled_phone = _LABELED_PHONE_RE.search(text)
    phone = normalize_phone(labeled_phone.group(1)) if labeled_phone else ""

    if labeled_id:
        data["national_id"] = labeled_id.group(1)
    else:
        # Un número de 10 dígitos sin etiqueta es cédula, salvo que sea el celular
        for match in _BARE_ID_RE.finditer(text):
            if match.group(1) != phone:
                data["national_id"] = match.group(1)
                break

    if not phone:
        for match in _LOCAL_PHONE_RE.finditer(text):
            if match.group(1) != data.get("national_id"):
                phone = match.group(1)
                break
    if phone and phone != data.get("national_id"):
        data["contact_phone"] = phone

    name = _find_name(text)
    if name:
        data["patient_name"] = name

    date_match = _DATE_RE.search(text)
    if date_match:
        parsed = normalize_date(date_match.group(1))
        if parsed:
            data["date"] = parsed

    for time_match in _TIME_RE.finditer(text):
        parsed = normalize_time(time_match.group(1))
        if parsed:
            data["time"] = parsed
            break

    number = _APPOINTMENT_NUMBER_RE.search(text)
    if number and number.group(1) != data.get("national_id"):
        data["appointment_number"] = number.group(1)

    return data


# ==========================================================
# FUSIÓN
# ==========================================================

_NORMALIZERS: Dict[str, Callable] = {
    "patient_name": normalize_name,
    "contact_name": normalize_name,
    "national_id": normalize_national_id,
    "contact_phone": lambda v: normalize_phone(v) or None,
    "date": normalize_date,
    "time": normalize_time,
    "notes": lambda v: str(v).strip() or None,
}


def _is_empty(value) -> bool:
    return value is None or str(value).strip() == ""


@dataclass
class MergeResult:
    draft: AppointmentRecord
    missing_fields: List[str]
    filled_fields: List[str] = field(default_factory=list)


def missing_fields(draft: AppointmentRecord, required: Iterable[str] = REQUIRED_FIELDS) -> List[str]:
    return [name for name in required if _is_empty(getattr(draft, name, None))]


def merge_entities(
    draft: AppointmentRecord,
    nlu_fields: Optional[Dict[str, str]],
    local_fields: Optional[Dict[str, str]],
    sender_id: Optional[str] = None,
    required_fields: Iterable[str] = REQUIRED_FIELDS,
    only: Optional[Iterable[str]] = None,
    accept: Optional[Dict[str, Callable[[str], bool]]] = None,
) -> MergeResult:
    """
    Combina candidatos con el borrador sin modificar el borrador recibido.

    - `only`: limita los campos que se pueden rellenar (reagendar: fecha/hora).
    - `accept`: predicado por campo; un candidato que no lo cumple se ignora.
    """
    merged = replace(draft)
    allowed = set(only) if only is not None else set(FIELD_ORDER)
    accept = accept or {}
    nlu_fields = nlu_fields or {}
    local_fields = local_fields or {}
    filled: List[str] = []

    for name in FIELD_ORDER:
        if name not in allowed or not _is_empty(getattr(merged, name)):
            continue

        for source in (local_fields, nlu_fields):
            raw = source.get(name)
            if _is_empty(raw):
                continue
            value = _NORMALIZERS[name](raw)
            if _is_empty(value):
                continue
            check = accept.get(name)
            if check and not check(value):
                continue
            setattr(merged, name, value)
            filled.append(name)
            break

    # Valores por defecto
    if "contact_name" in allowed and _is_empty(merged.contact_name) and merged.patient_name:
        merged.contact_name = merged.patient_name
    if "contact_phone" in allowed and _is_empty(merged.contact_phone) and sender_id:
        merged.contact_phone = normalize_phone(sender_id) or None

    return MergeResult(
        draft=merged,
        missing_fields=missing_fields(merged, required_fields),
        filled_fields=filled,
    )
