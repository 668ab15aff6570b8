"""
Normalización de fragmentos libres (fecha, hora, teléfono, nombre, cédula).

Todas las funciones son puras: si el texto no se puede interpretar devuelven
None (o cadena vacía en el caso del teléfono), nunca lanzan excepciones. Quien
llama interpreta la ausencia como "el campo sigue faltando".
"""

import re
import unicodedata
from datetime import date as _date

# dd/mm/yyyy, d-m-yy, dd.mm.yyyy
_DMY_RE = re.compile(
    r"(?<!\d)(\d{1,2})\s*[/\-.]\s*(\d{1,2})\s*[/\-.]\s*(\d{4}|\d{2})(?!\d)"
)
# 2025-10-10 (con hora ISO opcional detrás)
_ISO_RE = re.compile(r"(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})(?!\d)")

# 2pm, 2 pm, 2:30 p.m., 10h30am
_TIME_12_RE = re.compile(
    r"(?<!\d)(\d{1,2})(?:\s*[:h.]\s*(\d{2}))?\s*([ap])\.?\s*m\.?(?![a-záéíóúñ])",
    re.IGNORECASE,
)
# 14:00, 9:05, 14h30
_TIME_24_RE = re.compile(r"(?<!\d)(\d{1,2})\s*[:h]\s*(\d{2})(?!\d)", re.IGNORECASE)

# Partículas que se dejan en minúscula dentro de un nombre
_NAME_PARTICLES = {"de", "del", "la", "las", "los", "y"}

TIME_UNSET = "00:00"


def fold_text(text: str | None) -> str:
    """Minúsculas y sin tildes, para comparar palabras clave."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    without_marks = "".join(c for c in decomposed if not unicodedata.combining(c))
    return without_marks.lower().strip()


def normalize_date(raw) -> str | None:
    """
    Devuelve la fecha en formato DD/MM/YYYY.

    Acepta D/M/YY, D/M/YYYY, D-M-YY (y variantes con punto) además de ISO
    YYYY-MM-DD. Los años de dos dígitos se completan con el prefijo "20".
    """
    if not raw:
        return None
    text = str(raw)

    iso = _ISO_RE.search(text)
    if iso:
        year, month, day = iso.groups()
    else:
        dmy = _DMY_RE.search(text)
        if not dmy:
            return None
        day, month, year = dmy.groups()
        if len(year) == 2:
            year = "20" + year

    try:
        parsed = _date(int(year), int(month), int(day))
    except ValueError:
        return None

    return parsed.strftime("%d/%m/%Y")


def normalize_time(raw) -> str | None:
    """
    Devuelve la hora en formato 24h HH:MM.

    Formas de 12 horas (am/pm, con minutos opcionales) se convierten con
    hour % 12 (+12 si es pm). Si no hay sufijo se interpreta como 24h y exige
    minutos.
    """
    if not raw:
        return None
    text = str(raw)

    for match in _TIME_12_RE.finditer(text):
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            continue
        hour = hour % 12
        if match.group(3).lower() == "p":
            hour += 12
        return f"{hour:02d}:{minute:02d}"

    for match in _TIME_24_RE.finditer(text):
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            continue
        return f"{hour:02d}:{minute:02d}"

    return None


def is_time_unset(value: str | None) -> bool:
    return not value or value == TIME_UNSET


def normalize_phone(raw) -> str:
    """Solo dígitos y, como mucho, un '+' inicial."""
    if not raw:
        return ""
    text = str(raw).strip()
    if text.lower().startswith("whatsapp:"):
        text = text[len("whatsapp:"):].strip()
    digits = re.sub(r"\D", "", text)
    if not digits:
        return ""
    return f"+{digits}" if text.startswith("+") else digits


def normalize_name(raw) -> str | None:
    if not raw:
        return None
    words = re.sub(r"[^\w\s'-]", " ", str(raw)).split()
    if not words:
        return None

    out = []
    for idx, word in enumerate(words):
        low = word.lower()
        if idx > 0 and low in _NAME_PARTICLES:
            out.append(low)
        else:
            out.append(low[:1].upper() + low[1:])
    return " ".join(out)


def normalize_national_id(raw) -> str | None:
    # Cédula ecuatoriana: exactamente 10 dígitos
    if not raw:
        return None
    digits = re.sub(r"\D", "", str(raw))
    return digits if len(digits) == 10 else None
