# citabot/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _list_env(name: str, default: tuple) -> tuple:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


class Settings:
    # Webhook (handshake de Meta)
    VERIFY_TOKEN = os.getenv("VERIFY_TOKEN")

    # Azure Chat (extracción de entidades)
    AZURE_API_KEY = os.getenv("AZURE_OPENAI_API_KEY")
    AZURE_ENDPOINT = os.getenv("AZURE_OPENAI_ENDPOINT")
    AZURE_API_VERSION = os.getenv("AZURE_OPENAI_API_VERSION")
    AZURE_DEPLOYMENT = os.getenv("AZURE_DEPLOYMENT_NAME")

    # Twilio
    TWILIO_SID = os.getenv("TWILIO_SID")
    TWILIO_TOKEN = os.getenv("TWILIO_TOKEN")
    TWILIO_FROM = os.getenv("TWILIO_WHATSAPP_NUMBER")

    # Google Sheets (hoja CITAS)
    SPREADSHEET_ID = os.getenv("SPREADSHEET_ID")
    GOOGLE_CREDENTIALS_BASE64 = os.getenv("GOOGLE_CREDENTIALS_BASE64")
    SHEET_RANGE = os.getenv("SHEET_RANGE", "CITAS!A:I")

    # Sesiones y agenda
    SESSION_TTL_MINUTES = _int_env("SESSION_TTL_MINUTES", 20)
    CLINIC_OPEN_HOUR = _int_env("CLINIC_OPEN_HOUR", 8)
    CLINIC_CLOSE_HOUR = _int_env("CLINIC_CLOSE_HOUR", 17)
    SLOT_MINUTES = _int_env("SLOT_MINUTES", 60)

    # Campos mínimos para cerrar una cita
    REQUIRED_FIELDS = _list_env(
        "REQUIRED_FIELDS", ("patient_name", "national_id", "date", "time")
    )

    # Deduplicación de entregas repetidas del webhook
    DEDUP_TTL_SECONDS = _int_env("DEDUP_TTL_SECONDS", 600)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
