import asyncio

from twilio.rest import Client

from citabot.config import settings
from citabot.core.logger import app_logger


def to_whatsapp_address(user_id: str) -> str:
    if user_id.startswith("whatsapp:"):
        return user_id
    number = user_id if user_id.startswith("+") else f"+{user_id}"
    return f"whatsapp:{number}"


class WhatsAppSender:
    """Envía texto a un usuario de WhatsApp vía Twilio. Nunca lanza excepciones."""

    def __init__(self, client: Client | None = None, from_number: str | None = None):
        self._client = client
        self.from_number = from_number or settings.TWILIO_FROM

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(settings.TWILIO_SID, settings.TWILIO_TOKEN)
        return self._client

    async def send(self, user_id: str, text: str) -> bool:
        to = to_whatsapp_address(user_id)
        try:
            # El SDK de Twilio es bloqueante
            message = await asyncio.to_thread(
                self.client.messages.create,
                from_=to_whatsapp_address(self.from_number or ""),
                body=text,
                to=to,
            )
        except Exception:
            app_logger.error("❌ Error enviando mensaje de WhatsApp", exc_info=True, extra={"user_id": user_id})
            return False

        app_logger.info(f"📨 Mensaje enviado sid={getattr(message, 'sid', None)}", extra={"user_id": user_id})
        return True
