import json
from functools import lru_cache
from typing import Optional, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from citabot.agents.controller import DialogueController, build_controller
from citabot.config import settings
from citabot.core.dedup import MessageDeduplicator
from citabot.core.logger import app_logger
from citabot.core.normalizer import normalize_phone

# Router principal (usado en /api/webhook)
router = APIRouter()


@lru_cache(maxsize=1)
def get_controller() -> DialogueController:
    return build_controller()


@lru_cache(maxsize=1)
def get_deduplicator() -> MessageDeduplicator:
    return MessageDeduplicator(ttl_seconds=settings.DEDUP_TTL_SECONDS)


# ==========================================================
# PARSEO DE SOBRES (Meta Cloud API / Twilio)
# ==========================================================

InboundMessage = Tuple[str, str, str, Optional[str]]  # user_id, text, display_name, message_id


def parse_meta_envelope(payload: dict) -> Tuple[Optional[InboundMessage], str]:
    """Devuelve (mensaje, motivo). Si no hay texto utilizable, mensaje es None."""
    try:
        value = payload["entry"][0]["changes"][0]["value"]
    except (KeyError, IndexError, TypeError):
        return None, "invalidEnvelope"
    if not isinstance(value, dict):
        return None, "invalidEnvelope"

    if value.get("statuses"):
        return None, "statusUpdate"

    messages = value.get("messages") or []
    if not messages:
        return None, "noMessage"

    msg = messages[0] if isinstance(messages, list) else None
    if not isinstance(msg, dict):
        return None, "noText"

    body = msg.get("text")
    text = body.get("body") if isinstance(body, dict) else None
    text = text.strip() if isinstance(text, str) else ""
    user_id = normalize_phone(msg.get("from"))
    if not text or not user_id:
        return None, "noText"

    contacts = value.get("contacts")
    contact = contacts[0] if isinstance(contacts, list) and contacts else None
    profile = contact.get("profile") if isinstance(contact, dict) else None
    display_name = (profile.get("name") if isinstance(profile, dict) else None) or "Paciente"
    message_id = msg.get("id")
    return (user_id, text, display_name, str(message_id) if message_id else None), "message"


def parse_twilio_form(form) -> Tuple[Optional[InboundMessage], str]:
    sender = form.get("From")
    body = (form.get("Body") or "").strip()
    if not sender or not body:
        return None, "noText"

    user_id = normalize_phone(sender)
    display_name = form.get("ProfileName") or "Paciente"
    return (user_id, body, display_name, form.get("MessageSid")), "message"


# --------------------------
# Verificación (handshake de Meta)
# --------------------------
@router.get("/webhook")
async def verify_webhook(request: Request):
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge", "")

    if mode == "subscribe" and settings.VERIFY_TOKEN and token == settings.VERIFY_TOKEN:
        app_logger.info("✅ Webhook verificado")
        return PlainTextResponse(challenge)

    app_logger.warning("⚠️ Verificación de webhook fallida")
    return PlainTextResponse("Verification failed", status_code=403)


# --------------------------
# Ruta oficial (API REST)
# --------------------------
@router.post("/webhook")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    controller: DialogueController = Depends(get_controller),
    dedup: MessageDeduplicator = Depends(get_deduplicator),
):
    is_json = "application/json" in request.headers.get("content-type", "")

    if is_json:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            return JSONResponse({"received": False, "reason": "invalidJson"})
        inbound, reason = parse_meta_envelope(payload)
    else:
        form = await request.form()
        inbound, reason = parse_twilio_form(form)

    if inbound is None:
        app_logger.info(f"📭 Sobre sin texto ({reason})")
        if is_json:
            return JSONResponse({"received": True, reason: True})
        return PlainTextResponse("No content")

    user_id, text, display_name, message_id = inbound

    if not dedup.first_delivery(message_id):
        app_logger.info("🔁 Entrega duplicada ignorada", extra={"user_id": user_id, "message_id": message_id})
        if is_json:
            return JSONResponse({"received": True, "duplicate": True})
        return PlainTextResponse("OK")

    app_logger.info(f"📩 Mensaje entrante: {text[:80]}", extra={"user_id": user_id, "message_id": message_id})

    # Procesar en Background (respuesta inmediata al proveedor)
    background_tasks.add_task(controller.process_message, user_id, text, display_name)

    if is_json:
        return JSONResponse({"received": True})
    return PlainTextResponse("OK")


# -----------------------------------
# Ruta duplicada (sin prefix /api)
# -----------------------------------
legacy_router = APIRouter()


@legacy_router.get("/webhook")
async def legacy_verify(request: Request):
    return await verify_webhook(request)


@legacy_router.post("/webhook")
async def legacy_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    controller: DialogueController = Depends(get_controller),
    dedup: MessageDeduplicator = Depends(get_deduplicator),
):
    """Versión sin prefix /api, para Meta/Twilio"""
    return await whatsapp_webhook(request, background_tasks, controller, dedup)
