# citabot/agents/prompts.py

ENTITY_EXTRACTION_PROMPT = """
Eres el asistente de agendamiento de citas médicas de una clínica en Ecuador.
Hoy es {today} (formato DD/MM/YYYY).

Analiza el mensaje de WhatsApp del usuario y responde ÚNICAMENTE con un JSON
válido (sin bloques de código ```json):
{{
    "intent": "crear_cita | consultar_cita | actualizar_estado | cancelar_cita | reagendar_cita | otro",
    "datos": {{
        "nombre_paciente": "",
        "numero_cedula": "",
        "nombre_contacto": "",
        "celular_contacto": "",
        "fecha_cita": "DD/MM/YYYY",
        "hora_cita": "HH:MM (24 horas)",
        "observaciones": "",
        "status_cita": "pendiente | confirmada"
    }},
    "respuesta": "Respuesta breve y cordial para el usuario"
}}

Reglas:
1. Incluye en "datos" solo los campos que aparecen en el mensaje; deja el resto vacío.
2. Convierte fechas relativas ("mañana", "el lunes") a DD/MM/YYYY usando la fecha de hoy.
3. No inventes cédulas, teléfonos ni nombres.

Mensaje: "{message}"
"""

GENERIC_RETRY = (
    "⚠️ Tuve un problema procesando tu mensaje. "
    "Por favor inténtalo nuevamente en unos minutos."
)

INSTRUCTIONS = """Puedes decir:
- “crear cita para el 10/10/2025 a nombre de Ana Pérez, cédula 1802525254”
- “consultar cédula 1802525254”
- “reagendar mi cita” o “cancelar mi cita”"""

GREETINGS = [
    "Hola {name} 👋",
    "¡Qué gusto verte, {name}!",
    "Buenas, {name} 😄",
    "¡Hola de nuevo, {name}!",
]

CLOSINGS = [
    "¡Te esperamos! 😊",
    "Nos vemos pronto.",
    "Gracias por confiar en nosotros.",
]

HELP_LINES = [
    "Puedo ayudarte a crear, consultar, reagendar o cancelar tus citas.",
    "Gestiono tus citas médicas de forma rápida y sencilla.",
]

CONFIRM_QUESTION = (
    "¿Deseas *confirmar* el registro de esta cita?\n"
    "Responde *SI* o *NO*."
)

CHANGE_QUESTION = (
    "De acuerdo. ¿Qué dato deseas cambiar?\n"
    "Escribe por ejemplo: *fecha 12/10/2025*, *hora*, *nombre Ana Pérez*, "
    "*cédula 1802525254* o *motivo*."
)

ASK_REASON = (
    "📝 ¿Cuál es el motivo de la consulta? "
    "Si prefieres no indicarlo, responde *omitir*."
)

ASK_IDENTIFIER = (
    "Para {action} tu cita necesito tu número de cédula (10 dígitos) "
    "o el número de cita que te enviamos."
)
