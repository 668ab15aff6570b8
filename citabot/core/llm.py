# citabot/core/llm.py
from functools import lru_cache

from langchain_openai import AzureChatOpenAI
from citabot.config import settings


@lru_cache(maxsize=1)
def get_llm() -> AzureChatOpenAI:
    # Modelo de Chat (GPT-4o), se crea al primer uso
    return AzureChatOpenAI(
        azure_deployment=settings.AZURE_DEPLOYMENT,
        openai_api_version=settings.AZURE_API_VERSION,
        azure_endpoint=settings.AZURE_ENDPOINT,
        api_key=settings.AZURE_API_KEY,
        temperature=0 # Extracción de datos, sin creatividad
    )
