from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from citabot.api.webhook import router, legacy_router
from citabot.core.logger import app_logger

app = FastAPI(title="CitaBot WhatsApp Backend")

# CORS Config
origins = ["*"]  # Ajustar en producción

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
app.include_router(legacy_router)

app_logger.info("🚀 CitaBot iniciado")


@app.get("/")
def home():
    return {"status": "CitaBot Online"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
