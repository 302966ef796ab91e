from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import init_db
from app.logging_config import get_logger, setup_logging
from app.routers import chats, instagram_webhook, media, telegram_webhook, webhook, widget

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Omnichat API",
    description="Omni-channel conversation ingestion and assistant auto-reply service",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(telegram_webhook.router)
app.include_router(instagram_webhook.router)
app.include_router(widget.router)
app.include_router(chats.router)
app.include_router(media.router)


@app.on_event("startup")
def create_tables() -> None:
    init_db()
    logger.info("Database schema ready")


@app.get("/health")
async def health():
    return {"status": "ok"}
