from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.database import get_db
from app.logging_config import get_logger
from app.models import ChannelBinding
from app.routers.dependencies import get_ingestion_service, http_error, read_json_body
from app.schemas.chat import OkResponse
from app.services.channels import RawInbound, channel_registry
from app.services.dispatch import TelegramService
from app.services.errors import Forbidden
from app.services.ingestion_service import IngestionService

logger = get_logger("telegram_webhook")

router = APIRouter()


def _process_update(db: Session, binding: ChannelBinding, raw: RawInbound, service: IngestionService) -> None:
    event = channel_registry.normalize(raw)
    if event is None:
        logger.debug("Telegram update ignored", extra={"context": {"binding_id": binding.id}})
        return
    event.assistant_id = binding.assistant_id
    service.ingest(db, binding.company, event, binding=binding)


@router.post("/integrations/telegram/webhook/{binding_id}", response_model=OkResponse)
async def telegram_webhook(
    binding_id: int,
    request: Request,
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Updates from a customer-facing Telegram bot. Always answers ok unless the secret is wrong."""
    binding = db.get(ChannelBinding, binding_id)
    if binding is None or binding.channel != "telegram":
        logger.warning("Telegram update for unknown binding", extra={"context": {"binding_id": binding_id}})
        return OkResponse()

    body = await read_json_body(request)
    bot_token = binding.credential("bot_token")
    raw = RawInbound(
        channel="telegram",
        payload=body or {},
        headers=request.headers,
        binding=binding,
        file_url_resolver=TelegramService(bot_token).get_file_url if bot_token else None,
    )

    try:
        await run_in_threadpool(_process_update, db, binding, raw, service)
    except Forbidden as e:
        logger.warning("Telegram webhook secret mismatch", extra={"context": {"binding_id": binding_id}})
        raise http_error(e)
    except Exception:
        db.rollback()
        logger.exception("Telegram update processing failed", extra={"context": {"binding_id": binding_id}})

    return OkResponse()
