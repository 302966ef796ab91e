from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.database import get_db
from app.logging_config import get_logger
from app.routers.dependencies import get_ingestion_service, read_json_body
from app.schemas.chat import OkResponse
from app.services.channels import RawInbound, channel_registry
from app.services.channels.base import tokens_match
from app.services.channels.instagram import (
    SIGNATURE_HEADER,
    extract_recipient_id,
    is_echo_event,
    iter_messaging_events,
    verify_signature,
)
from app.services.ingestion_service import IngestionService
from app.services.tenant_service import find_instagram_binding

logger = get_logger("instagram_webhook")

router = APIRouter()


@router.get("/integrations/instagram/webhook", response_class=PlainTextResponse)
async def verify_instagram_webhook(
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    if hub_mode == "subscribe" and tokens_match(settings.instagram_verify_token, hub_verify_token):
        return PlainTextResponse(hub_challenge or "")
    logger.warning("Instagram webhook verification failed")
    raise HTTPException(status_code=403, detail="Webhook verification failed.")


def _process_events(db: Session, body: dict, service: IngestionService) -> int:
    processed = 0
    for event in iter_messaging_events(body):
        if is_echo_event(event):
            continue
        receiver_id = extract_recipient_id(event)
        binding = find_instagram_binding(db, receiver_id)
        if binding is None:
            logger.warning("Instagram event for unknown account", extra={"context": {"receiver_id": receiver_id}})
            continue

        try:
            inbound = channel_registry.normalize(RawInbound(channel="instagram", payload=event, binding=binding))
            if inbound is None:
                continue
            inbound.assistant_id = binding.assistant_id
            service.ingest(db, binding.company, inbound, binding=binding)
            processed += 1
        except Exception:
            db.rollback()
            logger.exception("Instagram event processing failed", extra={"context": {"binding_id": binding.id}})
    return processed


@router.post("/integrations/instagram/webhook", response_model=OkResponse)
async def instagram_webhook(
    request: Request,
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_ingestion_service),
):
    raw_body = await request.body()
    if not verify_signature(raw_body, request.headers.get(SIGNATURE_HEADER), settings.instagram_app_secret):
        logger.warning("Instagram webhook signature mismatch")
        raise HTTPException(status_code=403, detail="Invalid webhook signature.")

    body = await read_json_body(request)
    if not body:
        return OkResponse()

    processed = await run_in_threadpool(_process_events, db, body, service)
    logger.info("Instagram webhook handled", extra={"context": {"processed": processed}})
    return OkResponse()
