from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.database import get_db
from app.logging_config import get_logger
from app.routers.dependencies import get_ingestion_service, http_error, ingestion_response, read_json_body
from app.schemas.chat import IngestionResponse
from app.services.channels import RawInbound, channel_registry
from app.services.errors import IngestionError, ValidationFailed
from app.services.ingestion_service import IngestionResult, IngestionService
from app.services.tenant_service import resolve_webhook_tenant

logger = get_logger("webhook")

router = APIRouter()


def _ingest_webhook(db: Session, raw: RawInbound, service: IngestionService) -> IngestionResult:
    channel_registry.get("api").authorize(raw)
    event = channel_registry.normalize(raw, adapter_name="api")
    if event is None:
        raise ValidationFailed("Message content is required.")

    tenant = resolve_webhook_tenant(db, event)
    if tenant.assistant is not None:
        event.assistant_id = tenant.assistant.id
    return service.ingest(db, tenant.company, event, binding=tenant.binding)


@router.post("/channels/{channel}/webhook", response_model=IngestionResponse, status_code=201)
async def channel_webhook(
    channel: str,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Generic webhook for integrations that push messages of any supported channel."""
    body = await read_json_body(request)
    if body is None:
        raise HTTPException(status_code=422, detail="Invalid JSON payload.")

    raw = RawInbound(
        channel=channel,
        payload=body,
        headers=request.headers,
        expected_token=settings.chat_webhook_token,
    )
    try:
        result = await run_in_threadpool(_ingest_webhook, db, raw, service)
    except IngestionError as e:
        db.rollback()
        logger.warning(
            f"Webhook rejected: {e.message}",
            extra={"context": {"channel": channel, "status_code": e.status_code}},
        )
        raise http_error(e)

    if result.duplicate:
        response.status_code = 200
        return ingestion_response(result, "Webhook accepted. Message already exists.")
    return ingestion_response(result, "Webhook accepted.")
