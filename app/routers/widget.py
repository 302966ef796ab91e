from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.database import get_db
from app.logging_config import get_logger
from app.models import ChannelBinding, Conversation
from app.routers.dependencies import get_ingestion_service, ingestion_response
from app.routers.forms import read_message_form
from app.schemas.chat import ChatMessageOut, IngestionResponse, WidgetConfig, WidgetMessagesResponse
from app.services.channels import RawInbound, UploadedFile, channel_registry
from app.services.content import nullable_str
from app.services.errors import IngestionError
from app.services.ingestion_service import IngestionResult, IngestionService
from app.services.message_service import list_messages
from app.services.tenant_service import active_widget_binding, widget_settings

logger = get_logger("widget")

router = APIRouter(prefix="/widget")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type,Accept,Origin",
    "Access-Control-Max-Age": "86400",
}


def _widget_error(error: IngestionError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message, headers=CORS_HEADERS)


def _binding_or_error(db: Session, widget_key: str) -> ChannelBinding:
    try:
        return active_widget_binding(db, widget_key)
    except IngestionError as e:
        raise _widget_error(e)


@router.options("/{widget_key}/config")
@router.options("/{widget_key}/messages")
async def widget_preflight(widget_key: str):
    return Response(status_code=204, headers=CORS_HEADERS)


@router.get("/{widget_key}/config", response_model=WidgetConfig)
def widget_config(widget_key: str, response: Response, db: Session = Depends(get_db)):
    binding = _binding_or_error(db, widget_key)
    response.headers.update(CORS_HEADERS)
    return WidgetConfig(
        widget_key=widget_key,
        company_name=binding.company.name,
        assistant_name=binding.assistant.name if binding.assistant else None,
        **widget_settings(binding),
    )


@router.get("/{widget_key}/messages", response_model=WidgetMessagesResponse)
def widget_messages(
    widget_key: str,
    response: Response,
    session_id: Optional[str] = Query(default=None),
    after_id: Optional[int] = Query(default=None, ge=0),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
):
    """Polling endpoint for the widget script."""
    binding = _binding_or_error(db, widget_key)
    response.headers.update(CORS_HEADERS)

    session_id = nullable_str(session_id, max_length=191)
    if session_id is None:
        raise HTTPException(status_code=422, detail="The session_id field is required.", headers=CORS_HEADERS)

    conversation = (
        db.query(Conversation)
        .filter(
            Conversation.company_id == binding.company_id,
            Conversation.channel == "widget",
            Conversation.channel_chat_id == session_id,
        )
        .first()
    )
    if conversation is None:
        return WidgetMessagesResponse(session_id=session_id)

    messages = list_messages(db, conversation, after_id=after_id, limit=limit)
    return WidgetMessagesResponse(
        session_id=session_id,
        chat_id=conversation.id,
        messages=[ChatMessageOut.model_validate(message) for message in messages],
    )


def _ingest_widget_message(
    db: Session,
    binding: ChannelBinding,
    fields: dict,
    upload: Optional[UploadedFile],
    service: IngestionService,
) -> IngestionResult:
    event = channel_registry.normalize(RawInbound(channel="widget", payload=fields, upload=upload, binding=binding))
    event.assistant_id = binding.assistant_id
    return service.ingest(db, binding.company, event, binding=binding)


@router.post("/{widget_key}/messages", response_model=IngestionResponse, status_code=201)
async def widget_send_message(
    widget_key: str,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_ingestion_service),
):
    binding = _binding_or_error(db, widget_key)
    fields, upload = await read_message_form(request)
    if fields is None:
        raise HTTPException(status_code=422, detail="Invalid JSON payload.", headers=CORS_HEADERS)

    try:
        result = await run_in_threadpool(_ingest_widget_message, db, binding, fields, upload, service)
    except IngestionError as e:
        db.rollback()
        raise _widget_error(e)

    response.headers.update(CORS_HEADERS)
    if result.duplicate:
        response.status_code = 200
        return ingestion_response(result, "Message already exists.")
    return ingestion_response(result, "Message accepted.")
