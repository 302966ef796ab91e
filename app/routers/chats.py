from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.database import get_db
from app.logging_config import get_logger
from app.models import Company, Message
from app.routers.dependencies import (
    get_ingestion_service,
    http_error,
    ingestion_response,
    read_json_body,
    require_operator,
)
from app.routers.forms import read_message_form
from app.schemas.chat import (
    AssistantReplyRequest,
    AssistantTestChatsResponse,
    ChatMessageOut,
    ChatOut,
    IngestionResponse,
    MarkReadResponse,
    MessageListResponse,
)
from app.services.content import nullable_str
from app.services.conversation_service import ensure_assistant_test_chats, get_company_conversation
from app.services.errors import IngestionError
from app.services.ingestion_service import IngestionService
from app.services.message_service import list_messages, mark_read

logger = get_logger("chats")

router = APIRouter()

SENDER_TYPES = {Message.SENDER_CUSTOMER, Message.SENDER_AGENT, Message.SENDER_ASSISTANT, Message.SENDER_SYSTEM}
DIRECTIONS = {Message.DIRECTION_INBOUND, Message.DIRECTION_OUTBOUND}


def _conversation(db: Session, company: Company, chat_id: int):
    try:
        return get_company_conversation(db, company.id, chat_id)
    except IngestionError as e:
        raise http_error(e)


@router.get("/chats/{chat_id}/messages", response_model=MessageListResponse)
def get_chat_messages(
    chat_id: int,
    after_id: Optional[int] = Query(default=None, ge=0),
    limit: Optional[int] = Query(default=None, ge=1),
    company: Company = Depends(require_operator),
    db: Session = Depends(get_db),
):
    conversation = _conversation(db, company, chat_id)
    messages = list_messages(db, conversation, after_id=after_id, limit=limit)
    return MessageListResponse(
        chat=ChatOut.model_validate(conversation),
        messages=[ChatMessageOut.model_validate(message) for message in messages],
    )


@router.post("/chats/{chat_id}/messages", response_model=IngestionResponse, status_code=201)
async def post_chat_message(
    chat_id: int,
    request: Request,
    company: Company = Depends(require_operator),
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Operator message: outbound replies are dispatched, inbound ones run the auto-reply path."""
    conversation = _conversation(db, company, chat_id)
    fields, upload = await read_message_form(request)
    if fields is None:
        raise HTTPException(status_code=422, detail="Invalid JSON payload.")

    direction = nullable_str(fields.get("direction")) or Message.DIRECTION_OUTBOUND
    if direction not in DIRECTIONS:
        raise HTTPException(status_code=422, detail="The selected direction is invalid.")
    sender_type = nullable_str(fields.get("sender_type"))
    if sender_type is not None and sender_type not in SENDER_TYPES:
        raise HTTPException(status_code=422, detail="The selected sender_type is invalid.")

    try:
        result = await run_in_threadpool(
            service.send_operator_message,
            db,
            company,
            conversation,
            text=fields.get("text"),
            upload=upload,
            direction=direction,
            sender_type=sender_type,
        )
    except IngestionError as e:
        db.rollback()
        raise http_error(e)
    return ingestion_response(result, "Message stored.")


@router.post("/chats/{chat_id}/assistant-reply", response_model=IngestionResponse)
async def post_assistant_reply(
    chat_id: int,
    request: Request,
    company: Company = Depends(require_operator),
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_ingestion_service),
):
    conversation = _conversation(db, company, chat_id)
    body = await read_json_body(request)
    payload = AssistantReplyRequest.model_validate(body or {})
    try:
        result = await run_in_threadpool(service.assistant_reply, db, company, conversation, payload.prompt)
    except IngestionError as e:
        db.rollback()
        raise http_error(e)
    return ingestion_response(result, "Assistant reply generated.")


@router.post("/chats/{chat_id}/read", response_model=MarkReadResponse)
def read_chat(
    chat_id: int,
    company: Company = Depends(require_operator),
    db: Session = Depends(get_db),
):
    conversation = _conversation(db, company, chat_id)
    updated = mark_read(db, conversation)
    db.commit()
    return MarkReadResponse(message="Chat marked as read.", updated=updated, chat=ChatOut.model_validate(conversation))


@router.post("/assistants/test-chats", response_model=AssistantTestChatsResponse)
def create_test_chats(
    response: Response,
    company: Company = Depends(require_operator),
    db: Session = Depends(get_db),
):
    created = ensure_assistant_test_chats(db, company)
    db.commit()
    if created:
        response.status_code = 201
    return AssistantTestChatsResponse(
        message="Assistant test chats are ready.",
        created=len(created),
        chats=[ChatOut.model_validate(conversation) for conversation in created],
    )
