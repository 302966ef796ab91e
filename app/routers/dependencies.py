import json
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.logging_config import get_logger
from app.models import Company
from app.schemas.chat import ChatMessageOut, ChatOut, IngestionResponse
from app.services.channels.base import tokens_match
from app.services.errors import IngestionError
from app.services.ingestion_service import IngestionResult, IngestionService, ingestion_service

logger = get_logger("routers")


def get_ingestion_service() -> IngestionService:
    return ingestion_service


def http_error(error: IngestionError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


async def read_json_body(request: Request) -> Optional[dict]:
    """Parse a JSON object body, tolerating bad encodings. Returns None when unusable."""
    raw = await request.body()
    if not raw:
        return {}
    for encoding in ("utf-8", "latin-1"):
        try:
            body = json.loads(raw.decode(encoding, errors="replace"))
        except ValueError:
            continue
        return body if isinstance(body, dict) else None
    logger.warning("Failed to decode JSON body")
    return None


def ingestion_response(result: IngestionResult, message: str) -> IngestionResponse:
    return IngestionResponse(
        message=message,
        chat=ChatOut.model_validate(result.conversation),
        chat_message=ChatMessageOut.model_validate(result.message),
        assistant_message=(
            ChatMessageOut.model_validate(result.assistant_message) if result.assistant_message is not None else None
        ),
        duplicate=result.duplicate,
    )


def require_operator(
    authorization: Optional[str] = Header(default=None),
    x_company_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> Company:
    """Operator console auth: bearer token plus the company the operator acts for."""
    expected = (settings.operator_api_token or "").strip()
    if expected:
        provided = None
        if authorization and authorization.lower().startswith("bearer "):
            provided = authorization[7:].strip()
        if not tokens_match(expected, provided):
            raise HTTPException(status_code=401, detail="Unauthenticated.")

    if x_company_id is None:
        raise HTTPException(status_code=422, detail="X-Company-Id header is required.")
    company = db.get(Company, x_company_id)
    if company is None:
        raise HTTPException(status_code=404, detail="Company not found.")
    return company
