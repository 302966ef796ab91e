import mimetypes
import re
from pathlib import Path
from typing import Optional
from uuid import uuid4

from app.config import settings
from app.logging_config import get_logger
from app.services.channels.base import UploadedFile

logger = get_logger("media_storage")

MEDIA_ROUTE_PREFIX = "/media"


def _guess_extension(mime: Optional[str], file_name: Optional[str]) -> str:
    if file_name:
        suffix = Path(file_name).suffix
        if suffix and re.fullmatch(r"\.[A-Za-z0-9]{1,10}", suffix):
            return suffix.lower()
    if mime:
        ext = mimetypes.guess_extension(mime.split(";")[0].strip())
        if ext:
            return ext
    return ""


def _safe_segment(value: Optional[str]) -> str:
    if not value:
        return uuid4().hex
    cleaned = re.sub(r"[^a-zA-Z0-9_-]", "", value)
    return cleaned or uuid4().hex


def storage_root() -> Path:
    return Path(settings.media_storage_dir)


def public_url(storage_path: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}{MEDIA_ROUTE_PREFIX}/{storage_path}"


def store_upload(upload: UploadedFile, *, company_id: int, folder: str) -> dict:
    """Write an uploaded file under the media directory and describe it as an attachment."""
    relative_dir = Path(str(company_id)) / _safe_segment(folder)
    target_dir = storage_root() / relative_dir
    target_dir.mkdir(parents=True, exist_ok=True)

    file_name = f"{uuid4().hex}{_guess_extension(upload.content_type, upload.filename)}"
    (target_dir / file_name).write_bytes(upload.data)
    storage_path = (relative_dir / file_name).as_posix()

    logger.info(
        "Upload stored",
        extra={"context": {"company_id": company_id, "storage_path": storage_path, "size": upload.size}},
    )
    return {
        "name": upload.filename or file_name,
        "url": public_url(storage_path),
        "mime_type": upload.content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream",
        "size": upload.size,
        "storage_path": storage_path,
    }


def resolve_path(storage_path: Optional[str]) -> Optional[Path]:
    """Absolute path of a stored file, or None if missing or outside the media directory."""
    if not storage_path:
        return None
    root = storage_root().resolve()
    candidate = (root / storage_path).resolve()
    if root not in candidate.parents or not candidate.is_file():
        return None
    return candidate


def read_attachment_bytes(attachments: Optional[list]) -> Optional[tuple[str, bytes]]:
    """First readable stored attachment as (name, bytes)."""
    for attachment in attachments or []:
        if not isinstance(attachment, dict):
            continue
        path = resolve_path(attachment.get("storage_path"))
        if path is not None:
            return attachment.get("name") or path.name, path.read_bytes()
    return None
