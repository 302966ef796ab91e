from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from app.services.media_storage import MEDIA_ROUTE_PREFIX, resolve_path

router = APIRouter()


@router.get(MEDIA_ROUTE_PREFIX + "/{storage_path:path}")
async def get_media(storage_path: str):
    """Serve a stored upload; paths outside the media directory are not found."""
    path = resolve_path(storage_path)
    if path is None:
        raise HTTPException(status_code=404, detail="Media not found")
    return FileResponse(path)
