from typing import Optional

from fastapi import Request
from starlette.datastructures import UploadFile

from app.routers.dependencies import read_json_body
from app.services.channels.base import UploadedFile


async def read_message_form(request: Request) -> tuple[Optional[dict], Optional[UploadedFile]]:
    """Fields and optional ``file`` upload from a multipart/urlencoded or JSON body."""
    content_type = (request.headers.get("content-type") or "").lower()
    if "multipart/form-data" not in content_type and "application/x-www-form-urlencoded" not in content_type:
        return await read_json_body(request), None

    form = await request.form()
    fields: dict = {}
    upload = None
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key == "file" and upload is None and value.filename:
                upload = UploadedFile(
                    filename=value.filename,
                    content_type=value.content_type,
                    data=await value.read(),
                )
            continue
        fields[key] = value
    return fields, upload
