"""Reading chapter upload payloads (JSON body or JSON file)."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import HTTPException, Request, UploadFile
from starlette.datastructures import UploadFile as FormFile

from app.core.config import settings
from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)

_NO_DATA_MESSAGE = (
    "No chapters data provided. Send as JSON array in body or upload JSON file."
)


async def read_upload_file_limited(file: UploadFile) -> bytes:
    """Read an uploaded file in chunks enforcing the max size limit.

    Uses file.size if available (multipart headers), falls back to chunked
    reading with enforcement.

    Raises:
        HTTPException: 413 if the file exceeds the configured size limit.
    """
    max_bytes = settings.app.max_upload_size_mb * 1024 * 1024

    file_size = getattr(file, "size", None)

    if file_size is not None and file_size > max_bytes:
        logger.warning(
            "file_validation.rejected_by_header",
            extra={"file_size": file_size, "max_bytes": max_bytes},
        )
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {settings.app.max_upload_size_mb}MB",
        )

    size = 0
    chunks: list[bytes] = []

    while True:
        chunk = await file.read(8192)
        if not chunk:
            break

        size += len(chunk)
        if size > max_bytes:
            logger.warning(
                "file_validation.rejected_by_chunked_read",
                extra={"size": size, "max_bytes": max_bytes},
            )
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum size: {settings.app.max_upload_size_mb}MB",
            )
        chunks.append(chunk)

    return b"".join(chunks)


def _is_json_file(file: FormFile) -> bool:
    return file.content_type == "application/json" or (file.filename or "").endswith(".json")


async def read_chapters_payload(request: Request) -> Any:
    """Extract the raw chapter list from an upload request.

    Accepts either a JSON array body or a multipart form with a ``file``
    field holding a JSON document.

    Raises:
        ValidationAppError: If no usable payload is present or the file is
            not valid JSON.
        HTTPException: 413 if the uploaded file is too large.
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        file = form.get("file")
        if not isinstance(file, FormFile):
            raise ValidationAppError(code="no_chapters_data", message=_NO_DATA_MESSAGE)
        if not _is_json_file(file):
            raise ValidationAppError(
                code="invalid_file_type",
                message="Only JSON files are allowed",
            )

        content = await read_upload_file_limited(file)
        try:
            return json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ValidationAppError(
                code="invalid_json_file",
                message="Invalid JSON file format",
            ) from exc

    try:
        payload = await request.json()
    except ValueError:
        payload = None

    if not isinstance(payload, list):
        raise ValidationAppError(code="no_chapters_data", message=_NO_DATA_MESSAGE)
    return payload
