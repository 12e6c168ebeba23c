"""
Media API Routes

============================================================================
ENDPOINTS
============================================================================
POST /media  - Ingest one clip (multipart upload or JSON remote URL)
GET  /media  - Full catalog in append order

POST accepts exactly one of:
- multipart: file=<binary> [, title]
- multipart or JSON: remoteUrl=<short-form URL> [, title]

Both-or-neither and disallowed MIME types are rejected BEFORE anything is
written to disk. Accepted uploads are written to the media root under the
request's job id and handed to the pipeline, which owns them from then on.

Errors are returned as {error, details} by the IngestionError handler in
main.py: 400 for InvalidInput/UnsupportedMediaType, 500 otherwise.
============================================================================
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ..cleanup import discard
from ..media.errors import InvalidInput
from ..sources.resolver import (
    IngestRequest,
    UploadedFile,
    check_exclusive,
    check_mime,
    normalize_mime,
    upload_extension,
    upload_name,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["media"])


# ============================================================================
# REQUEST MODELS
# ============================================================================

class RemoteIngestBody(BaseModel):
    """JSON body for remote ingestion."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    remote_url: Optional[str] = Field(default=None, alias="remoteUrl")
    title: Optional[str] = None


# ============================================================================
# HELPERS
# ============================================================================

def _form_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _copy_upload(upload: UploadFile, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    upload.file.seek(0)
    with open(target, "wb") as out:
        shutil.copyfileobj(upload.file, out)


async def _materialize_upload(upload: UploadFile, media_root: Path, job_id: str) -> UploadedFile:
    """Write the multipart payload into the media root under the job's upload name."""
    provisional = UploadedFile(
        path=Path(upload.filename or ""),
        content_type=normalize_mime(upload.content_type),
        filename=upload.filename,
    )
    target = media_root / upload_name(job_id, upload_extension(provisional))
    # Not pipeline-owned yet: a failed or cancelled copy must not linger in the public root
    try:
        await run_in_threadpool(_copy_upload, upload, target)
    except BaseException:
        discard(target, "partial upload")
        raise
    logger.info(f"[Media API] Upload '{upload.filename}' stored as {target.name}")
    return UploadedFile(path=target, content_type=provisional.content_type, filename=upload.filename)


async def _parse_json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidInput(f"Malformed JSON body: {e}") from e
    if not isinstance(body, dict):
        raise InvalidInput("JSON body must be an object")
    return body


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("", status_code=201)
async def create_media(request: Request) -> JSONResponse:
    """
    Ingest one clip and return its catalog record.

    Returns:
        201 with the MediaRecord (camelCase keys)
    """
    state = request.app.state
    settings = state.settings
    content_type = normalize_mime(request.headers.get("content-type"))

    upload: Optional[UploadFile] = None
    if content_type == "multipart/form-data":
        form = await request.form()
        candidate = form.get("file")
        if isinstance(candidate, UploadFile) and candidate.filename:
            upload = candidate
        remote_url = _form_text(form.get("remoteUrl"))
        title = _form_text(form.get("title"))
    elif content_type == "application/json":
        body = await _parse_json_body(request)
        # Binary payloads cannot travel in JSON; a "file" key is still a second source
        has_file = body.pop("file", None) is not None
        check_exclusive(has_file, body.get("remoteUrl"))
        try:
            parsed = RemoteIngestBody.model_validate(body)
        except ValidationError as e:
            raise InvalidInput(f"Invalid request body: {e.errors()[0]['msg']}") from e
        remote_url = parsed.remote_url
        title = parsed.title
    else:
        raise InvalidInput(
            f"Unsupported request content type '{content_type or 'none'}'. "
            "Use multipart/form-data or application/json"
        )

    check_exclusive(upload is not None, remote_url)

    pipeline = state.pipeline
    job_id = pipeline.new_job_id()

    uploaded: Optional[UploadedFile] = None
    if upload is not None:
        check_mime(upload.content_type, settings.allowed_mime_types)
        uploaded = await _materialize_upload(upload, pipeline.media_root, job_id)

    ingest_request = IngestRequest(upload=uploaded, remote_url=remote_url, title=title)
    outcome = await state.executor.submit(ingest_request, job_id=job_id)
    record = outcome.unwrap()

    return JSONResponse(
        status_code=201,
        content=record.model_dump(by_alias=True, mode="json"),
    )


@router.get("")
def list_media(request: Request) -> List[Dict[str, Any]]:
    """
    Return the full catalog in append order.
    """
    records = request.app.state.pipeline.catalog.list()
    return [record.model_dump(by_alias=True, mode="json") for record in records]
