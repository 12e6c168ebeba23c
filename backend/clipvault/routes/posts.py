"""
Blog post endpoints.

GET  /api/posts - every post in append order
POST /api/posts - append a post; the server assigns id and createdAt

Posts share the JSON catalog store with media records, so appends are
serialized the same way.
"""

import logging
import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..media.errors import InvalidInput
from ..media.models import BlogPost, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["posts"])

# Keys the server owns; client values are dropped
SERVER_FIELDS = ("id", "createdAt", "created_at")


@router.get("")
def list_posts(request: Request) -> List[Dict[str, Any]]:
    posts = request.app.state.posts_store.list()
    return [post.model_dump(by_alias=True, mode="json") for post in posts]


@router.post("", status_code=201)
def create_post(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    fields = {k: v for k, v in payload.items() if k not in SERVER_FIELDS}
    try:
        post = BlogPost.model_validate({
            **fields,
            "id": uuid.uuid4().hex,
            "createdAt": utc_now(),
        })
    except ValidationError as e:
        raise InvalidInput(f"Invalid post: {e.errors()[0]['msg']}") from e

    request.app.state.posts_store.append(post)
    logger.info(f"[Posts] Created post {post.id}")
    return JSONResponse(status_code=201, content=post.model_dump(by_alias=True, mode="json"))
