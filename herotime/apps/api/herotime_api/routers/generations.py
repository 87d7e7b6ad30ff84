"""Generation history endpoints (list, manual create, delete)."""

import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from herotime_api.auth.session_auth import AuthContext, get_auth_context
from herotime_api.db.models import GENERATION_SUCCEEDED
from herotime_api.db.repo_generations import GenerationRepository
from herotime_api.db.session import get_db
from herotime_api.errors import GenerationNotFoundError
from herotime_api.observability import metrics
from herotime_api.providers import get_storage
from herotime_api.schemas import (
    DeleteGenerationRequest,
    GenerationCreateRequest,
    GenerationCreateResponse,
    GenerationListResponse,
    GenerationOut,
    Pagination,
    SuccessResponse,
)
from herotime_api.storage.s3_client import GENERATIONS_BUCKET, UPLOADS_BUCKET, StorageClient

router = APIRouter(prefix="/api", tags=["generations"])
logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100


@router.get("/generations", response_model=GenerationListResponse)
async def list_generations(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
) -> GenerationListResponse:
    """Caller's generations, newest first."""
    repo = GenerationRepository(db)
    total = repo.count_for_user(auth.user_id)
    rows = repo.list_for_user(auth.user_id, page, limit)

    return GenerationListResponse(
        generations=[GenerationOut.model_validate(row) for row in rows],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            has_more=(page - 1) * limit + len(rows) < total,
        ),
    )


@router.post("/generations", response_model=GenerationCreateResponse)
async def create_generation(
    body: GenerationCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
) -> GenerationCreateResponse:
    """Record an already-produced image (no inference, no quota)."""
    generation = GenerationRepository(db).create(
        auth.user_id,
        status=GENERATION_SUCCEEDED,
        title=body.title,
        image_url=body.image_url,
        uploaded_image_url=body.uploaded_image_url,
        selected_props=(
            [prop.model_dump() for prop in body.selected_props] if body.selected_props else None
        ),
        selected_template=body.selected_template,
    )
    return GenerationCreateResponse(generation=GenerationOut.model_validate(generation))


@router.delete("/generations", response_model=SuccessResponse)
async def delete_generation_record(
    id: str = Query(..., min_length=1),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    """Delete one row owned by the caller.

    Unknown ids and other users' ids are a no-op, not an error.
    """
    deleted = GenerationRepository(db).delete_for_user(id, auth.user_id)
    logger.info(
        "Generation record delete",
        extra={"event": "generation.deleted", "user_id": auth.user_id, "rows": deleted},
    )
    return SuccessResponse()


@router.post("/delete-generation", response_model=SuccessResponse)
async def delete_generation(
    body: DeleteGenerationRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
) -> SuccessResponse:
    """Delete a generation together with its result and source blobs.

    Blob deletion is best-effort; the row is removed regardless.

    Raises:
        GenerationNotFoundError 404: No such generation for this caller
    """
    repo = GenerationRepository(db)
    generation = repo.get_for_user(body.generation_id, auth.user_id)
    if generation is None:
        raise GenerationNotFoundError()

    for bucket, url in (
        (GENERATIONS_BUCKET, generation.image_url),
        (UPLOADS_BUCKET, generation.uploaded_image_url),
    ):
        key = StorageClient.key_from_public_url(url, bucket)
        if key is None:
            continue
        try:
            storage.delete_object(bucket, key)
        except (ClientError, BotoCoreError) as e:
            metrics.log_side_effect_failed(auth.user_id, generation.id, "delete_blob", str(e))

    repo.delete_for_user(generation.id, auth.user_id)
    return SuccessResponse(message="Generation deleted successfully")
