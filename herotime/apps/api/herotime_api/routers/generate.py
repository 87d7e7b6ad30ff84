"""Image generation endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from herotime_api.auth.session_auth import AuthContext, get_auth_context
from herotime_api.db.session import get_db
from herotime_api.generation.inference import InferenceClient
from herotime_api.generation.orchestrator import GenerationOrchestrator
from herotime_api.providers import get_inference, get_storage
from herotime_api.schemas import GenerateImageRequest, GenerateImageResponse
from herotime_api.storage.s3_client import StorageClient

router = APIRouter(prefix="/api", tags=["generation"])


@router.post("/generate-image", response_model=GenerateImageResponse)
async def generate_image(
    body: GenerateImageRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    inference: InferenceClient = Depends(get_inference),
) -> GenerateImageResponse:
    """Generate a hero image from an uploaded photo, props and template.

    Returns:
        Durable image URL (``imageUrl``) plus the provider URL it was copied
        from (``replicateUrl``); both are the provider URL when the durable
        copy failed

    Raises:
        QuotaExceededError 403: Monthly generation limit reached
        InferenceError 400/401/402/408/429/500/503: Provider failure
    """
    orchestrator = GenerationOrchestrator(db, storage, inference)
    outcome = await orchestrator.request_generation(auth.user_id, auth.email, body)

    return GenerateImageResponse(
        generation_id=outcome.generation_id,
        output=outcome.image_url,
        image_url=outcome.image_url,
        replicate_url=outcome.provider_url,
    )
