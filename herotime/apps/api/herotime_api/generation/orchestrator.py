"""Generation orchestration.

Turns a (photo, props, template, options) request into a persisted
Generation row and a publicly retrievable result image:

1. Reserve one quota unit (atomic increment-if-under-limit). No row is
   created when the user is at the limit.
2. Resolve image parameters from the plan tier and client options.
3. Assemble inputs: source photo, template image, props in selection order.
4. Create the row (starting), submit the prediction, mark it processing.
5. Wait for completion and extract the result URL.
6. Re-upload the result to durable storage and delete the source photo.
7. Mark the row succeeded.

Steps 2-5 are the critical path. A failure before the row exists returns the
quota unit directly; after that it marks this request's row failed, returns
the unit (unless the reaper already failed the row and refunded it) and
raises a classified ``InferenceError``.
Step 6 is best-effort; on failure the provider URL is kept as the result
and the quota unit stays charged. Every best-effort step reports a
``SideEffectOutcome`` instead of vanishing into a log line.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from herotime_api.context import generation_id_var
from herotime_api.db.models import GENERATION_STARTING
from herotime_api.db.repo_generations import GenerationRepository
from herotime_api.db.repo_users import UserRepository
from herotime_api.errors import InferenceError, QuotaExceededError
from herotime_api.generation.image_params import build_image_inputs, resolve_image_params
from herotime_api.generation.inference import InferenceClient
from herotime_api.generation.result_extraction import extract_image_url
from herotime_api.observability import metrics
from herotime_api.schemas import GenerateImageRequest
from herotime_api.storage.s3_client import (
    GENERATIONS_BUCKET,
    UPLOADS_BUCKET,
    StorageClient,
    build_object_key,
)
from herotime_api.storage.templates import TemplateCatalog
from herotime_api.utils.formatting import format_file_size

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_SEC = 60.0


@dataclass
class SideEffectOutcome:
    """Result of one best-effort step."""

    step: str
    ok: bool
    error: Optional[str] = None


@dataclass
class GenerationOutcome:
    """Primary result plus the fate of each best-effort step."""

    generation_id: str
    image_url: str
    provider_url: str
    file_size: Optional[str] = None
    side_effects: list[SideEffectOutcome] = field(default_factory=list)

    @property
    def durable(self) -> bool:
        return self.image_url != self.provider_url


class GenerationOrchestrator:
    """Runs one generation request end to end."""

    def __init__(
        self,
        db: Session,
        storage: StorageClient,
        inference: InferenceClient,
        templates: Optional[TemplateCatalog] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.users = UserRepository(db)
        self.generations = GenerationRepository(db)
        self.storage = storage
        self.inference = inference
        self.templates = templates or TemplateCatalog(storage)
        self.http_client = http_client

    async def request_generation(
        self,
        user_id: str,
        email: str,
        request: GenerateImageRequest,
    ) -> GenerationOutcome:
        """Run the full pipeline for one request.

        Raises:
            QuotaExceededError: User is at the plan limit (nothing created)
            InferenceError: Provider or result-extraction failure
        """
        started = time.monotonic()

        self.users.get_or_create(user_id, email)
        if not self.users.try_consume_generation(user_id):
            metrics.log_quota_exceeded(user_id)
            raise QuotaExceededError()

        # Until the row exists nothing else can give the unit back
        try:
            user = self.users.get(user_id)
            plan = user.plan if user is not None else None
            params = resolve_image_params(plan, request.options)
            image_inputs = build_image_inputs(
                request.uploaded_image,
                self._template_image_url(request.selected_template),
                [prop.image for prop in request.selected_props],
            )
            generation = self.generations.create(
                user_id,
                status=GENERATION_STARTING,
                uploaded_image_url=request.uploaded_image,
                selected_props=[prop.model_dump() for prop in request.selected_props] or None,
                selected_template=request.selected_template,
            )
        except Exception:
            self.generations.db.rollback()
            self._release_quota(user_id, None)
            raise

        metrics.log_generation_requested(
            user_id, plan or "unknown", params.size, len(request.selected_props)
        )
        generation_id_var.set(generation.id)

        try:
            submitted = await self.inference.submit(params, image_inputs)
            self.generations.mark_processing(generation.id, submitted.id)
            output = await self.inference.wait(submitted)
            provider_url = await extract_image_url(output)
        except Exception as e:
            error = InferenceError.from_exception(e)
            self._record_failure(user_id, generation.id, error)
            metrics.log_generation_failed(
                user_id, generation.id, error.kind, _elapsed_ms(started)
            )
            raise error from e

        outcome = GenerationOutcome(
            generation_id=generation.id,
            image_url=provider_url,
            provider_url=provider_url,
        )
        await self._persist_result(user_id, request.uploaded_image_path, outcome)

        if not self.generations.mark_succeeded(generation.id, outcome.image_url, outcome.file_size):
            # Row was deleted (or reaped) while the prediction ran
            logger.warning(
                "Generation row no longer in flight; result not recorded",
                extra={"event": "generation.row_gone", "generation_id": generation.id},
            )

        metrics.log_generation_succeeded(
            user_id, generation.id, plan or "unknown", _elapsed_ms(started), outcome.durable
        )
        return outcome

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _template_image_url(self, template_id: Optional[str]) -> Optional[str]:
        if not template_id:
            return None
        template = self.templates.find(template_id)
        if template is None:
            logger.warning(
                f"Selected template not found: {template_id}",
                extra={"event": "generation.template_missing"},
            )
            return None
        return template.image

    async def _download(self, url: str) -> bytes:
        if self.http_client is not None:
            response = await self.http_client.get(url)
        else:
            async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_SEC) as client:
                response = await client.get(url)
        response.raise_for_status()
        return response.content

    async def _persist_result(
        self,
        user_id: str,
        uploaded_image_path: Optional[str],
        outcome: GenerationOutcome,
    ) -> None:
        """Copy the result to durable storage, then drop the source photo.

        The source is only deleted once the durable copy exists.
        """
        try:
            data = await self._download(outcome.provider_url)
            outcome.file_size = format_file_size(len(data))
            key = build_object_key(f"{user_id}/images", "png")
            outcome.image_url = self.storage.upload_bytes(
                data, GENERATIONS_BUCKET, key, content_type="image/png"
            )
        except Exception as e:
            outcome.side_effects.append(SideEffectOutcome("persist_result", False, str(e)))
            metrics.log_side_effect_failed(
                user_id, outcome.generation_id, "persist_result", str(e)
            )
            return
        outcome.side_effects.append(SideEffectOutcome("persist_result", True))

        if not uploaded_image_path:
            return
        try:
            self.storage.delete_object(UPLOADS_BUCKET, uploaded_image_path)
            outcome.side_effects.append(SideEffectOutcome("delete_source", True))
        except Exception as e:
            outcome.side_effects.append(SideEffectOutcome("delete_source", False, str(e)))
            metrics.log_side_effect_failed(
                user_id, outcome.generation_id, "delete_source", str(e)
            )

    def _record_failure(self, user_id: str, generation_id: str, error: InferenceError) -> None:
        """Mark this request's row failed and give the quota unit back.

        Whoever moves the row to ``failed`` owns the refund. If the reaper got
        there first it already refunded; if the row is still in flight after a
        write error the reaper will. A row the user deleted meanwhile has no
        other owner, so the refund happens here.
        """
        message = error.diagnostic or error.detail
        try:
            failed = self.generations.mark_failed(generation_id, message)
        except Exception as e:
            self.generations.db.rollback()
            metrics.log_side_effect_failed(user_id, generation_id, "mark_failed", str(e))
            return
        if failed or self.generations.get_for_user(generation_id, user_id) is None:
            self._release_quota(user_id, generation_id)

    def _release_quota(self, user_id: str, generation_id: Optional[str]) -> None:
        try:
            self.users.release_generation(user_id)
        except Exception as e:
            metrics.log_side_effect_failed(user_id, generation_id, "release_quota", str(e))


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
