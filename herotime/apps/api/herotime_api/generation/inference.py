"""Inference provider client (Replicate).

Submits a prediction, waits for it to finish (bounded by
GENERATION_MAX_WAIT_SEC) and returns the raw output. Every provider or
transport failure is re-raised as a classified ``InferenceError``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import replicate

from herotime_api.config import env
from herotime_api.errors import InferenceError
from herotime_api.generation.image_params import ImageParams

logger = logging.getLogger(__name__)

FAILED_STATUSES = ("failed", "canceled")


@dataclass
class SubmittedPrediction:
    """Handle for a submitted prediction (``raw`` is the SDK object)."""

    id: str
    raw: Any


def build_model_input(params: ImageParams, image_inputs: list[str]) -> dict[str, Any]:
    return {
        "size": params.size,
        "width": params.width,
        "height": params.height,
        "prompt": params.prompt,
        "max_images": 1,
        "image_input": image_inputs,
        "aspect_ratio": params.aspect_ratio,
        "sequential_image_generation": "disabled",
    }


class InferenceClient:
    """Thin async wrapper over the Replicate predictions API."""

    def __init__(
        self,
        api_token: Optional[str] = None,
        model: Optional[str] = None,
        max_wait_sec: Optional[int] = None,
        client: Optional[replicate.Client] = None,
    ):
        """Initialize inference client.

        Args:
            api_token: Replicate token (default from env: REPLICATE_API_TOKEN)
            model: Model reference (default from env: REPLICATE_MODEL)
            max_wait_sec: Ceiling for waiting on one prediction
            client: Pre-built SDK client (tests)

        Raises:
            ConfigurationError: If no API token is configured
        """
        self.model = model or env.get_replicate_model()
        self.max_wait_sec = max_wait_sec or env.get_generation_max_wait_sec()
        self.client = client or replicate.Client(api_token=api_token or env.get_replicate_api_token())

    async def submit(self, params: ImageParams, image_inputs: list[str]) -> SubmittedPrediction:
        """Create a prediction.

        Raises:
            InferenceError: If the provider rejects the request
        """
        model_input = build_model_input(params, image_inputs)
        logger.info(
            "Submitting prediction",
            extra={
                "event": "inference.submit",
                "model": self.model,
                "size": params.size,
                "width": params.width,
                "height": params.height,
                "aspect_ratio": params.aspect_ratio,
                "image_input_count": len(image_inputs),
                "prompt_length": len(params.prompt),
            },
        )
        try:
            prediction = await self.client.predictions.async_create(
                model=self.model,
                input=model_input,
            )
        except Exception as e:
            raise InferenceError.from_exception(e) from e

        logger.info(
            "Prediction created",
            extra={"event": "inference.created", "prediction_id": prediction.id},
        )
        return SubmittedPrediction(id=prediction.id, raw=prediction)

    async def wait(self, submitted: SubmittedPrediction) -> Any:
        """Block until the prediction finishes and return its output.

        Raises:
            InferenceError: timeout when the wait ceiling is hit, otherwise
                the classified provider failure
        """
        prediction = submitted.raw
        try:
            await asyncio.wait_for(prediction.async_wait(), timeout=self.max_wait_sec)
        except asyncio.TimeoutError as e:
            logger.warning(
                "Prediction wait timed out",
                extra={
                    "event": "inference.timeout",
                    "prediction_id": submitted.id,
                    "max_wait_sec": self.max_wait_sec,
                },
            )
            raise InferenceError(
                "timeout", diagnostic=f"Prediction {submitted.id} exceeded {self.max_wait_sec}s"
            ) from e
        except Exception as e:
            raise InferenceError.from_exception(e) from e

        logger.info(
            "Prediction finished",
            extra={
                "event": "inference.finished",
                "prediction_id": submitted.id,
                "status": prediction.status,
            },
        )

        if prediction.status in FAILED_STATUSES:
            raise InferenceError(
                "generic",
                diagnostic=f"Prediction {prediction.status}: {prediction.error}",
            )
        return prediction.output
