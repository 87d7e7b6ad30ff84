"""Plan-tier image policy.

| Plan    | Sizes                               | Aspect ratio     |
|---------|-------------------------------------|------------------|
| free    | forced 1K (1024x1024)               | forced 4:3       |
| pro     | 1K or 2K (4K/custom become 2K)      | client, else 4:3 |
| premium | 1K/2K/4K, or custom width x height  | client, else 4:3 |

Unknown plans get 2K at 4:3. Overrides are silent: a disallowed request is
coerced, never rejected.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from herotime_api.generation.prompts import DEFAULT_PROMPT
from herotime_api.plans import FREE, PREMIUM, PRO
from herotime_api.schemas import GenerationOptions

logger = logging.getLogger(__name__)

SIZE_DIMENSIONS = {"1K": 1024, "2K": 2048, "4K": 4096}
DEFAULT_SIZE = "2K"
DEFAULT_ASPECT_RATIO = "4:3"
DEFAULT_CUSTOM_DIMENSION = 2048

PRO_ALLOWED_SIZES = ("1K", "2K")


@dataclass(frozen=True)
class ImageParams:
    size: str
    width: int
    height: int
    aspect_ratio: str
    prompt: str


def dimension_for(size: str) -> int:
    """Square edge for a preset size (custom and unknown sizes use 2048)."""
    return SIZE_DIMENSIONS.get(size, DEFAULT_CUSTOM_DIMENSION)


def resolve_image_params(plan: Optional[str], options: Optional[GenerationOptions]) -> ImageParams:
    """Combine plan policy with client options."""
    options = options or GenerationOptions()
    prompt = options.prompt or DEFAULT_PROMPT

    if plan == FREE:
        edge = dimension_for("1K")
        return ImageParams("1K", edge, edge, DEFAULT_ASPECT_RATIO, prompt)

    if plan == PRO:
        size = options.size or DEFAULT_SIZE
        if size not in PRO_ALLOWED_SIZES:
            logger.info(
                f"Pro plan requested {size}, using {DEFAULT_SIZE}",
                extra={"event": "generation.size_coerced", "requested": size},
            )
            size = DEFAULT_SIZE
        edge = dimension_for(size)
        return ImageParams(size, edge, edge, options.aspect_ratio or DEFAULT_ASPECT_RATIO, prompt)

    if plan == PREMIUM:
        size = options.size or DEFAULT_SIZE
        aspect_ratio = options.aspect_ratio or DEFAULT_ASPECT_RATIO
        if size == "custom":
            return ImageParams(
                size,
                options.width or DEFAULT_CUSTOM_DIMENSION,
                options.height or DEFAULT_CUSTOM_DIMENSION,
                aspect_ratio,
                prompt,
            )
        edge = dimension_for(size)
        return ImageParams(size, edge, edge, aspect_ratio, prompt)

    edge = dimension_for(DEFAULT_SIZE)
    return ImageParams(DEFAULT_SIZE, edge, edge, DEFAULT_ASPECT_RATIO, prompt)


def build_image_inputs(
    uploaded_image_url: str,
    template_image_url: Optional[str],
    prop_image_urls: list[str],
) -> list[str]:
    """Ordered image list: source photo, template, then props in selection order."""
    images = [uploaded_image_url]
    if template_image_url:
        images.append(template_image_url)
    images.extend(url for url in prop_image_urls if url)
    return images
