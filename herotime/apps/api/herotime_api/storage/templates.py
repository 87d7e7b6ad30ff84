"""Hero template catalog, read from the ``hero_templates`` bucket.

Each known top-level folder is a category; each image file inside it is a
template whose id and display name are derived from the file name.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from herotime_api.storage.s3_client import TEMPLATES_BUCKET, StorageClient

logger = logging.getLogger(__name__)

# folder -> display name, in catalog order
TEMPLATE_CATEGORIES: dict[str, str] = {
    "playful": "Playful & Emotional",
    "retro": "Retro & Nostalgic",
    "action": "Action & Adventure",
    "cinematic": "Cinematic & Stylized",
    "avengers": "Avengers",
}

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")


@dataclass(frozen=True)
class Template:
    id: str
    name: str
    image: str


@dataclass(frozen=True)
class TemplateCategory:
    id: str
    name: str
    templates: tuple[Template, ...]


def template_id_from_filename(filename: str) -> str:
    """``Iron_Man Pose.png`` → ``iron-man-pose``."""
    stem = filename.rsplit(".", 1)[0]
    return re.sub(r"[_\s]+", "-", stem.lower())


def template_name_from_filename(filename: str) -> str:
    """``iron-man_pose.png`` → ``Iron Man Pose``."""
    stem = filename.rsplit(".", 1)[0]
    words = re.split(r"[-_\s]+", stem)
    return " ".join(word.capitalize() for word in words if word)


class TemplateCatalog:
    """Lists template categories from storage."""

    def __init__(self, storage: StorageClient):
        self.storage = storage

    def list_categories(self) -> list[TemplateCategory]:
        """Read every known category.

        Listing failures are logged and yield an empty catalog; templates are
        decoration, not a reason to fail a request.
        """
        try:
            folders = set(self.storage.list_folders(TEMPLATES_BUCKET))
            categories = []
            for folder, display_name in TEMPLATE_CATEGORIES.items():
                if folder not in folders:
                    continue
                files = sorted(
                    f for f in self.storage.list_files(TEMPLATES_BUCKET, f"{folder}/")
                    if f.lower().endswith(IMAGE_EXTENSIONS)
                )
                templates = tuple(
                    Template(
                        id=template_id_from_filename(f),
                        name=template_name_from_filename(f),
                        image=self.storage.public_url(TEMPLATES_BUCKET, f"{folder}/{f}"),
                    )
                    for f in files
                )
                categories.append(
                    TemplateCategory(id=folder, name=display_name, templates=templates)
                )
            return categories
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Failed to list templates: {e}",
                extra={"event": "templates.list_failed"},
            )
            return []

    def find(self, template_id: str) -> Optional[Template]:
        for category in self.list_categories():
            for template in category.templates:
                if template.id == template_id:
                    return template
        return None
