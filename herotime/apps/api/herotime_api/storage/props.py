"""Prop catalog for the character builder, read from the ``hero_props`` bucket.

Folders map to body slots; a prop from ``hands`` can go in either hand,
one from ``legs`` on either leg.
"""

import logging
from dataclasses import dataclass

from botocore.exceptions import BotoCoreError, ClientError

from herotime_api.storage.s3_client import PROPS_BUCKET, StorageClient
from herotime_api.storage.templates import (
    IMAGE_EXTENSIONS,
    template_id_from_filename,
    template_name_from_filename,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PropSlot:
    name: str
    icon_name: str
    positions: tuple[str, ...]


PROP_SLOTS: dict[str, PropSlot] = {
    "hands": PropSlot("Hands", "hands", ("leftHand", "rightHand")),
    "head": PropSlot("Head", "head", ("head",)),
    "body": PropSlot("Body", "body", ("body",)),
    "legs": PropSlot("Legs", "legs", ("leftLeg", "rightLeg")),
}


@dataclass(frozen=True)
class Prop:
    id: str
    name: str
    image: str
    positions: tuple[str, ...]


@dataclass(frozen=True)
class PropCategory:
    id: str
    name: str
    icon_name: str
    props: tuple[Prop, ...]


class PropCatalog:
    """Lists prop categories from storage, folders in name order."""

    def __init__(self, storage: StorageClient):
        self.storage = storage

    def list_categories(self) -> list[PropCategory]:
        """Unknown folders and folders without images are skipped.

        A listing failure yields an empty catalog.
        """
        try:
            categories = []
            for folder in sorted(self.storage.list_folders(PROPS_BUCKET)):
                slot = PROP_SLOTS.get(folder)
                if slot is None:
                    logger.warning(
                        f"No prop slot configured for folder: {folder}",
                        extra={"event": "props.unknown_folder"},
                    )
                    continue
                files = sorted(
                    f for f in self.storage.list_files(PROPS_BUCKET, f"{folder}/")
                    if f.lower().endswith(IMAGE_EXTENSIONS)
                )
                if not files:
                    continue
                props = tuple(
                    Prop(
                        id=template_id_from_filename(f),
                        name=template_name_from_filename(f),
                        image=self.storage.public_url(PROPS_BUCKET, f"{folder}/{f}"),
                        positions=slot.positions,
                    )
                    for f in files
                )
                categories.append(
                    PropCategory(id=folder, name=slot.name, icon_name=slot.icon_name, props=props)
                )
            return categories
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Failed to list props: {e}",
                extra={"event": "props.list_failed"},
            )
            return []
