"""Source photo upload endpoint.

Accepts a base64 data URI and stores it in ``user_uploads`` under
``{user_id}/{folder}/``. The returned ``path`` is what the client later sends
as ``uploadedImagePath`` so the photo can be removed after generation.
"""

import base64
import binascii
import logging
import re

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends

from herotime_api.auth.session_auth import AuthContext, get_auth_context
from herotime_api.errors import HeroTimeError, InvalidUploadError
from herotime_api.providers import get_storage
from herotime_api.schemas import UploadImageRequest, UploadImageResponse
from herotime_api.storage.s3_client import UPLOADS_BUCKET, StorageClient, build_object_key
from herotime_api.utils.formatting import format_file_size

router = APIRouter(prefix="/api", tags=["uploads"])
logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png")

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)
_FOLDER_RE = re.compile(r"^[A-Za-z0-9_-]+(?:/[A-Za-z0-9_-]+)*$")


def parse_data_uri(data_uri: str) -> tuple[str, bytes]:
    """Split a base64 data URI into (mime type, bytes).

    Raises:
        InvalidUploadError: Not a data URI, disallowed type, bad base64, or too large
    """
    if not data_uri.startswith("data:"):
        raise InvalidUploadError("Invalid file format: must be a base64 data URI")
    match = _DATA_URI_RE.match(data_uri)
    if match is None:
        raise InvalidUploadError("Invalid data URI format")

    mime_type = match.group("mime").lower()
    if mime_type not in ALLOWED_MIME_TYPES:
        raise InvalidUploadError("Invalid file type. Only JPEG and PNG images are allowed.")

    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidUploadError("Invalid data URI format") from e

    if not data:
        raise InvalidUploadError("Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise InvalidUploadError(
            f"File too large ({format_file_size(len(data))}). Maximum size is 10 MB."
        )
    return mime_type, data


def validate_folder(folder: str) -> str:
    """Reject traversal and odd characters in the client-chosen sub-folder."""
    folder = folder.strip("/")
    if not folder or not _FOLDER_RE.match(folder):
        raise InvalidUploadError("Invalid folder name")
    return folder


@router.post("/upload-image", response_model=UploadImageResponse)
async def upload_image(
    body: UploadImageRequest,
    auth: AuthContext = Depends(get_auth_context),
    storage: StorageClient = Depends(get_storage),
) -> UploadImageResponse:
    """Store a source photo for a later generation request.

    Raises:
        InvalidUploadError 400: Malformed, disallowed or oversized file
        HeroTimeError 500: Storage write failed
    """
    mime_type, data = parse_data_uri(body.file)
    folder = validate_folder(body.folder)
    extension = mime_type.split("/", 1)[1]
    key = build_object_key(f"{auth.user_id}/{folder}", extension)

    try:
        url = storage.upload_bytes(data, UPLOADS_BUCKET, key, content_type=mime_type)
    except (ClientError, BotoCoreError) as e:
        raise HeroTimeError(
            "Upload failed", title="Upload Failed", code="UPLOAD_FAILED", diagnostic=str(e)
        ) from e

    logger.info(
        "Source image uploaded",
        extra={
            "event": "upload.stored",
            "user_id": auth.user_id,
            "mime_type": mime_type,
            "size": format_file_size(len(data)),
        },
    )
    return UploadImageResponse(url=url, path=key)
