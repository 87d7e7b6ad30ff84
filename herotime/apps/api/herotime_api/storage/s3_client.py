"""Object storage client for HeroTime.

Talks to the storage provider through its S3-compatible endpoint and builds
the public URLs the web client renders:

    {public_base}/storage/v1/object/public/{bucket}/{key}
"""

import logging
import secrets
import string
import time
from typing import Optional
from urllib.parse import unquote

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from herotime_api.config import env

logger = logging.getLogger(__name__)

# Buckets
UPLOADS_BUCKET = "user_uploads"
GENERATIONS_BUCKET = "user_generations"
TEMPLATES_BUCKET = "hero_templates"
PROPS_BUCKET = "hero_props"

PUBLIC_OBJECT_PATH = "/storage/v1/object/public/"

_NAME_ALPHABET = string.ascii_lowercase + string.digits


def build_object_key(folder: str, extension: str) -> str:
    """Unique object key: ``{folder}/{epoch_ms}-{random}.{ext}``."""
    suffix = "".join(secrets.choice(_NAME_ALPHABET) for _ in range(6))
    return f"{folder}/{int(time.time() * 1000)}-{suffix}.{extension}"


class StorageClient:
    """S3-compatible storage client (uploads, deletes, listings, public URLs)."""

    def __init__(
        self,
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        region: Optional[str] = None,
        credentials: Optional[tuple[str, str]] = None,
        client=None,
    ):
        """Initialize storage client.

        Args:
            endpoint_url: S3 endpoint (default from env: STORAGE_S3_ENDPOINT_URL)
            public_base_url: Base of public object URLs (default: SUPABASE_URL)
            region: Signing region (default from env: STORAGE_S3_REGION)
            credentials: (access_key_id, secret_access_key) pair
            client: Pre-built boto3 S3 client (tests)

        Raises:
            ConfigurationError: If endpoint/credentials cannot be resolved
        """
        self.public_base_url = (public_base_url or env.get_storage_public_base_url()).rstrip("/")

        if client is not None:
            self.client = client
            self.endpoint_url = endpoint_url
            return

        self.endpoint_url = endpoint_url or env.get_storage_s3_endpoint_url()
        self.region = region or env.get_storage_s3_region()
        access_key, secret_key = credentials or env.get_storage_s3_credentials()

        config = Config(
            region_name=self.region,
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            retries={"max_attempts": 3, "mode": "standard"},
            connect_timeout=10,
            read_timeout=60,
        )

        self.client = boto3.client(
            "s3",
            config=config,
            endpoint_url=self.endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )

        logger.info(
            "StorageClient initialized",
            extra={"endpoint_url": self.endpoint_url, "region": self.region},
        )

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_base_url}{PUBLIC_OBJECT_PATH}{bucket}/{key}"

    @staticmethod
    def key_from_public_url(url: Optional[str], bucket: str) -> Optional[str]:
        """Extract the object key from a public URL of ``bucket``.

        Returns:
            Object key, or None if the URL does not point into the bucket
        """
        if not url:
            return None
        marker = f"/{bucket}/"
        _, found, key = url.partition(marker)
        if not found or not key:
            return None
        return unquote(key.split("?", 1)[0])

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def upload_bytes(
        self,
        data: bytes,
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
        cache_control: str = "max-age=3600",
    ) -> str:
        """Upload bytes and return the public URL.

        Raises:
            ClientError: If upload fails
        """
        try:
            self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=cache_control,
            )
        except ClientError as e:
            logger.error(
                f"Failed to upload bytes to {bucket}/{key}: {e}",
                exc_info=True,
            )
            raise

        logger.info(
            "Object uploaded",
            extra={"event": "storage.uploaded", "bucket": bucket, "key": key, "bytes": len(data)},
        )
        return self.public_url(bucket, key)

    def delete_object(self, bucket: str, key: str) -> bool:
        """Delete an object.

        Returns:
            True if the object was deleted or didn't exist

        Raises:
            ClientError: If deletion fails (except 404)
        """
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
            logger.info(f"Deleted storage object: {bucket}/{key}")
            return True

        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey"):
                logger.warning(f"Storage object not found (already deleted): {bucket}/{key}")
                return True

            logger.error(
                f"Failed to delete storage object {bucket}/{key}: {e}",
                exc_info=True,
            )
            raise

    def list_folders(self, bucket: str, prefix: str = "") -> list[str]:
        """Immediate sub-folder names under ``prefix``."""
        folders: list[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix, Delimiter="/"):
            for entry in page.get("CommonPrefixes", []):
                name = entry["Prefix"][len(prefix):].rstrip("/")
                if name:
                    folders.append(name)
        return folders

    def list_files(self, bucket: str, prefix: str) -> list[str]:
        """File names (not keys) directly under ``prefix``."""
        names: list[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix, Delimiter="/"):
            for obj in page.get("Contents", []):
                name = obj["Key"][len(prefix):]
                if name and "/" not in name:
                    names.append(name)
        return names
