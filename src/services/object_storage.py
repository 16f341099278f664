"""S3-compatible object storage for staged videos.

Works against any S3 API endpoint (Cloudflare R2, Supabase Storage's S3
gateway, MinIO, AWS). Videos are written under a ``videos/`` prefix and served
from a public base URL so the multimodal model can fetch them directly.
"""

import logging
import mimetypes
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from services.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

VIDEO_PREFIX = "videos/"


class VideoStorage:
    """Bucket-scoped object storage client.

    Uses boto3 with the S3-compatible API. All methods are synchronous; async
    callers run them in a worker thread.
    """

    def __init__(
        self,
        endpoint_url: str,
        access_key_id: str,
        secret_access_key: str,
        bucket_name: str = "tiktok-videos",
        public_url: Optional[str] = None,
        region_name: str = "auto",
        client=None,
    ):
        """Initialize storage.

        Args:
            endpoint_url: S3 API endpoint
            access_key_id: Access key ID
            secret_access_key: Secret access key
            bucket_name: Bucket holding the videos
            public_url: Public base URL for objects (CDN or public bucket URL)
            region_name: Region passed to the S3 client
            client: Pre-built boto3 S3 client (tests inject a stub)
        """
        self.bucket_name = bucket_name
        self.public_url = public_url

        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region_name,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            ),
        )

        logger.info(f"Video storage initialized for bucket: {bucket_name}")

    def public_url_for(self, key: str) -> str:
        """Public URL of an object key."""
        if self.public_url:
            return f"{self.public_url.rstrip('/')}/{key}"
        return f"s3://{self.bucket_name}/{key}"

    def upload_file(
        self,
        key: str,
        data: Union[bytes, BinaryIO],
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Upload an object, overwriting any existing one.

        Args:
            key: Object key (path in bucket)
            data: File data as bytes or file-like object
            content_type: MIME type (guessed from the key if not provided)
            metadata: Optional metadata dict

        Returns:
            Public URL of the uploaded object

        Raises:
            UpstreamUnavailableError: If the storage provider rejects the upload
        """
        if isinstance(data, bytes):
            data = BytesIO(data)

        if content_type is None:
            content_type, _ = mimetypes.guess_type(key)
            if content_type is None:
                content_type = {
                    ".mp4": "video/mp4",
                    ".json": "application/json",
                }.get(Path(key).suffix.lower(), "application/octet-stream")

        extra_args = {"ContentType": content_type}
        if metadata:
            extra_args["Metadata"] = metadata

        try:
            self._client.upload_fileobj(
                data,
                self.bucket_name,
                key,
                ExtraArgs=extra_args,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {key}: {e}")
            raise UpstreamUnavailableError("storage", f"upload of {key} failed: {e}") from e

        logger.info(f"Uploaded {key} to storage")
        return self.public_url_for(key)

    def upload_video(self, file_name: str, data: bytes) -> tuple[str, str]:
        """Upload an mp4 under the videos prefix.

        Returns:
            Tuple of (object key, public URL)
        """
        key = file_name if file_name.startswith(VIDEO_PREFIX) else f"{VIDEO_PREFIX}{file_name}"
        return key, self.upload_file(key, data, content_type="video/mp4")

    def list_files(self, prefix: str = VIDEO_PREFIX, max_keys: int = 1000) -> List[Dict]:
        """List objects under a prefix.

        Args:
            prefix: Key prefix to filter on
            max_keys: Maximum number of objects to return

        Returns:
            List of dicts with key, name, size, last_modified
        """
        files = []

        try:
            paginator = self._client.get_paginator("list_objects_v2")
            pages = paginator.paginate(
                Bucket=self.bucket_name,
                Prefix=prefix,
                PaginationConfig={"MaxItems": max_keys},
            )

            for page in pages:
                for obj in page.get("Contents", []):
                    files.append({
                        "key": obj["Key"],
                        "name": obj["Key"].rsplit("/", 1)[-1],
                        "size": obj.get("Size", 0),
                        "last_modified": obj.get("LastModified"),
                    })

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to list files under {prefix}: {e}")
            raise UpstreamUnavailableError("storage", f"list of {prefix} failed: {e}") from e

        return files

    def delete_files(self, keys: List[str]) -> int:
        """Delete objects in one batch request.

        Bare file names are resolved under the videos prefix.

        Args:
            keys: Object keys or file names

        Returns:
            Number of objects deleted
        """
        if not keys:
            return 0

        full_keys = [k if k.startswith(VIDEO_PREFIX) else f"{VIDEO_PREFIX}{k}" for k in keys]

        try:
            # S3 batch delete accepts at most 1000 keys per request
            response = self._client.delete_objects(
                Bucket=self.bucket_name,
                Delete={"Objects": [{"Key": key} for key in full_keys[:1000]]},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete files: {e}")
            raise UpstreamUnavailableError("storage", f"delete failed: {e}") from e

        for err in response.get("Errors", []):
            logger.warning(f"Failed to delete {err.get('Key')}: {err.get('Message')}")

        deleted = len(response.get("Deleted", []))
        logger.info(f"Deleted {deleted} files from storage")
        return deleted


def create_storage(config: dict) -> Optional[VideoStorage]:
    """Build storage from config, or None when credentials are missing."""
    endpoint = config.get("storage_endpoint_url")
    access_key = config.get("storage_access_key_id")
    secret_key = config.get("storage_secret_access_key")

    if not all([endpoint, access_key, secret_key]):
        logger.debug("Video storage not configured - missing credentials")
        return None

    return VideoStorage(
        endpoint_url=endpoint,
        access_key_id=access_key,
        secret_access_key=secret_key,
        bucket_name=config.get("storage_bucket_name", "tiktok-videos"),
        public_url=config.get("storage_public_url"),
        region_name=config.get("storage_region", "auto"),
    )
