"""S3-compatible object store client for CI artifacts (GCS XML API, MinIO, S3)."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from minio import Minio
from minio.error import S3Error

from triage.config import settings
from triage.errors import NotFoundError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchObject"}


@dataclass
class Listing:
    """Result of listing one prefix."""

    dirs: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)


class ObjectStream:
    """Readable body of an object; returns the HTTP connection to the pool on close."""

    def __init__(self, response):
        self._response = response

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self._response.read()
        return self._response.read(size)

    def close(self) -> None:
        self._response.close()
        self._response.release_conn()


class ObjectStore:
    """MinIO client wrapper for read-only access to artifact buckets."""

    def __init__(self, client: Optional[Minio] = None):
        if client is None:
            # Parse endpoint to remove http:// prefix if present
            endpoint = settings.s3_endpoint.replace("http://", "").replace("https://", "")
            secure = not settings.s3_endpoint.startswith("http://")

            client = Minio(
                endpoint=endpoint,
                access_key=settings.s3_access_key,
                secret_key=settings.s3_secret_key,
                secure=secure,
                region=settings.s3_region,
            )
        self.client = client

    def list(self, bucket: str, prefix: str, recursive: bool = False) -> Listing:
        """
        List objects under a prefix.

        Args:
            bucket: Bucket name
            prefix: Object prefix, usually ending with ``/``
            recursive: List every object below the prefix instead of one level

        Returns:
            Listing with sub-prefixes (ending with ``/``) and object names
        """
        logger.debug("Listing %sgs://%s/%s...", "recursively " if recursive else "", bucket, prefix)

        listing = Listing()
        try:
            for obj in self.client.list_objects(bucket, prefix=prefix, recursive=recursive):
                if obj.is_dir:
                    listing.dirs.append(obj.object_name)
                else:
                    listing.files.append(obj.object_name)
        except S3Error as e:
            logger.error("Error listing gs://%s/%s: %s", bucket, prefix, e)
            raise
        return listing

    def read(self, bucket: str, object_name: str) -> ObjectStream:
        """
        Open an object for reading.

        Raises:
            NotFoundError: If the object does not exist
        """
        try:
            response = self.client.get_object(bucket_name=bucket, object_name=object_name)
        except S3Error as e:
            if e.code in _NOT_FOUND_CODES:
                raise NotFoundError(f"gs://{bucket}/{object_name}") from e
            logger.error("Error opening gs://%s/%s: %s", bucket, object_name, e)
            raise
        return ObjectStream(response)


_object_store: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    """Shared object store client, created on first use."""
    global _object_store
    if _object_store is None:
        _object_store = ObjectStore()
    return _object_store
