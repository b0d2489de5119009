"""S3-compatible publisher that makes witnesses fetchable by the remote sandbox."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlsplit

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig
from .errors import StorageUploadError

logger = logging.getLogger(__name__)


class ArtifactPublisher:
    """Upload files under a caller-chosen key and return their public URL.

    The key is used verbatim: the task descriptor and the sandbox both refer
    to the witness by that name.
    """

    def __init__(
        self,
        *,
        bucket: str,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        acl: str = "public-read",
        public_base_url: str | None = None,
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self.access_key = access_key
        self.secret_key = secret_key
        self.acl = acl
        self.public_base_url = public_base_url
        self._client = client

    @classmethod
    def from_config(cls, storage: StorageConfig, client: Any = None) -> "ArtifactPublisher":
        return cls(
            bucket=storage.bucket,
            endpoint_url=storage.endpoint_url,
            region=storage.region,
            access_key=storage.access_key,
            secret_key=storage.secret_key,
            acl=storage.acl,
            public_base_url=storage.public_base_url,
            client=client,
        )

    @property
    def client(self):
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                "s3",
                region_name=self.region,
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                endpoint_url=self.endpoint_url,
                config=BotoConfig(signature_version="s3v4"),
            )
        return self._client

    def publish(self, path: Path, key: str) -> str:
        path = Path(path)
        if not path.is_file():
            raise StorageUploadError(f"cannot upload {path}: not a file")
        logger.info("uploading %s to s3://%s/%s", path, self.bucket, key)
        try:
            self.client.upload_file(str(path), self.bucket, key, ExtraArgs={"ACL": self.acl})
        except (BotoCoreError, ClientError, S3UploadFailedError) as exc:
            raise StorageUploadError(f"upload of {key} to bucket {self.bucket} failed: {exc}") from exc
        url = self.public_url(key)
        logger.info("published %s", url)
        return url

    def public_url(self, key: str) -> str:
        quoted = quote(key, safe="/")
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quoted}"
        if not self.endpoint_url:
            return f"https://{self.bucket}.s3.amazonaws.com/{quoted}"
        parts = urlsplit(self.endpoint_url)
        scheme = parts.scheme or "https"
        host = parts.netloc or parts.path
        return f"{scheme}://{self.bucket}.{host}/{quoted}"


__all__ = ["ArtifactPublisher"]
