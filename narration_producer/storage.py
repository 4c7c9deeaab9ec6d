"""Storage collaborators: store finished bytes, return a retrievable URL.

Also home to the S3/R2-backed asset store, since both talk to the same
bucket API. Upload retries and durability are the client's business; any
failure surfaces as UploadError.
"""

import logging
import os
import pathlib
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from narration_producer.errors import UploadError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {".wav": "audio/wav", ".mp3": "audio/mpeg", ".json": "application/json"}


class Storage(Protocol):
    def store(self, data: bytes, path: str) -> str: ...


class LocalStorage:
    """Write files under a root directory; URLs are file:// URIs."""

    def __init__(self, root: str):
        self.root = root

    def store(self, data: bytes, path: str) -> str:
        target = os.path.join(self.root, *path.split("/"))
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)
        except OSError as e:
            raise UploadError(f"could not write {target}: {e}") from e
        return pathlib.Path(os.path.abspath(target)).as_uri()


def _client(endpoint_url: str | None, region: str | None, client=None):
    if client is not None:
        return client
    session = boto3.session.Session(region_name=region) if region else boto3.session.Session()
    return session.client("s3", endpoint_url=endpoint_url)


def _join(prefix: str, path: str) -> str:
    return f"{prefix.strip('/')}/{path}" if prefix.strip("/") else path


class S3Storage:
    """Upload to an S3-compatible bucket (AWS S3, Cloudflare R2, MinIO).

    Returns ``public_base_url/<key>`` when the bucket is served publicly,
    otherwise a presigned GET URL.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        endpoint_url: str | None = None,
        region: str | None = None,
        public_base_url: str | None = None,
        url_expiry: int = 7 * 24 * 3600,
        client=None,
    ):
        self.bucket = bucket
        self.prefix = prefix
        self.public_base_url = public_base_url
        self.url_expiry = url_expiry
        self._client = _client(endpoint_url, region, client)

    def store(self, data: bytes, path: str) -> str:
        key = _join(self.prefix, path)
        content_type = CONTENT_TYPES.get(os.path.splitext(key)[1].lower(), "application/octet-stream")
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
            logger.info("Uploaded %d bytes to s3://%s/%s", len(data), self.bucket, key)
            if self.public_base_url:
                return f"{self.public_base_url.rstrip('/')}/{key}"
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.url_expiry,
            )
        except (ClientError, BotoCoreError) as e:
            raise UploadError(f"upload to s3://{self.bucket}/{key} failed: {e}") from e


class S3AssetStore:
    """Music library kept in a bucket under ``prefix``."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        endpoint_url: str | None = None,
        region: str | None = None,
        url_expiry: int = 3600,
        client=None,
    ):
        self.bucket = bucket
        self.prefix = prefix
        self.url_expiry = url_expiry
        self._client = _client(endpoint_url, region, client)

    def _list(self, prefix: str, delimiter: str | None = None) -> list[dict]:
        kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        paginator = self._client.get_paginator("list_objects_v2")
        return list(paginator.paginate(**kwargs))

    def list_categories(self) -> list[str]:
        base = _join(self.prefix, "")
        categories = []
        for page in self._list(base, delimiter="/"):
            for common in page.get("CommonPrefixes", []):
                name = common["Prefix"][len(base):].strip("/")
                if name:
                    categories.append(name)
        return sorted(categories)

    def list_assets_in_category(self, category: str) -> list[str]:
        base = _join(self.prefix, f"{category}/")
        names = []
        for page in self._list(base):
            for item in page.get("Contents", []):
                name = item["Key"].rsplit("/", 1)[-1]
                if name:
                    names.append(name)
        return sorted(names)

    def exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=_join(self.prefix, path))
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise

    def resolve_url(self, path: str) -> str:
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": _join(self.prefix, path)},
            ExpiresIn=self.url_expiry,
        )
