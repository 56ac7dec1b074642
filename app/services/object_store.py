"""S3 / Cloudflare R2 uploads for generated results."""
from __future__ import annotations

import datetime as _dt
import logging
import os
import uuid
from functools import lru_cache

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from app.errors import ConfigurationError, GenerationFailed

logger = logging.getLogger(__name__)


def _env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value is None:
            continue
        text = value.strip()
        if text:
            return text
    return None


@lru_cache(maxsize=1)
def _client() -> BaseClient:
    endpoint = _env("R2_ENDPOINT", "S3_ENDPOINT")
    access = _env("R2_ACCESS_KEY_ID", "S3_ACCESS_KEY")
    secret = _env("R2_SECRET_ACCESS_KEY", "S3_SECRET_KEY")
    region = _env("R2_REGION", "S3_REGION") or "auto"
    if not (access and secret):
        raise ConfigurationError("Object storage credentials are not configured.")
    return boto3.session.Session().client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=access,
        aws_secret_access_key=secret,
        region_name=region,
    )


def get_client() -> BaseClient:
    return _client()


def make_key(prefix: str, extension: str) -> str:
    folder = (prefix or "studio").strip("/ ") or "studio"
    date_part = _dt.datetime.now(_dt.timezone.utc).strftime("%Y/%m/%d")
    return f"{folder}/{date_part}/{uuid.uuid4().hex}{extension}"


def public_url_for(key: str) -> str | None:
    base = _env("R2_PUBLIC_BASE", "S3_PUBLIC_BASE")
    if not base:
        return None
    return f"{base.rstrip('/')}/{key.lstrip('/')}"


def presign_get_url(bucket: str, key: str, expires: int | None = None) -> str:
    ttl_raw = _env("R2_SIGNED_GET_TTL", "S3_SIGNED_GET_TTL")
    ttl = int(ttl_raw) if (ttl_raw and ttl_raw.isdigit()) else 0
    ttl = expires or ttl or 900
    try:
        return get_client().generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=max(int(ttl), 60),
            HttpMethod="GET",
        )
    except (ClientError, BotoCoreError) as exc:
        raise GenerationFailed("Failed to generate a download URL for the result.") from exc


def put_bytes(bucket: str | None, key: str, data: bytes, *, content_type: str) -> str:
    """Upload ``data`` and return a public URL, or a presigned GET URL when no public base is set."""

    if not bucket:
        raise ConfigurationError("S3_BUCKET / R2_BUCKET is not configured.")
    try:
        get_client().put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
    except (ClientError, BotoCoreError) as exc:
        logger.warning("[storage] put failed: bucket=%s key=%s err=%s", bucket, key, exc)
        raise GenerationFailed("Failed to store the generated image.") from exc

    return public_url_for(key) or presign_get_url(bucket, key)


__all__ = ["get_client", "make_key", "presign_get_url", "public_url_for", "put_bytes"]
