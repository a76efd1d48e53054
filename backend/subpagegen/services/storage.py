from __future__ import annotations

from typing import List
from urllib.parse import quote

import boto3

from ..config import settings
from ..exceptions import S3StorageError
from ..logger import logger


s3 = boto3.client(
    "s3",
    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    region_name=settings.AWS_REGION_NAME,
    endpoint_url=settings.AWS_ENDPOINT_URL,
)


def export_prefix(job_id: str) -> str:
    return f"exports/{job_id}/"


def export_key(job_id: str, subpage_id: str) -> str:
    return f"{export_prefix(job_id)}{subpage_id}.tsx"


def put_component_source(key: str, source: str, filename: str) -> str:
    """Upload one component file and return its s3:// URI."""
    try:
        s3.put_object(
            Bucket=settings.S3_BUCKET_NAME,
            Key=key,
            Body=source.encode("utf-8"),
            ContentType="text/typescript; charset=utf-8",
            ContentDisposition=f"attachment; filename*=UTF-8''{quote(filename)}",
        )
        logger.info(f"Uploaded component to S3: {key}")
        return f"s3://{settings.S3_BUCKET_NAME}/{key}"
    except Exception as e:
        logger.error(f"Failed to upload component to S3: {key}, error: {e}")
        raise S3StorageError(f"Failed to upload component: {str(e)}")


def list_keys(prefix: str) -> List[str]:
    try:
        keys: List[str] = []
        paginator = s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=settings.S3_BUCKET_NAME, Prefix=prefix):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])
        return sorted(keys)
    except Exception as e:
        logger.error(f"Failed to list S3 objects under {prefix}: {e}")
        raise S3StorageError("Failed to list exported components")


def presigned_get(key: str, expires: int = 3600) -> str:
    return s3.generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.S3_BUCKET_NAME, "Key": key},
        ExpiresIn=expires,
    )
