# core/s3_client.py

import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from core.config import settings
from core.errors import StoreUnavailable, ValidationFailed
from core.logging_config import logger


def get_s3() -> Tuple[boto3.client, str, str]:
    """
    Get S3 client, bucket name, and region.
    Returns: (s3_client, bucket_name, region)
    Raises RuntimeError if AWS credentials are missing.
    """
    key = settings.AWS_ACCESS_KEY_ID
    secret = settings.AWS_SECRET_ACCESS_KEY
    bucket = settings.AWS_BUCKET_NAME
    region = settings.AWS_REGION

    if not all([key, secret, bucket]):
        raise RuntimeError("Missing AWS credentials")

    client = boto3.client(
        "s3",
        aws_access_key_id=key,
        aws_secret_access_key=secret,
        region_name=region,
    )

    return client, bucket, region


def safe_filename(filename: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", filename)


def temp_prefix(user_id: str) -> str:
    return f"temp/{user_id}/"


def public_url(key: str, bucket: str, region: str) -> str:
    if settings.BLOB_PUBLIC_BASE_URL:
        return f"{settings.BLOB_PUBLIC_BASE_URL.rstrip('/')}/{key}"
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


# -----------------------------------------------------
# Attachment staging
# -----------------------------------------------------
class BlobStaging:
    """
    Temporary attachment area. Uploads land under temp/{user_id}/ and are
    moved next to their document once it exists.
    """

    def __init__(self, s3=None, bucket: Optional[str] = None, region: Optional[str] = None):
        if s3 is None:
            s3, bucket, region = get_s3()
        self.s3 = s3
        self.bucket = bucket
        self.region = region or settings.AWS_REGION

    def put_temp(self, user_id: str, filename: str, body, content_type: Optional[str] = None) -> dict:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        key = f"{temp_prefix(user_id)}{stamp}_{safe_filename(filename)}"

        extra = {"ContentType": content_type} if content_type else {}
        self.s3.upload_fileobj(body, self.bucket, key, ExtraArgs=extra)

        logger.info(f"Staged upload {key}")
        return {
            "file_name": filename,
            "file_path": key,
            "content_type": content_type,
        }

    def delete_temp(self, user_id: str, file_path: str) -> bool:
        """Only keys under the caller's own temp prefix may be removed."""
        if not file_path.startswith(temp_prefix(user_id)):
            return False
        self.s3.delete_object(Bucket=self.bucket, Key=file_path)
        logger.info(f"Deleted staged upload {file_path}")
        return True

    def move_to_document(
        self,
        user_id: str,
        site_id: str,
        folder: str,
        document_number: str,
        files: List[dict],
    ) -> List[dict]:
        """
        Move staged files to sites/{site_id}/{folder}/{document_number}/.
        Every path must sit under the caller's temp prefix (ValidationFailed)
        and every copy must succeed (StoreUnavailable).
        """
        prefix = temp_prefix(user_id)
        outside = [f.get("file_path") for f in files if not (f.get("file_path") or "").startswith(prefix)]
        if outside:
            raise ValidationFailed(f"Attachments must be uploaded under {prefix}: {', '.join(map(str, outside))}")

        moved = []
        for f in files:
            source = f["file_path"]
            name = source.rsplit("/", 1)[-1]
            target = f"sites/{site_id}/{folder}/{document_number}/{name}"
            try:
                self.s3.copy_object(
                    Bucket=self.bucket,
                    CopySource={"Bucket": self.bucket, "Key": source},
                    Key=target,
                )
                self.s3.delete_object(Bucket=self.bucket, Key=source)
            except ClientError as e:
                logger.error(f"Failed to move {source} → {target}: {e}")
                raise StoreUnavailable(f"Failed to process file upload {f.get('file_name') or name}") from e

            moved.append({
                "file_name": f.get("file_name") or name,
                "file_path": target,
                "file_url": public_url(target, self.bucket, self.region),
                "size": f.get("size"),
                "content_type": f.get("content_type"),
                "uploaded_by": user_id,
            })

        return moved
