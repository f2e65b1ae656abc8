import logging
import os
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

from errors import ExportNotFound

logger = logging.getLogger(__name__)

# Environment variables
S3_BUCKET = os.environ.get("S3_BUCKET")
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
EXPORT_DIR = os.environ.get("ORDER_EXPORT_DIR", "personal_finance_tracker/amazon_exports")
EXPORT_FOLDER = "amazon_exports"

def get_s3_client():
    return boto3.client("s3", region_name=AWS_REGION)

def save_export(file_name: str, text: str, bucket: str | None = S3_BUCKET) -> str:
    """
    Archives a raw order export to S3 or local disk. Returns where it was written.
    """
    body = text.encode("utf-8")
    if bucket:
        key = f"{EXPORT_FOLDER}/{file_name}"
        get_s3_client().put_object(Bucket=bucket, Key=key, Body=body)
        return f"s3://{bucket}/{key}"

    local_path = Path(EXPORT_DIR) / file_name
    local_path.parent.mkdir(parents=True, exist_ok=True)
    local_path.write_bytes(body)
    return str(local_path)

def load_export(path: str, bucket: str | None = S3_BUCKET) -> str:
    """
    Reads an order export as UTF-8 text.

    A path that exists on disk is always read locally; otherwise it is
    looked up as a key under the export folder in S3 when a bucket is set.
    """
    local_path = Path(path)
    if local_path.is_file():
        return local_path.read_text(encoding="utf-8-sig")

    if bucket:
        key = path if path.startswith(f"{EXPORT_FOLDER}/") else f"{EXPORT_FOLDER}/{path}"
        s3 = get_s3_client()
        try:
            obj = s3.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            logger.error("S3 download error for %s: %s", key, e)
            raise ExportNotFound(f"s3://{bucket}/{key}") from e
        return obj["Body"].read().decode("utf-8-sig")

    raise ExportNotFound(path)

def list_exports(bucket: str | None = S3_BUCKET) -> list[str]:
    """
    Lists archived exports (Local or S3).
    """
    if bucket:
        response = get_s3_client().list_objects_v2(Bucket=bucket, Prefix=f"{EXPORT_FOLDER}/")
        return [obj["Key"].split("/")[-1] for obj in response.get("Contents", [])]

    local_path = Path(EXPORT_DIR)
    if local_path.exists():
        return sorted(f.name for f in local_path.glob("*") if f.is_file())
    return []
