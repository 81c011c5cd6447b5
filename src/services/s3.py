"""
S3 operations used by the ingestion pipeline.

Emails delivered by SES are stored as raw .eml objects; publications are
stored as JSON documents. This module wraps the boto3 calls for both.
"""

import json
import logging
from typing import Dict, List

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# Configure S3 client with timeouts to prevent infinite hangs
s3_config = Config(
    retries={
        'max_attempts': 1,  # 1 attempt total (no retries)
        'mode': 'standard'
    },
    connect_timeout=10,  # 10 seconds to establish connection
    read_timeout=60      # 60 seconds max for reading response
)

# Initialize S3 client at module level (thread-safe, reused across invocations)
s3_client = boto3.client('s3', config=s3_config)
logger.info("S3 client initialized with timeouts: connect=10s, read=60s, max_attempts=1")


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', 'Unknown')


def fetch_email_from_s3(bucket: str, key: str) -> bytes:
    """
    Fetch raw email content from S3.

    Args:
        bucket: S3 bucket name
        key: S3 object key (path to the email file)

    Returns:
        bytes: The raw email content as bytes

    Raises:
        ValueError: If the bucket or the object does not exist
        ClientError: For any other S3 failure

    Example:
        >>> email_bytes = fetch_email_from_s3(
        ...     bucket="my-ses-bucket",
        ...     key="inbox/message-id.eml"
        ... )
    """
    try:
        response = s3_client.get_object(Bucket=bucket, Key=key)
        return response['Body'].read()
    except ClientError as e:
        error_code = _error_code(e)
        if error_code == 'NoSuchKey':
            logger.error(f"S3 object not found: s3://{bucket}/{key}")
            raise ValueError(f"Email file not found in S3: {key}")
        elif error_code == 'NoSuchBucket':
            logger.error(f"S3 bucket not found: {bucket}")
            raise ValueError(f"S3 bucket not found: {bucket}")
        else:
            logger.error(f"Failed to fetch from S3 s3://{bucket}/{key}: {e}")
            raise


def list_email_keys(bucket: str, prefix: str) -> List[str]:
    """
    List the object keys under a prefix, in key order.

    "Directory" placeholder keys (ending with '/') are skipped.

    Raises:
        ClientError: If S3 operation fails
    """
    keys = []
    paginator = s3_client.get_paginator('list_objects_v2')
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
        for item in page.get('Contents', []):
            if not item['Key'].endswith('/'):
                keys.append(item['Key'])

    logger.debug(f"Listed {len(keys)} object(s) under s3://{bucket}/{prefix}")
    return keys


def get_object_tags(bucket: str, key: str) -> Dict[str, str]:
    """Return the tags of an object as a dict."""
    response = s3_client.get_object_tagging(Bucket=bucket, Key=key)
    return {tag['Key']: tag['Value'] for tag in response.get('TagSet', [])}


def tag_object(bucket: str, key: str, tags: Dict[str, str]) -> None:
    """
    Add tags to an object, keeping its existing tags.

    Raises:
        ClientError: If S3 operation fails
    """
    merged = get_object_tags(bucket, key)
    merged.update(tags)
    s3_client.put_object_tagging(
        Bucket=bucket,
        Key=key,
        Tagging={'TagSet': [{'Key': k, 'Value': v} for k, v in merged.items()]},
    )
    logger.debug(f"Tagged s3://{bucket}/{key} with {tags}")


def move_object(bucket: str, source_key: str, destination_key: str) -> None:
    """
    Move an object inside a bucket (copy, then delete the source).

    Tags are copied along with the object.

    Raises:
        ClientError: If S3 operation fails (the source is kept if the copy fails)
    """
    try:
        s3_client.copy_object(
            Bucket=bucket,
            Key=destination_key,
            CopySource={'Bucket': bucket, 'Key': source_key},
            TaggingDirective='COPY',
        )
        s3_client.delete_object(Bucket=bucket, Key=source_key)
        logger.info(f"Moved s3://{bucket}/{source_key} to {destination_key}")
    except ClientError as e:
        logger.error(
            f"Failed to move s3://{bucket}/{source_key} to {destination_key}: "
            f"error_code={_error_code(e)}"
        )
        raise


def upload_json(bucket: str, key: str, document: Dict) -> None:
    """
    Upload a JSON document to S3.

    Args:
        bucket: S3 bucket name
        key: S3 object key
        document: JSON-serializable dict

    Raises:
        ClientError: If S3 operation fails
        ValueError: If parameters are invalid

    Example:
        >>> upload_json(
        ...     bucket="my-publications-bucket",
        ...     key="publications/kotlin_weekly/2024-03-10/0123456789abcdef.json",
        ...     document={"title": "Kotlin Weekly #398", "articles": []}
        ... )
    """
    if not bucket:
        raise ValueError("S3 bucket name cannot be empty")
    if not key:
        raise ValueError("S3 object key cannot be empty")

    body = json.dumps(document, ensure_ascii=False, indent=2).encode('utf-8')
    try:
        logger.info(f"Uploading JSON to S3: bucket={bucket}, key={key}, size={len(body)} bytes")
        s3_client.put_object(
            Bucket=bucket,
            Key=key,
            Body=body,
            ContentType='application/json'
        )
    except ClientError as e:
        error_message = e.response.get('Error', {}).get('Message', str(e))
        logger.error(
            f"Failed to upload JSON to S3: "
            f"bucket={bucket}, key={key}, "
            f"error_code={_error_code(e)}, error_message={error_message}"
        )
        raise
