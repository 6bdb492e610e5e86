"""
Object Storage Service for S3-compatible storage (MinIO, AWS S3, DigitalOcean Spaces).

Discount images are stored under discounts/owner_<id>/ and referenced
from the database by object key, never by full URL.

Architecture:
- Uses boto3 (AWS SDK for Python)
- Compatible with MinIO (local), AWS S3, DigitalOcean Spaces
- Automatic bucket creation on init
"""
import json
import logging
import mimetypes
import os
import time
import uuid
from typing import Optional

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import ClientError, BotoCoreError
from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from app.exceptions import ValidationFailureError, InternalFailureError

logger = logging.getLogger(__name__)

DISCOUNT_PREFIX = 'discounts'


class StorageService:
    """
    S3-compatible object storage service.

    Usage:
        storage = StorageService()
        key = storage.upload_file(file, 'discounts/owner_1/image.jpg')
        storage.delete_file(key)
    """

    def __init__(self):
        """Initialize S3 client from Flask config."""
        self.endpoint = current_app.config['S3_ENDPOINT']
        self.bucket = current_app.config['S3_BUCKET']

        self.client = boto3.client(
            's3',
            endpoint_url=self.endpoint,
            aws_access_key_id=current_app.config['S3_ACCESS_KEY'],
            aws_secret_access_key=current_app.config['S3_SECRET_KEY'],
            region_name=current_app.config['S3_REGION'],
            config=BotoConfig(signature_version='s3v4')
        )

        self._ensure_bucket_exists()

    def _ensure_bucket_exists(self):
        """Create bucket (public-read) if it doesn't exist."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
            logger.info(f"[STORAGE] Bucket '{self.bucket}' exists")
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code != '404':
                logger.error(f"[STORAGE] Failed to check bucket: {e}")
                raise

            self.client.create_bucket(Bucket=self.bucket)
            policy = {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"AWS": "*"},
                        "Action": "s3:GetObject",
                        "Resource": f"arn:aws:s3:::{self.bucket}/*"
                    }
                ]
            }
            self.client.put_bucket_policy(Bucket=self.bucket, Policy=json.dumps(policy))
            logger.info(f"[STORAGE] Bucket '{self.bucket}' created with public-read policy")

    def upload_file(self, file: FileStorage, object_name: str, content_type: Optional[str] = None) -> str:
        """
        Upload file to S3-compatible storage.

        Returns:
            The object key

        Raises:
            ValidationFailureError: If file validation fails
            InternalFailureError: If the upload fails
        """
        self._validate_file(file)

        if not content_type:
            content_type = file.content_type or mimetypes.guess_type(file.filename)[0] or 'application/octet-stream'

        try:
            file.seek(0)
            logger.info(f"[STORAGE] Uploading '{object_name}' to bucket '{self.bucket}'...")
            self.client.upload_fileobj(
                file.stream,
                self.bucket,
                object_name,
                ExtraArgs={'ContentType': content_type, 'ACL': 'public-read'}
            )
            logger.info(f"[STORAGE] File uploaded: {object_name}")
            return object_name
        except (ClientError, BotoCoreError) as e:
            logger.exception(f"[STORAGE] Upload failed: {e}")
            raise InternalFailureError('Error uploading image', detail=str(e))

    def delete_file(self, object_name: str) -> bool:
        """Delete an object; returns False instead of raising on failure."""
        try:
            logger.info(f"[STORAGE] Deleting '{object_name}' from bucket '{self.bucket}'...")
            self.client.delete_object(Bucket=self.bucket, Key=object_name)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.exception(f"[STORAGE] Delete failed: {e}")
            return False

    def _validate_file(self, file: FileStorage):
        """Check presence, size, extension and MIME type."""
        if not file or not file.filename:
            raise ValidationFailureError("No file was provided")

        max_size = current_app.config.get('MAX_UPLOAD_SIZE', 3 * 1024 * 1024)
        file.seek(0, 2)
        file_size = file.tell()
        file.seek(0)

        if file_size > max_size:
            max_mb = max_size / (1024 * 1024)
            raise ValidationFailureError(f"File is too large. Maximum {max_mb:.1f}MB")

        extension = os.path.splitext(file.filename)[1].lower().lstrip('.')
        allowed_extensions = current_app.config.get('ALLOWED_EXTENSIONS', set())
        allowed_types = current_app.config.get('ALLOWED_MIME_TYPES', set())
        if (allowed_extensions and extension not in allowed_extensions) or \
                (allowed_types and file.content_type not in allowed_types):
            raise ValidationFailureError("Only images are allowed (jpeg, jpg, png, webp, gif)")


# Singleton instance
_storage_service = None


def get_storage_service() -> StorageService:
    """Get or create StorageService singleton."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service


def build_discount_object_name(owner_id: int, filename: str) -> str:
    """discounts/owner_<id>/<timestamp>-<random>.<ext>"""
    extension = os.path.splitext(secure_filename(filename or ''))[1].lower()
    return f"{DISCOUNT_PREFIX}/owner_{owner_id}/discount-{int(time.time())}-{uuid.uuid4().hex[:9]}{extension}"


def save_discount_image(file: Optional[FileStorage], owner_id: int) -> Optional[str]:
    """Upload a discount image and return its object key (None when no file)."""
    if not file or not file.filename:
        return None

    if not current_app.config.get('STORAGE_ENABLED', True):
        logger.warning("[STORAGE] Storage disabled; ignoring uploaded discount image")
        return None

    storage = get_storage_service()
    return storage.upload_file(file, build_discount_object_name(owner_id, file.filename))


def delete_discount_image(object_name: Optional[str]) -> bool:
    """Best-effort removal of a discount image; never raises."""
    if not object_name:
        return False
    if not current_app.config.get('STORAGE_ENABLED', True):
        return False
    try:
        return get_storage_service().delete_file(object_name)
    except Exception as e:
        logger.warning(f"[STORAGE] Failed to delete image {object_name}: {e}")
        return False
