import logging
import uuid
from dataclasses import dataclass
from io import BytesIO
from typing import Optional
from urllib.parse import urlparse

import boto3
from PIL import Image

from ..config import AWS_ACCESS_KEY, AWS_SECRET_KEY, S3_REGION, S3_BUCKET_NAME, S3_URL
from ..constants import THUMBNAIL_MAX_DIMENSION

logger = logging.getLogger(__name__)

EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/tiff": "tif"}


@dataclass
class StoredPhoto:
    photo_url: str
    thumbnail_url: str


def get_s3_url(key: str) -> str:
    return f"{S3_URL}/{key}"


def extract_key_from_url(url: str) -> str:
    parsed_url = urlparse(url)
    return parsed_url.path.lstrip("/")


def make_thumbnail(file_content: bytes, max_dimension: int = THUMBNAIL_MAX_DIMENSION, quality: int = 80) -> bytes:
    image = Image.open(BytesIO(file_content))

    # JPEG has no alpha channel and no 16-bit modes
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    output = BytesIO()
    image.save(output, format="JPEG", quality=quality)
    return output.getvalue()


class PhotoStorage:
    """Keeps submission originals and their thumbnails in the S3 bucket."""

    def __init__(self, bucket: Optional[str] = S3_BUCKET_NAME):
        self.bucket = bucket
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                aws_access_key_id=AWS_ACCESS_KEY,
                aws_secret_access_key=AWS_SECRET_KEY,
                region_name=S3_REGION,
            )
        return self._client

    def _upload(self, content: bytes, key: str, content_type: str) -> str:
        self.client.upload_fileobj(
            BytesIO(content),
            self.bucket,
            key,
            ExtraArgs={"ContentType": content_type},
        )
        return get_s3_url(key)

    def store_submission(self, file_content: bytes, content_type: str, month_year: str, user_id: int) -> StoredPhoto:
        identifier = f"{user_id}-{uuid.uuid4()}"
        folder = f"submissions/{month_year}"
        extension = EXTENSIONS.get(content_type, "bin")

        photo_url = self._upload(file_content, f"{folder}/{identifier}.{extension}", content_type)
        thumbnail_url = self._upload(
            make_thumbnail(file_content), f"{folder}/thumbnails/{identifier}.jpg", "image/jpeg"
        )
        return StoredPhoto(photo_url=photo_url, thumbnail_url=thumbnail_url)

    def delete_file(self, key: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            return True
        except Exception as e:
            logger.warning("Failed to delete file %s: %s", key, e)
            return False

    def delete_photo(self, photo: StoredPhoto) -> None:
        for url in (photo.photo_url, photo.thumbnail_url):
            self.delete_file(extract_key_from_url(url))


photo_storage = PhotoStorage()


def get_storage() -> PhotoStorage:
    return photo_storage
