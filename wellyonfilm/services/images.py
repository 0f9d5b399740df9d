from io import BytesIO

from PIL import Image, UnidentifiedImageError

from ..constants import SUBMISSION_LIMITS
from ..errors import InvalidFileError

# Pillow format names for the accepted upload content types
FORMATS_BY_CONTENT_TYPE = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/tiff": "TIFF",
}


def inspect_image(content: bytes, content_type: str) -> tuple[int, int]:
    """Check an uploaded photo against the submission limits and return its (width, height)."""
    if content_type not in SUBMISSION_LIMITS["accepted_formats"]:
        raise InvalidFileError("Photos must be JPEG, PNG or TIFF")

    max_bytes = SUBMISSION_LIMITS["max_file_size_mb"] * 1024 * 1024
    if not content:
        raise InvalidFileError("The uploaded file is empty")
    if len(content) > max_bytes:
        raise InvalidFileError(f"Photos must be {SUBMISSION_LIMITS['max_file_size_mb']}MB or smaller")

    try:
        with Image.open(BytesIO(content)) as image:
            image_format = image.format
            width, height = image.size
    except Image.DecompressionBombError:
        raise InvalidFileError(
            f"Photos must be at most {SUBMISSION_LIMITS['max_image_dimension']}px on the longest edge"
        )
    except (UnidentifiedImageError, OSError):
        raise InvalidFileError("The uploaded file is not a readable image")

    if image_format != FORMATS_BY_CONTENT_TYPE[content_type]:
        raise InvalidFileError("The file contents do not match its declared type")

    longest_edge = max(width, height)
    if longest_edge < SUBMISSION_LIMITS["min_image_dimension"]:
        raise InvalidFileError(
            f"Photos must be at least {SUBMISSION_LIMITS['min_image_dimension']}px on the longest edge"
        )
    if longest_edge > SUBMISSION_LIMITS["max_image_dimension"]:
        raise InvalidFileError(
            f"Photos must be at most {SUBMISSION_LIMITS['max_image_dimension']}px on the longest edge"
        )
    return width, height
