"""Base64 image conventions shared with the vehicle and stored data.

Images are stored without a data URI prefix and get the prefix back only
when rendered or decoded.
"""

import base64
import binascii

DATA_URI_PREFIX = "data:image/jpeg;base64,"
JPEG_BASE64_HEADER = "/9j/"


def to_data_uri(image_data: str) -> str:
    if image_data.startswith("data:"):
        return image_data
    return DATA_URI_PREFIX + image_data


def from_data_uri(value: str) -> str:
    """Strip any `data:<mime>;base64,` prefix."""
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def encode_image_bytes(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def decode_image_data(value: str) -> bytes:
    try:
        return base64.b64decode(from_data_uri(value), validate=True)
    except binascii.Error as error:
        raise ValueError(f"invalid base64 image data: {error}") from error


def looks_like_jpeg(image_data: str) -> bool:
    return from_data_uri(image_data).startswith(JPEG_BASE64_HEADER)
