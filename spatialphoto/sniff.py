"""Content-based image format detection.

Classifies a byte buffer by its leading signature bytes, never by file name
or declared MIME type. HEIC/HEIF has no fixed leading signature, so it is
detected by letting Pillow (with the pillow_heif opener registered) probe
the container.
"""

import io
import logging
from enum import Enum

from PIL import Image

from .errors import UnknownFormatError

log = logging.getLogger(__name__)

SIGNATURE_PNG = bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])
SIGNATURE_JPEG = bytes([0xFF, 0xD8])
STR_GIF_PREFIX = "GIF"

# Pillow format names reported for the HEIC/HEIF family.

g_setStrFormatHeif: set[str] = {"HEIF", "HEIC"}


class ImageFormat(Enum):
    UNKNOWN = "unknown"
    PNG = "png"
    JPEG = "jpeg"
    GIF = "gif"
    HEIC = "heic"


g_mpFormatExtension: dict[ImageFormat, str] = {
    ImageFormat.GIF: "gif",
    ImageFormat.JPEG: "jpg",
    ImageFormat.PNG: "png",
    ImageFormat.HEIC: "heic",
}


def imageFormatFromBytes(data: bytes | bytearray | memoryview) -> ImageFormat:
    """Classify a byte buffer. Never raises; unrecognized input is UNKNOWN."""

    data = bytes(data)

    # Slicing never reads past the end, so short buffers just fail to match.

    if data[:8] == SIGNATURE_PNG:
        return ImageFormat.PNG

    if data[:2] == SIGNATURE_JPEG:
        return ImageFormat.JPEG

    if len(data) >= 6 and _strAsciiPrefix(data[:6]).startswith(STR_GIF_PREFIX):
        return ImageFormat.GIF

    if not data:
        return ImageFormat.UNKNOWN

    return ImageFormat.HEIC if _fIsHeif(data) else ImageFormat.UNKNOWN


def strExtensionForFormat(fmt: ImageFormat) -> str:
    """Return the file extension (without dot) used to materialize a format.

    Raises UnknownFormatError for ImageFormat.UNKNOWN; no extension is guessed.
    """

    strExt = g_mpFormatExtension.get(fmt)
    if strExt is None:
        raise UnknownFormatError(f"Unsupported image format: {fmt.value}")
    return strExt


def _strAsciiPrefix(data: bytes) -> str:
    try:
        return data.decode("ascii")
    except UnicodeDecodeError:
        return ""


def _fIsHeif(data: bytes) -> bool:
    """Probe the buffer with Pillow and report whether it is a HEIF container."""

    try:
        with Image.open(io.BytesIO(data)) as img:
            strFormat = img.format or ""
    except Exception as err:
        # Pillow raises a variety of errors for arbitrary bytes; all of them
        # mean "not an image we can identify".

        log.debug("Container probe rejected %d bytes: %s", len(data), err)
        return False

    log.debug("Container probe identified %s", strFormat)
    return strFormat.upper() in g_setStrFormatHeif
