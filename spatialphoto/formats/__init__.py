"""Stereo source registry.

Turns a byte buffer or file into a StereoPair. The container is identified
by content, not by extension: multi-frame containers give their first two
frames, anything else is split side-by-side. To add a source layout, create
a module in this package with a StereoFormat subclass and list it below.
"""

import io
import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..errors import UnknownFormatError
from ..exif import cameraGeometryFromImage
from ..orientation import displayFromCodec
from ..sniff import imageFormatFromBytes
from .base import StereoFormat, StereoPair
from .multiframe import FormatMultiFrame
from .pair import extractPairFromFiles
from .sidebyside import FormatSideBySide, splitSideBySide

log = logging.getLogger(__name__)

# All known handlers, checked in order.

g_lClsFormat: list[type[StereoFormat]] = [
    FormatMultiFrame,
    FormatSideBySide,
]


def formatForImage(img: Image.Image) -> StereoFormat:
    """Return the first handler that accepts img."""

    for clsFormat in g_lClsFormat:
        if clsFormat.fCanHandle(img):
            return clsFormat()

    raise UnknownFormatError("No stereo handler accepts this image")


def pairFromBytes(data: bytes) -> StereoPair:
    """Extract a stereo pair from an encoded image buffer.

    Raises UnknownFormatError if Pillow can't decode the buffer (including
    a truncated frame) and
    CropFailedError if a single-frame image is too small to split.
    """

    data = bytes(data)
    fmt = imageFormatFromBytes(data)

    try:
        img = Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, OSError) as err:
        raise UnknownFormatError(f"Cannot decode image ({fmt.value}): {err}") from err

    with img:
        handler = formatForImage(img)
        log.debug("Extracting %s pair from %s data", handler.strName(), fmt.value)

        # A truncated or corrupt frame only fails once its pixels are read.

        try:
            geometry = cameraGeometryFromImage(img)
            pair = handler.extractPair(img)
        except (OSError, EOFError, ValueError) as err:
            raise UnknownFormatError(f"Cannot decode image ({fmt.value}): {err}") from err

    pair.orientation = displayFromCodec(geometry.nOrientation)
    pair.degFovHorizontal = geometry.degFovHorizontal
    return pair


def pairFromPath(path: Path) -> StereoPair:
    """Extract a stereo pair from a stereo file (MPO, JPS, spatial HEIC, ...)."""

    pair = pairFromBytes(path.read_bytes())
    pair.pathSource = path
    pair.pathMetadataSource = path
    return pair


__all__ = [
    "StereoFormat",
    "StereoPair",
    "FormatMultiFrame",
    "FormatSideBySide",
    "extractPairFromFiles",
    "formatForImage",
    "pairFromBytes",
    "pairFromPath",
    "splitSideBySide",
]
