"""Orientation mapping between container metadata and the display layer.

The codec side uses the EXIF Orientation tag values (1..8). The display side
has the same eight states but no "unknown" state: missing metadata means UP.
"""

import io
import logging
from enum import Enum, IntEnum

from PIL import Image

from .errors import InvalidOrientationError
from .exif import nOrientationFromImage

log = logging.getLogger(__name__)


class CodecOrientation(IntEnum):
    """EXIF Orientation tag values."""

    UP = 1
    UP_MIRRORED = 2
    DOWN = 3
    DOWN_MIRRORED = 4
    LEFT_MIRRORED = 5
    RIGHT = 6
    RIGHT_MIRRORED = 7
    LEFT = 8


class DisplayOrientation(Enum):
    UP = "up"
    UP_MIRRORED = "upMirrored"
    DOWN = "down"
    DOWN_MIRRORED = "downMirrored"
    LEFT = "left"
    LEFT_MIRRORED = "leftMirrored"
    RIGHT = "right"
    RIGHT_MIRRORED = "rightMirrored"

    @property
    def transpose(self) -> Image.Transpose | None:
        """Pillow transpose that renders an image stored this way upright."""

        return g_mpDisplayTranspose[self]


g_mpCodecDisplay: dict[CodecOrientation, DisplayOrientation] = {
    CodecOrientation.UP: DisplayOrientation.UP,
    CodecOrientation.UP_MIRRORED: DisplayOrientation.UP_MIRRORED,
    CodecOrientation.DOWN: DisplayOrientation.DOWN,
    CodecOrientation.DOWN_MIRRORED: DisplayOrientation.DOWN_MIRRORED,
    CodecOrientation.LEFT: DisplayOrientation.LEFT,
    CodecOrientation.LEFT_MIRRORED: DisplayOrientation.LEFT_MIRRORED,
    CodecOrientation.RIGHT: DisplayOrientation.RIGHT,
    CodecOrientation.RIGHT_MIRRORED: DisplayOrientation.RIGHT_MIRRORED,
}

g_mpDisplayCodec: dict[DisplayOrientation, CodecOrientation] = {
    display: codec for codec, display in g_mpCodecDisplay.items()
}

# Same table as PIL.ImageOps.exif_transpose, keyed by display state.

g_mpDisplayTranspose: dict[DisplayOrientation, Image.Transpose | None] = {
    DisplayOrientation.UP: None,
    DisplayOrientation.UP_MIRRORED: Image.Transpose.FLIP_LEFT_RIGHT,
    DisplayOrientation.DOWN: Image.Transpose.ROTATE_180,
    DisplayOrientation.DOWN_MIRRORED: Image.Transpose.FLIP_TOP_BOTTOM,
    DisplayOrientation.LEFT_MIRRORED: Image.Transpose.TRANSPOSE,
    DisplayOrientation.RIGHT: Image.Transpose.ROTATE_270,
    DisplayOrientation.RIGHT_MIRRORED: Image.Transpose.TRANSVERSE,
    DisplayOrientation.LEFT: Image.Transpose.ROTATE_90,
}


def codecOrientation(value: object) -> CodecOrientation:
    """Coerce a raw tag value to CodecOrientation.

    Raises InvalidOrientationError for anything outside the eight values.
    """

    if isinstance(value, CodecOrientation):
        return value

    # bool is an int subclass, but True is not an orientation.

    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return CodecOrientation(value)
        except ValueError:
            pass

    raise InvalidOrientationError(f"Invalid orientation value: {value!r}")


def displayFromCodec(codec: CodecOrientation | int | None) -> DisplayOrientation:
    """Map a codec orientation (or None, for missing metadata) to display."""

    if codec is None:
        return DisplayOrientation.UP

    return g_mpCodecDisplay[codecOrientation(codec)]


def codecFromDisplay(display: DisplayOrientation) -> CodecOrientation:
    """Inverse of displayFromCodec over the eight defined values."""

    if not isinstance(display, DisplayOrientation):
        raise InvalidOrientationError(f"Invalid display orientation: {display!r}")

    return g_mpDisplayCodec[display]


def codecOrientationFromBytes(data: bytes) -> CodecOrientation | None:
    """Read the orientation from an image buffer's metadata.

    Returns None when the buffer has no orientation tag or can't be opened.
    An out-of-range tag raises InvalidOrientationError.
    """

    try:
        with Image.open(io.BytesIO(bytes(data))) as img:
            nOrientation = nOrientationFromImage(img)
    except OSError as err:
        log.debug("No orientation metadata: %s", err)
        return None

    if nOrientation is None:
        return None

    return codecOrientation(nOrientation)


def imgOriented(img: Image.Image, display: DisplayOrientation) -> Image.Image:
    """Return img transposed so that it renders upright."""

    transpose = display.transpose
    if transpose is None:
        return img
    return img.transpose(transpose)
