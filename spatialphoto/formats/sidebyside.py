"""Side-by-side stereo splitting.

A side-by-side image holds the left eye in its left half and the right eye
in its right half. The split is at floor(width / 2); for odd widths the
right half gets the extra column.
"""

import logging

import numpy as np
from PIL import Image

from ..errors import CropFailedError
from .base import StereoFormat, StereoPair

log = logging.getLogger(__name__)

# A half whose mean intensity is below this is probably empty padding,
# which means the input wasn't a side-by-side stereo image.

G_HALF_MEAN_THRESHOLD = 2.0


def splitSideBySide(img: Image.Image) -> StereoPair:
    """Split img at the vertical midline into a StereoPair.

    Raises CropFailedError when the image is narrower than two pixels or
    has no rows.
    """

    nWidth, nHeight = img.size
    nHalf = nWidth // 2

    if nHalf < 1 or nHeight < 1:
        raise CropFailedError(f"Cannot split a {nWidth}x{nHeight} image into two halves")

    try:
        imgLeft = img.crop((0, 0, nHalf, nHeight))
        imgRight = img.crop((nHalf, 0, nWidth, nHeight))
        imgLeft.load()
        imgRight.load()
    except (OSError, ValueError) as err:
        raise CropFailedError(f"Cropping failed: {err}") from err

    _warnIfHalfBlank(imgLeft, "left")
    _warnIfHalfBlank(imgRight, "right")

    return StereoPair(imgLeft=imgLeft, imgRight=imgRight)


class FormatSideBySide(StereoFormat):
    """Handler for single-frame side-by-side images."""

    @staticmethod
    def strName() -> str:
        return "side-by-side"

    @staticmethod
    def fCanHandle(img: Image.Image) -> bool:
        # Any single image can be split; narrow ones fail in extractPair.

        return True

    @staticmethod
    def extractPair(img: Image.Image) -> StereoPair:
        if img.height and img.width / img.height < 1.5:
            log.debug(
                "%dx%d is narrower than a typical side-by-side pair", img.width, img.height
            )
        return splitSideBySide(img)


def _warnIfHalfBlank(img: Image.Image, strSide: str) -> None:
    aryPixel = np.asarray(img.convert("L"), dtype=np.float32)
    gMean = float(aryPixel.mean())
    if gMean < G_HALF_MEAN_THRESHOLD:
        log.warning(
            "The %s half is nearly black (mean %.2f); the image may not be side-by-side stereo.",
            strSide,
            gMean,
        )
