"""Separate left/right image pair handler.

Used when the two eyes come from independent picks (or files), as on the
generate screen and the CLI's --left/--right mode. The pair takes the left
image's orientation.
"""

from pathlib import Path

from PIL import Image

from ..exif import cameraGeometryFromPath, nOrientationFromImage
from ..orientation import displayFromCodec
from .base import StereoPair


def extractPairFromFiles(
    pathLeft: Path,
    pathRight: Path,
    pathMetadata: Path | None = None,
) -> StereoPair:
    """Build a StereoPair from two separate image files.

    pathMetadata: optional third image whose EXIF describes the camera.
    Defaults to the left image.
    """

    with Image.open(pathLeft) as img:
        orientation = displayFromCodec(nOrientationFromImage(img))
        imgLeft = img.copy()

    with Image.open(pathRight) as img:
        imgRight = img.copy()

    pathMetadataSource = pathMetadata or pathLeft
    geometry = cameraGeometryFromPath(pathMetadataSource)

    return StereoPair(
        imgLeft=imgLeft,
        imgRight=imgRight,
        orientation=orientation,
        degFovHorizontal=geometry.degFovHorizontal,
        pathSource=pathLeft,
        pathMetadataSource=pathMetadataSource,
    )
