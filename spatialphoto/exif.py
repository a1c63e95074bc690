"""EXIF reading for spatial photo geometry and orientation.

Derives the horizontal field of view from focal-length tags so that a
conversion can default to the capturing camera's FOV, and reads the
Orientation tag for the display layer.
"""

import math
from dataclasses import dataclass
from pathlib import Path

from PIL import Image
from PIL.ExifTags import IFD

TAG_ORIENTATION = 0x0112
TAG_MAKE = 0x010F
TAG_MODEL = 0x0110
TAG_FOCAL_LENGTH = 0x920A
TAG_FOCAL_LENGTH_35MM = 0xA405
TAG_FOCAL_PLANE_X_RES = 0xA20E
TAG_FOCAL_PLANE_RES_UNIT = 0xA210
TAG_PIXEL_WIDTH = 0xA002

# FocalPlaneResolutionUnit: 2 = inch, 3 = centimeter.

g_mpUnitMm: dict[int, float] = {2: 25.4, 3: 10.0}

MM_FRAME_WIDTH_35MM = 36.0

# Sensor widths for cameras that omit FocalPlane tags, keyed by
# (make substring, model substring). First match wins.

g_lSensorEntry: list[tuple[str, str, float]] = [
    ("fujifilm", "finepix real 3d", 6.16),
    ("apple", "iphone", 5.76),
    ("sony", "dsc-rx100", 13.2),
    ("canon", "5d", 36.0),
    ("canon", "eos r", 36.0),
    ("nikon", "z 6", 35.9),
]


@dataclass
class CameraGeometry:
    """Camera metadata relevant to spatial photo creation."""

    strMake: str | None = None
    strModel: str | None = None
    mmFocalLength: float | None = None
    nFocalLength35mm: int | None = None
    mmSensorWidth: float | None = None
    degFovHorizontal: float | None = None
    nOrientation: int | None = None


def mpTagFromImage(img: Image.Image) -> dict[int, object]:
    """Merge base IFD and Exif IFD tags into one dict."""

    exif = img.getexif()
    mpTag: dict[int, object] = dict(exif)
    if exif:
        mpTag.update(exif.get_ifd(IFD.Exif))
    return mpTag


def nOrientationFromImage(img: Image.Image) -> int | None:
    """Return the raw Orientation tag, or None if absent."""

    val = img.getexif().get(TAG_ORIENTATION)
    if val is None:
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def cameraGeometryFromImage(img: Image.Image) -> CameraGeometry:
    mpTag = mpTagFromImage(img)
    if not mpTag:
        return CameraGeometry()

    strMake = _strFromTag(mpTag, TAG_MAKE)
    strModel = _strFromTag(mpTag, TAG_MODEL)
    mmFocal = _gFromTag(mpTag, TAG_FOCAL_LENGTH)
    nFocal35mm = _nFromTag(mpTag, TAG_FOCAL_LENGTH_35MM)
    nPixelWidth = _nFromTag(mpTag, TAG_PIXEL_WIDTH) or img.width

    mmSensorWidth = _mmSensorWidthFromFocalPlane(mpTag, nPixelWidth)
    if mmSensorWidth is None and strMake and strModel:
        mmSensorWidth = _mmSensorWidthFromModel(strMake, strModel)

    return CameraGeometry(
        strMake=strMake,
        strModel=strModel,
        mmFocalLength=mmFocal,
        nFocalLength35mm=nFocal35mm,
        mmSensorWidth=mmSensorWidth,
        degFovHorizontal=degFovFromFocal(nFocal35mm, mmFocal, mmSensorWidth),
        nOrientation=_nFromTag(mpTag, TAG_ORIENTATION),
    )


def cameraGeometryFromPath(path: Path) -> CameraGeometry:
    with Image.open(path) as img:
        return cameraGeometryFromImage(img)


def degFovFromFocal(
    nFocalLength35mm: int | None,
    mmFocalLength: float | None,
    mmSensorWidth: float | None,
) -> float | None:
    """Horizontal FOV in degrees.

    Prefers the 35mm-equivalent focal length; falls back to the real focal
    length over the sensor width. Returns None when neither is usable.
    """

    if nFocalLength35mm and nFocalLength35mm > 0:
        return 2.0 * math.degrees(math.atan(MM_FRAME_WIDTH_35MM / (2.0 * nFocalLength35mm)))

    if mmFocalLength and mmSensorWidth:
        return 2.0 * math.degrees(math.atan(mmSensorWidth / (2.0 * mmFocalLength)))

    return None


def _mmSensorWidthFromFocalPlane(mpTag: dict[int, object], nPixelWidth: int) -> float | None:
    # FocalPlaneXResolution is pixels per unit.

    gPixelPerUnit = _gFromTag(mpTag, TAG_FOCAL_PLANE_X_RES)
    mmPerUnit = g_mpUnitMm.get(_nFromTag(mpTag, TAG_FOCAL_PLANE_RES_UNIT) or 0)
    if not gPixelPerUnit or mmPerUnit is None or nPixelWidth <= 0:
        return None
    return nPixelWidth / gPixelPerUnit * mmPerUnit


def _mmSensorWidthFromModel(strMake: str, strModel: str) -> float | None:
    strMake = strMake.lower()
    strModel = strModel.lower()
    for strEntryMake, strEntryModel, mmWidth in g_lSensorEntry:
        if strEntryMake in strMake and strEntryModel in strModel:
            return mmWidth
    return None


def _strFromTag(mpTag: dict[int, object], nTag: int) -> str | None:
    val = mpTag.get(nTag)
    if val is None:
        return None
    if isinstance(val, bytes):
        val = val.decode("utf-8", errors="replace")
    return str(val).strip("\x00 ") or None


def _nFromTag(mpTag: dict[int, object], nTag: int) -> int | None:
    try:
        return int(mpTag[nTag])  # type: ignore[call-overload]
    except (KeyError, TypeError, ValueError):
        return None


def _gFromTag(mpTag: dict[int, object], nTag: int) -> float | None:
    """Float from a rational or numeric tag; non-positive values are None."""

    try:
        g = float(mpTag[nTag])  # type: ignore[arg-type]
    except (KeyError, TypeError, ValueError, ZeroDivisionError):
        return None
    return g if g > 0 else None
