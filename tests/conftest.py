"""Shared image builders for spatialphoto tests."""

import io
from pathlib import Path

import pytest
from PIL import Image

import spatialphoto  # noqa: F401  registers the HEIF opener

from spatialphoto.conversion import ConversionParameters
from spatialphoto.errors import EncodingFailedError, PersistenceFailedError

COLOR_LEFT = (200, 30, 30)
COLOR_RIGHT = (30, 30, 200)


def imgSideBySide(nWidth: int = 8, nHeight: int = 4) -> Image.Image:
    """Left half COLOR_LEFT, right half (including any odd column) COLOR_RIGHT."""

    img = Image.new("RGB", (nWidth, nHeight), COLOR_RIGHT)
    img.paste(COLOR_LEFT, (0, 0, nWidth // 2, nHeight))
    return img


def bytesFromImage(img: Image.Image, strFormat: str, **kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=strFormat, **kwargs)
    return buf.getvalue()


def bytesJpegWithOrientation(nOrientation: int, nWidth: int = 16, nHeight: int = 8) -> bytes:
    exif = Image.Exif()
    exif[0x0112] = nOrientation
    return bytesFromImage(imgSideBySide(nWidth, nHeight), "JPEG", exif=exif.tobytes())


def bytesMpo() -> bytes:
    imgLeft = Image.new("RGB", (6, 4), COLOR_LEFT)
    imgRight = Image.new("RGB", (6, 4), COLOR_RIGHT)
    return bytesFromImage(imgLeft, "MPO", save_all=True, append_images=[imgRight])


class FakeEncoder:
    """Encoder that writes a placeholder file and records its calls."""

    def __init__(self) -> None:
        self.lCall: list[tuple[Path, Path, ConversionParameters, Path]] = []

    def encode(self, pathLeft, pathRight, params, pathOutput) -> None:
        self.lCall.append((pathLeft, pathRight, params, pathOutput))
        pathOutput.write_bytes(b"spatial")


class FailingEncoder:
    def __init__(self, strMessage: str = "encoder exploded") -> None:
        self.strMessage = strMessage

    def encode(self, pathLeft, pathRight, params, pathOutput) -> None:
        raise EncodingFailedError(self.strMessage)


class FakeLibrary:
    def __init__(self) -> None:
        self.lPathSaved: list[Path] = []

    async def save(self, pathFile: Path) -> None:
        self.lPathSaved.append(pathFile)


class FailingLibrary:
    async def save(self, pathFile: Path) -> None:
        raise PersistenceFailedError("access denied")


@pytest.fixture
def dataSideBySidePng() -> bytes:
    return bytesFromImage(imgSideBySide(), "PNG")


@pytest.fixture
def params() -> ConversionParameters:
    return ConversionParameters(mmBaseline=10, degFovHorizontal=42, disparityAdjustment=0)


@pytest.fixture(autouse=True)
def tempdirIsolated(tmp_path, monkeypatch):
    """Keep materialized temp files inside the test's tmp_path."""

    import tempfile

    dirTemp = tmp_path / "tmp"
    dirTemp.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(dirTemp))
    return dirTemp
