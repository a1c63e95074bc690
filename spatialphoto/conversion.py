"""Conversion of a left/right pair into a spatial photo.

The container itself is built by the external pair2spatial encoder. This
module resolves the two image sources to files, runs the encoder off the
event loop, then hands the result to a media library. One attempt is made
per request; the caller decides whether to retry.
"""

import asyncio
import io
import logging
import math
import os
import shutil
import subprocess
import tempfile
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol, Union

from PIL import Image, UnidentifiedImageError

from .errors import EncodingFailedError, PersistenceFailedError
from .formats.base import StereoPair
from .sniff import ImageFormat, imageFormatFromBytes, strExtensionForFormat

log = logging.getLogger(__name__)

# Default camera parameters for when metadata is unavailable.

DEG_FOV_DEFAULT = 55.0
MM_BASELINE_DEFAULT = 65.0

STR_ENV_ENCODER = "SPATIALPHOTO_ENCODER"

ImageSource = Union[bytes, bytearray, Path, Image.Image]


@dataclass(frozen=True)
class ConversionParameters:
    """Camera geometry handed to the encoder.

    Values are validated, never clamped: out-of-range input raises ValueError.
    """

    mmBaseline: float
    degFovHorizontal: float
    disparityAdjustment: float = 0.0

    def __post_init__(self) -> None:
        if not math.isfinite(self.mmBaseline) or self.mmBaseline <= 0:
            raise ValueError(f"Baseline must be positive, got {self.mmBaseline}")
        if not 0 < self.degFovHorizontal < 180:
            raise ValueError(
                f"Horizontal FOV must be between 0 and 180 degrees, got {self.degFovHorizontal}"
            )
        if not math.isfinite(self.disparityAdjustment):
            raise ValueError(f"Disparity adjustment must be finite, got {self.disparityAdjustment}")


def paramsForPair(
    pair: StereoPair,
    degFovHorizontal: float | None = None,
    mmBaseline: float | None = None,
    disparityAdjustment: float = 0.0,
) -> ConversionParameters:
    """Resolve parameters: explicit values, then pair metadata, then defaults.

    Explicit values are passed through unchanged, so an invalid one raises
    ValueError instead of being replaced.
    """

    if mmBaseline is None:
        mmBaseline = pair.mmBaseline or MM_BASELINE_DEFAULT
    if degFovHorizontal is None:
        degFovHorizontal = pair.degFovHorizontal or DEG_FOV_DEFAULT

    return ConversionParameters(
        mmBaseline=mmBaseline,
        degFovHorizontal=degFovHorizontal,
        disparityAdjustment=disparityAdjustment,
    )


class ErrorKind(Enum):
    ENCODING_FAILED = "encodingFailed"
    PERSISTENCE_FAILED = "persistenceFailed"


@dataclass(frozen=True)
class ConversionOutcome:
    """Terminal result of a conversion: succeeded(path) or failed(kind)."""

    pathOutput: Path | None = None
    errorKind: ErrorKind | None = None
    strMessage: str = ""

    @property
    def fSucceeded(self) -> bool:
        return self.errorKind is None

    @classmethod
    def succeeded(cls, pathOutput: Path) -> "ConversionOutcome":
        return cls(pathOutput=pathOutput)

    @classmethod
    def failed(
        cls, errorKind: ErrorKind, strMessage: str, pathOutput: Path | None = None
    ) -> "ConversionOutcome":
        return cls(pathOutput=pathOutput, errorKind=errorKind, strMessage=strMessage)


class SpatialEncoder(Protocol):
    def encode(
        self,
        pathLeft: Path,
        pathRight: Path,
        params: ConversionParameters,
        pathOutput: Path,
    ) -> None:
        """Write a spatial photo to pathOutput or raise EncodingFailedError."""
        ...


class MediaLibrary(Protocol):
    async def save(self, pathFile: Path) -> None:
        """Persist a finished file or raise PersistenceFailedError."""
        ...


def pathPair2Spatial() -> Path:
    """Locate the pair2spatial binary.

    Searches in order:
      1. $SPATIALPHOTO_ENCODER
      2. build/pair2spatial  (local build)
      3. On PATH via shutil.which
    """

    strEnv = os.environ.get(STR_ENV_ENCODER)
    if strEnv:
        pathEnv = Path(strEnv)
        if pathEnv.is_file():
            return pathEnv
        log.warning("%s points at a missing file: %s", STR_ENV_ENCODER, strEnv)

    pathLocal = Path(__file__).parent.parent / "build" / "pair2spatial"
    if pathLocal.is_file():
        return pathLocal

    pathWhich = shutil.which("pair2spatial")
    if pathWhich is not None:
        return Path(pathWhich)

    raise FileNotFoundError(
        f"pair2spatial binary not found. Build it into build/ or set {STR_ENV_ENCODER}."
    )


class Pair2SpatialEncoder:
    """Runs the pair2spatial command-line encoder."""

    def __init__(self, pathBinary: Path | None = None, pathMetadata: Path | None = None) -> None:
        self.pathBinary = pathBinary
        self.pathMetadata = pathMetadata

    def lStrCommand(
        self,
        pathLeft: Path,
        pathRight: Path,
        params: ConversionParameters,
        pathOutput: Path,
    ) -> list[str]:
        pathBinary = self.pathBinary or pathPair2Spatial()

        lStrCmd = [
            str(pathBinary),
            str(pathLeft),
            str(pathRight),
            str(pathOutput),
            "--fov",
            str(params.degFovHorizontal),
            "--baseline",
            str(params.mmBaseline),
            "--disparity-adjustment",
            str(params.disparityAdjustment),
        ]

        # Pass the metadata source image so its EXIF is copied into the output.

        if self.pathMetadata and self.pathMetadata.is_file():
            lStrCmd.extend(["--metadata", str(self.pathMetadata)])

        return lStrCmd

    def encode(
        self,
        pathLeft: Path,
        pathRight: Path,
        params: ConversionParameters,
        pathOutput: Path,
    ) -> None:
        try:
            lStrCmd = self.lStrCommand(pathLeft, pathRight, params, pathOutput)
        except FileNotFoundError as err:
            raise EncodingFailedError(str(err)) from err

        log.debug("Running %s", " ".join(lStrCmd))

        try:
            result = subprocess.run(
                lStrCmd, capture_output=True, text=True, encoding="utf-8", errors="replace"
            )
        except OSError as err:
            raise EncodingFailedError(f"pair2spatial could not be started: {err}") from err

        if result.returncode != 0:
            raise EncodingFailedError(
                f"pair2spatial failed (exit {result.returncode}):\n{result.stderr}"
            )

        if result.stderr:
            # pair2spatial writes status to stderr.

            log.info("%s", result.stderr.rstrip())


class DirectoryMediaLibrary:
    """Media library backed by a directory; saving copies the file in."""

    def __init__(self, pathDir: Path) -> None:
        self.pathDir = pathDir

    async def save(self, pathFile: Path) -> None:
        await asyncio.to_thread(self._copy, pathFile)

    def _copy(self, pathFile: Path) -> None:
        try:
            self.pathDir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(pathFile, self.pathDir / pathFile.name)
        except OSError as err:
            raise PersistenceFailedError(f"Could not save {pathFile.name}: {err}") from err

        log.debug("Saved %s to %s", pathFile.name, self.pathDir)


def pathMaterialize(
    data: bytes,
    dirTemp: Path | None = None,
    fmt: ImageFormat | None = None,
) -> Path:
    """Write an image buffer to a uniquely named temporary file.

    The extension comes from the sniffed format; an unrecognized buffer
    raises UnknownFormatError before anything is written. Files are not
    deleted afterwards.
    """

    strExt = strExtensionForFormat(fmt or imageFormatFromBytes(data))
    dirTemp = dirTemp or Path(tempfile.gettempdir())
    path = dirTemp / f"{uuid.uuid4().hex}.{strExt}"
    path.write_bytes(bytes(data))
    return path


def pathForSource(src: ImageSource, dirTemp: Path | None = None) -> Path:
    """Resolve an image source to a decodable file on disk.

    Raises ValueError (UnknownFormatError for unrecognized bytes) when the
    source isn't decodable image data.
    """

    if isinstance(src, Image.Image):
        dirTemp = dirTemp or Path(tempfile.gettempdir())
        path = dirTemp / f"{uuid.uuid4().hex}.jpg"
        src.convert("RGB").save(path, format="JPEG", quality=95)
        return path

    if isinstance(src, (bytes, bytearray)):
        data = bytes(src)
        fmt = imageFormatFromBytes(data)
        strExtensionForFormat(fmt)
        _verifyDecodable(io.BytesIO(data), "image data")
        return pathMaterialize(data, dirTemp, fmt)

    path = Path(src)
    _verifyDecodable(path, str(path))
    return path


def _verifyDecodable(fp: io.BytesIO | Path, strLabel: str) -> None:
    try:
        with Image.open(fp) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as err:
        raise ValueError(f"Not decodable image data: {strLabel}") from err


async def convert(
    srcLeft: ImageSource,
    srcRight: ImageSource,
    params: ConversionParameters,
    pathDestination: Path,
    encoder: SpatialEncoder,
    library: MediaLibrary | None,
    dirTemp: Path | None = None,
) -> ConversionOutcome:
    """Encode a spatial photo and save it to the media library.

    Precondition violations (undecodable sources, unknown formats) raise.
    Any exception from the encoder or the library is returned as a failed
    outcome; the library is never called when encoding fails. With library=None the
    save step is skipped.
    """

    pathLeft, pathRight = await asyncio.to_thread(
        lambda: (pathForSource(srcLeft, dirTemp), pathForSource(srcRight, dirTemp))
    )

    # Any encoder or library exception is a failed outcome, not a raise.

    try:
        await asyncio.to_thread(encoder.encode, pathLeft, pathRight, params, pathDestination)
    except Exception as err:
        log.warning("Encoding failed: %s", err)
        return ConversionOutcome.failed(ErrorKind.ENCODING_FAILED, _strFailure(err))

    log.debug("Encoded %s", pathDestination)

    if library is None:
        return ConversionOutcome.succeeded(pathDestination)

    try:
        await library.save(pathDestination)
    except Exception as err:
        log.warning("Saving failed: %s", err)
        return ConversionOutcome.failed(
            ErrorKind.PERSISTENCE_FAILED, _strFailure(err), pathOutput=pathDestination
        )

    return ConversionOutcome.succeeded(pathDestination)


def _strFailure(err: Exception) -> str:
    return str(err) or err.__class__.__name__


class CompletionHandle:
    """Handle on a started conversion.

    detach() drops the completion callbacks, for owners that go away while
    the conversion is still running; the task itself runs to completion.
    """

    def __init__(self, task: asyncio.Task) -> None:
        self.task = task
        self.fDetached = False

    def detach(self) -> None:
        self.fDetached = True

    async def wait(self) -> ConversionOutcome:
        return await self.task


@dataclass
class ConversionRequest:
    """Everything needed to produce one spatial photo."""

    srcLeft: ImageSource
    srcRight: ImageSource
    params: ConversionParameters
    pathDestination: Path

    async def run(
        self,
        encoder: SpatialEncoder,
        library: MediaLibrary | None,
        dirTemp: Path | None = None,
    ) -> ConversionOutcome:
        return await convert(
            self.srcLeft,
            self.srcRight,
            self.params,
            self.pathDestination,
            encoder,
            library,
            dirTemp,
        )

    def start(
        self,
        encoder: SpatialEncoder,
        library: MediaLibrary | None,
        fnOnComplete: Callable[[ConversionOutcome], None],
        fnOnError: Callable[[BaseException], None] | None = None,
    ) -> CompletionHandle:
        """Schedule the conversion on the running loop.

        fnOnComplete receives the outcome; fnOnError receives any exception
        raised for a violated precondition. Neither is called once the
        returned handle is detached.
        """

        task = asyncio.get_running_loop().create_task(self.run(encoder, library))
        handle = CompletionHandle(task)

        def onDone(task: asyncio.Task) -> None:
            if task.cancelled():
                return
            err = task.exception()
            if handle.fDetached:
                log.debug("Dropping result of a detached conversion")
                return
            if err is not None:
                if fnOnError is None:
                    log.error("Conversion failed: %s", err)
                else:
                    fnOnError(err)
                return
            fnOnComplete(task.result())

        task.add_done_callback(onDone)
        return handle
