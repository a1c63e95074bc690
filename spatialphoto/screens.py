"""Per-screen state for the inspect ("split") and author ("generate") screens.

Screens hold only what they show: the selected sources, the current
geometry and the comparison mode. Decoding, orientation and splitting are
delegated to the shared core. Every failure ends up in one report sink,
fnReport, which the UI shows as an alert.

Loads can finish after the user has picked something else or closed the
screen; each load is tagged with a generation number and stale or
post-close results are dropped.
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from PIL import Image, UnidentifiedImageError

from .conversion import (
    CompletionHandle,
    ConversionOutcome,
    ConversionParameters,
    ConversionRequest,
    ErrorKind,
    MediaLibrary,
    SpatialEncoder,
    pathMaterialize,
)
from .errors import (
    CropFailedError,
    EncodingFailedError,
    PersistenceFailedError,
    SpatialPhotoError,
    UnknownFormatError,
    strUserMessage,
)
from .formats import StereoPair, pairFromBytes
from .orientation import DisplayOrientation, codecOrientationFromBytes, displayFromCodec
from .tilt import AttitudeChannel, DeviceOrientation, gSlideOffset

log = logging.getLogger(__name__)


class ComparisonMode(Enum):
    """How the renderer lays out the two eyes."""

    SIDE_BY_SIDE = "sideBySide"
    VERTICAL_SIDE_BY_SIDE = "verticalSideBySide"
    OVERLAY = "overlay"
    SLIDE = "slide"


class OverlayMode(Enum):
    """Source of the slide offset: device motion or the manual slider."""

    MOTION = "motionManager"
    MANUAL = "manual"


class Side(Enum):
    LEFT = "left"
    RIGHT = "right"


class SplitScreen:
    """State for inspecting one spatial (or side-by-side) photo."""

    def __init__(
        self,
        fnReport: Callable[[str], None],
        channel: AttitudeChannel | None = None,
    ) -> None:
        self.fnReport = fnReport
        self.channel = channel or AttitudeChannel()
        self.deviceOrientation = DeviceOrientation.PORTRAIT

        self.pair: StereoPair | None = None
        self.orientation = DisplayOrientation.UP
        self.pathFallback: Path | None = None

        self.comparisonMode = ComparisonMode.SIDE_BY_SIDE
        self.overlayMode = OverlayMode.MOTION
        self.gManual = 0.0

        self._nGeneration = 0
        self._fClosed = False

    @property
    def gAdjusted(self) -> float:
        """Offset for the slide comparison: motion-driven or the manual value."""

        if self.overlayMode is OverlayMode.MOTION:
            return gSlideOffset(self.channel.disparity(self.deviceOrientation))
        return self.gManual

    async def loadItem(self, data: bytes) -> bool:
        """Load a picked item's bytes. Returns True if a pair is now shown."""

        self._nGeneration += 1
        nGeneration = self._nGeneration
        self.pair = None
        self.pathFallback = None

        try:
            pair = await asyncio.to_thread(pairFromBytes, data)
        except CropFailedError as err:
            # Show the picked image as-is.

            if self._fCurrent(nGeneration):
                self._report(err)
                await self._showFallback(data, nGeneration)
            return False
        except SpatialPhotoError as err:
            if self._fCurrent(nGeneration):
                self._report(err)
            return False

        if not self._fCurrent(nGeneration):
            log.debug("Dropping stale load %d", nGeneration)
            return False

        self.pair = pair
        self.orientation = pair.orientation or DisplayOrientation.UP
        return True

    def clear(self) -> None:
        self._nGeneration += 1
        self.pair = None
        self.pathFallback = None
        self.orientation = DisplayOrientation.UP

    def close(self) -> None:
        self._fClosed = True
        self.clear()

    async def _showFallback(self, data: bytes, nGeneration: int) -> None:
        try:
            orientation, path = await asyncio.to_thread(_fallbackFromBytes, data)
        except (SpatialPhotoError, OSError) as err:
            if self._fCurrent(nGeneration):
                self._report(err)
            return

        if self._fCurrent(nGeneration):
            self.orientation = orientation
            self.pathFallback = path

    def _fCurrent(self, nGeneration: int) -> bool:
        return not self._fClosed and nGeneration == self._nGeneration

    def _report(self, err: BaseException) -> None:
        log.info("Reporting: %s", err)
        self.fnReport(strUserMessage(err))


@dataclass
class ImageSlot:
    """One independently picked eye on the generate screen."""

    data: bytes
    img: Image.Image
    orientation: DisplayOrientation


class GenerateScreen:
    """State for authoring a spatial photo from two separate picks."""

    def __init__(self, fnReport: Callable[[str], None]) -> None:
        self.fnReport = fnReport
        self.mpSlot: dict[Side, ImageSlot | None] = {Side.LEFT: None, Side.RIGHT: None}
        self._mpGeneration: dict[Side, int] = {Side.LEFT: 0, Side.RIGHT: 0}
        self._handle: CompletionHandle | None = None
        self._fClosed = False

    @property
    def fReady(self) -> bool:
        return all(slot is not None for slot in self.mpSlot.values())

    async def loadSlot(self, side: Side, data: bytes) -> bool:
        """Decode a picked image into one slot. Only that slot is written."""

        self._mpGeneration[side] += 1
        nGeneration = self._mpGeneration[side]

        try:
            slot = await asyncio.to_thread(_slotFromBytes, bytes(data))
        except SpatialPhotoError as err:
            if self._fCurrent(side, nGeneration):
                self._report(err)
            return False

        if not self._fCurrent(side, nGeneration):
            log.debug("Dropping stale %s load %d", side.value, nGeneration)
            return False

        self.mpSlot[side] = slot
        return True

    def request(self, params: ConversionParameters, pathDestination: Path) -> ConversionRequest:
        slotLeft = self.mpSlot[Side.LEFT]
        slotRight = self.mpSlot[Side.RIGHT]
        if slotLeft is None or slotRight is None:
            raise ValueError("Both left and right images must be selected")

        return ConversionRequest(
            srcLeft=slotLeft.data,
            srcRight=slotRight.data,
            params=params,
            pathDestination=pathDestination,
        )

    def generate(
        self,
        params: ConversionParameters,
        pathDestination: Path,
        encoder: SpatialEncoder,
        library: MediaLibrary | None,
        fnOnComplete: Callable[[ConversionOutcome], None] | None = None,
    ) -> CompletionHandle:
        """Start a conversion; failures go to fnReport, the outcome to fnOnComplete."""

        def onComplete(outcome: ConversionOutcome) -> None:
            if outcome.errorKind is ErrorKind.PERSISTENCE_FAILED:
                self._report(PersistenceFailedError(outcome.strMessage))
            elif outcome.errorKind is ErrorKind.ENCODING_FAILED:
                self._report(EncodingFailedError(outcome.strMessage))
            if fnOnComplete is not None:
                fnOnComplete(outcome)

        self._handle = self.request(params, pathDestination).start(
            encoder,
            library,
            fnOnComplete=onComplete,
            fnOnError=self._report,
        )
        return self._handle

    def close(self) -> None:
        self._fClosed = True
        if self._handle is not None:
            self._handle.detach()

    def _fCurrent(self, side: Side, nGeneration: int) -> bool:
        return not self._fClosed and nGeneration == self._mpGeneration[side]

    def _report(self, err: BaseException) -> None:
        log.info("Reporting: %s", err)
        self.fnReport(strUserMessage(err))


def _fallbackFromBytes(data: bytes) -> tuple[DisplayOrientation, Path]:
    """Orientation and a temp file for showing an unsplittable pick as-is."""

    orientation = displayFromCodec(codecOrientationFromBytes(data))
    return orientation, pathMaterialize(data)


def _slotFromBytes(data: bytes) -> ImageSlot:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            imgCopy = img.copy()
    except (UnidentifiedImageError, OSError) as err:
        raise UnknownFormatError(f"Cannot decode image: {err}") from err

    return ImageSlot(
        data=data,
        img=imgCopy,
        orientation=displayFromCodec(codecOrientationFromBytes(data)),
    )
