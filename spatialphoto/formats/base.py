"""Base class for stereo source handlers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from ..orientation import DisplayOrientation


@dataclass
class StereoPair:
    """Left/right images ready for preview or conversion.

    orientation is shared by both eyes and is what the display layer uses
    to render them upright. pathMetadataSource is the file whose EXIF
    describes the capturing camera, when there is one.
    """

    imgLeft: Image.Image
    imgRight: Image.Image
    orientation: DisplayOrientation | None = None
    degFovHorizontal: float | None = None  # Source FOV if known from metadata
    mmBaseline: float | None = None  # Source baseline if known from metadata
    pathSource: Path | None = None
    pathMetadataSource: Path | None = None


class StereoFormat(ABC):
    """Base class for handlers that turn one decoded image into a pair."""

    @staticmethod
    @abstractmethod
    def strName() -> str:
        """Short name for logs and CLI output."""
        ...

    @staticmethod
    @abstractmethod
    def fCanHandle(img: Image.Image) -> bool:
        """Return True if this handler can extract a pair from img."""
        ...

    @staticmethod
    @abstractmethod
    def extractPair(img: Image.Image) -> StereoPair:
        """Extract the left/right stereo pair from img."""
        ...
