"""Multi-frame stereo containers.

MPO files from stereo cameras (Fujifilm FinePix Real 3D W1/W3) and spatial
HEIC photos both store the left eye as frame 0 and the right eye as frame 1.
Other multi-frame formats (animated GIF, multipage TIFF) are not stereo.
"""

from PIL import Image

from .base import StereoFormat, StereoPair

g_setStrFormatStereo = {"MPO", "HEIF"}


class FormatMultiFrame(StereoFormat):
    """Handler for MPO and HEIF containers holding at least two frames."""

    @staticmethod
    def strName() -> str:
        return "multi-frame"

    @staticmethod
    def fCanHandle(img: Image.Image) -> bool:
        return img.format in g_setStrFormatStereo and getattr(img, "n_frames", 1) >= 2

    @staticmethod
    def extractPair(img: Image.Image) -> StereoPair:
        """Frame 0 is the left eye, frame 1 is the right eye."""

        img.seek(0)
        imgLeft = img.copy()

        img.seek(1)
        imgRight = img.copy()

        img.seek(0)

        return StereoPair(imgLeft=imgLeft, imgRight=imgRight)
