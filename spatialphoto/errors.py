"""Error types raised by the spatialphoto core, and their user-facing text."""


class SpatialPhotoError(Exception):
    """Base class for all spatialphoto errors."""


class InvalidOrientationError(SpatialPhotoError, ValueError):
    """An orientation value outside the eight EXIF orientations."""


class UnknownFormatError(SpatialPhotoError, ValueError):
    """Image bytes that don't match any supported container format."""


class SplitError(SpatialPhotoError):
    """Base class for stereo decomposition failures."""


class CropFailedError(SplitError):
    """The image is too small to be split into left and right halves."""


class EncodingFailedError(SpatialPhotoError, RuntimeError):
    """The external spatial photo encoder rejected its input or crashed."""


class PersistenceFailedError(SpatialPhotoError, RuntimeError):
    """The finished spatial photo could not be saved to the media library."""


def strUserMessage(err: BaseException) -> str:
    """Return the alert text shown to the user for a failure."""

    if isinstance(err, CropFailedError):
        return "Cannot split this image."

    if isinstance(err, UnknownFormatError):
        return "Unsupported image format. Please select a JPEG, PNG, GIF or HEIC image."

    if isinstance(err, PersistenceFailedError):
        # The file exists; only the save step failed.

        return f"The spatial photo was created but could not be saved: {err}"

    if isinstance(err, EncodingFailedError):
        return str(err) or "The spatial photo could not be created."

    return str(err) or err.__class__.__name__
