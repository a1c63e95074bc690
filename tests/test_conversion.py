"""Tests for the conversion request contract."""

import asyncio
import math
import stat
import sys
from pathlib import Path

import pytest
from PIL import Image

from spatialphoto.conversion import (
    DEG_FOV_DEFAULT,
    MM_BASELINE_DEFAULT,
    ConversionOutcome,
    ConversionParameters,
    ConversionRequest,
    DirectoryMediaLibrary,
    ErrorKind,
    Pair2SpatialEncoder,
    convert,
    paramsForPair,
    pathForSource,
    pathMaterialize,
)
from spatialphoto.errors import EncodingFailedError, PersistenceFailedError, UnknownFormatError
from spatialphoto.formats import StereoPair

from conftest import (
    FailingEncoder,
    FailingLibrary,
    FakeEncoder,
    FakeLibrary,
    bytesFromImage,
    imgSideBySide,
)


@pytest.mark.parametrize(
    "mmBaseline, degFov",
    [(0, 42), (-1, 42), (10, 0), (10, 180), (10, 270), (10, -5), (math.nan, 42), (10, math.nan)],
)
def test_ConversionParameters_rejects(mmBaseline, degFov):
    with pytest.raises(ValueError):
        ConversionParameters(mmBaseline=mmBaseline, degFovHorizontal=degFov)


def test_ConversionParameters_keeps_values():
    params = ConversionParameters(mmBaseline=0.5, degFovHorizontal=179.9, disparityAdjustment=-3)
    assert (params.mmBaseline, params.degFovHorizontal, params.disparityAdjustment) == (
        0.5,
        179.9,
        -3,
    )


def test_paramsForPair_resolution():
    pair = StereoPair(imgLeft=imgSideBySide(), imgRight=imgSideBySide(), degFovHorizontal=60.0)

    params = paramsForPair(pair)
    assert params.degFovHorizontal == 60.0
    assert params.mmBaseline == MM_BASELINE_DEFAULT

    params = paramsForPair(pair, degFovHorizontal=42, mmBaseline=10, disparityAdjustment=1.5)
    assert (params.degFovHorizontal, params.mmBaseline, params.disparityAdjustment) == (42, 10, 1.5)

    pair.degFovHorizontal = None
    assert paramsForPair(pair).degFovHorizontal == DEG_FOV_DEFAULT


def test_paramsForPair_explicit_invalid_not_replaced():
    pair = StereoPair(imgLeft=imgSideBySide(), imgRight=imgSideBySide(), degFovHorizontal=60.0)
    with pytest.raises(ValueError):
        paramsForPair(pair, degFovHorizontal=0)


def test_pathMaterialize(tmp_path, dataSideBySidePng):
    path = pathMaterialize(dataSideBySidePng, tmp_path)

    assert path.parent == tmp_path
    assert path.suffix == ".png"
    assert path.read_bytes() == dataSideBySidePng

    pathOther = pathMaterialize(dataSideBySidePng, tmp_path)
    assert pathOther != path


def test_pathMaterialize_extensions(tmp_path):
    img = Image.new("RGB", (4, 4))
    assert pathMaterialize(bytesFromImage(img, "JPEG"), tmp_path).suffix == ".jpg"
    assert pathMaterialize(bytesFromImage(img, "GIF"), tmp_path).suffix == ".gif"


def test_pathMaterialize_unknown(tmp_path):
    dirTemp = tmp_path / "materialized"
    dirTemp.mkdir()

    with pytest.raises(UnknownFormatError):
        pathMaterialize(b"\x00" * 32, dirTemp)
    assert list(dirTemp.iterdir()) == []


def test_pathForSource(tmp_path, dataSideBySidePng):
    pathFile = tmp_path / "left.png"
    pathFile.write_bytes(dataSideBySidePng)

    assert pathForSource(pathFile, tmp_path) == pathFile
    assert pathForSource(dataSideBySidePng, tmp_path).suffix == ".png"
    assert pathForSource(imgSideBySide(), tmp_path).suffix == ".jpg"


def test_pathForSource_undecodable(tmp_path):
    pathFile = tmp_path / "broken.png"
    pathFile.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 8)

    with pytest.raises(ValueError):
        pathForSource(pathFile, tmp_path)
    with pytest.raises(ValueError):
        pathForSource(pathFile.read_bytes(), tmp_path)
    with pytest.raises(UnknownFormatError):
        pathForSource(b"no image here", tmp_path)


def test_convert_succeeds(tmp_path, dataSideBySidePng, params):
    encoder = FakeEncoder()
    library = FakeLibrary()
    pathOutput = tmp_path / "out.heic"

    outcome = asyncio.run(
        convert(dataSideBySidePng, dataSideBySidePng, params, pathOutput, encoder, library, tmp_path)
    )

    assert outcome == ConversionOutcome.succeeded(pathOutput)
    assert outcome.fSucceeded
    assert library.lPathSaved == [pathOutput]

    (pathLeft, pathRight, paramsSeen, pathSeen) = encoder.lCall[0]
    assert pathLeft.suffix == ".png"
    assert pathLeft != pathRight
    assert paramsSeen == ConversionParameters(10, 42, 0)
    assert pathSeen == pathOutput


def test_convert_encoding_failed(tmp_path, dataSideBySidePng, params):
    library = FakeLibrary()

    outcome = asyncio.run(
        convert(
            dataSideBySidePng,
            dataSideBySidePng,
            params,
            tmp_path / "out.heic",
            FailingEncoder("bad input"),
            library,
        )
    )

    assert not outcome.fSucceeded
    assert outcome.errorKind is ErrorKind.ENCODING_FAILED
    assert outcome.strMessage == "bad input"
    assert library.lPathSaved == []


def test_convert_persistence_failed(tmp_path, dataSideBySidePng, params):
    pathOutput = tmp_path / "out.heic"

    outcome = asyncio.run(
        convert(
            dataSideBySidePng, dataSideBySidePng, params, pathOutput, FakeEncoder(), FailingLibrary()
        )
    )

    assert outcome.errorKind is ErrorKind.PERSISTENCE_FAILED
    assert outcome.pathOutput == pathOutput
    assert pathOutput.exists()


class CrashingEncoder:
    def encode(self, pathLeft, pathRight, params, pathOutput) -> None:
        raise RuntimeError("encoder crashed")


class DeniedLibrary:
    async def save(self, pathFile: Path) -> None:
        raise PermissionError("photo library access denied")


def test_convert_any_encoder_error_is_encoding_failed(tmp_path, dataSideBySidePng, params):
    library = FakeLibrary()

    outcome = asyncio.run(
        convert(
            dataSideBySidePng,
            dataSideBySidePng,
            params,
            tmp_path / "o.heic",
            CrashingEncoder(),
            library,
        )
    )

    assert outcome.errorKind is ErrorKind.ENCODING_FAILED
    assert outcome.strMessage == "encoder crashed"
    assert library.lPathSaved == []


def test_convert_any_library_error_is_persistence_failed(tmp_path, dataSideBySidePng, params):
    pathOutput = tmp_path / "o.heic"

    outcome = asyncio.run(
        convert(
            dataSideBySidePng, dataSideBySidePng, params, pathOutput, FakeEncoder(), DeniedLibrary()
        )
    )

    assert outcome.errorKind is ErrorKind.PERSISTENCE_FAILED
    assert outcome.strMessage == "photo library access denied"
    assert outcome.pathOutput == pathOutput


def test_convert_without_library(tmp_path, dataSideBySidePng, params):
    outcome = asyncio.run(
        convert(dataSideBySidePng, dataSideBySidePng, params, tmp_path / "o.heic", FakeEncoder(), None)
    )
    assert outcome.fSucceeded


def test_convert_unknown_format_raises(tmp_path, dataSideBySidePng, params):
    encoder = FakeEncoder()

    with pytest.raises(UnknownFormatError):
        asyncio.run(
            convert(b"????????????", dataSideBySidePng, params, tmp_path / "o.heic", encoder, None)
        )
    assert encoder.lCall == []


def test_ConversionRequest_start_delivers_outcome(tmp_path, dataSideBySidePng, params):
    lOutcome: list[ConversionOutcome] = []
    request = ConversionRequest(dataSideBySidePng, dataSideBySidePng, params, tmp_path / "o.heic")

    async def run():
        handle = request.start(FakeEncoder(), FakeLibrary(), lOutcome.append)
        await handle.wait()
        await asyncio.sleep(0)

    asyncio.run(run())

    assert len(lOutcome) == 1
    assert lOutcome[0].fSucceeded


def test_ConversionRequest_start_reports_precondition_error(tmp_path, params):
    lOutcome: list[ConversionOutcome] = []
    lErr: list[BaseException] = []
    request = ConversionRequest(b"????", b"????", params, tmp_path / "o.heic")

    async def run():
        handle = request.start(FakeEncoder(), None, lOutcome.append, lErr.append)
        with pytest.raises(UnknownFormatError):
            await handle.wait()
        await asyncio.sleep(0)

    asyncio.run(run())

    assert lOutcome == []
    assert len(lErr) == 1
    assert isinstance(lErr[0], UnknownFormatError)


def test_ConversionRequest_detach_drops_callback(tmp_path, dataSideBySidePng, params):
    lOutcome: list[ConversionOutcome] = []
    library = FakeLibrary()
    request = ConversionRequest(dataSideBySidePng, dataSideBySidePng, params, tmp_path / "o.heic")

    async def run():
        handle = request.start(FakeEncoder(), library, lOutcome.append)
        handle.detach()
        await handle.wait()
        await asyncio.sleep(0)

    asyncio.run(run())

    assert lOutcome == []
    assert library.lPathSaved == [tmp_path / "o.heic"]


def test_DirectoryMediaLibrary(tmp_path):
    pathFile = tmp_path / "photo.heic"
    pathFile.write_bytes(b"spatial")
    pathDirLibrary = tmp_path / "library"

    asyncio.run(DirectoryMediaLibrary(pathDirLibrary).save(pathFile))

    assert (pathDirLibrary / "photo.heic").read_bytes() == b"spatial"


def test_DirectoryMediaLibrary_failure(tmp_path):
    with pytest.raises(PersistenceFailedError):
        asyncio.run(DirectoryMediaLibrary(tmp_path / "library").save(tmp_path / "missing.heic"))


def test_Pair2SpatialEncoder_command(tmp_path, params):
    pathBinary = tmp_path / "pair2spatial"
    pathMetadata = tmp_path / "meta.jpg"
    pathMetadata.write_bytes(b"x")

    encoder = Pair2SpatialEncoder(pathBinary=pathBinary, pathMetadata=pathMetadata)
    lStrCmd = encoder.lStrCommand(Path("l.png"), Path("r.png"), params, Path("o.heic"))

    assert lStrCmd == [
        str(pathBinary),
        "l.png",
        "r.png",
        "o.heic",
        "--fov",
        "42",
        "--baseline",
        "10",
        "--disparity-adjustment",
        "0",
        "--metadata",
        str(pathMetadata),
    ]


def test_Pair2SpatialEncoder_missing_binary(tmp_path, params, monkeypatch):
    monkeypatch.setenv("SPATIALPHOTO_ENCODER", "")
    monkeypatch.setenv("PATH", str(tmp_path))
    monkeypatch.setattr("spatialphoto.conversion.Path.is_file", lambda self: False)

    with pytest.raises(EncodingFailedError):
        Pair2SpatialEncoder().encode(Path("l.png"), Path("r.png"), params, tmp_path / "o.heic")


@pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as the encoder")
def test_Pair2SpatialEncoder_runs_binary(tmp_path, params, monkeypatch):
    pathBinary = tmp_path / "pair2spatial"
    pathBinary.write_text('#!/bin/sh\necho "encoding" >&2\nprintf spatial > "$3"\n')
    pathBinary.chmod(pathBinary.stat().st_mode | stat.S_IEXEC)
    monkeypatch.setenv("SPATIALPHOTO_ENCODER", str(pathBinary))

    pathOutput = tmp_path / "o.heic"
    Pair2SpatialEncoder().encode(Path("l.png"), Path("r.png"), params, pathOutput)

    assert pathOutput.read_bytes() == b"spatial"


@pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as the encoder")
def test_Pair2SpatialEncoder_nonzero_exit(tmp_path, params):
    pathBinary = tmp_path / "pair2spatial"
    pathBinary.write_text('#!/bin/sh\necho "bad baseline" >&2\nexit 3\n')
    pathBinary.chmod(pathBinary.stat().st_mode | stat.S_IEXEC)

    with pytest.raises(EncodingFailedError, match="exit 3"):
        Pair2SpatialEncoder(pathBinary=pathBinary).encode(
            Path("l.png"), Path("r.png"), params, tmp_path / "o.heic"
        )


@pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as the encoder")
def test_Pair2SpatialEncoder_binary_stderr(tmp_path, params):
    pathBinary = tmp_path / "pair2spatial"
    pathBinary.write_text("#!/bin/sh\nprintf '\\377\\376 bad' >&2\nexit 2\n")
    pathBinary.chmod(pathBinary.stat().st_mode | stat.S_IEXEC)

    with pytest.raises(EncodingFailedError, match="exit 2"):
        Pair2SpatialEncoder(pathBinary=pathBinary).encode(
            Path("l.png"), Path("r.png"), params, tmp_path / "o.heic"
        )
