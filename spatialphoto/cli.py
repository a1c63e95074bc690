"""Command-line interface for spatialphoto."""

import argparse
import asyncio
import logging
import math
import sys
from pathlib import Path

from . import formats
from .conversion import (
    ConversionOutcome,
    DirectoryMediaLibrary,
    ImageSource,
    Pair2SpatialEncoder,
    convert,
    paramsForPair,
)
from .errors import SpatialPhotoError, strUserMessage
from .orientation import imgOriented
from .sniff import imageFormatFromBytes
from .tilt import AttitudeSample, DeviceOrientation, disparity, gSlideOffset


def buildParser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spatialphoto",
        description="Inspect and create spatial (stereoscopic) photos.",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        dest="fVerbose",
        action="store_true",
        default=False,
        help="Print metadata details and debug logging.",
    )

    subparsers = parser.add_subparsers(dest="strCommand", metavar="COMMAND")

    # sniff

    parserSniff = subparsers.add_parser("sniff", help="Print the image format of files, by content.")
    parserSniff.add_argument("lPathInput", metavar="FILE", nargs="+", type=Path)

    # split

    parserSplit = subparsers.add_parser(
        "split",
        help="Write the left/right eyes of stereo files (MPO, spatial HEIC, side-by-side) as PNGs.",
    )
    parserSplit.add_argument("lPathInput", metavar="INPUT", nargs="+", type=Path)
    parserSplit.add_argument(
        "-o",
        "--output-dir",
        dest="pathDirOutput",
        type=Path,
        default=None,
        help="Output directory (default: same directory as input file).",
    )
    parserSplit.add_argument(
        "--no-orient",
        dest="fOrient",
        action="store_false",
        default=True,
        help="Keep pixels as stored instead of applying the EXIF orientation.",
    )

    # tilt

    parserTilt = subparsers.add_parser("tilt", help="Show the preview offset for a device attitude.")
    parserTilt.add_argument("--roll", dest="gRoll", type=float, default=0.0)
    parserTilt.add_argument("--pitch", dest="gPitch", type=float, default=0.0)
    parserTilt.add_argument(
        "--display",
        dest="strDisplay",
        choices=[orientation.value for orientation in DeviceOrientation],
        default=DeviceOrientation.PORTRAIT.value,
    )
    parserTilt.add_argument(
        "--degrees",
        dest="fDegrees",
        action="store_true",
        default=False,
        help="Interpret --roll/--pitch as degrees instead of radians.",
    )

    # convert

    parserConvert = subparsers.add_parser(
        "convert",
        help="Convert stereo files or a --left/--right pair to spatial HEIC photos.",
    )
    _addConvertArguments(parserConvert)
    parserConvert.set_defaults(fnPrintHelp=parserConvert.print_help)

    return parser


def _addConvertArguments(parser: argparse.ArgumentParser) -> None:
    # Mutually exclusive input modes: stereo files OR left+right pair.

    grpInput = parser.add_argument_group("input (choose one mode)")

    grpInput.add_argument(
        "lPathInput",
        metavar="INPUT",
        nargs="*",
        type=Path,
        default=[],
        help="One or more stereo image files to convert (MPO, spatial HEIC, side-by-side).",
    )
    grpInput.add_argument(
        "--left",
        dest="pathLeft",
        type=Path,
        default=None,
        help="Left-eye image file (use with --right for a separate L/R pair).",
    )
    grpInput.add_argument(
        "--right",
        dest="pathRight",
        type=Path,
        default=None,
        help="Right-eye image file (use with --left for a separate L/R pair).",
    )

    parser.add_argument(
        "--metadata",
        dest="pathMetadata",
        type=Path,
        default=None,
        help="Image file whose EXIF/metadata is embedded in the output HEIC.",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        dest="pathDirOutput",
        type=Path,
        default=None,
        help="Output directory (default: same directory as input file).",
    )
    parser.add_argument(
        "--output",
        dest="pathOutput",
        type=Path,
        default=None,
        help="Explicit output file path (pair mode only, overrides --output-dir and --suffix).",
    )
    parser.add_argument(
        "--fov",
        dest="degFov",
        type=float,
        default=None,
        help="Horizontal field of view in degrees (overrides EXIF-derived value).",
    )
    parser.add_argument(
        "--baseline",
        dest="mmBaseline",
        type=float,
        default=None,
        help="Stereo baseline in millimeters (overrides metadata).",
    )
    parser.add_argument(
        "--disparity-adjustment",
        dest="gDisparityAdjustment",
        type=float,
        default=0.0,
        help="Manual disparity offset applied on top of the geometry (default: 0).",
    )
    parser.add_argument(
        "--library",
        dest="pathDirLibrary",
        type=Path,
        default=None,
        help="Also save each result into this media library directory.",
    )
    parser.add_argument(
        "--suffix",
        dest="strSuffix",
        type=str,
        default="_spatial",
        help="Suffix to add before .heic extension (default: '_spatial').",
    )


def _runSniff(args: argparse.Namespace) -> int:
    cError = 0
    for pathInput in args.lPathInput:
        try:
            data = pathInput.read_bytes()
        except OSError as err:
            print(f"Error: {err}", file=sys.stderr)
            cError += 1
            continue
        print(f"{pathInput.name}: {imageFormatFromBytes(data).value}")
    return 1 if cError > 0 else 0


def _runSplit(args: argparse.Namespace) -> int:
    cError = 0
    for pathInput in args.lPathInput:
        try:
            pair = formats.pairFromPath(pathInput)
        except (SpatialPhotoError, OSError) as err:
            print(f"Error: {pathInput.name}: {strUserMessage(err)}", file=sys.stderr)
            cError += 1
            continue

        pathDirOutput = args.pathDirOutput or pathInput.parent
        pathDirOutput.mkdir(parents=True, exist_ok=True)

        for img, strEye in [(pair.imgLeft, "L"), (pair.imgRight, "R")]:
            if args.fOrient and pair.orientation is not None:
                img = imgOriented(img, pair.orientation)
            pathOutput = pathDirOutput / f"{pathInput.stem}_{strEye}.png"
            img.save(pathOutput, format="PNG")
            print(f"{pathInput.name} -> {pathOutput.name}")

    return 1 if cError > 0 else 0


def _runTilt(args: argparse.Namespace) -> int:
    fnRad = math.radians if args.fDegrees else float
    sample = AttitudeSample(radRoll=fnRad(args.gRoll), radPitch=fnRad(args.gPitch))
    gDisparity = disparity(sample, DeviceOrientation(args.strDisplay))
    print(f"disparity {gDisparity:.4f}  slide offset {gSlideOffset(gDisparity):+.4f}")
    return 0


def _convertPairToOutput(
    pair: formats.StereoPair,
    pathOutput: Path,
    args: argparse.Namespace,
    srcLeft: ImageSource | None = None,
    srcRight: ImageSource | None = None,
) -> ConversionOutcome | None:
    """Run one conversion. Returns None if the parameters were rejected."""

    try:
        params = paramsForPair(
            pair,
            degFovHorizontal=args.degFov,
            mmBaseline=args.mmBaseline,
            disparityAdjustment=args.gDisparityAdjustment,
        )
    except ValueError as err:
        print(f"Error: {err}", file=sys.stderr)
        return None

    encoder = Pair2SpatialEncoder(pathMetadata=pair.pathMetadataSource)
    library = DirectoryMediaLibrary(args.pathDirLibrary) if args.pathDirLibrary else None

    return asyncio.run(
        convert(
            srcLeft if srcLeft is not None else pair.imgLeft,
            srcRight if srcRight is not None else pair.imgRight,
            params,
            pathOutput,
            encoder,
            library,
        )
    )


def _fReportOutcome(outcome: ConversionOutcome | None, strLabel: str) -> bool:
    if outcome is None:
        return False
    if not outcome.fSucceeded:
        print(f"Error converting {strLabel}: {outcome.strMessage}", file=sys.stderr)
        return False
    print(f"{strLabel} -> {outcome.pathOutput.name}")
    return True


def _convertStereoFile(pathInput: Path, args: argparse.Namespace) -> bool:
    """Convert a single stereo file. Returns True on success."""

    pathDirOutput = args.pathDirOutput or pathInput.parent
    pathDirOutput.mkdir(parents=True, exist_ok=True)
    pathOutput = pathDirOutput / (pathInput.stem + args.strSuffix + ".heic")

    try:
        pair = formats.pairFromPath(pathInput)
    except (SpatialPhotoError, OSError) as err:
        print(f"Error: {pathInput.name}: {strUserMessage(err)}", file=sys.stderr)
        return False

    # Override metadata source if --metadata was specified.

    if args.pathMetadata:
        pair.pathMetadataSource = args.pathMetadata

    if args.fVerbose:
        _printMetadataInfo(pair)

    return _fReportOutcome(_convertPairToOutput(pair, pathOutput, args), pathInput.name)


def _convertPair(args: argparse.Namespace) -> bool:
    """Convert a left/right pair. Returns True on success."""

    for path, strLabel in [(args.pathLeft, "--left"), (args.pathRight, "--right")]:
        if not path.exists():
            print(f"Error: {strLabel} file not found: {path}", file=sys.stderr)
            return False

    if args.pathMetadata and not args.pathMetadata.exists():
        print(f"Error: --metadata file not found: {args.pathMetadata}", file=sys.stderr)
        return False

    try:
        pair = formats.extractPairFromFiles(
            pathLeft=args.pathLeft,
            pathRight=args.pathRight,
            pathMetadata=args.pathMetadata,
        )
    except (SpatialPhotoError, OSError) as err:
        print(f"Error: {strUserMessage(err)}", file=sys.stderr)
        return False

    if args.pathOutput:
        pathOutput = args.pathOutput
    else:
        pathDirOutput = args.pathDirOutput or args.pathLeft.parent
        pathDirOutput.mkdir(parents=True, exist_ok=True)
        pathOutput = pathDirOutput / (args.pathLeft.stem + args.strSuffix + ".heic")

    if args.fVerbose:
        _printMetadataInfo(pair)

    outcome = _convertPairToOutput(
        pair, pathOutput, args, srcLeft=args.pathLeft, srcRight=args.pathRight
    )
    return _fReportOutcome(outcome, f"{args.pathLeft.name} + {args.pathRight.name}")


def _printMetadataInfo(pair: formats.StereoPair) -> None:
    """Print metadata summary for verbose mode."""

    from .exif import cameraGeometryFromPath

    print(f"  Orientation: {pair.orientation.value if pair.orientation else 'up'}", file=sys.stderr)

    pathMeta = pair.pathMetadataSource
    if not pathMeta:
        print("  Metadata source: (none)", file=sys.stderr)
        return

    print(f"  Metadata source: {pathMeta.name}", file=sys.stderr)

    geometry = cameraGeometryFromPath(pathMeta)
    if geometry.strMake or geometry.strModel:
        print(f"  Camera: {geometry.strMake or '?'} {geometry.strModel or '?'}", file=sys.stderr)
    if geometry.mmFocalLength:
        print(f"  Focal length: {geometry.mmFocalLength:.1f}mm", file=sys.stderr)
    if geometry.nFocalLength35mm:
        print(f"  Focal length (35mm equiv): {geometry.nFocalLength35mm}mm", file=sys.stderr)
    if geometry.degFovHorizontal:
        print(f"  Computed FOV: {geometry.degFovHorizontal:.1f}°", file=sys.stderr)
    else:
        print("  Computed FOV: (unavailable, will use default)", file=sys.stderr)


def _runConvert(args: argparse.Namespace) -> int:
    fHasLeft = args.pathLeft is not None
    fHasRight = args.pathRight is not None
    fHasStereoFiles = len(args.lPathInput) > 0

    if fHasLeft != fHasRight:
        print("Error: --left and --right must be used together.", file=sys.stderr)
        return 1

    fPairMode = fHasLeft and fHasRight

    if fPairMode and fHasStereoFiles:
        print(
            "Error: cannot combine positional stereo files with --left/--right.",
            file=sys.stderr,
        )
        return 1

    if not fPairMode and not fHasStereoFiles:
        args.fnPrintHelp(sys.stderr)
        return 1

    if fPairMode:
        return 0 if _convertPair(args) else 1

    # Stereo file mode: batch conversion.

    cError = 0
    cConverted = 0

    for pathInput in args.lPathInput:
        if not pathInput.exists():
            print(f"Error: file not found: {pathInput}", file=sys.stderr)
            cError += 1
            continue

        if _convertStereoFile(pathInput, args):
            cConverted += 1
        else:
            cError += 1

    if cConverted > 0:
        print(f"\nConverted {cConverted} file(s).", file=sys.stderr)

    if cError > 0:
        print(f"{cError} error(s).", file=sys.stderr)

    return 1 if cError > 0 else 0


def main(lStrArg: list[str] | None = None) -> int:
    parser = buildParser()
    args = parser.parse_args(lStrArg)

    if args.fVerbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        logging.getLogger("PIL").setLevel(logging.INFO)

    if args.strCommand == "sniff":
        return _runSniff(args)
    if args.strCommand == "split":
        return _runSplit(args)
    if args.strCommand == "tilt":
        return _runTilt(args)
    if args.strCommand == "convert":
        return _runConvert(args)

    parser.print_help(sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
