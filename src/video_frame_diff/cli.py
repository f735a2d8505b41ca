"""Command-line interface for video frame diff."""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import NoReturn, Optional, Sequence

from . import __version__
from .comparison import DEFAULT_THRESHOLD
from .encoder import DEFAULT_FPS
from .errors import FrameDiffError, UsageError
from .models import ComparatorType, Stage
from .pipeline import DEFAULT_FRAME_COUNT, compare_videos

PROGRESS_MESSAGES = {
    Stage.EXTRACTING_A: "Extracting frames from the first video...",
    Stage.EXTRACTING_B: "Extracting frames from the second video...",
    Stage.COMPARING: "Generating difference frames and calculating pixel changes...",
    Stage.ENCODING_DIFF: "Encoding difference video...",
}


class ArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage problems as UsageError."""

    def error(self, message: str) -> NoReturn:
        raise UsageError(f"{self.format_usage().rstrip()}\n{self.prog}: error: {message}")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    options = argparse.ArgumentParser(add_help=False)
    options.add_argument(
        "-n",
        "--frames",
        type=int,
        default=DEFAULT_FRAME_COUNT,
        help=f"Number of frames to sample from each video (default: {DEFAULT_FRAME_COUNT})",
    )
    options.add_argument(
        "-t",
        "--compare-type",
        type=ComparatorType,
        choices=list(ComparatorType),
        default=ComparatorType.PIXELMATCH,
        metavar="{pixelmatch,exact}",
        help="Pixel comparator: pixelmatch (default, perceptual) or exact "
        "(any channel difference)",
    )
    options.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help=f"Per-pixel tolerance from 0 to 1 (default: {DEFAULT_THRESHOLD}, "
        "smaller = more sensitive)",
    )
    options.add_argument(
        "--exclude-aa",
        action="store_true",
        help="Do not count anti-aliased edge pixels as changed",
    )
    options.add_argument(
        "-j",
        "--workers",
        type=int,
        default=1,
        help="Worker processes for comparing frame pairs (default: 1)",
    )
    options.add_argument(
        "--timeout",
        type=float,
        help="Maximum seconds to wait for each decode or encode step "
        "(default: unlimited)",
    )
    options.add_argument(
        "--work-dir",
        type=Path,
        help="Directory for temporary files (default: system temp directory)",
    )
    options.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )
    options.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    parser = ArgumentParser(
        description="""\
Compare two videos frame by frame and report the percentage of changed pixels.

Frames are sampled from both videos at the same positions and compared
pairwise with a perceptual pixel comparison. Optionally, a difference
video (ProRes 4444 with alpha) is rendered from the diff images.
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    modes = parser.add_subparsers(dest="mode", metavar="MODE")
    modes.required = True

    compare = modes.add_parser(
        "compare", parents=[options], help="Print the changed-pixel percentage"
    )
    compare.add_argument("movie_a", type=Path, help="First video")
    compare.add_argument("movie_b", type=Path, help="Second video")

    generate = modes.add_parser(
        "compare_and_generate",
        parents=[options],
        help="Print the changed-pixel percentage and render a difference video",
    )
    generate.add_argument("movie_a", type=Path, help="First video")
    generate.add_argument("movie_b", type=Path, help="Second video")
    generate.add_argument("output", type=Path, help="Difference video to write (.mov)")
    generate.add_argument(
        "--fps",
        type=float,
        default=DEFAULT_FPS,
        help=f"Frame rate of the difference video (default: {DEFAULT_FPS:g})",
    )
    generate.add_argument(
        "--diff-mask",
        action="store_true",
        help="Draw only changed pixels, leaving the rest transparent",
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        print(e, file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    for path in (args.movie_a, args.movie_b):
        if not path.exists():
            print(f"Error: Video not found: {path}", file=sys.stderr)
            sys.exit(1)

    output = getattr(args, "output", None)
    show_progress = output is not None and not args.json

    def report_stage(stage: Stage) -> None:
        if show_progress and stage in PROGRESS_MESSAGES:
            print(PROGRESS_MESSAGES[stage], flush=True)

    start_time = datetime.now()

    try:
        report = compare_videos(
            args.movie_a,
            args.movie_b,
            output_video=output,
            frame_count=args.frames,
            threshold=args.threshold,
            include_aa=not args.exclude_aa,
            comparator_type=args.compare_type,
            diff_mask=getattr(args, "diff_mask", False),
            fps=getattr(args, "fps", DEFAULT_FPS),
            workers=args.workers,
            timeout=args.timeout,
            work_dir=args.work_dir,
            quiet=args.json,
            on_stage=report_stage,
        )
    except (FrameDiffError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    compute_time = (datetime.now() - start_time).total_seconds()
    logging.debug(f"Computation finished in {compute_time:.2f} seconds")

    if args.json:
        result = {
            "date": datetime.now().isoformat(),
            "movie_a": str(args.movie_a),
            "movie_b": str(args.movie_b),
            **report.to_dict(),
            "settings": {
                "frames": args.frames,
                "compare_type": args.compare_type.value,
                "threshold": args.threshold,
                "include_aa": not args.exclude_aa,
                "compute_time": compute_time,
            },
        }
        print(json.dumps(result, indent=2))
        return

    if report.diff_video is not None:
        print(f"Difference video generated: {report.diff_video}")
    print(f"Difference: {report.percentage:.2f}%")


if __name__ == "__main__":
    main()
