"""Pixel comparison of frame pairs and aggregation of changed-pixel counts."""

import logging
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Iterable, Optional, Protocol, Sequence, Union

import numpy as np
from PIL import Image
from pixelmatch.contrib.PIL import pixelmatch
from tqdm import tqdm

from .errors import DimensionMismatch, EmptyInputError, LengthMismatch
from .models import ComparatorType, ComparisonReport, FramePairResult

# A frame is either an image file on disk or an already decoded image
Frame = Union[Path, Image.Image]

# Default per-pixel tolerance on pixelmatch's 0-1 perceptual scale
DEFAULT_THRESHOLD = 0.1

# Color used by the exact comparator to mark changed pixels
EXACT_DIFF_COLOR = (255, 0, 0, 255)


class PixelComparator(Protocol):
    """Counts changed pixels between two equally sized RGBA images."""

    def compare(
        self,
        image_a: Image.Image,
        image_b: Image.Image,
        diff: Optional[Image.Image] = None,
    ) -> int:
        ...


class PixelmatchComparator:
    """
    Perceptual comparison backed by the pixelmatch library.

    Pixels whose YIQ color delta stays below `threshold` are not counted.
    Anti-aliased edge pixels are counted unless `include_aa` is False.
    With `diff_mask`, only changed pixels are drawn and everything else in
    the diff image stays transparent.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        include_aa: bool = True,
        diff_mask: bool = False,
    ) -> None:
        if not 0 <= threshold <= 1:
            raise ValueError(f"Threshold must be between 0 and 1, got {threshold}")
        self.threshold = threshold
        self.include_aa = include_aa
        self.diff_mask = diff_mask

    def compare(
        self,
        image_a: Image.Image,
        image_b: Image.Image,
        diff: Optional[Image.Image] = None,
    ) -> int:
        return pixelmatch(
            image_a,
            image_b,
            diff,
            threshold=self.threshold,
            includeAA=self.include_aa,
            diff_mask=self.diff_mask,
        )


class ExactComparator:
    """Counts every pixel where any RGBA channel differs."""

    def compare(
        self,
        image_a: Image.Image,
        image_b: Image.Image,
        diff: Optional[Image.Image] = None,
    ) -> int:
        pixels_a = np.asarray(image_a.convert("RGBA"))
        pixels_b = np.asarray(image_b.convert("RGBA"))
        changed = np.any(pixels_a != pixels_b, axis=2)

        if diff is not None:
            overlay = np.zeros(pixels_a.shape, dtype=np.uint8)
            overlay[changed] = EXACT_DIFF_COLOR
            diff.paste(Image.fromarray(overlay))

        return int(np.count_nonzero(changed))


def create_comparator(
    comparator_type: ComparatorType = ComparatorType.PIXELMATCH,
    threshold: float = DEFAULT_THRESHOLD,
    include_aa: bool = True,
    diff_mask: bool = False,
) -> PixelComparator:
    """Build the comparator for `comparator_type`."""
    if comparator_type == ComparatorType.PIXELMATCH:
        return PixelmatchComparator(
            threshold=threshold, include_aa=include_aa, diff_mask=diff_mask
        )
    elif comparator_type == ComparatorType.EXACT:
        return ExactComparator()
    else:
        raise ValueError(f"Unknown comparator type: {comparator_type}")


def diff_filename(position: int, count: int) -> str:
    """Name of the 1-based `position`-th diff image, sortable in capture order."""
    width = max(3, len(str(count)))
    return f"diff_{position:0{width}d}.png"


def load_frame(frame: Frame) -> Image.Image:
    """Return `frame` as a new RGBA image; the input is left untouched."""
    if isinstance(frame, Image.Image):
        return frame.convert("RGBA")
    with Image.open(frame) as image:
        return image.convert("RGBA")


def compare_images(
    image_a: Frame,
    image_b: Frame,
    comparator: PixelComparator,
    index: int = 0,
    diff_path: Optional[Path] = None,
) -> FramePairResult:
    """
    Compare one frame pair.

    Args:
        image_a: Frame from the first video
        image_b: Frame from the second video
        comparator: Pixel comparator to count changed pixels with
        index: Position of the pair in capture order
        diff_path: If given, render the diff image and save it there

    Returns:
        FramePairResult for this pair

    Raises:
        DimensionMismatch: If the two frames differ in size
    """
    first = load_frame(image_a)
    second = load_frame(image_b)

    if first.size != second.size:
        raise DimensionMismatch(index, first.size, second.size)

    diff = Image.new("RGBA", first.size) if diff_path is not None else None
    changed = comparator.compare(first, second, diff)

    if diff is not None:
        diff.save(diff_path, format="PNG")

    width, height = first.size
    return FramePairResult(
        index=index,
        changed_pixels=changed,
        total_pixels=width * height,
        diff_path=diff_path,
    )


def _compare_task(
    args: tuple[Frame, Frame, PixelComparator, int, Optional[Path]],
) -> FramePairResult:
    return compare_images(*args)


def compare_frame_pairs(
    frames_a: Sequence[Frame],
    frames_b: Sequence[Frame],
    comparator: PixelComparator,
    diff_dir: Optional[Path] = None,
    workers: int = 1,
    quiet: bool = False,
) -> list[FramePairResult]:
    """
    Compare corresponding frames of two equally long sequences.

    Args:
        frames_a: Frames of the first video, in capture order
        frames_b: Frames of the second video, in capture order
        comparator: Pixel comparator to use for every pair
        diff_dir: If given, write one diff image per pair into this directory
        workers: Number of worker processes (1 = compare in this process)
        quiet: If True, suppress the progress bar

    Returns:
        One FramePairResult per pair, in capture order

    Raises:
        LengthMismatch: If the sequences differ in length
        DimensionMismatch: If any pair differs in size
    """
    if len(frames_a) != len(frames_b):
        raise LengthMismatch(len(frames_a), len(frames_b))

    count = len(frames_a)
    if diff_dir is not None:
        diff_dir.mkdir(parents=True, exist_ok=True)

    tasks = [
        (
            frame_a,
            frame_b,
            comparator,
            index,
            diff_dir / diff_filename(index + 1, count) if diff_dir else None,
        )
        for index, (frame_a, frame_b) in enumerate(zip(frames_a, frames_b))
    ]

    results: list[FramePairResult] = []
    if workers > 1 and count > 1:
        with ProcessPoolExecutor(max_workers=workers) as executor:
            # map() yields in submission order, whatever order pairs finish in
            for result in tqdm(
                executor.map(_compare_task, tasks),
                total=count,
                desc="Comparing frames",
                disable=quiet,
            ):
                results.append(result)
    else:
        for task in tqdm(tasks, desc="Comparing frames", disable=quiet):
            results.append(_compare_task(task))

    for result in results:
        logging.debug(
            f"Pair {result.index}: {result.changed_pixels}/{result.total_pixels} "
            "pixels changed"
        )

    return results


def aggregate(results: Iterable[FramePairResult]) -> ComparisonReport:
    """
    Sum changed and total pixels over all pairs.

    Raises:
        EmptyInputError: If there are no pixels to aggregate
    """
    pairs = list(results)
    changed = sum(pair.changed_pixels for pair in pairs)
    total = sum(pair.total_pixels for pair in pairs)

    if total == 0:
        raise EmptyInputError(
            f"Cannot compute a difference percentage over {len(pairs)} frame "
            "pairs with no pixels"
        )

    return ComparisonReport(changed_pixels=changed, total_pixels=total, pairs=pairs)
