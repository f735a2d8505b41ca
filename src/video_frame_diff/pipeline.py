"""Orchestration of a comparison run: sample, compare, aggregate, encode."""

import atexit
import logging
import shutil
import tempfile
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Any, Callable, Optional

from .comparison import (
    DEFAULT_THRESHOLD,
    PixelComparator,
    aggregate,
    compare_frame_pairs,
    create_comparator,
)
from .encoder import DEFAULT_FPS, ProResEncoder, VideoEncoder
from .errors import CollaboratorTimeout, FrameDiffError, LengthMismatch, StorageError
from .models import ComparatorType, ComparisonReport, Stage
from .video import FrameSampler, PyAVFrameSampler

DEFAULT_FRAME_COUNT = 10
TEMP_PREFIX = "video-frame-diff-"


class ComparisonRun:
    """
    A single comparison of two videos.

    Stages advance Idle -> ExtractingA -> ExtractingB -> Comparing ->
    [EncodingDiff] -> Done, or end in Failed. Every run owns a scoped
    temporary directory that is removed exactly once when the run ends,
    whatever the outcome.
    """

    def __init__(
        self,
        sampler: FrameSampler,
        comparator: PixelComparator,
        encoder: Optional[VideoEncoder] = None,
        frame_count: int = DEFAULT_FRAME_COUNT,
        fps: float = DEFAULT_FPS,
        workers: int = 1,
        timeout: Optional[float] = None,
        work_dir: Optional[Path] = None,
        quiet: bool = False,
        on_stage: Optional[Callable[[Stage], None]] = None,
    ) -> None:
        if frame_count < 1:
            raise ValueError(f"Frame count must be at least 1, got {frame_count}")
        self.sampler = sampler
        self.comparator = comparator
        self.encoder = encoder
        self.frame_count = frame_count
        self.fps = fps
        self.workers = workers
        self.timeout = timeout
        self.work_dir = work_dir
        self.quiet = quiet
        self.on_stage = on_stage

        self.stage = Stage.IDLE
        self.history: list[Stage] = [Stage.IDLE]
        self.run_dir: Optional[Path] = None
        self._released = False
        self._straggler: Optional[Future] = None
        self._remove_lock = threading.Lock()

    def run(
        self,
        video_a: Path,
        video_b: Path,
        output_video: Optional[Path] = None,
    ) -> ComparisonReport:
        """
        Compare two videos and optionally render a difference video.

        Args:
            video_a: First video
            video_b: Second video
            output_video: If given, encode the diff frames to this file

        Returns:
            ComparisonReport with the aggregated changed-pixel percentage

        Raises:
            FrameDiffError: Tagged with the stage that failed
        """
        if self.stage != Stage.IDLE:
            raise RuntimeError("A ComparisonRun can only be run once")

        try:
            return self._run(video_a, video_b, output_video)
        except FrameDiffError as e:
            failed_stage = self.stage
            if e.stage is None:
                e.stage = failed_stage
            logging.error(f"{failed_stage.description} failed: {e.message}")
            self._enter(Stage.FAILED)
            raise
        except OSError as e:
            # Includes PIL.UnidentifiedImageError for unreadable frames
            failed_stage = self.stage
            logging.error(f"{failed_stage.description} failed: {e}")
            self._enter(Stage.FAILED)
            raise StorageError(str(e), stage=failed_stage) from e
        except Exception:
            logging.exception(f"{self.stage.description} failed unexpectedly")
            self._enter(Stage.FAILED)
            raise
        finally:
            self._release()

    def _run(
        self,
        video_a: Path,
        video_b: Path,
        output_video: Optional[Path],
    ) -> ComparisonReport:
        if output_video is not None and self.encoder is None:
            raise ValueError("An encoder is required to render a difference video")

        if self.work_dir is not None:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        self.run_dir = Path(tempfile.mkdtemp(prefix=TEMP_PREFIX, dir=self.work_dir))
        logging.debug(f"Working directory: {self.run_dir}")

        self._enter(Stage.EXTRACTING_A)
        frames_a = self._call(
            self.sampler.sample, video_a, self.frame_count, self.run_dir / "frames_a"
        )

        self._enter(Stage.EXTRACTING_B)
        frames_b = self._call(
            self.sampler.sample, video_b, self.frame_count, self.run_dir / "frames_b"
        )

        if len(frames_a) != len(frames_b):
            raise LengthMismatch(len(frames_a), len(frames_b))

        self._enter(Stage.COMPARING)

        diff_dir = self.run_dir / "diff" if output_video is not None else None
        results = compare_frame_pairs(
            frames_a.frames,
            frames_b.frames,
            self.comparator,
            diff_dir=diff_dir,
            workers=self.workers,
            quiet=self.quiet,
        )
        report = aggregate(results)
        logging.debug(
            f"{report.changed_pixels} of {report.total_pixels} pixels changed "
            f"({report.percentage:.4f}%)"
        )

        if output_video is not None:
            self._enter(Stage.ENCODING_DIFF)
            # Encode inside the run directory so a failed encode leaves no output
            staged = self.run_dir / f"diff_video{output_video.suffix}"
            diff_frames = [result.diff_path for result in results]
            self._call(self.encoder.encode, diff_frames, staged, self.fps)
            output_video.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(staged), str(output_video))
            report.diff_video = output_video

        self._enter(Stage.DONE)
        return report

    def _enter(self, stage: Stage) -> None:
        logging.debug(f"Stage: {self.stage.value} -> {stage.value}")
        self.stage = stage
        self.history.append(stage)
        if self.on_stage is not None:
            self.on_stage(stage)

    def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        """Call a collaborator, waiting at most `timeout` seconds if one is set."""
        if self.timeout is None:
            return func(*args)

        # A daemon thread, so an abandoned call never keeps the interpreter alive
        future: Future = Future()

        def target() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(func(*args))
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(
            target=target, name=f"video-frame-diff-{self.stage.value}", daemon=True
        ).start()

        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            self._straggler = future
            raise CollaboratorTimeout(
                f"No result within {self.timeout:g}s"
            ) from e

    def _release(self) -> None:
        if self._released:
            return
        self._released = True

        if self._straggler is not None and not self._straggler.done():
            # The timed-out call may still write into the run directory: remove
            # it when the call returns, or at interpreter exit if it never does
            logging.debug("Removing working directory once the timed-out call ends")
            atexit.register(self._remove_run_dir)
            self._straggler.add_done_callback(lambda _: self._remove_run_dir())
        else:
            self._remove_run_dir()

    def _remove_run_dir(self) -> None:
        with self._remove_lock:
            if self.run_dir is None or not self.run_dir.exists():
                return
            try:
                shutil.rmtree(self.run_dir)
                logging.debug(f"Removed working directory {self.run_dir}")
            except OSError as e:
                logging.warning(
                    f"Could not remove working directory {self.run_dir}: {e}"
                )


def compare_videos(
    video_a: Path,
    video_b: Path,
    output_video: Optional[Path] = None,
    frame_count: int = DEFAULT_FRAME_COUNT,
    threshold: float = DEFAULT_THRESHOLD,
    include_aa: bool = True,
    comparator_type: ComparatorType = ComparatorType.PIXELMATCH,
    diff_mask: bool = False,
    fps: float = DEFAULT_FPS,
    workers: int = 1,
    timeout: Optional[float] = None,
    work_dir: Optional[Path] = None,
    quiet: bool = False,
    on_stage: Optional[Callable[[Stage], None]] = None,
    sampler: Optional[FrameSampler] = None,
    comparator: Optional[PixelComparator] = None,
    encoder: Optional[VideoEncoder] = None,
) -> ComparisonReport:
    """
    Compute the percentage of changed pixels between two videos.

    This is the main entry point for comparing videos.

    Args:
        video_a: First video path
        video_b: Second video path
        output_video: If given, write a difference video to this path
        frame_count: Number of frames to sample from each video
        threshold: Per-pixel tolerance (0-1) for the pixelmatch comparator
        include_aa: Count anti-aliased edge pixels as changed
        comparator_type: Pixel comparator to build when none is passed
        diff_mask: Draw only changed pixels in diff images
        fps: Frame rate of the difference video
        workers: Worker processes for frame pair comparison
        timeout: Maximum seconds to wait for each decode or encode call
        work_dir: Parent directory for the run's temporary files
        quiet: If True, suppress progress bars
        on_stage: Called with each stage the run enters
        sampler: Frame sampler (default: PyAV)
        comparator: Pixel comparator (default: built from comparator_type)
        encoder: Diff video encoder (default: ProRes 4444 via PyAV)

    Returns:
        ComparisonReport for the two videos
    """
    run = ComparisonRun(
        sampler=sampler or PyAVFrameSampler(quiet=quiet),
        comparator=comparator
        or create_comparator(comparator_type, threshold, include_aa, diff_mask),
        encoder=encoder or ProResEncoder(quiet=quiet),
        frame_count=frame_count,
        fps=fps,
        workers=workers,
        timeout=timeout,
        work_dir=work_dir,
        quiet=quiet,
        on_stage=on_stage,
    )
    return run.run(video_a, video_b, output_video)
