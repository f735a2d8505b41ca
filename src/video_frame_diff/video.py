"""Video decoding utilities: metadata probing and stride-based frame sampling."""

import logging
from pathlib import Path
from typing import Protocol

import av
from av.video.stream import VideoStream
from tqdm import tqdm

from .errors import DecodeError
from .models import SampledFrameSet, VideoInfo

# Sampling assumes the timeline is partitioned into this many frame slots
SAMPLING_SLOTS = 100


def sampling_stride(count: int) -> int:
    """Frame-index modulus used to pick `count` frames."""
    if count < 1:
        raise ValueError(f"Sample count must be at least 1, got {count}")
    return max(1, SAMPLING_SLOTS // count)


def frame_filename(position: int, count: int) -> str:
    """Name of the 1-based `position`-th sampled frame, sortable in capture order."""
    width = max(3, len(str(count)))
    return f"frame_{position:0{width}d}.png"


def stream_info(path: Path, stream: VideoStream) -> VideoInfo:
    """Metadata of an already opened video stream."""
    fps = float(stream.average_rate or stream.base_rate or 25)
    time_base = stream.time_base or 1
    duration = float(stream.duration * time_base) if stream.duration else 0.0
    frame_count = stream.frames or int(duration * fps)

    return VideoInfo(
        path=path,
        fps=fps,
        duration=duration,
        frame_count=frame_count,
        width=stream.width,
        height=stream.height,
    )


def get_video_info(path: Path) -> VideoInfo:
    """Extract video metadata using PyAV."""
    try:
        with av.open(str(path)) as container:
            return stream_info(path, container.streams.video[0])
    except av.error.FFmpegError as e:
        raise DecodeError(f"Could not open video {path}: {e}") from e
    except IndexError as e:
        raise DecodeError(f"No video stream in {path}") from e


class FrameSampler(Protocol):
    """Produces an ordered set of sampled frame images from a video."""

    def sample(self, video: Path, count: int, output_dir: Path) -> SampledFrameSet:
        ...


class PyAVFrameSampler:
    """
    Decode a video with PyAV and keep every Nth frame as a PNG image.

    N is `sampling_stride(count)`. A frame with zero-based decode index `n`
    is kept when `n % N == 0`, until `count` frames have been written.
    """

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet

    def sample(self, video: Path, count: int, output_dir: Path) -> SampledFrameSet:
        """
        Sample `count` frames from `video` into `output_dir`.

        Args:
            video: Video file path
            count: Number of frames to sample
            output_dir: Directory to write frame images to (created if missing)

        Returns:
            SampledFrameSet with exactly `count` frame paths in capture order

        Raises:
            DecodeError: If the video cannot be decoded or is too short
        """
        stride = sampling_stride(count)
        output_dir.mkdir(parents=True, exist_ok=True)
        frame_set = SampledFrameSet(source=video, stride=stride)

        try:
            with av.open(str(video)) as container:
                stream = container.streams.video[0]
                stream.thread_type = "AUTO"

                info = stream_info(video, stream)
                logging.debug(
                    f"{video}: {info.width}x{info.height} @ {info.fps:.2f} fps, "
                    f"{info.duration:.2f}s, ~{info.frame_count} frames"
                )
                logging.debug(
                    f"Sampling {count} frames from {video} with stride {stride}"
                )

                with tqdm(
                    total=count, desc=f"Sampling {video.name}", disable=self.quiet
                ) as progress:
                    for n, frame in enumerate(container.decode(video=0)):
                        if n % stride:
                            continue
                        path = output_dir / frame_filename(len(frame_set) + 1, count)
                        frame.to_image().save(path, format="PNG")
                        frame_set.frames.append(path)
                        progress.update(1)
                        if len(frame_set) >= count:
                            break
        except av.error.FFmpegError as e:
            raise DecodeError(f"Could not decode video {video}: {e}") from e
        except IndexError as e:
            raise DecodeError(f"No video stream in {video}") from e

        if len(frame_set) < count:
            raise DecodeError(
                f"Only {len(frame_set)} of {count} frames could be sampled from "
                f"{video} (stride {stride})"
            )

        return frame_set
