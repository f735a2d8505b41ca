"""Pytest configuration and fixtures for video frame diff tests."""

import time
from pathlib import Path
from typing import Optional, Sequence

import av
import numpy as np
import pytest
from PIL import Image

from video_frame_diff import DecodeError, EncodeError, SampledFrameSet

# Synthetic fixture videos: 100 frames, 25 fps, 64x48, lossless PNG in MOV
WIDTH = 64
HEIGHT = 48
FRAME_COUNT = 100
FPS = 25

# Frame (decode index) that differs in the "block" video, and the block size
CHANGED_FRAME = 50
BLOCK_SIZE = 10


def make_frames(
    count: int = FRAME_COUNT,
    width: int = WIDTH,
    height: int = HEIGHT,
    changed_frame: Optional[int] = None,
) -> list[np.ndarray]:
    """Solid-color RGB frames whose color depends on the frame index."""
    frames = []
    for n in range(count):
        frame = np.empty((height, width, 3), dtype=np.uint8)
        frame[:, :] = (n * 2 % 256, 80, 160)
        if n == changed_frame:
            frame[10 : 10 + BLOCK_SIZE, 10 : 10 + BLOCK_SIZE] = 255
        frames.append(frame)
    return frames


def write_video(path: Path, frames: Sequence[np.ndarray], fps: int = FPS) -> Path:
    """Encode RGB frames losslessly so decoded pixels match exactly."""
    height, width, _ = frames[0].shape
    with av.open(str(path), mode="w") as container:
        stream = container.add_stream("png", rate=fps)
        stream.width = width
        stream.height = height
        stream.pix_fmt = "rgb24"
        for array in frames:
            frame = av.VideoFrame.from_ndarray(array, format="rgb24")
            for packet in stream.encode(frame):
                container.mux(packet)
        for packet in stream.encode():
            container.mux(packet)
    return path


@pytest.fixture
def reference_video(tmp_path: Path) -> Path:
    """Synthetic reference video (100 frames, 25 fps, 64x48)."""
    return write_video(tmp_path / "reference.mov", make_frames())


@pytest.fixture
def identical_video(tmp_path: Path) -> Path:
    """Separately encoded copy of the reference content."""
    return write_video(tmp_path / "identical.mov", make_frames())


@pytest.fixture
def block_video(tmp_path: Path) -> Path:
    """Reference content with a white 10x10 block in frame 50."""
    return write_video(
        tmp_path / "block.mov", make_frames(changed_frame=CHANGED_FRAME)
    )


@pytest.fixture
def short_video(tmp_path: Path) -> Path:
    """Only 30 frames, too short for most sample counts."""
    return write_video(tmp_path / "short.mov", make_frames(count=30))


@pytest.fixture
def small_video(tmp_path: Path) -> Path:
    """Reference content at half the resolution (32x24)."""
    return write_video(
        tmp_path / "small.mov", make_frames(width=WIDTH // 2, height=HEIGHT // 2)
    )


@pytest.fixture
def not_a_video(tmp_path: Path) -> Path:
    path = tmp_path / "not_a_video.mov"
    path.write_text("this is not a video")
    return path


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Parent directory for the temporary files of a run."""
    path = tmp_path / "work"
    path.mkdir()
    return path


def solid_image(color: tuple[int, ...], size: tuple[int, int] = (8, 6)) -> Image.Image:
    return Image.new("RGBA", size, color)


class SolidColorSampler:
    """Writes solid-color frames; the color is looked up by video name."""

    def __init__(
        self,
        colors: dict[str, tuple[int, int, int, int]],
        size: tuple[int, int] = (8, 6),
        counts: Optional[dict[str, int]] = None,
    ) -> None:
        self.colors = colors
        self.size = size
        self.counts = counts or {}
        self.calls: list[Path] = []

    def sample(self, video: Path, count: int, output_dir: Path) -> SampledFrameSet:
        self.calls.append(video)
        output_dir.mkdir(parents=True, exist_ok=True)
        frame_set = SampledFrameSet(source=video, stride=1)
        for position in range(1, self.counts.get(video.name, count) + 1):
            path = output_dir / f"frame_{position:03d}.png"
            solid_image(self.colors[video.name], self.size).save(path)
            frame_set.frames.append(path)
        return frame_set


class FailingSampler:
    """Raises DecodeError for one named video."""

    def __init__(self, failing_name: str) -> None:
        self.failing_name = failing_name
        self.inner = SolidColorSampler(
            colors={"a.mov": (0, 0, 0, 255), "b.mov": (0, 0, 0, 255)}
        )

    def sample(self, video: Path, count: int, output_dir: Path) -> SampledFrameSet:
        if video.name == self.failing_name:
            output_dir.mkdir(parents=True, exist_ok=True)
            (output_dir / "frame_001.png").write_bytes(b"partial")
            raise DecodeError(f"Could not decode video {video}")
        return self.inner.sample(video, count, output_dir)


class SlowSampler:
    """Sleeps before delegating, to trigger collaborator timeouts."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.inner = SolidColorSampler(
            colors={"a.mov": (0, 0, 0, 255), "b.mov": (0, 0, 0, 255)}
        )

    def sample(self, video: Path, count: int, output_dir: Path) -> SampledFrameSet:
        time.sleep(self.delay)
        return self.inner.sample(video, count, output_dir)


class RecordingEncoder:
    """Records the frames it receives and writes a placeholder file."""

    def __init__(self) -> None:
        self.frames: list[Path] = []
        self.frame_names: list[str] = []
        self.output: Optional[Path] = None

    def encode(self, frames: Sequence[Path], output: Path, fps: float = 10.0) -> Path:
        self.output = output
        self.frames = list(frames)
        self.frame_names = [frame.name for frame in frames]
        output.write_bytes(b"video")
        return output


class FailingEncoder:
    """Writes a partial file and then fails."""

    def encode(self, frames: Sequence[Path], output: Path, fps: float = 10.0) -> Path:
        output.write_bytes(b"partial")
        raise EncodeError("Encoder rejected profile")
