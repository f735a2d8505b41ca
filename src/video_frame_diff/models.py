"""Data models and enums for video frame comparison."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class ComparatorType(str, Enum):
    """Supported pixel comparators."""

    PIXELMATCH = "pixelmatch"  # Perceptual YIQ delta with threshold, default
    EXACT = "exact"  # Any RGBA byte differs


class Stage(str, Enum):
    """Stages of a comparison run."""

    IDLE = "idle"
    EXTRACTING_A = "extracting_a"
    EXTRACTING_B = "extracting_b"
    COMPARING = "comparing"
    ENCODING_DIFF = "encoding_diff"
    DONE = "done"
    FAILED = "failed"

    @property
    def description(self) -> str:
        return _STAGE_DESCRIPTIONS[self]


_STAGE_DESCRIPTIONS = {
    Stage.IDLE: "Idle",
    Stage.EXTRACTING_A: "Extracting frames from the first video",
    Stage.EXTRACTING_B: "Extracting frames from the second video",
    Stage.COMPARING: "Comparing frames",
    Stage.ENCODING_DIFF: "Encoding difference video",
    Stage.DONE: "Done",
    Stage.FAILED: "Failed",
}


@dataclass
class VideoInfo:
    """Basic video metadata."""

    path: Path
    fps: float
    duration: float
    frame_count: int
    width: int
    height: int


@dataclass
class SampledFrameSet:
    """Frames sampled from one video, in capture order."""

    source: Path
    stride: int
    frames: list[Path] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.frames)


@dataclass
class FramePairResult:
    """Changed and total pixel counts for one compared frame pair."""

    index: int
    changed_pixels: int
    total_pixels: int
    diff_path: Optional[Path] = None


@dataclass
class ComparisonReport:
    """Aggregate of all frame pair results for a video pair."""

    changed_pixels: int
    total_pixels: int
    pairs: list[FramePairResult] = field(default_factory=list)
    diff_video: Optional[Path] = None

    @property
    def percentage(self) -> float:
        return self.changed_pixels / self.total_pixels * 100

    @property
    def frame_count(self) -> int:
        return len(self.pairs)

    def to_dict(self) -> dict[str, Any]:
        """Plain representation suitable for JSON output."""
        return {
            "changed_pixels": self.changed_pixels,
            "total_pixels": self.total_pixels,
            "percentage": self.percentage,
            "frame_count": self.frame_count,
            "diff_video": str(self.diff_video) if self.diff_video else None,
            "pairs": [
                {
                    "index": pair.index,
                    "changed_pixels": pair.changed_pixels,
                    "total_pixels": pair.total_pixels,
                }
                for pair in self.pairs
            ],
        }
