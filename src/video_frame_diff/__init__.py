"""
Video Frame Diff - Measure how many pixels differ between two videos.

Frames are sampled from both videos at the same positions, compared pairwise
with a perceptual pixel comparison, and the changed pixels are aggregated
into a single percentage. Optionally, a difference video is rendered.

Example usage:
    from pathlib import Path
    from video_frame_diff import compare_videos

    report = compare_videos(Path("before.mp4"), Path("after.mp4"))
    print(f"Difference: {report.percentage:.2f}%")
"""

from importlib.metadata import version

from .comparison import (
    ExactComparator,
    PixelComparator,
    PixelmatchComparator,
    aggregate,
    compare_frame_pairs,
    compare_images,
    create_comparator,
)
from .encoder import ProResEncoder, VideoEncoder
from .errors import (
    CollaboratorTimeout,
    DecodeError,
    DimensionMismatch,
    EmptyInputError,
    EncodeError,
    FrameDiffError,
    LengthMismatch,
    StorageError,
    UsageError,
)
from .models import (
    ComparatorType,
    ComparisonReport,
    FramePairResult,
    SampledFrameSet,
    Stage,
    VideoInfo,
)
from .pipeline import ComparisonRun, compare_videos
from .video import FrameSampler, PyAVFrameSampler, get_video_info, sampling_stride

__version__ = version("video-frame-diff")

__all__ = [
    # Main function
    "compare_videos",
    "ComparisonRun",
    # Models
    "ComparatorType",
    "ComparisonReport",
    "FramePairResult",
    "SampledFrameSet",
    "Stage",
    "VideoInfo",
    # Errors
    "FrameDiffError",
    "UsageError",
    "DecodeError",
    "LengthMismatch",
    "DimensionMismatch",
    "EmptyInputError",
    "EncodeError",
    "CollaboratorTimeout",
    "StorageError",
    # Frame sampling
    "FrameSampler",
    "PyAVFrameSampler",
    "get_video_info",
    "sampling_stride",
    # Comparison
    "PixelComparator",
    "PixelmatchComparator",
    "ExactComparator",
    "create_comparator",
    "compare_images",
    "compare_frame_pairs",
    "aggregate",
    # Encoding
    "VideoEncoder",
    "ProResEncoder",
    # Version
    "__version__",
]
