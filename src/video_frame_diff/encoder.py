"""Encoding of diff images into a video that keeps the alpha channel."""

import logging
from fractions import Fraction
from pathlib import Path
from typing import Protocol, Sequence

import av
from PIL import Image
from tqdm import tqdm

from .errors import EncodeError

DEFAULT_FPS = 10.0


class VideoEncoder(Protocol):
    """Encodes an ordered sequence of images into one video file."""

    def encode(
        self, frames: Sequence[Path], output: Path, fps: float = DEFAULT_FPS
    ) -> Path:
        ...


class ProResEncoder:
    """
    Encode RGBA images to ProRes 4444 with PyAV.

    The default codec, profile and pixel format carry per-pixel alpha, so
    unchanged (transparent) regions stay distinguishable from changed ones.
    """

    def __init__(
        self,
        codec: str = "prores_ks",
        profile: str = "4444",
        pix_fmt: str = "yuva444p10le",
        quiet: bool = False,
    ) -> None:
        self.codec = codec
        self.profile = profile
        self.pix_fmt = pix_fmt
        self.quiet = quiet

    def encode(
        self, frames: Sequence[Path], output: Path, fps: float = DEFAULT_FPS
    ) -> Path:
        """
        Encode `frames` in order into `output`.

        Args:
            frames: Diff image paths in capture order
            output: Video file to write
            fps: Output frame rate

        Returns:
            The output path

        Raises:
            EncodeError: If there are no frames, or the encoder rejects the
                codec, profile, pixel format or a frame
        """
        if not frames:
            raise EncodeError("No diff frames to encode")
        if fps <= 0:
            raise EncodeError(f"Frame rate must be positive, got {fps}")

        with Image.open(frames[0]) as first:
            width, height = first.size

        logging.debug(
            f"Encoding {len(frames)} frames ({width}x{height}) to {output} with "
            f"{self.codec} profile {self.profile}, {self.pix_fmt} @ {fps} fps"
        )

        try:
            with av.open(str(output), mode="w") as container:
                stream = container.add_stream(
                    self.codec,
                    rate=Fraction(fps).limit_denominator(1001),
                    options={"profile": self.profile} if self.profile else None,
                )
                stream.width = width
                stream.height = height
                stream.pix_fmt = self.pix_fmt

                for path in tqdm(frames, desc="Encoding diff video", disable=self.quiet):
                    with Image.open(path) as image:
                        frame = av.VideoFrame.from_image(image.convert("RGBA"))
                    for packet in stream.encode(frame):
                        container.mux(packet)

                for packet in stream.encode():
                    container.mux(packet)
        except (av.error.FFmpegError, ValueError) as e:
            # PyAV reports unknown codecs and invalid stream settings as ValueError
            raise EncodeError(
                f"Could not encode {output} with {self.codec}: {e}"
            ) from e

        return output
