"""Error kinds raised while comparing videos."""

from typing import Optional

from .models import Stage


class FrameDiffError(Exception):
    """Base class for all comparison pipeline errors.

    The orchestrator tags errors with the stage they happened in; once
    tagged, the message is prefixed with the stage description.
    """

    def __init__(self, message: str, stage: Optional[Stage] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage is None:
            return self.message
        return f"{self.stage.description}: {self.message}"


class UsageError(FrameDiffError):
    """Wrong command-line usage."""


class DecodeError(FrameDiffError):
    """A video could not be opened, decoded or sampled."""


class LengthMismatch(FrameDiffError):
    """Two frame sequences have different lengths."""

    def __init__(self, count_a: int, count_b: int) -> None:
        super().__init__(f"Frame counts do not match: {count_a} != {count_b}")
        self.count_a = count_a
        self.count_b = count_b


class DimensionMismatch(FrameDiffError):
    """A frame pair has different dimensions."""

    def __init__(
        self, index: int, size_a: tuple[int, int], size_b: tuple[int, int]
    ) -> None:
        super().__init__(
            f"Frame dimensions do not match at pair {index}: "
            f"{size_a[0]}x{size_a[1]} != {size_b[0]}x{size_b[1]}"
        )
        self.index = index
        self.size_a = size_a
        self.size_b = size_b


class EmptyInputError(FrameDiffError):
    """Aggregation over zero pixels."""


class EncodeError(FrameDiffError):
    """The difference video could not be encoded."""


class CollaboratorTimeout(FrameDiffError):
    """A decode or encode call did not finish within the allowed time."""


class StorageError(FrameDiffError):
    """Reading or writing frames, diff images or the output video failed."""
