"""Video module errors."""

from dataclasses import dataclass


class VideoServiceError(Exception):
    """Base exception for video service errors."""

    pass


class VideoNotFoundError(VideoServiceError):
    """Raised when video is not found."""

    pass


@dataclass(frozen=True)
class ValidationViolation:
    """A single failed upload rule."""

    rule: str
    message: str


class UploadValidationError(VideoServiceError):
    """Raised when an upload fails one or more validation rules."""

    def __init__(self, violations: list[ValidationViolation]):
        self.violations = list(violations)
        super().__init__("; ".join(v.message for v in self.violations))

    @property
    def rules(self) -> list[str]:
        return [v.rule for v in self.violations]


class InvalidStatusTransitionError(VideoServiceError):
    """Raised when a status change is not allowed by the lifecycle."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move video from {current} to {target}")
        self.current = current
        self.target = target
