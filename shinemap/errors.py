"""Failure classes raised inside the engine. None of them is fatal."""

from __future__ import annotations


class ShineMapError(Exception):
    pass


class SensorError(ShineMapError):
    """The sample stream failed, timed out or delivered an unreadable sample."""


class ConfigLoadError(ShineMapError):
    """Remote config was unreachable or malformed; defaults stay in effect."""


class UploadError(ShineMapError):
    """A batch upload failed. The batch is gone and will not be retried."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
