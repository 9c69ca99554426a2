"""Failure taxonomy for the tiling pipeline.

Every failure is fatal for the request that raised it. The HTTP layer maps
each class to a status code; nothing below it retries or degrades.
"""

from __future__ import annotations


class TilingError(Exception):
    """Base class for all pipeline failures."""

    kind = "tiling"


class InvalidParameterError(TilingError, ValueError):
    """Raised for unusable request input (tile size, file count, limits)."""

    kind = "invalid_parameter"


class UploadTooLargeError(InvalidParameterError):
    """Raised when an upload exceeds the configured byte ceiling."""

    kind = "upload_too_large"


class ImageDecodeError(TilingError):
    """Raised when uploaded bytes are not a decodable raster image."""

    kind = "decode"


class TileEncodeError(TilingError):
    """Raised when cropping or encoding a single grid cell fails."""

    kind = "encode"

    def __init__(self, message: str, *, row: int, col: int) -> None:
        super().__init__(message)
        self.row = row
        self.col = col


class ArchiveWriteError(TilingError):
    """Raised when the zip container cannot be written."""

    kind = "archive"
