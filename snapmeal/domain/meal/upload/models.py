"""Uploaded image model."""

from __future__ import annotations

import mimetypes
import time
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field

from snapmeal.domain.shared.errors import InvalidImageError
from snapmeal.domain.shared.value_objects import FileFingerprint

MAX_IMAGE_BYTES = 10 * 1024 * 1024


class ImageUpload(BaseModel):
    """
    Image file submitted for analysis.

    Example:
        >>> upload = ImageUpload(
        ...     filename="lunch.jpg",
        ...     content=b"...",
        ...     content_type="image/jpeg",
        ...     last_modified_ms=1700000000000,
        ... )
        >>> str(upload.fingerprint())
        'lunch.jpg-3-1700000000000'
    """

    model_config = ConfigDict(frozen=True)

    filename: str = Field(..., min_length=1)
    content: bytes
    content_type: str
    last_modified_ms: int = Field(..., ge=0)

    @property
    def size(self) -> int:
        return len(self.content)

    def fingerprint(self) -> FileFingerprint:
        """Fingerprint from name, size and last-modified time."""
        return FileFingerprint.from_attributes(self.filename, self.size, self.last_modified_ms)

    def validate_image(self) -> None:
        """
        Check the file is acceptable for upload.

        Raises:
            InvalidImageError: If empty, not an image, or larger than 10MB
        """
        if self.size == 0:
            raise InvalidImageError("No file provided")
        if not self.content_type.startswith("image/"):
            raise InvalidImageError("File must be an image")
        if self.size > MAX_IMAGE_BYTES:
            raise InvalidImageError("File size too large (max 10MB)")

    @classmethod
    def from_path(cls, path: Path) -> ImageUpload:
        """Read an image from disk, using the file's mtime."""
        content_type, _ = mimetypes.guess_type(path.name)
        stat = path.stat()
        return cls(
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type or "application/octet-stream",
            last_modified_ms=int(stat.st_mtime * 1000) if stat.st_mtime else int(time.time() * 1000),
        )
