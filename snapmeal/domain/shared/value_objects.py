"""
Shared value objects.

Immutable, validated domain primitives.
"""

from __future__ import annotations

import time
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Barcode(BaseModel):
    """
    Product barcode value object.

    The code comes from an external scanner and is treated as an opaque
    string; only surrounding whitespace is removed.

    Example:
        >>> barcode = Barcode(value=" 3017620422003 ")
        >>> assert barcode.value == "3017620422003"
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1, max_length=64, description="Product code")

    @field_validator("value")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Ensure not empty or whitespace."""
        if not v.strip():
            raise ValueError("Barcode cannot be empty or whitespace")
        return v.strip()

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __repr__(self) -> str:
        """Debug representation."""
        return f"Barcode('{self.value}')"

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)

    @classmethod
    def from_string(cls, s: str) -> Barcode:
        """Create from string."""
        return cls(value=s)


class MealId(BaseModel):
    """
    Meal record ID value object.

    Format: "<epoch_ms>-<8_hex_chars>". The random suffix keeps two records
    created in the same millisecond apart.

    Example:
        >>> id1 = MealId.generate()
        >>> id2 = MealId.generate()
        >>> assert id1 != id2
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., pattern=r"^\d+-[a-f0-9]{8}$", description="Meal identifier")

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __repr__(self) -> str:
        """Debug representation."""
        return f"MealId('{self.value}')"

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)

    @classmethod
    def generate(cls, now_ms: Optional[int] = None) -> MealId:
        """
        Generate new meal ID.

        Args:
            now_ms: Timestamp in milliseconds (defaults to wall clock)

        Returns:
            New MealId with random suffix
        """
        timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
        return cls(value=f"{timestamp}-{uuid.uuid4().hex[:8]}")

    @classmethod
    def from_string(cls, s: str) -> MealId:
        """Create from string."""
        return cls(value=s)


class FileFingerprint(BaseModel):
    """
    Content fingerprint substitute for an uploaded file.

    Derived from stable file attributes (name, byte size, last-modified
    time). Not a cryptographic hash: two uploads with the same attributes
    are treated as the same analysis request.

    Example:
        >>> fp = FileFingerprint.from_attributes("lunch.jpg", 204800, 1700000000000)
        >>> assert str(fp) == "lunch.jpg-204800-1700000000000"
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(..., min_length=1, description="Fingerprint")

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)

    @classmethod
    def from_attributes(cls, name: str, size: int, last_modified_ms: int) -> FileFingerprint:
        """Build fingerprint from file attributes."""
        return cls(value=f"{name}-{size}-{last_modified_ms}")
