"""
Ports (Interfaces) for pipeline dependencies.

Defines the interfaces the analysis services and the pipeline coordinator
depend on. Infrastructure adapters implement them structurally; tests
substitute AsyncMock objects.

Design Pattern: Ports & Adapters (Hexagonal Architecture)
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from snapmeal.domain.meal.nutrition.models import NutritionItem
from snapmeal.domain.meal.upload.models import ImageUpload
from snapmeal.domain.shared.value_objects import Barcode


@runtime_checkable
class IChatCompletionClient(Protocol):
    """
    Port for the vision/reasoning provider.

    Implementations map transport and status failures onto TransportError,
    ProviderError and ParseError.
    """

    def is_configured(self) -> bool:
        """Check a usable credential is available."""
        ...

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """
        Run a chat completion.

        Returns:
            Raw response text

        Raises:
            ConfigError, TransportError, ProviderError, ParseError
        """
        ...


@runtime_checkable
class INutritionDatabase(Protocol):
    """
    Port for a barcode-addressable nutrition database.

    lookup() returns None when the code is unknown or the record carries no
    name, and raises on transport or provider failure.
    """

    name: str

    async def lookup(self, barcode: Barcode) -> Optional[NutritionItem]:
        """
        Look up a product code.

        Args:
            barcode: Product code

        Returns:
            NutritionItem if usable, None otherwise
        """
        ...


@runtime_checkable
class IFoodSearch(Protocol):
    """Port for free-text food search."""

    async def search_by_description(self, description: str, max_results: int = 5) -> List[NutritionItem]:
        ...


@runtime_checkable
class IImageHost(Protocol):
    """
    Port for image hosting.

    Raises:
        InvalidImageError: File rejected before upload
        UploadError: Upload failed
    """

    async def upload(self, image: ImageUpload) -> str:
        ...
