"""Protocol definitions for Kiln.

This module defines the interfaces the pipeline depends on, so processors
and kit sources can be swapped for fakes in tests.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .asset import Asset
    from .context import Context
    from .kits import ResolvedKit


@runtime_checkable
class AssetProcessor(Protocol):
    """Protocol for processors that transform assets in place.

    A processor may read and write the Context it is given, replace the
    asset's contents, and change its media type. Processors skip assets they
    don't apply to by returning without changes.
    """

    @abstractmethod
    def process(self, context: Context, asset: Asset) -> None:
        """Process an asset.

        Args:
            context: Build context for this asset's run.
            asset: Asset to transform.

        Raises:
            AssetDeferred: To retry the asset in a later build pass.
            ProcessingError: On any other failure.
        """
        ...


@runtime_checkable
class KitProvider(Protocol):
    """Protocol for sources of kits mounted into a build."""

    @abstractmethod
    def resolve(self) -> list[ResolvedKit]:
        """Return every kit as a local directory plus its mount prefix."""
        ...
