"""Exception types for the favorites repository and export pipeline."""

from __future__ import annotations


class FavoritesError(Exception):
    """Base class for all saved-stories errors."""


class FavoriteMutationError(FavoritesError):
    """A store mutation (add / remove / clear) failed."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class ExportError(FavoritesError):
    """An export stage failed; the export outcome is reported as failed."""


class AcquireError(ExportError):
    """Query failed or returned no saved stories."""


class SerializeError(ExportError):
    """Rows could not be turned into a document (corrupt columns)."""


class DeliveryError(ExportError):
    """Export file or destination could not be written."""


class PromotionError(FavoritesError):
    """Copy into the shared Downloads location failed."""


class ShareError(FavoritesError):
    """The external share action could not be invoked."""
