"""Error taxonomy for the catalog core.

Every error carries a stable machine `code` and the HTTP-equivalent status the
API layer maps it to. Drift found by diagnostics/repair is reported as data,
never raised.
"""

from typing import Any


class CatalogError(Exception):
    """Base class for expected, caller-visible failures."""

    code = "CATALOG_ERROR"
    status_code = 400

    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(CatalogError):
    """Missing required field or malformed attribute reference."""

    code = "VALIDATION_ERROR"
    status_code = 422


class DuplicateVariant(CatalogError):
    """Combination key (or SKU) already used by a live variant of the product."""

    code = "DUPLICATE_VARIANT"
    status_code = 409


class ExplosionGuardExceeded(CatalogError):
    """Bulk generation would exceed the combination ceiling."""

    code = "VARIANT_EXPLOSION"
    status_code = 422


class InsufficientStock(CatalogError):
    """Stock mutation would break a non-negative or reserved<=total invariant."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409


class NotFound(CatalogError):
    """Referenced variant/inventory does not exist or is soft-deleted."""

    code = "NOT_FOUND"
    status_code = 404


class ConcurrentModification(CatalogError):
    """Version compare-and-swap kept losing after the configured retries."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409
