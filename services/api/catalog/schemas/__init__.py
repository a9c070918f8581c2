"""Pydantic schemas for API request/response validation."""

from catalog.schemas.common import ErrorDetail, ErrorResponse
from catalog.schemas.inventory import (
    AdjustStockRequest,
    DiagnosticsResponse,
    EnsureResponse,
    InventoryOut,
    RepairRequest,
    RepairResponse,
)
from catalog.schemas.variant import (
    AttributePair,
    CreateVariantRequest,
    GenerateMatrixRequest,
    MatrixResponse,
    PricingIn,
    VariantOut,
)

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "AdjustStockRequest",
    "DiagnosticsResponse",
    "EnsureResponse",
    "InventoryOut",
    "RepairRequest",
    "RepairResponse",
    "AttributePair",
    "CreateVariantRequest",
    "GenerateMatrixRequest",
    "MatrixResponse",
    "PricingIn",
    "VariantOut",
]
