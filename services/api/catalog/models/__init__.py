"""SQLAlchemy ORM models.

Models represent database tables:
- products: Parent products
- attribute_types / attribute_values: Attribute registry (with price modifiers)
- variants / variant_attributes: Sellable configurations
- inventory_records / inventory_locations: Stock-of-record per variant
- stock_movements: Inventory ledger
"""

from catalog.models.product import Product
from catalog.models.attribute import AttributeType, AttributeValue
from catalog.models.variant import Variant, VariantAttribute
from catalog.models.inventory import InventoryLocation, InventoryRecord
from catalog.models.stock_movement import StockMovement

__all__ = [
    "Product",
    "AttributeType",
    "AttributeValue",
    "Variant",
    "VariantAttribute",
    "InventoryLocation",
    "InventoryRecord",
    "StockMovement",
]
