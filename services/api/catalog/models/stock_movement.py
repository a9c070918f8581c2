"""Stock movement model (inventory ledger).

Append-only log of every committed stock mutation with a before/after
snapshot, the reason and the actor.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from catalog.stores.postgres import Base

MOVEMENT_STOCK_IN = "STOCK_IN"
MOVEMENT_STOCK_OUT = "STOCK_OUT"
MOVEMENT_RESERVE = "RESERVE"
MOVEMENT_RELEASE = "RELEASE"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"


class StockMovement(Base):
    """One committed stock change."""

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(primary_key=True)

    inventory_id: Mapped[int] = mapped_column(index=True)
    variant_id: Mapped[int] = mapped_column(index=True)

    movement_type: Mapped[str] = mapped_column(String(20), index=True)
    total_delta: Mapped[int] = mapped_column(default=0)
    reserved_delta: Mapped[int] = mapped_column(default=0)

    # Snapshot
    total_before: Mapped[int] = mapped_column()
    reserved_before: Mapped[int] = mapped_column()
    available_before: Mapped[int] = mapped_column()
    total_after: Mapped[int] = mapped_column()
    reserved_after: Mapped[int] = mapped_column()
    available_after: Mapped[int] = mapped_column()

    reason: Mapped[str] = mapped_column(Text)
    actor: Mapped[str] = mapped_column(String(100), default="SYSTEM")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return f"<StockMovement {self.movement_type} inv={self.inventory_id}>"
