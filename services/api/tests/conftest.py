"""Shared fixtures: a throwaway SQLite database per test plus a small catalog.

A file database (not :memory:) is used so that separate sessions get separate
connections and really race each other.
"""

from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from catalog.models import AttributeType, AttributeValue, Product
from catalog.models.attribute import MODIFIER_FIXED, MODIFIER_NONE, MODIFIER_PERCENTAGE
from catalog.stores.postgres import Base


@dataclass
class CatalogSeed:
    product: Product
    size: AttributeType
    color: AttributeType
    sizes: dict[str, AttributeValue]
    colors: dict[str, AttributeValue]

    @property
    def size_ids(self) -> list[int]:
        return [v.id for v in self.sizes.values()]

    @property
    def color_ids(self) -> list[int]:
        return [v.id for v in self.colors.values()]

    def pair(self, value: AttributeValue) -> tuple[int, int]:
        return (value.attribute_type_id, value.id)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seed(session: AsyncSession) -> CatalogSeed:
    """Product P (base 100) with sizes S/M/L and colors Red/Blue.

    Modifiers: L is +10 fixed, Blue is +20 percent; the rest have none.
    """
    product = Product(name="Tee", base_price=100)
    size = AttributeType(name="Size", slug="size")
    color = AttributeType(name="Color", slug="color")
    session.add_all([product, size, color])
    await session.flush()

    sizes = {
        "S": AttributeValue(attribute_type_id=size.id, value="S", price_modifier_type=MODIFIER_NONE),
        "M": AttributeValue(attribute_type_id=size.id, value="M", price_modifier_type=MODIFIER_NONE),
        "L": AttributeValue(
            attribute_type_id=size.id, value="L", price_modifier_type=MODIFIER_FIXED, price_modifier_value=10
        ),
    }
    colors = {
        "Red": AttributeValue(attribute_type_id=color.id, value="Red", price_modifier_type=MODIFIER_NONE),
        "Blue": AttributeValue(
            attribute_type_id=color.id, value="Blue", price_modifier_type=MODIFIER_PERCENTAGE, price_modifier_value=20
        ),
    }
    session.add_all([*sizes.values(), *colors.values()])
    await session.commit()

    return CatalogSeed(product=product, size=size, color=color, sizes=sizes, colors=colors)
