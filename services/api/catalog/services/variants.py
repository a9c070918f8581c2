"""Variant service: save pipeline, creation, matrix generation, lifecycle.

Save pipeline (runs on every create and update, in this order):
1. rebuild the fast-filter index from current attributes
2. recompute combination_key
3. normalize legacy boolean status into the status enum
4. resolve price into final_price / indexed_price

A key that collides with another live variant of the same product is
rejected with DuplicateVariant; nothing is overwritten.

Bulk generation is guarded: more than `max_variant_combinations` candidates
fails the whole request before anything is written.
"""

from __future__ import annotations

import itertools
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog.models import AttributeValue, Product, Variant, VariantAttribute
from catalog.models.variant import STATUS_ACTIVE, STATUS_ARCHIVED, VARIANT_STATUSES
from catalog.services.combination_key import build_combination_key, build_fast_filter
from catalog.services.errors import (
    DuplicateVariant,
    ExplosionGuardExceeded,
    NotFound,
    ValidationError,
)
from catalog.services.inventory import ensure_for_variant
from catalog.services.pricing import PriceModifier, resolve_price
from catalog.settings import get_settings

logger = logging.getLogger("uvicorn.error")

_UNSET = object()

_STATUS_ALIASES = {
    "inactive": STATUS_ARCHIVED,
    "true": STATUS_ACTIVE,
    "false": STATUS_ARCHIVED,
}


@dataclass
class VariantPricing:
    price: float | None = None  # None -> product base price
    price_override: float | None = None
    mrp: float = 0
    cost_price: float = 0


@dataclass
class VariantOptions:
    sku: str | None = None
    size_id: int | None = None
    color_id: int | None = None
    status: str | bool = STATUS_ACTIVE
    # None -> operation default (single create: eager, matrix: left to the repair sweep)
    ensure_inventory: bool | None = None
    # False skips loading attribute modifiers; price is stored as needing re-resolution
    resolve_modifiers: bool = True


@dataclass
class MatrixResult:
    created: list[Variant] = field(default_factory=list)
    skipped_duplicates: int = 0


@dataclass
class RepriceStats:
    scanned: int = 0
    repriced: int = 0
    still_unresolved: int = 0


def normalize_status(value: str | bool | None) -> str:
    """Map legacy booleans and aliases onto the variant status enum."""
    if value is None:
        return STATUS_ACTIVE
    if isinstance(value, bool):
        return STATUS_ACTIVE if value else STATUS_ARCHIVED
    v = str(value).strip().lower()
    v = _STATUS_ALIASES.get(v, v)
    if v not in VARIANT_STATUSES:
        raise ValidationError(
            f"Unknown variant status: {value!r}",
            detail={"allowed": list(VARIANT_STATUSES)},
        )
    return v


async def get_variant(
    *,
    session: AsyncSession,
    variant_id: int,
    include_deleted: bool = False,
) -> Variant:
    variant = await session.get(Variant, variant_id)
    if variant is None or (variant.is_deleted and not include_deleted):
        raise NotFound(f"Variant {variant_id} not found", detail={"variant_id": variant_id})
    return variant


async def _get_product(session: AsyncSession, product_id: int) -> Product:
    product = await session.get(Product, product_id)
    if product is None or product.is_deleted:
        raise ValidationError(f"Product {product_id} does not exist", detail={"product_id": product_id})
    return product


async def _load_attribute_values(
    session: AsyncSession, value_ids: Iterable[int]
) -> dict[int, AttributeValue]:
    ids = set(value_ids)
    if not ids:
        return {}
    res = await session.execute(select(AttributeValue).where(AttributeValue.id.in_(ids)))
    return {v.id: v for v in res.scalars().all()}


def _validate_pairs(
    pairs: Sequence[tuple[int, int]],
    values: dict[int, AttributeValue],
) -> list[tuple[int, int]]:
    seen_types: set[int] = set()
    clean: list[tuple[int, int]] = []
    for pair in pairs:
        if len(pair) != 2 or pair[0] is None or pair[1] is None:
            raise ValidationError(f"Malformed attribute reference: {pair!r}")
        type_id, value_id = int(pair[0]), int(pair[1])
        value = values.get(value_id)
        if value is None or value.is_deleted:
            raise ValidationError(
                f"Attribute value {value_id} does not exist",
                detail={"attribute_value_id": value_id},
            )
        if value.attribute_type_id != type_id:
            raise ValidationError(
                f"Attribute value {value_id} does not belong to attribute type {type_id}",
                detail={"attribute_type_id": type_id, "attribute_value_id": value_id},
            )
        if type_id in seen_types:
            raise ValidationError(
                f"Attribute type {type_id} given more than once",
                detail={"attribute_type_id": type_id},
            )
        seen_types.add(type_id)
        clean.append((type_id, value_id))
    return clean


def _modifiers_for(
    pairs: Sequence[tuple[int, int]],
    values: dict[int, AttributeValue] | None,
) -> list[PriceModifier] | None:
    if values is None:
        return None
    modifiers: list[PriceModifier] = []
    for _, value_id in pairs:
        value = values.get(value_id)
        if value is None:
            # Broken reference: price cannot be trusted until re-resolved.
            return None
        modifiers.append(PriceModifier(type=value.price_modifier_type, value=value.price_modifier_value))
    return modifiers


def _apply_save_pipeline(
    variant: Variant,
    pairs: Sequence[tuple[int, int]],
    values: dict[int, AttributeValue] | None,
) -> None:
    variant.fast_filter = build_fast_filter(pairs, variant.size_id, variant.color_id)
    variant.combination_key = build_combination_key(
        variant.product_id, pairs, variant.size_id, variant.color_id
    )
    variant.status = normalize_status(variant.status)

    resolution = resolve_price(variant.price, variant.price_override, _modifiers_for(pairs, values))
    if resolution.amount < 0 or math.isnan(resolution.amount):
        raise ValidationError(
            f"Resolved price {resolution.amount} is invalid",
            detail={"price": variant.price, "price_override": variant.price_override},
        )
    variant.final_price = resolution.amount
    variant.indexed_price = resolution.amount
    variant.price_needs_resolution = resolution.needs_resolution


def _set_attributes(variant: Variant, pairs: Sequence[tuple[int, int]]) -> None:
    # Reuse rows per attribute type: replacing them would insert before the
    # old rows are deleted and trip the (variant, type) unique constraint.
    current = {a.attribute_type_id: a for a in variant.attributes} if variant.id is not None else {}
    rows: list[VariantAttribute] = []
    for type_id, value_id in pairs:
        row = current.get(type_id)
        if row is None:
            row = VariantAttribute(attribute_type_id=type_id, attribute_value_id=value_id)
        else:
            row.attribute_value_id = value_id
        rows.append(row)
    variant.attributes = rows


def _default_sku(variant: Variant) -> str | None:
    if variant.combination_key:
        return f"VAR-{variant.product_id}-{variant.combination_key[:8].upper()}"
    if variant.id is not None:
        return f"VAR-{variant.product_id}-{variant.id}"
    return None


async def _assert_identity_free(session: AsyncSession, variant: Variant) -> None:
    """Reject a key or SKU already held by another live variant."""
    if variant.combination_key:
        query = select(Variant.id).where(
            Variant.product_id == variant.product_id,
            Variant.combination_key == variant.combination_key,
            Variant.is_deleted.is_(False),
        )
        if variant.id is not None:
            query = query.where(Variant.id != variant.id)
        clash = (await session.execute(query.limit(1))).scalar_one_or_none()
        if clash is not None:
            raise DuplicateVariant(
                "A variant with the same attribute combination already exists",
                detail={"product_id": variant.product_id, "existing_variant_id": clash},
            )
    if variant.sku:
        query = select(Variant.id).where(Variant.sku == variant.sku, Variant.is_deleted.is_(False))
        if variant.id is not None:
            query = query.where(Variant.id != variant.id)
        clash = (await session.execute(query.limit(1))).scalar_one_or_none()
        if clash is not None:
            raise DuplicateVariant(
                f"SKU {variant.sku} is already used",
                detail={"sku": variant.sku, "existing_variant_id": clash},
            )


def _check_price(value: float | None, name: str) -> None:
    if value is not None and (value < 0 or math.isnan(value)):
        raise ValidationError(f"{name} must be >= 0", detail={name: value})


def _build_variant(
    product: Product,
    pairs: Sequence[tuple[int, int]],
    values: dict[int, AttributeValue] | None,
    pricing: VariantPricing,
    options: VariantOptions,
) -> Variant:
    price = pricing.price if pricing.price is not None else product.base_price
    _check_price(price, "price")
    _check_price(pricing.price_override, "price_override")
    _check_price(pricing.mrp, "mrp")
    _check_price(pricing.cost_price, "cost_price")

    variant = Variant(
        product_id=product.id,
        sku=options.sku.strip().upper() if options.sku else None,
        size_id=options.size_id,
        color_id=options.color_id,
        price=float(price),
        price_override=pricing.price_override,
        mrp=pricing.mrp,
        cost_price=pricing.cost_price,
        status=options.status,
        is_deleted=False,
    )
    _set_attributes(variant, pairs)
    _apply_save_pipeline(variant, pairs, values)
    if variant.sku is None:
        variant.sku = _default_sku(variant)
    return variant


async def create_variant(
    *,
    session: AsyncSession,
    product_id: int,
    attributes: Sequence[tuple[int, int]] = (),
    pricing: VariantPricing | None = None,
    options: VariantOptions | None = None,
) -> Variant:
    """Create one variant.

    Args:
        session: DB session (caller controls commit; rolled back on duplicate insert race).
        product_id: Owning product.
        attributes: (attribute_type_id, attribute_value_id) pairs.
        pricing: Price inputs; price falls back to the product base price.
        options: SKU, legacy slots, status, inventory and modifier handling.

    Returns:
        The flushed variant (with inventory ensured unless disabled).

    Raises:
        ValidationError, DuplicateVariant
    """
    pricing = pricing or VariantPricing()
    options = options or VariantOptions()

    product = await _get_product(session, product_id)
    values = await _load_attribute_values(session, [p[1] for p in attributes if len(p) == 2 and p[1] is not None])
    pairs = _validate_pairs(attributes, values)

    variant = _build_variant(product, pairs, values if options.resolve_modifiers else None, pricing, options)
    await _assert_identity_free(session, variant)

    session.add(variant)
    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        raise DuplicateVariant(
            "A variant with the same attribute combination already exists",
            detail={"product_id": product_id},
        ) from e

    if variant.sku is None:
        variant.sku = _default_sku(variant)
        await session.flush()

    logger.info(
        f"[variants] created variant_id={variant.id} product_id={product_id} "
        f"key={variant.combination_key} final_price={variant.final_price}"
    )

    ensure = True if options.ensure_inventory is None else options.ensure_inventory
    if ensure and variant.status != STATUS_ARCHIVED:
        await ensure_for_variant(session=session, variant=variant)

    return variant


def _matrix_combinations(
    attribute_axes: Sequence[Sequence[int]],
    values: dict[int, AttributeValue],
) -> list[list[tuple[int, int]]]:
    combos: list[list[tuple[int, int]]] = []
    for combo in itertools.product(*attribute_axes):
        pairs = []
        for value_id in combo:
            value = values.get(value_id)
            if value is None:
                raise ValidationError(
                    f"Attribute value {value_id} does not exist",
                    detail={"attribute_value_id": value_id},
                )
            pairs.append((value.attribute_type_id, value.id))
        combos.append(_validate_pairs(pairs, values))
    return combos


async def generate_variant_matrix(
    *,
    session: AsyncSession,
    product_id: int,
    attribute_axes: Sequence[Sequence[int]],
    pricing: VariantPricing | None = None,
    options: VariantOptions | None = None,
) -> MatrixResult:
    """Create one variant per combination of the given attribute-value axes.

    Each axis is a list of attribute value ids of one attribute type, e.g.
    sizes [S, M, L] x colors [Red, Blue] -> 6 variants. Combinations whose key
    already exists (or repeats within the request) are skipped, not failed.

    Raises:
        ExplosionGuardExceeded: more candidates than the configured ceiling;
            nothing is written.
        ValidationError: empty axes or bad attribute references; nothing is written.
    """
    pricing = pricing or VariantPricing()
    options = options or VariantOptions()
    settings = get_settings()

    if not attribute_axes or any(len(axis) == 0 for axis in attribute_axes):
        raise ValidationError("Every attribute axis needs at least one value")

    candidate_count = math.prod(len(axis) for axis in attribute_axes)
    if candidate_count > settings.max_variant_combinations:
        raise ExplosionGuardExceeded(
            f"{candidate_count} combinations requested; limit is {settings.max_variant_combinations}",
            detail={"requested": candidate_count, "limit": settings.max_variant_combinations},
        )

    if options.sku:
        raise ValidationError("A fixed SKU cannot be shared by generated variants")

    for attempt in (1, 2):
        # (Re)loaded per attempt: a rollback expires everything the session held.
        product = await _get_product(session, product_id)
        values = await _load_attribute_values(session, itertools.chain.from_iterable(attribute_axes))
        combos = _matrix_combinations(attribute_axes, values)
        modifier_values = values if options.resolve_modifiers else None

        existing = await session.execute(
            select(Variant.combination_key).where(
                Variant.product_id == product_id,
                Variant.is_deleted.is_(False),
                Variant.combination_key.is_not(None),
            )
        )
        taken = set(existing.scalars().all())

        result = MatrixResult()
        for pairs in combos:
            variant = _build_variant(product, pairs, modifier_values, pricing, options)
            if variant.combination_key in taken:
                result.skipped_duplicates += 1
                continue
            taken.add(variant.combination_key)
            result.created.append(variant)

        session.add_all(result.created)
        try:
            await session.flush()
            break
        except IntegrityError as e:
            # A concurrent writer took one of the keys between the read and the flush.
            await session.rollback()
            if attempt == 2:
                raise DuplicateVariant(
                    "Concurrent variant generation for the same product",
                    detail={"product_id": product_id},
                ) from e
            logger.warning(f"[variants] matrix insert raced product_id={product_id}; retrying")

    if options.ensure_inventory:
        for variant in result.created:
            if variant.status != STATUS_ARCHIVED:
                await ensure_for_variant(session=session, variant=variant)

    logger.info(
        f"[variants] matrix product_id={product_id} candidates={candidate_count} "
        f"created={len(result.created)} skipped_duplicates={result.skipped_duplicates}"
    )
    return result


async def update_variant(
    *,
    session: AsyncSession,
    variant_id: int,
    attributes: Sequence[tuple[int, int]] | None = None,
    price: float | None = None,
    price_override: float | None | object = _UNSET,
    mrp: float | None = None,
    cost_price: float | None = None,
    status: str | bool | None = None,
    sku: str | None = None,
    size_id: int | None | object = _UNSET,
    color_id: int | None | object = _UNSET,
) -> Variant:
    """Edit a live variant and re-run the save pipeline.

    `price_override`, `size_id` and `color_id` accept None to clear them.
    """
    variant = await get_variant(session=session, variant_id=variant_id)

    if attributes is not None:
        values = await _load_attribute_values(session, [p[1] for p in attributes if len(p) == 2 and p[1] is not None])
        pairs = _validate_pairs(attributes, values)
        _set_attributes(variant, pairs)
    else:
        pairs = variant.attribute_pairs
        values = await _load_attribute_values(session, [v for _, v in pairs])

    if price is not None:
        _check_price(price, "price")
        variant.price = float(price)
    if price_override is not _UNSET:
        _check_price(price_override, "price_override")
        variant.price_override = price_override
    if mrp is not None:
        _check_price(mrp, "mrp")
        variant.mrp = mrp
    if cost_price is not None:
        _check_price(cost_price, "cost_price")
        variant.cost_price = cost_price
    if status is not None:
        variant.status = status
    if sku is not None:
        variant.sku = sku.strip().upper() or None
    if size_id is not _UNSET:
        variant.size_id = size_id
    if color_id is not _UNSET:
        variant.color_id = color_id

    _apply_save_pipeline(variant, pairs, values)
    if variant.sku is None:
        variant.sku = _default_sku(variant)
    with session.no_autoflush:
        await _assert_identity_free(session, variant)

    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        raise DuplicateVariant(
            "A variant with the same attribute combination already exists",
            detail={"variant_id": variant_id},
        ) from e

    logger.info(
        f"[variants] updated variant_id={variant.id} key={variant.combination_key} "
        f"final_price={variant.final_price} status={variant.status}"
    )
    return variant


async def soft_delete_variant(
    *,
    session: AsyncSession,
    variant_id: int,
    actor: str = "SYSTEM",
) -> Variant:
    """Mark a variant deleted.

    Its key and SKU become free for a new identical variant. The inventory
    record is left in place and shows up as a zombie until an operator
    retires it.
    """
    variant = await get_variant(session=session, variant_id=variant_id)
    variant.is_deleted = True
    variant.deleted_at = datetime.now(timezone.utc)
    variant.deleted_by = actor
    await session.flush()
    logger.info(f"[variants] soft-deleted variant_id={variant_id} by={actor}")
    return variant


async def restore_variant(*, session: AsyncSession, variant_id: int) -> Variant:
    """Undo a soft delete, provided no live variant took its key or SKU meanwhile."""
    variant = await get_variant(session=session, variant_id=variant_id, include_deleted=True)
    if not variant.is_deleted:
        return variant

    await _assert_identity_free(session, variant)
    variant.is_deleted = False
    variant.deleted_at = None
    variant.deleted_by = None
    await session.flush()

    if variant.status != STATUS_ARCHIVED:
        await ensure_for_variant(session=session, variant=variant)

    logger.info(f"[variants] restored variant_id={variant_id}")
    return variant


async def reprice_variants(
    *,
    session: AsyncSession,
    product_id: int | None = None,
) -> RepriceStats:
    """Re-resolve prices stored while modifier data was unavailable."""
    stats = RepriceStats()
    query = select(Variant).where(
        Variant.price_needs_resolution.is_(True),
        Variant.is_deleted.is_(False),
    )
    if product_id is not None:
        query = query.where(Variant.product_id == product_id)
    variants = (await session.execute(query.order_by(Variant.id))).scalars().all()

    all_value_ids = {a.attribute_value_id for v in variants for a in v.attributes}
    values = await _load_attribute_values(session, all_value_ids)

    for variant in variants:
        stats.scanned += 1
        _apply_save_pipeline(variant, variant.attribute_pairs, values)
        if variant.price_needs_resolution:
            stats.still_unresolved += 1
        else:
            stats.repriced += 1

    await session.flush()
    logger.info(
        f"[variants] reprice product_id={product_id} scanned={stats.scanned} "
        f"repriced={stats.repriced} still_unresolved={stats.still_unresolved}"
    )
    return stats
