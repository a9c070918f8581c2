"""Variant identity: combination key and matrix filter index.

Combination key:
- token per attribute pair: "{type_id}:{value_id}"
- legacy slots: "LEGACY_SIZE:{id}", "LEGACY_COLOR:{id}"
- tokens sorted, joined with "|", prefixed with "{product_id}|", SHA-1 hex

Sorting makes the key independent of the order attributes were picked in.
Hashing keeps the unique index bounded and opaque.
"""

import hashlib
from collections.abc import Iterable

LEGACY_SIZE = "LEGACY_SIZE"
LEGACY_COLOR = "LEGACY_COLOR"

AttributePair = tuple[int | str | None, int | str | None]


def _tokens(
    attribute_pairs: Iterable[AttributePair],
    legacy_size: int | str | None,
    legacy_color: int | str | None,
) -> list[str]:
    tokens = [
        f"{type_id}:{value_id}"
        for type_id, value_id in attribute_pairs
        if type_id is not None and value_id is not None
    ]
    if legacy_size is not None:
        tokens.append(f"{LEGACY_SIZE}:{legacy_size}")
    if legacy_color is not None:
        tokens.append(f"{LEGACY_COLOR}:{legacy_color}")
    return tokens


def build_combination_key(
    product_id: int | str,
    attribute_pairs: Iterable[AttributePair],
    legacy_size: int | str | None = None,
    legacy_color: int | str | None = None,
) -> str | None:
    """Compute the deterministic identity hash of a variant.

    Args:
        product_id: Owning product.
        attribute_pairs: (attribute_type_id, attribute_value_id) pairs, any order.
            Pairs with a missing end are ignored.
        legacy_size: Optional legacy size reference.
        legacy_color: Optional legacy color reference.

    Returns:
        40-char SHA-1 hex digest, or None when the variant has no
        distinguishing attributes (such variants are not deduplicated).

    Example:
        >>> build_combination_key(7, [(2, 11), (1, 5)]) == build_combination_key(7, [(1, 5), (2, 11)])
        True
    """
    tokens = _tokens(attribute_pairs, legacy_size, legacy_color)
    if not tokens:
        return None
    tokens.sort()
    raw = f"{product_id}|{'|'.join(tokens)}"
    return hashlib.sha1(raw.encode()).hexdigest()


def build_fast_filter(
    attribute_pairs: Iterable[AttributePair],
    legacy_size: int | None = None,
    legacy_color: int | None = None,
) -> dict[str, int]:
    """Flatten attributes into {type_id | "size" | "color": value_id} for matrix filtering."""
    index: dict[str, int] = {}
    for type_id, value_id in attribute_pairs:
        if type_id is None or value_id is None:
            continue
        index[str(type_id)] = int(value_id)
    if legacy_size is not None:
        index["size"] = int(legacy_size)
    if legacy_color is not None:
        index["color"] = int(legacy_color)
    return index
