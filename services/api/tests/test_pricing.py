import pytest

from catalog.services.errors import CatalogError, ValidationError
from catalog.services.pricing import PriceModifier, resolve_price


def test_override_wins_over_everything():
    res = resolve_price(
        100,
        override=150,
        modifiers=[PriceModifier("fixed", 10), PriceModifier("percentage", 20)],
    )
    assert res.amount == 150
    assert res.needs_resolution is False


def test_zero_override_is_respected():
    assert resolve_price(100, override=0, modifiers=[PriceModifier("fixed", 10)]).amount == 0


def test_fixed_and_percentage_apply_to_base():
    res = resolve_price(100, modifiers=[PriceModifier("fixed", 10), PriceModifier("percentage", 20)])
    assert res.amount == 130
    assert res.needs_resolution is False


def test_percentages_do_not_compound():
    res = resolve_price(
        200,
        modifiers=[PriceModifier("percentage", 10), PriceModifier("percentage", 10), PriceModifier("fixed", 5)],
    )
    assert res.amount == 245


def test_empty_modifiers_is_the_base_price():
    res = resolve_price(99.5, modifiers=[])
    assert res.amount == 99.5
    assert res.needs_resolution is False


def test_missing_modifier_data_is_flagged():
    res = resolve_price(100, modifiers=None)
    assert res.amount == 100
    assert res.needs_resolution is True


def test_none_modifier_is_ignored():
    assert resolve_price(100, modifiers=[PriceModifier("none", 50)]).amount == 100


def test_unknown_modifier_type_is_a_validation_error():
    with pytest.raises(ValidationError) as exc:
        resolve_price(100, modifiers=[PriceModifier("FIXED", 1)])
    assert isinstance(exc.value, CatalogError)
    assert exc.value.status_code == 422
    assert exc.value.detail == {"allowed": ["none", "fixed", "percentage"]}
