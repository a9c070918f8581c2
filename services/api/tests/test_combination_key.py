import random

from catalog.services.combination_key import build_combination_key, build_fast_filter


def test_key_is_independent_of_attribute_order():
    pairs = [(1, 11), (2, 21), (3, 31), (4, 41)]
    expected = build_combination_key(7, pairs)
    for seed in range(10):
        shuffled = pairs[:]
        random.Random(seed).shuffle(shuffled)
        assert build_combination_key(7, shuffled) == expected


def test_key_is_sha1_hex():
    key = build_combination_key(7, [(1, 11)])
    assert key is not None
    assert len(key) == 40
    int(key, 16)


def test_key_is_scoped_to_product():
    pairs = [(1, 11), (2, 21)]
    assert build_combination_key(7, pairs) != build_combination_key(8, pairs)


def test_key_distinguishes_values():
    assert build_combination_key(7, [(1, 11)]) != build_combination_key(7, [(1, 12)])


def test_no_attributes_means_no_key():
    assert build_combination_key(7, []) is None
    assert build_combination_key(7, [(1, None), (None, 5)]) is None


def test_legacy_slots_take_part_in_the_key():
    base = build_combination_key(7, [(1, 11)])
    with_size = build_combination_key(7, [(1, 11)], legacy_size=3)
    with_color = build_combination_key(7, [(1, 11)], legacy_color=3)
    assert len({base, with_size, with_color}) == 3
    # Legacy-only variants still get a key
    assert build_combination_key(7, [], legacy_size=3, legacy_color=4) is not None


def test_fast_filter_flattens_pairs_and_legacy_slots():
    index = build_fast_filter([(2, 21), (1, 11), (3, None)], legacy_size=5, legacy_color=6)
    assert index == {"1": 11, "2": 21, "size": 5, "color": 6}
