import random

import pytest

from cidrmath.codec import parse_entry
from cidrmath.errors import InvalidInput
from cidrmath.models import Range, RangeSet
from cidrmath.rangeset import ContainmentStatus, containment, intersect, merge, subtract


def rng(text):
    return parse_entry(text).range


def addresses(ranges):
    return {a for r in ranges for a in range(r.start, r.end + 1)}


def random_ranges(gen, count):
    out = []
    for _ in range(count):
        start = gen.randrange(0, 64)
        out.append(Range(start, min(63, start + gen.randrange(0, 10))))
    return out


def test_merge_adjacent_halves():
    merged = merge([rng("10.0.0.128/25"), rng("10.0.0.0/25")])
    assert list(merged) == [rng("10.0.0.0/24")]


def test_merge_keeps_gaps():
    merged = merge([Range(0, 4), Range(6, 9), Range(3, 5)])
    assert list(merged) == [Range(0, 9)]
    merged = merge([Range(0, 4), Range(6, 9)])
    assert list(merged) == [Range(0, 4), Range(6, 9)]


def test_merge_empty_and_idempotent():
    assert not merge([])
    once = merge([Range(8, 9), Range(0, 2), Range(1, 5)])
    assert merge(list(once)) == once
    assert merge(once) is once


def test_merge_rejects_mixed_widths():
    with pytest.raises(InvalidInput):
        merge([Range(0, 1), Range(0, 1, 128)])


def test_subtract_middle():
    out = subtract([rng("10.0.0.0/24")], [rng("10.0.0.64/26")])
    assert list(out) == [rng("10.0.0.0/26"), rng("10.0.0.128/25")]


def test_subtract_everything_and_nothing():
    assert not subtract([Range(0, 9)], [Range(0, 20)])
    assert list(subtract([Range(0, 9)], [])) == [Range(0, 9)]
    assert not subtract([], [Range(0, 9)])


def test_intersect():
    out = intersect([Range(0, 10), Range(20, 30)], [Range(5, 25)])
    assert list(out) == [Range(5, 10), Range(20, 25)]
    assert not intersect([Range(0, 4)], [Range(5, 9)])


def test_set_algebra_matches_brute_force():
    gen = random.Random(7)
    for _ in range(200):
        a = random_ranges(gen, gen.randrange(0, 6))
        b = random_ranges(gen, gen.randrange(0, 6))
        assert addresses(merge(a)) == addresses(a)
        assert addresses(subtract(a, b)) == addresses(a) - addresses(b)
        assert addresses(intersect(a, b)) == addresses(a) & addresses(b)
        # Normalized output
        for r in (merge(a), subtract(a, b), intersect(a, b)):
            assert isinstance(r, RangeSet)
            for prev, cur in zip(r, list(r)[1:]):
                assert cur.start > prev.end + 1


def test_containment_inside():
    check = containment(rng("192.168.1.0/25"), [rng("192.168.1.0/24")])
    assert check.status == ContainmentStatus.INSIDE
    assert check.coverage == 100.0
    assert check.matching == (0,)
    assert not check.gaps


def test_containment_equal():
    check = containment(rng("192.168.1.0/24"), [rng("192.168.1.0/24")])
    assert check.status == ContainmentStatus.EQUAL


def test_containment_covered_by_union_is_inside():
    check = containment(rng("10.0.0.0/24"), [rng("10.0.0.0/25"), rng("10.0.0.128/25")])
    assert check.status == ContainmentStatus.INSIDE
    assert check.matching == ()


def test_containment_partial_reports_gaps():
    check = containment(rng("10.0.0.0/24"), [rng("10.0.0.0/25")])
    assert check.status == ContainmentStatus.PARTIAL
    assert check.coverage == 50.0
    assert list(check.gaps) == [rng("10.0.0.128/25")]


def test_containment_coverage_is_floored():
    check = containment(Range(0, 2), [Range(0, 1)])
    assert check.coverage == 66.66


def test_containment_outside():
    check = containment(rng("10.1.0.0/24"), [rng("10.0.0.0/24")])
    assert check.status == ContainmentStatus.OUTSIDE
    assert check.coverage == 0.0
