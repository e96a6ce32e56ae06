"""
Range algebra - merge, subtract, intersect, containment
All inputs and outputs share one address width
"""

import enum
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from cidrmath.errors import InvalidInput
from cidrmath.models import Range, RangeSet

RangesLike = Union[RangeSet, Iterable[Range]]


def _common_width(*widths: Optional[int]) -> Optional[int]:
    found = None
    for width in widths:
        if width is None:
            continue
        if found is None:
            found = width
        elif width != found:
            raise InvalidInput(f"Mixed address widths: /{found} and /{width}")
    return found


def merge(ranges: RangesLike, width: Optional[int] = None) -> RangeSet:
    """Sort and coalesce overlapping/adjacent ranges"""
    if isinstance(ranges, RangeSet):
        _common_width(ranges.width, width)
        return ranges

    ranges = list(ranges)
    width = _common_width(width, *(r.width for r in ranges))
    if not ranges:
        return RangeSet((), width)

    merged: List[List[int]] = []
    for rng in sorted(ranges):
        if not merged:
            merged.append([rng.start, rng.end])
        elif merged[-1][1] + 1 >= rng.start:  # Overlap or adjacent
            merged[-1][1] = max(merged[-1][1], rng.end)
        else:
            merged.append([rng.start, rng.end])
    return RangeSet(tuple(Range(s, e, width) for s, e in merged), width)


def subtract(a: RangesLike, b: RangesLike) -> RangeSet:
    """Every address in a that is not in b"""
    a = merge(a)
    b = merge(b)
    width = _common_width(a.width, b.width)
    if not a or not b:
        return RangeSet(a.ranges, width)

    result: List[Range] = list(a)
    for cut in b:
        refined: List[Range] = []
        for rng in result:
            # No overlap
            if rng.end < cut.start or rng.start > cut.end:
                refined.append(rng)
                continue

            # Cut covers the whole range
            if cut.start <= rng.start and cut.end >= rng.end:
                continue

            # Left part survives
            if rng.start < cut.start:
                refined.append(Range(rng.start, cut.start - 1, width))

            # Right part survives
            if rng.end > cut.end:
                refined.append(Range(cut.end + 1, rng.end, width))
        result = refined

    return merge(result, width)


def intersect(a: RangesLike, b: RangesLike) -> RangeSet:
    """Addresses present in both a and b"""
    a = merge(a)
    b = merge(b)
    width = _common_width(a.width, b.width)

    out: List[Range] = []
    i = j = 0
    while i < len(a) and j < len(b):
        x, y = a[i], b[j]
        lo = max(x.start, y.start)
        hi = min(x.end, y.end)
        if lo <= hi:
            out.append(Range(lo, hi, width))
        if x.end < y.end:
            i += 1
        else:
            j += 1
    return merge(out, width)


class ContainmentStatus(str, enum.Enum):
    INSIDE = "inside"
    EQUAL = "equal"
    PARTIAL = "partial"
    OUTSIDE = "outside"


@dataclass(frozen=True)
class ContainmentCheck:
    candidate: Range
    status: ContainmentStatus
    covered: int
    coverage: float
    gaps: RangeSet
    matching: Tuple[int, ...]  # indexes of containers that bound the candidate alone


def containment(candidate: Range, containers: Sequence[Range]) -> ContainmentCheck:
    """How much of candidate is covered by containers"""
    _common_width(candidate.width, *(c.width for c in containers))

    overlaps: List[Range] = []
    overlapping: List[int] = []
    matching: List[int] = []
    for index, container in enumerate(containers):
        lo = max(candidate.start, container.start)
        hi = min(candidate.end, container.end)
        if lo > hi:
            continue
        overlaps.append(Range(lo, hi, candidate.width))
        overlapping.append(index)
        if container.contains(candidate):
            matching.append(index)

    covered_set = merge(overlaps, candidate.width)
    covered = covered_set.size
    size = candidate.size
    gaps = subtract([candidate], covered_set)

    if covered == 0:
        status = ContainmentStatus.OUTSIDE
    elif covered < size:
        status = ContainmentStatus.PARTIAL
    elif len(overlapping) == 1 and containers[overlapping[0]] == candidate:
        status = ContainmentStatus.EQUAL
    else:
        status = ContainmentStatus.INSIDE

    # Floor to two decimals so a partial never reads as 100
    coverage = (covered * 10000 // size) / 100

    return ContainmentCheck(candidate, status, covered, coverage, gaps, tuple(matching))
