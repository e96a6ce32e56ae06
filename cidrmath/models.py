"""
Value types for the range engine
Addresses are plain ints tagged with a bit width (32 or 128)
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from cidrmath.errors import InvalidInput

IPV4_WIDTH = 32
IPV6_WIDTH = 128

_FAMILY_WIDTHS = {4: IPV4_WIDTH, 6: IPV6_WIDTH}
_WIDTH_FAMILIES = {IPV4_WIDTH: 4, IPV6_WIDTH: 6}


def width_for_family(family: int) -> int:
    try:
        return _FAMILY_WIDTHS[family]
    except KeyError:
        raise InvalidInput(f"Unknown address family: {family}") from None


def family_for_width(width: int) -> int:
    try:
        return _WIDTH_FAMILIES[width]
    except KeyError:
        raise InvalidInput(f"Unsupported address width: {width}") from None


@dataclass(frozen=True, order=True)
class Range:
    """Closed interval [start, end] of addresses of one width"""

    start: int
    end: int
    width: int = IPV4_WIDTH

    def __post_init__(self):
        family_for_width(self.width)
        limit = (1 << self.width) - 1
        if self.start < 0 or self.end > limit:
            raise InvalidInput(f"Range {self.start}-{self.end} exceeds {self.width}-bit space")
        if self.start > self.end:
            raise InvalidInput(f"Invalid range: start {self.start} > end {self.end}")

    def __repr__(self):
        return f"<Range /{self.width} {self.start}-{self.end}>"

    @property
    def family(self) -> int:
        return family_for_width(self.width)

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def contains(self, other: "Range") -> bool:
        """Check if other lies entirely within this range"""
        return self.start <= other.start and self.end >= other.end

    def overlaps(self, other: "Range") -> bool:
        return not (self.end < other.start or self.start > other.end)

    def __contains__(self, address: int) -> bool:
        return self.start <= address <= self.end


@dataclass(frozen=True, order=True)
class CidrBlock:
    """Aligned power-of-two block network/prefix_length"""

    network: int
    prefix_length: int
    width: int = IPV4_WIDTH

    def __post_init__(self):
        family_for_width(self.width)
        if not 0 <= self.prefix_length <= self.width:
            raise InvalidInput(f"Prefix length /{self.prefix_length} out of range for {self.width}-bit space")
        if self.network < 0 or self.network > (1 << self.width) - 1:
            raise InvalidInput(f"Network {self.network} exceeds {self.width}-bit space")
        if self.network % self.size:
            raise InvalidInput(f"Network {self.network} is not aligned to /{self.prefix_length}")

    def __repr__(self):
        return f"<CidrBlock /{self.width} {self.network}/{self.prefix_length}>"

    @classmethod
    def containing(cls, address: int, prefix_length: int, width: int) -> "CidrBlock":
        """Block of the given prefix that holds address (host bits cleared)"""
        host_bits = width - prefix_length
        return cls((address >> host_bits) << host_bits, prefix_length, width)

    @property
    def family(self) -> int:
        return family_for_width(self.width)

    @property
    def size(self) -> int:
        return 1 << (self.width - self.prefix_length)

    @property
    def last(self) -> int:
        return self.network + self.size - 1

    def to_range(self) -> Range:
        return Range(self.network, self.last, self.width)


@dataclass(frozen=True)
class RangeSet:
    """
    Normalized ranges: ascending, no overlap, no adjacency.
    Build one with rangeset.merge() unless the input is known to be normalized.
    """

    ranges: Tuple[Range, ...] = ()
    width: Optional[int] = None
    _size: int = field(default=0, init=False, repr=False, compare=False)

    def __post_init__(self):
        ranges = tuple(self.ranges)
        object.__setattr__(self, "ranges", ranges)

        width = self.width
        for rng in ranges:
            if width is None:
                width = rng.width
            elif rng.width != width:
                raise InvalidInput(f"Mixed address widths in one set: /{width} and /{rng.width}")
        object.__setattr__(self, "width", width)

        for prev, cur in zip(ranges, ranges[1:]):
            if cur.start <= prev.end + 1:
                raise InvalidInput(f"RangeSet is not normalized at {prev!r}, {cur!r}")

        object.__setattr__(self, "_size", sum(r.size for r in ranges))

    def __repr__(self):
        return f"<RangeSet /{self.width} {list(self.ranges)}>"

    def __iter__(self) -> Iterator[Range]:
        return iter(self.ranges)

    def __len__(self):
        return len(self.ranges)

    def __bool__(self):
        return bool(self.ranges)

    def __getitem__(self, index):
        return self.ranges[index]

    def __contains__(self, address: int) -> bool:
        return any(address in r for r in self.ranges)

    @property
    def size(self) -> int:
        """Exact number of addresses covered"""
        return self._size
