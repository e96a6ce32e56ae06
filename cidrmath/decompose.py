"""
Range -> CIDR decomposition
- exact: unique minimal set of aligned blocks covering the range exactly
- minimal-cover: fewer blocks, may round outward (lossy)
- constrained: one fixed prefix length, host routes where it does not fit
"""

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from cidrmath.errors import DecompositionDegraded, InvalidInput
from cidrmath.models import CidrBlock, Range, RangeSet
from cidrmath.rangeset import merge

logger = logging.getLogger(__name__)

EXACT_ITERATION_CAP = 1000
MINIMAL_COVER_ITERATION_CAP = 100
# Minimal-cover accepts a block overshooting the range end by blockSize // OVERSHOOT_DIVISOR
OVERSHOOT_DIVISOR = 4


class DecomposeMode(str, enum.Enum):
    EXACT = "exact"
    MINIMAL_COVER = "minimal-cover"
    CONSTRAINED = "constrained"


@dataclass(frozen=True)
class Decomposition:
    blocks: Tuple[CidrBlock, ...]
    mode: DecomposeMode
    degraded: Tuple[DecompositionDegraded, ...] = ()

    def __iter__(self):
        return iter(self.blocks)

    def __len__(self):
        return len(self.blocks)

    @property
    def exact(self) -> bool:
        """True when the blocks cover precisely the input addresses"""
        return self.mode != DecomposeMode.MINIMAL_COVER and not self.degraded


def _exact_blocks(rng: Range, cap: int) -> Tuple[List[CidrBlock], bool]:
    blocks = []
    cursor = rng.start
    iterations = 0
    while cursor <= rng.end and iterations < cap:
        iterations += 1
        # Grow while the next size is still aligned at cursor and fits
        p = 0
        while p < rng.width:
            size = 1 << (p + 1)
            if cursor % size or cursor + size - 1 > rng.end:
                break
            p += 1
        blocks.append(CidrBlock(cursor, rng.width - p, rng.width))
        cursor += 1 << p
    return blocks, cursor > rng.end


def _minimal_cover_blocks(rng: Range, cap: int, overshoot_divisor: int) -> Tuple[List[CidrBlock], bool]:
    blocks = []
    cursor = rng.start
    iterations = 0
    while cursor <= rng.end and iterations < cap:
        iterations += 1
        aligned = cursor
        p = 0
        while p < rng.width:
            size = 1 << (p + 1)
            candidate = cursor - cursor % size
            if candidate + size - 1 > rng.end + size // overshoot_divisor:
                break
            aligned = candidate
            p += 1
        blocks.append(CidrBlock(aligned, rng.width - p, rng.width))
        cursor = aligned + (1 << p)
    return blocks, cursor > rng.end


def _constrained_blocks(rng: Range, prefix_length: int, cap: int) -> Tuple[List[CidrBlock], bool]:
    blocks = []
    size = 1 << (rng.width - prefix_length)
    cursor = rng.start
    iterations = 0
    while cursor <= rng.end and iterations < cap:
        iterations += 1
        if cursor % size == 0 and cursor + size - 1 <= rng.end:
            blocks.append(CidrBlock(cursor, prefix_length, rng.width))
            cursor += size
        else:
            # Host route fallback
            blocks.append(CidrBlock(cursor, rng.width, rng.width))
            cursor += 1
    return blocks, cursor > rng.end


def decompose_range(
    rng: Range,
    mode: Union[DecomposeMode, str] = DecomposeMode.EXACT,
    prefix_length: Optional[int] = None,
    iteration_cap: Optional[int] = None,
    overshoot_divisor: int = OVERSHOOT_DIVISOR,
) -> Decomposition:
    """Convert one range into CIDR blocks, in address order"""
    mode = DecomposeMode(mode)

    if mode == DecomposeMode.EXACT:
        cap = EXACT_ITERATION_CAP if iteration_cap is None else iteration_cap
        blocks, done = _exact_blocks(rng, cap)
    elif mode == DecomposeMode.MINIMAL_COVER:
        if overshoot_divisor < 1:
            raise InvalidInput(f"Overshoot divisor must be >= 1, got {overshoot_divisor}")
        cap = MINIMAL_COVER_ITERATION_CAP if iteration_cap is None else iteration_cap
        blocks, done = _minimal_cover_blocks(rng, cap, overshoot_divisor)
    else:
        if prefix_length is None:
            raise InvalidInput("Constrained mode requires a prefix length")
        if not 0 <= prefix_length <= rng.width:
            raise InvalidInput(f"Prefix length /{prefix_length} out of range for {rng.width}-bit space")
        cap = EXACT_ITERATION_CAP if iteration_cap is None else iteration_cap
        blocks, done = _constrained_blocks(rng, prefix_length, cap)

    if done:
        return Decomposition(tuple(blocks), mode)

    notice = DecompositionDegraded(rng.start, rng.end, rng.width, mode.value, cap)
    logger.debug(notice.message)
    return Decomposition((CidrBlock(rng.start, rng.width, rng.width),), mode, (notice,))


def decompose(
    ranges: Union[RangeSet, Iterable[Range]],
    mode: Union[DecomposeMode, str] = DecomposeMode.EXACT,
    prefix_length: Optional[int] = None,
    iteration_cap: Optional[int] = None,
    overshoot_divisor: int = OVERSHOOT_DIVISOR,
) -> Decomposition:
    """Decompose every range of a normalized set and concatenate in range order"""
    mode = DecomposeMode(mode)
    blocks: List[CidrBlock] = []
    degraded: List[DecompositionDegraded] = []
    for rng in merge(ranges):
        part = decompose_range(rng, mode, prefix_length, iteration_cap, overshoot_divisor)
        blocks.extend(part.blocks)
        degraded.extend(part.degraded)
    return Decomposition(tuple(blocks), mode, tuple(degraded))


def smallest_covering_block(rng: Range) -> CidrBlock:
    """Smallest single CIDR block that contains the whole range"""
    # Common leading bits of start and end
    host_bits = (rng.start ^ rng.end).bit_length()
    return CidrBlock.containing(rng.start, rng.width - host_bits, rng.width)
