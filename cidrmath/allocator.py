"""
IP Allocator - VLSM planning and next-available search
Placement and free-space search over the range algebra
"""

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from cidrmath.decompose import Decomposition, decompose
from cidrmath.errors import AllocationFailed, DecompositionDegraded, InvalidInput
from cidrmath.models import CidrBlock, Range, RangeSet
from cidrmath.rangeset import merge, subtract

logger = logging.getLogger(__name__)


class AllocationStrategy(str, enum.Enum):
    FIT_BEST = "fit-best"  # largest block first
    PRESERVE_ORDER = "preserve-order"


class AllocationPolicy(str, enum.Enum):
    FIRST_FIT = "first-fit"
    BEST_FIT = "best-fit"


def calculate_required_host_bits(hosts_needed: int) -> int:
    """Minimum host bits for a subnet with hosts_needed usable hosts"""
    if hosts_needed <= 0:
        raise InvalidInput(f"Hosts needed must be greater than 0, got {hosts_needed}")
    # 1 host = /32 host route
    if hosts_needed == 1:
        return 0
    # 2 hosts = /30 point-to-point
    if hosts_needed == 2:
        return 2
    # Network and broadcast take two addresses
    return (hosts_needed + 2 - 1).bit_length()


def hosts_for_bits(host_bits: int) -> int:
    if host_bits == 0:
        return 1
    if host_bits == 2:
        return 2
    return (1 << host_bits) - 2


def calculate_required_prefix(host_count: int, width: int, usable_hosts: bool = True) -> int:
    """Longest prefix whose block holds host_count addresses"""
    if host_count <= 0:
        return width
    required = host_count
    if width == 32 and usable_hosts and host_count > 1:
        required = host_count + 2
    return max(0, width - (required - 1).bit_length())


@dataclass(frozen=True)
class SubnetRequest:
    name: str
    hosts: int


@dataclass(frozen=True)
class Placement:
    request: SubnetRequest
    block: CidrBlock

    @property
    def host_bits(self) -> int:
        return self.block.width - self.block.prefix_length

    @property
    def hosts_provided(self) -> int:
        return hosts_for_bits(self.host_bits)

    @property
    def wasted_hosts(self) -> int:
        return self.hosts_provided - self.request.hosts


@dataclass(frozen=True)
class VlsmPlan:
    parent: CidrBlock
    placements: Tuple[Placement, ...]
    failures: Tuple[AllocationFailed, ...]
    free: RangeSet
    free_blocks: Tuple[CidrBlock, ...]
    degraded: Tuple[DecompositionDegraded, ...] = ()


def allocate_vlsm(
    parent: CidrBlock,
    requests: Sequence[SubnetRequest],
    strategy: Union[AllocationStrategy, str] = AllocationStrategy.FIT_BEST,
    iteration_cap: Optional[int] = None,
) -> VlsmPlan:
    """Place each request at the next address aligned to its block size"""
    strategy = AllocationStrategy(strategy)
    width = parent.width
    sized = [(req, calculate_required_host_bits(req.hosts)) for req in requests]
    if strategy == AllocationStrategy.FIT_BEST:
        # Stable: equal sizes keep caller order
        sized.sort(key=lambda item: item[1], reverse=True)

    placements: List[Placement] = []
    failures: List[AllocationFailed] = []
    cursor = parent.network
    for req, host_bits in sized:
        prefix_length = width - host_bits
        if host_bits > width - parent.prefix_length:
            failures.append(AllocationFailed(req.name, prefix_length, "larger than the parent network"))
            logger.debug(failures[-1].message)
            continue

        block_size = 1 << host_bits
        aligned = -(-cursor // block_size) * block_size
        if aligned + block_size - 1 > parent.last:
            failures.append(AllocationFailed(req.name, prefix_length))
            logger.debug(failures[-1].message)
            continue

        placements.append(Placement(req, CidrBlock(aligned, prefix_length, width)))
        cursor = aligned + block_size

    free = subtract([parent.to_range()], [p.block.to_range() for p in placements])
    leftover = decompose(free, iteration_cap=iteration_cap)
    return VlsmPlan(parent, tuple(placements), tuple(failures), free, leftover.blocks, leftover.degraded)


@dataclass(frozen=True)
class FreeBlock:
    block: CidrBlock
    pool: int  # index of the pool it came from


@dataclass(frozen=True)
class Candidate:
    block: CidrBlock
    pool: int
    gap_size: int


class IPAllocator:
    """Free-space tracker over one or more pools of a single address width"""

    def __init__(self, pools: Iterable[Range], iteration_cap: Optional[int] = None):
        self.pools: List[Range] = list(pools)
        if not self.pools:
            raise InvalidInput("At least one pool is required")
        self.width = merge(self.pools).width
        self.iteration_cap = iteration_cap
        self.allocations: List[Range] = []
        self.used_ranges: RangeSet = RangeSet((), self.width)

    def __repr__(self):
        return f"<IPAllocator /{self.width} pools={len(self.pools)} used={len(self.used_ranges)}>"

    def add_used_range(self, rng: Range):
        """Record an allocated range"""
        self.allocations.append(rng)
        self.used_ranges = merge(self.allocations, self.width)

    def is_available(self, rng: Range) -> bool:
        """Check if a range is inside a pool and overlaps nothing allocated"""
        if not any(pool.contains(rng) for pool in self.pools):
            return False
        return not any(used.overlaps(rng) for used in self.used_ranges)

    def outside_pools(self) -> List[Range]:
        """Allocations not inside any single pool"""
        return [a for a in self.allocations if not any(p.contains(a) for p in self.pools)]

    def _free_space(self) -> Iterator[Tuple[int, Decomposition]]:
        for index, pool in enumerate(self.pools):
            overlapping = [u for u in self.used_ranges if u.overlaps(pool)]
            yield index, decompose(subtract([pool], overlapping), iteration_cap=self.iteration_cap)

    def free_blocks(self) -> List[FreeBlock]:
        """CIDR blocks of each pool minus its overlapping allocations"""
        return [FreeBlock(block, index) for index, free in self._free_space() for block in free.blocks]

    def degraded(self) -> List[DecompositionDegraded]:
        """Notices for free space whose decomposition hit the iteration cap"""
        return [notice for _, free in self._free_space() for notice in free.degraded]

    def candidates(
        self,
        prefix_length: int,
        policy: Union[AllocationPolicy, str] = AllocationPolicy.FIRST_FIT,
        max_candidates: Optional[int] = None,
    ) -> List[Candidate]:
        """Every aligned subnet of prefix_length inside free space, ordered by policy"""
        policy = AllocationPolicy(policy)
        if not 0 <= prefix_length <= self.width:
            raise InvalidInput(f"Invalid prefix /{prefix_length}. Must be 0-{self.width}")

        subnet_size = 1 << (self.width - prefix_length)
        found: List[Candidate] = []
        for free in self.free_blocks():
            start, end = free.block.network, free.block.last
            gap_size = free.block.size
            addr = (start // subnet_size) * subnet_size
            taken = 0
            # Within one block every candidate shares gap_size, so the first
            # max_candidates of each block are enough for either policy
            while addr + subnet_size - 1 <= end:
                if max_candidates is not None and taken >= max_candidates:
                    break
                if addr >= start:
                    found.append(Candidate(CidrBlock(addr, prefix_length, self.width), free.pool, gap_size))
                    taken += 1
                addr += subnet_size

        if policy == AllocationPolicy.FIRST_FIT:
            found.sort(key=lambda c: c.block.network)
        else:
            # Smallest viable gap first
            found.sort(key=lambda c: (c.gap_size, c.block.network))

        if max_candidates is not None:
            found = found[:max_candidates]
        return found

    def _allocate(self, prefix_length: int, policy: AllocationPolicy) -> Optional[CidrBlock]:
        found = self.candidates(prefix_length, policy, 1)
        if not found:
            return None
        block = found[0].block
        self.add_used_range(block.to_range())
        return block

    def find_first_fit(self, prefix_length: int) -> Optional[CidrBlock]:
        """Allocate the lowest free subnet of prefix_length"""
        return self._allocate(prefix_length, AllocationPolicy.FIRST_FIT)

    def find_best_fit(self, prefix_length: int) -> Optional[CidrBlock]:
        """Allocate a subnet of prefix_length from the smallest gap that holds it"""
        return self._allocate(prefix_length, AllocationPolicy.BEST_FIT)
