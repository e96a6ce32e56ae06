"""
Batch facade over the range engine
Newline-delimited text in, structured results out.
A bad line is reported in errors and never aborts the batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from cidrmath.allocator import (
    AllocationPolicy,
    AllocationStrategy,
    IPAllocator,
    SubnetRequest,
    allocate_vlsm,
    calculate_required_prefix,
)
from cidrmath.codec import Entry, format_address, format_block, format_range, parse_block, parse_entry
from cidrmath.config import Settings
from cidrmath.decompose import DecomposeMode, Decomposition, decompose, smallest_covering_block
from cidrmath.errors import AllocationOutsidePools, InvalidInput, ParseError
from cidrmath.models import IPV4_WIDTH, IPV6_WIDTH, CidrBlock, Range, RangeSet, width_for_family
from cidrmath.rangeset import ContainmentStatus, containment, intersect, merge, subtract

logger = logging.getLogger(__name__)


@dataclass
class SummaryResult:
    ipv4: List[str] = field(default_factory=list)
    ipv6: List[str] = field(default_factory=list)
    stats: Dict[str, Union[int, str]] = field(default_factory=dict)
    exact: bool = True
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    notices: list = field(default_factory=list)


@dataclass
class DiffResult:
    ipv4: List[str] = field(default_factory=list)
    ipv6: List[str] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)
    exact: bool = True
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    notices: list = field(default_factory=list)


@dataclass
class OverlapResult:
    has_overlap: bool = False
    ipv4: List[str] = field(default_factory=list)
    ipv6: List[str] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


@dataclass
class ContainmentItem:
    input: str
    status: ContainmentStatus
    coverage: float
    gaps: List[str]
    matching_containers: List[str]


@dataclass
class ContainmentResult:
    checks: List[ContainmentItem] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


@dataclass
class AlignmentSuggestion:
    type: str  # larger | smaller | split
    description: str
    cidrs: List[str]
    efficiency: Optional[int] = None


@dataclass
class AlignmentItem:
    input: str
    kind: str
    is_aligned: bool
    target_prefix: int
    aligned_cidr: Optional[str] = None
    reason: Optional[str] = None
    suggestions: List[AlignmentSuggestion] = field(default_factory=list)


@dataclass
class AlignmentResult:
    checks: List[AlignmentItem] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


@dataclass
class VlsmSubnet:
    name: str
    hosts_needed: int
    hosts_provided: int
    cidr: str
    prefix_length: int
    network: str
    broadcast: str
    first_usable: str
    last_usable: str
    mask: str
    wildcard_mask: Optional[str]
    wasted_hosts: int


@dataclass
class VlsmResult:
    parent: Optional[str] = None
    subnets: List[VlsmSubnet] = field(default_factory=list)
    free_blocks: List[str] = field(default_factory=list)
    stats: Dict[str, Union[int, str, None]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    notices: list = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class AvailableSubnet:
    cidr: str
    network: str
    broadcast: str
    parent_pool: str
    size: int
    usable_hosts: int
    gap_size: int
    first_host: str
    last_host: str


@dataclass
class NextAvailableResult:
    candidates: List[AvailableSubnet] = field(default_factory=list)
    free_space: List[Tuple[str, int, str]] = field(default_factory=list)  # (cidr, size, pool)
    stats: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    notices: list = field(default_factory=list)


def _split_lines(text: str) -> List[str]:
    return [line for line in (text or "").strip().splitlines() if line.strip()]


def _by_family(entries: Sequence[Entry]) -> Tuple[List[Range], List[Range]]:
    v4 = [e.range for e in entries if e.family == 4]
    v6 = [e.range for e in entries if e.family == 6]
    return v4, v6


def parse_requests(text: str) -> Tuple[List[SubnetRequest], List[str]]:
    """Parse 'name hosts', 'name,hosts' or bare 'hosts' lines"""
    requests: List[SubnetRequest] = []
    errors: List[str] = []
    for index, line in enumerate(_split_lines(text), start=1):
        parts = line.replace(",", " ").replace(":", " ").split()
        if len(parts) == 1:
            name, hosts_text = f"subnet-{index}", parts[0]
        elif len(parts) == 2:
            name, hosts_text = parts
        else:
            errors.append(f"Line {index}: Expected 'name hosts', got {line.strip()!r}")
            continue
        if not (hosts_text.isascii() and hosts_text.isdigit()) or int(hosts_text) <= 0:
            errors.append(f"Line {index}: Hosts needed must be a positive integer, got {hosts_text!r}")
            continue
        requests.append(SubnetRequest(name, int(hosts_text)))
    return requests, errors


class CidrEngine:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    # ============ HELPERS ============

    def parse_lines(self, text: str, label: Optional[str] = None) -> Tuple[List[Entry], List[str]]:
        """Parse every line, collecting errors instead of stopping"""
        entries: List[Entry] = []
        errors: List[str] = []
        where = f"{label} line" if label else "Line"
        for index, line in enumerate(_split_lines(text), start=1):
            try:
                entries.append(parse_entry(line))
            except ParseError as e:
                logger.debug("%s %d rejected: %s", where, index, e.message)
                errors.append(f"{where} {index}: {e.message}")
        return entries, errors

    def _decompose(
        self, ranges: RangeSet, mode: DecomposeMode, prefix_length: Optional[int] = None
    ) -> Decomposition:
        engine = self.settings.engine
        cap = engine.minimal_cover_iteration_cap if mode == DecomposeMode.MINIMAL_COVER else engine.exact_iteration_cap
        return decompose(ranges, mode, prefix_length, cap, engine.overshoot_divisor)

    def _present(self, blocks) -> List[str]:
        texts = [format_block(b) for b in blocks]
        if self.settings.engine.sort_output:
            texts.sort()
        return texts

    def _display_total(self, *sets: RangeSet) -> str:
        cap = self.settings.engine.display_cap
        return f"{sum(min(r.size, cap) for s in sets for r in s):,}"

    # ============ SUMMARIZE ============

    def summarize(self, text: str, mode: Union[DecomposeMode, str] = DecomposeMode.EXACT) -> SummaryResult:
        result = SummaryResult()
        try:
            mode = DecomposeMode(mode)
            if mode == DecomposeMode.CONSTRAINED:
                raise InvalidInput("Summarize supports exact and minimal-cover modes")
        except (ValueError, InvalidInput) as e:
            result.errors.append(str(e))
            return result

        entries, result.errors = self.parse_lines(text)
        v4, v6 = _by_family(entries)
        merged4 = merge(v4, IPV4_WIDTH)
        merged6 = merge(v6, IPV6_WIDTH)

        d4 = self._decompose(merged4, mode)
        d6 = self._decompose(merged6, mode)
        result.ipv4 = self._present(d4)
        result.ipv6 = self._present(d6)
        result.notices = list(d4.degraded + d6.degraded)
        result.warnings = [n.message for n in result.notices]
        if mode == DecomposeMode.MINIMAL_COVER and (result.ipv4 or result.ipv6):
            result.warnings.append("Minimal-cover output may include addresses outside the input")
        result.exact = d4.exact and d6.exact

        result.stats = {
            "original_ipv4_count": len(v4),
            "original_ipv6_count": len(v6),
            "summarized_ipv4_count": len(result.ipv4),
            "summarized_ipv6_count": len(result.ipv6),
            "total_addresses_covered": self._display_total(merged4, merged6),
            "total_addresses": merged4.size + merged6.size,
        }
        return result

    def decompose(
        self,
        text: str,
        mode: Union[DecomposeMode, str] = DecomposeMode.EXACT,
        prefix_length: Optional[int] = None,
    ) -> DiffResult:
        """Range to CIDR conversion of every input line"""
        return self.difference(text, "", mode, prefix_length)

    # ============ DIFFERENCE ============

    def difference(
        self,
        text_a: str,
        text_b: str,
        alignment: Union[DecomposeMode, str] = DecomposeMode.EXACT,
        constrained_prefix: Optional[int] = None,
    ) -> DiffResult:
        """A - B per family"""
        result = DiffResult()
        try:
            alignment = DecomposeMode(alignment)
        except ValueError as e:
            result.errors.append(str(e))
            return result
        if alignment == DecomposeMode.CONSTRAINED and constrained_prefix is None:
            result.errors.append("Constrained alignment requires a prefix length")
            return result

        entries_a, errors_a = self.parse_lines(text_a, "Set A")
        entries_b, errors_b = self.parse_lines(text_b, "Set B")
        result.errors = errors_a + errors_b

        a4, a6 = _by_family(entries_a)
        b4, b6 = _by_family(entries_b)
        merged_a4, merged_a6 = merge(a4, IPV4_WIDTH), merge(a6, IPV6_WIDTH)
        merged_b4, merged_b6 = merge(b4, IPV4_WIDTH), merge(b6, IPV6_WIDTH)
        out4 = subtract(merged_a4, merged_b4)
        out6 = subtract(merged_a6, merged_b6)

        decompositions = []
        for family, out in ((4, out4), (6, out6)):
            if not out:
                decompositions.append(Decomposition((), alignment))
                continue
            try:
                decompositions.append(self._decompose(out, alignment, constrained_prefix))
            except InvalidInput as e:
                result.errors.append(f"IPv{family}: {e}")
                decompositions.append(Decomposition((), alignment))
        d4, d6 = decompositions

        result.ipv4 = self._present(d4)
        result.ipv6 = self._present(d6)
        result.notices = list(d4.degraded + d6.degraded)
        result.warnings = [n.message for n in result.notices]
        result.exact = d4.exact and d6.exact

        total_a = merged_a4.size + merged_a6.size
        total_out = out4.size + out6.size
        result.stats = {
            "input_a_count": len(entries_a),
            "input_a_addresses": total_a,
            "input_b_count": len(entries_b),
            "input_b_addresses": merged_b4.size + merged_b6.size,
            "output_count": len(result.ipv4) + len(result.ipv6),
            "output_addresses": total_out,
            "removed_addresses": total_a - total_out,
            "efficiency": total_out * 100 // total_a if total_a else 0,
        }
        return result

    # ============ OVERLAP ============

    def overlap(self, text_a: str, text_b: str, merge_inputs: bool = True) -> OverlapResult:
        """A intersect B per family"""
        result = OverlapResult()
        entries_a, errors_a = self.parse_lines(text_a, "Set A")
        entries_b, errors_b = self.parse_lines(text_b, "Set B")
        result.errors = errors_a + errors_b

        a4, a6 = _by_family(entries_a)
        b4, b6 = _by_family(entries_b)
        # The intersection is the same either way; merge_inputs only changes set totals
        set_a = [merge(a4, IPV4_WIDTH), merge(a6, IPV6_WIDTH)]
        set_b = [merge(b4, IPV4_WIDTH), merge(b6, IPV6_WIDTH)]
        inter4 = intersect(set_a[0], set_b[0])
        inter6 = intersect(set_a[1], set_b[1])

        result.ipv4 = self._present(self._decompose(inter4, DecomposeMode.EXACT))
        result.ipv6 = self._present(self._decompose(inter6, DecomposeMode.EXACT))
        result.has_overlap = bool(inter4 or inter6)

        if merge_inputs:
            total_a = sum(s.size for s in set_a)
            total_b = sum(s.size for s in set_b)
        else:
            total_a = sum(r.size for r in a4 + a6)
            total_b = sum(r.size for r in b4 + b6)
        total_inter = inter4.size + inter6.size
        smaller = min(total_a, total_b)
        result.stats = {
            "set_a_count": len(entries_a),
            "set_a_addresses": total_a,
            "set_b_count": len(entries_b),
            "set_b_addresses": total_b,
            "intersection_count": len(result.ipv4) + len(result.ipv6),
            "intersection_addresses": total_inter,
            "overlap_percent": total_inter * 100 // smaller if smaller else 0,
        }
        return result

    # ============ CONTAINMENT ============

    def containment(self, containers_text: str, candidates_text: str, merge_containers: bool = True) -> ContainmentResult:
        """Check every candidate (set B) against the containers (set A)"""
        result = ContainmentResult()
        containers, errors_a = self.parse_lines(containers_text, "Set A")
        candidates, errors_b = self.parse_lines(candidates_text, "Set B")
        result.errors = errors_a + errors_b

        by_family: Dict[int, Tuple[List[Range], List[str]]] = {}
        for family, width in ((4, IPV4_WIDTH), (6, IPV6_WIDTH)):
            entries = [e for e in containers if e.family == family]
            if merge_containers:
                merged = merge([e.range for e in entries], width)
                by_family[family] = (list(merged), [format_range(r) for r in merged])
            else:
                by_family[family] = ([e.range for e in entries], [e.text for e in entries])

        counts = {status: 0 for status in ContainmentStatus}
        for candidate in candidates:
            ranges, labels = by_family[candidate.family]
            check = containment(candidate.range, ranges)
            counts[check.status] += 1
            result.checks.append(
                ContainmentItem(
                    input=candidate.text,
                    status=check.status,
                    coverage=check.coverage,
                    gaps=self._present(self._decompose(check.gaps, DecomposeMode.EXACT)),
                    matching_containers=[labels[i] for i in check.matching],
                )
            )

        container_total = sum(merge(by_family[f][0]).size for f in (4, 6))
        result.stats = {
            "set_a_count": len(containers),
            "set_a_addresses": container_total,
            "total_checked": len(result.checks),
            **{status.value: count for status, count in counts.items()},
        }
        return result

    # ============ ALIGNMENT ============

    def check_alignment(self, text: str, target_prefix: int) -> AlignmentResult:
        """Is each entry exactly one aligned block of target_prefix?"""
        result = AlignmentResult()
        entries, result.errors = self.parse_lines(text)

        for entry in entries:
            width = entry.range.width
            if not 0 <= target_prefix <= width:
                result.errors.append(f"Invalid prefix /{target_prefix} for IPv{entry.family}: {entry.text}")
                continue
            result.checks.append(self._check_alignment(entry, target_prefix))

        aligned = sum(1 for c in result.checks if c.is_aligned)
        total = len(result.checks)
        result.stats = {
            "total_inputs": total,
            "aligned_inputs": aligned,
            "misaligned_inputs": total - aligned,
            "alignment_rate": round(aligned * 100 / total) if total else 0,
        }
        return result

    def _check_alignment(self, entry: Entry, target_prefix: int) -> AlignmentItem:
        rng = entry.range
        family = entry.family
        expected = CidrBlock.containing(rng.start, target_prefix, rng.width)
        item = AlignmentItem(entry.text, entry.kind, False, target_prefix)

        if rng.start == expected.network and rng.end == expected.last:
            item.is_aligned = True
            item.aligned_cidr = format_block(expected)
            return item

        start_ok = rng.start == expected.network
        end_ok = rng.end == expected.last
        if not start_ok and not end_ok:
            item.reason = (
                f"Range doesn't align to /{target_prefix} boundary. Expected: "
                f"{format_address(expected.network, family)}-{format_address(expected.last, family)}"
            )
        elif not start_ok:
            item.reason = (
                f"Start address doesn't align to /{target_prefix} boundary. "
                f"Expected start: {format_address(expected.network, family)}"
            )
        else:
            item.reason = (
                f"End address doesn't align to /{target_prefix} boundary. "
                f"Expected end: {format_address(expected.last, family)}"
            )
        item.suggestions = self._alignment_suggestions(rng, target_prefix)
        return item

    def _alignment_suggestions(self, rng: Range, target_prefix: int) -> List[AlignmentSuggestion]:
        suggestions = []

        covering = smallest_covering_block(rng)
        if covering.prefix_length <= target_prefix:
            suggestions.append(
                AlignmentSuggestion(
                    "larger",
                    f"Use larger CIDR (/{covering.prefix_length}) that contains the entire range",
                    [format_block(covering)],
                    rng.size * 100 // covering.size,
                )
            )

        if target_prefix < rng.width:
            smaller_prefix = target_prefix + 1
            block = CidrBlock.containing(rng.start, smaller_prefix, rng.width)
            cidrs = []
            addr = block.network
            while addr <= rng.end and len(cidrs) < 4:
                cidrs.append(format_block(CidrBlock(addr, smaller_prefix, rng.width)))
                addr += block.size
            suggestions.append(
                AlignmentSuggestion(
                    "smaller", f"Use smaller CIDRs (/{smaller_prefix}) that fit within the range", cidrs
                )
            )

        if rng.size > 1 and target_prefix > 0:
            cidrs = []
            cursor = rng.start
            while cursor <= rng.end and len(cidrs) < 8:
                # Largest block no bigger than target that starts at cursor and fits
                host_bits = min(rng.width - target_prefix, (cursor & -cursor).bit_length() - 1 if cursor else rng.width)
                while cursor + (1 << host_bits) - 1 > rng.end:
                    host_bits -= 1
                cidrs.append(format_block(CidrBlock(cursor, rng.width - host_bits, rng.width)))
                cursor += 1 << host_bits
            if len(cidrs) > 1:
                suggestions.append(
                    AlignmentSuggestion("split", f"Split into {len(cidrs)} aligned CIDR blocks", cidrs)
                )

        return suggestions

    # ============ VLSM ============

    def vlsm(
        self,
        parent_text: str,
        requests: Union[str, Sequence[SubnetRequest]],
        strategy: Union[AllocationStrategy, str, None] = None,
    ) -> VlsmResult:
        """Carve the parent network into one subnet per request"""
        result = VlsmResult()
        try:
            parent = parse_block(parent_text)
            strategy = AllocationStrategy(strategy or self.settings.allocation.strategy)
        except (ParseError, ValueError) as e:
            result.errors.append(str(e))
            return result
        result.parent = format_block(parent)

        if isinstance(requests, str):
            requests, request_errors = parse_requests(requests)
            result.errors.extend(request_errors)

        seen = set()
        for req in requests:
            if req.name in seen:
                result.warnings.append(f"Duplicate subnet name '{req.name}'")
            seen.add(req.name)

        try:
            plan = allocate_vlsm(parent, requests, strategy, self.settings.engine.exact_iteration_cap)
        except InvalidInput as e:
            result.errors.append(str(e))
            return result

        for placement in plan.placements:
            result.subnets.append(self._vlsm_subnet(placement))
        result.notices = list(plan.failures) + list(plan.degraded)
        result.warnings.extend(n.message for n in result.notices)
        result.free_blocks = self._present(plan.free_blocks)

        requested = sum(p.request.hosts for p in plan.placements)
        provided = sum(p.hosts_provided for p in plan.placements)
        result.stats = {
            "total_hosts_requested": requested,
            "total_hosts_provided": provided,
            "total_wasted_hosts": provided - requested,
            "remaining_addresses": plan.free.size,
            "next_available_network": format_address(plan.free[0].start, parent.family) if plan.free else None,
            "failed_requests": len(plan.failures),
        }
        return result

    @staticmethod
    def _vlsm_subnet(placement) -> VlsmSubnet:
        block = placement.block
        family = block.family
        host_bits = placement.host_bits
        host_mask = (1 << host_bits) - 1
        mask = ((1 << block.width) - 1) ^ host_mask
        if host_bits == 0:
            first = last = block.network
        else:
            first, last = block.network + 1, block.last - 1
        return VlsmSubnet(
            name=placement.request.name,
            hosts_needed=placement.request.hosts,
            hosts_provided=placement.hosts_provided,
            cidr=format_block(block),
            prefix_length=block.prefix_length,
            network=format_address(block.network, family),
            broadcast=format_address(block.last, family),
            first_usable=format_address(first, family),
            last_usable=format_address(last, family),
            mask=format_address(mask, family) if family == 4 else f"/{block.prefix_length}",
            wildcard_mask=format_address(host_mask, family) if family == 4 else None,
            wasted_hosts=placement.wasted_hosts,
        )

    # ============ NEXT AVAILABLE ============

    def next_available(
        self,
        pools_text: str,
        allocations_text: str = "",
        prefix_length: Optional[int] = None,
        host_count: Optional[int] = None,
        policy: Union[AllocationPolicy, str, None] = None,
        max_candidates: Optional[int] = None,
        usable_hosts: Optional[bool] = None,
    ) -> NextAvailableResult:
        """Free subnets of the requested size inside pools minus allocations"""
        settings = self.settings.allocation
        result = NextAvailableResult()
        if max_candidates is None:
            max_candidates = settings.max_candidates
        if usable_hosts is None:
            usable_hosts = settings.usable_hosts

        pools, result.errors = self.parse_lines(pools_text, "Pool")
        allocations, allocation_errors = self.parse_lines(allocations_text, "Allocation")
        result.warnings.extend(allocation_errors)

        fatal: List[str] = []
        try:
            policy = AllocationPolicy(policy or settings.policy)
        except ValueError as e:
            fatal.append(str(e))
        if not pools:
            result.errors.append("At least one pool CIDR is required")
            return result

        # Family of the first pool decides
        family = pools[0].family
        width = width_for_family(family)
        skipped = [e.text for e in pools + allocations if e.family != family]
        if skipped:
            result.warnings.append(f"Ignoring {len(skipped)} IPv{6 if family == 4 else 4} entries: {', '.join(skipped)}")
        pools = [e for e in pools if e.family == family]
        allocations = [e for e in allocations if e.family == family]

        if prefix_length is not None and host_count is not None:
            fatal.append("Specify either desired prefix OR host count, not both")
        elif prefix_length is not None:
            if not 0 <= prefix_length <= width:
                fatal.append(f"Invalid prefix /{prefix_length}. Must be 0-{width} for IPv{family}")
        elif host_count is not None:
            prefix_length = calculate_required_prefix(host_count, width, usable_hosts)
        else:
            fatal.append("Must specify either desired prefix or host count")
        if fatal:
            result.errors.extend(fatal)
            return result

        allocator = IPAllocator((e.range for e in pools), self.settings.engine.exact_iteration_cap)
        for entry in allocations:
            allocator.add_used_range(entry.range)

        pool_labels = [e.text for e in pools]
        for outside in allocator.outside_pools():
            notice = AllocationOutsidePools(format_range(outside))
            result.notices.append(notice)
            result.warnings.append(notice.message)
        for notice in allocator.degraded():
            result.notices.append(notice)
            result.warnings.append(notice.message)

        free_blocks = allocator.free_blocks()
        result.free_space = [(format_block(f.block), f.block.size, pool_labels[f.pool]) for f in free_blocks]

        for candidate in allocator.candidates(prefix_length, policy, max_candidates):
            result.candidates.append(self._available_subnet(candidate, pool_labels, usable_hosts))

        result.stats = {
            "total_pools": len(pools),
            "total_allocations": len(allocations),
            "total_free_space": sum(f.block.size for f in free_blocks),
            "largest_free_block": max((f.block.size for f in free_blocks), default=0),
            "fragmentation_count": len(free_blocks),
            "requested_prefix": prefix_length,
            "requested_size": 1 << (width - prefix_length),
        }
        return result

    @staticmethod
    def _available_subnet(candidate, pool_labels: List[str], usable_hosts: bool) -> AvailableSubnet:
        block = candidate.block
        family = block.family
        first, last = block.network, block.last
        usable = block.size
        if family == 4 and block.prefix_length < 31 and usable_hosts:
            usable = block.size - 2
            first, last = first + 1, last - 1
        elif family == 6 and block.prefix_length < 128:
            first, last = first + 1, last - 1
        return AvailableSubnet(
            cidr=format_block(block),
            network=format_address(block.network, family),
            broadcast=format_address(block.last, family),
            parent_pool=pool_labels[candidate.pool],
            size=block.size,
            usable_hosts=usable,
            gap_size=candidate.gap_size,
            first_host=format_address(first, family),
            last_host=format_address(last, family),
        )
