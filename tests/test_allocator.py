import pytest

from cidrmath.allocator import (
    AllocationPolicy,
    IPAllocator,
    SubnetRequest,
    allocate_vlsm,
    calculate_required_host_bits,
    calculate_required_prefix,
    hosts_for_bits,
)
from cidrmath.codec import format_block, parse_block, parse_entry
from cidrmath.errors import InvalidInput


def cidrs(blocks):
    return [format_block(b) for b in blocks]


def rng(text):
    return parse_entry(text).range


@pytest.mark.parametrize("hosts, bits", [(1, 0), (2, 2), (3, 3), (6, 3), (7, 4), (100, 7), (254, 8)])
def test_required_host_bits(hosts, bits):
    assert calculate_required_host_bits(hosts) == bits


def test_required_host_bits_rejects_zero():
    with pytest.raises(InvalidInput):
        calculate_required_host_bits(0)


def test_hosts_for_bits():
    assert hosts_for_bits(0) == 1
    assert hosts_for_bits(2) == 2
    assert hosts_for_bits(8) == 254


def test_required_prefix():
    assert calculate_required_prefix(50, 32) == 26
    assert calculate_required_prefix(1, 32) == 32
    assert calculate_required_prefix(64, 32, usable_hosts=False) == 26
    assert calculate_required_prefix(100, 128) == 121


def test_vlsm_fit_best():
    requests = [SubnetRequest("mgmt", 10), SubnetRequest("web", 100), SubnetRequest("db", 50)]
    plan = allocate_vlsm(parse_block("10.0.0.0/24"), requests)
    assert [(p.request.name, cidrs([p.block])[0]) for p in plan.placements] == [
        ("web", "10.0.0.0/25"),
        ("db", "10.0.0.128/26"),
        ("mgmt", "10.0.0.192/28"),
    ]
    assert not plan.failures
    assert cidrs(plan.free_blocks) == ["10.0.0.208/28", "10.0.0.224/27"]
    assert plan.placements[2].wasted_hosts == 4


def test_vlsm_preserve_order_aligns_cursor():
    requests = [SubnetRequest("a", 10), SubnetRequest("b", 100)]
    plan = allocate_vlsm(parse_block("10.0.0.0/24"), requests, "preserve-order")
    assert cidrs(p.block for p in plan.placements) == ["10.0.0.0/28", "10.0.0.128/25"]


def test_vlsm_failures_are_skipped():
    requests = [SubnetRequest("huge", 300)] + [SubnetRequest(n, 100) for n in ("a", "b", "c")]
    plan = allocate_vlsm(parse_block("10.0.0.0/24"), requests)
    assert [f.name for f in plan.failures] == ["huge", "c"]
    assert plan.failures[0].reason == "larger than the parent network"
    assert plan.failures[1].reason == "insufficient space"
    assert len(plan.placements) == 2
    assert not plan.free


def fragmented():
    allocator = IPAllocator([rng("10.0.0.0/24")])
    allocator.add_used_range(rng("10.0.0.64/26"))
    allocator.add_used_range(rng("10.0.0.160/27"))
    return allocator


def test_free_blocks():
    assert cidrs(f.block for f in fragmented().free_blocks()) == [
        "10.0.0.0/26",
        "10.0.0.128/27",
        "10.0.0.192/26",
    ]


def test_first_fit_takes_lowest_address():
    allocator = fragmented()
    assert cidrs([allocator.find_first_fit(27)]) == ["10.0.0.0/27"]
    assert not allocator.is_available(rng("10.0.0.0/27"))


def test_best_fit_takes_smallest_gap():
    allocator = fragmented()
    assert cidrs([allocator.find_best_fit(27)]) == ["10.0.0.128/27"]
    assert cidrs([allocator.find_best_fit(27)]) == ["10.0.0.0/27"]


def test_candidates_are_limited():
    allocator = IPAllocator([rng("10.0.0.0/24")])
    found = allocator.candidates(26, AllocationPolicy.FIRST_FIT, max_candidates=2)
    assert cidrs(c.block for c in found) == ["10.0.0.0/26", "10.0.0.64/26"]
    assert found[0].gap_size == 256


def test_no_fit_returns_none():
    allocator = fragmented()
    assert allocator.find_first_fit(25) is None


def test_is_available():
    allocator = fragmented()
    assert allocator.is_available(rng("10.0.0.128/27"))
    assert not allocator.is_available(rng("10.0.0.64/27"))
    assert not allocator.is_available(rng("10.1.0.0/24"))


def test_outside_pools():
    allocator = IPAllocator([rng("10.0.0.0/24")])
    allocator.add_used_range(rng("192.168.0.0/24"))
    assert allocator.outside_pools() == [rng("192.168.0.0/24")]


def test_allocator_requires_pools():
    with pytest.raises(InvalidInput):
        IPAllocator([])


def test_candidates_reject_bad_prefix():
    with pytest.raises(InvalidInput):
        fragmented().candidates(33)


def test_free_blocks_honour_iteration_cap():
    allocator = IPAllocator([rng("10.0.0.0/24")], iteration_cap=2)
    allocator.add_used_range(rng("10.0.0.5"))
    assert cidrs(f.block for f in allocator.free_blocks()) == ["10.0.0.0/30", "10.0.0.4/32", "10.0.0.6/32"]
    [notice] = allocator.degraded()
    assert notice.cap == 2
    assert cidrs([allocator.find_first_fit(30)]) == ["10.0.0.0/30"]


def test_free_blocks_exact_by_default():
    allocator = IPAllocator([rng("10.0.0.0/24")])
    allocator.add_used_range(rng("10.0.0.5"))
    assert len(allocator.free_blocks()) == 8
    assert allocator.degraded() == []


def test_vlsm_leftover_honours_iteration_cap():
    plan = allocate_vlsm(parse_block("10.0.0.0/24"), [SubnetRequest("a", 10)], iteration_cap=2)
    assert cidrs(plan.free_blocks) == ["10.0.0.16/32"]
    assert len(plan.degraded) == 1
    assert plan.free.size == 240
