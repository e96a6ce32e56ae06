"""
Address codec - text <-> integer conversion for IPv4 and IPv6
Entry parsing for single IPs, CIDRs and IP1-IP2 ranges
"""

import ipaddress
import re
from dataclasses import dataclass

from cidrmath.errors import ParseError
from cidrmath.models import CidrBlock, Range, width_for_family

_IPV4_SHAPE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")


def detect_family(text: str) -> int:
    """4 or 6, from the shape of the text"""
    text = text.strip()
    if ":" in text:
        return 6
    if _IPV4_SHAPE.match(text):
        return 4
    raise ParseError(f"Cannot determine IP version: {text}", text=text)


def parse_address(text: str, family: int) -> int:
    text = text.strip()
    if "%" in text:
        raise ParseError(f"Zone IDs are not supported: {text}", text=text)
    try:
        if family == 4:
            return int(ipaddress.IPv4Address(text))
        if family == 6:
            return int(ipaddress.IPv6Address(text))
    except ValueError as e:
        raise ParseError(f"Invalid IPv{family} address: {e}", text=text) from None
    raise ParseError(f"Unknown address family: {family}", text=text)


def format_address(value: int, family: int) -> str:
    if family == 4:
        return str(ipaddress.IPv4Address(value))
    return str(ipaddress.IPv6Address(value))


def format_block(block: CidrBlock) -> str:
    return f"{format_address(block.network, block.family)}/{block.prefix_length}"


def format_range(rng: Range) -> str:
    """CIDR text when the range is one block, otherwise start-end"""
    family = rng.family
    size = rng.size
    if size & (size - 1) == 0 and rng.start % size == 0:
        prefix = rng.width - (size.bit_length() - 1)
        return f"{format_address(rng.start, family)}/{prefix}"
    return f"{format_address(rng.start, family)}-{format_address(rng.end, family)}"


def parse_prefix(text: str, family: int) -> int:
    max_prefix = width_for_family(family)
    text = text.strip()
    # isdigit() alone accepts digits like "²" that int() rejects
    if not (text.isascii() and text.isdigit()):
        raise ParseError(f"Invalid prefix length: {text!r}", text=text)
    prefix = int(text)
    if prefix > max_prefix:
        raise ParseError(f"Invalid prefix: /{prefix} (must be 0-{max_prefix} for IPv{family})", text=text)
    return prefix


@dataclass(frozen=True)
class Entry:
    """One parsed input line"""

    text: str
    kind: str  # single | cidr | range
    family: int
    range: Range


def parse_entry(line: str) -> Entry:
    """Parse a single IP, IP/prefix, or IP1-IP2"""
    text = line.strip()
    if not text:
        raise ParseError("Empty entry", text=line)

    # Range format
    if "-" in text:
        parts = [p.strip() for p in text.split("-")]
        if len(parts) != 2 or not all(parts):
            raise ParseError(f"Invalid range format: {text}", text=text)
        start_text, end_text = parts
        family = detect_family(start_text)
        if detect_family(end_text) != family:
            raise ParseError("Range must use same IP version", text=text)
        start = parse_address(start_text, family)
        end = parse_address(end_text, family)
        if start > end:
            raise ParseError("Invalid range: start must be <= end", text=text)
        return Entry(text, "range", family, Range(start, end, width_for_family(family)))

    # CIDR format
    if "/" in text:
        parts = text.split("/")
        if len(parts) != 2:
            raise ParseError(f"Invalid CIDR format: {text}", text=text)
        ip_text, prefix_text = parts
        family = detect_family(ip_text)
        prefix = parse_prefix(prefix_text, family)
        address = parse_address(ip_text, family)
        block = CidrBlock.containing(address, prefix, width_for_family(family))
        return Entry(text, "cidr", family, block.to_range())

    # Single IP
    family = detect_family(text)
    address = parse_address(text, family)
    return Entry(text, "single", family, Range(address, address, width_for_family(family)))


def parse_block(text: str) -> CidrBlock:
    """Parse IP/prefix into a CidrBlock (host bits cleared)"""
    entry = parse_entry(text)
    if entry.kind != "cidr":
        raise ParseError(f"Expected CIDR notation: {text}", text=text)
    rng = entry.range
    return CidrBlock.containing(rng.start, rng.width - (rng.size.bit_length() - 1), rng.width)
