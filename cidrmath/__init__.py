"""
cidrmath - IP range algebra and CIDR decomposition
"""

__version__ = "1.0.0"

from cidrmath.codec import Entry, detect_family, format_address, format_block, format_range, parse_block, parse_entry
from cidrmath.decompose import DecomposeMode, Decomposition, decompose, decompose_range
from cidrmath.engine import CidrEngine
from cidrmath.errors import AllocationFailed, CidrMathError, DecompositionDegraded, InvalidInput, ParseError
from cidrmath.models import CidrBlock, Range, RangeSet
from cidrmath.rangeset import ContainmentStatus, containment, intersect, merge, subtract
