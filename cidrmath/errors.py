"""
Error taxonomy for the range engine
Fatal errors are exceptions, non-fatal notices are plain values
"""

from dataclasses import dataclass
from typing import Optional


class CidrMathError(Exception):
    """Base class for every error raised by cidrmath"""


class ParseError(CidrMathError, ValueError):
    """Malformed address, CIDR or range text"""

    def __init__(self, message: str, text: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.text = text
        self.line = line

    def __str__(self):
        if self.line is not None:
            return f"Line {self.line}: {self.message}"
        return self.message


class InvalidInput(CidrMathError, ValueError):
    """Well-formed values that break a semantic rule (mixed widths, start > end)"""


@dataclass(frozen=True)
class DecompositionDegraded:
    """The iteration cap was hit and a host route was emitted instead"""

    start: int
    end: int
    width: int
    mode: str
    cap: int

    @property
    def message(self) -> str:
        return (
            f"Decomposition of {self.end - self.start + 1} addresses in {self.mode} "
            f"mode hit the iteration cap ({self.cap}); output degraded to a host route"
        )


@dataclass(frozen=True)
class AllocationFailed:
    """A request could not be placed in the remaining space"""

    name: str
    prefix_length: int
    reason: str = "insufficient space"

    @property
    def message(self) -> str:
        return f"Could not allocate '{self.name}' (/{self.prefix_length}): {self.reason}"


@dataclass(frozen=True)
class AllocationOutsidePools:
    """An existing allocation is not inside any single pool"""

    allocation: str

    @property
    def message(self) -> str:
        return f"Allocation {self.allocation} is outside all pools"
