"""
Port space partitioning for the discovery phases: curated known ports
first, then the IANA ephemeral range, then (optionally) the middle range.
Ranges are probed edges-to-middle so a hit near either end of a range
surfaces early.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

# Default instance first, then custom ports seen in the wild.
KNOWN_PORTS = (
    1433,
    14711,
    14712,
)

EPHEMERAL_START = 49152
EPHEMERAL_END = 65535

MIDDLE_START = 1433
MIDDLE_END = EPHEMERAL_START - 1

PHASE_KNOWN = "known"
PHASE_EPHEMERAL = "ephemeral"
PHASE_MIDDLE = "middle"


@dataclass(frozen=True)
class Phase:
    name: str
    ports: Sequence[int]


def edges_to_middle(ports: Sequence[int]) -> List[int]:
    """
    Reorder a sorted sequence from both ends inward:
    [1, 2, 3, 4, 5] -> [1, 5, 2, 4, 3]
    """
    out: List[int] = []
    low, high = 0, len(ports) - 1
    while low <= high:
        out.append(ports[low])
        low += 1
        if low <= high:
            out.append(ports[high])
            high -= 1
    return out


def ephemeral_ports(known: Iterable[int] = ()) -> List[int]:
    skip = set(known)
    return edges_to_middle([p for p in range(EPHEMERAL_START, EPHEMERAL_END + 1) if p not in skip])


def middle_ports(known: Iterable[int] = KNOWN_PORTS, start: int = MIDDLE_START, end: int = MIDDLE_END) -> List[int]:
    skip = set(known)
    return edges_to_middle([p for p in range(start, end + 1) if p not in skip])


def plan_phases(
    known: Optional[Sequence[int]] = None,
    include_middle: bool = False,
    middle_start: int = MIDDLE_START,
) -> List[Phase]:
    known_list = list(dict.fromkeys(known if known is not None else KNOWN_PORTS))
    phases = [
        Phase(PHASE_KNOWN, tuple(known_list)),
        Phase(PHASE_EPHEMERAL, tuple(ephemeral_ports(known_list))),
    ]
    if include_middle:
        phases.append(Phase(PHASE_MIDDLE, tuple(middle_ports(known_list, start=middle_start))))
    return phases
