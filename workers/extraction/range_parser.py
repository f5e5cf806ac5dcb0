"""
Structured parsing of optimal-range strings.

A range string such as "4.44-5.0 mmol/L (80-90 mg/dL)" is parsed once into
RangeBound records; comparing a value afterwards is a lookup over those
records rather than a fresh round of regex matching.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

from workers.extraction.units import canonicalize_unit, unit_alternatives

_NUM = r"\d+(?:\.\d+)?"

_BOUND_PATTERN = re.compile(
    rf"\(\s*(?P<plow>{_NUM})\s*[-–]\s*(?P<phigh>{_NUM})\s*(?P<punit>[^)]*?)\s*\)"
    rf"|(?P<low>{_NUM})\s*[-–]\s*(?P<high>{_NUM})\s*(?P<unit>[^\s(),]*)"
    rf"|(?P<op><=|>=|≤|≥|<|>)\s*(?P<limit>{_NUM})\s*(?P<opunit>[^\s(),]*)"
)

_COMPARATOR_KINDS = {
    "<": "lt",
    "<=": "le",
    "≤": "le",
    ">": "gt",
    ">=": "ge",
    "≥": "ge",
}


@dataclass(frozen=True)
class RangeBound:
    kind: str  # range | lt | le | gt | ge
    low: Optional[float] = None
    high: Optional[float] = None
    unit: str = ""
    parenthesized: bool = False
    unit_keys: frozenset = field(default=frozenset(), compare=False, repr=False)

    def matches_unit(self, key: str) -> bool:
        return bool(key) and key in self.unit_keys

    def contains(self, value: float) -> bool:
        if self.kind == "range":
            return self.low <= value <= self.high
        if self.kind == "lt":
            return value < self.high
        if self.kind == "le":
            return value <= self.high
        if self.kind == "gt":
            return value > self.low
        return value >= self.low


def _bound(kind: str, low: Optional[float], high: Optional[float], unit: str,
           parenthesized: bool = False) -> RangeBound:
    canonical = canonicalize_unit(unit)
    return RangeBound(
        kind=kind,
        low=low,
        high=high,
        unit=canonical,
        parenthesized=parenthesized,
        unit_keys=unit_alternatives(canonical),
    )


@lru_cache(maxsize=512)
def parse_range(text: str) -> Tuple[RangeBound, ...]:
    """Parse a range string into its bounds, in order of appearance."""
    bounds = []
    for match in _BOUND_PATTERN.finditer(text or ""):
        if match.group("plow") is not None:
            bounds.append(_bound(
                "range",
                float(match.group("plow")),
                float(match.group("phigh")),
                match.group("punit"),
                parenthesized=True,
            ))
        elif match.group("low") is not None:
            bounds.append(_bound(
                "range",
                float(match.group("low")),
                float(match.group("high")),
                match.group("unit"),
            ))
        else:
            kind = _COMPARATOR_KINDS[match.group("op")]
            limit = float(match.group("limit"))
            if kind in ("lt", "le"):
                bounds.append(_bound(kind, None, limit, match.group("opunit")))
            else:
                bounds.append(_bound(kind, limit, None, match.group("opunit")))
    return tuple(bounds)
