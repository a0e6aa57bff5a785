"""
zones.py - Stateless threshold classifier.
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class ZoneBand:
    """Half-open interval [lower, upper) labelled with a zone name."""
    lower: float
    upper: float
    name: str

    @classmethod
    def from_dict(cls, data: dict) -> "ZoneBand":
        # null bounds mean unbounded
        lower = data.get("min")
        upper = data.get("max")
        return cls(
            lower=-math.inf if lower is None else float(lower),
            upper=math.inf if upper is None else float(upper),
            name=str(data["zone"]),
        )

    def contains(self, value: float) -> bool:
        return self.lower <= value < self.upper


def classify(value: float, bands: Sequence[ZoneBand]) -> str:
    """
    Return the zone whose band contains ``value``.

    Bands are assumed to be a validated partition sorted by lower bound. The
    last band is closed on top and values outside the partition fall into the
    nearest end band.
    """
    if value < bands[0].lower:
        return bands[0].name
    for band in bands:
        if band.contains(value):
            return band.name
    return bands[-1].name


def validate_bands(bands: Sequence[ZoneBand], legal_range: Tuple[float, float], metric: Optional[str] = None) -> List[str]:
    """
    Check that bands partition ``legal_range`` with no gaps or overlaps.

    Args:
        bands: Bands in configured order
        legal_range: (low, high) range the metric can take
        metric: Metric name used in error messages

    Returns:
        List of problems, empty when the bands are valid
    """
    label = f"metric '{metric}'" if metric else "bands"
    if not bands:
        return [f"{label}: no zone bands configured"]
    errors = []
    names = [b.name for b in bands]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        errors.append(f"{label}: duplicate zone names {duplicates}")
    for band in bands:
        if not band.lower < band.upper:
            errors.append(f"{label}: zone '{band.name}' has empty interval [{band.lower}, {band.upper})")
    ordered = sorted(bands, key=lambda b: b.lower)
    low, high = legal_range
    if ordered[0].lower > low:
        errors.append(f"{label}: values below {ordered[0].lower} are not covered (range starts at {low})")
    if ordered[-1].upper < high:
        errors.append(f"{label}: values above {ordered[-1].upper} are not covered (range ends at {high})")
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.lower > prev.upper:
            errors.append(f"{label}: gap between '{prev.name}' and '{cur.name}' ({prev.upper} .. {cur.lower})")
        elif cur.lower < prev.upper:
            errors.append(f"{label}: zones '{prev.name}' and '{cur.name}' overlap")
    return errors
