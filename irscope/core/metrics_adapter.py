"""Boundary normalization for analysis metrics.

Analysis payloads have been written under several naming conventions over
time (snake_case exports, camelCase client records, legacy energy fields).
This module is the only place that knows those aliases.  Everything past the
boundary works with the canonical records defined here.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from irscope.core.numeric import safe_number

# Canonical band key -> accepted alias keys, in lookup order.
_BAND_ENERGY_KEYS: dict[str, tuple[str, ...]] = {
    "subBass": ("sub",),
    "bass": ("bass",),
    "lowMid": ("lowmid",),
    "mid": ("mid",),
    "highMid": ("highmid",),
    "presence": ("pres",),
    "air": ("air",),
}

_BAND_RAW_ALIASES: dict[str, tuple[str, ...]] = {
    "subBass": ("subBass", "sub_bass", "subbass", "subBassEnergy"),
    "bass": ("bass", "bassEnergy"),
    "lowMid": ("lowMid", "low_mid", "lowmid", "lowMidEnergy"),
    "mid": ("mid", "midEnergy6", "midEnergy"),
    "highMid": ("highMid", "high_mid", "highmid", "highMidEnergy"),
    "presence": ("presence", "pres", "presenceEnergy"),
    "air": ("air", "ultraHighEnergy", "airEnergy"),
}

# IRMetrics field -> accepted alias keys, in lookup order.
_METRIC_ALIASES: dict[str, tuple[str, ...]] = {
    "centroid_hz": ("centroid_computed_hz", "spectralCentroidHz", "spectralCentroid"),
    "tilt_db_per_oct": ("spectral_tilt_db_per_oct", "tiltDbPerOct", "spectralTilt"),
    "smooth_score": ("smooth_score", "smoothScore", "frequencySmoothness"),
    "hi_mid_mid_ratio": ("hiMidMid_ratio", "hiMidMidRatio"),
    "low_mid_pct": ("lowMid_pct", "lowMidPercent"),
    "presence_pct": ("presence_pct", "presencePercent"),
    "air_pct": ("air_pct", "airPercent"),
}


@dataclass(frozen=True)
class IRMetrics:
    """Canonical scalar metrics for one IR, as consumed by the companion scorer."""

    centroid_hz: float = 0.0
    tilt_db_per_oct: float = 0.0
    smooth_score: float = 0.0
    hi_mid_mid_ratio: float = 0.0
    low_mid_pct: float = 0.0
    presence_pct: float = 0.0
    air_pct: float = 0.0
    score: float = 0.0


def first_number(obj: object, *keys: str) -> float | None:
    """Return the first finite numeric value found under *keys*, else ``None``."""
    if not isinstance(obj, Mapping):
        return None
    for key in keys:
        value = obj.get(key)
        if value is None or isinstance(value, bool):
            continue
        n = safe_number(value, fallback=float("nan"))
        if n == n:
            return n
    return None


def normalize_ir_metrics(obj: object) -> IRMetrics:
    """Build an :class:`IRMetrics` from a metrics dict using any known aliases.

    Missing or malformed values become 0.  An ``IRMetrics`` instance passes
    through unchanged.
    """
    if isinstance(obj, IRMetrics):
        return obj
    values = {
        field: first_number(obj, field, *aliases) or 0.0
        for field, aliases in _METRIC_ALIASES.items()
    }
    values["score"] = first_number(obj, "score") or 0.0
    return IRMetrics(**values)


def extract_bands_raw(metrics: object) -> dict[str, float]:
    """Resolve raw per-band energies from a metrics payload.

    ``bandEnergies`` (short keys) wins over ``bandsRaw`` / top-level fields.
    When every band is zero and a log-band array with at least 12 bins is
    present, bands are rebuilt by bucketing that array.
    """
    m: Mapping = metrics if isinstance(metrics, Mapping) else {}
    band_energies = m.get("bandEnergies") or {}
    src = m.get("bandsRaw") or m

    out: dict[str, float] = {}
    for band, short_keys in _BAND_ENERGY_KEYS.items():
        value = first_number(band_energies, *short_keys)
        if value is None:
            value = first_number(src, *_BAND_RAW_ALIASES[band])
        out[band] = safe_number(value)

    total = sum(abs(v) for v in out.values())
    bins = m.get("logBandEnergies")
    if not isinstance(bins, list):
        bins = m.get("bandEnergiesLog")
    if total < 1e-9 and isinstance(bins, list) and len(bins) >= 12:
        b = [safe_number(x) for x in bins]

        def bucket(i0: int, i1: int) -> float:
            return sum(b[i0:i1 + 1])

        out = {
            "subBass": bucket(0, 2),
            "bass": bucket(3, 5),
            "lowMid": bucket(6, 8),
            "mid": bucket(9, 11),
            "highMid": bucket(12, 14),
            "presence": bucket(15, 18),
            "air": bucket(19, min(23, len(b) - 1)),
        }
    return out
