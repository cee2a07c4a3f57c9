"""
Tonal Engine: deterministic band-level tonal features for cabinet IRs.

Turns per-band energy metrics (already measured by the analysis pipeline)
into the tonal-feature record the taste learner consumes:

- ``bands_percent``  share of total energy per band (0-100)
- ``bands_shape_db`` band level in dB relative to the mid/highMid/presence mean
- ``tilt_db_per_oct`` high-side minus low-side shape level
- ``smooth_score``   0-100, measured or estimated from the shape curve

No spectral analysis happens here; band energies are inputs.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal, Optional

from irscope.core.metrics_adapter import extract_bands_raw
from irscope.core.numeric import clamp, round_half_up, safe_number

logger = logging.getLogger(__name__)

BAND_KEYS: tuple[str, ...] = (
    "subBass",
    "bass",
    "lowMid",
    "mid",
    "highMid",
    "presence",
    "air",
)

DB_FLOOR = -120.0
DB_CEILING = 60.0
_EPS = 1e-12

# Bands compared by the redundancy check; low end is ignored.
_REDUNDANCY_BANDS: tuple[str, ...] = ("lowMid", "mid", "highMid", "presence", "air")
REDUNDANCY_THRESHOLD = 0.94

MatchLabel = Literal["strong", "close", "partial", "miss"]


def zero_bands() -> dict[str, float]:
    return {k: 0.0 for k in BAND_KEYS}


@dataclass
class TonalFeatures:
    """Tonal-feature record for one IR (or one hypothetical blend)."""

    bands_raw: dict[str, float] = field(default_factory=zero_bands)
    bands_percent: dict[str, float] = field(default_factory=zero_bands)
    bands_shape_db: dict[str, float] = field(default_factory=zero_bands)
    tilt_db_per_oct: float = 0.0
    smooth_score: Optional[float] = None
    notch_count: Optional[float] = None
    max_notch_depth: Optional[float] = None
    rolloff_freq: Optional[float] = None
    tail_level_db: Optional[float] = None
    tail_status: Optional[str] = None


@dataclass
class ScoreWeights:
    """Weights for :func:`score_blend`."""

    shape_weight: float = 1.0
    tilt_weight: float = 2.0
    smooth_penalty_weight: float = 10.0
    notch_penalty_weight: float = 1.0
    rolloff_penalty_weight: float = 0.002


# =============================================================================
# Scores and labels
# =============================================================================


def distance_to_score(distance: float) -> int:
    return max(0, round_half_up(100 - distance * 3))


def score_to_label(score: float) -> MatchLabel:
    if score >= 85:
        return "strong"
    if score >= 70:
        return "close"
    if score >= 50:
        return "partial"
    return "miss"


# =============================================================================
# Band transforms
# =============================================================================


def bands_to_percent(bands_raw: Mapping[str, float]) -> dict[str, float]:
    """Express each band as a percentage of the total energy."""
    total = sum(safe_number(bands_raw.get(k)) for k in BAND_KEYS)
    if total <= 0:
        return zero_bands()
    return {k: safe_number(bands_raw.get(k)) / total * 100 for k in BAND_KEYS}


def _clamp_db(v: float) -> float:
    if not math.isfinite(v):
        return DB_FLOOR
    return max(DB_FLOOR, min(DB_CEILING, v))


def bands_to_shape_db(bands_raw: Mapping[str, float]) -> dict[str, float]:
    """Convert raw energies to dB relative to the mid/highMid/presence mean."""
    db = {
        k: 10 * math.log10(max(_EPS, safe_number(bands_raw.get(k))))
        for k in BAND_KEYS
    }
    ref_candidates = [db[k] for k in ("mid", "highMid", "presence") if math.isfinite(db[k])]
    if ref_candidates:
        ref = sum(ref_candidates) / len(ref_candidates)
    else:
        finite = [v for v in db.values() if math.isfinite(v)]
        ref = sum(finite) / len(finite) if finite else 0.0
    return {k: _clamp_db(db[k] - ref) for k in BAND_KEYS}


def _tilt_from_shape(shape: Mapping[str, float]) -> float:
    high = (safe_number(shape.get("presence")) + safe_number(shape.get("air"))) / 2
    low = (safe_number(shape.get("bass")) + safe_number(shape.get("subBass"))) / 2
    return high - low


# =============================================================================
# Smoothness
# =============================================================================


def normalize_smooth_score(value: object) -> Optional[float]:
    """Map a reported smoothness to 0-100, or ``None`` when unusable.

    Values in ``[0, 1.2]`` are treated as a 0-1 ratio; values up to 100 are
    already a score.  Zero means "not measured".
    """
    n = safe_number(value, fallback=float("nan"))
    if not math.isfinite(n) or n == 0:
        return None
    if 0 <= n <= 1.2:
        return clamp(n, 0.0, 1.0) * 100
    if 0 <= n <= 100:
        return n
    return None


def proxy_smooth_score(shape: Mapping[str, float]) -> int:
    """Estimate smoothness from the band shape curve when none was measured."""
    v = [safe_number(shape.get(k)) for k in BAND_KEYS]

    diffs = [v[i + 1] - v[i] for i in range(len(v) - 1)]
    sign_changes = sum(1 for i in range(len(diffs) - 1) if diffs[i] * diffs[i + 1] < 0)
    curvs = [abs(v[i + 2] - 2 * v[i + 1] + v[i]) for i in range(len(v) - 2)]
    max_curv = max(curvs) if curvs else 0.0

    air = safe_number(shape.get("air"))
    presence = safe_number(shape.get("presence"))
    high_mid = safe_number(shape.get("highMid"))

    fizz_excess = max(0.0, air - max(presence, high_mid) - 1.0)
    presence_spike = max(0.0, presence - high_mid - 2.0)
    zig_zag_penalty = max(0, sign_changes - 2) * 1.5
    curv_penalty = max(0.0, max_curv - 6) * 0.4

    roughness = fizz_excess * 1.5 + presence_spike * 1.2 + zig_zag_penalty + curv_penalty
    normalized = 100 * math.exp(-roughness / 8)
    return round_half_up(clamp(normalized, 5, 100))


# =============================================================================
# Feature records
# =============================================================================


def _optional_number(metrics: Mapping, key: str) -> Optional[float]:
    value = metrics.get(key)
    if value is None:
        return None
    return safe_number(value)


def compute_tonal_features(metrics: object) -> TonalFeatures:
    """Build a :class:`TonalFeatures` record from an analysis metrics payload."""
    m: Mapping = metrics if isinstance(metrics, Mapping) else {}
    bands_raw = extract_bands_raw(m)
    bands_percent = bands_to_percent(bands_raw)
    bands_shape_db = bands_to_shape_db(bands_raw)

    smooth = normalize_smooth_score(m.get("smoothScore"))
    if smooth is None:
        smooth = float(proxy_smooth_score(bands_shape_db))
        logger.debug("No measured smoothness, using shape proxy %.0f", smooth)

    tail_status = m.get("tailStatus")
    return TonalFeatures(
        bands_raw=bands_raw,
        bands_percent=bands_percent,
        bands_shape_db=bands_shape_db,
        tilt_db_per_oct=_tilt_from_shape(bands_shape_db),
        smooth_score=smooth,
        notch_count=_optional_number(m, "notchCount"),
        max_notch_depth=_optional_number(m, "maxNotchDepth"),
        rolloff_freq=_optional_number(m, "rolloffFreq"),
        tail_level_db=_optional_number(m, "tailLevelDb"),
        tail_status=str(tail_status) if tail_status is not None else None,
    )


def _blend_scalar(a: Optional[float], b: Optional[float], a_gain: float, b_gain: float) -> float:
    return safe_number(a) * a_gain + safe_number(b) * b_gain


def blend_features(
    a: TonalFeatures,
    b: TonalFeatures,
    a_gain: float,
    b_gain: float,
) -> TonalFeatures:
    """Features of the hypothetical mix ``a * a_gain + b * b_gain``."""
    blended_raw = {
        k: safe_number(a.bands_raw.get(k)) * a_gain + safe_number(b.bands_raw.get(k)) * b_gain
        for k in BAND_KEYS
    }
    shape = bands_to_shape_db(blended_raw)

    a_smooth = normalize_smooth_score(a.smooth_score)
    b_smooth = normalize_smooth_score(b.smooth_score)
    if a_smooth is not None and b_smooth is not None:
        smooth = float(round_half_up(a_smooth * a_gain + b_smooth * b_gain))
    else:
        smooth = float(proxy_smooth_score(shape))

    return TonalFeatures(
        bands_raw=blended_raw,
        bands_percent=bands_to_percent(blended_raw),
        bands_shape_db=shape,
        tilt_db_per_oct=_tilt_from_shape(shape),
        smooth_score=smooth,
        notch_count=_blend_scalar(a.notch_count, b.notch_count, a_gain, b_gain),
        max_notch_depth=_blend_scalar(a.max_notch_depth, b.max_notch_depth, a_gain, b_gain),
        rolloff_freq=_blend_scalar(a.rolloff_freq, b.rolloff_freq, a_gain, b_gain),
        tail_level_db=_blend_scalar(a.tail_level_db, b.tail_level_db, a_gain, b_gain),
        tail_status=None,
    )


def score_blend(
    features: TonalFeatures,
    target_shape: Mapping[str, float],
    target_tilt: float,
    weights: Optional[ScoreWeights] = None,
) -> float:
    """Distance from *features* to a target shape; lower is better."""
    w = weights or ScoreWeights()
    score = 0.0
    for k in BAND_KEYS:
        diff = safe_number(features.bands_shape_db.get(k)) - safe_number(target_shape.get(k))
        score += abs(diff) * w.shape_weight

    score += abs(features.tilt_db_per_oct - target_tilt) * w.tilt_weight

    if features.smooth_score is not None and features.smooth_score < 55:
        score += ((55 - features.smooth_score) / 100) * w.smooth_penalty_weight
    if features.max_notch_depth is not None and features.max_notch_depth > 10:
        score += (features.max_notch_depth - 10) * w.notch_penalty_weight
    if features.rolloff_freq is not None and features.rolloff_freq < 4500:
        score += (4500 - features.rolloff_freq) * w.rolloff_penalty_weight
    return score


# =============================================================================
# Redundancy
# =============================================================================


def redundancy_similarity(a_shape: Mapping[str, float], b_shape: Mapping[str, float]) -> float:
    """Pearson correlation of two shape curves over the mid/high bands."""
    va = [safe_number(a_shape.get(k)) for k in _REDUNDANCY_BANDS]
    vb = [safe_number(b_shape.get(k)) for k in _REDUNDANCY_BANDS]
    ma = sum(va) / len(va)
    mb = sum(vb) / len(vb)
    xa = [x - ma for x in va]
    xb = [x - mb for x in vb]

    num = sum(x * y for x, y in zip(xa, xb))
    na = math.sqrt(sum(x * x for x in xa))
    nb = math.sqrt(sum(x * x for x in xb))
    if na < 1e-9 or nb < 1e-9:
        return 0.0
    return num / (na * nb)


def is_redundant(a_shape: Mapping[str, float], b_shape: Mapping[str, float]) -> bool:
    return redundancy_similarity(a_shape, b_shape) >= REDUNDANCY_THRESHOLD
