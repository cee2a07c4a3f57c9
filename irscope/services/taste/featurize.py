"""Feature Vectorizer: tonal-feature records -> fixed-order numeric vectors.

Layout (length ``len(BAND_KEYS) + 2``)::

    [subBass, bass, lowMid, mid, highMid, presence, air, tilt, smooth]

Bands and tilt are divided by 10, smoothness by 100.  Missing or non-finite
inputs become 0.  Vectors compared by dot product must share this layout.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Union

from irscope.core.numeric import clamp, safe_number
from irscope.core.tonal_engine import BAND_KEYS, TonalFeatures, blend_features

BAND_SCALE = 10.0
TILT_SCALE = 10.0
SMOOTH_SCALE = 100.0

FEATURE_DIM = len(BAND_KEYS) + 2
TILT_INDEX = len(BAND_KEYS)
SMOOTH_INDEX = len(BAND_KEYS) + 1

# Allowed base share when featurizing a hypothetical two-IR blend.
MIN_BLEND_RATIO = 0.3
MAX_BLEND_RATIO = 0.7

FeatureInput = Union[TonalFeatures, Mapping[str, object]]


def feature_index(name: str) -> int:
    """Vector index of a band name, ``"tilt"`` or ``"smooth"``."""
    if name == "tilt":
        return TILT_INDEX
    if name == "smooth":
        return SMOOTH_INDEX
    return BAND_KEYS.index(name)


def _vectorize(bands_shape_db: object, tilt: object, smooth: object) -> list[float]:
    bands = bands_shape_db if isinstance(bands_shape_db, Mapping) else {}
    vec = [safe_number(bands.get(k)) / BAND_SCALE for k in BAND_KEYS]
    vec.append(safe_number(tilt) / TILT_SCALE)
    vec.append(safe_number(smooth) / SMOOTH_SCALE)
    return vec


def featurize_single_ir(features: FeatureInput) -> list[float]:
    """Vectorize one tonal-feature record.

    Accepts a :class:`TonalFeatures` or the boundary dict form
    ``{"bandsShapeDb": {...}, "tiltDbPerOct": x, "smoothScore": y}``.
    """
    if isinstance(features, TonalFeatures):
        return _vectorize(features.bands_shape_db, features.tilt_db_per_oct, features.smooth_score)
    if isinstance(features, Mapping):
        return _vectorize(
            features.get("bandsShapeDb"),
            features.get("tiltDbPerOct"),
            features.get("smoothScore"),
        )
    return [0.0] * FEATURE_DIM


def featurize_blend(base: TonalFeatures, feature: TonalFeatures, base_ratio: float) -> list[float]:
    """Vectorize the blend of *base* and *feature* at *base_ratio* (clamped to 0.3-0.7)."""
    a = clamp(safe_number(base_ratio, fallback=0.5), MIN_BLEND_RATIO, MAX_BLEND_RATIO)
    blended = blend_features(base, feature, a, 1 - a)
    return featurize_single_ir(blended)
