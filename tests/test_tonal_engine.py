"""
Tests for the tonal engine.

Covers band percentages, shape dB, smoothness normalization and proxy,
blending, labels, and redundancy detection.
"""
import pytest

from irscope.core.tonal_engine import (
    BAND_KEYS,
    TonalFeatures,
    bands_to_percent,
    bands_to_shape_db,
    blend_features,
    compute_tonal_features,
    distance_to_score,
    is_redundant,
    normalize_smooth_score,
    proxy_smooth_score,
    redundancy_similarity,
    score_blend,
    score_to_label,
)


def _flat_raw(value: float = 1.0) -> dict[str, float]:
    return {k: value for k in BAND_KEYS}


# =============================================================================
# Band transforms
# =============================================================================


class TestBandTransforms:
    """Percent and shape conversions."""

    def test_percent_sums_to_100(self):
        pct = bands_to_percent({"subBass": 1, "bass": 1, "lowMid": 2, "mid": 4, "highMid": 2})
        assert sum(pct.values()) == pytest.approx(100.0)
        assert pct["mid"] == pytest.approx(40.0)
        assert pct["air"] == 0.0

    def test_percent_of_empty_energy_is_zero(self):
        assert bands_to_percent({}) == {k: 0.0 for k in BAND_KEYS}

    def test_flat_energy_has_flat_shape(self):
        shape = bands_to_shape_db(_flat_raw(2.0))
        assert all(v == pytest.approx(0.0) for v in shape.values())

    def test_shape_is_relative_to_mid_reference(self):
        raw = _flat_raw(1.0)
        raw["air"] = 10.0
        shape = bands_to_shape_db(raw)
        assert shape["air"] == pytest.approx(10.0)
        assert shape["mid"] == pytest.approx(0.0)

    def test_shape_is_clamped(self):
        raw = _flat_raw(1.0)
        raw["subBass"] = 0.0
        assert bands_to_shape_db(raw)["subBass"] == -120.0


# =============================================================================
# Smoothness
# =============================================================================


class TestSmoothness:
    """Reported smoothness normalization and the shape proxy."""

    def test_ratio_is_scaled(self):
        assert normalize_smooth_score(0.5) == pytest.approx(50.0)

    def test_score_is_kept(self):
        assert normalize_smooth_score(80) == 80

    def test_unusable_values(self):
        assert normalize_smooth_score(0) is None
        assert normalize_smooth_score(150) is None
        assert normalize_smooth_score(None) is None
        assert normalize_smooth_score("bad") is None

    def test_flat_shape_is_perfectly_smooth(self):
        assert proxy_smooth_score({k: 0.0 for k in BAND_KEYS}) == 100

    def test_fizzy_shape_is_rough(self):
        shape = {k: 0.0 for k in BAND_KEYS}
        shape["air"] = 12.0
        assert proxy_smooth_score(shape) < 50

    def test_proxy_floor(self):
        shape = {k: (30.0 if i % 2 else -30.0) for i, k in enumerate(BAND_KEYS)}
        assert proxy_smooth_score(shape) == 5


# =============================================================================
# Feature records
# =============================================================================


class TestComputeTonalFeatures:
    """Building a TonalFeatures record from a metrics payload."""

    def test_measured_smoothness_is_used(self):
        features = compute_tonal_features({"bandsRaw": _flat_raw(), "smoothScore": 0.7})
        assert features.smooth_score == pytest.approx(70.0)
        assert features.tilt_db_per_oct == pytest.approx(0.0)

    def test_missing_smoothness_uses_proxy(self):
        features = compute_tonal_features({"bandsRaw": _flat_raw()})
        assert features.smooth_score == 100.0

    def test_tilt_is_high_minus_low(self):
        raw = _flat_raw(1.0)
        raw["presence"] = 10.0
        raw["air"] = 10.0
        features = compute_tonal_features({"bandsRaw": raw})
        assert features.tilt_db_per_oct > 0

    def test_optional_scalars(self):
        features = compute_tonal_features(
            {"bandsRaw": _flat_raw(), "maxNotchDepth": 12, "tailStatus": "ok"}
        )
        assert features.max_notch_depth == 12.0
        assert features.rolloff_freq is None
        assert features.tail_status == "ok"

    def test_non_mapping_input(self):
        features = compute_tonal_features(None)
        assert features.bands_percent == {k: 0.0 for k in BAND_KEYS}


class TestBlend:
    """Hypothetical two-IR blends."""

    def test_blend_mixes_raw_energy(self):
        a = compute_tonal_features({"bandsRaw": {"mid": 2.0}, "smoothScore": 80})
        b = compute_tonal_features({"bandsRaw": {"highMid": 2.0}, "smoothScore": 60})
        mixed = blend_features(a, b, 0.5, 0.5)
        assert mixed.bands_raw["mid"] == pytest.approx(1.0)
        assert mixed.bands_raw["highMid"] == pytest.approx(1.0)
        assert mixed.smooth_score == 70.0

    def test_blend_without_smoothness_uses_proxy(self):
        a = TonalFeatures(bands_raw=_flat_raw())
        b = TonalFeatures(bands_raw=_flat_raw())
        assert blend_features(a, b, 0.5, 0.5).smooth_score == 100.0


# =============================================================================
# Scores, labels, redundancy
# =============================================================================


class TestScoresAndLabels:
    """Distance scores and label thresholds."""

    def test_distance_to_score(self):
        assert distance_to_score(0) == 100
        assert distance_to_score(10) == 70
        assert distance_to_score(50) == 0

    @pytest.mark.parametrize(
        "score,label",
        [(85, "strong"), (84, "close"), (70, "close"), (69, "partial"), (50, "partial"), (49, "miss")],
    )
    def test_label_thresholds(self, score, label):
        assert score_to_label(score) == label

    def test_score_blend_zero_for_exact_target(self):
        features = TonalFeatures(bands_raw=_flat_raw(), smooth_score=90.0)
        features.bands_shape_db = bands_to_shape_db(features.bands_raw)
        assert score_blend(features, features.bands_shape_db, 0.0) == pytest.approx(0.0)

    def test_score_blend_penalties(self):
        features = TonalFeatures(smooth_score=45.0, max_notch_depth=12.0, rolloff_freq=4000.0)
        target = {k: 0.0 for k in BAND_KEYS}
        # 0.1 * 10 smoothness + 2 notch + 500 * 0.002 rolloff
        assert score_blend(features, target, 0.0) == pytest.approx(4.0)


class TestRedundancy:
    """Shape-curve similarity."""

    def test_identical_shapes_are_redundant(self):
        shape = {"lowMid": -2.0, "mid": 0.0, "highMid": 1.0, "presence": 3.0, "air": -4.0}
        assert redundancy_similarity(shape, shape) == pytest.approx(1.0)
        assert is_redundant(shape, dict(shape))

    def test_inverted_shapes_are_not(self):
        a = {"lowMid": -2.0, "mid": 0.0, "highMid": 1.0, "presence": 3.0, "air": -4.0}
        b = {k: -v for k, v in a.items()}
        assert redundancy_similarity(a, b) == pytest.approx(-1.0)
        assert not is_redundant(a, b)

    def test_flat_shape_similarity_is_zero(self):
        flat = {k: 1.0 for k in BAND_KEYS}
        assert redundancy_similarity(flat, {"mid": 2.0}) == 0.0
