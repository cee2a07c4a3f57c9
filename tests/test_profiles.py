"""
Tests for the profile matching engine.

Covers deviation penalties, labels and summaries, best-match tie-breaks,
learned adjustments with avoid zones, foundation ranking and blend partners.
"""
import pytest

from irscope.models.taste import ModelState, default_state
from irscope.services.profiles import (
    BODY_PROFILE,
    DEFAULT_BLEND_RATIOS,
    DEFAULT_PROFILES,
    FEATURED_PROFILE,
    AvoidZone,
    CapTarget,
    IRBands,
    LearnedAdjustment,
    PreferenceProfile,
    ProfileTargets,
    RangeTarget,
    band_deviation,
    blend_band_percent,
    cap_deviation,
    derive_learned_adjustment,
    find_foundation_ir,
    rank_blend_partners,
    score_against_all_profiles,
    score_against_profile,
)

# Sits on the Body ideals except highMid, 0.8 above its ideal.
BODY_BANDS = {"subBass": 1, "bass": 2, "lowMid": 5, "mid": 34, "highMid": 40.8, "presence": 12}


def _profile(name: str, mid: RangeTarget) -> PreferenceProfile:
    return PreferenceProfile(
        name=name,
        description="test",
        targets=ProfileTargets(
            mid=mid,
            high_mid=RangeTarget(0, 100, 50),
            presence=RangeTarget(0, 100, 50),
            ratio=RangeTarget(0, 10, 5),
            low_end=CapTarget(100),
            low_mid=CapTarget(100),
        ),
    )


# =============================================================================
# Deviation primitives
# =============================================================================


class TestDeviations:
    """Ranged and capped penalties."""

    def test_in_range_scales_with_distance_from_ideal(self):
        assert band_deviation(34, RangeTarget(30, 39, 34)) == ("ok", 0.0, 0.0)
        direction, amount, penalty = band_deviation(32, RangeTarget(30, 40, 35))
        assert (direction, amount) == ("ok", 0.0)
        assert penalty == pytest.approx(6.0)

    def test_out_of_range(self):
        assert band_deviation(25, RangeTarget(30, 40, 35)) == ("low", 5, 15)
        assert band_deviation(60, RangeTarget(30, 40, 35)) == ("high", 20, 40)

    def test_zero_width_range(self):
        assert band_deviation(5, RangeTarget(5, 5, 5)) == ("ok", 0.0, 0.0)

    def test_cap(self):
        assert cap_deviation(4, CapTarget(5)) == ("ok", 0.0, 0.0)
        assert cap_deviation(8, CapTarget(5)) == ("high", 3, 6)
        assert cap_deviation(30, CapTarget(5)) == ("high", 25, 20)


# =============================================================================
# Single-profile scoring
# =============================================================================


class TestScoreAgainstProfile:
    """Scores, labels, deviations and summaries."""

    def test_strong_match(self):
        result = score_against_profile(BODY_BANDS, BODY_PROFILE)
        assert result.score == 98
        assert result.label == "strong"
        assert result.deviations == []
        assert result.summary == "Strong Body match"

    def test_close_match_names_largest_deviation(self):
        bands = dict(BODY_BANDS, lowMid=15)
        result = score_against_profile(bands, BODY_PROFILE)
        assert result.score == 82
        assert result.label == "close"
        assert [(d.band, d.direction) for d in result.deviations] == [("LowMid", "high")]
        assert result.summary == "Near Body: LowMid above target"

    def test_partial_match_counts_bands(self):
        bands = dict(BODY_BANDS, presence=28)
        result = score_against_profile(bands, BODY_PROFILE)
        assert result.score == 68
        assert result.label == "partial"
        assert result.summary == "Partial Body: 1 bands out of range"

    def test_miss(self):
        result = score_against_profile(BODY_BANDS, FEATURED_PROFILE)
        assert result.label == "miss"
        assert result.summary == "Outside Featured range"
        directions = {d.band: d.direction for d in result.deviations}
        assert directions == {"Mid": "high", "Presence": "low", "Ratio": "low"}

    def test_zero_mid_has_zero_ratio(self):
        result = score_against_profile({"highMid": 40}, BODY_PROFILE)
        assert any(d.band == "Ratio" and d.direction == "low" for d in result.deviations)

    def test_half_point_penalty_rounds_up(self):
        profile = PreferenceProfile(
            name="Flat",
            description="test",
            targets=ProfileTargets(
                mid=RangeTarget(0, 100, 50),
                high_mid=RangeTarget(0, 100, 50),
                presence=RangeTarget(0, 100, 50),
                ratio=RangeTarget(0, 2, 1),
                low_end=CapTarget(100),
                low_mid=CapTarget(7),
            ),
        )
        # LowMid 7.75 over the cap costs 15.5 points.
        result = score_against_profile({"mid": 50, "highMid": 50, "presence": 50, "lowMid": 14.75}, profile)
        assert result.score == 85
        assert result.label == "strong"

    def test_score_floor(self):
        bands = {"subBass": 50, "bass": 50, "lowMid": 90, "mid": 1, "highMid": 90, "presence": 90}
        assert score_against_profile(bands, BODY_PROFILE).score == 0


class TestScoreAgainstAllProfiles:
    """Best-match selection."""

    def test_default_profiles(self):
        assert [p.name for p in DEFAULT_PROFILES] == ["Featured", "Body", "Tight", "Warm"]
        matches = score_against_all_profiles(BODY_BANDS)
        assert len(matches.results) == 4
        assert matches.best.profile == "Body"

    def test_tie_prefers_lower_total_deviation(self):
        wide = _profile("Wide", RangeTarget(10, 50, 26))
        narrow = _profile("Narrow", RangeTarget(20, 40, 30))
        bands = {"mid": 34, "highMid": 50, "presence": 50}
        matches = score_against_all_profiles(bands, [wide, narrow])
        assert matches.results[0].score == matches.results[1].score
        assert matches.best.profile == "Narrow"

    def test_full_tie_prefers_declaration_order(self):
        first = _profile("First", RangeTarget(20, 40, 30))
        second = _profile("Second", RangeTarget(20, 40, 30))
        matches = score_against_all_profiles({"mid": 34, "highMid": 50, "presence": 50}, [first, second])
        assert matches.best.profile == "First"

    def test_no_profiles(self):
        with pytest.raises(ValueError):
            score_against_all_profiles(BODY_BANDS, [])


# =============================================================================
# Learned adjustments
# =============================================================================


class TestLearnedAdjustment:
    """Target shifts and avoid zones."""

    def test_avoid_zone_penalises_rejected_direction(self):
        adjustment = LearnedAdjustment(
            confidence=1.0, avoid_zones=[AvoidZone(band="presence", direction="low", threshold=15)]
        )
        result = score_against_profile(BODY_BANDS, BODY_PROFILE, adjustment)
        # 2 (highMid) + min(10 + 3 * 3, 40)
        assert result.score == 79
        assert [(d.band, d.direction, d.amount) for d in result.deviations] == [("Presence", "low", 3)]

    def test_avoid_zone_needs_confidence(self):
        adjustment = LearnedAdjustment(
            confidence=0.0, avoid_zones=[AvoidZone(band="presence", direction="low", threshold=15)]
        )
        assert score_against_profile(BODY_BANDS, BODY_PROFILE, adjustment).score == 98

    def test_avoid_zone_not_triggered(self):
        adjustment = LearnedAdjustment(
            confidence=1.0, avoid_zones=[AvoidZone(band="presence", direction="high", threshold=15)]
        )
        assert score_against_profile(BODY_BANDS, BODY_PROFILE, adjustment).score == 98

    def test_shift_moves_target(self):
        bands = dict(BODY_BANDS, presence=16)
        plain = score_against_profile(bands, BODY_PROFILE)
        shifted = score_against_profile(
            bands, BODY_PROFILE, LearnedAdjustment(band_shift={"presence": 4}, confidence=1.0)
        )
        half = score_against_profile(
            bands, BODY_PROFILE, LearnedAdjustment(band_shift={"presence": 4}, confidence=0.5)
        )
        assert shifted.score == 98
        assert plain.score < half.score < shifted.score

    def test_adjustments_by_profile_name(self):
        adjustment = LearnedAdjustment(
            confidence=1.0, avoid_zones=[AvoidZone(band="presence", direction="low", threshold=15)]
        )
        matches = score_against_all_profiles(BODY_BANDS, adjustments={"Body": adjustment})
        body = next(r for r in matches.results if r.profile == "Body")
        assert body.score == 79


class TestDeriveLearnedAdjustment:
    """Mapping learned taste weights onto profiles."""

    def test_nothing_learned(self, store, lead_ctx):
        assert derive_learned_adjustment(store, lead_ctx) == {}

    def test_from_intent_and_global_models(self, store, lead_ctx):
        state = default_state()
        intent_w = [0.0] * 9
        intent_w[5] = 0.2
        intent_w[3] = -0.05
        global_w = [0.0] * 9
        global_w[5] = 0.1
        state.models[lead_ctx.intent_key] = ModelState(w=intent_w, n_votes=15)
        state.models[lead_ctx.global_key] = ModelState(w=global_w, n_votes=40)
        store.save_state(state)

        adjustments = derive_learned_adjustment(store, lead_ctx)

        assert set(adjustments) == {p.name for p in DEFAULT_PROFILES}
        body = adjustments["Body"]
        assert body.confidence == pytest.approx(0.5)
        assert body.band_shift["presence"] == pytest.approx(4.0)
        assert body.band_shift["mid"] == pytest.approx(-1.0)
        assert "highMid" not in body.band_shift
        assert body.avoid_zones == [AvoidZone(band="presence", direction="low", threshold=12)]
        assert adjustments["Featured"].avoid_zones[0].threshold == 34


# =============================================================================
# Foundation and blend partners
# =============================================================================


class TestFindFoundationIR:
    """Ranking IRs as a blend body."""

    def test_ranks_by_body_score(self):
        irs = [
            IRBands("bright.wav", {"subBass": 1, "bass": 2, "lowMid": 4, "mid": 21, "highMid": 38, "presence": 34}, {}),
            IRBands("body.wav", BODY_BANDS, {}),
        ]
        ranked = find_foundation_ir(irs)
        assert [r.filename for r in ranked] == ["body.wav", "bright.wav"]
        assert [r.rank for r in ranked] == [1, 2]
        top = ranked[0]
        assert top.body_score == top.score == 98
        assert top.ratio == 1.2
        assert top.reasons == [
            "Strong Body match",
            "Tight low end",
            "Clean low-mids",
            "Mid in Body sweet spot",
            "Ratio in Body range",
            "HiMid in sweet spot",
        ]

    def test_negative_reasons(self):
        loose = dict(BODY_BANDS, subBass=5, bass=5, lowMid=12)
        ranked = find_foundation_ir([IRBands("loose.wav", loose, {})])
        assert "Low end too loose" in ranked[0].reasons
        assert "Muddy low-mids" in ranked[0].reasons

    def test_empty(self):
        assert find_foundation_ir([]) == []

    def test_no_profiles(self):
        assert find_foundation_ir([IRBands("a.wav", BODY_BANDS, {})], profiles=[]) == []


class TestBlendPartners:
    """Ranking candidates by their best blend with a base IR."""

    def test_blend_band_percent(self):
        assert blend_band_percent({"mid": 1.0}, {"highMid": 1.0}, 0.5, 0.5) == {
            "subBass": 0.0, "bass": 0.0, "lowMid": 0.0, "mid": 50.0, "highMid": 50.0, "presence": 0.0,
        }

    def test_blend_band_percent_rounds_halves_up(self):
        shares = blend_band_percent({"mid": 1.0}, {"highMid": 15.0}, 0.5, 0.5)
        assert shares["mid"] == 6.3
        assert shares["highMid"] == 93.8

    def test_blend_band_percent_of_silence(self):
        assert set(blend_band_percent({}, {}, 0.5, 0.5).values()) == {0.0}

    def test_ranking(self):
        base = IRBands("base.wav", {}, {"subBass": 1, "bass": 2, "lowMid": 5, "mid": 40, "highMid": 40, "presence": 5})
        good = IRBands("good.wav", {}, {"subBass": 1, "bass": 2, "lowMid": 5, "mid": 28, "highMid": 40, "presence": 24})
        bad = IRBands("bad.wav", {}, {"subBass": 30, "bass": 30, "lowMid": 30, "mid": 5, "highMid": 3, "presence": 2})
        ranked = rank_blend_partners(base, [bad, good])
        assert [r.filename for r in ranked] == ["good.wav", "bad.wav"]
        assert [r.rank for r in ranked] == [1, 2]
        assert ranked[0].best_ratio in DEFAULT_BLEND_RATIOS
        assert ranked[0].best_blend_score > ranked[1].best_blend_score
        assert sum(ranked[0].best_blend_bands.values()) == pytest.approx(100.0, abs=0.5)

    def test_no_candidates(self):
        assert rank_blend_partners(IRBands("base.wav", {}, {}), []) == []
