"""
Profile Matching Engine.

Scores band-energy percentages (``subBass`` .. ``presence``; ``air`` is
accepted and ignored) against named preference profiles and explains the
result: a 0-100 score, a ``strong|close|partial|miss`` label, per-band
deviations and a one-line summary.

Scoring
-------
Ranged targets (``mid``, ``highMid``, ``presence`` and the highMid/mid
``ratio``) cost up to 10 points inside their range, scaled by the distance from
the ideal, and ``min(3 * amount, 40)`` outside it.  Capped targets (``lowEnd``
= subBass + bass, ``lowMid``) cost ``min(2 * overshoot, 20)`` above the cap.

    score = max(0, round_half_up(100 - total_penalty))

A :class:`LearnedAdjustment` derived from the taste store moves the ranged
targets toward what the user has voted for and adds avoid zones: band
directions the user keeps rejecting cost more than plain deviation would.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Literal, Optional

from irscope.contracts.taste_types import TasteContext
from irscope.core.numeric import clamp, round_half_up, safe_number
from irscope.core.tonal_engine import MatchLabel, score_to_label
from irscope.services.taste.featurize import feature_index
from irscope.services.taste.rules import GLOBAL_RATE
from irscope.services.taste.store import TasteStore

logger = logging.getLogger(__name__)

Direction = Literal["low", "high", "ok"]

PROFILE_BANDS: tuple[str, ...] = ("subBass", "bass", "lowMid", "mid", "highMid", "presence")

# Ranged targets that learned adjustments may move.
ADJUSTABLE_TARGETS: tuple[str, ...] = ("mid", "highMid", "presence")

IN_RANGE_PENALTY = 10.0
OUT_OF_RANGE_RATE = 3.0
OUT_OF_RANGE_MAX = 40.0
CAP_RATE = 2.0
CAP_MAX = 20.0

AVOID_BASE_PENALTY = 10.0
AVOID_RATE = 3.0
AVOID_MAX = 40.0

# Learned weight (vector units) -> target shift in percentage points.
SHIFT_PER_WEIGHT = 20.0
MAX_SHIFT = 4.0
AVOID_WEIGHT_THRESHOLD = 0.15

_DISPLAY_NAMES: dict[str, str] = {
    "mid": "Mid",
    "highMid": "HiMid",
    "presence": "Presence",
    "ratio": "Ratio",
    "lowEnd": "LowEnd",
    "lowMid": "LowMid",
}


# =============================================================================
# Profiles
# =============================================================================


@dataclass(frozen=True)
class RangeTarget:
    low: float
    high: float
    ideal: float

    def shifted(self, amount: float) -> "RangeTarget":
        return RangeTarget(self.low + amount, self.high + amount, self.ideal + amount)


@dataclass(frozen=True)
class CapTarget:
    limit: float


@dataclass(frozen=True)
class ProfileTargets:
    mid: RangeTarget
    high_mid: RangeTarget
    presence: RangeTarget
    ratio: RangeTarget
    low_end: CapTarget
    low_mid: CapTarget

    def ranged(self) -> dict[str, RangeTarget]:
        return {
            "mid": self.mid,
            "highMid": self.high_mid,
            "presence": self.presence,
            "ratio": self.ratio,
        }


@dataclass(frozen=True)
class PreferenceProfile:
    name: str
    description: str
    targets: ProfileTargets


FEATURED_PROFILE = PreferenceProfile(
    name="Featured",
    description="Cut, air, articulation. For lead/featured parts.",
    targets=ProfileTargets(
        mid=RangeTarget(19, 26, 22),
        high_mid=RangeTarget(35, 43, 39),
        presence=RangeTarget(28, 39, 34),
        ratio=RangeTarget(1.4, 1.9, 1.65),
        low_end=CapTarget(5),
        low_mid=CapTarget(7),
    ),
)

BODY_PROFILE = PreferenceProfile(
    name="Body",
    description="Weight, warmth, sit-in-the-mix. For rhythm/foundation parts.",
    targets=ProfileTargets(
        mid=RangeTarget(30, 39, 34),
        high_mid=RangeTarget(35, 43, 40),
        presence=RangeTarget(5, 18, 12),
        ratio=RangeTarget(1.0, 1.4, 1.2),
        low_end=CapTarget(5),
        low_mid=CapTarget(7),
    ),
)

TIGHT_PROFILE = PreferenceProfile(
    name="Tight",
    description="Controlled low end, focused upper mids. For fast palm-muted rhythm.",
    targets=ProfileTargets(
        mid=RangeTarget(24, 32, 28),
        high_mid=RangeTarget(36, 44, 40),
        presence=RangeTarget(16, 28, 22),
        ratio=RangeTarget(1.2, 1.7, 1.45),
        low_end=CapTarget(3),
        low_mid=CapTarget(5),
    ),
)

WARM_PROFILE = PreferenceProfile(
    name="Warm",
    description="Rounded mids, soft top. For clean and vintage tones.",
    targets=ProfileTargets(
        mid=RangeTarget(32, 42, 37),
        high_mid=RangeTarget(28, 38, 33),
        presence=RangeTarget(6, 16, 11),
        ratio=RangeTarget(0.7, 1.1, 0.9),
        low_end=CapTarget(8),
        low_mid=CapTarget(12),
    ),
)

DEFAULT_PROFILES: tuple[PreferenceProfile, ...] = (
    FEATURED_PROFILE,
    BODY_PROFILE,
    TIGHT_PROFILE,
    WARM_PROFILE,
)


# =============================================================================
# Results and adjustments
# =============================================================================


@dataclass(frozen=True)
class BandDeviation:
    band: str
    direction: Direction
    amount: float


@dataclass
class MatchResult:
    profile: str
    score: int
    label: MatchLabel
    deviations: list[BandDeviation]
    summary: str
    total_deviation: float = 0.0


@dataclass
class ProfileMatches:
    results: list[MatchResult]
    best: MatchResult


@dataclass(frozen=True)
class AvoidZone:
    """Values past *threshold* in *direction* are penalised as rejected."""

    band: str
    direction: Literal["low", "high"]
    threshold: float

    def overshoot(self, value: float) -> float:
        if self.direction == "high":
            return max(0.0, value - self.threshold)
        return max(0.0, self.threshold - value)


@dataclass
class LearnedAdjustment:
    band_shift: dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0
    avoid_zones: list[AvoidZone] = field(default_factory=list)


# =============================================================================
# Deviation primitives
# =============================================================================


def band_deviation(value: float, target: RangeTarget) -> tuple[Direction, float, float]:
    """``(direction, amount, penalty)`` of *value* against a ranged target."""
    if target.low <= value <= target.high:
        half_range = (target.high - target.low) / 2
        penalty = abs(value - target.ideal) / half_range * IN_RANGE_PENALTY if half_range > 0 else 0.0
        return "ok", 0.0, penalty
    if value < target.low:
        amount = target.low - value
        return "low", amount, min(amount * OUT_OF_RANGE_RATE, OUT_OF_RANGE_MAX)
    amount = value - target.high
    return "high", amount, min(amount * OUT_OF_RANGE_RATE, OUT_OF_RANGE_MAX)


def cap_deviation(value: float, cap: CapTarget) -> tuple[Direction, float, float]:
    if value <= cap.limit:
        return "ok", 0.0, 0.0
    amount = value - cap.limit
    return "high", amount, min(amount * CAP_RATE, CAP_MAX)


def _band_values(bands: Mapping[str, float]) -> dict[str, float]:
    values = {k: safe_number(bands.get(k)) for k in PROFILE_BANDS}
    return {
        "mid": values["mid"],
        "highMid": values["highMid"],
        "presence": values["presence"],
        "ratio": values["highMid"] / values["mid"] if values["mid"] > 0 else 0.0,
        "lowEnd": values["subBass"] + values["bass"],
        "lowMid": values["lowMid"],
    }


def _summary(profile: str, label: MatchLabel, deviations: Sequence[BandDeviation]) -> str:
    if label == "strong":
        return f"Strong {profile} match"
    if label == "close":
        if not deviations:
            return f"Near {profile}"
        top = max(deviations, key=lambda d: d.amount)
        side = "above" if top.direction == "high" else "below"
        return f"Near {profile}: {top.band} {side} target"
    if label == "partial":
        return f"Partial {profile}: {len(deviations)} bands out of range"
    return f"Outside {profile} range"


# =============================================================================
# Scoring
# =============================================================================


def score_against_profile(
    bands: Mapping[str, float],
    profile: PreferenceProfile,
    adjustment: Optional[LearnedAdjustment] = None,
) -> MatchResult:
    """Score one set of band percentages against *profile*."""
    values = _band_values(bands)
    ranged = profile.targets.ranged()
    confidence = clamp(safe_number(adjustment.confidence), 0.0, 1.0) if adjustment else 0.0

    if adjustment is not None and confidence > 0:
        for name, shift in adjustment.band_shift.items():
            if name in ADJUSTABLE_TARGETS:
                ranged[name] = ranged[name].shifted(safe_number(shift) * confidence)

    zones: dict[str, list[AvoidZone]] = {}
    if adjustment is not None and confidence > 0:
        for zone in adjustment.avoid_zones:
            zones.setdefault(zone.band, []).append(zone)

    total_penalty = 0.0
    total_deviation = 0.0
    deviations: list[BandDeviation] = []

    checks: list[tuple[str, tuple[Direction, float, float]]] = [
        (name, band_deviation(values[name], target)) for name, target in ranged.items()
    ]
    checks.append(("lowEnd", cap_deviation(values["lowEnd"], profile.targets.low_end)))
    checks.append(("lowMid", cap_deviation(values["lowMid"], profile.targets.low_mid)))

    for name, (direction, amount, penalty) in checks:
        value = values[name]
        if name in ranged:
            total_deviation += abs(value - ranged[name].ideal)
        else:
            total_deviation += amount

        for zone in zones.get(name, []):
            overshoot = zone.overshoot(value)
            if overshoot <= 0:
                continue
            avoid_penalty = min(AVOID_BASE_PENALTY + AVOID_RATE * overshoot, AVOID_MAX) * confidence
            if avoid_penalty > penalty:
                penalty = avoid_penalty
                if direction == "ok":
                    direction, amount = zone.direction, overshoot

        total_penalty += penalty
        if direction != "ok":
            deviations.append(BandDeviation(band=_DISPLAY_NAMES[name], direction=direction, amount=amount))

    score = max(0, round_half_up(100 - total_penalty))
    label = score_to_label(score)
    return MatchResult(
        profile=profile.name,
        score=score,
        label=label,
        deviations=deviations,
        summary=_summary(profile.name, label, deviations),
        total_deviation=total_deviation,
    )


def score_against_all_profiles(
    bands: Mapping[str, float],
    profiles: Sequence[PreferenceProfile] = DEFAULT_PROFILES,
    adjustments: Optional[Mapping[str, LearnedAdjustment]] = None,
) -> ProfileMatches:
    """Score *bands* against every profile and pick the best match.

    Highest score wins; equal scores go to the lower total deviation, then to
    the profile declared first.
    """
    if not profiles:
        raise ValueError("At least one profile is required")
    adjustments = adjustments or {}
    results = [score_against_profile(bands, p, adjustments.get(p.name)) for p in profiles]
    best_index = min(
        range(len(results)),
        key=lambda i: (-results[i].score, results[i].total_deviation, i),
    )
    return ProfileMatches(results=results, best=results[best_index])


# =============================================================================
# Learned adjustments
# =============================================================================


def derive_learned_adjustment(
    store: TasteStore,
    ctx: TasteContext,
    profiles: Sequence[PreferenceProfile] = DEFAULT_PROFILES,
) -> dict[str, LearnedAdjustment]:
    """Per-profile adjustments from the learned taste weights of *ctx*.

    Uses the combined weights ``w_intent + 0.35 * w_global`` of the
    adjustable bands.  Returns an empty dict when nothing has been learned.
    """
    state = store.load_state()
    intent_model = state.models.get(ctx.intent_key)
    global_model = state.models.get(ctx.global_key)
    if intent_model is None and global_model is None:
        return {}

    def weight_at(idx: int) -> float:
        w = 0.0
        if intent_model is not None and idx < len(intent_model.w):
            w += intent_model.w[idx]
        if global_model is not None and idx < len(global_model.w):
            w += GLOBAL_RATE * global_model.w[idx]
        return w

    weights = {name: weight_at(feature_index(name)) for name in ADJUSTABLE_TARGETS}
    confidence = store.get_taste_status(ctx)["confidence"]

    adjustments: dict[str, LearnedAdjustment] = {}
    for profile in profiles:
        ranged = profile.targets.ranged()
        shifts: dict[str, float] = {}
        zones: list[AvoidZone] = []
        for name, w in weights.items():
            shift = clamp(w * SHIFT_PER_WEIGHT, -MAX_SHIFT, MAX_SHIFT)
            if shift:
                shifts[name] = shift
            if abs(w) >= AVOID_WEIGHT_THRESHOLD:
                # More of a band is liked, so falling short of the ideal is rejected.
                zones.append(
                    AvoidZone(band=name, direction="low" if w > 0 else "high", threshold=ranged[name].ideal)
                )
        adjustments[profile.name] = LearnedAdjustment(
            band_shift=shifts, confidence=confidence, avoid_zones=zones
        )

    logger.debug("Learned profile adjustment for %s: %s (confidence %.2f)", ctx.intent_key, weights, confidence)
    return adjustments


# =============================================================================
# Foundation and blend-partner ranking
# =============================================================================


@dataclass(frozen=True)
class IRBands:
    """Band percentages and raw band energies of one IR."""

    filename: str
    bands: Mapping[str, float]
    raw_energy: Mapping[str, float]


@dataclass
class FoundationScore:
    filename: str
    score: int
    body_score: int
    featured_score: int
    reasons: list[str]
    bands: Mapping[str, float]
    ratio: float
    rank: int = 0


def _find_profile(profiles: Sequence[PreferenceProfile], name: str, fallback: int) -> PreferenceProfile:
    for p in profiles:
        if p.name == name:
            return p
    return profiles[min(fallback, len(profiles) - 1)]


def _foundation_reasons(values: Mapping[str, float], body: MatchResult) -> list[str]:
    reasons: list[str] = []
    if body.label == "strong":
        reasons.append("Strong Body match")
    elif body.label == "close":
        reasons.append("Close Body match")

    if values["lowEnd"] <= 3:
        reasons.append("Tight low end")
    if values["lowMid"] <= 5:
        reasons.append("Clean low-mids")
    if 30 <= values["mid"] <= 39:
        reasons.append("Mid in Body sweet spot")
    if 1.0 <= values["ratio"] <= 1.4:
        reasons.append("Ratio in Body range")
    if 35 <= values["highMid"] <= 43:
        reasons.append("HiMid in sweet spot")

    if values["lowEnd"] > 8:
        reasons.append("Low end too loose")
    if values["lowMid"] > 10:
        reasons.append("Muddy low-mids")
    if body.label == "miss":
        reasons.append("Outside Body range")
    return reasons


def find_foundation_ir(
    irs: Sequence[IRBands],
    profiles: Sequence[PreferenceProfile] = DEFAULT_PROFILES,
) -> list[FoundationScore]:
    """Rank IRs by how well they work as the body of a blend.

    Returns an empty list when there are no IRs or no profiles to rank against.
    """
    if not irs or not profiles:
        return []
    body_profile = _find_profile(profiles, "Body", 1)
    featured_profile = _find_profile(profiles, "Featured", 0)

    scored: list[FoundationScore] = []
    for ir in irs:
        values = _band_values(ir.bands)
        body = score_against_profile(ir.bands, body_profile)
        featured = score_against_profile(ir.bands, featured_profile)
        scored.append(
            FoundationScore(
                filename=ir.filename,
                score=body.score,
                body_score=body.score,
                featured_score=featured.score,
                reasons=_foundation_reasons(values, body),
                bands=ir.bands,
                ratio=round_half_up(values["ratio"] * 100) / 100,
            )
        )

    scored.sort(key=lambda s: -s.score)
    for i, s in enumerate(scored):
        s.rank = i + 1
    return scored


@dataclass(frozen=True)
class BlendRatio:
    label: str
    base: float
    feature: float


DEFAULT_BLEND_RATIOS: tuple[BlendRatio, ...] = (
    BlendRatio("70/30", 0.7, 0.3),
    BlendRatio("60/40", 0.6, 0.4),
    BlendRatio("50/50", 0.5, 0.5),
    BlendRatio("40/60", 0.4, 0.6),
    BlendRatio("30/70", 0.3, 0.7),
)


@dataclass
class BlendPartnerScore:
    filename: str
    bands: Mapping[str, float]
    best_blend_score: int
    best_blend_label: MatchLabel
    best_blend_profile: str
    best_ratio: BlendRatio
    best_blend_bands: dict[str, float]
    rank: int = 0


def blend_band_percent(
    base_raw: Mapping[str, float],
    feature_raw: Mapping[str, float],
    base_ratio: float,
    feature_ratio: float,
) -> dict[str, float]:
    """Band percentages (one decimal) of a raw-energy mix of two IRs."""
    raw = {
        k: safe_number(base_raw.get(k)) * base_ratio + safe_number(feature_raw.get(k)) * feature_ratio
        for k in PROFILE_BANDS
    }
    total = sum(raw.values())
    if total <= 0:
        return {k: 0.0 for k in PROFILE_BANDS}
    return {k: round_half_up(raw[k] / total * 1000) / 10 for k in PROFILE_BANDS}


def rank_blend_partners(
    base: IRBands,
    candidates: Sequence[IRBands],
    ratios: Sequence[BlendRatio] = DEFAULT_BLEND_RATIOS,
    profiles: Sequence[PreferenceProfile] = DEFAULT_PROFILES,
) -> list[BlendPartnerScore]:
    """Rank *candidates* by the best profile score any ratio of blend with *base* reaches."""
    if not candidates or not ratios:
        return []

    scored: list[BlendPartnerScore] = []
    for cand in candidates:
        best: Optional[BlendPartnerScore] = None
        for ratio in ratios:
            blended = blend_band_percent(base.raw_energy, cand.raw_energy, ratio.base, ratio.feature)
            match = score_against_all_profiles(blended, profiles).best
            if best is None or match.score > best.best_blend_score:
                best = BlendPartnerScore(
                    filename=cand.filename,
                    bands=cand.bands,
                    best_blend_score=match.score,
                    best_blend_label=match.label,
                    best_blend_profile=match.profile,
                    best_ratio=ratio,
                    best_blend_bands=blended,
                )
        scored.append(best)

    scored.sort(key=lambda s: -s.best_blend_score)
    return [replace(s, rank=i + 1) for i, s in enumerate(scored)]
