"""
Musical Roles: what job an IR does in a blend.

Each IR is classified into one of six roles from its band percentages, tilt,
smoothness, rolloff, centroid and fizz.  When several IRs of the same speaker
are available, thresholds are read relative to that speaker's own spread
(z-scores) instead of absolute values, so a dark speaker's brightest capture
can still be its Cut Layer.

Classification runs in two passes:

1. :func:`classify_musical_role` - acoustic rules only
2. :func:`apply_context_bias` - corrects known misreads (a bright Fizz Tamer,
   a cutting Foundation), then lets capture hints in the filename (mic,
   position, "presence") vote alongside the acoustic result, which always
   carries the most weight

Roles then feed pairing (:func:`score_role_pair_for_intent`) and are
softened by learning (:func:`soften_roles_from_learning`): a file the user
keeps picking is promoted toward a role the current intent favours.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from typing import Literal, Optional

from irscope.contracts.taste_types import TasteContext, TasteIntent
from irscope.core.metrics_adapter import first_number, normalize_ir_metrics
from irscope.core.numeric import safe_number
from irscope.core.tonal_engine import TonalFeatures, compute_tonal_features
from irscope.models.taste import IRWinRecord
from irscope.services.taste.store import TasteStore

logger = logging.getLogger(__name__)

MusicalRole = Literal[
    "Foundation",
    "Cut Layer",
    "Mid Thickener",
    "Fizz Tamer",
    "Lead Polish",
    "Dark Specialty",
]

ALL_ROLES: tuple[MusicalRole, ...] = (
    "Foundation",
    "Cut Layer",
    "Mid Thickener",
    "Fizz Tamer",
    "Lead Polish",
    "Dark Specialty",
)

# Per-speaker statistics are kept for these metrics.
STAT_KEYS: tuple[str, ...] = ("centroid", "tilt", "ext", "presence", "hiMidMid", "smooth", "air", "fizz")

# highMid/mid when mid is silent.
SILENT_MID_RATIO = 10.0

# Base role weight in the context-bias vote.
BASE_ROLE_WEIGHT = 3.0

# Filename hint -> (role, weight).  Every matching hint adds its weight.
FILENAME_HINTS: tuple[tuple[tuple[str, ...], MusicalRole, float], ...] = (
    (("presence",), "Cut Layer", 0.8),
    (("capedge_br",), "Cut Layer", 0.4),
    (("capedge",), "Foundation", 0.2),
    (("cone_tr", "cap_cone_tr"), "Fizz Tamer", 0.4),
    (("cone_",), "Mid Thickener", 0.3),
    (("fredman",), "Foundation", 0.4),
    (("_thick_",), "Mid Thickener", 0.5),
    (("_balanced_",), "Foundation", 0.4),
    (("_tight_",), "Lead Polish", 0.4),
    (("r121",), "Mid Thickener", 0.4),
    (("roswell",), "Dark Specialty", 0.7),
    (("md441",), "Cut Layer", 0.4),
    (("pr30",), "Foundation", 0.35),
    (("md421",), "Foundation", 0.25),
    (("m201",), "Foundation", 0.25),
    (("e906",), "Cut Layer", 0.25),
    (("sm57",), "Foundation", 0.15),
)

# Added to a foundation candidate's distance; lower is more foundation-like.
FOUNDATION_ROLE_BIAS: dict[str, float] = {
    "Foundation": -0.40,
    "Lead Polish": -0.10,
    "Mid Thickener": 0.10,
    "Cut Layer": 0.15,
    "Fizz Tamer": 0.25,
    "Dark Specialty": 0.45,
}


# =============================================================================
# Inputs
# =============================================================================


def fizz_percent(raw: object) -> float:
    """Fizz energy as a percentage; values up to 1.2 are read as a 0-1 ratio."""
    n = safe_number(raw)
    return n if n > 1.2 else n * 100


@dataclass(frozen=True)
class RoleFeatures:
    """The scalar view of one IR that role rules read.

    ``bands_percent`` is 0-100 per band.  A ``rolloff_freq`` of 0 means
    unknown and never counts as dark.
    """

    bands_percent: Mapping[str, float] = field(default_factory=dict)
    tilt_db_per_oct: float = 0.0
    smooth_score: float = 0.0
    rolloff_freq: float = 0.0
    centroid_hz: float = 0.0
    fizz_pct: float = 0.0

    def band(self, key: str) -> float:
        return safe_number(self.bands_percent.get(key))

    @property
    def hi_mid_mid(self) -> float:
        mid = self.band("mid")
        return self.band("highMid") / mid if mid > 0 else SILENT_MID_RATIO

    def stat_values(self) -> dict[str, float]:
        return {
            "centroid": self.centroid_hz,
            "tilt": self.tilt_db_per_oct,
            "ext": self.rolloff_freq,
            "presence": self.band("presence"),
            "hiMidMid": self.hi_mid_mid,
            "smooth": self.smooth_score,
            "air": self.band("air"),
            "fizz": self.fizz_pct,
        }


def role_features(
    tf: TonalFeatures,
    centroid_hz: Optional[float] = None,
    fizz_energy: Optional[float] = None,
) -> RoleFeatures:
    """Build :class:`RoleFeatures` from a tonal-feature record plus optional scalars."""
    return RoleFeatures(
        bands_percent=dict(tf.bands_percent),
        tilt_db_per_oct=safe_number(tf.tilt_db_per_oct),
        smooth_score=safe_number(tf.smooth_score),
        rolloff_freq=safe_number(tf.rolloff_freq),
        centroid_hz=safe_number(centroid_hz),
        fizz_pct=fizz_percent(fizz_energy),
    )


def role_features_from_metrics(metrics: object) -> RoleFeatures:
    """Build :class:`RoleFeatures` straight from an analysis metrics payload."""
    tf = compute_tonal_features(metrics)
    return role_features(
        tf,
        centroid_hz=normalize_ir_metrics(metrics).centroid_hz,
        fizz_energy=first_number(metrics, "fizzEnergy", "fizz_energy"),
    )


def speaker_id_from_filename(filename: str) -> str:
    """``"irs/v30_cap_sm57.wav"`` -> ``"V30"``."""
    base = (filename or "").split("/")[-1]
    return (base.split("_")[0] or "UNKNOWN").upper()


# =============================================================================
# Speaker statistics
# =============================================================================


def z_score(value: float, mean: float, std: float) -> float:
    """Standard score; 0 for non-finite input or a degenerate spread."""
    if not all(math.isfinite(v) for v in (value, mean, std)) or std <= 1e-9:
        return 0.0
    return (value - mean) / std


@dataclass(frozen=True)
class SpeakerStats:
    """Population mean and standard deviation of :data:`STAT_KEYS` for one speaker."""

    mean: Mapping[str, float]
    std: Mapping[str, float]

    def z(self, key: str, value: float) -> float:
        return z_score(value, self.mean.get(key, math.nan), self.std.get(key, math.nan))


def _z(stats: Optional[SpeakerStats], key: str, value: float) -> float:
    return stats.z(key, value) if stats is not None else 0.0


def compute_speaker_stats(rows: Iterable[tuple[str, RoleFeatures]]) -> dict[str, SpeakerStats]:
    """Group ``(filename, features)`` rows by speaker and summarize each group.

    A zero spread is stored as 1 so later z-scores stay finite.
    """
    by_speaker: dict[str, list[RoleFeatures]] = {}
    for filename, features in rows:
        by_speaker.setdefault(speaker_id_from_filename(filename), []).append(features)

    stats: dict[str, SpeakerStats] = {}
    for speaker, members in by_speaker.items():
        samples = [m.stat_values() for m in members]
        mean: dict[str, float] = {}
        std: dict[str, float] = {}
        for key in STAT_KEYS:
            values = [s[key] for s in samples if math.isfinite(s[key])]
            m = sum(values) / len(values) if values else 0.0
            var = sum((v - m) ** 2 for v in values) / len(values) if values else 0.0
            mean[key] = m
            std[key] = math.sqrt(var) or 1.0
        stats[speaker] = SpeakerStats(mean=mean, std=std)
    return stats


# =============================================================================
# Classification
# =============================================================================


def classify_musical_role(f: RoleFeatures, stats: Optional[SpeakerStats] = None) -> MusicalRole:
    """Acoustic role of one IR, relative to its speaker when *stats* is given."""
    smooth = f.smooth_score
    tilt = f.tilt_db_per_oct
    ext = f.rolloff_freq
    centroid = f.centroid_hz
    fizz = f.fizz_pct

    air = f.band("air")
    mid = f.band("mid")
    high_mid = f.band("highMid")
    presence = f.band("presence")
    low_mid = f.band("lowMid")
    bass_low_mid = f.band("subBass") + f.band("bass") + low_mid
    core = max(1e-6, mid + low_mid)
    cut_core_ratio = (high_mid + presence) / core

    z_centroid = _z(stats, "centroid", centroid)
    z_ext = _z(stats, "ext", ext)
    z_presence = _z(stats, "presence", presence)
    z_tilt = _z(stats, "tilt", tilt)
    z_air = _z(stats, "air", air)
    z_fizz = _z(stats, "fizz", fizz)
    relative = stats is not None

    balanced_bands = (
        22 <= mid <= 35
        and 18 <= presence <= 42
        and 18 <= high_mid <= 45
        and 1.10 <= cut_core_ratio <= 2.40
        and air <= 6.0
        and fizz <= 1.5
    )
    not_extreme_tilt = abs(z_tilt) <= 1.2 if relative else -5.5 <= tilt <= -1.0
    if ext == 0:
        not_too_dark = True
    else:
        not_too_dark = z_ext >= -0.2 if relative else ext >= 4200
    if balanced_bands and not_extreme_tilt and not_too_dark and bass_low_mid >= 18:
        return "Foundation"

    if relative:
        near_center = abs(z_centroid) <= 0.8 and (abs(z_tilt) <= 1.2 or abs(z_ext) <= 0.8)
        if near_center and smooth >= 84 and (fizz <= 2.0 or z_fizz <= 0.4):
            return "Foundation"

    extreme_abs_dark = (0 < ext < 2900) or tilt <= -8.0
    speaker_rel_dark = z_ext <= -1.1 or (z_tilt <= -1.2 and z_centroid <= -0.6)
    if (mid >= 34 or bass_low_mid >= 28) and presence <= 36:
        if relative:
            very_dark = z_ext <= -1.5 or (z_tilt <= -1.5 and z_centroid <= -0.9)
        else:
            very_dark = extreme_abs_dark
        if very_dark:
            return "Dark Specialty"
    elif speaker_rel_dark if relative else (extreme_abs_dark or speaker_rel_dark):
        return "Dark Specialty"

    extended = ext > 0 and (z_ext >= 0.6 if relative else ext >= 4200)
    not_fizzy = fizz <= 1.2 or z_fizz <= 0.35
    not_extreme_cut = presence <= 58 and z_presence <= 1.9 and cut_core_ratio <= 3.4
    if relative:
        above_avg_top_end = z_centroid >= 0.4 or z_presence >= 0.3
    else:
        above_avg_top_end = centroid >= 2500 or presence >= 20
    if (
        extended
        and smooth >= 87
        and not_fizzy
        and 14 <= presence <= 55
        and mid + low_mid >= 16
        and not_extreme_cut
        and above_avg_top_end
    ):
        return "Lead Polish"

    cut_forward = presence >= 50 or cut_core_ratio >= 3.0 or z_presence >= 1.15 or z_centroid >= 1.15
    if cut_forward and mid + low_mid <= 24:
        return "Cut Layer"

    mid_heavy = mid >= 34 or low_mid >= 10 or bass_low_mid >= 24
    if mid_heavy and presence <= 36 and z_presence <= 0.35:
        return "Mid Thickener"

    if relative:
        near_voice = abs(z_centroid) <= 0.9 and abs(z_ext) <= 1.0 and abs(z_tilt) <= 1.3 and smooth >= 84
        if near_voice:
            return "Foundation"

    rolled_off = ext > 0 and (z_ext <= -0.6 if relative else ext <= 4500)
    very_dark_tilt = (z_tilt <= -0.6 if relative else tilt <= -5.2) or tilt <= -7.0
    low_fizz = fizz <= 0.6 or z_fizz <= -0.4
    low_air = air <= 1.8 or z_air <= -0.3
    if relative:
        clearly_dark = z_tilt <= -1.0 or z_ext <= -1.0
    else:
        clearly_dark = rolled_off or very_dark_tilt
    if clearly_dark and smooth >= 82 and low_fizz and low_air and z_presence <= -0.5:
        return "Fizz Tamer"

    if cut_forward and mid + low_mid <= 28:
        return "Cut Layer"
    if mid_heavy:
        return "Mid Thickener"
    if (tilt <= -4.8 or 0 < ext <= 4700 or z_tilt <= -0.7) and (fizz <= 1.0 or z_fizz <= -0.2):
        return "Fizz Tamer"
    return "Foundation"


def apply_context_bias(
    base_role: MusicalRole,
    f: RoleFeatures,
    filename: str,
    stats: Optional[SpeakerStats] = None,
) -> MusicalRole:
    """Second pass: correct known misreads, then let filename hints break close calls."""
    name = (filename or "").lower()
    presence = f.band("presence")
    tilt = f.tilt_db_per_oct
    ext = f.rolloff_freq
    hi_mid_mid = f.hi_mid_mid
    air = f.band("air")

    z_centroid = _z(stats, "centroid", f.centroid_hz)
    z_ext = _z(stats, "ext", ext)
    z_presence = _z(stats, "presence", presence)
    z_hi_mid_mid = _z(stats, "hiMidMid", hi_mid_mid)
    z_air = _z(stats, "air", air)
    z_fizz = _z(stats, "fizz", f.fizz_pct)
    z_tilt = _z(stats, "tilt", tilt)

    clearly_dark = (0 < ext <= 3900) or tilt <= -5.8
    if base_role == "Fizz Tamer" and ("presence" in name or presence >= 28) and not clearly_dark:
        base_role = "Cut Layer"

    objectively_cutty = (z_centroid >= 1.0 and z_ext >= 0.8) or z_presence >= 1.1 or z_hi_mid_mid >= 1.2
    if objectively_cutty and base_role == "Foundation":
        return "Cut Layer"

    votes: dict[str, float] = {role: 0.0 for role in ALL_ROLES}
    votes[base_role] += BASE_ROLE_WEIGHT
    for needles, role, weight in FILENAME_HINTS:
        if any(n in name for n in needles):
            votes[role] += weight

    sheen = (
        f.smooth_score >= 88
        and ext >= 4800
        and presence <= 48
        and hi_mid_mid <= 1.75
        and tilt >= -5.2
        and (air >= 2.0 or z_air >= 0.7)
        and (f.fizz_pct <= 0.9 or z_fizz <= 0.2)
    )
    if sheen:
        votes["Lead Polish"] += 0.9
    if (0 < ext < 3600) or tilt <= -6.2 or z_tilt <= -1.3:
        votes["Dark Specialty"] += 1.0

    best: MusicalRole = base_role
    for role in ALL_ROLES:
        if votes[role] > votes[best]:
            best = role
    return best


def classify_ir(f: RoleFeatures, filename: str, stats: Optional[SpeakerStats] = None) -> MusicalRole:
    return apply_context_bias(classify_musical_role(f, stats), f, filename, stats)


def classify_irs(rows: Sequence[tuple[str, RoleFeatures]]) -> dict[str, MusicalRole]:
    """Classify a library of IRs, each relative to its own speaker's captures."""
    stats = compute_speaker_stats(rows)
    roles = {
        filename: classify_ir(features, filename, stats.get(speaker_id_from_filename(filename)))
        for filename, features in rows
    }
    logger.debug("Classified %d IRs across %d speakers", len(roles), len(stats))
    return roles


# =============================================================================
# Pairing by intent
# =============================================================================


@dataclass(frozen=True)
class RolePreferences:
    """Role pairings an intent likes, best first, plus roles it likes or avoids alone."""

    preferred: tuple[tuple[MusicalRole, MusicalRole], ...]
    good: tuple[MusicalRole, ...]
    avoid: tuple[MusicalRole, ...] = ()


INTENT_ROLE_PREFERENCES: dict[str, RolePreferences] = {
    "rhythm": RolePreferences(
        preferred=(
            ("Foundation", "Mid Thickener"),
            ("Foundation", "Cut Layer"),
            ("Foundation", "Fizz Tamer"),
            ("Foundation", "Foundation"),
            ("Mid Thickener", "Cut Layer"),
            ("Mid Thickener", "Fizz Tamer"),
            ("Cut Layer", "Dark Specialty"),
        ),
        good=("Foundation", "Mid Thickener", "Fizz Tamer", "Cut Layer"),
        avoid=("Lead Polish",),
    ),
    "lead": RolePreferences(
        preferred=(
            ("Foundation", "Cut Layer"),
            ("Foundation", "Lead Polish"),
            ("Cut Layer", "Lead Polish"),
            ("Cut Layer", "Mid Thickener"),
            ("Foundation", "Foundation"),
            ("Cut Layer", "Fizz Tamer"),
        ),
        good=("Cut Layer", "Lead Polish", "Foundation"),
        avoid=("Dark Specialty",),
    ),
    "clean": RolePreferences(
        preferred=(
            ("Foundation", "Lead Polish"),
            ("Foundation", "Foundation"),
            ("Lead Polish", "Lead Polish"),
            ("Foundation", "Cut Layer"),
            ("Lead Polish", "Mid Thickener"),
            ("Foundation", "Dark Specialty"),
            ("Foundation", "Fizz Tamer"),
        ),
        good=("Foundation", "Lead Polish", "Fizz Tamer"),
    ),
}

PREFERRED_PAIR_TOP = 3.0
PREFERRED_PAIR_STEP = 0.4


def score_role_pair_for_intent(role_a: MusicalRole, role_b: MusicalRole, intent: TasteIntent) -> float:
    """How well two roles pair for *intent*; order of the pair does not matter.

    Preferred pairs score 3.0 down in steps of 0.4 by rank.  Other pairs
    get +1 per role the intent likes and -2 per role it avoids.
    """
    prefs = INTENT_ROLE_PREFERENCES.get(intent)
    if prefs is None:
        return 0.0
    pair = tuple(sorted((role_a, role_b)))
    for rank, preferred in enumerate(prefs.preferred):
        if pair == tuple(sorted(preferred)):
            return PREFERRED_PAIR_TOP - rank * PREFERRED_PAIR_STEP

    score = 0.0
    for role in (role_a, role_b):
        if role in prefs.good:
            score += 1
        if role in prefs.avoid:
            score -= 2
    return score


# =============================================================================
# Learning
# =============================================================================


def soften_roles_from_learning(
    roles: MutableMapping[str, MusicalRole],
    win_records: Mapping[str, IRWinRecord],
    intent: TasteIntent,
) -> list[str]:
    """Promote files the user keeps choosing (in place); return the filenames changed.

    A "both" vote counts half a win.  With at least two votes and a positive
    net (``wins + 0.5 * both - losses``):

    - net >= 4 at a 60% win rate makes the file a Foundation
    - net >= 2 at a 50% win rate moves a role the intent does not like to
      the intent's first liked role
    """
    changed: list[str] = []
    prefs = INTENT_ROLE_PREFERENCES.get(intent)
    for filename, rec in win_records.items():
        current = roles.get(filename)
        if current is None or current == "Foundation":
            continue
        net = rec.wins + rec.both_count * 0.5 - rec.losses
        total = rec.wins + rec.losses + rec.both_count
        if total < 2 or net <= 0:
            continue
        win_rate = (rec.wins + rec.both_count * 0.5) / max(1, total)

        target: Optional[MusicalRole] = None
        if net >= 4 and win_rate >= 0.6:
            target = "Foundation"
        elif net >= 2 and win_rate >= 0.5 and prefs is not None and current not in prefs.good:
            target = prefs.good[0] if prefs.good else None
        if target is not None and target != current:
            roles[filename] = target
            changed.append(filename)
            logger.debug("Role of %s softened %s → %s (net %.1f)", filename, current, target, net)
    return changed


def soften_roles_for_context(
    store: TasteStore,
    ctx: TasteContext,
    roles: MutableMapping[str, MusicalRole],
) -> list[str]:
    """:func:`soften_roles_from_learning` fed by the stored win records of *ctx*."""
    records = (store.load_state().ir_wins or {}).get(ctx.win_key, {})
    return soften_roles_from_learning(roles, records, ctx.intent)


# =============================================================================
# Foundation candidates
# =============================================================================


def _foundation_distance(
    f: RoleFeatures, role: MusicalRole, stats: Optional[SpeakerStats]
) -> float:
    d = (
        abs(_z(stats, "centroid", f.centroid_hz))
        + abs(_z(stats, "tilt", f.tilt_db_per_oct))
        + abs(_z(stats, "ext", f.rolloff_freq))
    )
    if f.smooth_score:
        d += (90 - f.smooth_score) / 10
    d += max(0.0, (f.band("presence") - 22) / 30)
    d += max(0.0, (f.band("lowMid") - 12) / 25)
    d += max(0.0, (f.band("air") - 6) / 10)
    return d + FOUNDATION_ROLE_BIAS.get(role, 0.0)


def find_foundation_candidates(
    rows: Sequence[tuple[str, RoleFeatures]],
    stats: Mapping[str, SpeakerStats],
    roles: MutableMapping[str, MusicalRole],
) -> dict[str, str]:
    """Pick the most central, smooth, uncoloured IR of each speaker.

    Returns ``{speaker: filename}``.  A speaker with no Foundation in *roles*
    gets its pick relabelled as one (in place), so every speaker offers a base
    to blend on.  Unclassified files count as Foundations.
    """
    by_speaker: dict[str, list[tuple[str, RoleFeatures]]] = {}
    for filename, features in rows:
        by_speaker.setdefault(speaker_id_from_filename(filename), []).append((filename, features))

    picks: dict[str, str] = {}
    for speaker, members in by_speaker.items():
        speaker_stats = stats.get(speaker)
        has_foundation = any(roles.get(fn) == "Foundation" for fn, _ in members)
        best_fn, _ = min(
            members,
            key=lambda m: _foundation_distance(m[1], roles.get(m[0], "Foundation"), speaker_stats),
        )
        picks[speaker] = best_fn
        if not has_foundation:
            roles[best_fn] = "Foundation"
            logger.debug("No Foundation for %s, promoting %s", speaker, best_fn)
    return picks
