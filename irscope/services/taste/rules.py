"""
Preference Update Rules: online learning from user votes.

All updates are single-sample linear nudges applied synchronously to the
active taste document (no history is retained):

    w[i] += lr * (x_winner[i] - x_loser[i])

Entry points:
    - record_preference  plain pairwise vote, intent model only
    - record_outcome     a / b / tie / both, intent + global models,
                         provenance-weighted, optional tag feedback
    - record_ir_outcome  per-file win/loss tallies (no model change)
    - simulate_votes     seed a context with synthetic "brighter wins" votes
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Optional

from irscope.contracts.taste_types import Outcome, OutcomeSource, TasteContext
from irscope.core.numeric import safe_number
from irscope.models.taste import IRWinRecord, ModelState
from irscope.services.taste.featurize import (
    BAND_SCALE,
    SMOOTH_SCALE,
    TILT_INDEX,
    TILT_SCALE,
    feature_index,
)
from irscope.services.taste.store import TasteStore, get_or_create_model

logger = logging.getLogger(__name__)

DEFAULT_LR = 0.06
PREFERENCE_LR = 0.06
SIMULATED_LR = 0.12

# Global model learns at this fraction of the intent model's rate.
GLOBAL_RATE = 0.35

# Secondary (tag) update, as a fraction of the corresponding primary rate.
TAG_INTENT_RATE = 0.5
TAG_GLOBAL_RATE = 0.25

# Vote-count increments for outcomes that carry no direction.
TIE_VOTES_INTENT = 0.25
TIE_VOTES_GLOBAL = 0.10
BOTH_VOTES_INTENT = 0.15
BOTH_VOTES_GLOBAL = 0.06

SOURCE_WEIGHTS: dict[str, float] = {
    "learning": 1.0,
    "pick4": 0.6,
    "ab": 0.6,
    "ratio": 0.25,
}
DEFAULT_SOURCE_WEIGHT = 0.6

# Descriptor tag -> perceived character of the tagged candidate, in shape dB
# per band ("tilt" in dB/oct, "smooth" in score points).
TAG_FEATURE_DELTAS: dict[str, dict[str, float]] = {
    # low end
    "more_bottom": {"subBass": 1.5, "bass": 2.0},
    "less_bottom": {"subBass": -1.5, "bass": -2.0},
    "boomy": {"subBass": 2.0, "bass": 2.5, "tilt": -0.5},
    "tight": {"subBass": -1.5, "bass": -0.5, "lowMid": -0.5},
    "loose": {"subBass": 1.5, "bass": 1.0},
    "thin": {"bass": -2.0, "lowMid": -1.5, "tilt": 0.5},
    "full": {"bass": 1.0, "lowMid": 1.5, "mid": 0.5},
    # low mids / mids
    "muddy": {"lowMid": 2.5, "bass": 1.0, "smooth": -5.0},
    "clear": {"lowMid": -1.5, "presence": 0.5},
    "warm": {"lowMid": 1.5, "mid": 1.0, "air": -0.5},
    "scooped": {"mid": -2.5, "lowMid": -1.0},
    "honky": {"mid": 2.5, "highMid": -0.5},
    "nasal": {"mid": 1.5, "highMid": 2.0, "smooth": -5.0},
    "mid_forward": {"mid": 2.0, "highMid": 1.0},
    "boxy": {"lowMid": 2.0, "mid": 1.0},
    # upper mids / presence
    "lacks_cut": {"highMid": -2.0, "presence": -2.0},
    "cuts_through": {"highMid": 1.5, "presence": 2.0},
    "harsh": {"highMid": 2.0, "presence": 2.0, "smooth": -10.0},
    "woolly": {"lowMid": 1.5, "presence": -1.5, "air": -1.0},
    "aggressive": {"highMid": 1.5, "presence": 1.5, "tilt": 0.5},
    "polite": {"highMid": -1.0, "presence": -1.5},
    "too_dark": {"presence": -2.5, "air": -2.5, "tilt": -1.0},
    "too_bright": {"presence": 2.0, "air": 2.5, "tilt": 1.0},
    "dark": {"presence": -1.5, "air": -1.5, "tilt": -0.5},
    "bright": {"presence": 1.5, "air": 1.5, "tilt": 0.5},
    # top end
    "too_fizzy": {"air": 3.0, "presence": 0.5, "smooth": -8.0},
    "fizzy": {"air": 2.0, "smooth": -5.0},
    "airy": {"air": 2.0},
    "dull": {"air": -2.0, "presence": -1.0},
    "smooth": {"smooth": 10.0, "air": -0.5},
    "rough": {"smooth": -10.0},
    "spiky": {"presence": 1.5, "smooth": -8.0},
}


def source_weight(source: Optional[str]) -> float:
    """Trust multiplier for a vote's provenance."""
    if source is None:
        return DEFAULT_SOURCE_WEIGHT
    return SOURCE_WEIGHTS.get(source, DEFAULT_SOURCE_WEIGHT)


def _normalize_tag(tag: str) -> str:
    return tag.strip().lower().replace(" ", "_").replace("-", "_")


def tag_delta_vector(tags: Iterable[str], dim: int) -> list[float]:
    """Sum the vector-space deltas of *tags*; unknown tags are ignored."""
    delta = [0.0] * dim
    for tag in tags:
        entry = TAG_FEATURE_DELTAS.get(_normalize_tag(str(tag)))
        if entry is None:
            continue
        for name, amount in entry.items():
            idx = feature_index(name)
            if idx >= dim:
                continue
            if name == "smooth":
                scale = SMOOTH_SCALE
            elif idx == TILT_INDEX:
                scale = TILT_SCALE
            else:
                scale = BAND_SCALE
            delta[idx] += amount / scale
    return delta


def _has_known_tags(tags: Iterable[str]) -> bool:
    return any(_normalize_tag(str(t)) in TAG_FEATURE_DELTAS for t in tags)


def _nudge(model: ModelState, x_win: Sequence[float], x_lose: Sequence[float], lr: float) -> None:
    for i in range(len(model.w)):
        model.w[i] += lr * (safe_number(x_win[i]) - safe_number(x_lose[i]))


# =============================================================================
# Pairwise preference
# =============================================================================


def record_preference(
    store: TasteStore,
    ctx: TasteContext,
    x_winner: Sequence[float],
    x_loser: Sequence[float],
    *,
    lr: float = PREFERENCE_LR,
    tie: bool = False,
) -> None:
    """Nudge the intent model toward *x_winner*.  Ties change nothing."""
    if tie:
        return
    state = store.load_state()
    dim = min(len(x_winner), len(x_loser))
    model = get_or_create_model(state, ctx.intent_key, dim)
    _nudge(model, x_winner, x_loser, safe_number(lr, PREFERENCE_LR))
    model.n_votes += 1
    store.save_state(state)
    logger.debug("Preference recorded for %s (nVotes=%.2f)", ctx.intent_key, model.n_votes)


# =============================================================================
# Outcomes
# =============================================================================


def record_outcome(
    store: TasteStore,
    ctx: TasteContext,
    x_a: Sequence[float],
    x_b: Sequence[float],
    outcome: Outcome,
    *,
    lr: float = DEFAULT_LR,
    pair_key: Optional[str] = None,
    source: Optional[OutcomeSource] = None,
    tags_a: Iterable[str] = (),
    tags_b: Iterable[str] = (),
) -> None:
    """Apply one A/B outcome to the intent and global models of *ctx*.

    - ``"tie"``  counts as data seen (fractional votes), no weight change
    - ``"both"`` bumps the complement counter for *pair_key* plus fractional votes
    - ``"a"`` / ``"b"`` nudge both models toward the winner; for
      ``source="learning"`` the candidates' descriptor tags drive a second,
      smaller update
    """
    if outcome not in ("a", "b", "tie", "both"):
        logger.warning("⚠️ Unknown outcome %r for %s, ignored", outcome, ctx.intent_key)
        return

    sw = source_weight(source)
    base_lr = safe_number(lr, DEFAULT_LR)
    dim = min(len(x_a), len(x_b))

    state = store.load_state()
    intent_model = get_or_create_model(state, ctx.intent_key, dim)
    global_model = get_or_create_model(state, ctx.global_key, dim)

    if outcome == "tie":
        intent_model.n_votes += TIE_VOTES_INTENT * sw
        global_model.n_votes += TIE_VOTES_GLOBAL * sw
    elif outcome == "both":
        if pair_key:
            pairs = state.complements.setdefault(ctx.intent_key, {})
            pairs[pair_key] = pairs.get(pair_key, 0.0) + 1
        intent_model.n_votes += BOTH_VOTES_INTENT * sw
        global_model.n_votes += BOTH_VOTES_GLOBAL * sw
    else:
        tags_a = list(tags_a)
        tags_b = list(tags_b)
        if outcome == "a":
            x_win, x_lose, tags_win, tags_lose = x_a, x_b, tags_a, tags_b
        else:
            x_win, x_lose, tags_win, tags_lose = x_b, x_a, tags_b, tags_a

        intent_lr = base_lr * sw
        global_lr = intent_lr * GLOBAL_RATE
        _nudge(intent_model, x_win, x_lose, intent_lr)
        _nudge(global_model, x_win, x_lose, global_lr)
        intent_model.n_votes += 1
        global_model.n_votes += 1

        if source == "learning" and (_has_known_tags(tags_win) or _has_known_tags(tags_lose)):
            d_win = tag_delta_vector(tags_win, dim)
            d_lose = tag_delta_vector(tags_lose, dim)
            x_win_tagged = [safe_number(x_win[i]) + d_win[i] for i in range(dim)]
            x_lose_tagged = [safe_number(x_lose[i]) + d_lose[i] for i in range(dim)]
            _nudge(intent_model, x_win_tagged, x_lose_tagged, intent_lr * TAG_INTENT_RATE)
            _nudge(global_model, x_win_tagged, x_lose_tagged, global_lr * TAG_GLOBAL_RATE)
            logger.debug("Tag update applied for %s (%s vs %s)", ctx.intent_key, tags_win, tags_lose)

    store.save_state(state)
    logger.debug(
        "Outcome %s recorded for %s (source=%s, nVotes=%.2f)",
        outcome, ctx.intent_key, source, intent_model.n_votes,
    )


# =============================================================================
# Per-file win/loss
# =============================================================================


def record_ir_outcome(
    store: TasteStore,
    ctx: TasteContext,
    winners: Iterable[str],
    losers: Iterable[str],
    both: bool = False,
) -> None:
    """Tally wins/losses per filename, keyed by speaker + intent (mode-independent)."""
    state = store.load_state()
    if state.ir_wins is None:
        state.ir_wins = {}
    files = state.ir_wins.setdefault(ctx.win_key, {})

    if both:
        for name in [*winners, *losers]:
            files.setdefault(name, IRWinRecord()).both_count += 1
    else:
        for name in winners:
            files.setdefault(name, IRWinRecord()).wins += 1
        for name in losers:
            files.setdefault(name, IRWinRecord()).losses += 1
    store.save_state(state)


# =============================================================================
# Synthetic votes
# =============================================================================


def simulate_votes(
    store: TasteStore,
    ctx: TasteContext,
    vectors: Sequence[Sequence[float]],
    count: int = 20,
) -> None:
    """Record *count* votes preferring the vector with the highest tilt."""
    if not vectors:
        return
    tilt_index = len(vectors[0]) - 2

    def tilt_of(v: Sequence[float]) -> float:
        return safe_number(v[tilt_index]) if 0 <= tilt_index < len(v) else 0.0

    ordered = sorted(vectors, key=tilt_of, reverse=True)
    winner = ordered[0]
    losers = ordered[1:] or [ordered[-1]]
    for i in range(count):
        record_preference(store, ctx, winner, losers[i % len(losers)], lr=SIMULATED_LR)
    logger.info("Simulated %d votes for %s", count, ctx.intent_key)
