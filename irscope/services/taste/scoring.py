"""
Scoring & Bias Query.

Combines three signals into one re-ranking bias for a feature vector:

    bias = intent_prior(x) + 0.35 * dot(w_global, x) + dot(w_intent, x)

The intent prior is hand-authored so a context with no votes still ranks
with genre-appropriate defaults.  Confidence reflects only the intent model.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from irscope.contracts.taste_types import TasteBias, TasteContext, TasteIntent
from irscope.core.numeric import clamp, dot, safe_number
from irscope.services.taste.featurize import BAND_SCALE, TILT_SCALE, feature_index
from irscope.services.taste.rules import GLOBAL_RATE
from irscope.services.taste.store import TasteStore, confidence_for

logger = logging.getLogger(__name__)

PRIOR_WEIGHT = 0.45
PRIOR_SMOOTH_SCALE = 1.0  # smoothness deltas are used as-is

MAX_COMPLEMENT_COUNT = 5.0
COMPLEMENT_BOOST_PER_COUNT = 0.8

# Hand-authored intent priors: band / tilt deltas in shape dB, smooth in
# prior units.
INTENT_PRIOR_DELTAS: dict[str, dict[str, float]] = {
    "rhythm": {"bass": 1.0, "lowMid": 0.4, "air": -1.0, "tilt": -0.3},
    "lead": {"presence": 1.0, "highMid": 0.5, "air": 0.6},
    "clean": {"smooth": 1.0, "lowMid": -1.0, "air": 0.3},
}


def intent_prior_weights(intent: TasteIntent, dim: int) -> list[float]:
    """Prior weight vector for *intent*, sized to *dim*."""
    w = [0.0] * dim
    for name, delta in INTENT_PRIOR_DELTAS.get(intent, {}).items():
        idx = feature_index(name)
        if idx >= dim:
            continue
        if name == "smooth":
            scale = PRIOR_SMOOTH_SCALE
        elif name == "tilt":
            scale = TILT_SCALE
        else:
            scale = BAND_SCALE
        w[idx] = delta / scale * PRIOR_WEIGHT
    return w


def intent_prior(intent: TasteIntent, x: Sequence[float]) -> float:
    return dot(intent_prior_weights(intent, len(x)), x)


def get_taste_bias(store: TasteStore, ctx: TasteContext, x: Sequence[float]) -> TasteBias:
    """Bias and confidence for candidate vector *x* under *ctx*."""
    prior = intent_prior(ctx.intent, x)
    state = store.load_state()
    intent_model = state.models.get(ctx.intent_key)
    global_model = state.models.get(ctx.global_key)

    if intent_model is None and global_model is None:
        return TasteBias(bias=prior, confidence=0.0)

    bias = prior
    if global_model is not None:
        bias += GLOBAL_RATE * dot(global_model.w, x)
    if intent_model is not None:
        bias += dot(intent_model.w, x)
    confidence = confidence_for(intent_model.n_votes) if intent_model is not None else 0.0
    return TasteBias(bias=bias, confidence=confidence)


def get_complement_boost(store: TasteStore, ctx: TasteContext, pair_key: str) -> float:
    """Capped boost for a pair the user has repeatedly liked together."""
    count = store.load_state().complements.get(ctx.intent_key, {}).get(pair_key, 0.0)
    return clamp(safe_number(count), 0.0, MAX_COMPLEMENT_COUNT) * COMPLEMENT_BOOST_PER_COUNT


@dataclass(frozen=True)
class IRWinSummary:
    """Win/loss record of one file, for "tends to win" reporting."""

    filename: str
    wins: int
    losses: int
    both_count: int

    @property
    def decisions(self) -> int:
        return self.wins + self.losses

    @property
    def win_rate(self) -> float:
        return self.wins / self.decisions if self.decisions else 0.0


def get_top_ir_winners(
    store: TasteStore,
    ctx: TasteContext,
    limit: int = 5,
    min_decisions: int = 3,
) -> list[IRWinSummary]:
    """Files with at least *min_decisions* decided votes, best win rate first."""
    files = (store.load_state().ir_wins or {}).get(ctx.win_key, {})
    summaries = [
        IRWinSummary(filename=name, wins=rec.wins, losses=rec.losses, both_count=rec.both_count)
        for name, rec in files.items()
    ]
    eligible = [s for s in summaries if s.decisions >= min_decisions]
    eligible.sort(key=lambda s: (-s.win_rate, -s.wins, s.filename))
    return eligible[:limit]
