"""
Companion scorer: session-scoped weights over named IR metrics.

A coarser sibling of the taste store.  One :class:`PreferenceScorer` holds
in-memory weights that a vote nudges by a tiny fixed rate; they are not
persisted and start from zero on every new scorer (i.e. every reload).

    score_ir(ir) = ir.score + w . metrics(ir)     (air counts as a fizz penalty)
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from irscope.core.metrics_adapter import IRMetrics, normalize_ir_metrics

logger = logging.getLogger(__name__)

LEARNING_RATE = 0.00001


@dataclass
class PreferenceWeights:
    centroid: float = 0.0
    tilt: float = 0.0
    smooth: float = 0.0
    hi_mid: float = 0.0
    low_mid: float = 0.0
    presence: float = 0.0
    fizz_penalty: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


class PreferenceScorer:
    """Owns one set of session weights."""

    def __init__(self, learning_rate: float = LEARNING_RATE) -> None:
        self.learning_rate = learning_rate
        self.weights = PreferenceWeights()
        self.votes = 0

    def reset(self) -> None:
        self.weights = PreferenceWeights()
        self.votes = 0

    def update_weights_from_vote(self, preferred: object, rejected: object) -> PreferenceWeights:
        """Move weights toward the metrics of *preferred* and away from *rejected*."""
        p = normalize_ir_metrics(preferred)
        r = normalize_ir_metrics(rejected)
        lr = self.learning_rate
        w = self.weights

        w.centroid += lr * (p.centroid_hz - r.centroid_hz)
        w.tilt += lr * (p.tilt_db_per_oct - r.tilt_db_per_oct)
        w.smooth += lr * (p.smooth_score - r.smooth_score)
        w.hi_mid += lr * (p.hi_mid_mid_ratio - r.hi_mid_mid_ratio)
        w.low_mid += lr * (p.low_mid_pct - r.low_mid_pct)
        w.presence += lr * (p.presence_pct - r.presence_pct)
        w.fizz_penalty += lr * (r.air_pct - p.air_pct)
        self.votes += 1
        logger.debug("Companion weights after %d votes: %s", self.votes, w)
        return w

    def learned_component(self, metrics: IRMetrics) -> float:
        w = self.weights
        return (
            w.centroid * metrics.centroid_hz
            + w.tilt * metrics.tilt_db_per_oct
            + w.smooth * metrics.smooth_score
            + w.hi_mid * metrics.hi_mid_mid_ratio
            + w.low_mid * metrics.low_mid_pct
            + w.presence * metrics.presence_pct
            - w.fizz_penalty * metrics.air_pct
        )

    def score_ir(self, ir: object) -> float:
        """Baseline ``score`` of *ir* plus the learned metric component."""
        metrics = normalize_ir_metrics(ir)
        return metrics.score + self.learned_component(metrics)


# Singleton instance
_scorer: PreferenceScorer | None = None


def get_preference_scorer() -> PreferenceScorer:
    """Get the session PreferenceScorer."""
    global _scorer
    if _scorer is None:
        _scorer = PreferenceScorer()
    return _scorer


def reset_preference_scorer() -> None:
    """Drop the session scorer; the next call starts from zero weights."""
    global _scorer
    _scorer = None
