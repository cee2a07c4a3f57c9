"""Taste learning: persisted store, update rules, and bias queries."""
from __future__ import annotations

from irscope.services.taste.featurize import featurize_blend, featurize_single_ir
from irscope.services.taste.rules import (
    record_ir_outcome,
    record_outcome,
    record_preference,
    simulate_votes,
    source_weight,
)
from irscope.services.taste.scoring import (
    get_complement_boost,
    get_taste_bias,
    get_top_ir_winners,
)
from irscope.services.taste.store import (
    TasteStore,
    get_or_create_model,
    get_taste_store,
    reset_taste_store,
)

__all__ = [
    "featurize_blend",
    "featurize_single_ir",
    "record_ir_outcome",
    "record_outcome",
    "record_preference",
    "simulate_votes",
    "source_weight",
    "get_complement_boost",
    "get_taste_bias",
    "get_top_ir_winners",
    "TasteStore",
    "get_or_create_model",
    "get_taste_store",
    "reset_taste_store",
]
