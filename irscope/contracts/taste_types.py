"""Canonical taste-learning type definitions.

Import from here; do not redefine these shapes ad hoc.

  TasteMode         - "singleIR" | "blend"
  TasteIntent       - "rhythm" | "lead" | "clean"
  Outcome           - "a" | "b" | "tie" | "both"
  OutcomeSource     - provenance of a vote (learning, pick4, ab, ratio)
  TasteContext      - learning partition (speaker prefix, mode, intent)
  TasteBias         - result of a bias query
  TasteStatus       - vote count + confidence for one context
"""
from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from typing_extensions import TypedDict

from irscope.models.base import CamelModel

TasteMode = Literal["singleIR", "blend"]
TasteIntent = Literal["rhythm", "lead", "clean"]
Outcome = Literal["a", "b", "tie", "both"]
OutcomeSource = Literal["learning", "pick4", "ab", "ratio"]

# Intent slot used for the shared per-speaker/mode model.
GLOBAL_INTENT = "global"


class TasteContext(CamelModel):
    """Identifies one learning partition.

    Two storage keys derive from it: the intent key
    (``speaker__mode__intent``) and the coarser global key
    (``speaker__mode__global``) shared by every intent.  Win/loss records use
    ``speaker__intent`` (mode-independent, since file identity is).
    """

    model_config = ConfigDict(frozen=True)

    speaker_prefix: str
    mode: TasteMode
    intent: TasteIntent

    @property
    def intent_key(self) -> str:
        return f"{self.speaker_prefix}__{self.mode}__{self.intent}"

    @property
    def global_key(self) -> str:
        return f"{self.speaker_prefix}__{self.mode}__{GLOBAL_INTENT}"

    @property
    def win_key(self) -> str:
        return f"{self.speaker_prefix}__{self.intent}"


def make_taste_key(ctx: TasteContext) -> str:
    """Intent-specific storage key for *ctx*."""
    return ctx.intent_key


class TasteBias(TypedDict):
    """Bias query result: combined score plus intent-model confidence."""

    bias: float
    confidence: float


class TasteStatus(TypedDict):
    """Vote count and confidence of the intent-specific model."""

    n_votes: float
    confidence: float


class StateSummary(TypedDict):
    """Counts describing one stored document."""

    namespace: str
    models: int
    total_votes: float
    complement_pairs: int
    tracked_files: int
