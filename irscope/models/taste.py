"""
Persisted taste documents (schema v2) and their migrations.

Stored JSON shape (camelCase on disk)::

    {
        "version": 2,
        "models":      {"v30__singleIR__lead": {"w": [...], "nVotes": 3}},
        "complements": {"v30__singleIR__lead": {"a.wav|b.wav": 2}},
        "irWins":      {"v30__lead": {"a.wav": {"wins": 4, "losses": 1, "bothCount": 0}}}
    }

Version handling is an explicit chain of migration functions.  Version 1
documents (``models`` only) upgrade to version 2; anything else, including
documents that fail validation, is replaced by an empty default.  There is
no partial recovery.
"""
from __future__ import annotations

import json
import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError, field_validator

from irscope.core.numeric import safe_number
from irscope.models.base import CamelModel

logger = logging.getLogger(__name__)

CURRENT_VERSION = 2


class ModelState(CamelModel):
    """Linear model weights and the (fractional) number of votes seen."""

    w: list[float] = Field(default_factory=list)
    n_votes: float = 0.0

    @field_validator("w", mode="before")
    @classmethod
    def _coerce_weights(cls, value: object) -> list[float]:
        if not isinstance(value, list):
            raise ValueError("w must be a list")
        return [safe_number(v) for v in value]

    @field_validator("n_votes", mode="before")
    @classmethod
    def _coerce_votes(cls, value: object) -> float:
        return max(0.0, safe_number(value))


class IRWinRecord(CamelModel):
    """Per-file tally of A/B decisions."""

    wins: int = 0
    losses: int = 0
    both_count: int = 0


class StoreStateV1(CamelModel):
    """Legacy document: models only."""

    version: Literal[1]
    models: dict[str, ModelState] = Field(default_factory=dict)


class StoreState(CamelModel):
    """Current document."""

    version: Literal[2] = CURRENT_VERSION
    models: dict[str, ModelState] = Field(default_factory=dict)
    complements: dict[str, dict[str, float]] = Field(default_factory=dict)
    ir_wins: Optional[dict[str, dict[str, IRWinRecord]]] = None


AnyStoreState = Annotated[Union[StoreStateV1, StoreState], Field(discriminator="version")]
_store_adapter: TypeAdapter[Union[StoreStateV1, StoreState]] = TypeAdapter(AnyStoreState)


def default_state() -> StoreState:
    """Fresh, empty current-version document."""
    return StoreState(version=CURRENT_VERSION, models={}, complements={})


def migrate_v1_to_v2(doc: StoreStateV1) -> StoreState:
    """Keep models; start complements empty."""
    return StoreState(version=2, models=dict(doc.models), complements={})


def migrate(doc: Union[StoreStateV1, StoreState]) -> StoreState:
    """Walk *doc* up the migration chain to the current version."""
    if isinstance(doc, StoreStateV1):
        logger.info("Migrating taste document v1 -> v2 (%d models)", len(doc.models))
        return migrate_v1_to_v2(doc)
    return doc


def load_document(raw: str) -> Optional[StoreState]:
    """Parse and migrate a stored JSON document, or return ``None`` if unusable."""
    try:
        data = json.loads(raw)
    except (ValueError, TypeError, RecursionError) as exc:
        logger.warning("⚠️ Taste document is not valid JSON: %s", exc)
        return None
    version = data.get("version") if isinstance(data, dict) else None
    if isinstance(version, bool) or version not in (1, CURRENT_VERSION):
        logger.warning("⚠️ Unrecognized taste document version %r", version)
        return None
    try:
        doc = _store_adapter.validate_python(data)
    except ValidationError as exc:
        logger.warning("⚠️ Taste document failed validation (%d errors)", exc.error_count())
        return None
    return migrate(doc)


def parse_state(raw: Optional[str]) -> StoreState:
    """Parse a stored JSON document into a current :class:`StoreState`.

    Absent, malformed, unknown-version, or schema-invalid input yields
    :func:`default_state`.  Never raises.
    """
    if not raw:
        return default_state()
    return load_document(raw) or default_state()


def dump_state(state: StoreState) -> str:
    """Serialize *state* to its stored JSON form."""
    return state.model_dump_json(by_alias=True, exclude_none=True)
