"""
Persisted Taste Store.

Owns the two taste namespaces (live and sandbox) on top of a
:class:`~irscope.services.taste.storage.KeyValueBackend`.

Key design:
    - Exactly one namespace is active at a time (``sandbox_mode``)
    - Reads degrade to an empty default document, writes are best-effort
    - Models are created lazily; a dimension mismatch resets that one model
    - Promotion is the only operation touching both namespaces: read both,
      merge into live, write live, delete sandbox

The store assumes a single writer per namespace; concurrent writers race and
the last write wins.
"""

from __future__ import annotations

import logging
from typing import Optional

from irscope.config import Settings, get_settings
from irscope.contracts.taste_types import StateSummary, TasteContext, TasteStatus
from irscope.core.numeric import clamp
from irscope.models.taste import (
    IRWinRecord,
    ModelState,
    StoreState,
    default_state,
    dump_state,
    load_document,
    parse_state,
)
from irscope.services.taste.storage import JsonFileBackend, KeyValueBackend

logger = logging.getLogger(__name__)

# Votes at which the intent-specific model is trusted fully.
CONFIDENCE_VOTES = 30.0


def confidence_for(n_votes: float) -> float:
    return clamp(n_votes / CONFIDENCE_VOTES, 0.0, 1.0)


def get_or_create_model(state: StoreState, key: str, dim: int) -> ModelState:
    """Return the model at *key*, replacing it with zeros if its size differs from *dim*."""
    existing = state.models.get(key)
    if existing is not None and len(existing.w) == dim:
        return existing
    if existing is not None:
        logger.info(
            f"Model {key}: dimension {len(existing.w)} → {dim}, discarding old weights"
        )
    fresh = ModelState(w=[0.0] * dim, n_votes=0.0)
    state.models[key] = fresh
    return fresh


def _merge_states(live: StoreState, sandbox: StoreState) -> StoreState:
    """Add sandbox models, complements and win records into *live* (in place)."""
    for key, sb_model in sandbox.models.items():
        live_model = live.models.get(key)
        if live_model is None or len(live_model.w) != len(sb_model.w):
            live.models[key] = sb_model.model_copy(deep=True)
            continue
        live_model.w = [a + b for a, b in zip(live_model.w, sb_model.w)]
        live_model.n_votes += sb_model.n_votes

    for key, pairs in sandbox.complements.items():
        target = live.complements.setdefault(key, {})
        for pair_key, count in pairs.items():
            target[pair_key] = target.get(pair_key, 0.0) + count

    if sandbox.ir_wins:
        if live.ir_wins is None:
            live.ir_wins = {}
        for key, files in sandbox.ir_wins.items():
            target_files = live.ir_wins.setdefault(key, {})
            for filename, rec in files.items():
                cur = target_files.setdefault(filename, IRWinRecord())
                cur.wins += rec.wins
                cur.losses += rec.losses
                cur.both_count += rec.both_count
    return live


class TasteStore:
    """Live/sandbox taste documents over one key-value backend."""

    def __init__(
        self,
        backend: KeyValueBackend,
        settings: Optional[Settings] = None,
        sandbox_mode: bool = False,
    ) -> None:
        self.backend = backend
        self.settings = settings or get_settings()
        self._sandbox_mode = sandbox_mode

    # ------------------------------------------------------------------
    # Namespace selection
    # ------------------------------------------------------------------

    @property
    def sandbox_mode(self) -> bool:
        return self._sandbox_mode

    def set_sandbox_mode(self, enabled: bool, persist: bool = False) -> None:
        """Select the active namespace; with *persist*, remember it in storage."""
        if enabled != self._sandbox_mode:
            logger.info("Taste namespace → %s", "sandbox" if enabled else "live")
        self._sandbox_mode = bool(enabled)
        if persist:
            result = self.backend.set(self.settings.sandbox_mode_key, "1" if enabled else "0")
            if not result.ok:
                logger.warning("⚠️ Sandbox-mode flag not saved: %s", result.error)

    def restore_sandbox_mode(self) -> bool:
        """Apply the persisted namespace choice (live when none was saved)."""
        self._sandbox_mode = self._read(self.settings.sandbox_mode_key) == "1"
        return self._sandbox_mode

    @property
    def active_key(self) -> str:
        if self._sandbox_mode:
            return self.settings.sandbox_storage_key
        return self.settings.live_storage_key

    # ------------------------------------------------------------------
    # Document I/O
    # ------------------------------------------------------------------

    def _read(self, key: str) -> Optional[str]:
        result = self.backend.get(key)
        if not result.ok:
            logger.warning("⚠️ Taste read failed, treating as empty: %s", result.error)
            return None
        return result.value

    def _write(self, key: str, state: StoreState) -> bool:
        result = self.backend.set(key, dump_state(state))
        if not result.ok:
            logger.warning("⚠️ Taste write dropped: %s", result.error)
            return False
        return True

    def load_state(self) -> StoreState:
        """Read the active namespace; never raises."""
        return parse_state(self._read(self.active_key))

    def save_state(self, state: StoreState) -> bool:
        """Write *state* to the active namespace.  Returns False if the write was dropped."""
        return self._write(self.active_key, state)

    # ------------------------------------------------------------------
    # Promotion and resets
    # ------------------------------------------------------------------

    def promote_sandbox_to_live(self) -> bool:
        """Merge the sandbox document into live, then delete the sandbox.

        Returns False, leaving both documents untouched, when there was no
        sandbox document or it could not be parsed, or when live could not be
        read or written.  An absent or corrupt live document merges as empty.
        """
        sandbox_key = self.settings.sandbox_storage_key
        raw = self._read(sandbox_key)
        if not raw:
            return False
        sandbox = load_document(raw)
        if sandbox is None:
            logger.warning("⚠️ Sandbox document unreadable, nothing promoted")
            return False

        live_raw = self.backend.get(self.settings.live_storage_key)
        if not live_raw.ok:
            logger.warning("⚠️ Live read failed, nothing promoted: %s", live_raw.error)
            return False
        live = parse_state(live_raw.value)
        merged = _merge_states(live, sandbox)
        if not self._write(self.settings.live_storage_key, merged):
            return False

        deleted = self.backend.delete(sandbox_key)
        if not deleted.ok:
            logger.warning("⚠️ Sandbox delete failed after promotion: %s", deleted.error)
        logger.info(
            "Promoted sandbox → live (%d models, %d complement keys)",
            len(sandbox.models),
            len(sandbox.complements),
        )
        return True

    def reset_all_taste(self) -> None:
        """Wipe the active namespace."""
        self.save_state(default_state())
        logger.info("Reset all taste data in %s", self.active_key)

    def reset_taste(self, ctx: Optional[TasteContext] = None) -> None:
        """Wipe one context's intent model, complements and win records.

        The shared global model for the speaker/mode is left alone.  With no
        context, wipes everything.
        """
        if ctx is None:
            self.reset_all_taste()
            return
        state = self.load_state()
        state.models.pop(ctx.intent_key, None)
        state.complements.pop(ctx.intent_key, None)
        if state.ir_wins:
            state.ir_wins.pop(ctx.win_key, None)
        self.save_state(state)
        logger.info("Reset taste for %s", ctx.intent_key)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_taste_status(self, ctx: TasteContext) -> TasteStatus:
        model = self.load_state().models.get(ctx.intent_key)
        n_votes = model.n_votes if model is not None else 0.0
        return TasteStatus(n_votes=n_votes, confidence=confidence_for(n_votes))

    def get_state_summary(self) -> StateSummary:
        state = self.load_state()
        return StateSummary(
            namespace="sandbox" if self._sandbox_mode else "live",
            models=len(state.models),
            total_votes=sum(m.n_votes for m in state.models.values()),
            complement_pairs=sum(len(p) for p in state.complements.values()),
            tracked_files=sum(len(f) for f in (state.ir_wins or {}).values()),
        )

    # ------------------------------------------------------------------
    # Training-mode flag
    # ------------------------------------------------------------------

    def get_training_mode(self) -> bool:
        return self._read(self.settings.training_mode_key) == "1"

    def set_training_mode(self, enabled: bool) -> None:
        result = self.backend.set(self.settings.training_mode_key, "1" if enabled else "0")
        if not result.ok:
            logger.warning("⚠️ Training-mode flag not saved: %s", result.error)


# Singleton instance
_store: TasteStore | None = None


def get_taste_store() -> TasteStore:
    """Get the singleton TasteStore bound to the configured storage directory."""
    global _store
    if _store is None:
        settings = get_settings()
        _store = TasteStore(JsonFileBackend(settings.storage_dir), settings)
    return _store


def reset_taste_store() -> None:
    """Reset the singleton (for testing)."""
    global _store
    _store = None
