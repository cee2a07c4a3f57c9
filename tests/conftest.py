"""Pytest configuration and fixtures."""
from __future__ import annotations

import pytest

from irscope.config import Settings
from irscope.contracts.taste_types import TasteContext
from irscope.services.taste.storage import MemoryBackend
from irscope.services.taste.store import TasteStore


@pytest.fixture
def settings():
    """Default settings, independent of the cached process-wide instance."""
    return Settings()


@pytest.fixture
def backend():
    """Empty in-memory key-value backend."""
    b = MemoryBackend()
    yield b
    b.clear()


@pytest.fixture
def store(backend, settings):
    """Fresh live-namespace taste store over the in-memory backend."""
    return TasteStore(backend, settings)


@pytest.fixture
def lead_ctx():
    return TasteContext(speaker_prefix="v30", mode="singleIR", intent="lead")


@pytest.fixture
def rhythm_ctx():
    return TasteContext(speaker_prefix="v30", mode="singleIR", intent="rhythm")


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset the singleton store and scorer between tests to prevent cross-test pollution."""
    yield
    from irscope.services.learner_scoring import reset_preference_scorer
    from irscope.services.taste.store import reset_taste_store
    reset_taste_store()
    reset_preference_scorer()
