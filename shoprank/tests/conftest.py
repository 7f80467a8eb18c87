from __future__ import annotations

import pytest

from shoprank.ab_testing.experiments import clear_variant_stats
from shoprank.analytics.store import clear_events
from shoprank.catalog.data_store import InMemoryDataStore, set_store
from shoprank.training import trainer as trainer_module
from shoprank.training.config import TrainingConfig
from shoprank.training.registry import reset_registry
from shoprank.training.trainer import ModelTrainer


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch):
    """Every test starts from an empty store, no models and no recorded analytics."""
    set_store(InMemoryDataStore())
    reset_registry()
    monkeypatch.setattr(
        trainer_module, "_trainer", ModelTrainer(config=TrainingConfig(auto_retrain=False)),
    )
    clear_events()
    clear_variant_stats()
    yield
    set_store(None)
    reset_registry()


@pytest.fixture
def install_store():
    """Install a store built from the given rows and return it."""

    def _install(**tables) -> InMemoryDataStore:
        store = InMemoryDataStore(**tables)
        set_store(store)
        return store

    return _install
