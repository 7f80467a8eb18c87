"""
Configuration for the background model trainer.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class TrainingConfig:
    """
    Windows, minimums and hyper-parameters for one training cycle.
    """

    n_clusters: int = 5
    kmeans_max_iter: int = 100
    clustering_window_days: int = 90
    clustering_event_limit: int = 10000
    min_clustering_events: int = 100

    ranker_window_days: int = 60
    ranker_event_limit: int = 5000
    min_cluster_examples: int = 50
    n_stumps: int = 10
    learning_rate: float = 0.1

    retrain_interval_hours: float = 24.0
    auto_retrain: bool = os.getenv("SHOPRANK_AUTO_RETRAIN", "1") not in ("0", "false", "False")
    random_state: int = int(os.getenv("SHOPRANK_RANDOM_STATE", "42"))


DEFAULT_TRAINING_CONFIG = TrainingConfig()
