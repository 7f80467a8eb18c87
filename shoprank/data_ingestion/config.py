"""
Configuration for loading seed data into the in-memory store.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class IngestionConfig:
    """
    Where the seed CSV exports live and what they are called.
    """

    data_dir: Path = Path(os.getenv("SHOPRANK_DATA_DIR", "shoprank/data"))
    shops_filename: str = "shops.csv"
    products_filename: str = "products.csv"
    offers_filename: str = "offers.csv"
    interactions_filename: str = "interactions.csv"
    profiles_filename: str = "profiles.csv"

    @property
    def shops_path(self) -> Path:
        return self.data_dir / self.shops_filename

    @property
    def products_path(self) -> Path:
        return self.data_dir / self.products_filename

    @property
    def offers_path(self) -> Path:
        return self.data_dir / self.offers_filename

    @property
    def interactions_path(self) -> Path:
        return self.data_dir / self.interactions_filename

    @property
    def profiles_path(self) -> Path:
        return self.data_dir / self.profiles_filename


DEFAULT_INGESTION_CONFIG = IngestionConfig()
