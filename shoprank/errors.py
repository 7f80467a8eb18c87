from __future__ import annotations


class ShoprankError(Exception):
    """Base class for errors raised by the ranking engine."""


class DataStoreUnavailableError(ShoprankError):
    """A backing store (catalog, interactions, profiles) could not be read."""


class RankingUnavailableError(ShoprankError):
    """Ranking or recommendation could not be produced because an upstream read failed."""


class InvalidRankingRequestError(ShoprankError):
    """The request is malformed and was rejected before any scoring work."""


class TrainingSkipped(ShoprankError):
    """Raised inside a training cycle when there is not enough signal to train."""
