"""
Exception types raised by pairrank layers.
"""


class PairRankError(Exception):
    """Base class for all pairrank errors."""


class ShapeMismatch(PairRankError, ValueError):
    """Bottom blobs are not scalar-per-example or disagree on batch size."""


class StaleStateError(PairRankError, RuntimeError):
    """Backward was called without a forward on the current batch."""


class LayerConfigError(PairRankError, ValueError):
    """Layer configuration value is invalid."""
