"""
pairrank: margin-based pairwise ranking losses for siamese models.

This package provides:
- RankingLoss and RealRankingLoss layers (forward loss, backward gradients)
- numpy and torch execution backends
- A torch autograd bridge and a finite-difference gradient checker
"""

from pairrank.blob import Blob
from pairrank.config import LayerParameter, get_global_config, load_layer_config
from pairrank.errors import PairRankError, ShapeMismatch, StaleStateError, LayerConfigError
from pairrank.layers import RankingLoss, RealRankingLoss, create_layer, make_top

__version__ = "1.0.0"
