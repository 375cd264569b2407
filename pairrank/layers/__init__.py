"""
Pairwise ranking loss layers.

Importing this package registers every built-in layer type with the global
registry.
"""

from pairrank.layers.base import LossLayer, make_top
from pairrank.layers.registry import LayerRegistry, get_registry, register_layer, create_layer
from pairrank.layers.ranking_loss import RankingLoss
from pairrank.layers.real_ranking_loss import RealRankingLoss, RESCALE, classify_reference_difference

__all__ = [
    'LossLayer',
    'make_top',
    'LayerRegistry',
    'get_registry',
    'register_layer',
    'create_layer',
    'RankingLoss',
    'RealRankingLoss',
    'RESCALE',
    'classify_reference_difference',
]
