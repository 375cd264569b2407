"""
Train a linear scorer on synthetic pairs with PairRankingLoss.

Each item has a feature vector and a hidden quality; pairs are ranked by the
quality difference. The scorer learns to order pairs the same way.

Usage:
    python examples/train_linear_ranker.py [RankingLoss|RealRankingLoss]
"""
import logging
import sys

import torch
import torch.nn as nn

from pairrank.autograd import PairRankingLoss
from pairrank.logging_config import setup_logger

logger = setup_logger('pairrank.examples', level='INFO')


def make_pairs(num_pairs: int, num_features: int, quality_scale: float, generator: torch.Generator):
    weights = torch.randn(num_features, generator=generator)
    features_a = torch.randn(num_pairs, num_features, generator=generator)
    features_b = torch.randn(num_pairs, num_features, generator=generator)
    quality_a = quality_scale * (features_a @ weights)
    quality_b = quality_scale * (features_b @ weights)
    return features_a, features_b, quality_a, quality_b


def pair_accuracy(scorer: nn.Module, features_a, features_b, quality_a, quality_b) -> float:
    with torch.no_grad():
        predicted = scorer(features_a).squeeze(1) > scorer(features_b).squeeze(1)
    return (predicted == (quality_a > quality_b)).float().mean().item()


def train(layer_type: str = 'RankingLoss', epochs: int = 50, num_features: int = 8):
    generator = torch.Generator().manual_seed(0)
    # RealRankingLoss only ranks a above b for reference gaps of 80 or more
    quality_scale = 100.0 if layer_type == 'RealRankingLoss' else 1.0
    data = make_pairs(512, num_features, quality_scale, generator)
    features_a, features_b, quality_a, quality_b = data

    scorer = nn.Linear(num_features, 1)
    criterion = PairRankingLoss(layer_type, margin=0.3)
    optimizer = torch.optim.SGD(scorer.parameters(), lr=0.5)

    logger.info(f"Training with {criterion}")
    for epoch in range(epochs):
        optimizer.zero_grad()
        loss = criterion(scorer(features_a).squeeze(1), scorer(features_b).squeeze(1),
                         quality_a, quality_b)
        loss.backward()
        optimizer.step()

        if epoch % 10 == 0 or epoch == epochs - 1:
            accuracy = pair_accuracy(scorer, *data)
            logger.info(f"Epoch {epoch:3d}: loss={loss.item():.4f}, pair accuracy={accuracy:.3f}")

    return scorer


if __name__ == '__main__':
    logging.getLogger('pairrank').setLevel(logging.WARNING)
    train(sys.argv[1] if len(sys.argv) > 1 else 'RankingLoss')
