"""
Command-line interface for pairrank.
Evaluates a ranking loss layer on a CSV of score/reference pairs.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from pairrank.blob import Blob
from pairrank.config import LayerParameter, get_global_config, load_layer_config, setup_logging
from pairrank.errors import PairRankError
from pairrank.layers import create_layer, get_registry, make_top
from pairrank.logging_config import log_evaluation_results

logger = logging.getLogger(__name__)

PAIR_COLUMNS = ['score_a', 'score_b', 'ref_a', 'ref_b']


def load_pairs(pairs_path: str) -> pd.DataFrame:
    """Load a CSV of pairs with columns score_a, score_b, ref_a, ref_b."""
    pairs_file = Path(pairs_path)
    if not pairs_file.exists():
        raise FileNotFoundError(f"Pairs file not found: {pairs_path}")

    df = pd.read_csv(pairs_file)
    missing = [column for column in PAIR_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Pairs file {pairs_path} is missing columns: {', '.join(missing)}")
    return df


def build_layer_parameter(args) -> LayerParameter:
    """Combine an optional YAML layer config with CLI overrides."""
    if args.config:
        base = load_layer_config(args.config)
        config: Dict[str, Any] = {
            'type': base.type,
            'name': base.name,
            'margin': base.margin,
            'backend': base.backend,
            'device': base.device,
        }
    else:
        config = {'type': args.type or 'RankingLoss'}

    if args.type and args.config and args.type != config['type']:
        logger.info(f"Overriding layer type {config['type']} -> {args.type}")
        config['type'] = args.type
    if args.margin is not None:
        config['margin'] = args.margin
    if args.backend:
        config['backend'] = args.backend
    if args.device:
        config['device'] = args.device

    return LayerParameter.from_dict(config)


def evaluate_pairs(param: LayerParameter, df: pd.DataFrame, loss_weight: float = 1.0) -> Dict[str, Any]:
    """
    Run setup, forward and backward over every pair in df.

    Returns:
        dict with 'loss' and a per-example 'details' DataFrame
    """
    layer = create_layer(param)
    dtype = np.float64
    bottom = [Blob.from_array(df[column].to_numpy(dtype=dtype)) for column in PAIR_COLUMNS]
    top = make_top()

    layer.setup(bottom, top)
    loss = layer.forward(bottom, top)
    top[0].diff[0] = loss_weight
    layer.backward(top, [True, True], bottom)

    details = df[PAIR_COLUMNS].copy()
    details['difference'] = layer.difference
    details['signed_distance'] = layer.signed_distance
    details['penalty'] = np.maximum(layer.margin - layer.signed_distance, 0.0)
    details['grad_a'] = bottom[0].flat_diff()
    details['grad_b'] = bottom[1].flat_diff()

    return {'loss': loss, 'details': details}


def run_evaluate(args) -> int:
    df = load_pairs(args.pairs)
    param = build_layer_parameter(args)
    result = evaluate_pairs(param, df, loss_weight=args.loss_weight)

    log_evaluation_results(logger, param.type, {
        'num_pairs': len(df),
        'margin': param.margin,
        'backend': param.backend,
        'loss': result['loss'],
        'active_pairs': int((result['details']['penalty'] > 0).sum()),
    })
    print(f"{param.type} loss: {result['loss']:.6f}")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        result['details'].to_csv(output_path, index=False)
        print(f"Per-pair results saved to: {output_path}")
    return 0


def run_list_layers(args) -> int:
    for layer_type in get_registry().list_layer_types():
        print(layer_type)
    return 0


def create_argument_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Pairwise ranking loss evaluation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List registered layer types
  pairrank list-layers

  # Evaluate RankingLoss with margin 0.3
  pairrank evaluate --pairs pairs.csv --type RankingLoss --margin 0.3

  # Use a layer config file and save per-pair gradients
  pairrank evaluate --pairs pairs.csv --config configs/real_ranking_loss.yaml --output grads.csv
        """
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        help="Logging level (default: from configs/global_config.yaml)"
    )

    subparsers = parser.add_subparsers(dest='command')

    subparsers.add_parser('list-layers', help="List registered layer types")

    evaluate = subparsers.add_parser('evaluate', help="Evaluate a loss layer on a CSV of pairs")
    evaluate.add_argument(
        '--pairs', '-p',
        type=str,
        required=True,
        help="CSV file with columns score_a, score_b, ref_a, ref_b"
    )
    evaluate.add_argument(
        '--config', '-c',
        type=str,
        help="Layer configuration YAML file"
    )
    evaluate.add_argument(
        '--type', '-t',
        type=str,
        default=None,
        help="Layer type (default: RankingLoss, or the type in --config)"
    )
    evaluate.add_argument(
        '--margin',
        type=float,
        help="Hinge margin (default: from config)"
    )
    evaluate.add_argument(
        '--backend',
        type=str,
        help="Execution backend: numpy or torch"
    )
    evaluate.add_argument(
        '--device',
        type=str,
        help="Device for the torch backend: cpu, cuda or auto"
    )
    evaluate.add_argument(
        '--loss-weight',
        type=float,
        default=1.0,
        help="Loss weight used for the backward pass (default: 1.0)"
    )
    evaluate.add_argument(
        '--output', '-o',
        type=str,
        help="Write per-pair distances and gradients to this CSV"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        get_global_config().set('logging.level', args.log_level)
    setup_logging()

    if args.command == 'list-layers':
        return run_list_layers(args)
    if args.command == 'evaluate':
        try:
            return run_evaluate(args)
        except (PairRankError, FileNotFoundError, KeyError, ValueError) as error:
            print(f"Error: {error}", file=sys.stderr)
            return 1

    parser.print_help()
    return 2


if __name__ == '__main__':
    sys.exit(main())
