"""
Finite-difference gradient checker for loss layers.

Use this to confirm that a layer's backward pass agrees with the derivative of
its forward pass. Points sitting on a hinge kink (margin == signed distance)
have no derivative and are skipped.
"""
import logging
from typing import Dict, Optional, Sequence

import numpy as np

from pairrank.blob import Blob
from pairrank.config import get_global_config
from pairrank.layers.base import LossLayer, make_top

logger = logging.getLogger(__name__)


class GradientChecker:
    """Compares analytic layer gradients against central differences."""

    def __init__(self, step: Optional[float] = None, threshold: Optional[float] = None,
                 kink: Optional[float] = None):
        """
        Args:
            step: Perturbation applied to each score (default from global config)
            threshold: Allowed error, relative to max(1, |analytic|, |numeric|)
            kink: Skip examples whose hinge slack is within this distance of 0
                (default 2 * step)
        """
        config = get_global_config()
        self.step = step if step is not None else config.get_float('gradient_check.step', 1e-3)
        self.threshold = threshold if threshold is not None else config.get_float('gradient_check.threshold', 1e-3)
        self.kink = kink if kink is not None else 2 * self.step

    def check(self, layer: LossLayer, bottom: Sequence[Blob],
              check_inputs: Sequence[int] = (0, 1), loss_weight: float = 1.0) -> Dict:
        """
        Check gradients of `layer` at the point given by `bottom`.

        Args:
            layer: Layer under test (setup is called here)
            bottom: Four bottom blobs; their data is restored after probing
            check_inputs: Score inputs to check
            loss_weight: Loss weight fed to backward

        Returns:
            dict with 'checked', 'skipped', 'max_error' and a list of 'failures'
        """
        top = make_top()
        layer.setup(bottom, top)
        top[0].diff[0] = loss_weight

        layer.forward(bottom, top)
        slack = layer.margin - layer.signed_distance.astype(np.float64)
        layer.backward(top, [index in check_inputs for index in (0, 1)], bottom)
        analytic = {index: bottom[index].flat_diff().astype(np.float64).copy() for index in check_inputs}

        report = {'checked': 0, 'skipped': 0, 'max_error': 0.0, 'failures': []}

        for index in check_inputs:
            data = bottom[index].flat_data()
            for j in range(bottom[index].num):
                if abs(slack[j]) <= self.kink:
                    report['skipped'] += 1
                    continue

                original = data[j]
                data[j] = original + self.step
                loss_plus = layer.forward(bottom, top)
                data[j] = original - self.step
                loss_minus = layer.forward(bottom, top)
                data[j] = original

                numeric = loss_weight * (loss_plus - loss_minus) / (2 * self.step)
                expected = analytic[index][j]
                error = abs(expected - numeric)
                scale = max(1.0, abs(expected), abs(numeric))

                report['checked'] += 1
                report['max_error'] = max(report['max_error'], error)
                if error > self.threshold * scale:
                    report['failures'].append({
                        'input': index,
                        'example': j,
                        'analytic': float(expected),
                        'numeric': float(numeric),
                    })

        # Leave the layer cache consistent with the unperturbed inputs
        layer.forward(bottom, top)

        logger.info(f"Gradient check {layer.type_name}: checked={report['checked']}, "
                    f"skipped={report['skipped']}, max_error={report['max_error']:.3e}, "
                    f"failures={len(report['failures'])}")
        return report

    def assert_gradients(self, layer: LossLayer, bottom: Sequence[Blob],
                         check_inputs: Sequence[int] = (0, 1), loss_weight: float = 1.0) -> Dict:
        """Like check(), but raise AssertionError listing any mismatches."""
        report = self.check(layer, bottom, check_inputs, loss_weight)
        if report['failures']:
            lines = [
                f"  input {f['input']} example {f['example']}: analytic={f['analytic']:.6g} "
                f"numeric={f['numeric']:.6g}"
                for f in report['failures'][:10]
            ]
            raise AssertionError(
                f"{layer.type_name} gradient check failed for {len(report['failures'])} values:\n"
                + "\n".join(lines)
            )
        return report
