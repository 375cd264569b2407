"""
torch autograd bridge for pairrank layers.

Wraps a LossLayer so it can be dropped into a torch training loop like any
other loss module. The layer computes both passes; torch only routes the
upstream gradient in as the loss weight and the score gradients back out.
"""

import logging
from typing import Optional

import torch
import torch.nn as nn

from pairrank.blob import Blob
from pairrank.config import LayerParameter
from pairrank.errors import StaleStateError
from pairrank.layers import LossLayer, create_layer, make_top

logger = logging.getLogger(__name__)


def _to_blob(tensor: torch.Tensor) -> Blob:
    return Blob.from_array(tensor.detach().cpu().numpy())


class _LayerFunction(torch.autograd.Function):
    """Runs layer.forward / layer.backward inside torch autograd."""

    @staticmethod
    def forward(ctx, layer: LossLayer, loss_weight: float,
                score_a: torch.Tensor, score_b: torch.Tensor,
                ref_a: torch.Tensor, ref_b: torch.Tensor) -> torch.Tensor:
        bottom = [_to_blob(t) for t in (score_a, score_b, ref_a, ref_b)]
        top = make_top()
        if layer.num != bottom[0].num:
            layer.setup(bottom, top)
        loss = layer.forward(bottom, top)

        ctx.layer = layer
        ctx.loss_weight = loss_weight
        ctx.bottom = bottom
        ctx.top = top
        ctx.forward_count = layer.forward_count
        ctx.score_shapes = (score_a.shape, score_b.shape)

        return torch.tensor(loss * loss_weight, dtype=score_a.dtype, device=score_a.device)

    @staticmethod
    def backward(ctx, grad_output: torch.Tensor):
        layer = ctx.layer
        if layer.forward_count != ctx.forward_count:
            raise StaleStateError(
                f"{layer.name}: forward ran again before backward; "
                "call backward once per forward on a given layer"
            )

        top = ctx.top
        top[0].diff[0] = float(grad_output.item()) * ctx.loss_weight
        propagate_down = [ctx.needs_input_grad[2], ctx.needs_input_grad[3]]
        layer.backward(top, propagate_down, ctx.bottom)

        grads = []
        for index, needed in enumerate(propagate_down):
            if needed:
                diff = torch.from_numpy(ctx.bottom[index].flat_diff().copy())
                grads.append(diff.to(device=grad_output.device, dtype=grad_output.dtype)
                             .reshape(ctx.score_shapes[index]))
            else:
                grads.append(None)

        return None, None, grads[0], grads[1], None, None


class PairRankingLoss(nn.Module):
    """
    Pairwise ranking loss as a torch module.

    Loss = loss_weight * layer_loss(score_a, score_b, ref_a, ref_b)

    References are treated as constants and never receive a gradient.
    """

    def __init__(
        self,
        layer_type: str = 'RankingLoss',
        margin: Optional[float] = None,
        loss_weight: float = 1.0,
        backend: Optional[str] = None,
        device: Optional[str] = None
    ):
        """
        Initialize the loss module.

        Args:
            layer_type: 'RankingLoss' or 'RealRankingLoss'
            margin: Hinge margin (None = global config default)
            loss_weight: Coefficient of this loss in the total objective
            backend: Execution backend name (None = global config default)
            device: Device for the torch backend (None = global config default)
        """
        super().__init__()

        config = {'type': layer_type}
        if margin is not None:
            config['margin'] = margin
        if backend is not None:
            config['backend'] = backend
        if device is not None:
            config['device'] = device

        self.layer = create_layer(LayerParameter.from_dict(config))
        self.loss_weight = loss_weight

    @property
    def margin(self) -> float:
        return self.layer.margin

    def forward(
        self,
        score_a: torch.Tensor,
        score_b: torch.Tensor,
        ref_a: torch.Tensor,
        ref_b: torch.Tensor
    ) -> torch.Tensor:
        """
        Compute the ranking loss.

        Args:
            score_a: Scores for items a (batch_size,) or (batch_size, 1)
            score_b: Scores for items b, same shape as score_a
            ref_a: Ground-truth references for items a
            ref_b: Ground-truth references for items b

        Returns:
            Scalar loss tensor
        """
        return _LayerFunction.apply(self.layer, self.loss_weight, score_a, score_b, ref_a, ref_b)

    def extra_repr(self) -> str:
        return f"type={self.layer.type_name}, margin={self.margin}, loss_weight={self.loss_weight}"
