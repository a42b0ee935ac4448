"""Mean squared error for rating regression."""

import torch

from embedlab.errors import ShapeMismatch


def mse_loss(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Average of (pred - target)^2 over all elements.

    Shapes must match exactly: (batch,) against (batch, 1) broadcasts to (batch, batch).
    """
    if pred.shape != target.shape:
        raise ShapeMismatch(tuple(target.shape), tuple(pred.shape), what="prediction")
    diff = pred - target.to(pred.dtype)
    return (diff * diff).mean()
