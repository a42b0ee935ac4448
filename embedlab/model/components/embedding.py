"""Embedding module: trainable lookup table mapping category ids to dense vectors.

Forward is a row gather from the weight matrix; backward scatter-adds the upstream
gradient of every looked-up position into the row it was read from. The backward
rule lives in ``embedding_backward`` so it can be checked with hand-written
gradients, independent of autograd.
"""

from collections.abc import Callable, Sequence
from numbers import Integral

import numpy as np
import torch
from torch import nn

from embedlab.errors import IndexOutOfRange, InvalidConfiguration, ShapeMismatch

IndexLike = torch.Tensor | np.ndarray | Sequence[int]
InitPolicy = str | Callable[[torch.Tensor], None]

_INIT_POLICIES = ("uniform", "normal")


def _as_index_tensor(indices: IndexLike, device: torch.device | None = None) -> torch.Tensor:
    """Convert indices to a LongTensor on device. Rejects float/bool/complex dtypes."""
    if isinstance(indices, torch.Tensor):
        idx = indices
    else:
        arr = np.asarray(indices)
        # np.asarray([]) is float64; an empty batch is still a valid batch
        if arr.size == 0:
            arr = arr.astype(np.int64)
        idx = torch.as_tensor(arr)
    if idx.dtype == torch.bool or idx.is_floating_point() or idx.is_complex():
        raise TypeError(f"Embedding indices must be integers, got dtype {idx.dtype}")
    return idx.to(device=device, dtype=torch.long)


def _check_indices(idx: torch.Tensor, num_embeddings: int) -> None:
    """Raise IndexOutOfRange unless every index lies in [0, num_embeddings)."""
    if idx.numel() == 0:
        return
    lo = int(idx.min().item())
    if lo < 0:
        raise IndexOutOfRange(lo, num_embeddings)
    hi = int(idx.max().item())
    if hi >= num_embeddings:
        raise IndexOutOfRange(hi, num_embeddings)


def embedding_backward(
    indices: IndexLike,
    grad_output: torch.Tensor,
    num_embeddings: int,
    embedding_dim: int,
) -> torch.Tensor:
    """Gradient of an embedding lookup with respect to its weight matrix.

    Args:
        indices: Indices used in the forward lookup, any shape (...).
        grad_output: Upstream gradient, shape (..., embedding_dim), one vector per index.
        num_embeddings: Number of rows in the weight matrix.
        embedding_dim: Number of columns in the weight matrix.

    Returns:
        Tensor (num_embeddings, embedding_dim). Row i is the sum of grad_output over
        every position whose index is i; rows never looked up are zero.
    """
    idx = _as_index_tensor(indices, device=grad_output.device)
    expected = tuple(idx.shape) + (embedding_dim,)
    if tuple(grad_output.shape) != expected:
        raise ShapeMismatch(expected, tuple(grad_output.shape), what="upstream gradient")
    _check_indices(idx, num_embeddings)

    grad_weight = torch.zeros(
        num_embeddings, embedding_dim, dtype=grad_output.dtype, device=grad_output.device
    )
    # index_add_ sums duplicate rows; index_copy_ / assignment would keep only one
    grad_weight.index_add_(0, idx.reshape(-1), grad_output.reshape(-1, embedding_dim))
    return grad_weight


class EmbeddingLookup(torch.autograd.Function):
    """Row gather with the scatter-add backward from ``embedding_backward``."""

    @staticmethod
    def forward(ctx, weight: torch.Tensor, indices: torch.Tensor) -> torch.Tensor:
        num_embeddings, embedding_dim = weight.shape
        ctx.save_for_backward(indices)
        ctx.num_embeddings = num_embeddings
        ctx.embedding_dim = embedding_dim
        rows = weight.index_select(0, indices.reshape(-1))
        return rows.reshape(*indices.shape, embedding_dim)

    @staticmethod
    def backward(ctx, grad_output: torch.Tensor):
        (indices,) = ctx.saved_tensors
        grad_weight = None
        if ctx.needs_input_grad[0]:
            grad_weight = embedding_backward(
                indices, grad_output, ctx.num_embeddings, ctx.embedding_dim
            )
        return grad_weight, None


class Embedding(nn.Module):
    """Embedding lookup. Weight shape (num_embeddings, embedding_dim), no nn.Embedding.

    init selects how the weight is filled at construction time:
      "uniform"  iid U[init_range[0], init_range[1])  (default, [-0.05, 0.05))
      "normal"   truncated normal, mean 0, std 0.02
      callable   called with the weight tensor, fills it in place
    """

    def __init__(
        self,
        num_embeddings: int,
        embedding_dim: int,
        init: InitPolicy = "uniform",
        init_range: tuple[float, float] = (-0.05, 0.05),
        device: torch.device | None = None,
        dtype: torch.dtype | None = None,
    ) -> None:
        super().__init__()
        for name, value in (("num_embeddings", num_embeddings), ("embedding_dim", embedding_dim)):
            if isinstance(value, bool) or not isinstance(value, Integral) or value <= 0:
                raise InvalidConfiguration(f"{name} must be a positive integer, got {value!r}")
        if not callable(init) and init not in _INIT_POLICIES:
            raise InvalidConfiguration(
                f"Unknown init policy {init!r}; expected one of {_INIT_POLICIES} or a callable"
            )
        low, high = init_range
        if not low < high:
            raise InvalidConfiguration(f"init_range must satisfy low < high, got {init_range}")

        self.num_embeddings = int(num_embeddings)
        self.embedding_dim = int(embedding_dim)
        self.init_policy = init
        self.init_range = (float(low), float(high))
        self.weight = nn.Parameter(
            torch.empty(self.num_embeddings, self.embedding_dim, device=device, dtype=dtype)
        )
        self.reset_parameters()

    @torch.no_grad()
    def reset_parameters(self) -> None:
        """(Re)fill the weight according to the init policy."""
        if callable(self.init_policy):
            self.init_policy(self.weight)
        elif self.init_policy == "uniform":
            nn.init.uniform_(self.weight, *self.init_range)
        else:
            nn.init.trunc_normal_(self.weight, mean=0.0, std=0.02)

    def forward(self, indices: IndexLike) -> torch.Tensor:
        """Lookup the embedding vectors for indices; returns shape (*indices.shape, embedding_dim).

        All indices are validated before anything is gathered, so an out-of-range
        index raises IndexOutOfRange and no partial output is produced.
        """
        idx = _as_index_tensor(indices, device=self.weight.device)
        _check_indices(idx, self.num_embeddings)
        return EmbeddingLookup.apply(self.weight, idx)

    def lookup(self, indices: IndexLike) -> torch.Tensor:
        return self(indices)

    def export_weights(self) -> np.ndarray:
        """Detached numpy copy of the current weight matrix."""
        return self.weight.detach().cpu().numpy().copy()

    def extra_repr(self) -> str:
        return f"{self.num_embeddings}, {self.embedding_dim}, init={self.init_policy!r}"
