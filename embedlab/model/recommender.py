"""Rating recommenders built on the Embedding lookup: user id, item id -> predicted rating."""

import logging

import torch
from torch import nn

from embedlab.errors import InvalidConfiguration
from embedlab.model.components.embedding import Embedding, IndexLike, _as_index_tensor, _check_indices
from embedlab.model.components.linear import Linear

logger = logging.getLogger(__name__)


def _squash(scores: torch.Tensor, rating_range: tuple[float, float] | None) -> torch.Tensor:
    """Map raw scores into (lo, hi) with a scaled sigmoid; identity when rating_range is None."""
    if rating_range is None:
        return scores
    lo, hi = rating_range
    return lo + (hi - lo) * torch.sigmoid(scores)


def _check_rating_range(rating_range: tuple[float, float] | None) -> None:
    if rating_range is not None and not rating_range[0] < rating_range[1]:
        raise InvalidConfiguration(f"rating_range must satisfy lo < hi, got {rating_range}")


class DotProductRecommender(nn.Module):
    """Matrix factorisation: score(u, i) = <U_u, V_i> + b_u + b_i."""

    def __init__(
        self,
        num_users: int,
        num_items: int,
        embedding_dim: int,
        rating_range: tuple[float, float] | None = None,
        device: torch.device | None = None,
        dtype: torch.dtype | None = None,
    ) -> None:
        super().__init__()
        _check_rating_range(rating_range)
        self.num_users = num_users
        self.num_items = num_items
        self.embedding_dim = embedding_dim
        self.rating_range = rating_range

        self.user_embeddings = Embedding(num_users, embedding_dim, device=device, dtype=dtype)
        self.item_embeddings = Embedding(num_items, embedding_dim, device=device, dtype=dtype)
        self.user_bias = Embedding(num_users, 1, device=device, dtype=dtype)
        self.item_bias = Embedding(num_items, 1, device=device, dtype=dtype)

    def forward(self, user_ids: IndexLike, item_ids: IndexLike) -> torch.Tensor:
        """user_ids, item_ids: (batch_size,). Returns (batch_size,) predicted ratings."""
        u = self.user_embeddings(user_ids)
        v = self.item_embeddings(item_ids)
        scores = (u * v).sum(dim=-1)
        scores = scores + self.user_bias(user_ids).squeeze(-1) + self.item_bias(item_ids).squeeze(-1)
        return _squash(scores, self.rating_range)


class MLPRecommender(nn.Module):
    """Concatenate user and item vectors, then Linear -> ReLU -> Linear down to one score."""

    def __init__(
        self,
        num_users: int,
        num_items: int,
        embedding_dim: int,
        hidden_dim: int,
        rating_range: tuple[float, float] | None = None,
        device: torch.device | None = None,
        dtype: torch.dtype | None = None,
    ) -> None:
        super().__init__()
        _check_rating_range(rating_range)
        self.num_users = num_users
        self.num_items = num_items
        self.embedding_dim = embedding_dim
        self.hidden_dim = hidden_dim
        self.rating_range = rating_range

        self.user_embeddings = Embedding(num_users, embedding_dim, device=device, dtype=dtype)
        self.item_embeddings = Embedding(num_items, embedding_dim, device=device, dtype=dtype)
        self.hidden = Linear(2 * embedding_dim, hidden_dim, device=device, dtype=dtype)
        self.out = Linear(hidden_dim, 1, device=device, dtype=dtype)

    def forward(self, user_ids: IndexLike, item_ids: IndexLike) -> torch.Tensor:
        """user_ids, item_ids: (batch_size,). Returns (batch_size,) predicted ratings."""
        x = torch.cat([self.user_embeddings(user_ids), self.item_embeddings(item_ids)], dim=-1)
        x = torch.relu(self.hidden(x))
        scores = self.out(x).squeeze(-1)
        return _squash(scores, self.rating_range)


@torch.no_grad()
def recommend_top_k(
    model: DotProductRecommender | MLPRecommender,
    user_index: int,
    k: int,
    exclude: IndexLike | None = None,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Top-k items for one user by predicted rating.

    Args:
        model: Trained recommender.
        user_index: Encoded user id.
        k: Number of items to return; clipped to the number of candidates.
        exclude: Item indices to leave out (e.g. items the user already rated).

    Returns:
        (item_indices, scores), both (k,), best first.
    """
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")
    device = model.user_embeddings.weight.device
    candidates = torch.ones(model.num_items, dtype=torch.bool, device=device)
    if exclude is not None:
        excluded = _as_index_tensor(exclude, device=device)
        _check_indices(excluded, model.num_items)
        candidates[excluded] = False

    was_training = model.training
    model.eval()
    try:
        items = torch.arange(model.num_items, device=device)
        users = torch.full_like(items, user_index)
        scores = model(users, items)
    finally:
        model.train(was_training)

    candidate_ids = items[candidates]
    k = min(k, candidate_ids.numel())
    top_scores, order = torch.topk(scores[candidates], k)
    logger.debug("user %d: top-%d of %d candidates", user_index, k, candidate_ids.numel())
    return candidate_ids[order], top_scores
