"""Rating data: id encoding, train/valid split, and random batch sampling."""

import numpy as np
import torch


def encode_ids(raw_ids: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Map arbitrary ids to contiguous embedding indices 0..n-1.

    Args:
        raw_ids: 1D array of ids (ints or strings), repeats allowed.

    Returns:
        (indices, vocabulary): indices[k] is the row for raw_ids[k];
        vocabulary[i] is the raw id stored in row i (sorted, unique).
    """
    vocabulary, indices = np.unique(np.asarray(raw_ids), return_inverse=True)
    return indices.reshape(-1).astype(np.int64), vocabulary


def train_valid_split(
    n: int,
    valid_fraction: float,
    seed: int | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Shuffle 0..n-1 and split into (train_idx, valid_idx)."""
    if not 0.0 <= valid_fraction < 1.0:
        raise ValueError(f"valid_fraction must be in [0, 1), got {valid_fraction}")
    perm = np.random.default_rng(seed).permutation(n)
    n_valid = int(round(n * valid_fraction))
    return perm[n_valid:], perm[:n_valid]


def get_batch(
    users: np.ndarray,
    items: np.ndarray,
    ratings: np.ndarray,
    batch_size: int,
    device: str,
) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """Sample batch_size (user, item, rating) triples uniformly with replacement.

    Args:
        users: 1D array of encoded user indices.
        items: 1D array of encoded item indices, same length as users.
        ratings: 1D array of ratings, same length as users.
        batch_size: Number of triples to sample.
        device: PyTorch device string (e.g. 'cpu', 'cuda:0', 'mps').

    Returns:
        (users, items, ratings): LongTensor, LongTensor, FloatTensor, each (batch_size,).
    """
    n = len(users)
    if n == 0:
        raise ValueError("Cannot sample a batch from an empty ratings table")
    if len(items) != n or len(ratings) != n:
        raise ValueError(
            f"users/items/ratings lengths differ: {n}, {len(items)}, {len(ratings)}"
        )
    rows = np.random.randint(0, n, size=batch_size)
    users_t = torch.from_numpy(np.asarray(users)[rows]).long().to(device)
    items_t = torch.from_numpy(np.asarray(items)[rows]).long().to(device)
    ratings_t = torch.from_numpy(np.asarray(ratings)[rows]).float().to(device)
    return users_t, items_t, ratings_t
