"""Inspecting learned embedding tables: PCA projection and cosine nearest neighbours."""

import numpy as np

from embedlab.errors import IndexOutOfRange, InvalidConfiguration


def pca_project(weights: np.ndarray, n_components: int = 2) -> np.ndarray:
    """Project embedding rows onto their top principal axes.

    Args:
        weights: (num_embeddings, embedding_dim) table, e.g. Embedding.export_weights().
        n_components: Number of axes to keep, 1 <= n_components <= min(num_embeddings, embedding_dim).

    Returns:
        (num_embeddings, n_components) coordinates, first column along the axis of largest variance.
    """
    weights = np.asarray(weights, dtype=np.float64)
    if weights.ndim != 2:
        raise InvalidConfiguration(f"Expected a 2D embedding table, got shape {weights.shape}")
    if not 1 <= n_components <= min(weights.shape):
        raise InvalidConfiguration(
            f"n_components must be in [1, {min(weights.shape)}], got {n_components}"
        )
    centered = weights - weights.mean(axis=0, keepdims=True)
    # Rows of vt are principal axes, sorted by singular value
    _, _, vt = np.linalg.svd(centered, full_matrices=False)
    return centered @ vt[:n_components].T


def most_similar(weights: np.ndarray, index: int, k: int = 5) -> tuple[np.ndarray, np.ndarray]:
    """Rows with the highest cosine similarity to row ``index``, excluding itself.

    Returns:
        (indices, similarities), each of length min(k, num_embeddings - 1), most similar first.
    """
    weights = np.asarray(weights, dtype=np.float64)
    n = weights.shape[0]
    if not 0 <= index < n:
        raise IndexOutOfRange(index, n)
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")
    norms = np.linalg.norm(weights, axis=1)
    norms[norms == 0] = 1.0
    unit = weights / norms[:, None]
    sims = unit @ unit[index]
    sims[index] = -np.inf
    k = min(k, n - 1)
    order = np.argsort(-sims, kind="stable")[:k]
    return order, sims[order]
