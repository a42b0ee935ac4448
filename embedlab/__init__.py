"""embedlab: hand-written embedding lookup layer and the recommenders built on it."""
from embedlab.errors import (
    EmbeddingError,
    IndexOutOfRange,
    InvalidConfiguration,
    ShapeMismatch,
)
from embedlab.model.components.embedding import Embedding, embedding_backward
from embedlab.model.recommender import (
    DotProductRecommender,
    MLPRecommender,
    recommend_top_k,
)

__all__ = [
    "DotProductRecommender",
    "Embedding",
    "EmbeddingError",
    "IndexOutOfRange",
    "InvalidConfiguration",
    "MLPRecommender",
    "ShapeMismatch",
    "embedding_backward",
    "recommend_top_k",
]
