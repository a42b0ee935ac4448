"""Errors raised by embedding layers and their helpers."""


class EmbeddingError(Exception):
    """Base class for embedlab errors."""


class InvalidConfiguration(EmbeddingError, ValueError):
    """Bad constructor arguments (non-positive sizes, unknown init policy, ...)."""


class IndexOutOfRange(EmbeddingError, IndexError):
    """A lookup index outside [0, num_embeddings)."""

    def __init__(self, index: int, num_embeddings: int) -> None:
        self.index = index
        self.num_embeddings = num_embeddings
        super().__init__(
            f"Index {index} out of range for embedding table with {num_embeddings} rows"
        )


class ShapeMismatch(EmbeddingError, ValueError):
    """A tensor whose shape does not match the one it is paired with."""

    def __init__(self, expected: tuple[int, ...], actual: tuple[int, ...], what: str = "tensor") -> None:
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(f"Expected {what} of shape {self.expected}, got {self.actual}")
