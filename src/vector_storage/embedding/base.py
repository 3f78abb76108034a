"""Embedding generator interface used by the maintenance job."""

from abc import ABC, abstractmethod
from typing import Callable, Sequence


class EmbeddingFunction(ABC):
    """Turns text into a vector of the collection's dimension."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of the vectors produced by ``embed``."""
        ...

    @abstractmethod
    def embed(self, text: str) -> Sequence[float]:
        """Embed a single text string."""
        ...

    def embed_batch(self, texts: list[str]) -> list[Sequence[float]]:
        """Embed multiple texts. Default implementation calls embed() for each."""
        return [self.embed(text) for text in texts]


class CallableEmbedding(EmbeddingFunction):
    """Adapts a plain ``embed(text) -> vector`` callable."""

    def __init__(self, func: Callable[[str], Sequence[float]], dimension: int) -> None:
        self._func = func
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> Sequence[float]:
        return self._func(text)
