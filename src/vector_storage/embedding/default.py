"""Sentence-transformers embedding used when the maintenance job gets no embedder."""

from functools import cached_property
from typing import Any

from vector_storage.embedding.base import EmbeddingFunction

DEFAULT_MODEL = "all-MiniLM-L6-v2"


class DefaultEmbedding(EmbeddingFunction):
    """
    Embeds text with a sentence-transformers model.

    The default model produces 384-dimensional vectors, matching the default
    collection dimension. Vectors are L2-normalized by the model so stored
    and query vectors are on the same scale. The model is loaded on first
    use.

    Args:
        model_name: sentence-transformers model id or local path
        device: Torch device ("cpu", "cuda", ...); None lets the library pick
        batch_size: Texts per forward pass in ``embed_batch``
        normalize: L2-normalize the produced vectors
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        device: str | None = None,
        batch_size: int = 32,
        normalize: bool = True,
    ) -> None:
        self.model_name = model_name
        self.device = device
        self.batch_size = batch_size
        self.normalize = normalize

    @cached_property
    def _encoder(self) -> Any:
        from sentence_transformers import SentenceTransformer

        return SentenceTransformer(self.model_name, device=self.device)

    @property
    def dimension(self) -> int:
        size = self._encoder.get_sentence_embedding_dimension()
        if size is None:
            size = len(self.embed("dimension check"))
        return int(size)

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        embeddings = self._encoder.encode(
            texts,
            batch_size=self.batch_size,
            convert_to_numpy=True,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
        )
        return [[float(x) for x in row] for row in embeddings]
