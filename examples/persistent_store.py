"""
Example: In-memory store persisted to disk, plus data normalization.

Entries are written through to ./vector_data after every change, so a
second run picks up where the first left off.
"""

import logging

from vector_storage import VectorStoreConfig, VectorStoreManager
from vector_storage.core.storage.memory import InMemoryVectorStore


def toy_embedding(text: str) -> list[float]:
    """Letter-frequency embedding so the example runs without a model."""
    counts = [0.0] * 8
    for char in text:
        if char.isalpha():
            counts[ord(char) % 8] += 1.0
    return counts


def main():
    logging.basicConfig(level=logging.INFO)

    config = VectorStoreConfig(
        collection_name="notes",
        dimension=8,
        ann_min_dataset_size=2,
        ann_persist_index=True,
        ann_index_path="./vector_data",
    )
    manager = VectorStoreManager(config)
    store = manager.connect()

    _, total = store.list(limit=0)
    print(f"Collection holds {total} entries on startup")

    texts = ["The Cat sat on the MAT!", "Dogs, and more dogs.", "A note about cats"]
    start = total
    store.insert(
        vectors=[toy_embedding(t) for t in texts],
        ids=list(range(start, start + len(texts))),
        payloads=[{"text": t} for t in texts],
    )

    result = manager.normalize_data(embedder=toy_embedding)
    print(f"Normalization: {result.to_dict()}")

    for hit in store.search(toy_embedding("cat"), limit=3):
        print(f"{hit.id}: {hit.score:.3f} {hit.payload['text']}")

    if isinstance(store, InMemoryVectorStore):
        print(f"Index stats: {store.get_ann_stats().to_dict()}")

    manager.disconnect()


if __name__ == "__main__":
    main()
