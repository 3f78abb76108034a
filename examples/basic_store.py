"""
Example: Basic vector store usage through the manager.

Connects to a ChromaDB collection (falling back to the in-memory backend
if ChromaDB cannot start), inserts a few entries and runs filtered searches.
"""

import logging

from vector_storage import VectorStoreConfig, VectorStoreManager


def main():
    logging.basicConfig(level=logging.INFO)

    config = VectorStoreConfig(type="chroma", collection_name="example_docs", dimension=4)
    manager = VectorStoreManager(config)
    store = manager.connect()

    print("=== Backend ===")
    print(manager.get_info().to_dict())

    store.insert(
        vectors=[
            [0.9, 0.1, 0.0, 0.0],
            [0.1, 0.9, 0.0, 0.0],
            [0.8, 0.0, 0.2, 0.0],
        ],
        ids=[1, 2, 3],
        payloads=[
            {"title": "Machine learning basics", "topic": "ml", "year": 2019},
            {"title": "Cooking with herbs", "topic": "food", "year": 2021},
            {"title": "Deep learning in practice", "topic": "ml", "year": 2023},
        ],
    )

    print("\n=== Search ===")
    for result in store.search([1.0, 0.0, 0.0, 0.0], limit=2):
        print(f"{result.id}: {result.score:.3f} {result.payload['title']}")

    print("\n=== Filtered search ===")
    filters = {"topic": "ml", "year": {"gte": 2020}}
    for result in store.search([1.0, 0.0, 0.0, 0.0], limit=5, filters=filters):
        print(f"{result.id}: {result.score:.3f} {result.payload['title']}")

    print("\n=== Health ===")
    print(manager.health_check())

    store.delete_collection()
    manager.disconnect()


if __name__ == "__main__":
    main()
