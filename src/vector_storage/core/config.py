"""Configuration for the vector storage system with pydantic-based settings."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ANNAlgorithm = Literal["flat", "brute-force"]

IN_MEMORY_BACKEND = "in-memory"
CHROMA_BACKEND = "chroma"

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_LIST_LIMIT = 100
DEFAULT_MAX_VECTORS = 10000
DEFAULT_MIN_DATASET_SIZE = 100
DEFAULT_SHUTDOWN_TIMEOUT = 5.0


class ANNIndexConfig(BaseModel):
    """Configuration for the approximate/exact index.

    Attributes:
        algorithm: "flat" uses the accelerated index when available,
            "brute-force" always uses a linear scan
        dimension: Dimension of stored vectors
        max_vectors: Maximum number of vectors the index is sized for
        min_dataset_size: Below this count searches use a linear scan
        persist_index: Whether to load/save index state from index_path
        index_path: Directory holding the persisted index files
    """

    algorithm: ANNAlgorithm = Field(default="flat", description="Index algorithm")
    dimension: int = Field(gt=0, description="Dimension of vectors")
    max_vectors: int = Field(
        default=DEFAULT_MAX_VECTORS, gt=0, description="Maximum number of vectors"
    )
    min_dataset_size: int = Field(
        default=DEFAULT_MIN_DATASET_SIZE,
        ge=0,
        description="Minimum dataset size before accelerated search is used",
    )
    persist_index: bool = Field(default=False, description="Enable index persistence")
    index_path: Optional[str] = Field(
        default=None, description="Directory for index persistence"
    )

    @model_validator(mode="after")
    def validate_persistence(self) -> "ANNIndexConfig":
        """Ensure a path is available when persistence is enabled."""
        if self.persist_index and not self.index_path:
            raise ValueError("index_path is required when persist_index is enabled")
        return self


class ChromaConfig(BaseSettings):
    """Configuration for the embedded ChromaDB backend."""

    model_config = SettingsConfigDict(
        env_prefix="CHROMADB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mode: str = Field(
        default="ephemeral",
        description="ChromaDB mode: 'persistent' or 'ephemeral'",
    )
    path: Optional[str] = Field(
        default=None, description="Persistent storage path (for persistent mode)"
    )

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        """Validate ChromaDB mode."""
        valid_modes = {"persistent", "ephemeral"}
        if v not in valid_modes:
            raise ValueError(f"mode must be one of {valid_modes}, got {v}")
        return v

    @model_validator(mode="after")
    def validate_mode_requirements(self) -> "ChromaConfig":
        """Persistent mode needs a path."""
        if self.mode == "persistent" and not self.path:
            raise ValueError("path is required for persistent ChromaDB mode")
        return self

    def is_persistent_mode(self) -> bool:
        """Check if ChromaDB is configured in persistent mode."""
        return self.mode == "persistent"

    def is_ephemeral_mode(self) -> bool:
        """Check if ChromaDB is configured in ephemeral mode."""
        return self.mode == "ephemeral"


class VectorStoreConfig(BaseModel):
    """Configuration for a vector store backend and its collection.

    Attributes:
        type: Backend name resolved through the backend registry
        collection_name: Name of the collection
        dimension: Dimension of stored vectors
        max_vectors: Maximum number of entries in the collection
        ann_algorithm: Index algorithm for the in-memory backend
        ann_min_dataset_size: Minimum count before accelerated search is used
        ann_persist_index: Persist index and payloads to ann_index_path
        ann_index_path: Directory for persisted state
        chroma: ChromaDB configuration (used if type='chroma')
    """

    type: str = Field(default=IN_MEMORY_BACKEND, min_length=1, description="Backend type")
    collection_name: str = Field(
        default="default", min_length=1, description="Name of the collection"
    )
    dimension: int = Field(default=384, gt=0, description="Dimension of vectors")
    max_vectors: int = Field(
        default=DEFAULT_MAX_VECTORS, gt=0, description="Maximum number of vectors"
    )
    ann_algorithm: ANNAlgorithm = Field(default="flat", description="Index algorithm")
    ann_min_dataset_size: int = Field(
        default=DEFAULT_MIN_DATASET_SIZE,
        ge=0,
        description="Minimum dataset size before accelerated search is used",
    )
    ann_persist_index: bool = Field(default=False, description="Enable persistence")
    ann_index_path: Optional[str] = Field(
        default=None, description="Directory for persisted state"
    )
    chroma: Optional[ChromaConfig] = Field(
        default=None, description="ChromaDB configuration (used if type='chroma')"
    )

    @model_validator(mode="after")
    def validate_backend_requirements(self) -> "VectorStoreConfig":
        """Fill in per-backend defaults and check persistence settings."""
        if self.ann_persist_index and not self.ann_index_path:
            raise ValueError("ann_index_path is required when ann_persist_index is enabled")
        if self.type == CHROMA_BACKEND and self.chroma is None:
            self.chroma = ChromaConfig()
        return self

    def to_index_config(self) -> ANNIndexConfig:
        """Derive the index configuration for this collection."""
        return ANNIndexConfig(
            algorithm=self.ann_algorithm,
            dimension=self.dimension,
            max_vectors=self.max_vectors,
            min_dataset_size=self.ann_min_dataset_size,
            persist_index=self.ann_persist_index,
            index_path=self.ann_index_path,
        )

    def as_fallback(self) -> "VectorStoreConfig":
        """Copy of this config targeting the in-memory backend."""
        return self.model_copy(update={"type": IN_MEMORY_BACKEND, "chroma": None})


class VectorStorageSettings(BaseSettings):
    """Environment-driven settings for the vector storage system."""

    model_config = SettingsConfigDict(
        env_prefix="VECTOR_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    type: str = Field(default=IN_MEMORY_BACKEND, description="Backend type")
    collection_name: str = Field(default="default", description="Collection name")
    dimension: int = Field(default=384, gt=0, description="Dimension of vectors")
    max_vectors: int = Field(default=DEFAULT_MAX_VECTORS, gt=0)
    ann_algorithm: ANNAlgorithm = Field(default="flat")
    ann_min_dataset_size: int = Field(default=DEFAULT_MIN_DATASET_SIZE, ge=0)
    ann_persist_index: bool = Field(default=False)
    ann_index_path: Optional[str] = Field(default=None)
    shutdown_timeout: float = Field(
        default=DEFAULT_SHUTDOWN_TIMEOUT,
        gt=0,
        description="Seconds allowed for backend shutdown",
    )

    def to_store_config(self) -> VectorStoreConfig:
        """Build a VectorStoreConfig from these settings."""
        return VectorStoreConfig(
            type=self.type,
            collection_name=self.collection_name,
            dimension=self.dimension,
            max_vectors=self.max_vectors,
            ann_algorithm=self.ann_algorithm,
            ann_min_dataset_size=self.ann_min_dataset_size,
            ann_persist_index=self.ann_persist_index,
            ann_index_path=self.ann_index_path,
        )


def get_vector_storage_settings() -> VectorStorageSettings:
    """Get vector storage settings from environment variables."""
    return VectorStorageSettings()


def get_chroma_config() -> ChromaConfig:
    """Get ChromaDB configuration from environment variables."""
    return ChromaConfig()
