"""Configuration management."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChunkingDefaults(BaseModel):
    """Defaults applied when a chunked store call omits its options."""

    method: str = Field(default="semantic", description="fixed, sentence, paragraph or semantic")
    max_chunk_size: int = Field(default=1000, description="Token budget per chunk (characters for 'fixed')")
    overlap_size: int = Field(default=100, description="Overlap budget between consecutive chunks")
    semantic_threshold: float = Field(default=0.75, description="Cosine floor for growing a semantic chunk")


class Settings(BaseSettings):
    # API Keys
    voyage_api_key: str = ""
    anthropic_api_key: str = ""

    # Providers
    voyage_model: str = "voyage-3"
    embedding_dimensions: int = 1024
    anthropic_model: str = "claude-3-5-haiku-latest"
    analysis_max_tokens: int = 300

    # Neo4j
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password"
    neo4j_database: str | None = None
    neo4j_vector_index: str = "memory_embeddings"

    # Retrieval
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Default kNN score floor")
    chunking: ChunkingDefaults = Field(default_factory=ChunkingDefaults)

    # App config
    server_name: str = "memory-mesh"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_nested_delimiter="__",  # Allows CHUNKING__MAX_CHUNK_SIZE=2000
    )


settings = Settings()
