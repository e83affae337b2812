"""Application settings loaded from environment variables via pydantic-settings.

Two sources, highest priority first:

  1. Environment variables, e.g. ``HUGGINGFACE_API_KEY=hf_abc123``
  2. The ``.env`` file in the working directory (local development)

Field names map to upper-cased environment variables automatically.  An
empty string means "not configured": provider selection in ``main.py``
skips anything whose credentials are blank.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """tenantrag application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding provider (Hugging Face Inference API) ===
    huggingface_api_key: str = ""
    huggingface_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    huggingface_api_url: str = "https://api-inference.huggingface.co/pipeline/feature-extraction"
    embedding_dimension: int = 384
    embedding_timeout_seconds: float = 30.0

    # === Vector store (ChromaDB) ===
    chromadb_persist_dir: str = "./data/chromadb"
    vector_index_name: str = "tenantrag-index"

    # === Generative model ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, Groq, ...)
    openai_text_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    generation_temperature: float = 0.3
    generation_max_tokens: int = 1024

    # === Blob storage ===
    blob_storage_backend: str = "local"  # "local" or "s3"
    blob_storage_dir: str = "./data/blobs"
    s3_bucket: str = ""
    aws_region: str = "us-east-1"

    # === Relational persistence ===
    database_path: str = "data/tenantrag.db"

    # === Chunking / upload policy ===
    chunk_size: int = 1000
    chunk_overlap: int = 200
    upload_batch_size: int = 50
    upload_max_attempts: int = 3
    upload_base_delay_seconds: float = 1.0
    upload_batch_delay_seconds: float = 0.2

    # === Ingestion step time boxes (seconds) ===
    download_timeout_seconds: float = 120.0
    extract_timeout_seconds: float = 180.0
    embed_timeout_seconds: float = 300.0
    upsert_timeout_seconds: float = 300.0

    # === Retrieval / chat ===
    retrieval_top_k: int = 40
    chat_timeout_seconds: float = 30.0

    # === Job runner ===
    job_workers: int = 4

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "*"  # comma-separated

    def get_available_llm_providers(self) -> list[str]:
        """Return the generative providers that have credentials configured."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.anthropic_api_key:
            providers.append("anthropic")
        return providers

    def get_cors_origins(self) -> list[str]:
        """Split ``cors_origins`` into a list, ignoring blanks."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
