"""Configuration settings for the exam generation pipeline"""

import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Paths
BASE_DIR = Path(__file__).parent.parent
CHROMA_DB_DIR = BASE_DIR / "chroma_db"

MB = 1024 * 1024


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """
    Process-wide settings.

    Built once at startup with ``Settings.from_env()`` and handed to each
    component's constructor.
    """

    # Text Processing
    chunk_size: int = Field(1200, gt=0)
    chunk_overlap: int = Field(150, ge=0)
    min_chunk_chars: int = Field(50, ge=0)

    # Ingestion admission and memory governance
    ingest_enabled: bool = True
    ingest_max_bytes: int = Field(12 * MB, gt=0)
    ingest_max_pages: int = Field(80, gt=0)
    ingest_max_chunks: int = Field(300, gt=0)
    ingest_batch_size: int = Field(25, gt=0)
    ingest_heap_guard_mb: float = Field(1024, gt=0)
    chunk_memory_ceiling_mb: float = Field(1500, gt=0)
    batch_memory_ceiling_mb: float = Field(1800, gt=0)

    # Model Configuration
    generation_backend: Literal["openai", "gemini", "ollama"] = "openai"
    openai_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    gemini_model: str = "gemini-1.5-flash"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "mistral"
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    embedding_model: str = "text-embedding-3-small"

    # Reliability
    generation_max_retries: int = Field(3, gt=0)
    generation_retry_backoff_s: float = Field(1.0, ge=0.0)
    generation_timeout_s: float = Field(30.0, gt=0)
    embedding_timeout_s: float = Field(60.0, gt=0)

    # ChromaDB
    chroma_mode: Literal["http", "persistent"] = "http"
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_db_dir: str = str(CHROMA_DB_DIR)

    # Retrieval
    top_k_contexts: int = Field(12, gt=0)

    @model_validator(mode="after")
    def _check_overlap(self):
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"CHUNK_OVERLAP ({self.chunk_overlap}) must be smaller than CHUNK_SIZE ({self.chunk_size})"
            )
        return self

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Load settings from the environment (and a .env file if present)"""
        load_dotenv(env_file)

        return cls(
            chunk_size=int(os.getenv("CHUNK_SIZE", "1200")),
            chunk_overlap=int(os.getenv("CHUNK_OVERLAP", "150")),
            min_chunk_chars=int(os.getenv("MIN_CHUNK_CHARS", "50")),
            ingest_enabled=_env_bool("INGEST_ENABLED", "true"),
            ingest_max_bytes=int(os.getenv("INGEST_MAX_BYTES", str(12 * MB))),
            ingest_max_pages=int(os.getenv("INGEST_MAX_PAGES", "80")),
            ingest_max_chunks=int(os.getenv("INGEST_MAX_CHUNKS", "300")),
            ingest_batch_size=int(os.getenv("INGEST_BATCH_SIZE", "25")),
            ingest_heap_guard_mb=float(os.getenv("INGEST_HEAP_GUARD_MB", "1024")),
            chunk_memory_ceiling_mb=float(os.getenv("CHUNK_MEMORY_CEILING_MB", "1500")),
            batch_memory_ceiling_mb=float(os.getenv("BATCH_MEMORY_CEILING_MB", "1800")),
            generation_backend=os.getenv("GENERATION_BACKEND", "openai").strip().lower(),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_model=os.getenv("OLLAMA_MODEL", "mistral"),
            temperature=float(os.getenv("TEMPERATURE", "0.7")),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            generation_max_retries=int(os.getenv("GENERATION_MAX_RETRIES", "3")),
            generation_retry_backoff_s=float(os.getenv("GENERATION_RETRY_BACKOFF_S", "1.0")),
            generation_timeout_s=float(os.getenv("GENERATION_TIMEOUT_S", "30")),
            embedding_timeout_s=float(os.getenv("EMBEDDING_TIMEOUT_S", "60")),
            chroma_mode=os.getenv("CHROMA_MODE", "http").strip().lower(),
            chroma_host=os.getenv("CHROMA_HOST", "localhost"),
            chroma_port=int(os.getenv("CHROMA_PORT", "8000")),
            chroma_db_dir=os.getenv("CHROMA_DB_DIR", str(CHROMA_DB_DIR)),
            top_k_contexts=int(os.getenv("TOP_K_CONTEXTS", "12")),
        )
