"""OpenAI embeddings for the material collections"""

import logging
from typing import Optional

from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings

from config.settings import Settings

logger = logging.getLogger(__name__)


class EmbeddingManager:
    """
    Owns the embedding provider shared by ingestion and retrieval.

    Retries are disabled here; a failing batch is skipped by the ingestion
    pipeline instead.
    """

    def __init__(self, settings: Settings, embeddings: Optional[Embeddings] = None):
        if embeddings is None:
            if not settings.openai_api_key:
                raise ValueError("OPENAI_API_KEY not found in environment variables")
            embeddings = OpenAIEmbeddings(
                model=settings.embedding_model,
                api_key=settings.openai_api_key,
                request_timeout=settings.embedding_timeout_s,
                max_retries=0,
            )
            logger.info(f"Initialized embeddings with model: {settings.embedding_model}")
        self.embeddings = embeddings

    def get_embeddings(self) -> Embeddings:
        return self.embeddings

    def test_embedding(self, text: str = "Photosynthesis converts light energy") -> bool:
        """Embed one probe string; False when the provider is unreachable"""
        try:
            vector = self.embeddings.embed_query(text)
        except Exception as e:
            logger.error(f"✗ Embedding provider check failed: {e}")
            return False
        logger.info(f"✓ Embedding provider reachable (dimension {len(vector)})")
        return True
