"""
Chunk retrieval from a material's vector collection

Question generation grounds each question in one chunk drawn uniformly at
random from the whole collection, so the paper covers the entire book
rather than whatever a similarity query happens to favour.
"""

import logging
import random
from typing import List, Optional

from langchain_core.documents import Document

from models.schemas import CollectionValidation

logger = logging.getLogger(__name__)


class ChunkPool:
    """A materialized list of chunk texts to draw from, with replacement"""

    def __init__(self, collection_id: str, texts: List[str], rng: random.Random):
        if not texts:
            raise ValueError(f"No documents found in collection {collection_id}")
        self.collection_id = collection_id
        self.texts = texts
        self.rng = rng

    def __len__(self):
        return len(self.texts)

    def draw(self) -> Document:
        index = self.rng.randrange(len(self.texts))
        return Document(
            id=f"doc_{index}",
            page_content=self.texts[index],
            metadata={
                "source": self.collection_id,
                "documentIndex": index,
                "totalDocuments": len(self.texts),
                "selectionMethod": "random",
            },
        )


class ChunkSampler:
    """Retrieves chunks from a collection for question generation"""

    def __init__(self, gateway, rng: Optional[random.Random] = None):
        self.gateway = gateway
        self.rng = rng or random.Random()

    def load_pool(self, collection_id: str) -> ChunkPool:
        """Fetch every chunk of the collection once for repeated sampling"""
        texts = self.gateway.get_documents(collection_id)
        logger.info(f"Retrieved {len(texts)} documents from collection {collection_id}")
        return ChunkPool(collection_id, texts, self.rng)

    def fetch_random_chunk(self, collection_id: str) -> Document:
        stats = self.gateway.get_stats(collection_id)
        if not stats.exists:
            raise ValueError(f"Collection {collection_id} does not exist")
        if stats.count == 0:
            raise ValueError(f"Collection {collection_id} is empty")
        return self.load_pool(collection_id).draw()

    def fetch_random_chunks(self, collection_id: str, limit: int = 5) -> List[Document]:
        """Up to ``limit`` distinct chunks in random order"""
        texts = self.gateway.get_documents(collection_id)
        if not texts:
            logger.warning(f"No documents found in collection {collection_id}")
            return []

        indices = self.rng.sample(range(len(texts)), min(limit, len(texts)))
        return [
            Document(
                id=f"random_chunk_{position}",
                page_content=texts[index],
                metadata={
                    "source": collection_id,
                    "documentIndex": index,
                    "totalDocuments": len(texts),
                    "selectionMethod": "random",
                },
            )
            for position, index in enumerate(indices)
        ]

    def fetch_chunks(self, collection_id: str, query: str, limit: Optional[int] = None) -> List[Document]:
        """Top-``limit`` chunks by similarity to ``query``; the gateway's ``top_k`` when unset"""
        texts = self.gateway.fetch_top_k(collection_id, query, limit)
        if not texts:
            logger.warning(f"No documents found for query: {query}")
        return [
            Document(
                id=f"chunk_{index}",
                page_content=text,
                metadata={"source": collection_id, "index": index, "query": query},
            )
            for index, text in enumerate(texts)
        ]

    def validate_for_questions(self, collection_id: str) -> CollectionValidation:
        """``validate`` plus content heuristics over a small random sample"""
        base = self.gateway.validate(collection_id)
        if not base.valid:
            return base

        issues = []
        recommendations = []
        try:
            sample = self.fetch_random_chunks(collection_id, 3)
            count = self.gateway.count(collection_id)
        except Exception as e:
            return CollectionValidation(valid=False, issues=[f"Error validating collection: {e}"])

        if sample:
            avg_length = sum(len(chunk.page_content) for chunk in sample) / len(sample)
            if avg_length < 100:
                issues.append("Chunks are too short (average < 100 characters)")
                recommendations.append("Consider increasing chunk size for better question generation")
            if avg_length > 2000:
                issues.append("Chunks are too long (average > 2000 characters)")
                recommendations.append("Consider splitting large chunks for more focused questions")

            unique_words = {
                word
                for chunk in sample
                for word in chunk.page_content.lower().split()
                if len(word) > 3
            }
            if len(unique_words) < 50:
                recommendations.append("Content appears limited - consider adding more diverse material")

        if count < 5:
            recommendations.append(
                "Collection has few documents - consider adding more content for better question variety"
            )

        return CollectionValidation(
            valid=not issues,
            issues=issues,
            recommendations=recommendations or None,
        )
