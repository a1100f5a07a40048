"""ChromaDB collection gateway"""

import logging
import uuid
from typing import Dict, List, Optional

import chromadb
from chromadb.errors import NotFoundError
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings

from config.settings import Settings
from models.schemas import CollectionStats, CollectionValidation

logger = logging.getLogger(__name__)


class CollectionError(Exception):
    """A vector store or embedding provider call failed"""


def create_chroma_client(settings: Settings):
    """Build the chromadb client selected by CHROMA_MODE"""
    if settings.chroma_mode == "persistent":
        logger.info(f"Using persistent ChromaDB at {settings.chroma_db_dir}")
        return chromadb.PersistentClient(path=settings.chroma_db_dir)
    logger.info(f"Using ChromaDB server at {settings.chroma_host}:{settings.chroma_port}")
    return chromadb.HttpClient(host=settings.chroma_host, port=settings.chroma_port)


def _clean_metadata(metadata: Optional[Dict]) -> Dict:
    """Chroma only stores scalar metadata values"""
    cleaned = {}
    for key, value in (metadata or {}).items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        else:
            cleaned[key] = str(value)
    return cleaned


class CollectionGateway:
    """
    Create, fill and read the per-material vector collections.

    A collection's id and its chroma name are the same string. Only
    creation and writes raise; every read/diagnostic call degrades to a
    negative result instead.
    """

    def __init__(self, client, embeddings: Embeddings, top_k: int = 12):
        self.client = client
        self.embeddings = embeddings
        self.top_k = top_k

    # -----------------------------------------------------------------
    # Write path
    # -----------------------------------------------------------------

    def create_collection(self, source_label: str) -> str:
        """Create a fresh collection for ``source_label`` and verify it exists"""
        collection_id = str(uuid.uuid4())
        logger.info(f"Creating collection {collection_id} for source: {source_label}")

        try:
            self.client.create_collection(name=collection_id, metadata={"source": source_label})
            exists = self.exists(collection_id)
        except Exception as e:
            logger.error(f"✗ Failed to create collection for source {source_label}: {e}")
            raise CollectionError(f"Failed to create ChromaDB collection: {e}") from e

        if not exists:
            raise CollectionError(
                f"Failed to create ChromaDB collection: {collection_id} was not found after creation"
            )

        logger.info(f"✓ Collection {collection_id} verified to exist")
        return collection_id

    def upsert_documents(self, collection_id: str, docs: List[Document]) -> None:
        """Embed ``docs`` and upsert them into the collection"""
        if not docs:
            return

        try:
            collection = self.client.get_collection(name=collection_id)
            texts = [doc.page_content for doc in docs]
            vectors = self.embeddings.embed_documents(texts)
            collection.upsert(
                ids=[doc.id for doc in docs],
                documents=texts,
                metadatas=[_clean_metadata(doc.metadata) for doc in docs],
                embeddings=vectors,
            )
        except Exception as e:
            logger.error(f"✗ Failed to upsert documents to collection {collection_id}: {e}")
            raise CollectionError(f"Failed to upsert documents: {e}") from e

        logger.info(f"✓ Upserted {len(docs)} documents into {collection_id}")

    # -----------------------------------------------------------------
    # Read path
    # -----------------------------------------------------------------

    def fetch_top_k(self, collection_id: str, query: str, k: Optional[int] = None) -> List[str]:
        """Similarity search returning the text of the ``k`` (default ``top_k``) closest chunks"""
        try:
            collection = self.client.get_collection(name=collection_id)
            query_vector = self.embeddings.embed_query(query)
            result = collection.query(
                query_embeddings=[query_vector],
                n_results=k or self.top_k,
                include=["documents"],
            )
        except Exception as e:
            raise CollectionError(f"Chroma query failed ({type(e).__name__}) {e}".strip()) from e

        documents = result.get("documents") or [[]]
        return list(documents[0] or [])

    def get_documents(self, collection_id: str) -> List[str]:
        """Every chunk text stored in the collection"""
        collection = self.client.get_collection(name=collection_id)
        result = collection.get(include=["documents"])
        return list(result.get("documents") or [])

    def count(self, collection_id: str) -> int:
        collection = self.client.get_collection(name=collection_id)
        return collection.count()

    def exists(self, collection_id: str) -> Optional[Dict]:
        """Collection details, or None when the collection does not exist"""
        try:
            collection = self.client.get_collection(name=collection_id)
        except (NotFoundError, ValueError):
            return None
        return {
            "id": str(collection.id),
            "name": collection.name,
            "metadata": collection.metadata,
        }

    def get_stats(self, collection_id: str) -> CollectionStats:
        try:
            details = self.exists(collection_id)
            if not details:
                return CollectionStats(exists=False, count=0)
            return CollectionStats(
                exists=True,
                count=self.count(collection_id),
                metadata=details["metadata"],
            )
        except Exception as e:
            logger.error(f"Error getting collection stats for {collection_id}: {e}")
            return CollectionStats(exists=False, count=0)

    def validate(self, collection_id: str) -> CollectionValidation:
        """Check existence, metadata presence and a non-zero document count"""
        issues = []
        try:
            details = self.exists(collection_id)
            if not details:
                issues.append(f"Collection '{collection_id}' does not exist")
                return CollectionValidation(valid=False, issues=issues)

            if not details["metadata"]:
                issues.append("Collection has no metadata")

            if self.count(collection_id) == 0:
                issues.append("Collection is empty (no documents)")
        except Exception as e:
            issues.append(f"Error validating collection: {e}")

        return CollectionValidation(valid=not issues, issues=issues)

    # -----------------------------------------------------------------
    # Diagnostics
    # -----------------------------------------------------------------

    def heartbeat(self) -> Dict:
        """Connection test that never raises"""
        try:
            beat = self.client.heartbeat()
            return {"status": "connected", "details": {"heartbeat": beat}}
        except ConnectionError as e:
            logger.error(f"✗ ChromaDB connection refused: {e}")
            return {"status": "connection_refused", "details": {"error": str(e)}}
        except Exception as e:
            logger.error(f"✗ ChromaDB connection test failed: {e}")
            return {"status": "error", "details": {"error": str(e)}}

    def list_collections(self) -> List[Dict]:
        """Name, metadata and document count of every collection"""
        try:
            collections = self.client.list_collections()
        except Exception as e:
            logger.error(f"Failed to list collections: {e}")
            return []

        listed = []
        for collection in collections:
            entry = {"name": collection.name, "metadata": collection.metadata}
            try:
                entry["count"] = collection.count()
            except Exception as e:
                entry["error"] = str(e)
            listed.append(entry)
        return listed
