import sys
from pathlib import Path

# Add parent directory to path
sys.path.append(str(Path(__file__).parent.parent))

from config.settings import Settings
from data.ingest import IngestionPipeline
from vectorstore.embeddings import EmbeddingManager
from vectorstore.store import CollectionGateway, create_chroma_client
import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def ingest_material(pdf_path: str, label: str = None) -> bool:
    """Create a collection for one PDF and ingest it synchronously"""
    settings = Settings.from_env()
    pdf_file = Path(pdf_path)

    logger.info("=" * 80)
    logger.info("STUDY MATERIAL INGESTION")
    logger.info("=" * 80)

    if not pdf_file.exists():
        logger.error(f"File not found: {pdf_file}")
        return False

    # Step 1: Embeddings
    logger.info("\n[Step 1/3] Initializing embeddings...")
    embedding_manager = EmbeddingManager(settings)
    if not embedding_manager.test_embedding():
        logger.error("Embedding test failed. Check your OpenAI API key.")
        return False

    # Step 2: Collection
    logger.info("\n[Step 2/3] Creating collection...")
    gateway = CollectionGateway(
        create_chroma_client(settings),
        embedding_manager.get_embeddings(),
        top_k=settings.top_k_contexts,
    )
    collection_id = gateway.create_collection(label or pdf_file.name)

    # Step 3: Ingest
    logger.info(f"\n[Step 3/3] Ingesting {pdf_file.name} "
                f"(chunk_size={settings.chunk_size}, overlap={settings.chunk_overlap})...")
    file_bytes = pdf_file.read_bytes()
    pipeline = IngestionPipeline(gateway, settings)
    result = pipeline.ingest(
        collection_id,
        file_bytes,
        pdf_file.name,
        metadata={"source_file": pdf_file.name},
        mime_type="application/pdf",
        size_bytes=len(file_bytes),
    )

    if result.error:
        logger.error(f"✗ Ingestion {result.status.value}: {result.error}")
        if result.details:
            logger.error(f"  Details: {result.details}")
        return False

    stats = gateway.get_stats(collection_id)
    logger.info(f"✓ Ingested {result.segments} segments ({result.total_chunks} chunks, "
                f"{result.failed_batches} failed batches)")
    logger.info(f"  - Collection: {collection_id}")
    logger.info(f"  - Stored vectors: {stats.count:,}")

    logger.info("\n" + "=" * 80)
    logger.info("INGESTION COMPLETE!")
    logger.info("=" * 80)
    logger.info(f"\nGenerate a paper with: python scripts/generate_paper.py {collection_id} --total-marks 100")

    return True


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Ingest a PDF textbook into a new vector collection")
    parser.add_argument("pdf", help="Path to the PDF file")
    parser.add_argument("--label", help="Source label stored in the collection metadata")
    args = parser.parse_args()

    success = ingest_material(args.pdf, label=args.label)

    if not success:
        sys.exit(1)
