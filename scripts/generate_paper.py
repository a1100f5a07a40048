import sys
from pathlib import Path

# Add parent directory to path
sys.path.append(str(Path(__file__).parent.parent))

import json
import uuid

from config.settings import Settings
from generation.backends import create_backend
from generation.paper_assembler import PaperAssembler, PaperPreconditionError
from generation.question_generator import QuestionGenerator
from models.schemas import Difficulty, ExamContext, MarksPerQuestion, PaperSpec, Weightage
from storage.question_store import QuestionStore
from vectorstore.embeddings import EmbeddingManager
from vectorstore.store import CollectionGateway, create_chroma_client
import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def generate_paper(collection_id: str, spec: PaperSpec, context: ExamContext) -> list:
    settings = Settings.from_env()

    embeddings = EmbeddingManager(settings).get_embeddings()
    gateway = CollectionGateway(create_chroma_client(settings), embeddings, top_k=settings.top_k_contexts)
    generator = QuestionGenerator(
        create_backend(settings),
        max_retries=settings.generation_max_retries,
        backoff_s=settings.generation_retry_backoff_s,
    )
    assembler = PaperAssembler(gateway, generator, QuestionStore())

    return assembler.assemble(spec, collection_id, context)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate a question paper from an ingested collection")
    parser.add_argument("collection_id", help="Vector collection of the study material")
    parser.add_argument("--total-marks", type=int, default=100)
    parser.add_argument("--mcq", type=float, default=20, help="MCQ weightage in percent")
    parser.add_argument("--short", type=float, default=40, help="Short answer weightage in percent")
    parser.add_argument("--long", type=float, default=40, help="Long answer weightage in percent")
    parser.add_argument("--mcq-marks", type=int, default=1)
    parser.add_argument("--short-marks", type=int, default=5)
    parser.add_argument("--long-marks", type=int, default=10)
    parser.add_argument("--subject")
    parser.add_argument("--grade")
    parser.add_argument("--difficulty", choices=[d.value for d in Difficulty], default="medium")
    parser.add_argument("--exam-id", default=None)
    parser.add_argument("--output", help="Write the paper as JSON to this file instead of stdout")
    args = parser.parse_args()

    paper_spec = PaperSpec(
        total_marks=args.total_marks,
        weightage=Weightage(mcq=args.mcq, short=args.short, long=args.long),
        marks_per_question=MarksPerQuestion(mcq=args.mcq_marks, short=args.short_marks, long=args.long_marks),
    )
    exam = ExamContext(
        exam_id=args.exam_id or str(uuid.uuid4()),
        subject=args.subject,
        grade=args.grade,
        difficulty=Difficulty(args.difficulty),
    )

    try:
        questions = generate_paper(args.collection_id, paper_spec, exam)
    except PaperPreconditionError as e:
        logger.error(f"✗ {e}")
        sys.exit(1)

    paper = json.dumps([q.model_dump(mode="json") for q in questions], indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(paper, encoding="utf-8")
        logger.info(f"✓ Wrote {len(questions)} questions to {args.output}")
    else:
        print(paper)
