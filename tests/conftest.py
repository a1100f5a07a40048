import sys
from pathlib import Path

import pytest
from chromadb.errors import NotFoundError
from langchain_core.embeddings import DeterministicFakeEmbedding

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import Settings
from generation.backends import BackendError
from vectorstore.store import CollectionGateway


class FakeCollection:
    def __init__(self, name, metadata=None):
        self.id = name
        self.name = name
        self.metadata = metadata
        self.records = {}
        self.upsert_calls = 0
        self.fail_on_upserts = set()

    def count(self):
        return len(self.records)

    def upsert(self, ids, documents, metadatas, embeddings):
        self.upsert_calls += 1
        if self.upsert_calls in self.fail_on_upserts:
            raise RuntimeError(f"upsert {self.upsert_calls} rejected")
        assert len(ids) == len(documents) == len(metadatas) == len(embeddings)
        for doc_id, text, metadata in zip(ids, documents, metadatas):
            self.records[doc_id] = (text, metadata)

    def get(self, include=None):
        return {
            "ids": list(self.records),
            "documents": [text for text, _ in self.records.values()],
        }

    def query(self, query_embeddings, n_results, include=None):
        texts = [text for text, _ in self.records.values()][:n_results]
        return {"documents": [texts]}


class FakeChromaClient:
    """Just enough of the chromadb client API for the gateway"""

    def __init__(self):
        self.collections = {}
        self.alive = True

    def create_collection(self, name, metadata=None):
        if name in self.collections:
            raise ValueError(f"Collection {name} already exists")
        self.collections[name] = FakeCollection(name, metadata)
        return self.collections[name]

    def get_collection(self, name):
        if name not in self.collections:
            raise NotFoundError(f"Collection [{name}] does not exist")
        return self.collections[name]

    def list_collections(self):
        return list(self.collections.values())

    def heartbeat(self):
        if not self.alive:
            raise ConnectionError("Connection refused")
        return 1700000000000


class ScriptedBackend:
    """Returns queued responses in order; an Exception entry is raised instead"""

    name = "scripted"

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = default
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if response is None:
            raise BackendError("backend unavailable")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


class FakeLoader:
    """Stands in for PDFLoader; returns fixed text or raises"""

    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = 0

    def extract_text(self, file_bytes, max_pages=80):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def settings():
    return Settings(openai_api_key="test-key", chroma_mode="persistent")


@pytest.fixture
def chroma_client():
    return FakeChromaClient()


@pytest.fixture
def embeddings():
    return DeterministicFakeEmbedding(size=8)


@pytest.fixture
def gateway(chroma_client, embeddings, settings):
    return CollectionGateway(chroma_client, embeddings, top_k=settings.top_k_contexts)


@pytest.fixture
def no_sleep():
    delays = []
    return delays, delays.append


def sample_text(words: int = 2000) -> str:
    vocabulary = [
        "photosynthesis", "chlorophyll", "glucose", "energy", "sunlight", "carbon",
        "dioxide", "oxygen", "leaves", "stomata", "respiration", "mitochondria",
    ]
    return " ".join(f"{vocabulary[i % len(vocabulary)]}{i // len(vocabulary)}" for i in range(words))


@pytest.fixture
def study_text():
    return sample_text()
