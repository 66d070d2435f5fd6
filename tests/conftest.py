"""
Shared test fixtures for the TalentMatch test suite.

Sets environment variables before any talentmatch imports to prevent config
failures, then provides in-memory stand-ins for the embedding model, the
candidate and job stores, the vector indexes and the match repositories so
that no MongoDB server or model download is needed. ``make_collection``
builds a recording Motor collection for the real repositories.
"""

import os

# === Set environment BEFORE any talentmatch imports ===
os.environ.setdefault("APP_ENVIRONMENT", "testing")
os.environ.setdefault("DB_NAME", "talentmatch_test")
os.environ.setdefault("ML_DEVICE", "cpu")

import asyncio
import re
import threading
from copy import deepcopy
from types import SimpleNamespace
from typing import Any, Callable, Iterable, Optional

import numpy as np
import pytest
from bson import ObjectId

from talentmatch.core.matching import CandidateMatcher
from talentmatch.data.models import Candidate, CandidateMatches, JobMatches, JobPosting
from talentmatch.data.models.base import utc_now
from talentmatch.data.repositories import CandidateRepository
from talentmatch.ml.embeddings import (
    Embedder,
    SearchHit,
    VectorIndex,
    candidate_embedding_text,
    job_embedding_text,
    normalize_vector,
    validate_text,
)
from talentmatch.utils.config import MatchingSettings
from talentmatch.utils.constants import MatchStatus
from talentmatch.utils.exceptions import EmbeddingFailure, IndexUnavailable

FAKE_DIMENSION = 256
FAKE_MODEL_VERSION = "fake-bag-of-words@test"


# ---------------------------------------------------------------------------
# Fake embedding model
# ---------------------------------------------------------------------------


class FakeEmbedder(Embedder):
    """
    Deterministic bag-of-words embedder.

    Every distinct token gets its own dimension, so texts sharing words
    have a positive cosine similarity and unrelated texts score zero.
    """

    def __init__(
        self,
        dimension: int = FAKE_DIMENSION,
        model_version: str = FAKE_MODEL_VERSION,
        fail_on: tuple[str, ...] = (),
    ):
        self._dimension = dimension
        self._model_version = model_version
        self.fail_on = fail_on
        self.calls = 0
        self._vocabulary: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def model_version(self) -> str:
        return self._model_version

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        text = validate_text(text)
        with self._lock:
            self.calls += 1
            for marker in self.fail_on:
                if marker in text:
                    raise EmbeddingFailure(f"Inference failed for text containing {marker!r}")

            vec = np.zeros(self._dimension)
            for token in re.findall(r"[a-z0-9]+", text.lower()):
                position = self._vocabulary.setdefault(token, len(self._vocabulary))
                vec[position % self._dimension] += 1.0
        return normalize_vector(vec, self._dimension)


# ---------------------------------------------------------------------------
# In-memory storage
# ---------------------------------------------------------------------------


class InMemoryCandidateRepository:
    """Implements the candidate repository calls used by the refresher."""

    def __init__(self, documents: Optional[list[dict[str, Any]]] = None):
        self.documents: dict[str, dict[str, Any]] = {}
        for doc in documents or []:
            self.add(doc)
        self.list_error: Optional[Exception] = None
        self.write_failures: set[str] = set()
        self.in_flight = 0
        self.max_in_flight = 0
        self.writes = 0

    def add(self, document: dict[str, Any]) -> dict[str, Any]:
        document.setdefault("_id", ObjectId())
        self.documents[str(document["_id"])] = document
        return document

    def parse_document(self, document: dict[str, Any]) -> Candidate:
        return CandidateRepository().parse_document(document)

    async def get_by_id_async(self, id_value: Any) -> Optional[Candidate]:
        doc = self.documents.get(str(id_value))
        return None if doc is None else self.parse_document(deepcopy(doc))

    async def list_active_ids_async(self) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return [key for key, doc in self.documents.items() if doc.get("is_active", True)]

    async def list_for_embedding_async(self, model_version: str, only_stale: bool = False) -> list[dict[str, Any]]:
        if self.list_error is not None:
            raise self.list_error
        selected = []
        for doc in self.documents.values():
            current = bool(doc.get("vector")) and doc.get("vector_model") == model_version
            if only_stale and current:
                continue
            selected.append({k: deepcopy(v) for k, v in doc.items() if k != "vector"})
        return selected

    async def set_vector_async(self, id_value: Any, vector: list[float], model_version: str) -> bool:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if str(id_value) in self.write_failures:
                raise IndexUnavailable(f"write vector to candidates failed for {id_value}")
            doc = self.documents.get(str(id_value))
            if doc is None:
                return False
            doc.update(vector=list(vector), vector_model=model_version, vector_updated_at=utc_now())
            self.writes += 1
            return True
        finally:
            self.in_flight -= 1


class InMemoryVectorIndex(VectorIndex):
    """Exact cosine search over the documents returned by ``source``."""

    def __init__(self, source: Callable[[], Iterable[dict[str, Any]]]):
        self.source = source
        self.fetch_sizes: list[int] = []
        self.error: Optional[Exception] = None
        self.delay: float = 0.0

    async def search(self, query_vector: list[float], fetch_size: int, model_version: str) -> list[SearchHit]:
        self.fetch_sizes.append(fetch_size)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        query = np.asarray(query_vector, dtype=float)
        hits = []
        for doc in self.source():
            vector = doc.get("vector")
            if not vector or doc.get("vector_model") != model_version or len(vector) != len(query):
                continue
            stored = np.asarray(vector, dtype=float)
            score = float(stored @ query / (np.linalg.norm(stored) * np.linalg.norm(query)))
            document = {k: deepcopy(v) for k, v in doc.items() if k != "vector"}
            hits.append(SearchHit(document=document, score=score))

        hits.sort(key=lambda h: (-h.score, h.record_id))
        return hits[:fetch_size]


class InMemoryJobRepository:
    """Implements the job repository calls used by the job match service."""

    def __init__(self):
        self.jobs: dict[str, JobPosting] = {}
        self.vector_writes = 0

    def add(self, job: JobPosting) -> JobPosting:
        if job.id is None:
            job.id = ObjectId()
        self.jobs[str(job.id)] = job
        return job

    async def get_by_id_async(self, id_value: Any) -> Optional[JobPosting]:
        return self.jobs.get(str(id_value))

    async def set_vector_async(self, id_value: Any, vector: list[float], model_version: str) -> bool:
        job = self.jobs.get(str(id_value))
        if job is None:
            return False
        job.vector = list(vector)
        job.vector_model = model_version
        job.vector_updated_at = utc_now()
        self.vector_writes += 1
        return True

    async def list_ids_async(self) -> list[str]:
        return list(self.jobs)


class InMemoryMatchRepository:
    """Implements the match repository calls used by the job match service."""

    def __init__(self):
        self.stored: dict[str, JobMatches] = {}
        self.fail_for: set[str] = set()

    async def get_by_job_async(self, job_id: Any) -> Optional[JobMatches]:
        return self.stored.get(str(job_id))

    async def replace_matches_async(self, job_id: Any, entries: list) -> JobMatches:
        if str(job_id) in self.fail_for:
            raise IndexUnavailable(f"store job_matches failed for {job_id}")
        existing = self.stored.get(str(job_id))
        document = JobMatches(
            _id=existing.id if existing else ObjectId(),
            job_id=ObjectId(str(job_id)),
            matches=list(entries),
            last_updated=utc_now(),
        )
        self.stored[str(job_id)] = document
        return document

    async def set_status_async(self, job_id: Any, candidate_id: Any, status: MatchStatus) -> Optional[JobMatches]:
        document = self.stored.get(str(job_id))
        if document is None:
            return None
        entry = document.entry_for(str(candidate_id))
        if entry is None:
            return None
        entry.status = MatchStatus(status).value
        return document


class InMemoryCandidateMatchRepository:
    """Implements the candidate match repository calls used by the candidate match service."""

    def __init__(self):
        self.stored: dict[str, CandidateMatches] = {}
        self.fail_for: set[str] = set()

    async def get_by_candidate_async(self, candidate_id: Any) -> Optional[CandidateMatches]:
        return self.stored.get(str(candidate_id))

    async def replace_matches_async(self, candidate_id: Any, entries: list) -> CandidateMatches:
        if str(candidate_id) in self.fail_for:
            raise IndexUnavailable(f"store candidate_matches failed for {candidate_id}")
        existing = self.stored.get(str(candidate_id))
        document = CandidateMatches(
            _id=existing.id if existing else ObjectId(),
            candidate_id=ObjectId(str(candidate_id)),
            matches=list(entries),
            last_updated=utc_now(),
        )
        self.stored[str(candidate_id)] = document
        return document


# ---------------------------------------------------------------------------
# Recording Motor collection
# ---------------------------------------------------------------------------


class RecordingCursor:
    def __init__(self, documents, error=None):
        self.documents = documents
        self.error = error
        self.calls = []

    def skip(self, n):
        self.calls.append(("skip", n))
        return self

    def limit(self, n):
        self.calls.append(("limit", n))
        return self

    def sort(self, key, direction):
        self.calls.append(("sort", key, direction))
        return self

    async def to_list(self, length=None):
        if self.error is not None:
            raise self.error
        return [dict(d) for d in self.documents]


class RecordingCollection:
    """Minimal Motor collection double that records every call."""

    def __init__(self, documents=None, error=None, matched_count=1, returned=None):
        self.documents = documents or []
        self.error = error
        self.matched_count = matched_count
        self.returned = returned
        self.calls = []
        self.cursor = None
        self.inserted_ids = []

    def find(self, query, projection=None):
        self.calls.append(("find", query, projection))
        self.cursor = RecordingCursor(self.documents, self.error)
        return self.cursor

    async def find_one(self, query, projection=None):
        self.calls.append(("find_one", query, projection))
        if self.error is not None:
            raise self.error
        return self.documents[0] if self.documents else None

    async def insert_one(self, document):
        self.calls.append(("insert_one", document))
        if self.error is not None:
            raise self.error
        self.inserted_ids.append(ObjectId())
        return SimpleNamespace(inserted_id=self.inserted_ids[-1])

    async def update_one(self, query, update):
        self.calls.append(("update_one", query, update))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(matched_count=self.matched_count)

    async def find_one_and_update(self, query, update, **kwargs):
        self.calls.append(("find_one_and_update", query, update, kwargs))
        if self.error is not None:
            raise self.error
        return self.returned

    async def count_documents(self, query):
        self.calls.append(("count_documents", query))
        return len(self.documents)

# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def make_embedder():
    """Factory for additional fake embedders (other model versions, failures)."""
    return FakeEmbedder


@pytest.fixture
def make_candidate_doc():
    """Factory building raw candidate documents, optionally embedded."""

    def _factory(
        name: str,
        experience: float = 0.0,
        skills: Optional[list[str]] = None,
        bio: str = "",
        role: Optional[list[str]] = None,
        is_active: bool = True,
        embedder: Optional[Embedder] = None,
        **extra: Any,
    ) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "_id": ObjectId(),
            "name": name,
            "bio": bio,
            "skills": skills or [],
            "experience": experience,
            "role": role or [],
            "is_active": is_active,
            **extra,
        }
        if embedder is not None:
            text = candidate_embedding_text(Candidate.model_validate(doc))
            doc["vector"] = embedder.embed(text)
            doc["vector_model"] = embedder.model_version
        return doc

    return _factory


@pytest.fixture
def candidate_repository():
    return InMemoryCandidateRepository()


@pytest.fixture
def candidate_index(candidate_repository):
    return InMemoryVectorIndex(lambda: candidate_repository.documents.values())


@pytest.fixture
def matching_settings():
    return MatchingSettings(default_limit=5, fetch_multiplier=3.0, min_fetch_size=20)


@pytest.fixture
def matcher(fake_embedder, candidate_index, matching_settings):
    """CandidateMatcher wired to in-memory fakes."""
    return CandidateMatcher(
        embedder=fake_embedder,
        index=candidate_index,
        settings=matching_settings,
        embedding_timeout=5.0,
    )


@pytest.fixture
def devops_scenario(candidate_repository, fake_embedder, make_candidate_doc):
    """
    Candidates A (6y DevOps), B (2y DevOps), C (8y Frontend) with vectors,
    and D (10y DevOps) that was never embedded.
    """
    docs = {
        "A": make_candidate_doc(
            "Alice",
            experience=6,
            skills=["DevOps", "Kubernetes"],
            bio="Platform engineer running production clusters",
            role=["DevOps"],
            embedder=fake_embedder,
        ),
        "B": make_candidate_doc(
            "Bob",
            experience=2,
            skills=["DevOps"],
            bio="DevOps developer automating deployments",
            role=["DevOps"],
            embedder=fake_embedder,
        ),
        "C": make_candidate_doc(
            "Carol",
            experience=8,
            skills=["Frontend"],
            bio="Builds web interfaces",
            role=["Frontend"],
            embedder=fake_embedder,
        ),
        "D": make_candidate_doc(
            "Dave",
            experience=10,
            skills=["DevOps", "Terraform"],
            bio="DevOps developer",
            role=["DevOps"],
        ),
    }
    for doc in docs.values():
        candidate_repository.add(doc)
    return docs


@pytest.fixture
def job_repository():
    return InMemoryJobRepository()


@pytest.fixture
def match_repository():
    return InMemoryMatchRepository()


@pytest.fixture
def candidate_match_repository():
    return InMemoryCandidateMatchRepository()


@pytest.fixture
def job_index(job_repository):
    return InMemoryVectorIndex(
        lambda: [job.model_dump(by_alias=True) for job in job_repository.jobs.values()]
    )


@pytest.fixture
def make_job(job_repository, fake_embedder):
    """Factory adding job postings to the in-memory job store, embedded by default."""

    def _factory(title: str, embedded: bool = True, **fields: Any) -> JobPosting:
        job = job_repository.add(JobPosting(title=title, **fields))
        if embedded:
            job.vector = fake_embedder.embed(job_embedding_text(job))
            job.vector_model = fake_embedder.model_version
        return job

    return _factory


@pytest.fixture
def make_collection():
    """Factory for recording Motor collection doubles."""
    return RecordingCollection
