"""
Vector indexes over the ``candidates`` and ``job_postings`` collections.

Vectors live on the documents themselves. Two backends rank them
against a query vector:

- ``CosineAggregationIndex`` computes cosine similarity inside a plain
  aggregation pipeline, so it runs on any self-hosted MongoDB.
- ``AtlasVectorSearchIndex`` uses the Atlas ``$vectorSearch`` ANN stage.

Both only consider vectors tagged with the deployed model version and
return documents without their vector, ordered by descending score.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import ExecutionTimeout, PyMongoError
from pymongo.operations import SearchIndexModel

from talentmatch.data.database import get_database_manager
from talentmatch.data.repositories.base import translate_errors
from talentmatch.utils.config import get_settings
from talentmatch.utils.constants import (
    CANDIDATES_COLLECTION,
    JOB_POSTINGS_COLLECTION,
    SCORE_FIELD,
    VECTOR_FIELD,
    VECTOR_MODEL_FIELD,
)
from talentmatch.utils.exceptions import IndexUnavailable, OperationTimeout
from talentmatch.utils.logger import get_logger

logger = get_logger(__name__)

# Atlas rejects numCandidates above this value
ATLAS_MAX_NUM_CANDIDATES = 10_000


@dataclass
class SearchHit:
    """A document returned by the index with its similarity."""

    document: dict[str, Any]
    score: float

    @property
    def record_id(self) -> str:
        return str(self.document["_id"])


class VectorIndex(ABC):
    """Nearest-neighbour retrieval over stored record vectors."""

    @abstractmethod
    async def search(
        self,
        query_vector: list[float],
        fetch_size: int,
        model_version: str,
    ) -> list[SearchHit]:
        """
        Return up to ``fetch_size`` records most similar to the query.

        Records without a vector, or with a vector from another model
        version, are never returned.

        Raises:
            IndexUnavailable: if the backend cannot be queried.
            OperationTimeout: if the backend gives up on the query.
        """


class MongoVectorIndex(VectorIndex):
    """Shared plumbing for the aggregation-based backends."""

    def __init__(
        self,
        collection: Optional[AsyncIOMotorCollection] = None,
        max_time_ms: Optional[int] = None,
        collection_name: str = CANDIDATES_COLLECTION,
    ):
        self._collection = collection
        self.collection_name = collection_name
        if max_time_ms is None:
            max_time_ms = int(get_settings().matching.query_timeout_seconds * 1000)
        self.max_time_ms = max_time_ms

    @property
    def collection(self) -> AsyncIOMotorCollection:
        if self._collection is None:
            self._collection = get_database_manager().get_async_collection(
                self.collection_name
            )
        return self._collection

    @abstractmethod
    def build_pipeline(
        self,
        query_vector: list[float],
        fetch_size: int,
        model_version: str,
    ) -> list[dict[str, Any]]:
        """Aggregation pipeline producing scored, vector-less documents."""

    async def search(
        self,
        query_vector: list[float],
        fetch_size: int,
        model_version: str,
    ) -> list[SearchHit]:
        pipeline = self.build_pipeline(query_vector, fetch_size, model_version)
        operation = f"{self.collection_name} vector search"

        try:
            cursor = self.collection.aggregate(pipeline, maxTimeMS=self.max_time_ms)
            documents = await cursor.to_list(length=None)
        except ExecutionTimeout as e:
            raise OperationTimeout(
                f"{operation} exceeded {self.max_time_ms} ms",
                details={"operation": operation},
            ) from e
        except PyMongoError as e:
            raise IndexUnavailable(
                f"{operation} failed: {e}",
                details={"operation": operation},
            ) from e

        hits = [
            SearchHit(document=doc, score=float(doc.pop(SCORE_FIELD, 0.0)))
            for doc in documents
        ]
        logger.debug(f"Vector search on {self.collection_name} returned {len(hits)} of {fetch_size} requested")
        return hits


def _dot_product(field_path: str, query_vector: list[float]) -> dict[str, Any]:
    return {
        "$reduce": {
            "input": {"$zip": {"inputs": [field_path, {"$literal": query_vector}]}},
            "initialValue": 0.0,
            "in": {
                "$add": [
                    "$$value",
                    {
                        "$multiply": [
                            {"$arrayElemAt": ["$$this", 0]},
                            {"$arrayElemAt": ["$$this", 1]},
                        ]
                    },
                ]
            },
        }
    }


def _magnitude(field_path: str) -> dict[str, Any]:
    return {
        "$sqrt": {
            "$reduce": {
                "input": field_path,
                "initialValue": 0.0,
                "in": {"$add": ["$$value", {"$multiply": ["$$this", "$$this"]}]},
            }
        }
    }


class CosineAggregationIndex(MongoVectorIndex):
    """Exact cosine ranking computed server-side; no search index needed."""

    def build_pipeline(
        self,
        query_vector: list[float],
        fetch_size: int,
        model_version: str,
    ) -> list[dict[str, Any]]:
        field_path = f"${VECTOR_FIELD}"
        query_norm = math.sqrt(sum(v * v for v in query_vector))

        return [
            {
                "$match": {
                    VECTOR_MODEL_FIELD: model_version,
                    "$expr": {
                        "$cond": [
                            {"$isArray": field_path},
                            {"$eq": [{"$size": field_path}, len(query_vector)]},
                            False,
                        ]
                    },
                }
            },
            {
                "$addFields": {
                    "_dot": _dot_product(field_path, query_vector),
                    "_norm": _magnitude(field_path),
                }
            },
            {
                "$addFields": {
                    SCORE_FIELD: {
                        "$cond": [
                            {"$gt": ["$_norm", 0]},
                            {"$divide": ["$_dot", {"$multiply": ["$_norm", query_norm]}]},
                            0.0,
                        ]
                    }
                }
            },
            {"$sort": {SCORE_FIELD: -1, "_id": 1}},
            {"$limit": fetch_size},
            {"$project": {VECTOR_FIELD: 0, "_dot": 0, "_norm": 0}},
        ]


class AtlasVectorSearchIndex(MongoVectorIndex):
    """Approximate nearest-neighbour search through Atlas ``$vectorSearch``."""

    def __init__(
        self,
        collection: Optional[AsyncIOMotorCollection] = None,
        max_time_ms: Optional[int] = None,
        index_name: Optional[str] = None,
        num_candidates_multiplier: Optional[int] = None,
        collection_name: str = CANDIDATES_COLLECTION,
    ):
        super().__init__(
            collection=collection,
            max_time_ms=max_time_ms,
            collection_name=collection_name,
        )
        matching = get_settings().matching
        self.index_name = index_name or matching.atlas_index_name
        self.num_candidates_multiplier = (
            num_candidates_multiplier or matching.num_candidates_multiplier
        )

    def build_pipeline(
        self,
        query_vector: list[float],
        fetch_size: int,
        model_version: str,
    ) -> list[dict[str, Any]]:
        num_candidates = min(
            max(fetch_size * self.num_candidates_multiplier, fetch_size),
            ATLAS_MAX_NUM_CANDIDATES,
        )
        return [
            {
                "$vectorSearch": {
                    "index": self.index_name,
                    "path": VECTOR_FIELD,
                    "queryVector": query_vector,
                    "numCandidates": num_candidates,
                    "limit": min(fetch_size, num_candidates),
                    "filter": {VECTOR_MODEL_FIELD: {"$eq": model_version}},
                }
            },
            # Atlas reports cosine as (1 + cos) / 2; map back to [-1, 1]
            {
                "$addFields": {
                    SCORE_FIELD: {
                        "$subtract": [
                            {"$multiply": [2, {"$meta": "vectorSearchScore"}]},
                            1,
                        ]
                    }
                }
            },
            {"$project": {VECTOR_FIELD: 0}},
        ]

    @staticmethod
    def search_index_definition(dimension: int) -> dict[str, Any]:
        return {
            "fields": [
                {
                    "type": "vector",
                    "path": VECTOR_FIELD,
                    "numDimensions": dimension,
                    "similarity": "cosine",
                },
                {"type": "filter", "path": VECTOR_MODEL_FIELD},
            ]
        }

    async def ensure_search_index(self, dimension: int) -> bool:
        """
        Create the Atlas vector index if it does not exist yet.

        Returns:
            True when an index was created.
        """
        with translate_errors("create Atlas search index"):
            existing = await self.collection.list_search_indexes(self.index_name).to_list(length=None)
            if existing:
                logger.info(f"Atlas search index '{self.index_name}' already exists")
                return False

            await self.collection.create_search_index(
                SearchIndexModel(
                    definition=self.search_index_definition(dimension),
                    name=self.index_name,
                    type="vectorSearch",
                )
            )
        logger.info(f"Created Atlas search index '{self.index_name}' ({dimension} dims)")
        return True


def _build_index(collection_name: str, atlas_index_name: str) -> VectorIndex:
    backend = get_settings().matching.search_backend
    logger.info(f"Using '{backend}' index for {collection_name}")
    if backend == "atlas":
        return AtlasVectorSearchIndex(index_name=atlas_index_name, collection_name=collection_name)
    return CosineAggregationIndex(collection_name=collection_name)


_candidate_index: Optional[VectorIndex] = None
_job_index: Optional[VectorIndex] = None


def get_candidate_index() -> VectorIndex:
    """Get the candidate index for the configured search backend."""
    global _candidate_index
    if _candidate_index is None:
        _candidate_index = _build_index(
            CANDIDATES_COLLECTION, get_settings().matching.atlas_index_name
        )
    return _candidate_index


def get_job_index() -> VectorIndex:
    """Get the job posting index for the configured search backend."""
    global _job_index
    if _job_index is None:
        _job_index = _build_index(
            JOB_POSTINGS_COLLECTION, get_settings().matching.job_atlas_index_name
        )
    return _job_index
