"""
Base repository classes providing common async CRUD operations.

All entity-specific repositories inherit from ``BaseRepository``; those
whose documents carry an embedding inherit from ``VectorRepository``.
Driver errors surface as ``IndexUnavailable``.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Generic, Iterator, Optional, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from talentmatch.data.database import get_database_manager
from talentmatch.data.models.base import BaseDocument, utc_now
from talentmatch.utils.constants import (
    VECTOR_FIELD,
    VECTOR_MODEL_FIELD,
    VECTOR_UPDATED_FIELD,
)
from talentmatch.utils.exceptions import IndexUnavailable, InvalidInput
from talentmatch.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseDocument)

# Projection that keeps every attribute except the (large) embedding
WITHOUT_VECTOR: dict[str, int] = {VECTOR_FIELD: 0}


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Re-raise driver errors as ``IndexUnavailable``."""
    try:
        yield
    except PyMongoError as e:
        raise IndexUnavailable(
            f"{operation} failed: {e}",
            details={"operation": operation},
        ) from e


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository providing common database operations.

    Subclasses must define the collection name and model class. A
    collection can be injected, otherwise it is resolved lazily through
    the global ``DatabaseManager``.
    """

    @property
    @abstractmethod
    def collection_name(self) -> str:
        """Name of the MongoDB collection."""

    @property
    @abstractmethod
    def model_class(self) -> type[T]:
        """Pydantic model class for this repository."""

    def __init__(self, collection: Optional[AsyncIOMotorCollection] = None) -> None:
        self._collection = collection

    @property
    def collection(self) -> AsyncIOMotorCollection:
        if self._collection is None:
            self._collection = get_database_manager().get_async_collection(
                self.collection_name
            )
        return self._collection

    # -------------------------------------------------------------------------
    # Document Conversion
    # -------------------------------------------------------------------------

    def parse_document(self, document: dict[str, Any]) -> T:
        """
        Validate one stored document against the model.

        Raises:
            InvalidInput: if the document does not fit the model.
        """
        try:
            return self.model_class.model_validate(document)
        except ValidationError as e:
            raise InvalidInput(
                f"Malformed {self.collection_name} record {document.get('_id')}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def _to_model(self, document: Optional[dict[str, Any]]) -> Optional[T]:
        if document is None:
            return None
        return self.parse_document(document)

    def _to_models(self, documents: list[dict[str, Any]]) -> list[T]:
        return [self._to_model(doc) for doc in documents if doc is not None]

    @staticmethod
    def _to_object_id(id_value: str | ObjectId) -> ObjectId:
        """Convert string to ObjectId, rejecting malformed ids."""
        if isinstance(id_value, ObjectId):
            return id_value
        try:
            return ObjectId(id_value)
        except (InvalidId, TypeError) as e:
            raise InvalidInput(f"Invalid id: {id_value!r}") from e

    # -------------------------------------------------------------------------
    # CRUD Operations
    # -------------------------------------------------------------------------

    async def create_async(self, model: T) -> T:
        """Insert a new document and set its id on the model."""
        document = model.model_dump_mongo()
        now = utc_now()
        document["created_at"] = now
        document["updated_at"] = now

        with translate_errors(f"insert into {self.collection_name}"):
            result = await self.collection.insert_one(document)
        model.id = result.inserted_id
        logger.debug(f"Created {self.collection_name} document: {result.inserted_id}")
        return model

    async def get_by_id_async(
        self,
        id_value: str | ObjectId,
        projection: Optional[dict[str, int]] = None,
    ) -> Optional[T]:
        with translate_errors(f"read from {self.collection_name}"):
            document = await self.collection.find_one(
                {"_id": self._to_object_id(id_value)}, projection
            )
        return self._to_model(document)

    async def find_documents_async(
        self,
        query: dict[str, Any],
        skip: int = 0,
        limit: int = 100,
        sort_by: Optional[str] = None,
        sort_order: int = -1,
        projection: Optional[dict[str, int]] = None,
    ) -> list[dict[str, Any]]:
        """
        Find raw documents matching a query, without validating them.

        ``limit=0`` returns every matching document.
        """
        cursor = self.collection.find(query, projection).skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        cursor = cursor.sort(sort_by or "created_at", sort_order)

        with translate_errors(f"query {self.collection_name}"):
            documents = await cursor.to_list(length=limit or None)
        return documents

    async def find_async(
        self,
        query: dict[str, Any],
        skip: int = 0,
        limit: int = 100,
        sort_by: Optional[str] = None,
        sort_order: int = -1,
        projection: Optional[dict[str, int]] = None,
    ) -> list[T]:
        """Find documents matching a query as models."""
        documents = await self.find_documents_async(
            query,
            skip=skip,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            projection=projection,
        )
        return self._to_models(documents)

    async def list_ids_async(self, query: Optional[dict[str, Any]] = None) -> list[str]:
        """Ids of the matching documents, oldest first."""
        cursor = self.collection.find(query or {}, {"_id": 1}).sort("created_at", 1)
        with translate_errors(f"list {self.collection_name}"):
            documents = await cursor.to_list(length=None)
        return [str(doc["_id"]) for doc in documents]

    async def find_one_async(self, query: dict[str, Any]) -> Optional[T]:
        with translate_errors(f"read from {self.collection_name}"):
            document = await self.collection.find_one(query)
        return self._to_model(document)

    async def count_async(self, query: Optional[dict[str, Any]] = None) -> int:
        with translate_errors(f"count {self.collection_name}"):
            return await self.collection.count_documents(query or {})


class VectorRepository(BaseRepository[T]):
    """Repository for documents carrying ``vector`` / ``vector_model`` fields."""

    @staticmethod
    def stale_vector_query(model_version: str) -> dict[str, Any]:
        """Documents with no vector, or one produced by another model."""
        return {
            "$or": [
                {VECTOR_FIELD: None},
                {VECTOR_MODEL_FIELD: {"$ne": model_version}},
            ]
        }

    @staticmethod
    def current_vector_query(model_version: str) -> dict[str, Any]:
        return {
            VECTOR_FIELD: {"$type": "array"},
            VECTOR_MODEL_FIELD: model_version,
        }

    async def set_vector_async(
        self,
        id_value: str | ObjectId,
        vector: list[float],
        model_version: str,
    ) -> bool:
        """
        Store an embedding on a record.

        Only the vector fields are written; ``updated_at`` and every
        profile attribute stay as they are.
        """
        with translate_errors(f"write vector to {self.collection_name}"):
            result = await self.collection.update_one(
                {"_id": self._to_object_id(id_value)},
                {
                    "$set": {
                        VECTOR_FIELD: vector,
                        VECTOR_MODEL_FIELD: model_version,
                        VECTOR_UPDATED_FIELD: utc_now(),
                    }
                },
            )
        return result.matched_count > 0

    async def count_with_current_vectors_async(self, model_version: str) -> int:
        return await self.count_async(self.current_vector_query(model_version))
