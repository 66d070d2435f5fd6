"""
Embedding model wrapper for generating text embeddings.

Uses the sentence-transformers library to map profile and job text into
unit-length vectors. The model is loaded lazily, exactly once per
process, behind an injectable ``Embedder`` service.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

import numpy as np

from talentmatch.utils.concurrency import with_timeout
from talentmatch.utils.config import get_settings
from talentmatch.utils.exceptions import EmbeddingFailure, InvalidInput, OperationTimeout
from talentmatch.utils.logger import get_logger

logger = get_logger(__name__)


def validate_text(text: Any) -> str:
    """Reject anything that is not a non-blank string."""
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput("Text to embed must be a non-empty string")
    return text.strip()


def normalize_vector(values: Sequence[float] | np.ndarray, dimension: Optional[int] = None) -> list[float]:
    """
    L2-normalise a model output into a plain list of floats.

    Raises:
        EmbeddingFailure: if the output has the wrong shape or size, or is
            zero / non-finite. A zero vector is never handed back to a
            caller because it would silently score 0 against everything.
    """
    vec = np.asarray(values, dtype=np.float64)
    if vec.ndim != 1:
        raise EmbeddingFailure(f"Expected a 1-D embedding, got shape {vec.shape}")
    if dimension is not None and vec.shape[0] != dimension:
        raise EmbeddingFailure(
            f"Embedding has {vec.shape[0]} dimensions, expected {dimension}",
            details={"expected": dimension, "actual": int(vec.shape[0])},
        )
    if not np.all(np.isfinite(vec)):
        raise EmbeddingFailure("Embedding contains non-finite values")

    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        raise EmbeddingFailure("Embedding model returned a zero vector")
    return (vec / norm).tolist()


class Embedder(ABC):
    """Interface of the embedding service used by the matcher and batch jobs."""

    @property
    @abstractmethod
    def model_version(self) -> str:
        """Tag stored next to every vector this embedder produces."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this embedder produces."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """
        Embed one text.

        Returns:
            Unit-length vector of ``dimension`` floats.

        Raises:
            InvalidInput: for empty text.
            EmbeddingFailure: when the model cannot load or infer.
        """

    async def embed_async(
        self,
        text: str,
        timeout: Optional[float] = None,
        wait_on_timeout: bool = False,
    ) -> list[float]:
        """
        Embed one text without blocking the event loop.

        Inference runs in a worker thread, which keeps running after a
        timeout. With ``wait_on_timeout`` the timeout is raised only once
        that thread has finished, so a caller holding a concurrency slot
        keeps it for as long as the inference really runs.

        Raises:
            OperationTimeout: if inference takes longer than ``timeout``.
        """
        task = asyncio.ensure_future(asyncio.to_thread(self.embed, text))
        try:
            return await with_timeout(asyncio.shield(task), timeout, "embedding")
        except OperationTimeout:
            if wait_on_timeout:
                await asyncio.gather(task, return_exceptions=True)
            else:
                task.add_done_callback(_log_abandoned_inference)
            raise


def _log_abandoned_inference(task: "asyncio.Future[list[float]]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning(f"Embedding failed after its caller timed out: {error}")


class EmbeddingModel(Embedder):
    """
    sentence-transformers implementation of ``Embedder``.

    The underlying model is shared and read-only once loaded, so one
    instance can serve concurrent requests. Loading is guarded by a lock:
    concurrent first callers wait for a single load.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        revision: Optional[str] = None,
        device: Optional[str] = None,
        dimension: Optional[int] = None,
        loader: Optional[Callable[[], Any]] = None,
    ):
        """
        Initialize the embedding model.

        Args:
            model_name: sentence-transformers model id. Defaults to config.
            revision: Pinned model revision. Defaults to config.
            device: 'cpu', 'cuda' or 'mps'. Defaults to config.
            dimension: Expected vector length. Defaults to config.
            loader: Callable returning an object with an ``encode`` method;
                overrides the sentence-transformers loader.
        """
        ml_settings = get_settings().ml
        self.model_name = model_name or ml_settings.embedding_model
        self.revision = revision if revision is not None else ml_settings.embedding_revision
        self.device = device or ml_settings.device
        self._dimension = dimension or ml_settings.embedding_dimension

        self._loader = loader or self._load_sentence_transformer
        self._model: Any = None
        self._lock = threading.Lock()

    @property
    def model_version(self) -> str:
        if self.revision:
            return f"{self.model_name}@{self.revision}"
        return self.model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def _load_sentence_transformer(self) -> Any:
        from sentence_transformers import SentenceTransformer

        return SentenceTransformer(
            self.model_name,
            device=self.device,
            revision=self.revision,
        )

    def load(self) -> Any:
        """Load the model if needed and return it."""
        if self._model is not None:
            return self._model

        with self._lock:
            if self._model is None:
                logger.info(f"Loading embedding model: {self.model_version}")
                try:
                    model = self._loader()
                except Exception as e:
                    logger.error(f"Failed to load embedding model: {e}")
                    raise EmbeddingFailure(
                        f"Failed to load embedding model {self.model_version}: {e}"
                    ) from e
                self._model = model
                logger.info(f"Embedding model loaded on device: {self.device}")
        return self._model

    def embed(self, text: str) -> list[float]:
        text = validate_text(text)
        model = self.load()

        try:
            raw = model.encode(
                text,
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as e:
            logger.error(f"Embedding inference failed: {e}")
            raise EmbeddingFailure(f"Embedding inference failed: {e}") from e

        return normalize_vector(raw, self._dimension)


_embedding_model: Optional[EmbeddingModel] = None
_embedding_model_lock = threading.Lock()


def get_embedding_model() -> EmbeddingModel:
    """Get the process-wide embedding service."""
    global _embedding_model
    with _embedding_model_lock:
        if _embedding_model is None:
            _embedding_model = EmbeddingModel()
        return _embedding_model
