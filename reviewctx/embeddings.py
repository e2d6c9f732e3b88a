"""
Embedding providers and the chunk embedding generator for reviewctx.

Providers turn a single text into a fixed-length vector. The generator
prefixes chunk text with its structural context, calls the provider once per
chunk with a fixed delay between calls, and drops chunks whose call fails.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional

import httpx
from sentence_transformers import SentenceTransformer

from .errors import ConfigurationError, IndexingCancelled, TransientProviderError
from .models import CodeChunk, EmbeddedChunk, utc_now
from .utils import content_hash, retry_on_failure

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_DIMENSIONS = {"text-embedding-004": 768, "embedding-001": 768}


class EmbeddingProvider(ABC):
    """Turns one text into one vector of a fixed dimension."""

    name: str = "provider"

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this provider returns."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            TransientProviderError: The call failed and may succeed later
        """


class SentenceTransformerProvider(EmbeddingProvider):
    """
    Local sentence-transformers model.

    Features:
    - Lazy model loading (only loads when first needed)
    - Thread-safe loading for background indexing
    - Normalized embeddings for cosine similarity
    """

    name = "sentence-transformers"

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", device: Optional[str] = None):
        """
        Initialize the provider.

        Args:
            model_name: Name of the sentence-transformers model to use
            device: Device to use ('cuda', 'cpu', or None for auto-detect)
        """
        self.model_name = model_name
        self.device = device
        self._model: Optional[SentenceTransformer] = None
        self._dimension: Optional[int] = None
        self._model_lock = threading.Lock()

    @property
    def model(self) -> SentenceTransformer:
        """Lazy-load the model on first access (thread-safe)."""
        if self._model is None:
            with self._model_lock:
                # Double-check: another thread might have loaded it
                if self._model is None:
                    logger.info(f"Loading embedding model: {self.model_name}")
                    self._model = SentenceTransformer(self.model_name, device=self.device)
                    logger.info(f"Model loaded on device: {self._model.device}")
        return self._model

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            dimension = self.model.get_sentence_embedding_dimension()
            if dimension is None:
                dimension = len(self.model.encode("test", show_progress_bar=False))
            self._dimension = int(dimension)
            logger.info(f"Embedding dimension: {self._dimension}")
        return self._dimension

    @retry_on_failure(max_attempts=3, delay=0.5, exceptions=(RuntimeError, OSError))
    def embed(self, text: str) -> list[float]:
        embedding = self.model.encode(
            text,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return embedding.tolist()

    def __repr__(self) -> str:
        loaded = "loaded" if self._model is not None else "not loaded"
        return f"SentenceTransformerProvider(model={self.model_name}, {loaded})"


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Google Generative Language embeddings over REST."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = "text-embedding-004",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            api_key: Generative Language API key (required)
            model_name: Embedding model name
            timeout: Request timeout in seconds
            client: Optional preconfigured httpx client

        Raises:
            ConfigurationError: If no API key is given
        """
        if not api_key:
            raise ConfigurationError("An API key is required for the gemini embedding provider")
        self.model_name = model_name
        self._dimension = GEMINI_DIMENSIONS.get(model_name, 768)
        self._client = client or httpx.Client(base_url=GEMINI_API_URL, timeout=timeout)
        self._client.headers["x-goog-api-key"] = api_key

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        payload = {
            "model": f"models/{self.model_name}",
            "content": {"parts": [{"text": text}]},
        }
        try:
            response = self._client.post(f"/models/{self.model_name}:embedContent", json=payload)
            response.raise_for_status()
            values = response.json()["embedding"]["values"]
        except httpx.HTTPStatusError as e:
            raise TransientProviderError(
                f"Embedding request failed with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise TransientProviderError(f"Embedding request failed: {e}") from e
        return [float(v) for v in values]

    def close(self) -> None:
        self._client.close()

    def __repr__(self) -> str:
        return f"GeminiEmbeddingProvider(model={self.model_name})"


def create_embedding_provider(config: "Config") -> EmbeddingProvider:
    """Build the provider named by `embeddings.provider`."""
    provider = config.get("embeddings", "provider", default="sentence-transformers")
    if provider == "sentence-transformers":
        return SentenceTransformerProvider(
            model_name=config.get("embeddings", "model", default="all-MiniLM-L6-v2")
        )
    if provider == "gemini":
        model = config.get("embeddings", "model", default="text-embedding-004")
        if model == "all-MiniLM-L6-v2":
            model = "text-embedding-004"
        return GeminiEmbeddingProvider(
            api_key=config.embedding_api_key(),
            model_name=model,
            timeout=config.get("embeddings", "timeout", default=30.0),
        )
    raise ConfigurationError(f"Unknown embedding provider: {provider}")


class EmbeddingGenerator:
    """
    Converts CodeChunks into EmbeddedChunks.

    One provider call per chunk, sequentially, with `request_delay` seconds
    between calls. A failing call is logged and its chunk dropped, so the
    output may be shorter than the input.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        request_delay: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.request_delay = request_delay
        self._sleep = sleep

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    @staticmethod
    def prepare_text(chunk: CodeChunk) -> str:
        """Chunk text prefixed with path, type, names and language."""
        parts = [f"File: {chunk.file_path}", f"Type: {chunk.type}"]
        if chunk.function_name:
            parts.append(f"Function: {chunk.function_name}")
        if chunk.class_name:
            parts.append(f"Class: {chunk.class_name}")
        parts.append(f"Language: {chunk.language}")
        parts.append(f"Content:\n{chunk.content}")
        return "\n".join(parts)

    def embed_query(self, text: str) -> list[float]:
        """Embed raw query text; provider errors propagate."""
        return self.provider.embed(text)

    def embed_chunks(
        self,
        chunks: list[CodeChunk],
        file_hashes: Optional[dict[str, str]] = None,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> list[EmbeddedChunk]:
        """
        Embed chunks one at a time.

        Args:
            chunks: Chunks to embed
            file_hashes: Optional path -> file hash; chunks without an entry
                are hashed by their own content
            cancel_event: Checked before every call
            on_progress: Called with (processed, total) after every call

        Returns:
            EmbeddedChunks for every successful call, in input order

        Raises:
            IndexingCancelled: If cancel_event is set
        """
        file_hashes = file_hashes or {}
        embedded: list[EmbeddedChunk] = []
        expected_dimension: Optional[int] = None
        total = len(chunks)

        for index, chunk in enumerate(chunks):
            if cancel_event is not None and cancel_event.is_set():
                raise IndexingCancelled("Embedding generation cancelled")
            if index > 0 and self.request_delay > 0:
                self._sleep(self.request_delay)

            try:
                vector = self.provider.embed(self.prepare_text(chunk))
            except Exception as e:
                logger.error(f"Failed to embed {chunk.id}: {e}")
                vector = None

            if vector is not None:
                if expected_dimension is None and vector:
                    expected_dimension = len(vector)
                if not vector or len(vector) != expected_dimension:
                    logger.error(
                        f"Dropping {chunk.id}: embedding has {len(vector)} dimensions, "
                        f"expected {expected_dimension or 'non-empty'}"
                    )
                else:
                    embedded.append(EmbeddedChunk(
                        **chunk.model_dump(exclude={"id"}),
                        embedding=vector,
                        content_hash=file_hashes.get(chunk.file_path) or content_hash(chunk.content),
                        last_updated=utc_now(),
                    ))

            if on_progress is not None:
                on_progress(index + 1, total)

        if len(embedded) < total:
            logger.warning(f"Embedded {len(embedded)}/{total} chunks; {total - len(embedded)} dropped")
        else:
            logger.debug(f"Embedded {total} chunks")
        return embedded

    def __repr__(self) -> str:
        return f"EmbeddingGenerator(provider={self.provider!r})"
