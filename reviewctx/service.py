"""
Service surface for reviewctx.

A ReviewContextService bundles everything one repository needs (store,
coordinator, search engine, context assembler, incremental updater). The
ServiceRegistry hands out one service per (owner, repo) and shares the
embedding provider and the indexing guard between them.
"""

import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Union

from .chunkers import Chunker
from .content import ContentProvider, GitHubContentProvider
from .context import ContextAssembler
from .embeddings import EmbeddingGenerator, EmbeddingProvider, create_embedding_provider
from .indexer import IndexCoordinator, IndexingGuard, IndexingHandle
from .models import (
    ContextBundle,
    FileChange,
    IndexStatus,
    RepoScope,
    SemanticSearchResult,
    UpdateReport,
    VectorQuery,
)
from .search import SearchEngine
from .stores import VectorStore, create_vector_store
from .updater import IncrementalUpdater

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

ContentProviderFactory = Callable[[RepoScope], ContentProvider]


class ReviewContextService:
    """Indexing, search and PR context for one repository."""

    def __init__(
        self,
        scope: RepoScope,
        store: VectorStore,
        generator: EmbeddingGenerator,
        content_provider: ContentProvider,
        config: "Config",
        guard: Optional[IndexingGuard] = None,
        chunker: Optional[Chunker] = None,
    ):
        self.scope = scope
        self.store = store
        self.content_provider = content_provider
        self.chunker = chunker or Chunker.with_default_plugins()
        self.coordinator = IndexCoordinator(scope, store, self.chunker, generator, config, guard=guard)
        self.engine = SearchEngine(store, generator, config, require_ready=self.coordinator.require_initialized)
        self.assembler = ContextAssembler(self.engine, config)
        self.updater = IncrementalUpdater(scope, store, self.chunker, generator, content_provider, config)

    def index_repository(
        self,
        ref: Optional[str] = None,
        force_reindex: bool = False,
        background: bool = True,
    ) -> IndexingHandle:
        """Index through the service's content provider (the scope's branch by default)."""
        return self.coordinator.start(
            self.content_provider,
            ref=ref,
            force_reindex=force_reindex,
            background=background,
        )

    def index_local(
        self,
        root_path: Path,
        force_reindex: bool = False,
        background: bool = True,
    ) -> IndexingHandle:
        """Index a working tree on disk."""
        return self.coordinator.initialize(root_path, force_reindex=force_reindex, background=background)

    def search(self, query: VectorQuery) -> list[SemanticSearchResult]:
        return self.engine.semantic_search(query)

    def hybrid_search(self, query: VectorQuery, keywords: list[str]) -> list[SemanticSearchResult]:
        return self.engine.hybrid_search(query, keywords)

    def status(self) -> IndexStatus:
        return self.coordinator.status()

    def reset(self) -> int:
        return self.coordinator.reset()

    def update_changed_files(
        self,
        changes: list[FileChange],
        ref: Optional[str] = None,
        background: bool = False,
    ) -> Union[UpdateReport, Future]:
        """
        Re-index the files a pull request touched.

        Returns:
            The UpdateReport, or a Future of it when background is True
        """
        if background:
            return self.updater.apply_changes_in_background(changes, ref)
        return self.updater.apply_changes(changes, ref)

    def pr_context(
        self,
        title: str,
        description: str = "",
        changed_files: Optional[list[str]] = None,
        diff: str = "",
    ) -> ContextBundle:
        return self.assembler.assemble(title, description, changed_files or [], diff)

    def close(self) -> None:
        self.coordinator.shutdown()
        self.updater.shutdown()
        self.store.close()
        close = getattr(self.content_provider, "close", None)
        if close is not None:
            close()

    def __repr__(self) -> str:
        return f"ReviewContextService(scope={self.scope}, backend={self.store.backend_name})"


class ServiceRegistry:
    """
    One ReviewContextService per (owner, repo).

    Example:
        registry = ServiceRegistry(Config(), github_token=token)
        handle = registry.index_repository("octo", "widgets", "main")
        handle.result()
        results = registry.get("octo", "widgets").search(VectorQuery(query_text="retry logic"))
    """

    def __init__(
        self,
        config: "Config",
        embedding_provider: Optional[EmbeddingProvider] = None,
        content_provider_factory: Optional[ContentProviderFactory] = None,
        github_token: Optional[str] = None,
    ):
        """
        Args:
            config: Shared configuration
            embedding_provider: Provider shared by all services; built from config if None
            content_provider_factory: Builds the content source for a scope;
                GitHub REST with github_token if None
            github_token: Token for the default GitHub content provider
        """
        self.config = config
        self.guard = IndexingGuard()
        self._provider = embedding_provider
        self._generator: Optional[EmbeddingGenerator] = None
        self._content_provider_factory = content_provider_factory or (
            lambda scope: GitHubContentProvider(scope, token=github_token)
        )
        self._services: dict[tuple[str, str], ReviewContextService] = {}
        self._lock = threading.Lock()

    @property
    def generator(self) -> EmbeddingGenerator:
        if self._generator is None:
            provider = self._provider or create_embedding_provider(self.config)
            self._generator = EmbeddingGenerator(
                provider,
                request_delay=self.config.get("embeddings", "request_delay", default=0.05),
            )
        return self._generator

    def get(self, owner: str, repo: str, branch: str = "main") -> ReviewContextService:
        """Service for a repository, created on first use."""
        key = (owner, repo)
        with self._lock:
            service = self._services.get(key)
            if service is None:
                scope = RepoScope(owner=owner, name=repo, branch=branch)
                generator = self.generator
                store = create_vector_store(self.config, scope, generator.dimension)
                service = ReviewContextService(
                    scope,
                    store,
                    generator,
                    self._content_provider_factory(scope),
                    self.config,
                    guard=self.guard,
                )
                self._services[key] = service
                logger.info(f"Created service for {scope.key} ({store.backend_name} backend)")
            elif service.scope.branch != branch:
                logger.debug(f"{owner}/{repo} is served from branch {service.scope.branch}, not {branch}")
        return service

    def index_repository(
        self,
        owner: str,
        repo: str,
        branch: str = "main",
        force_reindex: bool = False,
        background: bool = True,
    ) -> IndexingHandle:
        return self.get(owner, repo, branch).index_repository(
            force_reindex=force_reindex,
            background=background,
        )

    def services(self) -> list[ReviewContextService]:
        with self._lock:
            return list(self._services.values())

    def close(self) -> None:
        with self._lock:
            services = list(self._services.values())
            self._services.clear()
        for service in services:
            service.close()
