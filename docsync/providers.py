"""Centralized provider module for the collaborators a sync pass runs against.

Factory functions build the embeddings, vector store, source client, content
store and the fully wired coordinator. Swap an implementation here without
touching the sync core.

Default implementations:
- Embeddings: HuggingFaceEmbeddings (local, no API keys required)
- VectorStore: Chroma (local, no external services required)
- Source: ConfluenceClient (atlassian-python-api)
"""

import structlog
from langchain_chroma import Chroma
from langchain_core.embeddings import Embeddings
from langchain_core.vectorstores import VectorStore
from langchain_huggingface import HuggingFaceEmbeddings

from docsync.ingestion.confluence_client import ConfluenceClient
from docsync.models.config import AppConfig, ConfluenceConfig
from docsync.processing.chunker import DocumentChunker
from docsync.storage.content_store import VectorContentStore
from docsync.storage.link_index import LinkIndex
from docsync.storage.progress import FileProgressTracker
from docsync.sync.lease import SyncLease
from docsync.sync.sync_coordinator import SyncCoordinator
from docsync.sync.timeout_governor import TimeoutGovernor
from docsync.sync.timestamp_tracker import TimestampTracker
from docsync.sync.triggers import SyncTriggers

log = structlog.stdlib.get_logger()


def get_embeddings(model_name: str) -> Embeddings:
    """Get the configured embeddings implementation.

    Example - Swap to OpenAI embeddings:
        from langchain_openai import OpenAIEmbeddings
        return OpenAIEmbeddings(model=model_name)

    Args:
        model_name: Name of the model to use (e.g., "all-MiniLM-L6-v2")

    Returns:
        Embeddings instance

    Raises:
        ValueError: If model_name is empty
        RuntimeError: If the embeddings provider cannot be initialized
    """
    if not model_name or not model_name.strip():
        error_msg = "model_name cannot be empty"
        log.error("get_embeddings_failed", error=error_msg)
        raise ValueError(error_msg)

    try:
        log.info("initializing_embeddings", model_name=model_name, provider="HuggingFace")
        embeddings = HuggingFaceEmbeddings(model_name=model_name)
    except Exception as e:
        log.error(
            "get_embeddings_failed",
            model_name=model_name,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise RuntimeError(
            f"Failed to initialize embeddings with model '{model_name}': {e}"
        ) from e

    log.info("embeddings_initialized_successfully", model_name=model_name)
    return embeddings


def get_vector_store(
    embeddings: Embeddings, collection_name: str, persist_directory: str
) -> VectorStore:
    """Get the configured vector store implementation.

    Any VectorStore that supports ``add_documents(ids=...)``, ``delete(ids=...)``
    and ``get_by_ids`` works as a content store backend.

    Args:
        embeddings: Embeddings instance to use for vectorization
        collection_name: Name of the collection/index
        persist_directory: Directory for persistence

    Returns:
        VectorStore instance

    Raises:
        ValueError: If parameters are invalid
        RuntimeError: If the vector store cannot be initialized
    """
    if not collection_name or not collection_name.strip():
        error_msg = "collection_name cannot be empty"
        log.error("get_vector_store_failed", error=error_msg)
        raise ValueError(error_msg)

    if not persist_directory or not persist_directory.strip():
        error_msg = "persist_directory cannot be empty"
        log.error("get_vector_store_failed", error=error_msg)
        raise ValueError(error_msg)

    try:
        log.info(
            "initializing_vector_store",
            collection_name=collection_name,
            persist_directory=persist_directory,
            provider="Chroma",
        )
        vector_store = Chroma(
            collection_name=collection_name,
            embedding_function=embeddings,
            persist_directory=persist_directory,
        )
    except Exception as e:
        log.error(
            "get_vector_store_failed",
            collection_name=collection_name,
            persist_directory=persist_directory,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise RuntimeError(
            f"Failed to initialize vector store with collection '{collection_name}' "
            f"at '{persist_directory}': {e}"
        ) from e

    log.info("vector_store_initialized_successfully", collection_name=collection_name)
    return vector_store


def get_source_client(config: ConfluenceConfig) -> ConfluenceClient:
    return ConfluenceClient(
        base_url=str(config.base_url),
        auth_token=config.auth_token,
        cloud=config.cloud,
        page_size=config.page_size,
        cql_timezone=config.cql_timezone,
    )


def build_sync_coordinator(
    config: AppConfig,
    vector_store: VectorStore | None = None,
) -> SyncCoordinator:
    """
    Wire a SyncCoordinator from application configuration.

    Args:
        config: Application configuration
        vector_store: Optional vector store (built from config if None)

    Returns:
        SyncCoordinator for ``config.confluence.space_key``
    """
    if vector_store is None:
        embeddings = get_embeddings(config.processing.embedding_model)
        vector_store = get_vector_store(
            embeddings,
            config.vector_store.collection_name,
            config.vector_store.persist_directory,
        )

    chunker = DocumentChunker(
        chunk_size=config.processing.chunk_size,
        chunk_overlap=config.processing.chunk_overlap,
    )
    store = VectorContentStore(vector_store, chunker, LinkIndex(config.state.link_index_path))

    return SyncCoordinator(
        source=get_source_client(config.confluence),
        store=store,
        timestamp_tracker=TimestampTracker(vector_store),
        chunker=chunker,
        container_id=config.confluence.space_key,
        settings=config.sync,
        progress=FileProgressTracker(config.state.progress_directory),
        lease=SyncLease(config.state.lease_path, ttl_seconds=config.sync.lease_ttl_seconds),
        governor=TimeoutGovernor(config.sync.memory_budget_mb),
    )


def build_sync_triggers(config: AppConfig, vector_store: VectorStore | None = None) -> SyncTriggers:
    return SyncTriggers(build_sync_coordinator(config, vector_store), config.webhook)
