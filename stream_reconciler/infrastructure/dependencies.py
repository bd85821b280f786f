"""Dependency injection configuration for hexagonal architecture."""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from google.cloud import firestore

from ..domain.models.stream import VideoProvider
from ..domain.ports.memorial_repository import MemorialRepositoryPort
from ..domain.ports.stream_repository import StreamRepositoryPort
from ..domain.ports.video_provider import VideoProviderPort
from ..domain.services.reconciliation_service import ReconciliationService
from ..domain.services.recording_poller import RecordingPoller
from ..domain.services.stream_leases import StreamLeaseManager
from ..domain.services.stream_lifecycle_service import StreamLifecycleService
from ..domain.services.webhook_ingestion_service import WebhookIngestionService
from .config import ReconcilerConfig
from .persistence.firestore_repository import FirestoreMemorialRepository, FirestoreStreamRepository
from .persistence.memory_repository import InMemoryMemorialRepository, InMemoryStreamRepository
from .scheduling.poll_scheduler import StreamPollScheduler
from .video.factory import VideoProviderFactory

logger = logging.getLogger(__name__)


def _build_repositories(config: ReconcilerConfig):
    if config.store_backend == "firestore":
        client = firestore.AsyncClient(project=config.firestore_project)
        logger.info(f"🗄️ Using Firestore collections '{config.firestore_streams_collection}' / '{config.firestore_memorials_collection}'")
        return (
            FirestoreStreamRepository(client, config.firestore_streams_collection),
            FirestoreMemorialRepository(client, config.firestore_memorials_collection),
        )

    logger.warning("⚠️ Using in-memory stream store - records are lost on restart")
    if config.memorial_seed_file:
        return InMemoryStreamRepository(), InMemoryMemorialRepository.from_file(config.memorial_seed_file)
    logger.warning("⚠️ MEMORIAL_SEED_FILE not set - no memorials exist, so streams cannot be created")
    return InMemoryStreamRepository(), InMemoryMemorialRepository()


class ServiceContainer:
    """Service container for dependency injection."""

    def __init__(
        self,
        config: Optional[ReconcilerConfig] = None,
        repository: Optional[StreamRepositoryPort] = None,
        memorials: Optional[MemorialRepositoryPort] = None,
        provider_factory: Optional[VideoProviderFactory] = None,
    ):
        """Initialize service container.

        Args:
            config: Service configuration (read from the environment if omitted)
            repository: Stream store override
            memorials: Memorial reader override
            provider_factory: Video provider factory override
        """
        self.config = config or ReconcilerConfig.from_env()
        self._services: Dict[str, Any] = {}
        # Filled in by startup(); services hold this same mapping
        self._providers: Dict[VideoProvider, VideoProviderPort] = {}
        self._provider_factory = provider_factory or VideoProviderFactory(self.config.http)
        self._setup_services(repository, memorials)

    def _setup_services(
        self,
        repository: Optional[StreamRepositoryPort],
        memorials: Optional[MemorialRepositoryPort],
    ) -> None:
        """Setup all services and their dependencies."""
        logger.info("🔧 Setting up service container...")

        if self.config.cloudflare is not None:
            self._provider_factory.configure(VideoProvider.CLOUDFLARE, self.config.cloudflare)
        if self.config.mux is not None:
            self._provider_factory.configure(VideoProvider.MUX, self.config.mux)

        if repository is None or memorials is None:
            default_repository, default_memorials = _build_repositories(self.config)
            repository = repository or default_repository
            memorials = memorials or default_memorials

        leases = StreamLeaseManager()
        reconciliation_service = ReconciliationService(
            repository,
            memorials,
            self._providers,
            leases=leases,
            policy=self.config.policy,
        )
        lifecycle_service = StreamLifecycleService(repository, memorials, self._providers, leases)
        webhook_service = WebhookIngestionService(
            repository,
            reconciliation_service,
            dedup_ttl=self.config.webhook_dedup_ttl_seconds,
            dedup_maxsize=self.config.webhook_dedup_max_entries,
        )
        scheduler = StreamPollScheduler(
            reconciliation_service,
            interval_seconds=self.config.poll_interval_seconds,
            poller=RecordingPoller(reconciliation_service),
        )

        self._services = {
            'stream_repository': repository,
            'memorial_repository': memorials,
            'reconciliation_service': reconciliation_service,
            'lifecycle_service': lifecycle_service,
            'webhook_service': webhook_service,
            'poll_scheduler': scheduler,
        }

        logger.info("✅ Service container setup completed")

    async def startup(self, start_polling: bool = True) -> None:
        """Create the configured provider adapters and start background polling."""
        providers = await self._provider_factory.create_configured()
        self._providers.update(providers)
        if not self._providers:
            logger.warning("⚠️ No video providers configured - streams cannot be armed or reconciled")
        else:
            logger.info(f"✅ Video providers ready: {', '.join(sorted(p.value for p in self._providers))}")
        if start_polling:
            self.get_poll_scheduler().start()

    async def shutdown(self) -> None:
        """Stop background polling and close provider clients."""
        await self.get_poll_scheduler().stop()
        await self._provider_factory.shutdown_all()
        self._providers.clear()

    @property
    def active_providers(self) -> Dict[VideoProvider, VideoProviderPort]:
        return dict(self._providers)

    @property
    def provider_factory(self) -> VideoProviderFactory:
        return self._provider_factory

    def register_provider(self, adapter: VideoProviderPort) -> None:
        """Make an already initialized adapter available to the services."""
        self._providers[adapter.provider] = adapter

    def get(self, service_name: str) -> Any:
        """Get a service by name.

        Args:
            service_name: Name of the service

        Returns:
            Service instance

        Raises:
            KeyError: If service not found
        """
        if service_name not in self._services:
            raise KeyError(f"Service '{service_name}' not found")
        return self._services[service_name]

    def get_stream_repository(self) -> StreamRepositoryPort:
        return self.get('stream_repository')

    def get_reconciliation_service(self) -> ReconciliationService:
        """Get reconciliation engine."""
        return self.get('reconciliation_service')

    def get_lifecycle_service(self) -> StreamLifecycleService:
        """Get stream lifecycle service."""
        return self.get('lifecycle_service')

    def get_webhook_service(self) -> WebhookIngestionService:
        """Get webhook ingestion service."""
        return self.get('webhook_service')

    def get_poll_scheduler(self) -> StreamPollScheduler:
        """Get background poll scheduler."""
        return self.get('poll_scheduler')


# Global service container instance
@lru_cache()
def get_service_container() -> ServiceContainer:
    """Get global service container instance.

    Returns:
        Service container instance
    """
    load_dotenv()
    return ServiceContainer()


# Convenience functions for FastAPI dependency injection
def get_stream_repository() -> StreamRepositoryPort:
    """FastAPI dependency for the stream store."""
    return get_service_container().get_stream_repository()


def get_reconciliation_service() -> ReconciliationService:
    """FastAPI dependency for the reconciliation engine."""
    return get_service_container().get_reconciliation_service()


def get_lifecycle_service() -> StreamLifecycleService:
    """FastAPI dependency for the stream lifecycle service."""
    return get_service_container().get_lifecycle_service()


def get_webhook_service() -> WebhookIngestionService:
    """FastAPI dependency for webhook ingestion."""
    return get_service_container().get_webhook_service()


def get_poll_scheduler() -> StreamPollScheduler:
    """FastAPI dependency for the background scheduler."""
    return get_service_container().get_poll_scheduler()
