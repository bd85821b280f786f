"""Factory for managing video provider adapters."""

import logging
from typing import Dict, List, Optional, Type

from pydantic import BaseModel

from ...domain.models.stream import VideoProvider
from ...domain.ports.video_provider import VideoProviderPort
from .base_adapter import HttpVideoProviderAdapter, ProviderHttpConfig
from .cloudflare_adapter import CloudflareStreamAdapter
from .mux_adapter import MuxAdapter

logger = logging.getLogger(__name__)


class VideoProviderFactory:
    """Factory for managing video provider adapters."""

    def __init__(self, http: Optional[ProviderHttpConfig] = None):
        """Initialize the factory.

        Args:
            http: Timeout and retry settings handed to every adapter
        """
        self._http = http or ProviderHttpConfig()
        self._providers: Dict[VideoProvider, Type[HttpVideoProviderAdapter]] = {}
        self._configs: Dict[VideoProvider, BaseModel] = {}
        self._instances: Dict[VideoProvider, VideoProviderPort] = {}

        # Register built-in providers
        self.register_provider(VideoProvider.CLOUDFLARE, CloudflareStreamAdapter)
        self.register_provider(VideoProvider.MUX, MuxAdapter)

    def register_provider(
        self,
        provider: VideoProvider,
        provider_class: Type[HttpVideoProviderAdapter],
    ) -> None:
        """Register an adapter class for a provider.

        Args:
            provider: Vendor tag
            provider_class: Adapter class

        Raises:
            ValueError: If the provider is already registered
        """
        if provider in self._providers:
            raise ValueError(f"Provider {provider.value} already registered")

        self._providers[provider] = provider_class

    def configure(self, provider: VideoProvider, config: BaseModel) -> None:
        """Set the configuration used when the adapter is created."""
        if provider not in self._providers:
            raise ValueError(f"Unknown provider: {provider.value}")
        self._configs[provider] = config

    def is_configured(self, provider: VideoProvider) -> bool:
        return provider in self._configs

    def list_configured_providers(self) -> List[str]:
        """Get list of provider names that have credentials."""
        return [provider.value for provider in self._providers if self.is_configured(provider)]

    async def create_provider(self, provider: VideoProvider) -> VideoProviderPort:
        """Create and initialize an adapter instance.

        Args:
            provider: Vendor tag

        Returns:
            Initialized adapter

        Raises:
            ValueError: If the provider is unknown or has no configuration
        """
        if provider not in self._providers:
            raise ValueError(f"Unknown provider: {provider.value}")

        if provider in self._instances:
            return self._instances[provider]

        provider_config = self._configs.get(provider)
        if provider_config is None:
            raise ValueError(f"Provider {provider.value} is not configured")

        instance = self._providers[provider](config=provider_config, http=self._http)
        await instance.initialize()
        self._instances[provider] = instance
        return instance

    async def create_configured(self) -> Dict[VideoProvider, VideoProviderPort]:
        """Create every provider that has a configuration."""
        for provider in list(self._configs):
            await self.create_provider(provider)
        return self.active_providers

    @property
    def active_providers(self) -> Dict[VideoProvider, VideoProviderPort]:
        return dict(self._instances)

    def list_providers(self) -> List[str]:
        """Get list of registered provider names."""
        return [provider.value for provider in self._providers]

    async def shutdown_provider(self, provider: VideoProvider) -> None:
        """Shutdown a specific provider.

        Args:
            provider: Vendor tag
        """
        if provider in self._instances:
            await self._instances[provider].shutdown()
            del self._instances[provider]

    async def shutdown_all(self) -> None:
        """Shutdown all active providers."""
        for provider in list(self._instances.keys()):
            await self.shutdown_provider(provider)
        logger.info("✅ Video providers shut down")
