"""Domain port for video provider integrations."""

from abc import ABC, abstractmethod
from typing import List

from ..models.provider_state import (
    LiveInputAllocation,
    LiveInputRequest,
    LiveStatus,
    RecordingAsset,
    ResourceKind,
)
from ..models.stream import VideoProvider


class VideoProviderPort(ABC):
    """Port hiding vendor-specific live streaming APIs.

    Implementations never touch the stream store; they only translate
    between vendor REST shapes and the domain's provider models.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare network clients."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Release network clients."""
        pass

    @abstractmethod
    async def create_live_input(self, request: LiveInputRequest) -> LiveInputAllocation:
        """Allocate an ingest endpoint with automatic recording.

        Args:
            request: Live input parameters

        Returns:
            Vendor input id and broadcaster credentials

        Raises:
            ProviderUnavailableError: On network errors, timeouts or 5xx
            ProviderRejectedError: On 4xx responses
        """
        pass

    @abstractmethod
    async def get_live_status(self, provider_input_id: str) -> LiveStatus:
        """Report whether the input is currently broadcasting.

        Never raises for vendor failures; returns ``is_live=False`` with a
        warning instead.

        Args:
            provider_input_id: Vendor input id

        Returns:
            Live status
        """
        pass

    @abstractmethod
    async def list_recordings(self, provider_input_id: str) -> List[RecordingAsset]:
        """List recordings produced by an input, newest first.

        Args:
            provider_input_id: Vendor input id

        Returns:
            Recorded assets with normalized state

        Raises:
            ProviderUnavailableError: On network errors, timeouts or 5xx
            ProviderRejectedError: On 4xx responses
        """
        pass

    @abstractmethod
    async def delete_resource(self, resource_id: str, kind: ResourceKind) -> bool:
        """Delete a live input or asset. Best effort; failures are logged.

        Args:
            resource_id: Vendor id of the resource
            kind: Which kind of resource the id refers to

        Returns:
            True if the vendor confirmed the deletion
        """
        pass

    @property
    @abstractmethod
    def provider(self) -> VideoProvider:
        """Vendor tag served by this adapter."""
        pass
