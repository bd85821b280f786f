"""Domain port for stream persistence."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ..models.stream import Stream, StreamStatus, StreamVisibility, VideoProvider


class StreamRepositoryPort(ABC):
    """Durable CRUD over stream records with merge-only updates."""

    @abstractmethod
    async def get(self, stream_id: str) -> Stream:
        """Load a stream.

        Raises:
            StreamNotFoundError: If no stream has this id
        """
        pass

    @abstractmethod
    async def create(self, stream: Stream) -> str:
        """Persist a new stream and return its id.

        Raises:
            InvalidStreamError: If memorial or provider is missing
        """
        pass

    @abstractmethod
    async def update(self, stream_id: str, fields: Dict[str, Any]) -> Stream:
        """Merge ``fields`` into the stored record and bump ``updated_at``.

        Unspecified fields are never touched.

        Args:
            stream_id: Stream id
            fields: Attribute name -> new value

        Returns:
            The stream after the update

        Raises:
            StreamNotFoundError: If no stream has this id
            InvalidStreamError: If a field is unknown or immutable
        """
        pass

    @abstractmethod
    async def delete(self, stream_id: str) -> None:
        """Remove a stream record.

        Raises:
            StreamNotFoundError: If no stream has this id
        """
        pass

    @abstractmethod
    async def list_by_memorial(
        self,
        memorial_id: str,
        status: Optional[StreamStatus] = None,
        visibility: Optional[StreamVisibility] = None,
    ) -> List[Stream]:
        """List streams of a memorial, optionally filtered."""
        pass

    @abstractmethod
    async def list_by_status(self, statuses: Iterable[StreamStatus]) -> List[Stream]:
        """List streams in any of the given statuses."""
        pass

    @abstractmethod
    async def find_by_provider_id(
        self,
        provider: VideoProvider,
        provider_input_id: Optional[str] = None,
        provider_asset_id: Optional[str] = None,
    ) -> Optional[Stream]:
        """Find the stream owning a vendor input or asset id."""
        pass
