"""In-process stream and memorial stores."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import TypeAdapter

from ...domain.exceptions import (
    InvalidStreamError,
    MemorialNotFoundError,
    StreamNotFoundError,
)
from ...domain.models.memorial import Memorial
from ...domain.models.stream import (
    IMMUTABLE_FIELDS,
    Stream,
    StreamStatus,
    StreamVisibility,
    VideoProvider,
)
from ...domain.ports.memorial_repository import MemorialRepositoryPort
from ...domain.ports.stream_repository import StreamRepositoryPort

logger = logging.getLogger(__name__)

_MEMORIAL_LIST = TypeAdapter(List[Memorial])


class InMemoryStreamRepository(StreamRepositoryPort):
    """Dictionary-backed stream store.

    Records are copied on the way in and out so callers never share state
    with the store. Vendor ids are indexed for webhook lookups.
    """

    def __init__(self):
        self._streams: Dict[str, Stream] = {}
        self._by_input: Dict[Tuple[VideoProvider, str], str] = {}
        self._by_asset: Dict[Tuple[VideoProvider, str], str] = {}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _index(self, stream: Stream) -> None:
        if stream.provider_input_id:
            self._by_input[(stream.provider, stream.provider_input_id)] = stream.id
        if stream.provider_asset_id:
            self._by_asset[(stream.provider, stream.provider_asset_id)] = stream.id

    def _unindex(self, stream: Stream) -> None:
        if stream.provider_input_id:
            self._by_input.pop((stream.provider, stream.provider_input_id), None)
        if stream.provider_asset_id:
            self._by_asset.pop((stream.provider, stream.provider_asset_id), None)

    async def get(self, stream_id: str) -> Stream:
        stream = self._streams.get(stream_id)
        if stream is None:
            raise StreamNotFoundError(stream_id)
        return stream.model_copy(deep=True)

    async def create(self, stream: Stream) -> str:
        if not stream.memorial_id or stream.provider is None:
            raise InvalidStreamError("Stream requires memorialId and provider")

        stream_id = stream.id or uuid.uuid4().hex
        if stream_id in self._streams:
            raise InvalidStreamError(f"Stream already exists: {stream_id}")

        now = self._now()
        stored = stream.model_copy(
            deep=True,
            update={
                "id": stream_id,
                "created_at": stream.created_at or now,
                "updated_at": now,
            },
        )
        self._streams[stream_id] = stored
        self._index(stored)
        logger.debug(f"Stored stream {stream_id}")
        return stream_id

    async def update(self, stream_id: str, fields: Dict[str, Any]) -> Stream:
        current = self._streams.get(stream_id)
        if current is None:
            raise StreamNotFoundError(stream_id)
        for name in fields:
            if name not in Stream.model_fields:
                raise InvalidStreamError(f"Unknown stream field: {name}")
            if name in IMMUTABLE_FIELDS:
                raise InvalidStreamError(f"Stream field is immutable: {name}")

        # Round-trip through validation so stored values have model types
        data = current.model_dump()
        data.update(fields)
        data["updated_at"] = self._now()
        updated = Stream.model_validate(data)

        self._unindex(current)
        self._streams[stream_id] = updated
        self._index(updated)
        return updated.model_copy(deep=True)

    async def delete(self, stream_id: str) -> None:
        stream = self._streams.pop(stream_id, None)
        if stream is None:
            raise StreamNotFoundError(stream_id)
        self._unindex(stream)

    async def list_by_memorial(
        self,
        memorial_id: str,
        status: Optional[StreamStatus] = None,
        visibility: Optional[StreamVisibility] = None,
    ) -> List[Stream]:
        return [
            stream.model_copy(deep=True)
            for stream in self._streams.values()
            if stream.memorial_id == memorial_id
            and (status is None or stream.status == status)
            and (visibility is None or stream.visibility == visibility)
        ]

    async def list_by_status(self, statuses: Iterable[StreamStatus]) -> List[Stream]:
        wanted = set(statuses)
        return [
            stream.model_copy(deep=True)
            for stream in self._streams.values()
            if stream.status in wanted
        ]

    async def find_by_provider_id(
        self,
        provider: VideoProvider,
        provider_input_id: Optional[str] = None,
        provider_asset_id: Optional[str] = None,
    ) -> Optional[Stream]:
        stream_id = None
        if provider_input_id:
            stream_id = self._by_input.get((provider, provider_input_id))
        if stream_id is None and provider_asset_id:
            stream_id = self._by_asset.get((provider, provider_asset_id))
        if stream_id is None:
            return None
        return self._streams[stream_id].model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._streams)


class InMemoryMemorialRepository(MemorialRepositoryPort):
    """Dictionary-backed memorial reader, seeded by the caller."""

    def __init__(self, memorials: Optional[Iterable[Memorial]] = None):
        self._memorials: Dict[str, Memorial] = {}
        for memorial in memorials or []:
            self.add(memorial)

    @classmethod
    def from_file(cls, path: str) -> "InMemoryMemorialRepository":
        """Load memorials from a JSON array of memorial documents.

        Entries use the stored camelCase field names plus an ``id``.

        Raises:
            OSError: If the file cannot be read
            pydantic.ValidationError: If an entry is not a memorial
        """
        with open(path, "rb") as seed:
            memorials = _MEMORIAL_LIST.validate_json(seed.read())
        logger.info(f"🌱 Seeded {len(memorials)} memorials from {path}")
        return cls(memorials)

    def add(self, memorial: Memorial) -> None:
        self._memorials[memorial.id] = memorial

    async def get(self, memorial_id: str) -> Memorial:
        memorial = self._memorials.get(memorial_id)
        if memorial is None:
            raise MemorialNotFoundError(memorial_id)
        return memorial.model_copy()
