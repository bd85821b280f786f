"""Firestore-backed stream and memorial stores."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from google.api_core.exceptions import NotFound
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ...domain.exceptions import (
    InvalidStreamError,
    MemorialNotFoundError,
    StreamNotFoundError,
)
from ...domain.models.memorial import Memorial
from ...domain.models.stream import (
    Stream,
    StreamStatus,
    StreamVisibility,
    VideoProvider,
    encode_fields,
)
from ...domain.ports.memorial_repository import MemorialRepositoryPort
from ...domain.ports.stream_repository import StreamRepositoryPort

logger = logging.getLogger(__name__)


class FirestoreStreamRepository(StreamRepositoryPort):
    """Stream documents in a Firestore collection.

    Updates are field merges (``DocumentReference.update``), so concurrent
    writers touching different fields never clobber each other.
    """

    def __init__(self, client: firestore.AsyncClient, collection: str = "streams"):
        """Initialize the repository.

        Args:
            client: Firestore async client
            collection: Name of the streams collection
        """
        self._client = client
        self._collection = collection

    @property
    def _streams(self):
        return self._client.collection(self._collection)

    async def get(self, stream_id: str) -> Stream:
        snapshot = await self._streams.document(stream_id).get()
        if not snapshot.exists:
            raise StreamNotFoundError(stream_id)
        return Stream.from_document(snapshot.id, snapshot.to_dict())

    async def create(self, stream: Stream) -> str:
        if not stream.memorial_id or stream.provider is None:
            raise InvalidStreamError("Stream requires memorialId and provider")

        ref = self._streams.document(stream.id) if stream.id else self._streams.document()
        now = datetime.now(timezone.utc)
        stored = stream.model_copy(update={"created_at": stream.created_at or now, "updated_at": now})
        await ref.create(stored.to_document())
        logger.info(f"✅ Stream document {ref.id} created in '{self._collection}'")
        return ref.id

    async def update(self, stream_id: str, fields: Dict[str, Any]) -> Stream:
        document = encode_fields({**fields, "updated_at": datetime.now(timezone.utc)})
        try:
            await self._streams.document(stream_id).update(document)
        except NotFound as e:
            raise StreamNotFoundError(stream_id) from e
        return await self.get(stream_id)

    async def delete(self, stream_id: str) -> None:
        ref = self._streams.document(stream_id)
        snapshot = await ref.get()
        if not snapshot.exists:
            raise StreamNotFoundError(stream_id)
        await ref.delete()

    async def _query(self, *filters: FieldFilter) -> List[Stream]:
        query = self._streams
        for field_filter in filters:
            query = query.where(filter=field_filter)
        return [
            Stream.from_document(snapshot.id, snapshot.to_dict())
            async for snapshot in query.stream()
        ]

    async def list_by_memorial(
        self,
        memorial_id: str,
        status: Optional[StreamStatus] = None,
        visibility: Optional[StreamVisibility] = None,
    ) -> List[Stream]:
        filters = [FieldFilter("memorialId", "==", memorial_id)]
        if status is not None:
            filters.append(FieldFilter("status", "==", status.value))
        if visibility is not None:
            filters.append(FieldFilter("visibility", "==", visibility.value))
        return await self._query(*filters)

    async def list_by_status(self, statuses: Iterable[StreamStatus]) -> List[Stream]:
        values = [status.value for status in statuses]
        if not values:
            return []
        return await self._query(FieldFilter("status", "in", values))

    async def find_by_provider_id(
        self,
        provider: VideoProvider,
        provider_input_id: Optional[str] = None,
        provider_asset_id: Optional[str] = None,
    ) -> Optional[Stream]:
        lookups = [
            ("providerInputId", provider_input_id),
            ("providerAssetId", provider_asset_id),
        ]
        for field_name, value in lookups:
            if not value:
                continue
            matches = await self._query(
                FieldFilter("provider", "==", provider.value),
                FieldFilter(field_name, "==", value),
            )
            if len(matches) > 1:
                logger.warning(f"⚠️ {len(matches)} streams share {field_name}={value}; using {matches[0].id}")
            if matches:
                return matches[0]
        return None


class FirestoreMemorialRepository(MemorialRepositoryPort):
    """Reads memorial ownership from the memorials collection."""

    def __init__(self, client: firestore.AsyncClient, collection: str = "memorials"):
        self._client = client
        self._collection = collection

    async def get(self, memorial_id: str) -> Memorial:
        snapshot = await self._client.collection(self._collection).document(memorial_id).get()
        if not snapshot.exists:
            raise MemorialNotFoundError(memorial_id)
        data = snapshot.to_dict() or {}
        return Memorial(
            id=snapshot.id,
            name=data.get("lovedOneName") or data.get("name"),
            created_by=data.get("createdBy") or data.get("createdByUserId") or data.get("creatorUid"),
            funeral_director_id=data.get("funeralDirectorUid") or data.get("funeralDirectorId"),
        )
