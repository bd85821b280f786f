"""Tests for the Firestore stores against a mocked async client."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from google.api_core.exceptions import NotFound

from stream_reconciler.domain.exceptions import MemorialNotFoundError, StreamNotFoundError
from stream_reconciler.domain.models.stream import Stream, StreamStatus, VideoProvider
from stream_reconciler.infrastructure.persistence.firestore_repository import (
    FirestoreMemorialRepository,
    FirestoreStreamRepository,
)

STORED = {
    "memorialId": "m1",
    "provider": "cloudflare",
    "status": "live",
    "visibility": "public",
    "providerInputId": "cf-123",
    "startedAt": "2025-06-14T15:00:00Z",
    "consecutiveOfflineChecks": 1,
}


def snapshot(doc_id, data=None):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = data is not None
    snap.to_dict.return_value = data
    return snap


class FakeCollection:
    """Minimal collection/query double recording filters."""

    def __init__(self):
        self.documents = {}
        self.filters = []
        self.results = []

    def document(self, doc_id=None):
        doc_id = doc_id or "auto-id"
        if doc_id not in self.documents:
            ref = MagicMock()
            ref.id = doc_id
            ref.get = AsyncMock(return_value=snapshot(doc_id))
            ref.create = AsyncMock()
            ref.update = AsyncMock()
            ref.delete = AsyncMock()
            self.documents[doc_id] = ref
        return self.documents[doc_id]

    def where(self, filter):
        self.filters.append((filter.field_path, filter.op_string, filter.value))
        return self

    async def stream(self):
        for snap in self.results:
            yield snap


@pytest.fixture
def collection():
    return FakeCollection()


@pytest.fixture
def client(collection):
    client = MagicMock()
    client.collection.return_value = collection
    return client


@pytest.fixture
def store(client):
    return FirestoreStreamRepository(client, collection="livestreams")


@pytest.mark.asyncio
async def test_get_decodes_document(store, client, collection):
    collection.document("s1").get.return_value = snapshot("s1", STORED)

    stream = await store.get("s1")

    client.collection.assert_called_with("livestreams")
    assert stream.id == "s1"
    assert stream.status == StreamStatus.LIVE
    assert stream.consecutive_offline_checks == 1
    assert stream.started_at.year == 2025


@pytest.mark.asyncio
async def test_get_missing(store):
    with pytest.raises(StreamNotFoundError):
        await store.get("missing")


@pytest.mark.asyncio
async def test_create_writes_camel_case_document(store, collection):
    stream_id = await store.create(Stream(memorial_id="m1", provider=VideoProvider.MUX, title="Service"))

    assert stream_id == "auto-id"
    document = collection.document("auto-id").create.await_args.args[0]
    assert document["memorialId"] == "m1"
    assert document["provider"] == "mux"
    assert document["status"] == "scheduled"
    assert "id" not in document
    assert document["createdAt"] == document["updatedAt"]


@pytest.mark.asyncio
async def test_update_sends_only_changed_fields(store, collection):
    ref = collection.document("s1")
    ref.get.return_value = snapshot("s1", {**STORED, "status": "completed"})

    stream = await store.update("s1", {"status": StreamStatus.COMPLETED, "consecutive_offline_checks": 0})

    sent = ref.update.await_args.args[0]
    assert set(sent) == {"status", "consecutiveOfflineChecks", "updatedAt"}
    assert sent["status"] == "completed"
    assert stream.status == StreamStatus.COMPLETED


@pytest.mark.asyncio
async def test_update_missing_document(store, collection):
    collection.document("gone").update.side_effect = NotFound("no document")

    with pytest.raises(StreamNotFoundError):
        await store.update("gone", {"title": "x"})


@pytest.mark.asyncio
async def test_delete_checks_existence(store, collection):
    with pytest.raises(StreamNotFoundError):
        await store.delete("missing")
    collection.document("missing").delete.assert_not_awaited()

    collection.document("s1").get.return_value = snapshot("s1", STORED)
    await store.delete("s1")
    collection.document("s1").delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_list_by_memorial_filters(store, collection):
    collection.results = [snapshot("s1", STORED)]

    streams = await store.list_by_memorial("m1", status=StreamStatus.LIVE)

    assert [s.id for s in streams] == ["s1"]
    assert collection.filters == [("memorialId", "==", "m1"), ("status", "==", "live")]


@pytest.mark.asyncio
async def test_list_by_status_uses_in_filter(store, collection):
    await store.list_by_status([StreamStatus.ARMED, StreamStatus.LIVE])

    assert collection.filters == [("status", "in", ["armed", "live"])]
    assert await store.list_by_status([]) == []


@pytest.mark.asyncio
async def test_find_by_provider_id_falls_back_to_asset(store, collection):
    stream = await store.find_by_provider_id(
        VideoProvider.CLOUDFLARE,
        provider_input_id="cf-123",
        provider_asset_id="video-1",
    )

    assert stream is None
    assert collection.filters == [
        ("provider", "==", "cloudflare"),
        ("providerInputId", "==", "cf-123"),
        ("provider", "==", "cloudflare"),
        ("providerAssetId", "==", "video-1"),
    ]


@pytest.mark.asyncio
async def test_memorial_owner_fields(client, collection):
    collection.document("m1").get.return_value = snapshot("m1", {
        "lovedOneName": "Ada",
        "createdByUserId": "owner-1",
        "funeralDirectorUid": "fd-1",
    })
    memorials = FirestoreMemorialRepository(client)

    memorial = await memorials.get("m1")

    assert memorial.name == "Ada"
    assert memorial.created_by == "owner-1"
    assert memorial.funeral_director_id == "fd-1"
    with pytest.raises(MemorialNotFoundError):
        await memorials.get("m2")
