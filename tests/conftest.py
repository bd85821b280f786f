"""Test configuration and common fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from stream_reconciler.domain.models.memorial import Actor, ActorRole, Memorial
from stream_reconciler.domain.models.policy import ReconciliationPolicy
from stream_reconciler.domain.models.provider_state import (
    LiveInputAllocation,
    LiveInputRequest,
    LiveStatus,
    RecordingAsset,
    RecordingState,
    ResourceKind,
)
from stream_reconciler.domain.models.stream import IngestCredentials, Stream, VideoProvider
from stream_reconciler.domain.ports.video_provider import VideoProviderPort
from stream_reconciler.domain.services.reconciliation_service import ReconciliationService
from stream_reconciler.domain.services.stream_leases import StreamLeaseManager
from stream_reconciler.domain.services.stream_lifecycle_service import StreamLifecycleService
from stream_reconciler.domain.services.webhook_ingestion_service import WebhookIngestionService
from stream_reconciler.infrastructure.persistence.memory_repository import (
    InMemoryMemorialRepository,
    InMemoryStreamRepository,
)

T0 = datetime(2025, 6, 14, 15, 0, tzinfo=timezone.utc)

MEMORIAL_ID = "memorial-1"
OWNER_UID = "owner-1"
DIRECTOR_UID = "director-1"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeVideoProvider(VideoProviderPort):
    """Scripted video provider."""

    def __init__(self, provider: VideoProvider = VideoProvider.CLOUDFLARE):
        self._provider = provider
        self.live = LiveStatus(is_live=False, vendor_state="disconnected")
        self.recordings: List[RecordingAsset] = []
        self.create_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.created: List[LiveInputRequest] = []
        self.deleted: List[tuple] = []
        self.live_checks = 0
        self.list_calls = 0
        self.initialized = False

    async def initialize(self) -> None:
        self.initialized = True

    async def shutdown(self) -> None:
        self.initialized = False

    async def create_live_input(self, request: LiveInputRequest) -> LiveInputAllocation:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(request)
        number = len(self.created)
        return LiveInputAllocation(
            provider_input_id=f"cf-{number}23",
            ingest_credentials=IngestCredentials(
                ingest_url="rtmps://live.example.com:443/live/",
                stream_key=f"secret-stream-key-{number}",
                whip_url=f"https://live.example.com/whip/cf-{number}23",
            ),
        )

    async def get_live_status(self, provider_input_id: str) -> LiveStatus:
        self.live_checks += 1
        return self.live

    async def list_recordings(self, provider_input_id: str) -> List[RecordingAsset]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return sorted(self.recordings, key=lambda asset: asset.created_at, reverse=True)

    async def delete_resource(self, resource_id: str, kind: ResourceKind) -> bool:
        self.deleted.append((resource_id, kind))
        return True

    @property
    def provider(self) -> VideoProvider:
        return self._provider

    def go_live(self) -> None:
        self.live = LiveStatus(is_live=True, vendor_state="connected")

    def go_offline(self) -> None:
        self.live = LiveStatus(is_live=False, vendor_state="disconnected")

    def go_unreadable(self, warning: str = "cloudflare returned 503") -> None:
        self.live = LiveStatus(is_live=False, warning=warning)


def make_asset(
    asset_id: str,
    created_at: datetime,
    state: RecordingState = RecordingState.READY,
    duration: Optional[float] = 1800.0,
) -> RecordingAsset:
    """Recorded asset with conventional URLs."""
    ready = state == RecordingState.READY
    return RecordingAsset(
        asset_id=asset_id,
        state=state,
        playback_url=f"https://videodelivery.example.com/{asset_id}.m3u8" if ready else None,
        duration=duration,
        thumbnail_url=f"https://videodelivery.example.com/{asset_id}/thumb.jpg" if ready else None,
        created_at=created_at,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> ReconciliationPolicy:
    return ReconciliationPolicy(
        offline_check_threshold=3,
        recording_timeout_seconds=1800,
        recording_match_tolerance_seconds=120,
        recording_poll_initial_delay_seconds=5,
        recording_poll_max_delay_seconds=60,
    )


@pytest.fixture
def memorial() -> Memorial:
    return Memorial(
        id=MEMORIAL_ID,
        name="In memory of Ada",
        created_by=OWNER_UID,
        funeral_director_id=DIRECTOR_UID,
    )


@pytest.fixture
def memorials(memorial: Memorial) -> InMemoryMemorialRepository:
    return InMemoryMemorialRepository([memorial, Memorial(id="memorial-2", created_by="someone-else")])


@pytest.fixture
def repository() -> InMemoryStreamRepository:
    return InMemoryStreamRepository()


@pytest.fixture
def video_provider() -> FakeVideoProvider:
    return FakeVideoProvider()


@pytest.fixture
def providers(video_provider: FakeVideoProvider) -> Dict[VideoProvider, VideoProviderPort]:
    return {VideoProvider.CLOUDFLARE: video_provider}


@pytest.fixture
def leases() -> StreamLeaseManager:
    return StreamLeaseManager()


@pytest.fixture
def engine(repository, memorials, providers, leases, policy, clock) -> ReconciliationService:
    return ReconciliationService(
        repository,
        memorials,
        providers,
        leases=leases,
        policy=policy,
        clock=clock,
    )


@pytest.fixture
def lifecycle(repository, memorials, providers, leases) -> StreamLifecycleService:
    return StreamLifecycleService(repository, memorials, providers, leases)


@pytest.fixture
def webhooks(repository, engine) -> WebhookIngestionService:
    return WebhookIngestionService(repository, engine, dedup_ttl=60, dedup_maxsize=100)


@pytest.fixture
def owner() -> Actor:
    return Actor(uid=OWNER_UID, role=ActorRole.OWNER)


@pytest.fixture
def admin() -> Actor:
    return Actor(uid="admin-9", role=ActorRole.ADMIN)


@pytest.fixture
def stranger() -> Actor:
    return Actor(uid="viewer-7", role=ActorRole.FAMILY_MEMBER)


@pytest_asyncio.fixture
async def armed_stream(lifecycle: StreamLifecycleService) -> Stream:
    """Stream that has ingest credentials and waits for the broadcaster."""
    return await lifecycle.create_stream(
        MEMORIAL_ID,
        VideoProvider.CLOUDFLARE,
        title="Funeral service",
        created_by=OWNER_UID,
    )


@pytest_asyncio.fixture
async def live_stream(armed_stream: Stream, engine: ReconciliationService, video_provider: FakeVideoProvider) -> Stream:
    """Stream that went live at T0."""
    video_provider.go_live()
    stream = await engine.reconcile(armed_stream.id)
    video_provider.go_offline()
    return stream
