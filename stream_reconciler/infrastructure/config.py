"""Environment configuration for the stream reconciler."""

import logging
import os
from typing import Optional

from pydantic import BaseModel, Field

from ..domain.models.policy import ReconciliationPolicy
from .video.base_adapter import ProviderHttpConfig
from .video.cloudflare_adapter import CloudflareConfig
from .video.mux_adapter import MuxConfig

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid value for {name}: {raw!r}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


class ReconcilerConfig(BaseModel):
    """Every knob of the service, resolved once at start-up."""

    cloudflare: Optional[CloudflareConfig] = None
    mux: Optional[MuxConfig] = None
    http: ProviderHttpConfig = Field(default_factory=ProviderHttpConfig)
    policy: ReconciliationPolicy = Field(default_factory=ReconciliationPolicy)

    poll_interval_seconds: float = 30.0
    webhook_dedup_ttl_seconds: float = 3600.0
    webhook_dedup_max_entries: int = 10000

    store_backend: str = "memory"
    memorial_seed_file: Optional[str] = None
    firestore_project: Optional[str] = None
    firestore_streams_collection: str = "streams"
    firestore_memorials_collection: str = "memorials"

    @classmethod
    def from_env(cls) -> "ReconcilerConfig":
        """Create configuration from environment variables."""
        cloudflare = None
        account_id = os.getenv("CLOUDFLARE_ACCOUNT_ID", "")
        api_token = os.getenv("CLOUDFLARE_API_TOKEN", "")
        if account_id and api_token:
            cloudflare = CloudflareConfig(
                account_id=account_id,
                api_token=api_token,
                customer_code=os.getenv("CLOUDFLARE_CUSTOMER_CODE") or None,
                recording_timeout_seconds=_env_int("CLOUDFLARE_RECORDING_TIMEOUT_SECONDS", 60),
            )
            logger.info(f"✅ Cloudflare Stream configured for account {account_id[:6]}…")
        else:
            logger.warning("⚠️ CLOUDFLARE_ACCOUNT_ID / CLOUDFLARE_API_TOKEN not set - Cloudflare disabled")

        mux = None
        token_id = os.getenv("MUX_TOKEN_ID", "")
        token_secret = os.getenv("MUX_TOKEN_SECRET", "")
        if token_id and token_secret:
            mux = MuxConfig(
                token_id=token_id,
                token_secret=token_secret,
                reconnect_window_seconds=_env_int("MUX_RECONNECT_WINDOW_SECONDS", 60),
            )
            logger.info("✅ Mux configured")
        else:
            logger.warning("⚠️ MUX_TOKEN_ID / MUX_TOKEN_SECRET not set - Mux disabled")

        store_backend = os.getenv("STREAM_STORE_BACKEND", "memory").lower()
        if store_backend not in ("memory", "firestore"):
            logger.warning(f"⚠️ Unknown STREAM_STORE_BACKEND {store_backend!r}; using memory")
            store_backend = "memory"
        logger.info(f"🗄️ Stream store backend: {store_backend}")

        return cls(
            cloudflare=cloudflare,
            mux=mux,
            http=ProviderHttpConfig(
                timeout=_env_float("PROVIDER_TIMEOUT_SECONDS", 10.0),
                max_retries=_env_int("PROVIDER_MAX_RETRIES", 3),
                retry_delay=_env_float("PROVIDER_RETRY_DELAY_SECONDS", 0.5),
            ),
            policy=ReconciliationPolicy(
                offline_check_threshold=_env_int("OFFLINE_CHECK_THRESHOLD", 3),
                recording_timeout_seconds=_env_float("RECORDING_TIMEOUT_SECONDS", 1800.0),
                recording_match_tolerance_seconds=_env_float("RECORDING_MATCH_TOLERANCE_SECONDS", 120.0),
                recording_poll_initial_delay_seconds=_env_float("RECORDING_POLL_INITIAL_DELAY_SECONDS", 5.0),
                recording_poll_max_delay_seconds=_env_float("RECORDING_POLL_MAX_DELAY_SECONDS", 60.0),
            ),
            poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", 30.0),
            webhook_dedup_ttl_seconds=_env_float("WEBHOOK_DEDUP_TTL_SECONDS", 3600.0),
            webhook_dedup_max_entries=_env_int("WEBHOOK_DEDUP_MAX_ENTRIES", 10000),
            store_backend=store_backend,
            memorial_seed_file=os.getenv("MEMORIAL_SEED_FILE") or None,
            firestore_project=os.getenv("FIRESTORE_PROJECT") or None,
            firestore_streams_collection=os.getenv("FIRESTORE_STREAMS_COLLECTION", "streams"),
            firestore_memorials_collection=os.getenv("FIRESTORE_MEMORIALS_COLLECTION", "memorials"),
        )
