"""Tunables for the reconciliation engine."""

from pydantic import BaseModel, Field


class ReconciliationPolicy(BaseModel):
    """Thresholds and time limits applied by the reconciliation engine."""

    offline_check_threshold: int = Field(
        default=3, ge=1, description="Consecutive clean negative live checks that end a session"
    )
    recording_timeout_seconds: float = Field(
        default=1800.0, gt=0, description="How long after endedAt to wait for a recording"
    )
    recording_match_tolerance_seconds: float = Field(
        default=120.0, ge=0, description="Allowed lead of asset creation before startedAt"
    )
    recording_poll_initial_delay_seconds: float = Field(default=5.0, gt=0)
    recording_poll_max_delay_seconds: float = Field(default=60.0, gt=0)
