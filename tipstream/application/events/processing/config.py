"""Ingestion configuration using pydantic-settings."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class IngestionConfiguration(BaseSettings):
    """Settings for the ingestion loop and the projector.

    All settings can be configured via environment variables with the
    TIPSTREAM_INGEST_ prefix. For example:
    - TIPSTREAM_INGEST_CHECKPOINT_EVERY=500
    - TIPSTREAM_INGEST_MAX_ATTEMPTS=10
    - TIPSTREAM_INGEST_ORPHAN_POLICY=drop

    Attributes:
        source_name: Checkpoint key of the event source.
        checkpoint_every: Persist a checkpoint after this many events
            (a final checkpoint is always written on shutdown).
        retry_initial_seconds: First backoff delay after a storage failure.
        retry_max_seconds: Upper bound of the exponential backoff delay.
        max_attempts: Give up and re-raise after this many attempts of one
            event. None retries until the write succeeds or the process is
            stopped.
        orphan_policy: What to do with tips that reference an unknown post:
            "buffer" parks them until the post appears, "drop" discards them.
            Both log the inconsistency.
    """

    source_name: str = "social-tipping"
    checkpoint_every: int = Field(default=100, ge=1)
    retry_initial_seconds: float = Field(default=0.5, gt=0)
    retry_max_seconds: float = Field(default=30.0, gt=0)
    max_attempts: int | None = Field(default=None, ge=1)
    orphan_policy: Literal["buffer", "drop"] = "buffer"

    model_config = {"env_prefix": "TIPSTREAM_INGEST_"}
