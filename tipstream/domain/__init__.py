"""Domain primitives for the tipping projection.

- ChainEvent: envelope of one contract log with its chain coordinates
- PostCreated / TipSent / AutoTipEnabled / AutoTipRevoked / AutoTipExecuted:
  the closed set of payloads
- Post / Creator / Delegation / Tip: read-model records
- Query: base class for read requests
"""

from .event import ChainEvent, as_utc, make_event_id, utc_now
from .events import (
    EVENT_KINDS,
    PAYLOAD_ADAPTER,
    PAYLOAD_TYPES,
    AnyPayload,
    AutoTipEnabled,
    AutoTipExecuted,
    AutoTipRevoked,
    EventPayload,
    PostCreated,
    TipSent,
)
from .exceptions import (
    ChainSourceError,
    MalformedEventError,
    ProjectionStoreError,
    TipstreamError,
)
from .models import (
    BucketEntity,
    Creator,
    Delegation,
    DelegationCloseReason,
    EngagementStats,
    LeaderboardEntry,
    LeaderboardMetric,
    Page,
    PlatformOverview,
    Post,
    PostDetail,
    PostSortKey,
    TimeBucket,
    Tip,
    TipAmountStats,
    TipOutcome,
)
from .query import Query

__all__ = [
    # Events
    "ChainEvent",
    "make_event_id",
    "utc_now",
    "as_utc",
    "EventPayload",
    "AnyPayload",
    "PAYLOAD_ADAPTER",
    "PAYLOAD_TYPES",
    "EVENT_KINDS",
    "PostCreated",
    "TipSent",
    "AutoTipEnabled",
    "AutoTipRevoked",
    "AutoTipExecuted",
    # Records
    "Post",
    "Creator",
    "Tip",
    "Delegation",
    "DelegationCloseReason",
    "TipOutcome",
    "PostSortKey",
    "LeaderboardMetric",
    "BucketEntity",
    "Page",
    "PostDetail",
    "LeaderboardEntry",
    "TimeBucket",
    "EngagementStats",
    "TipAmountStats",
    "PlatformOverview",
    # Queries
    "Query",
    # Errors
    "TipstreamError",
    "MalformedEventError",
    "ProjectionStoreError",
    "ChainSourceError",
]
