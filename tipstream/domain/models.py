"""Read-model records owned by the projection store."""

from datetime import date
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .event import UtcDatetime
from .events import Address, Amount, PostId

T = TypeVar("T")


class Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class Post(Record):
    """One piece of content and its running tip totals."""

    post_id: PostId
    creator: Address
    content: str
    created_at: UtcDatetime
    total_tips: Amount = 0
    tip_count: int = Field(default=0, ge=0)
    engagement: int = Field(default=0, ge=0)


class Creator(Record):
    """Earnings and activity aggregated per address."""

    address: Address
    total_earnings: Amount = 0
    post_count: int = Field(default=0, ge=0)
    tip_count: int = Field(default=0, ge=0)
    first_seen_at: UtcDatetime | None = None


class Tip(Record):
    """Immutable entry of the tip log.

    ``tip_id`` is the id of the event that produced the tip and doubles as
    the idempotency key of its application.
    """

    tip_id: str
    post_id: PostId
    tipper: Address
    creator: Address
    amount: Amount
    tipped_at: UtcDatetime
    block_number: int = 0
    log_index: int = 0
    delegation_id: str | None = None


class DelegationCloseReason(str, Enum):
    REVOKED = "revoked"
    EXECUTED = "executed"


class Delegation(Record):
    """A standing authorisation to tip a post once it reaches a threshold."""

    delegation_id: str
    post_id: PostId
    tipper: Address
    threshold: Amount
    amount: Amount
    active: bool = True
    created_at: UtcDatetime
    created_by_event: str
    closed_at: UtcDatetime | None = None
    closed_by_event: str | None = None
    close_reason: DelegationCloseReason | None = None


class TipOutcome(str, Enum):
    """Result of asking the store to apply a tip."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    MISSING_POST = "missing_post"


class PostSortKey(str, Enum):
    RECENT = "recent"
    TIPS = "tips"
    ENGAGEMENT = "engagement"


class LeaderboardMetric(str, Enum):
    EARNINGS = "earnings"
    TIPS_RECEIVED = "tips_received"
    POSTS = "posts"
    TIPS_SENT = "tips_sent"


class BucketEntity(str, Enum):
    POSTS = "posts"
    TIPS = "tips"
    CREATORS = "creators"


class Page(Record, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total // self.page_size)


class PostDetail(Record):
    post: Post
    recent_tips: list[Tip]
    active_delegations: list[Delegation]


class LeaderboardEntry(Record):
    """One row of a creator / tipper ranking.

    Fields not measured by the requested metric are left at zero.
    """

    address: Address
    total_amount: Amount = 0
    tip_count: int = 0
    post_count: int = 0


class TimeBucket(Record):
    day: date
    count: int
    total_amount: Amount = 0


class EngagementStats(Record):
    average: float = 0.0
    maximum: int = 0
    total: int = 0


class TipAmountStats(Record):
    """Tip log amounts in minor units; ``average`` is rounded down."""

    count: int = 0
    total: Amount = 0
    average: Amount = 0
    maximum: Amount = 0


class PlatformOverview(Record):
    total_posts: int
    total_tips: int
    total_creators: int
    total_earnings: Amount
    engagement: EngagementStats
    tip_amounts: TipAmountStats
    pending_orphans: int
    recent_tips: list[Tip]
