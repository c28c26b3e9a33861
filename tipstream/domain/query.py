"""Query objects for the read side.

Queries represent requests for data and are dispatched to the query facade.
Unlike events, queries do not mutate state - they return data.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from .events import Address, PostId
from .models import (
    BucketEntity,
    Creator,
    Delegation,
    LeaderboardEntry,
    LeaderboardMetric,
    Page,
    PlatformOverview,
    Post,
    PostDetail,
    PostSortKey,
    TimeBucket,
    Tip,
)

TResponse = TypeVar("TResponse")


class Query(BaseModel, Generic[TResponse]):
    """Base class for all queries in the system.

    Each query is generic over its response type, providing type safety
    for query handlers.

    Type Parameters:
        TResponse: The type returned by query handlers for this query

    Attributes:
        query_id: Unique identifier for this query instance.

    Examples:
        >>> class GetPost(Query[PostDetail | None]):
        ...     post_id: PostId
        >>>
        >>> class TippingQueries(QueryFacade):
        ...     @handles_query
        ...     async def get_post(self, query: GetPost) -> PostDetail | None:
        ...         ...
    """

    model_config = ConfigDict(frozen=True)

    query_id: ULID = Field(default_factory=ULID)


class ListPosts(Query[Page[Post]]):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)
    sort_key: PostSortKey = PostSortKey.RECENT


class GetPost(Query[PostDetail | None]):
    post_id: PostId
    recent_tip_limit: int = Field(default=10, ge=0)


class ListRecentTips(Query[list[Tip]]):
    post_id: PostId
    limit: int = Field(default=10, ge=1)


class ListActiveDelegations(Query[list[Delegation]]):
    post_id: PostId


class ListEligibleDelegations(Query[list[Delegation]]):
    """Active delegations whose threshold the post's engagement has reached."""

    post_id: PostId


class ListCreatorLeaderboard(Query[list[LeaderboardEntry]]):
    metric: LeaderboardMetric = LeaderboardMetric.EARNINGS
    limit: int = Field(default=10, ge=1, le=100)
    window_days: int | None = Field(default=None, ge=1)


class GetTimeBucketedCounts(Query[list[TimeBucket]]):
    entity: BucketEntity
    window_days: int = Field(default=7, ge=1)


class GetCreator(Query[Creator | None]):
    address: Address


class ListTipsByTipper(Query[list[Tip]]):
    tipper: Address
    limit: int = Field(default=50, ge=1)


class ListTrendingPosts(Query[list[Post]]):
    window_hours: int = Field(default=24, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class GetPlatformOverview(Query[PlatformOverview]):
    recent_tip_limit: int = Field(default=5, ge=0)
