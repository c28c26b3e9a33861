"""Read-only query facade over the projection store.

Query objects (``tipstream.domain.query``) are routed to ``@handles_query``
methods by their type annotation, in the same way events are routed to
reducers.
"""

import inspect
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING, ClassVar, TypeVar

from ...domain import (
    Creator,
    Delegation,
    LeaderboardEntry,
    Page,
    PlatformOverview,
    Post,
    PostDetail,
    PostSortKey,
    Query,
    TimeBucket,
    Tip,
    utc_now,
)
from ...domain.query import (
    GetCreator,
    GetPlatformOverview,
    GetPost,
    GetTimeBucketedCounts,
    ListActiveDelegations,
    ListCreatorLeaderboard,
    ListEligibleDelegations,
    ListPosts,
    ListRecentTips,
    ListTipsByTipper,
    ListTrendingPosts,
)
from ...routing import handles_query, setup_query_routing
from ..store import ProjectionStore

if TYPE_CHECKING:
    from ...routing import MessageRouter

T = TypeVar("T")

Clock = Callable[[], datetime]


class QueryFacade:
    """Base class for objects that answer queries.

    Subclasses mark handler methods with ``@handles_query``; the routing
    table is built when the subclass is defined.

    Raises:
        NotImplementedError: From ``query()`` for query types without a
            handler.
    """

    _query_router: ClassVar["MessageRouter"]

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        cls._query_router = setup_query_routing(cls)

    async def query(self, query: Query[T]) -> T:
        """Route a query to its registered handler method.

        Args:
            query: The query to handle.

        Returns:
            The query result as declared by the Query's type parameter.
        """
        result = self._query_router.route(self, query)
        if inspect.iscoroutine(result):
            result = await result
        return result  # type: ignore[return-value]


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class TippingQueries(QueryFacade):
    """Read models of the tipping platform.

    None of the handlers mutate state. Time windows are computed from the
    injected clock at call time, in UTC.

    Example:
        >>> queries = TippingQueries(store)
        >>> page = await queries.query(ListPosts(page=1, page_size=20))
        >>> detail = await queries.query(GetPost(post_id="1"))
    """

    def __init__(self, store: ProjectionStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    @handles_query
    async def list_posts(self, query: ListPosts) -> Page[Post]:
        skip = (query.page - 1) * query.page_size
        items = await self.store.find_posts(query.sort_key, skip=skip, limit=query.page_size)
        return Page[Post](
            items=items,
            page=query.page,
            page_size=query.page_size,
            total=await self.store.count_posts(),
        )

    @handles_query
    async def get_post(self, query: GetPost) -> PostDetail | None:
        post = await self.store.get_post(query.post_id)
        if post is None:
            return None
        recent_tips = []
        if query.recent_tip_limit:
            recent_tips = await self.store.find_tips(
                post_id=query.post_id, limit=query.recent_tip_limit
            )
        return PostDetail(
            post=post,
            recent_tips=recent_tips,
            active_delegations=await self.store.find_delegations(query.post_id),
        )

    @handles_query
    async def list_recent_tips(self, query: ListRecentTips) -> list[Tip]:
        return await self.store.find_tips(post_id=query.post_id, limit=query.limit)

    @handles_query
    async def list_active_delegations(self, query: ListActiveDelegations) -> list[Delegation]:
        return await self.store.find_delegations(query.post_id)

    @handles_query
    async def list_eligible_delegations(
        self, query: ListEligibleDelegations
    ) -> list[Delegation]:
        post = await self.store.get_post(query.post_id)
        if post is None:
            return []
        delegations = await self.store.find_delegations(query.post_id)
        return [d for d in delegations if post.engagement >= d.threshold]

    @handles_query
    async def list_creator_leaderboard(
        self, query: ListCreatorLeaderboard
    ) -> list[LeaderboardEntry]:
        since = None
        if query.window_days is not None:
            since = self.clock() - timedelta(days=query.window_days)
        return await self.store.leaderboard(query.metric, query.limit, since=since)

    @handles_query
    async def get_time_bucketed_counts(self, query: GetTimeBucketedCounts) -> list[TimeBucket]:
        """Daily counts for the last ``window_days`` UTC days, today included.

        Days without activity are returned with zero counts so the series
        always has exactly ``window_days`` entries.
        """
        today = self.clock().astimezone(timezone.utc).date()
        first_day = today - timedelta(days=query.window_days - 1)
        found = {
            bucket.day: bucket
            for bucket in await self.store.bucket_counts(query.entity, _day_start(first_day))
        }
        return [
            found.get(day, TimeBucket(day=day, count=0))
            for day in (first_day + timedelta(days=n) for n in range(query.window_days))
        ]

    @handles_query
    async def get_creator(self, query: GetCreator) -> Creator | None:
        return await self.store.get_creator(query.address)

    @handles_query
    async def list_tips_by_tipper(self, query: ListTipsByTipper) -> list[Tip]:
        return await self.store.find_tips(tipper=query.tipper, limit=query.limit)

    @handles_query
    async def list_trending_posts(self, query: ListTrendingPosts) -> list[Post]:
        since = self.clock() - timedelta(hours=query.window_hours)
        return await self.store.find_posts(
            PostSortKey.ENGAGEMENT, limit=query.limit, created_since=since
        )

    @handles_query
    async def get_platform_overview(self, query: GetPlatformOverview) -> PlatformOverview:
        recent_tips = []
        if query.recent_tip_limit:
            recent_tips = await self.store.find_tips(limit=query.recent_tip_limit)
        return PlatformOverview(
            total_posts=await self.store.count_posts(),
            total_tips=await self.store.count_tips(),
            total_creators=await self.store.count_creators(),
            total_earnings=await self.store.total_earnings(),
            engagement=await self.store.engagement_stats(),
            tip_amounts=await self.store.tip_amount_stats(),
            pending_orphans=await self.store.count_orphans(),
            recent_tips=recent_tips,
        )
