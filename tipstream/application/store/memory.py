from collections import defaultdict
from datetime import date, datetime
from typing import Any

from ...domain import (
    BucketEntity,
    ChainEvent,
    Creator,
    Delegation,
    DelegationCloseReason,
    EngagementStats,
    LeaderboardEntry,
    LeaderboardMetric,
    Post,
    PostSortKey,
    TimeBucket,
    Tip,
    TipAmountStats,
    TipOutcome,
)
from .base import ProjectionStore


def _post_sort_key(sort_key: PostSortKey):
    # post ids are chain counters, so ties break numerically
    if sort_key is PostSortKey.TIPS:
        return lambda p: (p.total_tips, int(p.post_id))
    if sort_key is PostSortKey.ENGAGEMENT:
        return lambda p: (p.engagement, p.total_tips, int(p.post_id))
    return lambda p: (p.created_at, int(p.post_id))


class InMemoryProjectionStore(ProjectionStore):
    """In-memory projection store for testing and single-process use.

    Each primitive completes without yielding to the event loop, which makes
    it atomic with respect to concurrent readers. Not suitable for
    production use as all state is lost on restart.
    """

    def __init__(self) -> None:
        self.posts: dict[str, Post] = {}
        self.creators: dict[str, Creator] = {}
        self.delegations: dict[str, Delegation] = {}
        self.tips: dict[str, Tip] = {}
        self.orphans: dict[str, tuple[str, ChainEvent[Any]]] = {}

    async def create_post(self, post: Post) -> bool:
        if post.post_id in self.posts:
            return False
        self.posts[post.post_id] = post
        creator = self._creator(post.creator, post.created_at)
        self.creators[post.creator] = creator.model_copy(
            update={"post_count": creator.post_count + 1}
        )
        return True

    async def increment_engagement(self, post_id: str, by: int = 1) -> Post | None:
        post = self.posts.get(post_id)
        if post is None:
            return None
        post = post.model_copy(update={"engagement": post.engagement + by})
        self.posts[post_id] = post
        return post

    async def apply_tip(self, tip: Tip) -> TipOutcome:
        if tip.tip_id in self.tips:
            return TipOutcome.DUPLICATE
        post = self.posts.get(tip.post_id)
        if post is None:
            return TipOutcome.MISSING_POST

        self.tips[tip.tip_id] = tip
        self.posts[tip.post_id] = post.model_copy(
            update={
                "total_tips": post.total_tips + tip.amount,
                "tip_count": post.tip_count + 1,
            }
        )
        creator = self._creator(tip.creator, tip.tipped_at)
        self.creators[tip.creator] = creator.model_copy(
            update={
                "total_earnings": creator.total_earnings + tip.amount,
                "tip_count": creator.tip_count + 1,
            }
        )
        return TipOutcome.APPLIED

    async def insert_delegation(self, delegation: Delegation) -> bool:
        if delegation.delegation_id in self.delegations:
            return False
        self.delegations[delegation.delegation_id] = delegation
        return True

    async def close_delegation(
        self,
        delegation_id: str,
        reason: DelegationCloseReason,
        closed_by_event: str,
        closed_at: datetime,
    ) -> bool:
        delegation = self.delegations.get(delegation_id)
        if delegation is None or not delegation.active:
            return False
        self.delegations[delegation_id] = delegation.model_copy(
            update={
                "active": False,
                "close_reason": reason,
                "closed_by_event": closed_by_event,
                "closed_at": closed_at,
            }
        )
        return True

    async def park_orphan(self, event: ChainEvent[Any], post_id: str) -> bool:
        if event.event_id in self.orphans:
            return False
        self.orphans[event.event_id] = (post_id, event)
        return True

    async def take_orphans(self, post_id: str) -> list[ChainEvent[Any]]:
        parked = [event for pid, event in self.orphans.values() if pid == post_id]
        return sorted(parked, key=lambda e: (e.block_number, e.log_index))

    async def discard_orphan(self, event_id: str) -> None:
        self.orphans.pop(event_id, None)

    async def get_post(self, post_id: str) -> Post | None:
        return self.posts.get(post_id)

    async def get_creator(self, address: str) -> Creator | None:
        return self.creators.get(address.lower())

    async def get_delegation(self, delegation_id: str) -> Delegation | None:
        return self.delegations.get(delegation_id)

    async def find_posts(
        self,
        sort_key: PostSortKey,
        skip: int = 0,
        limit: int | None = None,
        created_since: datetime | None = None,
    ) -> list[Post]:
        posts = [
            p for p in self.posts.values() if created_since is None or p.created_at >= created_since
        ]
        posts.sort(key=_post_sort_key(sort_key), reverse=True)
        end = None if limit is None else skip + limit
        return posts[skip:end]

    async def find_tips(
        self,
        post_id: str | None = None,
        tipper: str | None = None,
        limit: int | None = None,
    ) -> list[Tip]:
        tips = [
            t
            for t in self.tips.values()
            if (post_id is None or t.post_id == post_id)
            and (tipper is None or t.tipper == tipper.lower())
        ]
        tips.sort(key=lambda t: (t.block_number, t.log_index, t.tip_id), reverse=True)
        return tips[:limit]

    async def find_delegations(self, post_id: str, active_only: bool = True) -> list[Delegation]:
        delegations = [
            d
            for d in self.delegations.values()
            if d.post_id == post_id and (d.active or not active_only)
        ]
        delegations.sort(key=lambda d: (d.created_at, d.delegation_id))
        return delegations

    async def leaderboard(
        self,
        metric: LeaderboardMetric,
        limit: int,
        since: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        if metric is LeaderboardMetric.TIPS_SENT:
            entries = self._tip_totals(lambda t: t.tipper, since)
        elif since is None:
            entries = [
                LeaderboardEntry(
                    address=c.address,
                    total_amount=c.total_earnings,
                    tip_count=c.tip_count,
                    post_count=c.post_count,
                )
                for c in self.creators.values()
            ]
        elif metric is LeaderboardMetric.POSTS:
            counts: dict[str, int] = defaultdict(int)
            for post in self.posts.values():
                if post.created_at >= since:
                    counts[post.creator] += 1
            entries = [LeaderboardEntry(address=a, post_count=n) for a, n in counts.items()]
        else:
            entries = self._tip_totals(lambda t: t.creator, since)

        ranking = {
            LeaderboardMetric.EARNINGS: lambda e: (e.total_amount, e.tip_count),
            LeaderboardMetric.TIPS_SENT: lambda e: (e.total_amount, e.tip_count),
            LeaderboardMetric.TIPS_RECEIVED: lambda e: (e.tip_count, e.total_amount),
            LeaderboardMetric.POSTS: lambda e: (e.post_count, e.total_amount),
        }[metric]
        # Stable sorts: address ascending breaks ties
        entries.sort(key=lambda e: e.address)
        entries.sort(key=ranking, reverse=True)
        return entries[:limit]

    async def bucket_counts(self, entity: BucketEntity, since: datetime) -> list[TimeBucket]:
        counts: dict[date, int] = defaultdict(int)
        amounts: dict[date, int] = defaultdict(int)
        if entity is BucketEntity.TIPS:
            for tip in self.tips.values():
                if tip.tipped_at >= since:
                    counts[tip.tipped_at.date()] += 1
                    amounts[tip.tipped_at.date()] += tip.amount
        elif entity is BucketEntity.POSTS:
            for post in self.posts.values():
                if post.created_at >= since:
                    counts[post.created_at.date()] += 1
        else:
            for creator in self.creators.values():
                if creator.first_seen_at is not None and creator.first_seen_at >= since:
                    counts[creator.first_seen_at.date()] += 1

        return [
            TimeBucket(day=day, count=counts[day], total_amount=amounts[day])
            for day in sorted(counts)
        ]

    async def count_posts(self) -> int:
        return len(self.posts)

    async def count_tips(self) -> int:
        return len(self.tips)

    async def count_creators(self) -> int:
        return len(self.creators)

    async def count_orphans(self) -> int:
        return len(self.orphans)

    async def total_earnings(self) -> int:
        return sum(c.total_earnings for c in self.creators.values())

    async def engagement_stats(self) -> EngagementStats:
        values = [p.engagement for p in self.posts.values()]
        if not values:
            return EngagementStats()
        return EngagementStats(
            average=sum(values) / len(values),
            maximum=max(values),
            total=sum(values),
        )

    async def tip_amount_stats(self) -> TipAmountStats:
        amounts = [t.amount for t in self.tips.values()]
        if not amounts:
            return TipAmountStats()
        return TipAmountStats(
            count=len(amounts),
            total=sum(amounts),
            average=sum(amounts) // len(amounts),
            maximum=max(amounts),
        )

    def _creator(self, address: str, seen_at: datetime) -> Creator:
        creator = self.creators.get(address)
        if creator is None:
            creator = Creator(address=address, first_seen_at=seen_at)
            self.creators[address] = creator
        return creator

    def _tip_totals(self, key, since: datetime | None) -> list[LeaderboardEntry]:
        amounts: dict[str, int] = defaultdict(int)
        counts: dict[str, int] = defaultdict(int)
        for tip in self.tips.values():
            if since is None or tip.tipped_at >= since:
                amounts[key(tip)] += tip.amount
                counts[key(tip)] += 1
        return [
            LeaderboardEntry(address=a, total_amount=amounts[a], tip_count=counts[a])
            for a in amounts
        ]
