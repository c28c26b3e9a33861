"""Abstract projection store with pluggable backends."""

from abc import ABC, abstractmethod
from datetime import datetime
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


class ProjectionStore(ABC):
    """Keyed storage for the tipping read models.

    The store owns every projected record: posts, creators, delegations,
    the immutable tip log and the buffer of orphaned events. Ingestion is
    the only writer; the query facade only reads.

    Every write primitive is a single atomic step with respect to the
    records it touches, so a reducer never leaves a half-applied event
    behind:

    - ``create_post`` inserts the post only if it is absent and bumps the
      creator's post count only when it did
    - ``apply_tip`` records the tip in the log and increments the post and
      creator totals, or does nothing at all
    - ``close_delegation`` is a compare-and-set from active to inactive

    Backends raise ``ProjectionStoreError`` (or their driver's errors) for
    storage failures; expected outcomes such as duplicates are reported
    through return values, never exceptions.

    Example:
        >>> store = ProjectionStore.in_memory()
        >>> await store.create_post(post)
        True
        >>> await store.apply_tip(tip)
        <TipOutcome.APPLIED: 'applied'>
    """

    @staticmethod
    def in_memory() -> "ProjectionStore":
        """Create an in-memory store for development/testing."""
        from .memory import InMemoryProjectionStore

        return InMemoryProjectionStore()

    # ========== Write primitives ==========

    @abstractmethod
    async def create_post(self, post: Post) -> bool:
        """Insert a post unless one with the same id exists.

        When the post is inserted, its creator is upserted with
        ``post_count`` incremented by one. Existing posts are never
        overwritten.

        Returns:
            True if the post was created, False if it already existed.
        """
        ...

    @abstractmethod
    async def increment_engagement(self, post_id: str, by: int = 1) -> Post | None:
        """Atomically add ``by`` to a post's engagement counter.

        Returns:
            The updated post, or None if the post does not exist.
        """
        ...

    @abstractmethod
    async def apply_tip(self, tip: Tip) -> TipOutcome:
        """Record a tip and fold it into the post and creator totals.

        Returns:
            - ``APPLIED`` when the tip was recorded and totals incremented
            - ``DUPLICATE`` when ``tip.tip_id`` is already in the tip log
            - ``MISSING_POST`` when the post does not exist (nothing written)
        """
        ...

    @abstractmethod
    async def insert_delegation(self, delegation: Delegation) -> bool:
        """Insert a delegation keyed by its id.

        Returns:
            True if inserted, False if the id was already present.
        """
        ...

    @abstractmethod
    async def close_delegation(
        self,
        delegation_id: str,
        reason: DelegationCloseReason,
        closed_by_event: str,
        closed_at: datetime,
    ) -> bool:
        """Compare-and-set a delegation from active to inactive.

        Returns:
            True if this call closed the delegation, False if it was
            missing or already inactive.
        """
        ...

    @abstractmethod
    async def park_orphan(self, event: ChainEvent[Any], post_id: str) -> bool:
        """Buffer an event that references a post not seen yet.

        Returns:
            True if buffered, False if the event id was already parked.
        """
        ...

    @abstractmethod
    async def take_orphans(self, post_id: str) -> list[ChainEvent[Any]]:
        """Return the events parked for a post in chain order.

        Events stay buffered until ``discard_orphan`` is called, so a crash
        while replaying them loses nothing.
        """
        ...

    @abstractmethod
    async def discard_orphan(self, event_id: str) -> None:
        """Remove a parked event once it has been applied."""
        ...

    # ========== Reads ==========

    @abstractmethod
    async def get_post(self, post_id: str) -> Post | None: ...

    @abstractmethod
    async def get_creator(self, address: str) -> Creator | None: ...

    @abstractmethod
    async def get_delegation(self, delegation_id: str) -> Delegation | None: ...

    @abstractmethod
    async def find_posts(
        self,
        sort_key: PostSortKey,
        skip: int = 0,
        limit: int | None = None,
        created_since: datetime | None = None,
    ) -> list[Post]:
        """List posts ordered by ``sort_key`` (descending).

        ``RECENT`` orders by creation time, ``TIPS`` by total tipped amount,
        ``ENGAGEMENT`` by engagement then total tips. Ties are broken by
        post id.
        """
        ...

    @abstractmethod
    async def find_tips(
        self,
        post_id: str | None = None,
        tipper: str | None = None,
        limit: int | None = None,
    ) -> list[Tip]:
        """List tips newest first (by block, then log index)."""
        ...

    @abstractmethod
    async def find_delegations(self, post_id: str, active_only: bool = True) -> list[Delegation]:
        """List a post's delegations in creation order."""
        ...

    @abstractmethod
    async def leaderboard(
        self,
        metric: LeaderboardMetric,
        limit: int,
        since: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """Rank addresses by ``metric``.

        Without ``since``, creator metrics come from the running creator
        totals. With ``since``, they are aggregated from the tip log and
        posts inside the window. ``TIPS_SENT`` ranks tippers from the tip
        log.
        """
        ...

    @abstractmethod
    async def bucket_counts(self, entity: BucketEntity, since: datetime) -> list[TimeBucket]:
        """Count records per UTC day from ``since`` onwards.

        Only days with at least one record are returned, oldest first.
        """
        ...

    @abstractmethod
    async def count_posts(self) -> int: ...

    @abstractmethod
    async def count_tips(self) -> int: ...

    @abstractmethod
    async def count_creators(self) -> int: ...

    @abstractmethod
    async def count_orphans(self) -> int: ...

    @abstractmethod
    async def total_earnings(self) -> int:
        """Sum of all creators' earnings in minor units."""
        ...

    @abstractmethod
    async def engagement_stats(self) -> EngagementStats: ...

    @abstractmethod
    async def tip_amount_stats(self) -> TipAmountStats:
        """Count, total, average and maximum of the amounts in the tip log."""
        ...

    # ========== Lifecycle ==========

    async def on_startup(self) -> None:
        """Called when the application starts."""
        pass

    async def on_shutdown(self) -> None:
        """Called when the application shuts down."""
        pass
