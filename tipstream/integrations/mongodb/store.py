"""MongoDB backend for the projection store."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any, TypeVar

from bson.decimal128 import Decimal128
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.errors import DuplicateKeyError

from ...application.store import ProjectionStore
from ...context import log_extra
from ...domain import (
    PAYLOAD_ADAPTER,
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
    ProjectionStoreError,
    TimeBucket,
    Tip,
    TipAmountStats,
    TipOutcome,
)
from .collection import IndexDirection, IndexedCollection, IndexSpec
from .config import MongoConfiguration

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)

ASC = IndexDirection.ASC
DESC = IndexDirection.DESC

_POST_SORTS: dict[PostSortKey, list[tuple[str, int]]] = {
    PostSortKey.RECENT: [("created_at", DESC), ("id_order", DESC)],
    PostSortKey.TIPS: [("total_tips", DESC), ("id_order", DESC)],
    PostSortKey.ENGAGEMENT: [("engagement", DESC), ("total_tips", DESC), ("id_order", DESC)],
}

_CREATOR_SORTS: dict[LeaderboardMetric, list[tuple[str, int]]] = {
    LeaderboardMetric.EARNINGS: [("total_earnings", DESC), ("tip_count", DESC), ("_id", ASC)],
    LeaderboardMetric.TIPS_RECEIVED: [("tip_count", DESC), ("total_earnings", DESC), ("_id", ASC)],
    LeaderboardMetric.POSTS: [("post_count", DESC), ("total_earnings", DESC), ("_id", ASC)],
}

# Counter updates a ledger document still owes, cleared as each one lands
_TIP_STEPS = ("post", "creator")

# Bookkeeping that never reaches the read models
_STORAGE_FIELDS = {"_id", "pending", "applied_event", "id_order"}

_BUCKET_FIELDS = {
    BucketEntity.POSTS: "created_at",
    BucketEntity.TIPS: "tipped_at",
    BucketEntity.CREATORS: "first_seen_at",
}


def to_decimal128(amount: int) -> Decimal128:
    return Decimal128(Decimal(amount))


def from_decimal128(value: Any) -> int:
    if isinstance(value, Decimal128):
        return int(value.to_decimal())
    return int(value or 0)


class MongoProjectionStore(ProjectionStore):
    """MongoDB implementation of the projection store.

    Each record kind lives in its own collection keyed by its natural id
    (``_id``), which is what makes inserts idempotent: a second insert of
    the same post, tip, delegation or orphan raises ``DuplicateKeyError``
    and is reported as "already present". Amounts are stored as
    ``Decimal128`` and accumulated with ``$inc`` so totals stay exact.

    **Atomicity:**
    Single-document writes (engagement, delegation compare-and-set) are
    atomic on their own. ``create_post`` and ``apply_tip`` touch two or
    three collections; with ``use_transactions`` they run in one
    multi-document transaction. Without transactions they are resumable:
    the post or tip document is inserted with the counter updates it still
    owes (``pending``), and each counter update is guarded by an
    ``applied_event`` marker on its target. A retry that hits the duplicate
    key finishes the owed updates instead of reporting a duplicate. The
    markers hold the last event applied to a document, which is enough
    because a single consumer applies events one at a time.

    Example:
        >>> config = MongoConfiguration(database="tipping")
        >>> store = MongoProjectionStore(config)
        >>> await store.create_post(post)
    """

    def __init__(self, config: MongoConfiguration) -> None:
        self.config = config
        self.posts = IndexedCollection(
            config.posts,
            indexes=[
                IndexSpec(keys=[("created_at", DESC)]),
                IndexSpec(keys=[("total_tips", DESC)]),
                IndexSpec(keys=[("engagement", DESC), ("total_tips", DESC)]),
                IndexSpec(keys=[("creator", ASC)]),
            ],
        )
        self.creators = IndexedCollection(
            config.creators,
            indexes=[
                IndexSpec(keys=[("total_earnings", DESC)]),
                IndexSpec(keys=[("tip_count", DESC)]),
                IndexSpec(keys=[("post_count", DESC)]),
                IndexSpec(keys=[("first_seen_at", ASC)]),
            ],
        )
        self.tips = IndexedCollection(
            config.tips,
            indexes=[
                IndexSpec(keys=[("post_id", ASC), ("block_number", DESC), ("log_index", DESC)]),
                IndexSpec(keys=[("tipper", ASC), ("block_number", DESC), ("log_index", DESC)]),
                IndexSpec(keys=[("block_number", DESC), ("log_index", DESC)]),
                IndexSpec(keys=[("tipped_at", ASC)]),
            ],
        )
        self.delegations = IndexedCollection(
            config.delegations,
            indexes=[IndexSpec(keys=[("post_id", ASC), ("active", ASC), ("created_at", ASC)])],
        )
        self.orphans = IndexedCollection(
            config.orphans,
            indexes=[IndexSpec(keys=[("post_id", ASC), ("block_number", ASC), ("log_index", ASC)])],
        )

    async def on_startup(self) -> None:
        if self.config.use_transactions:
            hello = await self.config.client.admin.command("hello")
            if "setName" not in hello and hello.get("msg") != "isdbgrid":
                raise ProjectionStoreError(
                    "use_transactions needs a replica set or a sharded cluster"
                )
        for collection in (self.posts, self.creators, self.tips, self.delegations, self.orphans):
            await collection.ensure_indexes()

    # ========== Write primitives ==========

    async def create_post(self, post: Post) -> bool:
        try:
            await self._atomic(lambda session: self._insert_post(post, session))
        except DuplicateKeyError:
            if not await self._pending_steps(self.posts, post.post_id):
                return False
            LOGGER.warning(
                "Resuming partially applied post", extra=log_extra(post_id=post.post_id)
            )
            await self._atomic(lambda session: self._finish_post(post, session))
        return True

    async def increment_engagement(self, post_id: str, by: int = 1) -> Post | None:
        doc = await self.posts.find_one_and_update({"_id": post_id}, {"$inc": {"engagement": by}})
        return self._post(doc) if doc else None

    async def apply_tip(self, tip: Tip) -> TipOutcome:
        try:
            return await self._atomic(lambda session: self._insert_tip(tip, session))
        except DuplicateKeyError:
            pending = await self._pending_steps(self.tips, tip.tip_id)
        if not pending:
            return TipOutcome.DUPLICATE
        LOGGER.warning(
            "Resuming partially applied tip",
            extra=log_extra(tip_id=tip.tip_id, post_id=tip.post_id, pending=pending),
        )
        await self._atomic(lambda session: self._finish_tip(tip, pending, session))
        return TipOutcome.APPLIED

    async def insert_delegation(self, delegation: Delegation) -> bool:
        doc = delegation.model_dump(mode="python")
        doc["_id"] = delegation.delegation_id
        doc["threshold"] = to_decimal128(delegation.threshold)
        doc["amount"] = to_decimal128(delegation.amount)
        try:
            await self.delegations.insert_one(doc)
        except DuplicateKeyError:
            return False
        return True

    async def close_delegation(
        self,
        delegation_id: str,
        reason: DelegationCloseReason,
        closed_by_event: str,
        closed_at: datetime,
    ) -> bool:
        result = await self.delegations.update_one(
            {"_id": delegation_id, "active": True},
            {
                "$set": {
                    "active": False,
                    "close_reason": reason.value,
                    "closed_by_event": closed_by_event,
                    "closed_at": closed_at,
                }
            },
        )
        return result.modified_count == 1

    async def park_orphan(self, event: ChainEvent[Any], post_id: str) -> bool:
        try:
            await self.orphans.insert_one(
                {
                    "_id": event.event_id,
                    "post_id": post_id,
                    "tx_hash": event.tx_hash,
                    "log_index": event.log_index,
                    "block_number": event.block_number,
                    "block_timestamp": event.block_timestamp,
                    # JSON keeps uint256 amounts that do not fit in BSON integers
                    "payload": PAYLOAD_ADAPTER.dump_json(event.data).decode(),
                }
            )
        except DuplicateKeyError:
            return False
        return True

    async def take_orphans(self, post_id: str) -> list[ChainEvent[Any]]:
        return [
            ChainEvent(
                tx_hash=doc["tx_hash"],
                log_index=doc["log_index"],
                block_number=doc["block_number"],
                block_timestamp=doc["block_timestamp"],
                data=PAYLOAD_ADAPTER.validate_json(doc["payload"]),
            )
            async for doc in self.orphans.find(
                {"post_id": post_id}, sort=[("block_number", ASC), ("log_index", ASC)]
            )
        ]

    async def discard_orphan(self, event_id: str) -> None:
        await self.orphans.delete_one({"_id": event_id})

    # ========== Reads ==========

    async def get_post(self, post_id: str) -> Post | None:
        doc = await self.posts.find_one({"_id": post_id})
        return self._post(doc) if doc else None

    async def get_creator(self, address: str) -> Creator | None:
        doc = await self.creators.find_one({"_id": address.lower()})
        return self._creator(doc) if doc else None

    async def get_delegation(self, delegation_id: str) -> Delegation | None:
        doc = await self.delegations.find_one({"_id": delegation_id})
        return self._delegation(doc) if doc else None

    async def find_posts(
        self,
        sort_key: PostSortKey,
        skip: int = 0,
        limit: int | None = None,
        created_since: datetime | None = None,
    ) -> list[Post]:
        filter: dict[str, Any] = {}
        if created_since is not None:
            filter["created_at"] = {"$gte": created_since}
        return [
            self._post(doc)
            async for doc in self.posts.find(
                filter, sort=_POST_SORTS[sort_key], skip=skip, limit=limit
            )
        ]

    async def find_tips(
        self,
        post_id: str | None = None,
        tipper: str | None = None,
        limit: int | None = None,
    ) -> list[Tip]:
        filter: dict[str, Any] = {}
        if post_id is not None:
            filter["post_id"] = post_id
        if tipper is not None:
            filter["tipper"] = tipper.lower()
        return [
            self._tip(doc)
            async for doc in self.tips.find(
                filter,
                sort=[("block_number", DESC), ("log_index", DESC), ("_id", DESC)],
                limit=limit,
            )
        ]

    async def find_delegations(self, post_id: str, active_only: bool = True) -> list[Delegation]:
        filter: dict[str, Any] = {"post_id": post_id}
        if active_only:
            filter["active"] = True
        return [
            self._delegation(doc)
            async for doc in self.delegations.find(filter, sort=[("created_at", ASC), ("_id", ASC)])
        ]

    async def leaderboard(
        self,
        metric: LeaderboardMetric,
        limit: int,
        since: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        if metric is LeaderboardMetric.TIPS_SENT:
            return await self._tip_totals("$tipper", limit, since, by_count=False)
        if since is None:
            return [
                LeaderboardEntry(
                    address=doc["_id"],
                    total_amount=from_decimal128(doc.get("total_earnings")),
                    tip_count=doc.get("tip_count", 0),
                    post_count=doc.get("post_count", 0),
                )
                async for doc in self.creators.find({}, sort=_CREATOR_SORTS[metric], limit=limit)
            ]
        if metric is LeaderboardMetric.POSTS:
            rows = await self.posts.aggregate(
                [
                    {"$match": {"created_at": {"$gte": since}}},
                    {"$group": {"_id": "$creator", "post_count": {"$sum": 1}}},
                    {"$sort": {"post_count": -1, "_id": 1}},
                    {"$limit": limit},
                ]
            )
            return [LeaderboardEntry(address=r["_id"], post_count=r["post_count"]) for r in rows]
        return await self._tip_totals(
            "$creator", limit, since, by_count=metric is LeaderboardMetric.TIPS_RECEIVED
        )

    async def bucket_counts(self, entity: BucketEntity, since: datetime) -> list[TimeBucket]:
        field = _BUCKET_FIELDS[entity]
        collection = {
            BucketEntity.POSTS: self.posts,
            BucketEntity.TIPS: self.tips,
            BucketEntity.CREATORS: self.creators,
        }[entity]
        group: dict[str, Any] = {
            "_id": {
                "$dateToString": {"format": "%Y-%m-%d", "date": f"${field}", "timezone": "UTC"}
            },
            "count": {"$sum": 1},
        }
        if entity is BucketEntity.TIPS:
            group["total_amount"] = {"$sum": "$amount"}
        rows = await collection.aggregate(
            [{"$match": {field: {"$gte": since}}}, {"$group": group}, {"$sort": {"_id": 1}}]
        )
        return [
            TimeBucket(
                day=date.fromisoformat(r["_id"]),
                count=r["count"],
                total_amount=from_decimal128(r.get("total_amount")),
            )
            for r in rows
        ]

    async def count_posts(self) -> int:
        return await self.posts.count_documents()

    async def count_tips(self) -> int:
        return await self.tips.count_documents()

    async def count_creators(self) -> int:
        return await self.creators.count_documents()

    async def count_orphans(self) -> int:
        return await self.orphans.count_documents()

    async def total_earnings(self) -> int:
        rows = await self.creators.aggregate(
            [{"$group": {"_id": None, "total": {"$sum": "$total_earnings"}}}]
        )
        return from_decimal128(rows[0]["total"]) if rows else 0

    async def engagement_stats(self) -> EngagementStats:
        rows = await self.posts.aggregate(
            [
                {
                    "$group": {
                        "_id": None,
                        "average": {"$avg": "$engagement"},
                        "maximum": {"$max": "$engagement"},
                        "total": {"$sum": "$engagement"},
                    }
                }
            ]
        )
        if not rows:
            return EngagementStats()
        return EngagementStats(
            average=float(rows[0]["average"] or 0),
            maximum=rows[0]["maximum"] or 0,
            total=rows[0]["total"] or 0,
        )

    async def tip_amount_stats(self) -> TipAmountStats:
        rows = await self.tips.aggregate(
            [
                {
                    "$group": {
                        "_id": None,
                        "count": {"$sum": 1},
                        "total": {"$sum": "$amount"},
                        "maximum": {"$max": "$amount"},
                    }
                }
            ]
        )
        if not rows:
            return TipAmountStats()
        count = rows[0]["count"]
        total = from_decimal128(rows[0]["total"])
        return TipAmountStats(
            count=count,
            total=total,
            average=total // count,
            maximum=from_decimal128(rows[0]["maximum"]),
        )

    # ========== Helpers ==========

    async def _atomic(self, operation: Callable[[AsyncClientSession | None], Awaitable[T]]) -> T:
        if not self.config.use_transactions:
            return await operation(None)
        async with self.config.client.start_session() as session:
            return await session.with_transaction(operation)

    async def _insert_post(self, post: Post, session: AsyncClientSession | None) -> None:
        await self.posts.insert_one(self._post_doc(post), session=session)
        await self._finish_post(post, session)

    async def _finish_post(self, post: Post, session: AsyncClientSession | None) -> None:
        await self._credit_creator(
            post.creator, f"post:{post.post_id}", {"post_count": 1}, post.created_at, session
        )
        await self._clear_step(self.posts, post.post_id, "creator", session)

    async def _insert_tip(self, tip: Tip, session: AsyncClientSession | None) -> TipOutcome:
        post = await self.posts.find_one({"_id": tip.post_id}, {"_id": 1}, session=session)
        if post is None:
            return TipOutcome.MISSING_POST
        await self.tips.insert_one(self._tip_doc(tip), session=session)
        await self._finish_tip(tip, _TIP_STEPS, session)
        return TipOutcome.APPLIED

    async def _finish_tip(
        self, tip: Tip, steps: Sequence[str], session: AsyncClientSession | None
    ) -> None:
        marker = f"tip:{tip.tip_id}"
        amount = to_decimal128(tip.amount)
        if "post" in steps:
            await self.posts.update_one(
                {"_id": tip.post_id, "applied_event": {"$ne": marker}},
                {"$inc": {"total_tips": amount, "tip_count": 1}, "$set": {"applied_event": marker}},
                session=session,
            )
            await self._clear_step(self.tips, tip.tip_id, "post", session)
        if "creator" in steps:
            await self._credit_creator(
                tip.creator,
                marker,
                {"total_earnings": amount, "tip_count": 1},
                tip.tipped_at,
                session,
            )
            await self._clear_step(self.tips, tip.tip_id, "creator", session)

    async def _credit_creator(
        self,
        address: str,
        marker: str,
        increments: dict[str, Any],
        seen_at: datetime,
        session: AsyncClientSession | None,
    ) -> None:
        await self.creators.update_one(
            {"_id": address},
            {"$setOnInsert": self._new_creator_fields(address, seen_at)},
            upsert=True,
            session=session,
        )
        await self.creators.update_one(
            {"_id": address, "applied_event": {"$ne": marker}},
            {"$inc": increments, "$set": {"applied_event": marker}},
            session=session,
        )

    async def _pending_steps(self, collection: IndexedCollection, key: str) -> list[str]:
        doc = await collection.find_one({"_id": key}, {"pending": 1})
        return list(doc.get("pending", [])) if doc else []

    @staticmethod
    async def _clear_step(
        collection: IndexedCollection, key: str, step: str, session: AsyncClientSession | None
    ) -> None:
        await collection.update_one({"_id": key}, {"$pull": {"pending": step}}, session=session)

    async def _tip_totals(
        self,
        key: str,
        limit: int,
        since: datetime | None,
        by_count: bool,
    ) -> list[LeaderboardEntry]:
        pipeline: list[dict[str, Any]] = []
        if since is not None:
            pipeline.append({"$match": {"tipped_at": {"$gte": since}}})
        sort = (
            {"tip_count": -1, "total_amount": -1, "_id": 1}
            if by_count
            else {"total_amount": -1, "tip_count": -1, "_id": 1}
        )
        pipeline += [
            {
                "$group": {
                    "_id": key,
                    "total_amount": {"$sum": "$amount"},
                    "tip_count": {"$sum": 1},
                }
            },
            {"$sort": sort},
            {"$limit": limit},
        ]
        return [
            LeaderboardEntry(
                address=r["_id"],
                total_amount=from_decimal128(r["total_amount"]),
                tip_count=r["tip_count"],
            )
            for r in await self.tips.aggregate(pipeline)
        ]

    @staticmethod
    def _new_creator_fields(address: str, seen_at: datetime) -> dict[str, Any]:
        return {
            "address": address,
            "total_earnings": to_decimal128(0),
            "tip_count": 0,
            "post_count": 0,
            "first_seen_at": seen_at,
        }

    @staticmethod
    def _post_doc(post: Post) -> dict[str, Any]:
        doc = post.model_dump(mode="python")
        doc["_id"] = post.post_id
        doc["total_tips"] = to_decimal128(post.total_tips)
        doc["id_order"] = to_decimal128(int(post.post_id))
        doc["pending"] = ["creator"]
        return doc

    @staticmethod
    def _tip_doc(tip: Tip) -> dict[str, Any]:
        doc = tip.model_dump(mode="python")
        doc["_id"] = tip.tip_id
        doc["amount"] = to_decimal128(tip.amount)
        doc["pending"] = list(_TIP_STEPS)
        return doc

    @staticmethod
    def _post(doc: dict[str, Any]) -> Post:
        return Post.model_validate(
            {**_record_fields(doc), "total_tips": from_decimal128(doc.get("total_tips"))}
        )

    @staticmethod
    def _creator(doc: dict[str, Any]) -> Creator:
        return Creator.model_validate(
            {
                **_record_fields(doc),
                "address": doc["_id"],
                "total_earnings": from_decimal128(doc.get("total_earnings")),
            }
        )

    @staticmethod
    def _tip(doc: dict[str, Any]) -> Tip:
        return Tip.model_validate({**_record_fields(doc), "amount": from_decimal128(doc["amount"])})

    @staticmethod
    def _delegation(doc: dict[str, Any]) -> Delegation:
        return Delegation.model_validate(
            {
                **_record_fields(doc),
                "threshold": from_decimal128(doc["threshold"]),
                "amount": from_decimal128(doc["amount"]),
            }
        )


def _record_fields(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in _STORAGE_FIELDS}
