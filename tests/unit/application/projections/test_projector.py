"""Tests for the tipping projector reducers."""

import logging
from itertools import permutations

import pytest

from tipstream.application import IngestionConfiguration, TippingProjector
from tipstream.domain import (
    AutoTipEnabled,
    AutoTipExecuted,
    AutoTipRevoked,
    DelegationCloseReason,
    PostCreated,
    TipSent,
)
from tipstream.testing import GENESIS, ProjectionScenario, as_chain_event


def post_created(post_id="1", creator="0xA"):
    return PostCreated(post_id=post_id, creator=creator, content="gm", timestamp=GENESIS)


def tip_sent(post_id="1", amount=1000, creator="0xA", tipper="0xB"):
    return TipSent(post_id=post_id, tipper=tipper, creator=creator, amount=amount)


def enabled(delegation_id="d1", post_id="1", threshold=10, amount=500):
    return AutoTipEnabled(
        post_id=post_id,
        tipper="0xB",
        threshold=threshold,
        amount=amount,
        delegation_id=delegation_id,
    )


def executed(delegation_id="d1", post_id="1", **kwargs):
    return AutoTipExecuted(post_id=post_id, tipper="0xB", delegation_id=delegation_id, **kwargs)


def revoked(delegation_id="d1", post_id="1"):
    return AutoTipRevoked(post_id=post_id, tipper="0xB", delegation_id=delegation_id)


@pytest.mark.asyncio
async def test_tip_updates_post_and_creator():
    async with ProjectionScenario() as scenario:
        scenario.given(
            post_created(),
            as_chain_event(tip_sent(), block_number=2, tx_hash="t1"),
        )
        scenario.should_have_post("1", lambda p: p.tip_count == 1 and p.total_tips == 1000)
        scenario.should_have_creator(
            "0xA", lambda c: c.total_earnings == 1000 and c.tip_count == 1
        )
        scenario.should_have_tips("1", lambda tips: [t.tip_id for t in tips] == ["t1-0"])


@pytest.mark.asyncio
async def test_replayed_tip_is_applied_once():
    tip = as_chain_event(tip_sent(), block_number=2, tx_hash="t1")

    async with ProjectionScenario() as scenario:
        scenario.given(post_created(), tip, tip, tip)
        scenario.should_have_post("1", lambda p: p.tip_count == 1 and p.total_tips == 1000)
        scenario.should_have_creator(
            "0xa", lambda c: c.total_earnings == 1000 and c.tip_count == 1
        )


@pytest.mark.asyncio
async def test_replaying_the_whole_history_changes_nothing(store, projector):
    history = [
        as_chain_event(post_created(), block_number=1),
        as_chain_event(tip_sent(amount=10), block_number=2),
        as_chain_event(enabled(), block_number=3),
        as_chain_event(executed(), block_number=4),
        as_chain_event(tip_sent(amount=7), block_number=5),
    ]
    for event in history:
        await projector.handle(event)
    before = (dict(store.posts), dict(store.creators), dict(store.delegations), dict(store.tips))

    for event in history:
        await projector.handle(event)

    assert (store.posts, store.creators, store.delegations, store.tips) == before
    assert store.posts["1"].total_tips == 517


@pytest.mark.asyncio
async def test_duplicate_post_created_does_not_recount_creator():
    post = as_chain_event(post_created(), block_number=1)

    async with ProjectionScenario() as scenario:
        scenario.given(post, post, as_chain_event(post_created(), block_number=2))
        scenario.should_have_creator("0xa", lambda c: c.post_count == 1)


@pytest.mark.asyncio
async def test_auto_tip_execution_records_synthetic_tip():
    async with ProjectionScenario() as scenario:
        scenario.given(post_created(), enabled(), executed())
        scenario.should_have_delegation(
            "d1",
            lambda d: not d.active and d.close_reason is DelegationCloseReason.EXECUTED,
        )
        scenario.should_have_post("1", lambda p: p.total_tips == 500 and p.tip_count == 1)
        scenario.should_have_creator("0xa", lambda c: c.total_earnings == 500)
        scenario.should_have_tips(
            "1", lambda tips: len(tips) == 1 and tips[0].delegation_id == "d1"
        )


@pytest.mark.asyncio
async def test_execution_uses_delegation_amount(caplog):
    with caplog.at_level(logging.WARNING):
        async with ProjectionScenario() as scenario:
            scenario.given(post_created(), enabled(amount=500), executed(amount=900))
            scenario.should_have_post("1", lambda p: p.total_tips == 500)

    assert "Executed amount differs from delegation" in caplog.text


@pytest.mark.asyncio
async def test_delegation_id_defaults_to_enabling_event():
    enabling = as_chain_event(enabled(delegation_id=None), block_number=2)

    async with ProjectionScenario() as scenario:
        scenario.given(post_created(), enabling, executed(delegation_id=enabling.event_id))
        scenario.should_have_delegation(enabling.event_id, lambda d: not d.active)
        scenario.should_have_post("1", lambda p: p.total_tips == 500)


@pytest.mark.asyncio
async def test_revoked_delegation_never_executes(caplog):
    with caplog.at_level(logging.WARNING):
        async with ProjectionScenario() as scenario:
            scenario.given(post_created(), enabled(), revoked(), executed())
            scenario.should_have_delegation(
                "d1", lambda d: d.close_reason is DelegationCloseReason.REVOKED
            )
            scenario.should_have_post("1", lambda p: p.total_tips == 0)

    assert "Execution of closed delegation" in caplog.text


@pytest.mark.asyncio
async def test_delegation_is_never_reactivated():
    async with ProjectionScenario() as scenario:
        scenario.given(post_created(), enabled(), executed(), revoked(), enabled())
        scenario.should_have_delegation(
            "d1",
            lambda d: not d.active and d.close_reason is DelegationCloseReason.EXECUTED,
        )
        scenario.should_have_post("1", lambda p: p.total_tips == 500)


@pytest.mark.asyncio
async def test_unknown_delegation_is_logged(caplog):
    with caplog.at_level(logging.WARNING):
        async with ProjectionScenario() as scenario:
            scenario.given(post_created(), revoked("nope"), executed("nope"))
            scenario.should_have_post("1", lambda p: p.total_tips == 0)

    assert "Revoke of unknown delegation" in caplog.text
    assert "Execution of unknown delegation" in caplog.text


@pytest.mark.asyncio
async def test_delegation_for_unknown_post_is_kept(caplog):
    with caplog.at_level(logging.WARNING):
        async with ProjectionScenario() as scenario:
            scenario.given(enabled(post_id="7"))
            scenario.should_have_delegation("d1", lambda d: d.active and d.post_id == "7")

    assert "Delegation references unknown post" in caplog.text


@pytest.mark.asyncio
async def test_tip_for_unknown_post_does_not_corrupt_state(store, caplog):
    with caplog.at_level(logging.WARNING):
        async with ProjectionScenario(store) as scenario:
            scenario.given(tip_sent(post_id="99"))
            scenario.should_not_have_post("99")
            scenario.should_not_have_creator("0xa")

    assert await store.count_orphans() == 1
    assert "Event references unknown post, buffered" in caplog.text


@pytest.mark.asyncio
async def test_buffered_tip_is_applied_once_post_appears(store):
    tip = as_chain_event(tip_sent(post_id="99"), block_number=1, tx_hash="t9")

    async with ProjectionScenario(store) as scenario:
        scenario.given(tip, post_created(post_id="99"), tip)
        scenario.should_have_post("99", lambda p: p.tip_count == 1 and p.total_tips == 1000)
        scenario.should_have_creator("0xa", lambda c: c.total_earnings == 1000)

    assert await store.count_orphans() == 0


@pytest.mark.asyncio
async def test_buffered_execution_is_applied_once_post_appears(store):
    async with ProjectionScenario(store) as scenario:
        scenario.given(enabled(post_id="5"), executed(post_id="5"), post_created(post_id="5"))
        scenario.should_have_post("5", lambda p: p.total_tips == 500)
        scenario.should_have_delegation("d1", lambda d: not d.active)

    assert await store.count_orphans() == 0


@pytest.mark.asyncio
async def test_drop_policy_discards_orphans(store, caplog):
    projector = TippingProjector(store, IngestionConfiguration(orphan_policy="drop"))

    with caplog.at_level(logging.WARNING):
        async with ProjectionScenario(projector=projector) as scenario:
            scenario.given(tip_sent(post_id="99"), post_created(post_id="99"))
            scenario.should_have_post("99", lambda p: p.total_tips == 0)

    assert await store.count_orphans() == 0
    assert "Event references unknown post, dropped" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "order",
    list(permutations(range(4))),
    ids=lambda order: "-".join(map(str, order)),
)
async def test_totals_do_not_depend_on_arrival_order(store, order):
    events = [
        as_chain_event(post_created(), block_number=1),
        as_chain_event(tip_sent(amount=100), block_number=2),
        as_chain_event(tip_sent(amount=20, creator="0xC"), block_number=3),
        as_chain_event(tip_sent(amount=3), block_number=4),
    ]

    async with ProjectionScenario(store) as scenario:
        scenario.given(*(events[i] for i in order))
        scenario.should_have_post("1", lambda p: p.tip_count == 3 and p.total_tips == 123)
        scenario.should_have_creator("0xa", lambda c: c.total_earnings == 103)
        scenario.should_have_creator("0xc", lambda c: c.total_earnings == 20)

    assert await store.count_orphans() == 0


@pytest.mark.asyncio
async def test_record_engagement(projector, store):
    await projector.handle(as_chain_event(post_created(), block_number=1))

    assert (await projector.record_engagement("1")).engagement == 1
    assert (await projector.record_engagement("1", by=4)).engagement == 5
    assert await projector.record_engagement("404") is None

    with pytest.raises(ValueError):
        await projector.record_engagement("1", by=0)


def test_projector_handles_every_payload_type():
    assert TippingProjector.handled_event_types() == frozenset(
        {PostCreated, TipSent, AutoTipEnabled, AutoTipRevoked, AutoTipExecuted}
    )
