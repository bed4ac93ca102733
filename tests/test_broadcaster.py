import asyncio

import pytest
import pytest_asyncio

from services.broadcaster import (
    DISASTER_UPDATED,
    RESOURCES_UPDATED,
    Broadcaster,
    disaster_topic,
)


class Recorder:
    def __init__(self):
        self.events: list[dict] = []

    async def send(self, event: dict) -> None:
        self.events.append(event)


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def broadcaster():
    hub = Broadcaster(max_pending=10)
    yield hub
    hub.close()


@pytest.mark.asyncio
async def test_publish_reaches_only_subscribers_of_the_topic(broadcaster):
    a, b = Recorder(), Recorder()
    session_a = broadcaster.connect(a.send)
    session_b = broadcaster.connect(b.send)
    broadcaster.subscribe(session_a, "disaster_42")

    broadcaster.publish("disaster_42", DISASTER_UPDATED, {"title": "X"})
    await session_a.flush()
    await session_b.flush()

    assert len(a.events) == 1
    assert a.events[0]["event"] == "disaster_updated"
    assert a.events[0]["topic"] == "disaster_42"
    assert a.events[0]["data"] == {"title": "X"}
    assert b.events == []


@pytest.mark.asyncio
async def test_double_subscribe_delivers_once(broadcaster):
    rec = Recorder()
    session = broadcaster.connect(rec.send)
    broadcaster.subscribe(session, "disaster_1")
    broadcaster.subscribe(session, "disaster_1")

    broadcaster.publish("disaster_1", DISASTER_UPDATED, {})
    await session.flush()

    assert len(rec.events) == 1
    assert broadcaster.subscribers("disaster_1") == {session}


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(broadcaster):
    rec = Recorder()
    session = broadcaster.connect(rec.send)
    broadcaster.subscribe(session, "disaster_1")
    broadcaster.unsubscribe(session, "disaster_1")

    broadcaster.publish("disaster_1", DISASTER_UPDATED, {})
    await session.flush()

    assert rec.events == []
    assert broadcaster.subscribers("disaster_1") == set()


@pytest.mark.asyncio
async def test_unsubscribe_is_safe_for_unknown_topic(broadcaster):
    session = broadcaster.connect(Recorder().send)
    broadcaster.unsubscribe(session, "disaster_never_joined")
    broadcaster.unsubscribe(session, "disaster_never_joined")
    assert broadcaster.topics(session) == set()


@pytest.mark.asyncio
async def test_disconnect_removes_session_from_every_topic(broadcaster):
    gone, stays = Recorder(), Recorder()
    leaving = broadcaster.connect(gone.send)
    staying = broadcaster.connect(stays.send)
    for disaster_id in ("1", "2", "3"):
        broadcaster.subscribe(leaving, disaster_topic(disaster_id))
    broadcaster.subscribe(staying, disaster_topic("2"))

    broadcaster.disconnect(leaving)
    broadcaster.disaster_updated("1", {"n": 1})
    broadcaster.disaster_updated("2", {"n": 2})
    await staying.flush()

    assert gone.events == []
    assert [e["data"] for e in stays.events] == [{"n": 2}]
    assert broadcaster.topics(leaving) == set()
    assert broadcaster.subscribers("disaster_2") == {staying}
    assert broadcaster.session_count == 1


@pytest.mark.asyncio
async def test_disconnect_twice_is_harmless(broadcaster):
    session = broadcaster.connect(Recorder().send)
    broadcaster.disconnect(session)
    broadcaster.disconnect(session)
    assert session.closed
    assert broadcaster.session_count == 0


@pytest.mark.asyncio
async def test_gone_session_cannot_resubscribe(broadcaster):
    rec = Recorder()
    session = broadcaster.connect(rec.send)
    broadcaster.disconnect(session)

    broadcaster.subscribe(session, "disaster_1")
    broadcaster.publish("disaster_1", DISASTER_UPDATED, {})
    await _settle()

    assert rec.events == []
    assert broadcaster.subscribers("disaster_1") == set()


@pytest.mark.asyncio
async def test_events_arrive_in_publish_order(broadcaster):
    rec = Recorder()
    session = broadcaster.connect(rec.send)
    broadcaster.subscribe(session, "disaster_7")

    for n in range(5):
        broadcaster.publish("disaster_7", RESOURCES_UPDATED, {"n": n})
    await session.flush()

    assert [e["data"]["n"] for e in rec.events] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_a_noop(broadcaster):
    broadcaster.publish("disaster_nobody", DISASTER_UPDATED, {"title": "X"})
    assert broadcaster.subscribers("disaster_nobody") == set()


@pytest.mark.asyncio
async def test_slow_subscriber_does_not_block_others(broadcaster):
    gate = asyncio.Event()
    slow_events: list[dict] = []

    async def slow_send(event):
        await gate.wait()
        slow_events.append(event)

    fast = Recorder()
    slow_session = broadcaster.connect(slow_send)
    fast_session = broadcaster.connect(fast.send)
    broadcaster.subscribe(slow_session, "disaster_1")
    broadcaster.subscribe(fast_session, "disaster_1")

    broadcaster.publish("disaster_1", DISASTER_UPDATED, {"n": 1})
    broadcaster.publish("disaster_1", DISASTER_UPDATED, {"n": 2})
    await fast_session.flush()

    assert [e["data"]["n"] for e in fast.events] == [1, 2]
    assert slow_events == []

    gate.set()
    await slow_session.flush()
    assert [e["data"]["n"] for e in slow_events] == [1, 2]


@pytest.mark.asyncio
async def test_failing_subscriber_is_dropped_without_affecting_others(broadcaster):
    async def broken_send(event):
        raise ConnectionResetError("socket closed")

    healthy = Recorder()
    broken_session = broadcaster.connect(broken_send)
    healthy_session = broadcaster.connect(healthy.send)
    broadcaster.subscribe(broken_session, "disaster_1")
    broadcaster.subscribe(healthy_session, "disaster_1")

    broadcaster.publish("disaster_1", DISASTER_UPDATED, {"n": 1})
    await broken_session.flush()
    await healthy_session.flush()

    assert broken_session.closed
    assert broadcaster.subscribers("disaster_1") == {healthy_session}

    broadcaster.publish("disaster_1", DISASTER_UPDATED, {"n": 2})
    await healthy_session.flush()
    assert [e["data"]["n"] for e in healthy.events] == [1, 2]


@pytest.mark.asyncio
async def test_full_queue_drops_overflow_events():
    hub = Broadcaster(max_pending=1)
    gate = asyncio.Event()
    received: list[dict] = []

    async def blocked_send(event):
        await gate.wait()
        received.append(event)

    session = hub.connect(blocked_send)
    hub.subscribe(session, "disaster_1")

    hub.publish("disaster_1", DISASTER_UPDATED, {"n": 1})
    await _settle()  # pump takes event 1 and blocks in send
    hub.publish("disaster_1", DISASTER_UPDATED, {"n": 2})
    hub.publish("disaster_1", DISASTER_UPDATED, {"n": 3})

    gate.set()
    await session.flush()
    assert [e["data"]["n"] for e in received] == [1, 2]
    hub.close()


@pytest.mark.asyncio
async def test_flush_returns_when_session_closes_mid_send():
    hub = Broadcaster(max_pending=5)
    gate = asyncio.Event()

    async def stuck_send(event):
        await gate.wait()

    session = hub.connect(stuck_send)
    hub.subscribe(session, "disaster_1")
    hub.publish("disaster_1", DISASTER_UPDATED, {"n": 1})
    hub.publish("disaster_1", DISASTER_UPDATED, {"n": 2})
    await _settle()  # pump is parked inside send for event 1

    hub.disconnect(session)
    await asyncio.wait_for(session.flush(), timeout=1)
    hub.close()
