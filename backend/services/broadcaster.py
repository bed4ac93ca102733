"""Realtime disaster update broadcast (in-memory topic hub).

Sessions join ``disaster_<id>`` topics; mutation routes publish events to a
topic and every session subscribed at that moment gets one copy. Each session
owns a bounded outbound queue drained by its own pump task, so a slow or dead
socket never holds up the publisher or other sessions.

Usage:
    session = broadcaster.connect(ws.send_json)
    broadcaster.subscribe(session, disaster_topic("42"))
    broadcaster.disaster_updated("42", disaster)
    broadcaster.disconnect(session)
"""

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

DISASTER_UPDATED = "disaster_updated"
SOCIAL_MEDIA_UPDATED = "social_media_updated"
RESOURCES_UPDATED = "resources_updated"
REPORTS_UPDATED = "reports_updated"

Send = Callable[[dict], Awaitable[None]]

_session_ids = itertools.count(1)


def disaster_topic(disaster_id: str | int) -> str:
    return f"disaster_{disaster_id}"


class Session:
    """One connected client and its outbound event queue."""

    def __init__(self, send: Send, session_id: str | None = None, max_pending: int = 100):
        self.id = session_id or f"session-{next(_session_ids)}"
        self._send = send
        self._queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=max_pending)
        self._task: asyncio.Task | None = None
        self._on_failure: Callable[["Session"], None] | None = None
        self.closed = False

    def __repr__(self) -> str:
        return f"<Session {self.id}{' gone' if self.closed else ''}>"

    def start(self, on_failure: Callable[["Session"], None]) -> None:
        self._on_failure = on_failure
        self._task = asyncio.get_running_loop().create_task(self._pump(), name=f"pump-{self.id}")

    def offer(self, event: dict) -> bool:
        """Queue an event without waiting. Returns False if it was dropped."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Dropping %s for %s: outbound queue full", event["event"], self.id)
            return False
        return True

    async def flush(self) -> None:
        """Wait until every queued event has been handed to the transport."""
        await self._queue.join()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        # Release anyone waiting in flush() on events that will never go out.
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._send(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug("Send to %s failed, dropping session: %s", self.id, e)
                if self._on_failure is not None:
                    self._on_failure(self)
                return
            finally:
                self._queue.task_done()


class Broadcaster:
    def __init__(self, max_pending: int = 100) -> None:
        self._max_pending = max_pending
        self._topics: dict[str, set[Session]] = {}
        self._memberships: dict[Session, set[str]] = {}

    def connect(self, send: Send, session_id: str | None = None) -> Session:
        """Register a new client session and start delivering to it."""
        session = Session(send, session_id=session_id, max_pending=self._max_pending)
        self._memberships[session] = set()
        session.start(on_failure=self.disconnect)
        logger.info("Client connected: %s (total %d)", session.id, len(self._memberships))
        return session

    def subscribe(self, session: Session, topic: str) -> None:
        if session.closed or session not in self._memberships:
            logger.debug("Ignoring subscribe for closed session %s", session.id)
            return
        self._topics.setdefault(topic, set()).add(session)
        self._memberships[session].add(topic)
        logger.info("Client %s joined %s", session.id, topic)

    def unsubscribe(self, session: Session, topic: str) -> None:
        members = self._topics.get(topic)
        if members is not None:
            members.discard(session)
            if not members:
                del self._topics[topic]
        if session in self._memberships:
            self._memberships[session].discard(topic)
        logger.info("Client %s left %s", session.id, topic)

    def disconnect(self, session: Session) -> None:
        """Drop the session from every topic it joined. Safe to call twice."""
        topics = self._memberships.pop(session, set())
        for topic in topics:
            members = self._topics.get(topic)
            if members is None:
                continue
            members.discard(session)
            if not members:
                del self._topics[topic]
        session.close()
        logger.info("Client disconnected: %s (left %d topics)", session.id, len(topics))

    def publish(self, topic: str, kind: str, payload: Any) -> None:
        """Fan an event out to the sessions currently on ``topic``. Never waits."""
        members = self._topics.get(topic)
        if not members:
            logger.debug("No subscribers for %s on %s", kind, topic)
            return

        event = {
            "event": kind,
            "topic": topic,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        delivered = sum(1 for session in list(members) if session.offer(event))
        logger.info("Emitted %s on %s to %d client(s)", kind, topic, delivered)

    def disaster_updated(self, disaster_id: str, data: Any) -> None:
        self.publish(disaster_topic(disaster_id), DISASTER_UPDATED, data)

    def social_media_updated(self, disaster_id: str, data: Any) -> None:
        self.publish(disaster_topic(disaster_id), SOCIAL_MEDIA_UPDATED, data)

    def resources_updated(self, disaster_id: str, data: Any) -> None:
        self.publish(disaster_topic(disaster_id), RESOURCES_UPDATED, data)

    def reports_updated(self, disaster_id: str, data: Any) -> None:
        self.publish(disaster_topic(disaster_id), REPORTS_UPDATED, data)

    def subscribers(self, topic: str) -> set[Session]:
        return set(self._topics.get(topic, ()))

    def topics(self, session: Session) -> set[str]:
        return set(self._memberships.get(session, ()))

    @property
    def session_count(self) -> int:
        return len(self._memberships)

    def close(self) -> None:
        for session in list(self._memberships):
            self.disconnect(session)
