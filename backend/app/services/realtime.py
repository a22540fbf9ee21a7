import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Set

logger = logging.getLogger("realtime")


class Connection(Protocol):
    """Anything that can receive server events: a websocket adapter, a test double, a poller."""

    user_id: str
    role: str

    async def send_event(self, event: str, data: Any) -> None: ...


Audience = Callable[[Connection], bool]


@dataclass
class RealtimeEvent:
    topic: str
    name: str
    data: Any
    # None = every subscriber of the topic
    audience: Optional[Audience] = field(default=None, repr=False)


def chat_topic(chat_id: str) -> str:
    return f"chat:{chat_id}"


def user_topic(user_id: str) -> str:
    return f"user:{user_id}"


class RealtimeHub:
    """
    In-process topic -> connections registry, used from a single event loop.

    publish() delivers to the subscribers of a topic in call order; a connection whose
    send fails is dropped from every topic, and the failure never reaches the publisher.
    """

    def __init__(self):
        self._topics: Dict[str, Set[Connection]] = {}

    async def subscribe(self, topic: str, connection: Connection) -> None:
        self._topics.setdefault(topic, set()).add(connection)
        logger.debug("[RealtimeHub] %s joined %s", connection.user_id, topic)

    async def unsubscribe(self, topic: str, connection: Connection) -> None:
        members = self._topics.get(topic)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._topics[topic]

    async def disconnect(self, connection: Connection) -> None:
        for topic in list(self._topics):
            self._topics[topic].discard(connection)
            if not self._topics[topic]:
                del self._topics[topic]

    def subscribers(self, topic: str) -> Set[Connection]:
        return set(self._topics.get(topic, ()))

    async def publish(self, topic: str, event: str, data: Any, audience: Optional[Audience] = None) -> int:
        delivered = 0
        dead = []
        for conn in self.subscribers(topic):
            if audience is not None and not audience(conn):
                continue
            try:
                await conn.send_event(event, data)
                delivered += 1
            except Exception as e:
                logger.warning("[RealtimeHub] Dropping connection of user %s on %s: %s",
                               getattr(conn, "user_id", "?"), topic, e)
                dead.append(conn)

        for conn in dead:
            await self.disconnect(conn)
        return delivered

    async def publish_all(self, events: Iterable[RealtimeEvent]) -> None:
        for ev in events:
            await self.publish(ev.topic, ev.name, ev.data, ev.audience)


hub = RealtimeHub()


def get_hub() -> RealtimeHub:
    return hub
