# concerndesk/services/realtime.py
"""
RealtimeBus: in-process pub/sub з кімнатами.

Кімнати:
    concern-{id}  учасники чату / спостерігачі заявки
    user-{id}     персональні сповіщення (кожне з'єднання входить автоматично)

Доставка at-most-once: publish() кладе подію в обмежену чергу
підписника через put_nowait і нічого не чекає. Переповнена черга
означає, що подію для цього підписника відкинуто. Пізній вхід у
кімнату не отримує історії.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, Optional, Set

log = logging.getLogger(__name__)


def concern_room(concern_id: int) -> str:
    return f"concern-{concern_id}"


def user_room(user_id: int) -> str:
    return f"user-{user_id}"


class Subscriber:
    """Одне WebSocket-з'єднання: власна черга і набір кімнат."""

    def __init__(self, user_id: int, maxsize: int = 100):
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.rooms: Set[str] = set()
        self.dropped = 0
        self.closed = False

    def offer(self, frame: Dict[str, Any]) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped += 1
            log.warning("ws_event_dropped", extra={"subscriber": self.id, "user_id": self.user_id})
            return False
        return True

    async def next(self) -> Optional[Dict[str, Any]]:
        """None означає, що підписку закрито."""
        return await self.queue.get()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        # сигнал writer-у завершитись
        self.queue.put_nowait(None)

    def __repr__(self) -> str:
        return f"<Subscriber id={self.id} user_id={self.user_id} rooms={len(self.rooms)}>"


class RealtimeBus:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._rooms: Dict[str, Set[Subscriber]] = defaultdict(set)
        self._subscribers: Set[Subscriber] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        log.info("realtime_bus_started")

    async def close(self) -> None:
        self._running = False
        for sub in list(self._subscribers):
            self.unsubscribe(sub)
        self._rooms.clear()
        log.info("realtime_bus_closed")

    # ==== Підписки ====

    def subscribe(self, user_id: int) -> Subscriber:
        sub = Subscriber(user_id, maxsize=self.queue_size)
        self._subscribers.add(sub)
        self.join(sub, user_room(user_id))
        log.info("ws_subscribed", extra={"subscriber": sub.id, "user_id": user_id})
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        for room in list(sub.rooms):
            self.leave(sub, room)
        self._subscribers.discard(sub)
        sub.close()
        log.info("ws_unsubscribed", extra={"subscriber": sub.id, "user_id": sub.user_id})

    def join(self, sub: Subscriber, room: str) -> None:
        self._rooms[room].add(sub)
        sub.rooms.add(room)

    def leave(self, sub: Subscriber, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(sub)
            if not members:
                del self._rooms[room]
        sub.rooms.discard(room)

    def members(self, room: str) -> Set[Subscriber]:
        return set(self._rooms.get(room, ()))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ==== Публікація ====

    def publish(
        self,
        room: str,
        event: str,
        data: Any,
        *,
        exclude: Optional[Subscriber] = None,
    ) -> int:
        """Повертає кількість підписників, яким подію поставлено в чергу."""
        if not self._running:
            log.debug("realtime_publish_skipped", extra={"room": room, "event": event})
            return 0
        frame = {"event": event, "data": data}
        delivered = 0
        for sub in list(self._rooms.get(room, ())):
            if sub is exclude:
                continue
            if sub.offer(frame):
                delivered += 1
        log.debug("realtime_published", extra={"room": room, "event": event, "delivered": delivered})
        return delivered
