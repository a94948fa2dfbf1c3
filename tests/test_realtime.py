"""RealtimeBus: кімнати, at-most-once, життєвий цикл."""
from concerndesk.services.realtime import RealtimeBus, concern_room, user_room


class TestRooms:
    async def test_subscribe_joins_user_room(self, bus):
        sub = bus.subscribe(42)
        assert user_room(42) in sub.rooms
        assert bus.publish(user_room(42), "notification", {"x": 1}) == 1
        assert sub.queue.get_nowait() == {"event": "notification", "data": {"x": 1}}

    async def test_publish_reaches_only_room_members(self, bus):
        inside = bus.subscribe(1)
        outside = bus.subscribe(2)
        bus.join(inside, concern_room(7))

        assert bus.publish(concern_room(7), "status-update", {"status": "Closed"}) == 1
        assert inside.queue.qsize() == 1
        assert outside.queue.empty()

    async def test_exclude_sender(self, bus):
        typist = bus.subscribe(1)
        reader = bus.subscribe(2)
        for sub in (typist, reader):
            bus.join(sub, concern_room(3))

        delivered = bus.publish(concern_room(3), "user-typing", {"user_name": "A"}, exclude=typist)

        assert delivered == 1
        assert typist.queue.empty()
        assert reader.queue.get_nowait()["event"] == "user-typing"

    async def test_leave_and_late_join(self, bus):
        sub = bus.subscribe(1)
        bus.publish(concern_room(5), "new-message", {"n": 1})
        bus.join(sub, concern_room(5))
        # пізній вхід не отримує історії
        assert sub.queue.empty()

        bus.leave(sub, concern_room(5))
        assert bus.publish(concern_room(5), "new-message", {"n": 2}) == 0
        assert bus.members(concern_room(5)) == set()

    async def test_unsubscribe_closes_queue(self, bus):
        sub = bus.subscribe(1)
        bus.join(sub, concern_room(9))
        bus.unsubscribe(sub)

        assert sub.rooms == set()
        assert bus.subscriber_count == 0
        assert await sub.next() is None
        assert not sub.offer({"event": "x", "data": None})


class TestDelivery:
    async def test_full_queue_drops_events(self):
        bus = RealtimeBus(queue_size=2)
        await bus.start()
        sub = bus.subscribe(1)

        results = [bus.publish(user_room(1), "notification", {"n": i}) for i in range(4)]

        assert results == [1, 1, 0, 0]
        assert sub.dropped == 2
        assert [sub.queue.get_nowait()["data"]["n"] for _ in range(2)] == [0, 1]
        await bus.close()

    async def test_publish_before_start_is_noop(self):
        bus = RealtimeBus()
        sub = bus.subscribe(1)
        assert bus.publish(user_room(1), "notification", {}) == 0
        assert sub.queue.empty()

    async def test_close_releases_subscribers(self):
        bus = RealtimeBus()
        await bus.start()
        sub = bus.subscribe(1)
        await bus.close()

        assert not bus.running
        assert sub.closed
        assert await sub.next() is None
