import asyncio
import threading

import pytest

from gestion_pedidos.broadcaster import Broadcaster, OrderEvent, QueueObserver


class Inbox:
    def __init__(self):
        self.messages = []

    def send(self, event):
        self.messages.append(event.to_message())


class Hangup:
    def send(self, event):
        raise ConnectionResetError("peer went away")


def test_nothing_is_delivered_without_joining():
    bus = Broadcaster()
    assert bus.publish("admin_room", OrderEvent.deleted("x")) == 0


def test_only_members_of_the_group_receive():
    bus = Broadcaster()
    office, other = Inbox(), Inbox()
    bus.join("admin_room", office)
    bus.join("drivers", other)

    assert bus.publish("admin_room", OrderEvent.created({"id": "1"})) == 1
    assert office.messages == [{"event": "new_order", "data": {"id": "1"}}]
    assert other.messages == []


def test_joining_twice_does_not_duplicate_events():
    bus = Broadcaster()
    office = Inbox()
    assert bus.join("admin_room", office) is True
    assert bus.join("admin_room", office) is False

    bus.publish("admin_room", OrderEvent.updated({"id": "1", "status": "confirmed"}))
    assert len(office.messages) == 1


def test_leave_stops_delivery():
    bus = Broadcaster()
    office = Inbox()
    bus.join("admin_room", office)
    assert bus.leave("admin_room", office) is True
    assert bus.leave("admin_room", office) is False

    bus.publish("admin_room", OrderEvent.deleted("1"))
    assert office.messages == []


def test_failing_observer_is_evicted_and_others_still_receive():
    bus = Broadcaster()
    first, second = Inbox(), Inbox()
    bus.join("admin_room", first)
    bus.join("admin_room", Hangup())
    bus.join("admin_room", second)

    assert bus.publish("admin_room", OrderEvent.deleted("9")) == 2
    assert bus.members("admin_room") == [first, second]
    assert first.messages == second.messages == [
        {"event": "order_deleted", "data": {"id": "9"}}
    ]


def test_events_keep_emission_order():
    bus = Broadcaster()
    office = Inbox()
    bus.join("admin_room", office)
    bus.publish("admin_room", OrderEvent.created({"id": "1"}))
    bus.publish("admin_room", OrderEvent.updated({"id": "1"}))
    bus.publish("admin_room", OrderEvent.deleted("1"))

    assert [m["event"] for m in office.messages] == [
        "new_order",
        "order_updated",
        "order_deleted",
    ]


def test_join_from_another_thread_sees_the_next_event():
    bus = Broadcaster()
    office = Inbox()
    t = threading.Thread(target=bus.join, args=("admin_room", office))
    t.start()
    t.join()

    bus.publish("admin_room", OrderEvent.deleted("1"))
    assert len(office.messages) == 1


def test_queue_observer_accepts_events_from_worker_threads():
    async def scenario():
        observer = QueueObserver(asyncio.get_running_loop(), maxsize=10)
        worker = threading.Thread(target=observer.send, args=(OrderEvent.deleted("abc"),))
        worker.start()
        worker.join()
        return await asyncio.wait_for(observer.get(), timeout=2)

    assert asyncio.run(scenario()) == {"event": "order_deleted", "data": {"id": "abc"}}


def test_full_queue_drops_instead_of_blocking():
    async def scenario():
        observer = QueueObserver(asyncio.get_running_loop(), maxsize=1)
        return observer.offer({"event": "a"}), observer.offer({"event": "b"})

    assert asyncio.run(scenario()) == (True, False)


def test_observer_on_closed_loop_is_evicted():
    loop = asyncio.new_event_loop()
    observer = QueueObserver(loop)
    loop.close()

    bus = Broadcaster()
    bus.join("admin_room", observer)
    assert bus.publish("admin_room", OrderEvent.deleted("1")) == 0
    assert bus.members("admin_room") == []


@pytest.mark.parametrize(
    "event, name",
    [
        (OrderEvent.created({"id": "1"}), "new_order"),
        (OrderEvent.updated({"id": "1"}), "order_updated"),
        (OrderEvent.deleted("1"), "order_deleted"),
    ],
)
def test_event_wire_names(event, name):
    assert event.name == name
    assert event.order_id == "1"
