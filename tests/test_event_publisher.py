"""
Publishing to a topic exchange over kombu's in-memory transport.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from kombu import Connection, Exchange, Queue

import storefront.tasks.events as events_module
from storefront.celery_worker import celery_app
from storefront.domain.errors import DependencyError
from storefront.services.event_publisher import EventPublisher, to_jsonable


@pytest.fixture
def connection():
    conn = Connection("memory://")
    yield conn
    conn.release()


@pytest.fixture
def exchange_name():
    # memory transport state is process-wide
    return f"order_events_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def audit_queue(connection, exchange_name):
    queue = Queue(
        f"audit_{exchange_name}",
        exchange=Exchange(exchange_name, type="topic", durable=True),
        routing_key="order.#",
    )
    queue(connection.default_channel).declare()
    return queue


def drain(connection, queue):
    with connection.SimpleQueue(queue) as simple:
        message = simple.get(block=True, timeout=1)
        message.ack()
        return message


class BrokenConnection:
    connection_errors = (ConnectionError,)
    channel_errors = ()

    def Producer(self, **kwargs):
        raise ConnectionError("broker down")

    def release(self):
        pass


class TestToJsonable:

    def test_nested_values(self):
        when = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        payload = {"total": Decimal("55.49"), "at": when, "items": [{"price": Decimal("1.50")}]}
        assert to_jsonable(payload) == {
            "total": "55.49",
            "at": "2026-10-19T12:00:00+00:00",
            "items": [{"price": "1.50"}],
        }


class TestPublish:

    def test_routes_to_bound_queue(self, connection, exchange_name, audit_queue):
        publisher = EventPublisher(connection=connection)
        publisher.publish(exchange_name, "order.created", {"orderId": "o-1", "total": Decimal("66.00")})

        message = drain(connection, audit_queue)
        assert message.payload == {"orderId": "o-1", "total": "66.00"}
        assert message.delivery_info["routing_key"] == "order.created"
        assert message.properties["delivery_mode"] == 2

    def test_broker_failure_raises_dependency_error(self):
        publisher = EventPublisher(connection=BrokenConnection())
        with pytest.raises(DependencyError) as exc:
            publisher.publish("order_events", "order.created", {"orderId": "o-1"})
        assert exc.value.retryable is True


class TestDefer:

    def test_deferred_event_is_published_by_task(self, monkeypatch, connection, exchange_name, audit_queue):
        monkeypatch.setattr(celery_app.conf, "task_always_eager", True)
        monkeypatch.setattr(events_module, "get_publisher", lambda: EventPublisher(connection=connection))

        EventPublisher(connection=BrokenConnection()).defer(
            exchange_name, "order.status.changed", {"orderId": "o-2", "total": Decimal("1.00")}
        )

        message = drain(connection, audit_queue)
        assert message.payload == {"orderId": "o-2", "total": "1.00"}

    def test_defer_never_raises(self, monkeypatch):
        class Unreachable:
            def delay(self, *args):
                raise ConnectionError("celery broker down")

        monkeypatch.setattr(events_module, "publish_event_task", Unreachable())
        EventPublisher(connection=BrokenConnection()).defer("order_events", "order.created", {"orderId": "o-3"})
