# storefront/services/event_publisher.py
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from kombu import Connection, Exchange
from kombu.exceptions import KombuError

from storefront.domain.errors import DependencyError
from storefront.utils.settings import RABBITMQ_URL, BROKER_TIMEOUT
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

_RETRY_POLICY = {
    "max_retries": 3,
    "interval_start": 0,
    "interval_step": 0.5,
    "interval_max": 2,
}


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class EventPublisher:
    """
    Publishes domain events to a durable topic exchange.

    Messages are JSON with delivery_mode=2 (persistent). Failures are logged
    and raised as DependencyError; callers decide whether that is fatal.
    """

    def __init__(self, url: str = RABBITMQ_URL, timeout: float = BROKER_TIMEOUT, connection: Connection | None = None):
        self.timeout = timeout
        self.connection = connection or Connection(url, connect_timeout=timeout)
        self._exchanges: Dict[str, Exchange] = {}
        # kombu connections are not thread-safe; sync FastAPI handlers run in a threadpool
        self._lock = threading.Lock()

    def _exchange(self, name: str) -> Exchange:
        if name not in self._exchanges:
            self._exchanges[name] = Exchange(name, type="topic", durable=True)
        return self._exchanges[name]

    def publish(self, exchange: str, routing_key: str, payload: Dict[str, Any]) -> None:
        body = to_jsonable(payload)
        target = self._exchange(exchange)
        errors = self.connection.connection_errors + self.connection.channel_errors + (KombuError, OSError)

        try:
            with self._lock:
                producer = self.connection.Producer(serializer="json")
                producer.publish(
                    body,
                    exchange=target,
                    routing_key=routing_key,
                    declare=[target],
                    delivery_mode=2,
                    retry=True,
                    retry_policy=_RETRY_POLICY,
                    timeout=self.timeout,
                )
        except errors as e:
            logger.error(f"Failed to publish event {exchange}/{routing_key}: {e}")
            raise DependencyError("Event broker unavailable") from e

        logger.info(f"Event published {exchange}/{routing_key}")

    def defer(self, exchange: str, routing_key: str, payload: Dict[str, Any]) -> None:
        """Hand a failed event to the Celery retry task; never raises."""
        from storefront.tasks.events import publish_event_task

        try:
            publish_event_task.delay(exchange, routing_key, to_jsonable(payload))
            logger.info(f"Event {exchange}/{routing_key} queued for retry")
        except Exception as e:
            logger.error(f"Could not queue event {exchange}/{routing_key} for retry, event lost: {e}")

    def close(self) -> None:
        self.connection.release()
