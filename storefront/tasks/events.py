# storefront/tasks/events.py
from storefront.celery_worker import celery_app
from storefront.domain.errors import DependencyError
from storefront.services.event_publisher import EventPublisher
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

_publisher = None


def get_publisher() -> EventPublisher:
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher


@celery_app.task(
    bind=True,
    name="storefront.tasks.events.publish_event_task",
    max_retries=5,
)
def publish_event_task(self, exchange: str, routing_key: str, payload: dict):
    """Retries a domain event whose inline publish failed."""
    try:
        get_publisher().publish(exchange, routing_key, payload)
    except DependencyError as exc:
        countdown = 2 ** self.request.retries
        logger.warning(
            f"Retry {self.request.retries + 1} for event {exchange}/{routing_key} in {countdown}s"
        )
        raise self.retry(exc=exc, countdown=countdown)
    return {"exchange": exchange, "routing_key": routing_key, "status": "published"}
