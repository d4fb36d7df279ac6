import json, logging
from kafka import KafkaProducer
from kafka.errors import KafkaError
from shiptrack.core.config import settings

logger = logging.getLogger(__name__)

_producer = None

def _get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=10,
            retries=5,
        )
    return _producer

def emit(event: dict):
    """Emit to shipping.events (configurable), keyed by tracking number."""
    try:
        p = _get_producer()
        p.send(settings.TOPIC_SHIPPING_EVENTS, key=str(event.get("tracking_number", "")), value=event)
        p.flush(5)
    except KafkaError:
        # the status change is already committed; the event is best effort
        logger.exception("Failed to publish %s for %s", event.get("type"), event.get("tracking_number"))

def close():
    global _producer
    if _producer is not None:
        _producer.close()
        _producer = None
