import asyncio
import json

import structlog
from aiokafka import AIOKafkaConsumer
from sqlalchemy.exc import SQLAlchemyError

from .config import (
    KAFKA_BOOTSTRAP_SERVERS,
    KAFKA_GROUP_ID,
    KAFKA_RETRY_BACKOFF,
    KAFKA_RETRY_BACKOFF_MAX,
    KAFKA_TOPIC,
)
from .database import SessionLocal
from .errors import OrderServiceError, translate_db_error
from .schemas import OrderStatus
from .service import OrderService

logger = structlog.get_logger(__name__)

ORDER_PAID = "ORDER_PAID"


def handle_payment_event(raw, session_factory=SessionLocal):
    """Apply one payment message.

    Returns True if an order was updated and False if the message was skipped.
    Retryable failures (``Conflict``, ``StorageUnavailable``) are raised so the
    message is not lost.
    """
    try:
        payload = json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Skipping malformed payment event", error=str(exc))
        return False

    if not isinstance(payload, dict) or payload.get("event") != ORDER_PAID:
        return False

    order_id = payload.get("order_id")
    if not order_id:
        logger.warning("Payment event without order_id", payload=payload)
        return False

    db = session_factory()
    try:
        try:
            OrderService(db).set_order_status(str(order_id), OrderStatus.PAID)
        except SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc
    except OrderServiceError as exc:
        if exc.retryable:
            logger.warning("Payment event failed, will retry", order_id=order_id, error=exc.code)
            raise
        logger.warning("Payment event not applied", order_id=order_id, error=exc.code)
        return False
    finally:
        db.close()

    logger.info("Order marked as paid", order_id=order_id, transaction_id=payload.get("transaction_id"))
    return True


async def process_payment_message(raw, session_factory=SessionLocal,
                                  backoff=KAFKA_RETRY_BACKOFF, backoff_max=KAFKA_RETRY_BACKOFF_MAX):
    """Handle one message off the event loop, retrying retryable failures until they pass."""
    attempt = 0
    while True:
        try:
            return await asyncio.to_thread(handle_payment_event, raw, session_factory)
        except OrderServiceError as exc:
            if not exc.retryable:
                return False
            attempt += 1
            delay = min(backoff * 2 ** (attempt - 1), backoff_max)
            logger.info("Retrying payment event", attempt=attempt, delay=delay, error=exc.code)
            await asyncio.sleep(delay)
        except Exception:
            logger.exception("Unexpected error while handling payment event")
            return False


async def consume_payment_events(bootstrap_servers=KAFKA_BOOTSTRAP_SERVERS, topic=KAFKA_TOPIC):
    # Offsets are committed only once a message has been handled
    consumer = AIOKafkaConsumer(
        topic,
        bootstrap_servers=bootstrap_servers,
        group_id=KAFKA_GROUP_ID,
        auto_offset_reset="earliest",
        enable_auto_commit=False,
    )

    logger.info("Kafka consumer starting", topic=topic, bootstrap_servers=bootstrap_servers)
    await consumer.start()

    try:
        async for msg in consumer:
            await process_payment_message(msg.value)
            await consumer.commit()
    finally:
        await consumer.stop()
        logger.info("Kafka consumer stopped", topic=topic)
