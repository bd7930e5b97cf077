# Overview: Fire-and-forget realtime notifications for booking changes.

"""
Realtime Notifier

Publishes booking events to a per-tenant channel so admin screens update
without polling. Delivery runs on a small thread pool after the database
commit; a failed delivery is logged and never reaches the caller.

Channel: booking-notifications-<tenant_id>
Events: new-booking, booking-cancelled, booking-completed, booking-seated,
        booking-noshow, booking-updated

Transports:
- RedisTransport: Redis pub/sub (REDIS_URL)
- LoggingTransport: logs the event (no REDIS_URL, local development)
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor

import redis
from flask import current_app

from chairbook.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)


EVENT_NEW_BOOKING = "new-booking"
EVENT_BOOKING_CANCELLED = "booking-cancelled"
EVENT_BOOKING_COMPLETED = "booking-completed"
EVENT_BOOKING_SEATED = "booking-seated"
EVENT_BOOKING_NO_SHOW = "booking-noshow"
EVENT_BOOKING_UPDATED = "booking-updated"


def channel_for(tenant_id: int) -> str:
    return f"booking-notifications-{tenant_id}"


class LoggingTransport:
    def publish(self, channel: str, message: dict) -> None:
        logger.info("notify channel=%s event=%s", channel, message.get("event"))


class RedisTransport:
    """Redis pub/sub; the client is created on first use."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return self._client

    def publish(self, channel: str, message: dict) -> None:
        self.client.publish(channel, json.dumps(message))


class Notifier:
    """
    Non-blocking publisher.

    synchronous=True delivers inline (tests, CLI); failures are still
    logged and swallowed.
    """

    def __init__(self, transport, *, max_workers: int = 4, synchronous: bool = False):
        self.transport = transport
        self.synchronous = synchronous
        self._executor = None if synchronous else ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="notifier",
        )

    def publish(self, channel_key: str, event_name: str, payload: dict) -> Future | None:
        message = {
            "event": event_name,
            "payload": payload,
            "sent_at": to_utc_z(utcnow()),
        }
        if self._executor is None:
            self._deliver(channel_key, message)
            return None
        try:
            return self._executor.submit(self._deliver, channel_key, message)
        except RuntimeError:
            # Executor already shut down (interpreter exit)
            logger.warning("Notifier is shut down; dropped %s on %s", event_name, channel_key)
            return None

    def _deliver(self, channel_key: str, message: dict) -> None:
        try:
            self.transport.publish(channel_key, message)
        except Exception:
            logger.exception("Failed to publish %s on %s", message.get("event"), channel_key)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def init_app(app, transport=None) -> Notifier:
    if transport is None:
        redis_url = app.config.get("REDIS_URL")
        transport = RedisTransport(redis_url) if redis_url else LoggingTransport()
    notifier = Notifier(
        transport,
        max_workers=app.config.get("NOTIFIER_MAX_WORKERS", 4),
        synchronous=app.config.get("NOTIFIER_SYNCHRONOUS", False),
    )
    app.extensions["notifier"] = notifier
    return notifier


def notify_booking(tenant_id: int, event_name: str, booking) -> None:
    """
    Publish a booking event for the tenant. Call after commit.

    `booking` is the payload dict or a callable that builds it. A callable is
    evaluated here, so a failure while building the payload is logged and
    dropped like a failed delivery.
    """
    try:
        payload = booking() if callable(booking) else booking
        current_app.extensions["notifier"].publish(channel_for(tenant_id), event_name, payload)
    except Exception:
        logger.exception("Notifier unavailable; dropped %s for tenant %s", event_name, tenant_id)
