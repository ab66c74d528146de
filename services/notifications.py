"""Outbound alert notifications, decoupled from ingestion by a bounded queue."""

from __future__ import annotations

import logging
import queue
from functools import lru_cache
from threading import Thread
from typing import Optional, Protocol

import httpx

from exceptions import NotificationFailure
from settings import get_settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE_URL = "https://api.twilio.com/2010-04-01"


class Notifier(Protocol):
    def send(self, destination: str, message: str) -> bool:
        ...


class DisabledNotifier:
    """Used when no SMS provider is configured; every send reports failure."""

    def send(self, destination: str, message: str) -> bool:
        logger.warning("SMS service not configured", extra={"destination": destination})
        return False


class TwilioNotifier:
    """Send SMS messages through the Twilio REST API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.account_sid = account_sid
        self.from_number = from_number
        self._client = client or httpx.Client(
            base_url=TWILIO_API_BASE_URL,
            auth=(account_sid, auth_token),
            timeout=10.0,
        )

    def send(self, destination: str, message: str) -> bool:
        try:
            response = self._client.post(
                f"/Accounts/{self.account_sid}/Messages.json",
                data={"To": destination, "From": self.from_number, "Body": message},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Failed to send SMS: %s", exc, extra={"destination": destination})
            return False
        logger.info("SMS sent: %s", self._message_sid(response), extra={"destination": destination})
        return True

    @staticmethod
    def _message_sid(response: httpx.Response) -> Optional[str]:
        try:
            payload = response.json()
        except ValueError:
            return None
        return payload.get("sid") if isinstance(payload, dict) else None

    def close(self) -> None:
        self._client.close()


_STOP = object()


class NotificationDispatcher:
    """Fire-and-forget delivery of alert messages on a dedicated worker thread.

    ``dispatch`` never blocks: when the queue is full the message is dropped
    and logged. Each message is sent at most once; failures are logged and
    never retried.
    """

    def __init__(
        self,
        notifier: Notifier,
        destination: Optional[str],
        max_pending: int = 16,
    ) -> None:
        self.notifier = notifier
        self.destination = destination
        self.sent = 0
        self.failed = 0
        self.dropped = 0
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=max_pending)
        self._worker = Thread(target=self._run, name="notification-dispatcher", daemon=True)
        self._worker.start()

    def dispatch(self, message: str) -> bool:
        """Queue a message for delivery; return False if it was not queued."""
        if not self.destination:
            logger.info("No alert phone number configured, skipping SMS notification")
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1
            logger.warning(
                "Notification queue full, dropping alert message",
                extra={"destination": self.destination, "dropped": self.dropped},
            )
            return False
        return True

    def join(self) -> None:
        """Block until every queued message has been handled."""
        self._queue.join()

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the worker and release the notifier without waiting on a backlog."""
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning(
                "Notification queue still full at shutdown; abandoning pending messages",
                extra={"destination": self.destination, "dropped": self._queue.qsize()},
            )
            return
        self._worker.join(timeout=timeout)
        if self._worker.is_alive():
            logger.warning("Notification worker did not stop in time")
            return
        close = getattr(self.notifier, "close", None)
        if callable(close):
            close()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(str(item))
            finally:
                self._queue.task_done()

    def _deliver(self, message: str) -> None:
        destination = self.destination or ""
        try:
            delivered = self.notifier.send(destination, message)
            if not delivered:
                raise NotificationFailure("Notifier reported failure", destination=destination)
        except Exception as exc:  # noqa: BLE001 - a broken notifier must not kill the worker
            self.failed += 1
            logger.error(
                "Failed to send alert notification: %s",
                exc,
                extra={"destination": destination},
            )
            return
        self.sent += 1


def build_notifier() -> Notifier:
    settings = get_settings()
    if settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_from_number:
        logger.info("SMS service ready")
        return TwilioNotifier(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_from_number,
        )
    logger.warning("Twilio configuration incomplete, SMS notifications will be disabled")
    return DisabledNotifier()


@lru_cache
def build_default_dispatcher() -> NotificationDispatcher:
    settings = get_settings()
    return NotificationDispatcher(
        notifier=build_notifier(),
        destination=settings.alert_phone_number,
        max_pending=settings.notification_queue_size,
    )
