"""Publish/subscribe channel for job progress events."""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..models.jobs import JobProgressEvent

logger = logging.getLogger(__name__)

ProgressListener = Callable[[JobProgressEvent], None]


class Subscription:
    """Handle for one listener registration.

    A subscription scoped to a job id closes itself after that job's terminal
    event has been delivered. ``close()`` may be called any number of times.
    """

    def __init__(self, channel: ProgressChannel, listener: ProgressListener, job_id: str | None) -> None:
        self._channel = channel
        self.listener = listener
        self.job_id = job_id
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        self._channel._remove(self)

    def matches(self, event: JobProgressEvent) -> bool:
        return self._active and (self.job_id is None or self.job_id == event.job_id)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ProgressChannel:
    """Delivers progress events to subscribers in subscription order.

    A failing listener is logged and skipped; it never stops delivery to the
    others.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, listener: ProgressListener, job_id: str | None = None) -> Subscription:
        subscription = Subscription(self, listener, job_id)
        self._subscriptions.append(subscription)
        return subscription

    def publish(self, event: JobProgressEvent) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.matches(event):
                continue
            try:
                subscription.listener(event)
            except Exception:
                logger.exception("Progress listener failed for job %s (%s)", event.job_id, event.kind.value)
            if subscription.job_id is not None and event.kind.is_terminal:
                subscription.close()

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass
