"""
Shared Polling Service

Many subscribers, one interval job per key. The first subscriber to a key
schedules the job (id "poll:<key>") with its first run immediately; later
subscribers share it and receive every fetched value. The job is removed when the last subscriber
leaves.

A failed fetch is logged and the previous value is kept. A failing callback
does not stop delivery to the others.
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.triggers.interval import IntervalTrigger

from intelliservice.scheduler import get_scheduler

logger = logging.getLogger(__name__)

TRACKING_POLL_SECONDS = int(os.getenv("TRACKING_POLL_SECONDS", "30"))
ONSITE_POLL_SECONDS = int(os.getenv("ONSITE_POLL_SECONDS", "30"))

Fetcher = Callable[[], Awaitable[Any]]
Callback = Callable[[Any], Any]


@dataclass
class Subscription:
    id: str
    key: str
    callback: Callback


@dataclass
class PollTarget:
    key: str
    fetch: Fetcher
    interval_seconds: int
    latest: Any = None
    has_value: bool = False


def job_id(key: str) -> str:
    return f"poll:{key}"


class PollingService:
    """Fan-out poller over the shared scheduler"""

    def __init__(self, scheduler=None):
        self._scheduler = scheduler
        self._targets: Dict[str, PollTarget] = {}
        self._subscriptions: Dict[str, Subscription] = {}

    @property
    def scheduler(self):
        return self._scheduler or get_scheduler()

    def subscribe(self, key: str, fetch: Fetcher, callback: Callback, interval_seconds: int) -> str:
        """Register a callback for key; returns a subscription id"""
        if interval_seconds <= 0:
            raise ValueError("Polling interval must be positive")

        subscription = Subscription(id=uuid.uuid4().hex, key=key, callback=callback)
        self._subscriptions[subscription.id] = subscription

        if key not in self._targets:
            self._targets[key] = PollTarget(key=key, fetch=fetch, interval_seconds=interval_seconds)
            self.scheduler.add_job(
                self.poll,
                IntervalTrigger(seconds=interval_seconds),
                args=[key],
                id=job_id(key),
                name=f"Poll {key}",
                next_run_time=datetime.now(timezone.utc),
                replace_existing=True
            )
            logger.info(f"[Polling] Started {key} every {interval_seconds}s")

        return subscription.id

    def unsubscribe(self, subscription_id: str) -> None:
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            return

        if self.subscriber_count(subscription.key) == 0:
            self._targets.pop(subscription.key, None)
            try:
                self.scheduler.remove_job(job_id(subscription.key))
            except Exception as e:
                logger.warning(f"[Polling] Job for {subscription.key} already gone: {e}")
            logger.info(f"[Polling] Stopped {subscription.key}")

    async def poll(self, key: str) -> Any:
        """Fetch once and deliver to every subscriber of key"""
        target = self._targets.get(key)
        if target is None:
            return None

        try:
            target.latest = await target.fetch()
            target.has_value = True
        except Exception as e:
            logger.error(f"[Polling] Fetch failed for {key}: {e}")
            return target.latest

        for subscription in self._subscribers(key):
            try:
                result = subscription.callback(target.latest)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"[Polling] Subscriber {subscription.id} failed for {key}: {e}")

        return target.latest

    def get_latest(self, key: str) -> Any:
        target = self._targets.get(key)
        return target.latest if target else None

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers(key))

    def active_keys(self) -> List[str]:
        return sorted(self._targets)

    def _subscribers(self, key: str) -> List[Subscription]:
        return [s for s in self._subscriptions.values() if s.key == key]


# Singleton instance
_polling: Optional[PollingService] = None


def get_polling_service() -> PollingService:
    global _polling
    if _polling is None:
        _polling = PollingService()
    return _polling
