"""Outbox Dispatcher - Background delivery of queued notifications

Safe for several application processes sharing one database: each
notification is leased before delivery, so only one process sends it.
Expired leases are picked up again by the next cycle.
"""
import os
import socket
from typing import Dict, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..services.notification_service import NotificationService
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id, generate_id
from ..utils.time import utc_now

logger = get_logger(__name__)


class OutboxDispatcher:
    """
    Periodically drain the notification outbox using APScheduler.

    Failed deliveries are rescheduled with exponential backoff by the
    notification service until the retry limit parks them as FAILED.
    """

    def __init__(self, notification_service: NotificationService):
        self.notification_service = notification_service
        self.notification_repo = notification_service.repo
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._server_id = self._generate_server_id()
        self._process_count = 0

    def _generate_server_id(self) -> str:
        """Unique id for this process, used as the lease owner"""
        return f"{socket.gethostname()}-{os.getpid()}-{generate_id()[:8]}"

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Outbox dispatcher already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.process_pending,
            trigger=IntervalTrigger(seconds=settings.scheduler_interval_seconds),
            id="process_notifications",
            name="Process pending notifications",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(
            f"Outbox dispatcher started (server {self._server_id}, "
            f"every {settings.scheduler_interval_seconds}s)"
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
        self._is_running = False
        logger.info("Outbox dispatcher stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def process_pending(self) -> Dict[str, int]:
        """
        Run one delivery cycle.

        Returns:
            Counts of sent, failed and skipped notifications
        """
        set_correlation_id(generate_correlation_id())
        start_time = utc_now()
        stats = {"sent": 0, "failed": 0, "skipped": 0}

        notifications = self.notification_repo.get_pending_notifications(
            limit=settings.notification_batch_size
        )
        if not notifications:
            return stats

        for notification in notifications:
            lock_id = f"{self._server_id}-{generate_id()[:8]}"
            acquired = self.notification_repo.acquire_lock(
                notification.notification_id,
                lock_id,
                lock_duration_seconds=settings.notification_lock_duration_seconds
            )
            if not acquired:
                # Another process holds the lease
                stats["skipped"] += 1
                continue

            try:
                if await self.notification_service.send_notification(notification):
                    stats["sent"] += 1
                    self._process_count += 1
                else:
                    stats["failed"] += 1
            finally:
                self.notification_repo.release_lock(notification.notification_id, lock_id)

        duration_ms = (utc_now() - start_time).total_seconds() * 1000
        logger.info(
            f"Notification cycle complete: {stats['sent']} sent, "
            f"{stats['failed']} failed, {stats['skipped']} skipped in {duration_ms:.0f}ms"
        )
        return stats


# Global dispatcher instance
_dispatcher: Optional[OutboxDispatcher] = None


def start_dispatcher(notification_service: NotificationService) -> OutboxDispatcher:
    """Create and start the global dispatcher"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = OutboxDispatcher(notification_service)
    _dispatcher.start()
    return _dispatcher


def stop_dispatcher() -> None:
    """Stop the global dispatcher"""
    global _dispatcher
    if _dispatcher:
        _dispatcher.stop()
        _dispatcher = None
