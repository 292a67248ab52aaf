"""
Background scheduler that expires stale leave/overtime/late requests.
"""

import logging
from typing import Optional
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tmd.config import settings
from tmd.database import get_db
from tmd.services.notification_service import NotificationService, hub
from tmd.services.request_service import RequestService

logger = logging.getLogger(__name__)


class RequestScheduler:
    """申請自動拒絕排程器"""

    def __init__(self):
        self.scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
        self.notifications = NotificationService(hub)
        self._setup_scheduled_jobs()

    def _setup_scheduled_jobs(self):
        """設定定時任務"""
        config = settings.get_scheduler_config()["auto_reject"]

        # 逾期申請自動拒絕 - 預設每小時檢查一次
        self.scheduler.add_job(
            func=self.auto_reject_job,
            trigger=IntervalTrigger(minutes=config["interval_minutes"], timezone=settings.TIMEZONE),
            id='auto_reject_requests',
            name='Auto-reject stale requests',
            replace_existing=True
        )
        logger.info(f"Auto-reject job scheduled every {config['interval_minutes']} minutes "
                    f"(threshold {config['days']} days)")

    def auto_reject_job(self) -> int:
        """逾期申請自動拒絕任務"""
        db = next(get_db())
        try:
            rejected = RequestService(db).auto_reject_stale()
            for item in rejected:
                hub.notify_from_thread(
                    self.notifications.notify_auto_rejected(item["kind"], item["request_id"], item["user_id"])
                )
            if rejected:
                logger.info(f"Auto-reject job rejected {len(rejected)} request(s)")
            return len(rejected)
        except Exception as e:
            logger.error(f"Auto-reject job failed: {e}")
            return 0
        finally:
            db.close()

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")

    def stop(self):
        try:
            if self.scheduler.running:
                self.scheduler.shutdown()
                logger.info("Scheduler stopped")
        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")


# 全域排程器實例
request_scheduler: Optional[RequestScheduler] = None


def get_request_scheduler() -> RequestScheduler:
    global request_scheduler
    if request_scheduler is None:
        request_scheduler = RequestScheduler()
    return request_scheduler


def start_scheduler() -> Optional[RequestScheduler]:
    if not settings.ENABLE_SCHEDULER:
        logger.info("Scheduler disabled by configuration")
        return None
    scheduler = get_request_scheduler()
    scheduler.start()
    return scheduler


def stop_scheduler():
    global request_scheduler
    if request_scheduler is not None:
        request_scheduler.stop()
        request_scheduler = None
