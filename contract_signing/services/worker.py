"""Background worker: signature expiration reminders on a schedule (APScheduler)."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from contract_signing.models.contract import Contract
from contract_signing.models.dispatch import Channel, NotificationEvent, Recipient
from contract_signing.models.worker import ReminderRun, WorkerJob, WorkerStatus
from contract_signing.services.document_types import get_kind
from contract_signing.utils.config import Settings, get_settings
from contract_signing.utils.portuguese import format_datetime

logger = logging.getLogger(__name__)

REMINDER_CHANNELS = {Channel.EMAIL, Channel.WHATSAPP, Channel.IN_APP}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReminderWorker:
    """Reminds signers whose link is about to expire.

    Runs once a day at ``worker_reminder_time``. A contract is picked when
    its link expires between ``reminder_days_before - 1`` and
    ``reminder_days_before`` days from now, so each link is reminded on
    one daily run.
    """

    def __init__(
        self,
        db=None,
        dispatcher=None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or get_settings()
        self.clock = clock
        self._scheduler = None
        self._db = db
        self._dispatcher = dispatcher

    @property
    def scheduler(self):
        """Lazy-load APScheduler."""
        if self._scheduler is None:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            self._scheduler = AsyncIOScheduler()
        return self._scheduler

    @property
    def db(self):
        """Lazy-load database client."""
        if self._db is None:
            from contract_signing.db.supabase import get_database
            self._db = get_database()
        return self._db

    @property
    def dispatcher(self):
        """Lazy-load dispatcher."""
        if self._dispatcher is None:
            from contract_signing.services.dispatcher import NotificationDispatcher
            self._dispatcher = NotificationDispatcher(self.db, settings=self.settings, clock=self.clock)
        return self._dispatcher

    async def start(self) -> None:
        """Schedule the daily reminder job and start the scheduler."""
        if self._scheduler and self._scheduler.running:
            logger.warning("Worker already running")
            return

        logger.info("Starting reminder worker...")
        from apscheduler.triggers.cron import CronTrigger

        try:
            hour, minute = self.settings.worker_reminder_time.split(":")
            hour, minute = int(hour), int(minute)
        except (ValueError, AttributeError):
            hour, minute = 9, 0

        self.scheduler.add_job(
            self.run_with_retry,
            trigger=CronTrigger(hour=hour, minute=minute),
            id="signature_expiration_reminders",
            name="Lembretes de expiração de assinatura",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info(f"Worker started: reminders daily at {hour:02d}:{minute:02d}")

    def stop(self) -> None:
        """Gracefully shutdown scheduler, wait for running jobs."""
        if self._scheduler and self._scheduler.running:
            logger.info("Stopping reminder worker...")
            self._scheduler.shutdown(wait=True)
            logger.info("Worker stopped")
        else:
            logger.info("Worker not running")

    def find_expiring(self) -> List[Contract]:
        now = self.clock()
        days = self.settings.reminder_days_before
        start = now + timedelta(days=max(days - 1, 0))
        end = now + timedelta(days=days)
        return [Contract(**row) for row in self.db.list_contracts_expiring(start, end)]

    async def send_reminders(self) -> ReminderRun:
        """One reminder pass over contracts about to expire."""
        run = ReminderRun(started_at=self.clock())
        contracts = await asyncio.to_thread(self.find_expiring)
        run.contracts_found = len(contracts)

        for contract in contracts:
            kind = get_kind(contract.document_type)
            signer = contract.signer
            outcome = await self.dispatcher.dispatch(
                NotificationEvent.EXPIRATION_REMINDER.value,
                sorted(REMINDER_CHANNELS & kind.channels_allowed, key=lambda c: c.value),
                Recipient(name=signer.name, user_id=signer.user_id, email=signer.email, phone=signer.phone),
                {
                    "link": f"{self.settings.site_url.rstrip('/')}/sign/{contract.signature_token}",
                    "marca": contract.subject or contract.variables.get("marca", ""),
                    "documento": kind.display_name,
                    "expira_em": format_datetime(contract.token_expires_at),
                },
                contract_id=contract.id,
            )
            if any(a.ok for a in outcome.values()):
                run.reminders_sent += 1
            else:
                run.reminders_failed += 1

        logger.info(
            f"Reminder pass: {run.contracts_found} expiring, "
            f"{run.reminders_sent} reminded, {run.reminders_failed} failed"
        )
        return run

    async def run_with_retry(self) -> Optional[ReminderRun]:
        """Run a reminder pass with retry.

        Retry: ``worker_retry_count`` attempts, exponential backoff from
        ``worker_retry_backoff`` seconds.
        """
        max_retries = self.settings.worker_retry_count
        base_backoff = self.settings.worker_retry_backoff

        for attempt in range(1, max_retries + 1):
            try:
                logger.info(f"Running reminders (attempt {attempt}/{max_retries})")
                return await self.send_reminders()
            except Exception as e:
                logger.error(f"Reminder pass failed (attempt {attempt}): {e}")
                if attempt < max_retries:
                    backoff = base_backoff * (2 ** (attempt - 1))
                    logger.info(f"  Retrying in {backoff}s...")
                    await asyncio.sleep(backoff)

        logger.error(f"Reminder pass failed after {max_retries} attempts")
        return None

    def get_status(self) -> WorkerStatus:
        """Return current worker state + job schedule."""
        is_running = bool(self._scheduler and self._scheduler.running)

        jobs = []
        if is_running:
            for job in self._scheduler.get_jobs():
                jobs.append(WorkerJob(
                    id=job.id,
                    name=job.name or job.id,
                    next_run=job.next_run_time,
                    trigger=str(job.trigger),
                ))

        return WorkerStatus(is_running=is_running, jobs=jobs, last_check=self.clock())


# Singleton
_worker: Optional[ReminderWorker] = None


def get_worker() -> ReminderWorker:
    """Get or create worker singleton."""
    global _worker
    if _worker is None:
        _worker = ReminderWorker()
    return _worker
