import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import close_old_connections
from django.utils import timezone

from inventory.services.base_service import CalculationInProgressError
from integrations.services.sync_queue_service import SyncQueueService
from replenishment.services import ROPService

logger = logging.getLogger(__name__)


def calculate_reorder_points():
    logger.info("Executing scheduled ROP calculation")
    close_old_connections()
    try:
        result = ROPService.calculate(actor="scheduler")
        logger.info(f"ROP calculation done: {result['data']['item_count']} item(s)")
    except CalculationInProgressError as e:
        logger.warning(f"Skipped scheduled ROP calculation, job {e.job_id} is still running")


def process_sync_queue():
    close_old_connections()
    processed = SyncQueueService.process_due()
    if processed["attempted"]:
        logger.info(f"Sync queue: {processed['synced']} synced, {processed['failed']} failed")


class Command(BaseCommand):
    help = 'Run the replenishment scheduler (daily ROP calculation and sync queue retries)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--sync-interval',
            type=int,
            default=2,
            help='Minutes between sync queue passes (default: 2)'
        )

    def handle(self, *args, **options):
        hour = settings.ROP_SCHEDULE_HOUR
        minute = settings.ROP_SCHEDULE_MINUTE

        logger.info("=" * 50)
        logger.info("Starting Replenishment Scheduler")
        logger.info(f"Current time: {timezone.now()}")
        logger.info(f"  - ROP calculation: {hour:02d}:{minute:02d} daily")
        logger.info(f"  - Sync queue: every {options['sync_interval']} minute(s)")
        logger.info("=" * 50)

        scheduler = BlockingScheduler(timezone=settings.TIME_ZONE)
        scheduler.add_job(
            calculate_reorder_points,
            CronTrigger(hour=hour, minute=minute),
            id='rop_calculation',
            name='Recalculate reorder points',
            replace_existing=True
        )
        scheduler.add_job(
            process_sync_queue,
            IntervalTrigger(minutes=options['sync_interval']),
            id='sync_queue',
            name='Retry queued external calls',
            replace_existing=True
        )

        try:
            self.stdout.write(self.style.SUCCESS('Scheduler started. Press Ctrl+C to exit.'))
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped.")
            scheduler.shutdown()
