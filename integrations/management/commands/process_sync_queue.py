import signal
import logging
from time import sleep

from django.core.management.base import BaseCommand, CommandError
from django.db import close_old_connections

from inventory.services.base_service import ServiceError
from integrations.models import SyncQueueItem
from integrations.services import SyncQueueService, VendorMasterClient

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Retry due sync queue items (vendor master pushes, order imports)'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.running = True

    def add_arguments(self, parser):
        parser.add_argument('--daemon', action='store_true', help='Run as daemon (continuous)')
        parser.add_argument('--interval', type=int, default=120, help='Check interval in seconds (default: 120)')
        parser.add_argument('--sync-vendors', action='store_true', help='Pull the vendor master before processing')

    def handle(self, *args, **options):
        if options['sync_vendors']:
            self._sync_vendors()

        if options['daemon']:
            self._run_daemon(options['interval'])
        else:
            self._run_once()

    def _sync_vendors(self):
        try:
            result = VendorMasterClient.sync_vendors()
            self.stdout.write(self.style.SUCCESS(f"Vendors synced: {result['synced']}"))
        except ServiceError as e:
            SyncQueueService.enqueue(SyncQueueItem.Service.VENDOR_MASTER, "sync_vendors", error=e.message)
            self.stdout.write(self.style.WARNING(f'Vendor sync queued: {e.message}'))

    def _run_once(self):
        try:
            result = SyncQueueService.process_due()
        except ServiceError as e:
            raise CommandError(e.message)

        if not result['attempted']:
            self.stdout.write('No due sync items.')
            return

        self.stdout.write(self.style.SUCCESS(
            f"Attempted: {result['attempted']}, Synced: {result['synced']}, Failed: {result['failed']}"
        ))

    def _run_daemon(self, interval):
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.stdout.write(self.style.SUCCESS('Sync queue processor started (daemon mode)'))
        self.stdout.write(f'Interval: {interval}s')
        self.stdout.write('Press Ctrl+C to stop.\n')

        while self.running:
            close_old_connections()
            try:
                result = SyncQueueService.process_due()
                if result['synced']:
                    self.stdout.write(self.style.SUCCESS(f"  Synced {result['synced']}"))
                if result['failed']:
                    self.stdout.write(self.style.WARNING(f"  Failed {result['failed']}"))
            except ServiceError as e:
                logger.error(f'Sync queue processor error: {e.message}')
                self.stdout.write(self.style.ERROR(f'Error: {e.message}'))
            sleep(interval)

        self.stdout.write(self.style.SUCCESS('\nProcessor stopped.'))

    def _signal_handler(self, signum, frame):
        self.stdout.write('\nStopping...')
        self.running = False
