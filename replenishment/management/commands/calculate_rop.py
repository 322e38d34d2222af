import logging

from django.core.management.base import BaseCommand, CommandError

from inventory.services.base_service import ServiceError
from replenishment.services import ROPService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Recalculate reorder points for every SKU with recent usage'

    def add_arguments(self, parser):
        parser.add_argument(
            '--as-of',
            type=str,
            default=None,
            help='Last day of the usage window, YYYY-MM-DD (default: today)'
        )
        parser.add_argument(
            '--discard-overrides',
            action='store_true',
            help='Drop operator quantity and vendor split overrides'
        )

    def handle(self, *args, **options):
        try:
            result = ROPService.calculate(
                as_of=options['as_of'],
                discard_overrides=options['discard_overrides'],
                actor='calculate_rop',
            )
        except ServiceError as e:
            raise CommandError(e.message)

        job = result['data']
        self.stdout.write(self.style.SUCCESS(
            f"Job {job['job_id']}: {job['item_count']} item(s) recalculated as of {job['as_of']}"
        ))
