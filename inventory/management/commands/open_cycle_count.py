from django.core.management.base import BaseCommand, CommandError

from inventory.services import CycleCountService
from inventory.services.base_service import ServiceError


class Command(BaseCommand):
    help = 'Open a cycle count session over a random sample of stocked bins'

    def add_arguments(self, parser):
        parser.add_argument('sample_size', type=int, help='Number of (bin, sku) rows to sample')
        parser.add_argument('--actor', type=str, default='open_cycle_count', help='Recorded as the session opener')

    def handle(self, *args, **options):
        try:
            result = CycleCountService.run_cycle_count(options['sample_size'], actor=options['actor'])
        except ServiceError as e:
            raise CommandError(e.message)

        session = result['data']
        self.stdout.write(self.style.SUCCESS(result['message']))
        for entry in session['entries']:
            self.stdout.write(f"  {entry['bin_code']:<12} {entry['sku']:<20} system={entry['system_quantity']}")
