import logging

from django.dispatch import receiver

from inventory.signals import stock_consumed, consumed_stock_returned
from replenishment.models import UsageRecord

logger = logging.getLogger(__name__)


@receiver(stock_consumed)
def record_kitting_usage(sender, unit_id, lines, consumed_on, **kwargs):
    UsageRecord.objects.bulk_create([
        UsageRecord(
            sku=line["sku"],
            date=consumed_on,
            quantity=line["quantity"],
            source=UsageRecord.Source.KITTING,
            reference=str(unit_id),
        )
        for line in lines
    ])
    logger.debug(f"Usage recorded for unit {unit_id}: {len(lines)} line(s)")


@receiver(consumed_stock_returned)
def record_returned_usage(sender, unit_id, lines, returned_on, **kwargs):
    UsageRecord.objects.bulk_create([
        UsageRecord(
            sku=line["sku"],
            date=returned_on,
            quantity=-line["quantity"],
            source=UsageRecord.Source.PUTBACK,
            reference=str(unit_id),
        )
        for line in lines
    ])
