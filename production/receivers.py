import logging

from django.conf import settings
from django.dispatch import receiver

from production.signals import batch_stage_cleared

logger = logging.getLogger(__name__)


@receiver(batch_stage_cleared)
def auto_complete_batch(sender, batch_id, batch_number, **kwargs):
    if not getattr(settings, "FULFILLMENT_AUTO_COMPLETE_BATCHES", False):
        return

    from production.services.pipeline_service import PipelineService

    PipelineService.complete_batch(batch_id, actor="system")
    logger.info(f"Batch {batch_number} auto-completed")
