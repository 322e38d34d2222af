from django.dispatch import Signal

# Sent once the last unit of a batch leaves the batch's stage.
# kwargs: batch_id, batch_number, stage_type
batch_stage_cleared = Signal()

# Sent by PipelineService.complete_batch when a batch becomes COMPLETE.
# kwargs: batch_id, batch_number, actor
batch_completed = Signal()
