import uuid as uuid_lib

from django.db import models


class SyncQueueItem(models.Model):
    """An outbound call to an external service waiting for (another) attempt."""

    class Service(models.TextChoices):
        VENDOR_MASTER = "VENDOR_MASTER", "Vendor Master"
        ORDER_INGESTION = "ORDER_INGESTION", "Order Ingestion"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        FAILED = "FAILED", "Failed"
        SYNCED = "SYNCED", "Synced"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    service = models.CharField(max_length=30, choices=Service.choices)
    operation = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=100, blank=True, default="")
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    retry_count = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")
    next_retry_at = models.DateTimeField(null=True, blank=True, db_index=True)
    synced_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.service}.{self.operation}({self.entity_id}) [{self.status}]"
