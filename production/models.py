import uuid as uuid_lib

from django.db import models


class Stage(models.TextChoices):
    PLANNED = "PLANNED", "Planned"
    KITTING = "KITTING", "Kitting"
    KITTED = "KITTED", "Kitted"
    PACKING = "PACKING", "Packing"
    PACKED = "PACKED", "Packed"
    QC_PENDING = "QC_PENDING", "QC Pending"
    QC_PASSED = "QC_PASSED", "QC Passed"
    QC_FAILED = "QC_FAILED", "QC Failed"
    PRINTING = "PRINTING", "Printing"
    PRINTED = "PRINTED", "Printed"
    DISPATCHED = "DISPATCHED", "Dispatched"


# Legal successors per stage. DISPATCHED is terminal.
TRANSITIONS = {
    Stage.PLANNED: (Stage.KITTING,),
    Stage.KITTING: (Stage.KITTED,),
    Stage.KITTED: (Stage.PACKING,),
    Stage.PACKING: (Stage.PACKED,),
    Stage.PACKED: (Stage.QC_PENDING,),
    Stage.QC_PENDING: (Stage.QC_PASSED, Stage.QC_FAILED),
    Stage.QC_PASSED: (Stage.PRINTING,),
    Stage.QC_FAILED: (Stage.PLANNED,),
    Stage.PRINTING: (Stage.PRINTED,),
    Stage.PRINTED: (Stage.DISPATCHED,),
    Stage.DISPATCHED: (),
}


class ProductionUnit(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    uid = models.CharField(max_length=50, unique=True)
    order_id = models.CharField(max_length=100, db_index=True)
    product_ref = models.CharField(max_length=100)
    order_date = models.DateField()
    stage = models.CharField(max_length=20, choices=Stage.choices, default=Stage.PLANNED, db_index=True)
    batch = models.ForeignKey(
        "Batch", on_delete=models.SET_NULL, null=True, blank=True, related_name="units"
    )
    manifest = models.ForeignKey(
        "DispatchManifest", on_delete=models.SET_NULL, null=True, blank=True, related_name="units"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.uid} [{self.stage}]"


class UnitRequirement(models.Model):
    unit = models.ForeignKey(ProductionUnit, on_delete=models.CASCADE, related_name="requirements")
    sku = models.CharField(max_length=100, db_index=True)
    quantity = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["unit", "sku"], name="uniq_unit_requirement_sku"),
        ]

    def __str__(self):
        return f"{self.unit.uid}: {self.quantity} × {self.sku}"


class AuditEntry(models.Model):
    """Append-only. Rows cannot be edited or deleted once written."""

    unit = models.ForeignKey(ProductionUnit, on_delete=models.PROTECT, related_name="audit_trail")
    timestamp = models.DateTimeField(auto_now_add=True)
    actor = models.CharField(max_length=100, blank=True, default="")
    stage_from = models.CharField(max_length=20, choices=Stage.choices, blank=True, default="")
    stage_to = models.CharField(max_length=20, choices=Stage.choices, blank=True, default="")
    message = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["timestamp", "id"]
        verbose_name_plural = "Audit entries"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Audit entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit entries are append-only")

    def __str__(self):
        return f"{self.unit_id}: {self.stage_from or '-'} -> {self.stage_to or '-'}"


class Batch(models.Model):
    class StageType(models.TextChoices):
        KITTING = "KITTING", "Kitting"
        PACKING = "PACKING", "Packing"

    class Status(models.TextChoices):
        OPEN = "OPEN", "Open"
        IN_PROGRESS = "IN_PROGRESS", "In Progress"
        COMPLETE = "COMPLETE", "Complete"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    batch_number = models.CharField(max_length=50, unique=True)
    stage_type = models.CharField(max_length=20, choices=StageType.choices)
    from_date = models.DateField(null=True, blank=True)
    to_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.OPEN)
    created_by = models.CharField(max_length=100, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name_plural = "Batches"

    @property
    def stage(self) -> str:
        """Unit stage that this batch tracks."""
        return Stage.KITTING if self.stage_type == self.StageType.KITTING else Stage.PACKING

    def __str__(self):
        return f"{self.batch_number} ({self.stage_type})"


class BatchMembership(models.Model):
    class Outcome(models.TextChoices):
        ADVANCED = "ADVANCED", "Advanced"
        REMOVED = "REMOVED", "Removed"

    batch = models.ForeignKey(Batch, on_delete=models.CASCADE, related_name="memberships")
    unit = models.ForeignKey(ProductionUnit, on_delete=models.CASCADE, related_name="memberships")
    added_at = models.DateTimeField(auto_now_add=True)
    left_at = models.DateTimeField(null=True, blank=True)
    outcome = models.CharField(max_length=20, choices=Outcome.choices, null=True, blank=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.unit.uid} in {self.batch.batch_number}"


class DispatchManifest(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PICKED_UP = "PICKED_UP", "Picked Up"
        DELIVERED = "DELIVERED", "Delivered"
        CANCELLED = "CANCELLED", "Cancelled"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    manifest_number = models.CharField(max_length=50, unique=True)
    courier_partner = models.CharField(max_length=100)
    pickup_person_name = models.CharField(max_length=100, blank=True, default="")
    pickup_person_number = models.CharField(max_length=30, blank=True, default="")
    tracking_number = models.CharField(max_length=100, blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    created_by = models.CharField(max_length=100, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.manifest_number} ({self.courier_partner})"
