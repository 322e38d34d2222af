import uuid as uuid_lib
from decimal import Decimal

from django.db import models


class Vendor(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    external_id = models.CharField(max_length=100, unique=True, help_text="Vendor id in the vendor master")
    name = models.CharField(max_length=200)
    lead_time_days = models.PositiveIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    synced_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class VendorItem(models.Model):
    vendor = models.ForeignKey(Vendor, on_delete=models.CASCADE, related_name="items")
    sku = models.CharField(max_length=100, db_index=True)
    rate = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    lead_time_days = models.PositiveIntegerField(null=True, blank=True)
    is_primary = models.BooleanField(default=False)

    class Meta:
        ordering = ["sku", "-is_primary", "id"]
        constraints = [
            models.UniqueConstraint(fields=["vendor", "sku"], name="uniq_vendor_sku"),
        ]

    def __str__(self):
        return f"{self.vendor.name}: {self.sku} @ {self.rate}"


class UsageRecord(models.Model):
    class Source(models.TextChoices):
        KITTING = "KITTING", "Kitting consumption"
        PUTBACK = "PUTBACK", "Returned to bin"
        FEED = "FEED", "External feed"

    sku = models.CharField(max_length=100, db_index=True)
    date = models.DateField(db_index=True)
    quantity = models.IntegerField(help_text="Pieces used; negative for stock returned after consumption")
    source = models.CharField(max_length=20, choices=Source.choices, default=Source.KITTING)
    reference = models.CharField(max_length=100, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-date", "-id"]
        indexes = [
            models.Index(fields=["sku", "date"]),
        ]

    def __str__(self):
        return f"{self.date} {self.sku}: {self.quantity}"


class CalculationJob(models.Model):
    class Status(models.TextChoices):
        RUNNING = "RUNNING", "Running"
        SUCCEEDED = "SUCCEEDED", "Succeeded"
        FAILED = "FAILED", "Failed"

    job_id = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.RUNNING)
    as_of = models.DateField()
    discard_overrides = models.BooleanField(default=False)
    item_count = models.PositiveIntegerField(default=0)
    error = models.TextField(blank=True, default="")
    triggered_by = models.CharField(max_length=100, blank=True, default="")
    started_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-started_at"]

    def __str__(self):
        return f"{self.job_id} [{self.status}]"


class ROPItem(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ADJUSTED = "ADJUSTED", "Adjusted"
        ORDERED = "ORDERED", "Ordered"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    sku = models.CharField(max_length=100, db_index=True)

    average_daily_usage = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("0"))
    maximum_daily_usage = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("0"))
    lead_time_days = models.PositiveIntegerField(default=0)
    lead_time_demand = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("0"))
    safety_stock = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("0"))
    rop = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("0"))

    current_stock = models.IntegerField(default=0)
    pending_quantity = models.IntegerField(default=0)
    yet_to_be_received = models.IntegerField(default=0)
    suggested_quantity = models.PositiveIntegerField(default=0)

    # Operator overrides, kept across recalculation
    adjusted_quantity = models.PositiveIntegerField(null=True, blank=True)
    vendor_splits = models.JSONField(default=list, blank=True)

    primary_vendor = models.ForeignKey(
        Vendor, on_delete=models.SET_NULL, null=True, blank=True, related_name="rop_items"
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    job = models.ForeignKey(
        CalculationJob, on_delete=models.SET_NULL, null=True, blank=True, related_name="items"
    )
    purchase_order = models.ForeignKey(
        "PurchaseOrder", on_delete=models.SET_NULL, null=True, blank=True, related_name="rop_items"
    )
    ordered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sku", "id"]
        verbose_name = "ROP item"

    @property
    def to_order_quantity(self) -> int:
        if self.adjusted_quantity is not None:
            return self.adjusted_quantity
        return self.suggested_quantity

    def __str__(self):
        return f"{self.sku}: {self.to_order_quantity} [{self.status}]"


class PurchaseOrder(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SENT = "SENT", "Sent"
        CONFIRMED = "CONFIRMED", "Confirmed"
        PARTIAL = "PARTIAL", "Partially Received"
        RECEIVED = "RECEIVED", "Received"
        CANCELLED = "CANCELLED", "Cancelled"

    OPEN_STATUSES = (Status.DRAFT, Status.SENT, Status.CONFIRMED, Status.PARTIAL)

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    order_number = models.CharField(max_length=50, unique=True)
    vendor = models.ForeignKey(Vendor, on_delete=models.PROTECT, related_name="purchase_orders")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    order_date = models.DateField()
    expected_date = models.DateField(null=True, blank=True)
    total = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    created_by = models.CharField(max_length=100, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.order_number} - {self.vendor.name}"


class PurchaseOrderItem(models.Model):
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name="items")
    sku = models.CharField(max_length=100, db_index=True)
    quantity_ordered = models.PositiveIntegerField()
    quantity_received = models.PositiveIntegerField(default=0)
    rate = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    amount = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    rop_item = models.ForeignKey(
        ROPItem, on_delete=models.SET_NULL, null=True, blank=True, related_name="po_lines"
    )

    class Meta:
        ordering = ["id"]

    @property
    def quantity_pending(self) -> int:
        return max(0, self.quantity_ordered - self.quantity_received)

    def __str__(self):
        return f"{self.sku} × {self.quantity_ordered}"
