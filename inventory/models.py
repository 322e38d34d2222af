import uuid as uuid_lib

from django.db import models


class Bin(models.Model):
    class Category(models.TextChoices):
        STORAGE = "STORAGE", "Storage"
        PICKING = "PICKING", "Picking"
        RETURNS = "RETURNS", "Returns"
        QUARANTINE = "QUARANTINE", "Quarantine"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    code = models.CharField(max_length=50, unique=True, help_text="Bin number printed on the shelf label")
    name = models.CharField(max_length=100)
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.STORAGE)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.code} ({self.name})"


class BinStock(models.Model):
    """
    Quantity on hand of one SKU in one bin.
    Mutated only through BinLedgerService compare-and-adjust updates,
    which bump `version` on every change.
    """

    bin = models.ForeignKey(Bin, on_delete=models.PROTECT, related_name="stock")
    sku = models.CharField(max_length=100, db_index=True)
    quantity = models.IntegerField(default=0)
    version = models.PositiveIntegerField(default=0)
    last_counted_at = models.DateTimeField(null=True, blank=True)
    last_movement_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["bin_id", "sku"]
        constraints = [
            models.UniqueConstraint(fields=["bin", "sku"], name="uniq_bin_sku"),
            models.CheckConstraint(condition=models.Q(quantity__gte=0), name="bin_stock_quantity_non_negative"),
        ]

    def __str__(self):
        return f"{self.sku} @ {self.bin.code}: {self.quantity}"


class StockMovement(models.Model):
    class MovementType(models.TextChoices):
        RECEIPT = "RECEIPT", "Receipt"
        PICK = "PICK", "Auto-pick"
        PUTBACK = "PUTBACK", "Putback"
        CYCLE_COUNT = "CYCLE_COUNT", "Cycle Count"
        ADJUSTMENT = "ADJUSTMENT", "Manual Adjustment"
        TRANSFER_IN = "TRANSFER_IN", "Transfer In"
        TRANSFER_OUT = "TRANSFER_OUT", "Transfer Out"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    bin = models.ForeignKey(Bin, on_delete=models.PROTECT, related_name="movements")
    sku = models.CharField(max_length=100, db_index=True)
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    quantity = models.IntegerField(help_text="Signed change applied to the bin")
    quantity_before = models.IntegerField()
    quantity_after = models.IntegerField()
    reference_type = models.CharField(max_length=50, blank=True, default="")
    reference_id = models.CharField(max_length=100, blank=True, default="")
    reason = models.CharField(max_length=200, blank=True, default="")
    actor = models.CharField(max_length=100, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["reference_type", "reference_id"]),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity:+} {self.sku} @ {self.bin.code}"


class StockReservation(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        CONSUMED = "CONSUMED", "Consumed"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    unit = models.ForeignKey(
        "production.ProductionUnit", on_delete=models.CASCADE, related_name="reservations"
    )
    sku = models.CharField(max_length=100)
    bin = models.ForeignKey(Bin, on_delete=models.PROTECT, related_name="reservations")
    quantity = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    consumed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.unit_id}: {self.quantity} × {self.sku} from {self.bin.code}"


class CycleCountSession(models.Model):
    class Status(models.TextChoices):
        OPEN = "OPEN", "Open"
        APPLIED = "APPLIED", "Applied"
        DISCARDED = "DISCARDED", "Discarded"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    session_number = models.CharField(max_length=50, unique=True)
    sample_size = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.OPEN)
    opened_by = models.CharField(max_length=100, blank=True, default="")
    applied_by = models.CharField(max_length=100, blank=True, default="")
    applied_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.session_number


class CycleCountEntry(models.Model):
    session = models.ForeignKey(CycleCountSession, on_delete=models.CASCADE, related_name="entries")
    bin_stock = models.ForeignKey(BinStock, on_delete=models.PROTECT, related_name="+")
    sku = models.CharField(max_length=100)
    system_quantity = models.IntegerField()
    system_version = models.PositiveIntegerField()
    counted_quantity = models.IntegerField(null=True, blank=True)
    counted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["id"]

    @property
    def variance(self):
        if self.counted_quantity is None:
            return None
        return self.counted_quantity - self.system_quantity

    def __str__(self):
        return f"{self.sku}: system={self.system_quantity}, counted={self.counted_quantity}"
