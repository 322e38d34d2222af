import logging
from collections import OrderedDict
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Any, List

from django.conf import settings
from django.db import transaction
from django.db.models import Q, Count
from django.utils import timezone

from inventory.services.base_service import (
    BaseService, success_response, list_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError,
    to_decimal, to_quantity, generate_number
)
from inventory.services.bin_service import BinLedgerService
from replenishment.models import Vendor, VendorItem, ROPItem, PurchaseOrder, PurchaseOrderItem

logger = logging.getLogger(__name__)


class VendorService(BaseService):
    model = Vendor

    @classmethod
    def serialize(cls, vendor: Vendor, include_items: bool = False) -> Dict[str, Any]:
        data = {
            "id": vendor.id,
            "uuid": str(vendor.uuid),
            "external_id": vendor.external_id,
            "name": vendor.name,
            "lead_time_days": vendor.lead_time_days,
            "is_active": vendor.is_active,
            "synced_at": vendor.synced_at.isoformat() if vendor.synced_at else None,
        }
        if include_items:
            data["items"] = [
                {
                    "sku": i.sku,
                    "rate": str(i.rate),
                    "lead_time_days": i.lead_time_days,
                    "is_primary": i.is_primary,
                }
                for i in vendor.items.all()
            ]
        return data

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None, active_only: bool = True) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if active_only:
            queryset = queryset.filter(is_active=True)

        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(external_id__icontains=search) | Q(items__sku__icontains=search)
            ).distinct()

        vendors, total = paginate_queryset(queryset, page, limit)
        return list_response([cls.serialize(v) for v in vendors], total)

    @classmethod
    def get(cls, vendor_id: int) -> Dict[str, Any]:
        return success_response(cls.serialize(cls.get_or_404(vendor_id), include_items=True))

    @classmethod
    @transaction.atomic
    def upsert(cls, external_id: str, name: str, lead_time_days: Any = None,
               is_active: bool = True, items: List[Dict] = None) -> Vendor:
        """Create or refresh a vendor and its SKU rates from a vendor-master record."""
        external_id = str(external_id or "").strip()
        if not external_id:
            raise ValidationError("Vendor id is required", "external_id")
        if not (name or "").strip():
            raise ValidationError("Vendor name is required", "name")

        vendor, created = cls.model.objects.update_or_create(
            external_id=external_id,
            defaults={
                "name": name.strip(),
                "lead_time_days": to_quantity(lead_time_days, "lead_time_days", allow_zero=True)
                if lead_time_days is not None else None,
                "is_active": bool(is_active),
                "synced_at": timezone.now(),
            },
        )

        for item in items or []:
            sku = (item.get("sku") or "").strip()
            if not sku:
                continue
            rate = to_decimal(item.get("rate"))
            if rate < 0:
                raise ValidationError(f"Rate for {sku} must be zero or more", "rate")

            lead_time = item.get("lead_time_days")
            is_primary = bool(item.get("is_primary", False))
            if is_primary:
                VendorItem.objects.filter(sku=sku, is_primary=True).exclude(vendor=vendor).update(is_primary=False)

            VendorItem.objects.update_or_create(
                vendor=vendor,
                sku=sku,
                defaults={
                    "rate": rate,
                    "lead_time_days": to_quantity(lead_time, "lead_time_days", allow_zero=True)
                    if lead_time is not None else None,
                    "is_primary": is_primary,
                },
            )

        logger.info(f"Vendor {'created' if created else 'updated'}: {vendor.name} ({vendor.external_id})")
        return vendor


class PurchaseOrderService(BaseService):
    model = PurchaseOrder

    @classmethod
    def serialize(cls, po: PurchaseOrder, include_items: bool = True) -> Dict[str, Any]:
        data = {
            "id": po.id,
            "uuid": str(po.uuid),
            "order_number": po.order_number,
            "vendor_id": po.vendor_id,
            "vendor": {
                "id": po.vendor.id,
                "name": po.vendor.name,
                "external_id": po.vendor.external_id,
            },
            "status": po.status,
            "status_display": po.get_status_display(),
            "order_date": po.order_date.isoformat(),
            "expected_date": po.expected_date.isoformat() if po.expected_date else None,
            "total": str(po.total),
            "created_by": po.created_by,
            "created_at": po.created_at.isoformat(),
        }
        if include_items:
            data["items"] = [
                {
                    "id": line.id,
                    "sku": line.sku,
                    "quantity_ordered": line.quantity_ordered,
                    "quantity_received": line.quantity_received,
                    "quantity_pending": line.quantity_pending,
                    "rate": str(line.rate),
                    "amount": str(line.amount),
                    "rop_item_id": line.rop_item_id,
                }
                for line in po.items.all()
            ]
        return data

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None,
             status: str = None, vendor_id: int = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("vendor").annotate(line_count=Count("items"))

        if status:
            queryset = queryset.filter(status=status)

        if vendor_id:
            queryset = queryset.filter(vendor_id=vendor_id)

        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) |
                Q(vendor__name__icontains=search) |
                Q(items__sku__icontains=search)
            ).distinct()

        orders, total = paginate_queryset(queryset, page, limit)
        items = []
        for po in orders:
            data = cls.serialize(po, include_items=False)
            data["line_count"] = po.line_count
            items.append(data)
        return list_response(items, total)

    @classmethod
    def get(cls, po_id: int) -> Dict[str, Any]:
        po = cls.model.objects.select_related("vendor").filter(id=po_id).first()
        if not po:
            raise NotFoundError("Purchase order", po_id)
        return success_response(cls.serialize(po))

    @classmethod
    @transaction.atomic
    def create_purchase_orders(cls, rop_item_ids: List[int], actor: str = "") -> Dict[str, Any]:
        """
        Turn selected ROP items into one DRAFT purchase order per vendor.
        Items already ORDERED are skipped, so repeating a call creates nothing new.
        Vendor splits win over the primary vendor.
        """
        if not isinstance(rop_item_ids, list) or not rop_item_ids:
            raise ValidationError("Select at least one ROP item", "rop_item_ids")
        try:
            rop_item_ids = [int(item_id) for item_id in rop_item_ids]
        except (TypeError, ValueError):
            raise ValidationError("rop_item_ids must be integers", "rop_item_ids")

        items = list(
            ROPItem.objects.select_for_update().filter(id__in=rop_item_ids).order_by("id")
        )
        found = {item.id for item in items}

        skipped = []
        failed = [
            {"rop_item_id": item_id, "error": "ROP item not found"}
            for item_id in rop_item_ids if item_id not in found
        ]

        lines_by_vendor = OrderedDict()
        ordered_items = []
        for item in items:
            if item.status == ROPItem.Status.ORDERED:
                skipped.append({
                    "rop_item_id": item.id,
                    "sku": item.sku,
                    "purchase_order_id": item.purchase_order_id,
                    "reason": "Already ordered",
                })
                continue

            quantity = item.to_order_quantity
            if quantity <= 0:
                failed.append({"rop_item_id": item.id, "sku": item.sku, "error": "Nothing to order"})
                continue

            if item.vendor_splits:
                portions = [
                    (split["vendor_id"], split["quantity"], to_decimal(split["rate"]))
                    for split in item.vendor_splits
                ]
            elif item.primary_vendor_id:
                vendor_item = VendorItem.objects.filter(vendor_id=item.primary_vendor_id, sku=item.sku).first()
                portions = [(item.primary_vendor_id, quantity, vendor_item.rate if vendor_item else Decimal("0"))]
            else:
                failed.append({"rop_item_id": item.id, "sku": item.sku, "error": "No vendor for this SKU"})
                continue

            for vendor_id, portion, rate in portions:
                lines_by_vendor.setdefault(vendor_id, []).append((item, portion, rate))
            ordered_items.append(item)

        vendors = Vendor.objects.in_bulk(list(lines_by_vendor))
        today = timezone.localdate()
        default_lead_time = getattr(settings, "ROP_DEFAULT_LEAD_TIME_DAYS", 7)

        orders = []
        for vendor_id, lines in lines_by_vendor.items():
            vendor = vendors[vendor_id]
            lead_time = vendor.lead_time_days if vendor.lead_time_days is not None else default_lead_time
            po = cls.model.objects.create(
                order_number=generate_number("PO", cls.model, "order_number"),
                vendor=vendor,
                order_date=today,
                expected_date=today + timedelta(days=lead_time),
                created_by=actor or "",
            )

            total = Decimal("0")
            for item, quantity, rate in lines:
                amount = (rate * quantity).quantize(Decimal("0.01"))
                PurchaseOrderItem.objects.create(
                    purchase_order=po,
                    sku=item.sku,
                    quantity_ordered=quantity,
                    rate=rate,
                    amount=amount,
                    rop_item=item,
                )
                total += amount
                if item.purchase_order_id is None:
                    item.purchase_order = po

            po.total = total
            po.save(update_fields=["total", "updated_at"])
            orders.append(po)
            cls._queue_vendor_push(po)

        now = timezone.now()
        for item in ordered_items:
            item.status = ROPItem.Status.ORDERED
            item.ordered_at = now
            item.save(update_fields=["status", "ordered_at", "purchase_order", "updated_at"])

        logger.info(
            f"Created {len(orders)} purchase order(s) from {len(ordered_items)} ROP item(s); "
            f"{len(skipped)} skipped, {len(failed)} failed"
        )
        return success_response({
            "purchase_orders": [cls.serialize(po) for po in orders],
            "skipped": skipped,
            "failed": failed,
        }, f"Created {len(orders)} purchase order(s)")

    @classmethod
    def _queue_vendor_push(cls, po: PurchaseOrder):
        from integrations.models import SyncQueueItem
        from integrations.services.sync_queue_service import SyncQueueService

        SyncQueueService.enqueue(
            SyncQueueItem.Service.VENDOR_MASTER,
            "push_purchase_order",
            po.order_number,
            {"purchase_order_id": po.id},
        )

    @classmethod
    @transaction.atomic
    def update_status(cls, po_id: int, status: str) -> Dict[str, Any]:
        po = cls.model.objects.select_for_update().filter(id=po_id).first()
        if not po:
            raise NotFoundError("Purchase order", po_id)

        allowed = {
            PurchaseOrder.Status.DRAFT: (PurchaseOrder.Status.SENT, PurchaseOrder.Status.CANCELLED),
            PurchaseOrder.Status.SENT: (PurchaseOrder.Status.CONFIRMED, PurchaseOrder.Status.CANCELLED),
            PurchaseOrder.Status.CONFIRMED: (PurchaseOrder.Status.CANCELLED,),
        }
        if status not in allowed.get(po.status, ()):
            raise ConflictError(f"Purchase order {po.order_number} cannot go from {po.status} to {status}")

        po.status = status
        po.save(update_fields=["status", "updated_at"])
        return success_response(cls.serialize(po), f"Purchase order {po.order_number} is now {status}")

    @classmethod
    @transaction.atomic
    def receive(cls, po_id: int, lines: List[Dict], bin_id: int, actor: str = "") -> Dict[str, Any]:
        """
        Book delivered quantities into a bin.
        lines: [{"sku": str, "quantity": int}]
        """
        po = cls.model.objects.select_for_update().select_related("vendor").filter(id=po_id).first()
        if not po:
            raise NotFoundError("Purchase order", po_id)
        if po.status not in (PurchaseOrder.Status.SENT, PurchaseOrder.Status.CONFIRMED, PurchaseOrder.Status.PARTIAL):
            raise ConflictError(f"Purchase order {po.order_number} is {po.status} and cannot be received")
        if not lines:
            raise ValidationError("At least one line is required", "lines")

        for line in lines:
            sku = (line.get("sku") or "").strip()
            quantity = to_quantity(line.get("quantity"))
            po_line = po.items.select_for_update().filter(sku=sku).first()
            if not po_line:
                raise ValidationError(f"{sku} is not on {po.order_number}", "sku")
            if quantity > po_line.quantity_pending:
                raise ValidationError(
                    f"Receiving {quantity} × {sku} exceeds the {po_line.quantity_pending} outstanding", "quantity"
                )

            BinLedgerService.receive(bin_id, sku, quantity, actor=actor, reference_id=po.order_number)
            po_line.quantity_received += quantity
            po_line.save(update_fields=["quantity_received"])

        outstanding = any(line.quantity_pending for line in po.items.all())
        po.status = PurchaseOrder.Status.PARTIAL if outstanding else PurchaseOrder.Status.RECEIVED
        po.save(update_fields=["status", "updated_at"])

        logger.info(f"Received against {po.order_number}, now {po.status}")
        return success_response(cls.serialize(po), f"Purchase order {po.order_number} is {po.get_status_display()}")
