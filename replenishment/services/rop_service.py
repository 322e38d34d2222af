import logging
import threading
import uuid
from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal, ROUND_CEILING
from typing import Dict, Any, List, Optional

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction, connections
from django.db.models import Q, Sum, F
from django.utils import timezone

from inventory.models import BinStock, StockReservation
from inventory.services.base_service import (
    BaseService, success_response, list_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError, CalculationInProgressError,
    to_decimal, to_quantity, round_decimal
)
from production.models import Stage, UnitRequirement
from production.services.unit_service import parse_optional_date
from replenishment.models import (
    ROPItem, CalculationJob, UsageRecord, Vendor, VendorItem, PurchaseOrder, PurchaseOrderItem
)

logger = logging.getLogger(__name__)

LOCK_KEY = "replenishment:calculation:running"

# Guards the calculation within this process; the cache key guards across processes.
_calculation_lock = threading.Lock()


class ROPService(BaseService):
    """
    Reorder-point engine.

        average_daily_usage = usage in window / window days
        maximum_daily_usage = highest single-day usage in window
        lead_time_demand    = average_daily_usage * lead_time_days
        safety_stock        = (maximum_daily_usage - average_daily_usage) * lead_time_days
        rop                 = lead_time_demand + safety_stock
        suggested_quantity  = ceil(max(0, rop + pending - current - yet_to_be_received))
    """

    model = ROPItem

    @classmethod
    def serialize(cls, item: ROPItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "uuid": str(item.uuid),
            "sku": item.sku,
            "average_daily_usage": str(item.average_daily_usage),
            "maximum_daily_usage": str(item.maximum_daily_usage),
            "lead_time_days": item.lead_time_days,
            "lead_time_demand": str(item.lead_time_demand),
            "safety_stock": str(item.safety_stock),
            "rop": str(item.rop),
            "current_stock": item.current_stock,
            "pending_quantity": item.pending_quantity,
            "yet_to_be_received": item.yet_to_be_received,
            "suggested_quantity": item.suggested_quantity,
            "adjusted_quantity": item.adjusted_quantity,
            "to_order_quantity": item.to_order_quantity,
            "vendor_splits": item.vendor_splits,
            "primary_vendor_id": item.primary_vendor_id,
            "primary_vendor": item.primary_vendor.name if item.primary_vendor_id else None,
            "status": item.status,
            "status_display": item.get_status_display(),
            "job_id": str(item.job.job_id) if item.job_id else None,
            "purchase_order_id": item.purchase_order_id,
            "purchase_order_number": item.purchase_order.order_number if item.purchase_order_id else None,
            "updated_at": item.updated_at.isoformat(),
        }

    @classmethod
    def serialize_job(cls, job: CalculationJob) -> Dict[str, Any]:
        return {
            "job_id": str(job.job_id),
            "status": job.status,
            "as_of": job.as_of.isoformat(),
            "discard_overrides": job.discard_overrides,
            "item_count": job.item_count,
            "error": job.error or None,
            "triggered_by": job.triggered_by,
            "started_at": job.started_at.isoformat(),
            "finished_at": job.finished_at.isoformat() if job.finished_at else None,
        }

    # ==================== QUERIES ====================

    @classmethod
    def _queryset(cls):
        return cls.model.objects.select_related("primary_vendor", "job", "purchase_order")

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None, status: str = None) -> Dict[str, Any]:
        queryset = cls._queryset()

        if status:
            queryset = queryset.filter(status=status)

        if search:
            queryset = queryset.filter(Q(sku__icontains=search) | Q(primary_vendor__name__icontains=search))

        items, total = paginate_queryset(queryset, page, limit)
        return list_response([cls.serialize(i) for i in items], total)

    @classmethod
    def list_to_order(cls, page: int = 1, limit: int = 20, search: str = None) -> Dict[str, Any]:
        """Open items with something to order, operator quantity taking precedence."""
        queryset = cls._queryset().exclude(status=ROPItem.Status.ORDERED).filter(
            Q(adjusted_quantity__gt=0) | Q(adjusted_quantity__isnull=True, suggested_quantity__gt=0)
        )

        if search:
            queryset = queryset.filter(sku__icontains=search)

        items, total = paginate_queryset(queryset, page, limit)
        return list_response([cls.serialize(i) for i in items], total)

    @classmethod
    def list_pending(cls, page: int = 1, limit: int = 20, search: str = None) -> Dict[str, Any]:
        return cls.list(page=page, limit=limit, search=search, status=ROPItem.Status.PENDING)

    @classmethod
    def get(cls, item_id: int) -> Dict[str, Any]:
        item = cls._queryset().filter(id=item_id).first()
        if not item:
            raise NotFoundError("ROP item", item_id)
        return success_response(cls.serialize(item))

    @classmethod
    def get_job(cls, job_id: str) -> Dict[str, Any]:
        try:
            job = CalculationJob.objects.get(job_id=job_id)
        except (CalculationJob.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError("Calculation job", job_id)
        return success_response(cls.serialize_job(job))

    # ==================== CALCULATION ====================

    @classmethod
    def calculate(cls, as_of: Any = None, discard_overrides: bool = False, actor: str = "") -> Dict[str, Any]:
        """
        Recompute every open ROP item in one transaction. Raises
        CalculationInProgressError if another run holds the lock.
        """
        job = cls._acquire(as_of, discard_overrides, actor)
        try:
            cls._run(job)
        finally:
            cls._release(job)
        return success_response(cls.serialize_job(job), f"Calculated {job.item_count} item(s)")

    @classmethod
    def trigger(cls, as_of: Any = None, discard_overrides: bool = False, actor: str = "") -> Dict[str, Any]:
        """Start a calculation on a worker thread, or report the one already running."""
        try:
            job = cls._acquire(as_of, discard_overrides, actor)
        except CalculationInProgressError as e:
            return success_response(
                {"job_id": e.job_id, "started": False}, "A calculation is already running"
            )

        thread = threading.Thread(
            target=cls._run_in_background, args=(job,), name=f"rop-{job.job_id}", daemon=True
        )
        thread.start()
        return success_response({"job_id": str(job.job_id), "started": True}, "Calculation started")

    @classmethod
    def _acquire(cls, as_of: Any, discard_overrides: bool, actor: str) -> CalculationJob:
        as_of = parse_optional_date(as_of, "as_of") or timezone.localdate()

        if not _calculation_lock.acquire(blocking=False):
            raise CalculationInProgressError(cache.get(LOCK_KEY) or cls._latest_running_job_id())

        try:
            job_id = uuid.uuid4()
            if not cache.add(LOCK_KEY, str(job_id), timeout=None):
                running_id = cache.get(LOCK_KEY)
                if running_id and not cls._is_abandoned(running_id):
                    raise CalculationInProgressError(running_id)
                logger.warning(f"Taking over abandoned calculation lock held by {running_id}")
                cache.set(LOCK_KEY, str(job_id), timeout=None)

            return CalculationJob.objects.create(
                job_id=job_id,
                as_of=as_of,
                discard_overrides=bool(discard_overrides),
                triggered_by=actor or "",
            )
        except Exception:
            _calculation_lock.release()
            raise

    @classmethod
    def _release(cls, job: CalculationJob):
        if cache.get(LOCK_KEY) == str(job.job_id):
            cache.delete(LOCK_KEY)
        _calculation_lock.release()

    @classmethod
    def _is_abandoned(cls, job_id: str) -> bool:
        stale_after = getattr(settings, "ROP_JOB_STALE_SECONDS", 3600)
        job = CalculationJob.objects.filter(job_id=job_id).first()
        if job is None:
            return True
        if job.status != CalculationJob.Status.RUNNING:
            return True
        if (timezone.now() - job.started_at).total_seconds() > stale_after:
            CalculationJob.objects.filter(id=job.id).update(
                status=CalculationJob.Status.FAILED,
                error="Abandoned: lock held past ROP_JOB_STALE_SECONDS",
                finished_at=timezone.now(),
            )
            return True
        return False

    @classmethod
    def _latest_running_job_id(cls) -> Optional[str]:
        job = CalculationJob.objects.filter(status=CalculationJob.Status.RUNNING).order_by("-started_at").first()
        return str(job.job_id) if job else None

    @classmethod
    def _run_in_background(cls, job: CalculationJob):
        try:
            cls._run(job, raise_errors=False)
        finally:
            cls._release(job)
            connections.close_all()

    @classmethod
    def _run(cls, job: CalculationJob, raise_errors: bool = True) -> CalculationJob:
        logger.info(f"ROP calculation {job.job_id} started (as of {job.as_of})")
        try:
            with transaction.atomic():
                job.item_count = cls._recompute(job)
        except Exception as e:
            logger.exception(f"ROP calculation {job.job_id} failed")
            job.status = CalculationJob.Status.FAILED
            job.error = str(e)
            job.finished_at = timezone.now()
            job.save(update_fields=["status", "error", "finished_at"])
            if raise_errors:
                raise
            return job

        job.status = CalculationJob.Status.SUCCEEDED
        job.finished_at = timezone.now()
        job.save(update_fields=["status", "item_count", "finished_at"])
        logger.info(f"ROP calculation {job.job_id} finished: {job.item_count} item(s)")
        return job

    @classmethod
    def _recompute(cls, job: CalculationJob) -> int:
        figures = cls.compute_figures(job.as_of)

        existing = {
            item.sku: item for item in ROPItem.objects.select_for_update().exclude(status=ROPItem.Status.ORDERED)
        }

        for sku, values in figures.items():
            item = existing.pop(sku, None) or ROPItem(sku=sku)
            for field, value in values.items():
                setattr(item, field, value)
            item.job = job

            if job.discard_overrides:
                item.adjusted_quantity = None
                item.vendor_splits = []
            elif item.vendor_splits and item.adjusted_quantity is None:
                # A split fixes the order quantity at its total
                item.adjusted_quantity = sum(s["quantity"] for s in item.vendor_splits)

            item.status = ROPItem.Status.ADJUSTED if cls._has_override(item) else ROPItem.Status.PENDING
            item.save()

        # SKUs with no usage left in the window drop out of the open set unless an operator touched them
        stale = [item.id for item in existing.values() if job.discard_overrides or not cls._has_override(item)]
        ROPItem.objects.filter(id__in=stale).delete()

        return len(figures)

    @staticmethod
    def _has_override(item: ROPItem) -> bool:
        return item.adjusted_quantity is not None or bool(item.vendor_splits)

    @classmethod
    def compute_figures(cls, as_of: date) -> "OrderedDict[str, Dict[str, Any]]":
        """Pure read of usage, stock and open orders. Same inputs give the same figures."""
        window_days = getattr(settings, "ROP_LOOKBACK_DAYS", 30)
        default_lead_time = getattr(settings, "ROP_DEFAULT_LEAD_TIME_DAYS", 7)
        window_start = as_of - timedelta(days=window_days - 1)

        daily = {}
        for row in UsageRecord.objects.filter(date__gte=window_start, date__lte=as_of).values(
            "sku", "date"
        ).annotate(total=Sum("quantity")).order_by("sku", "date"):
            daily.setdefault(row["sku"], []).append(row["total"])

        if not daily:
            return OrderedDict()

        skus = sorted(daily)
        current = cls._current_stock(skus)
        pending = cls._pending_quantity(skus)
        incoming = cls._yet_to_be_received(skus)
        vendors = cls._primary_vendor_items(skus)

        figures = OrderedDict()
        for sku in skus:
            totals = daily[sku]
            days = Decimal(window_days)
            average = max(Decimal("0"), Decimal(sum(totals)) / days)
            maximum = Decimal(max(max(totals), 0))

            vendor_item = vendors.get(sku)
            lead_time = default_lead_time
            if vendor_item is not None:
                if vendor_item.lead_time_days is not None:
                    lead_time = vendor_item.lead_time_days
                elif vendor_item.vendor.lead_time_days is not None:
                    lead_time = vendor_item.vendor.lead_time_days

            lead_time_demand = average * lead_time
            safety_stock = max(Decimal("0"), maximum - average) * lead_time
            rop = round_decimal(lead_time_demand + safety_stock)

            shortfall = rop + pending.get(sku, 0) - current.get(sku, 0) - incoming.get(sku, 0)
            suggested = int(max(Decimal("0"), shortfall).to_integral_value(rounding=ROUND_CEILING))

            figures[sku] = {
                "average_daily_usage": round_decimal(average),
                "maximum_daily_usage": round_decimal(maximum),
                "lead_time_days": lead_time,
                "lead_time_demand": round_decimal(lead_time_demand),
                "safety_stock": round_decimal(safety_stock),
                "rop": rop,
                "current_stock": current.get(sku, 0),
                "pending_quantity": pending.get(sku, 0),
                "yet_to_be_received": incoming.get(sku, 0),
                "suggested_quantity": suggested,
                "primary_vendor": vendor_item.vendor if vendor_item else None,
            }
        return figures

    @classmethod
    def _current_stock(cls, skus: List[str]) -> Dict[str, int]:
        rows = BinStock.objects.filter(sku__in=skus, bin__is_active=True).values("sku").annotate(
            total=Sum("quantity")
        )
        return {row["sku"]: row["total"] or 0 for row in rows}

    @classmethod
    def _pending_quantity(cls, skus: List[str]) -> Dict[str, int]:
        """Material still needed by units that have not been kitted, less what is already reserved."""
        open_stages = [Stage.PLANNED, Stage.KITTING]

        required = UnitRequirement.objects.filter(
            sku__in=skus, unit__stage__in=open_stages
        ).values("unit_id", "sku").annotate(total=Sum("quantity"))

        reserved = {
            (row["unit_id"], row["sku"]): row["total"]
            for row in StockReservation.objects.filter(
                sku__in=skus, unit__stage__in=open_stages
            ).values("unit_id", "sku").annotate(total=Sum("quantity"))
        }

        pending = {}
        for row in required:
            outstanding = max(0, row["total"] - reserved.get((row["unit_id"], row["sku"]), 0))
            pending[row["sku"]] = pending.get(row["sku"], 0) + outstanding
        return pending

    @classmethod
    def _yet_to_be_received(cls, skus: List[str]) -> Dict[str, int]:
        rows = PurchaseOrderItem.objects.filter(
            sku__in=skus, purchase_order__status__in=PurchaseOrder.OPEN_STATUSES
        ).values("sku").annotate(total=Sum(F("quantity_ordered") - F("quantity_received")))
        return {row["sku"]: max(0, row["total"] or 0) for row in rows}

    @classmethod
    def _primary_vendor_items(cls, skus: List[str]) -> Dict[str, VendorItem]:
        """Primary vendor item per SKU, else the cheapest active vendor for it."""
        chosen = {}
        for vendor_item in VendorItem.objects.select_related("vendor").filter(
            sku__in=skus, vendor__is_active=True
        ).order_by("sku", "-is_primary", "rate", "id"):
            chosen.setdefault(vendor_item.sku, vendor_item)
        return chosen

    # ==================== OPERATOR OVERRIDES ====================

    @classmethod
    def _get_open_for_update(cls, item_id: int) -> ROPItem:
        item = cls.model.objects.select_for_update().filter(id=item_id).first()
        if not item:
            raise NotFoundError("ROP item", item_id)
        if item.status == ROPItem.Status.ORDERED:
            raise ConflictError(f"ROP item {item.sku} has already been ordered")
        return item

    @classmethod
    @transaction.atomic
    def update_quantity(cls, item_id: int, quantity: Any) -> Dict[str, Any]:
        item = cls._get_open_for_update(item_id)
        item.adjusted_quantity = to_quantity(quantity, "quantity", allow_zero=True)

        if item.vendor_splits and sum(s["quantity"] for s in item.vendor_splits) != item.adjusted_quantity:
            item.vendor_splits = []

        item.status = ROPItem.Status.ADJUSTED
        item.save(update_fields=["adjusted_quantity", "vendor_splits", "status", "updated_at"])

        logger.info(f"ROP {item.sku}: order quantity set to {item.adjusted_quantity}")
        return success_response(cls.serialize(item), f"Quantity for {item.sku} updated")

    @classmethod
    @transaction.atomic
    def update_vendor_split(cls, item_id: int, splits: List[Dict]) -> Dict[str, Any]:
        item = cls._get_open_for_update(item_id)

        if not isinstance(splits, list) or not splits:
            raise ValidationError("At least one vendor split is required", "vendor_splits")

        normalized = []
        seen = set()
        for split in splits:
            if not isinstance(split, dict):
                raise ValidationError("Each split needs vendor_id, quantity and rate", "vendor_splits")

            vendor = Vendor.objects.filter(id=split.get("vendor_id"), is_active=True).first()
            if not vendor:
                raise ValidationError(f"Unknown vendor: {split.get('vendor_id')}", "vendor_id")
            if vendor.id in seen:
                raise ValidationError(f"Vendor {vendor.name} appears more than once", "vendor_id")
            seen.add(vendor.id)

            quantity = to_quantity(split.get("quantity"), "quantity")
            rate = to_decimal(split.get("rate"), default=None)
            if rate is None or rate < 0:
                raise ValidationError("rate must be zero or more", "rate")

            normalized.append({
                "vendor_id": vendor.id,
                "vendor_name": vendor.name,
                "quantity": quantity,
                "rate": str(rate.quantize(Decimal("0.01"))),
            })

        total = sum(s["quantity"] for s in normalized)
        if total != item.to_order_quantity:
            raise ValidationError(
                f"Split total {total} must equal the order quantity {item.to_order_quantity}",
                "vendor_splits",
            )

        item.vendor_splits = normalized
        item.status = ROPItem.Status.ADJUSTED
        item.save(update_fields=["vendor_splits", "status", "updated_at"])

        return success_response(cls.serialize(item), f"Vendor split for {item.sku} updated")

    @classmethod
    @transaction.atomic
    def reset_overrides(cls, item_id: int) -> Dict[str, Any]:
        item = cls._get_open_for_update(item_id)
        item.adjusted_quantity = None
        item.vendor_splits = []
        item.status = ROPItem.Status.PENDING
        item.save(update_fields=["adjusted_quantity", "vendor_splits", "status", "updated_at"])
        return success_response(cls.serialize(item), f"Overrides for {item.sku} cleared")
