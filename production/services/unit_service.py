import logging
from datetime import date
from typing import Dict, Any, List, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from inventory.services.base_service import (
    BaseService, success_response, list_response, paginate_queryset,
    ValidationError, NotFoundError, generate_number, to_quantity
)
from production.models import ProductionUnit, UnitRequirement, AuditEntry, Stage

logger = logging.getLogger(__name__)


def parse_optional_date(value: Any, field: str) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    parsed = parse_date(str(value))
    if parsed is None:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", field)
    return parsed


class UnitService(BaseService):
    model = ProductionUnit

    @classmethod
    def serialize(cls, unit: ProductionUnit, include_detail: bool = False) -> Dict[str, Any]:
        data = {
            "id": unit.id,
            "uid": unit.uid,
            "order_id": unit.order_id,
            "product_ref": unit.product_ref,
            "order_date": unit.order_date.isoformat(),
            "stage": unit.stage,
            "stage_display": unit.get_stage_display(),
            "batch_id": unit.batch_id,
            "batch_number": unit.batch.batch_number if unit.batch_id else None,
            "manifest_id": unit.manifest_id,
            "created_at": unit.created_at.isoformat(),
            "updated_at": unit.updated_at.isoformat(),
        }

        if include_detail:
            data["requirements"] = [
                {"sku": r.sku, "quantity": r.quantity} for r in unit.requirements.all()
            ]
            data["reservations"] = [
                {
                    "id": r.id,
                    "sku": r.sku,
                    "bin_id": r.bin_id,
                    "bin_code": r.bin.code,
                    "quantity": r.quantity,
                    "status": r.status,
                }
                for r in unit.reservations.select_related("bin")
            ]
            data["audit_trail"] = [cls.serialize_audit(a) for a in unit.audit_trail.all()]

        return data

    @classmethod
    def serialize_audit(cls, entry: AuditEntry) -> Dict[str, Any]:
        return {
            "timestamp": entry.timestamp.isoformat(),
            "actor": entry.actor,
            "from": entry.stage_from or None,
            "to": entry.stage_to or None,
            "message": entry.message,
        }

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None,
             stage: str = None, batch_id: int = None, order_id: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("batch")

        if stage:
            queryset = queryset.filter(stage=stage)

        if batch_id:
            queryset = queryset.filter(batch_id=batch_id)

        if order_id:
            queryset = queryset.filter(order_id=order_id)

        if search:
            queryset = queryset.filter(
                Q(uid__icontains=search) |
                Q(order_id__icontains=search) |
                Q(product_ref__icontains=search)
            )

        units, total = paginate_queryset(queryset, page, limit)
        return list_response([cls.serialize(u) for u in units], total)

    @classmethod
    def get(cls, unit_id: int) -> Dict[str, Any]:
        unit = cls.model.objects.select_related("batch").filter(id=unit_id).first()
        if not unit:
            raise NotFoundError("Unit", unit_id)
        return success_response(cls.serialize(unit, include_detail=True))

    @classmethod
    @transaction.atomic
    def create_unit(cls,
                    order_id: str,
                    product_ref: str,
                    materials: List[Dict] = None,
                    order_date: Any = None,
                    actor: str = "") -> Dict[str, Any]:
        """
        Register one physical item of an order. The unit starts in PLANNED.
        `materials` defaults to a single piece of `product_ref`.
        """
        order_id = str(order_id or "").strip()
        product_ref = (product_ref or "").strip()
        if not order_id:
            raise ValidationError("order_id is required", "order_id")
        if not product_ref:
            raise ValidationError("product_ref is required", "product_ref")

        if materials is not None and not isinstance(materials, list):
            raise ValidationError("materials must be a list of {sku, quantity}", "materials")

        requirements = {}
        for line in materials or [{"sku": product_ref, "quantity": 1}]:
            if not isinstance(line, dict):
                raise ValidationError("Each material must be an object with sku and quantity", "materials")
            sku = str(line.get("sku") or "").strip()
            if not sku:
                raise ValidationError("Material SKU is required", "sku")
            requirements[sku] = requirements.get(sku, 0) + to_quantity(line.get("quantity", 1))

        unit = cls.model.objects.create(
            uid=generate_number("UID", cls.model, "uid"),
            order_id=order_id,
            product_ref=product_ref,
            order_date=parse_optional_date(order_date, "order_date") or timezone.localdate(),
        )
        UnitRequirement.objects.bulk_create([
            UnitRequirement(unit=unit, sku=sku, quantity=qty) for sku, qty in requirements.items()
        ])
        cls.append_audit(unit.id, actor=actor, stage_to=Stage.PLANNED, message="Unit created")

        logger.info(f"Unit {unit.uid} created for order {order_id}")
        return success_response(cls.serialize(unit, include_detail=True), f"Unit {unit.uid} created")

    @classmethod
    def append_audit(cls, unit_id: int, actor: str = "", stage_from: str = "",
                     stage_to: str = "", message: str = "") -> AuditEntry:
        return AuditEntry.objects.create(
            unit_id=unit_id,
            actor=actor or "",
            stage_from=stage_from or "",
            stage_to=stage_to or "",
            message=message or "",
        )

    @classmethod
    def audit_trail(cls, unit_id: int) -> Dict[str, Any]:
        unit = cls.get_or_404(unit_id)
        entries = [cls.serialize_audit(a) for a in unit.audit_trail.all()]
        return list_response(entries, len(entries))
