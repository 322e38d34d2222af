import logging
from typing import Dict, Any, List

from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from inventory.services.allocation_service import AllocationService
from inventory.services.base_service import (
    BaseService, success_response, list_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError, generate_number
)
from production.models import Batch, BatchMembership, ProductionUnit, Stage
from production.services.unit_service import UnitService, parse_optional_date

logger = logging.getLogger(__name__)

# Unit stages a batch of each type accepts.
ELIGIBLE_STAGES = {
    Batch.StageType.KITTING: (Stage.PLANNED, Stage.KITTING),
    Batch.StageType.PACKING: (Stage.KITTED, Stage.PACKING),
}

# Stage a unit occupies just before entering each batch stage.
ENTRY_STAGE = {
    Batch.StageType.KITTING: Stage.PLANNED,
    Batch.StageType.PACKING: Stage.KITTED,
}

BATCH_PREFIX = {
    Batch.StageType.KITTING: "KB",
    Batch.StageType.PACKING: "PB",
}


class BatchService(BaseService):
    model = Batch

    @classmethod
    def serialize(cls, batch: Batch, include_units: bool = False) -> Dict[str, Any]:
        data = {
            "id": batch.id,
            "uuid": str(batch.uuid),
            "batch_number": batch.batch_number,
            "stage_type": batch.stage_type,
            "from_date": batch.from_date.isoformat() if batch.from_date else None,
            "to_date": batch.to_date.isoformat() if batch.to_date else None,
            "status": batch.status,
            "status_display": batch.get_status_display(),
            "created_by": batch.created_by,
            "created_at": batch.created_at.isoformat(),
            "completed_at": batch.completed_at.isoformat() if batch.completed_at else None,
        }

        if include_units:
            data["units"] = [UnitService.serialize(u) for u in batch.units.select_related("batch")]
            data["accounting"] = cls._accounting(batch)

        return data

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None,
             stage_type: str = None, status: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.annotate(unit_count=Count("memberships"))

        if stage_type:
            queryset = queryset.filter(stage_type=stage_type)

        if status:
            queryset = queryset.filter(status=status)

        if search:
            queryset = queryset.filter(
                Q(batch_number__icontains=search) | Q(memberships__unit__uid__icontains=search)
            ).distinct()

        batches, total = paginate_queryset(queryset, page, limit)
        items = []
        for batch in batches:
            data = cls.serialize(batch)
            data["unit_count"] = batch.unit_count
            items.append(data)
        return list_response(items, total)

    @classmethod
    def get(cls, batch_id: int) -> Dict[str, Any]:
        return success_response(cls.serialize(cls.get_or_404(batch_id), include_units=True))

    @classmethod
    def is_batch_complete(cls, batch_id: int) -> bool:
        """True once no unit whose current batch is this one still reports the batch's stage."""
        batch = cls.get_or_404(batch_id)
        return not ProductionUnit.objects.filter(batch_id=batch.id, stage=batch.stage).exists()

    @classmethod
    def remaining_in_stage(cls, batch: Batch) -> int:
        return ProductionUnit.objects.filter(batch_id=batch.id, stage=batch.stage).count()

    @classmethod
    def batch_accounting(cls, batch_id: int) -> Dict[str, Any]:
        return success_response(cls._accounting(cls.get_or_404(batch_id)))

    @classmethod
    def _accounting(cls, batch: Batch) -> Dict[str, Any]:
        counts = batch.memberships.aggregate(
            original=Count("id"),
            in_stage=Count("id", filter=Q(left_at__isnull=True)),
            advanced=Count("id", filter=Q(outcome=BatchMembership.Outcome.ADVANCED)),
            removed=Count("id", filter=Q(outcome=BatchMembership.Outcome.REMOVED)),
        )
        counts["balanced"] = (
            counts["in_stage"] + counts["advanced"] + counts["removed"] == counts["original"]
        )
        return counts

    @classmethod
    @transaction.atomic
    def assign_to_batch(cls, unit_id: int, batch_id: int, actor: str = "") -> Dict[str, Any]:
        """
        Add a unit to a batch and move it into the batch's stage
        (PLANNED -> KITTING or KITTED -> PACKING) if it is not there yet.
        """
        from production.services.pipeline_service import PipelineService

        # Unit before batch, the same order the pipeline locks them in
        unit = ProductionUnit.objects.select_for_update().filter(id=unit_id).first()
        if not unit:
            raise NotFoundError("Unit", unit_id)

        batch = cls.model.objects.select_for_update().filter(id=batch_id).first()
        if not batch:
            raise NotFoundError("Batch", batch_id)
        if batch.status == Batch.Status.COMPLETE:
            raise ConflictError(f"Batch {batch.batch_number} is complete")

        if unit.stage not in ELIGIBLE_STAGES[batch.stage_type]:
            raise ConflictError(
                f"Unit {unit.uid} is {unit.stage} and cannot join a {batch.stage_type} batch",
                details={"unit": unit.uid, "stage": unit.stage},
            )

        open_membership = BatchMembership.objects.filter(
            unit=unit,
            left_at__isnull=True,
            batch__stage_type=batch.stage_type,
        ).exclude(batch__status=Batch.Status.COMPLETE).select_related("batch").first()
        if open_membership:
            raise ConflictError(
                f"Unit {unit.uid} already belongs to batch {open_membership.batch.batch_number}",
                details={"unit": unit.uid, "batch": open_membership.batch.batch_number},
            )

        BatchMembership.objects.create(batch=batch, unit=unit)
        unit.batch = batch
        unit.save(update_fields=["batch", "updated_at"])

        if unit.stage == ENTRY_STAGE[batch.stage_type]:
            PipelineService.step(
                unit, batch.stage, actor=actor, message=f"Added to batch {batch.batch_number}"
            )
        else:
            UnitService.append_audit(
                unit.id, actor=actor, message=f"Added to batch {batch.batch_number}"
            )

        logger.info(f"Unit {unit.uid} assigned to {batch.batch_number}")
        return success_response(UnitService.serialize(unit), f"Unit {unit.uid} added to {batch.batch_number}")

    @classmethod
    @transaction.atomic
    def remove_from_batch(cls, unit_id: int, actor: str = "", reason: str = "") -> Dict[str, Any]:
        """
        Take a unit out of its current batch. A unit still at the batch's stage
        is stepped back to where it entered from; a kitting unit returns its stock.
        """
        from production.services.pipeline_service import PipelineService

        unit = ProductionUnit.objects.select_for_update().select_related("batch").filter(id=unit_id).first()
        if not unit:
            raise NotFoundError("Unit", unit_id)
        if not unit.batch_id:
            raise ConflictError(f"Unit {unit.uid} is not in a batch")

        batch = Batch.objects.select_for_update().get(id=unit.batch_id)
        if batch.status == Batch.Status.COMPLETE:
            raise ConflictError(f"Batch {batch.batch_number} is complete and cannot be changed")

        note = f"Removed from batch {batch.batch_number}"
        if reason:
            note = f"{note}: {reason}"

        BatchMembership.objects.filter(batch=batch, unit=unit, left_at__isnull=True).update(
            left_at=timezone.now(), outcome=BatchMembership.Outcome.REMOVED
        )
        unit.batch = None
        unit.save(update_fields=["batch", "updated_at"])

        if unit.stage == batch.stage:
            PipelineService.step_back(unit, ENTRY_STAGE[batch.stage_type], actor=actor, message=note)
        else:
            UnitService.append_audit(unit.id, actor=actor, message=note)

        PipelineService.notify_if_cleared(batch)

        logger.info(f"Unit {unit.uid} removed from {batch.batch_number}")
        return success_response(UnitService.serialize(unit), note)

    @classmethod
    def create_batch(cls,
                     stage_type: str,
                     unit_ids: List[int] = None,
                     from_date: Any = None,
                     to_date: Any = None,
                     actor: str = "") -> Dict[str, Any]:
        """
        Build a KITTING or PACKING batch from explicit units, or from every
        eligible unassigned unit ordered within the date window. Kitting batches
        run auto-pick for each member once the batch is committed.
        """
        valid_types = [t[0] for t in Batch.StageType.choices]
        if stage_type not in valid_types:
            raise ValidationError(f"Invalid stage_type. Valid: {valid_types}", "stage_type")

        from_date = parse_optional_date(from_date, "from_date")
        to_date = parse_optional_date(to_date, "to_date")
        if from_date and to_date and from_date > to_date:
            raise ValidationError("from_date must not be after to_date", "from_date")

        with transaction.atomic():
            if unit_ids:
                units = list(ProductionUnit.objects.filter(id__in=unit_ids).order_by("id"))
                missing = set(unit_ids) - {u.id for u in units}
                if missing:
                    raise NotFoundError("Unit", sorted(missing)[0])
            else:
                units = list(cls._eligible_units(stage_type, from_date, to_date))

            if not units:
                raise ValidationError("No eligible units for this batch", "unit_ids")

            batch = cls.model.objects.create(
                batch_number=generate_number(BATCH_PREFIX[stage_type], cls.model, "batch_number"),
                stage_type=stage_type,
                from_date=from_date,
                to_date=to_date,
                created_by=actor or "",
            )
            for unit in units:
                cls.assign_to_batch(unit.id, batch.id, actor=actor)

        logger.info(f"Batch {batch.batch_number} created with {len(units)} unit(s)")

        data = cls.serialize(batch, include_units=True)
        if stage_type == Batch.StageType.KITTING:
            data["auto_pick"] = cls.pick_batch(batch.id, actor=actor)
        return success_response(data, f"Batch {batch.batch_number} created")

    @classmethod
    def pick_batch(cls, batch_id: int, actor: str = "") -> List[Dict[str, Any]]:
        """Auto-pick stock for every KITTING member of the batch that holds no reservation."""
        batch = cls.get_or_404(batch_id)
        units = ProductionUnit.objects.filter(
            batch_id=batch.id, stage=Stage.KITTING, reservations__isnull=True
        ).prefetch_related("requirements").distinct()

        picks = [
            {
                "unit_id": unit.id,
                "items": [{"sku": r.sku, "quantity": r.quantity} for r in unit.requirements.all()],
            }
            for unit in units
        ]
        if not picks:
            return []
        return AllocationService.auto_pick(picks, actor=actor)

    @classmethod
    def _eligible_units(cls, stage_type: str, from_date, to_date):
        entry_stage = ENTRY_STAGE[stage_type]
        queryset = ProductionUnit.objects.filter(stage=entry_stage)

        if stage_type == Batch.StageType.KITTING:
            queryset = queryset.filter(batch__isnull=True)
        else:
            in_open_packing = BatchMembership.objects.filter(
                left_at__isnull=True, batch__stage_type=Batch.StageType.PACKING
            ).values("unit_id")
            queryset = queryset.exclude(id__in=in_open_packing)

        if from_date:
            queryset = queryset.filter(order_date__gte=from_date)
        if to_date:
            queryset = queryset.filter(order_date__lte=to_date)
        return queryset.order_by("order_date", "id")
