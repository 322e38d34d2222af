import logging
from typing import Dict, Any, List

from django.db import transaction
from django.utils import timezone

from inventory.services.allocation_service import AllocationService
from inventory.services.base_service import (
    success_response, run_per_item,
    ServiceError, ValidationError, NotFoundError, ConflictError,
    InvalidTransitionError, BatchIncompleteError, InsufficientStockError
)
from inventory.services.bin_service import BinLedgerService
from production.models import (
    ProductionUnit, Batch, BatchMembership, AuditEntry, Stage, TRANSITIONS
)
from production.services.batch_service import BatchService
from production.services.unit_service import UnitService
from production.signals import batch_stage_cleared, batch_completed

logger = logging.getLogger(__name__)


class PipelineService:
    """
    Sole owner of unit stage changes.

    PLANNED -> KITTING -> KITTED -> PACKING -> PACKED -> QC_PENDING
    QC_PENDING -> QC_PASSED -> PRINTING -> PRINTED -> DISPATCHED
    QC_PENDING -> QC_FAILED -> PLANNED
    """

    @classmethod
    def parse_stage(cls, value: Any, field: str = "stage") -> Stage:
        try:
            return Stage(str(value).upper())
        except ValueError:
            raise ValidationError(f"Unknown stage: {value}", field)

    @classmethod
    @transaction.atomic
    def advance(cls, unit_id: int, from_stage: Any, to_stage: Any,
                actor: str = "", message: str = "") -> Dict[str, Any]:
        from_stage = cls.parse_stage(from_stage, "from_stage")
        to_stage = cls.parse_stage(to_stage, "to_stage")
        if to_stage not in TRANSITIONS[from_stage]:
            raise InvalidTransitionError(from_stage, to_stage)

        unit = ProductionUnit.objects.select_for_update().filter(id=unit_id).first()
        if not unit:
            raise NotFoundError("Unit", unit_id)
        if unit.stage != from_stage:
            raise ConflictError(
                f"Unit {unit.uid} is {unit.stage}, not {from_stage}",
                "STALE_STAGE",
                {"unit": unit.uid, "current_stage": unit.stage, "from_stage": from_stage},
            )

        cls.step(unit, to_stage, actor=actor, message=message)
        return success_response(UnitService.serialize(unit), f"Unit {unit.uid} moved to {to_stage}")

    @classmethod
    def step(cls, unit: ProductionUnit, to_stage: Stage, actor: str = "", message: str = "") -> ProductionUnit:
        """
        Apply one legal transition to a unit already locked by the caller.
        Must run inside the caller's transaction.
        """
        from_stage = Stage(unit.stage)
        if to_stage not in TRANSITIONS[from_stage]:
            raise InvalidTransitionError(from_stage, to_stage)

        batch = unit.batch if unit.batch_id else None
        leaving_batch = batch is not None and from_stage == batch.stage and to_stage != batch.stage

        if from_stage == Stage.KITTING and to_stage == Stage.KITTED:
            cls._consume_stock(unit)
        elif to_stage == Stage.QC_FAILED:
            if not (message or "").strip():
                raise ValidationError("A failure reason is required", "message")
            AllocationService.release_unit(unit.id, actor=actor, reason=f"QC failed: {message}")
        elif from_stage == Stage.QC_FAILED and to_stage == Stage.PLANNED:
            if not message:
                message = cls._last_failure_reason(unit)
            unit.batch = None

        unit.stage = to_stage
        unit.save(update_fields=["stage", "batch", "updated_at"])
        UnitService.append_audit(
            unit.id, actor=actor, stage_from=from_stage, stage_to=to_stage, message=message
        )

        if leaving_batch:
            # Units leaving the same batch queue here, so the last one out sees every other departure
            batch = Batch.objects.select_for_update().get(id=batch.id)
            BatchMembership.objects.filter(batch=batch, unit=unit, left_at__isnull=True).update(
                left_at=timezone.now(), outcome=BatchMembership.Outcome.ADVANCED
            )
            if batch.status == Batch.Status.OPEN:
                batch.status = Batch.Status.IN_PROGRESS
                batch.save(update_fields=["status", "updated_at"])
            cls.notify_if_cleared(batch)

        logger.debug(f"{unit.uid}: {from_stage} -> {to_stage}")
        return unit

    @classmethod
    def step_back(cls, unit: ProductionUnit, to_stage: Stage, actor: str = "", message: str = "") -> ProductionUnit:
        """Return a unit removed from its batch to the stage it entered from."""
        from_stage = unit.stage
        if from_stage == Stage.KITTING:
            AllocationService.release_unit(unit.id, actor=actor, reason=message)

        unit.stage = to_stage
        unit.save(update_fields=["stage", "updated_at"])
        UnitService.append_audit(
            unit.id, actor=actor, stage_from=from_stage, stage_to=to_stage, message=message
        )
        return unit

    @classmethod
    def notify_if_cleared(cls, batch: Batch):
        batch.refresh_from_db(fields=["status"])
        if batch.status == Batch.Status.COMPLETE or BatchService.remaining_in_stage(batch):
            return

        logger.info(f"Batch {batch.batch_number} cleared its {batch.stage_type} stage")
        batch_stage_cleared.send(
            sender=cls,
            batch_id=batch.id,
            batch_number=batch.batch_number,
            stage_type=batch.stage_type,
        )

    @classmethod
    @transaction.atomic
    def complete_batch(cls, batch_id: int, actor: str = "") -> Dict[str, Any]:
        batch = Batch.objects.select_for_update().filter(id=batch_id).first()
        if not batch:
            raise NotFoundError("Batch", batch_id)

        if batch.status == Batch.Status.COMPLETE:
            return success_response(BatchService.serialize(batch), f"Batch {batch.batch_number} already complete")

        remaining = BatchService.remaining_in_stage(batch)
        if remaining:
            raise BatchIncompleteError(batch.batch_number, remaining)

        batch.status = Batch.Status.COMPLETE
        batch.completed_at = timezone.now()
        batch.save(update_fields=["status", "completed_at", "updated_at"])

        batch_completed.send(sender=cls, batch_id=batch.id, batch_number=batch.batch_number, actor=actor)

        logger.info(f"Batch {batch.batch_number} completed by {actor or 'system'}")
        return success_response(BatchService.serialize(batch), f"Batch {batch.batch_number} completed")

    @classmethod
    def advance_all(cls, batch_id: int, to_stage: Any, actor: str = "", message: str = "") -> List[Dict[str, Any]]:
        """
        Advance every unit currently in the batch, each in its own transaction.
        Failures are reported per unit and never stop the rest.
        """
        batch = BatchService.get_or_404(batch_id)
        to_stage = cls.parse_stage(to_stage, "to_stage")

        members = list(
            ProductionUnit.objects.filter(batch_id=batch.id).order_by("id").values_list("id", "uid", "stage")
        )

        def _advance(member):
            unit_id, uid, stage = member
            try:
                cls.advance(unit_id, stage, to_stage, actor=actor, message=message)
                return {"unit_id": unit_id, "uid": uid, "success": True}
            except ServiceError as e:
                return {"unit_id": unit_id, "uid": uid, "success": False, "error": e.message, "error_code": e.code}

        results = run_per_item(members, _advance)

        succeeded = sum(1 for r in results if r["success"])
        logger.info(f"Batch {batch.batch_number}: {succeeded}/{len(results)} unit(s) advanced to {to_stage}")
        return results

    @classmethod
    @transaction.atomic
    def record_qc(cls, unit_id: int, passed: bool, reason: str = "", actor: str = "") -> Dict[str, Any]:
        """Pass a unit, or fail it and send it straight back to PLANNED for rework."""
        unit = ProductionUnit.objects.select_for_update().filter(id=unit_id).first()
        if not unit:
            raise NotFoundError("Unit", unit_id)

        target = Stage.QC_PASSED if passed else Stage.QC_FAILED
        if unit.stage != Stage.QC_PENDING:
            raise InvalidTransitionError(unit.stage, target)

        if passed:
            cls.step(unit, Stage.QC_PASSED, actor=actor, message=reason or "QC passed")
            return success_response(UnitService.serialize(unit), f"Unit {unit.uid} passed QC")

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A failure reason is required", "reason")

        cls.step(unit, Stage.QC_FAILED, actor=actor, message=reason)
        cls.step(unit, Stage.PLANNED, actor=actor, message=f"Rework after QC failure: {reason}")
        return success_response(UnitService.serialize(unit), f"Unit {unit.uid} failed QC and returned to planning")

    @classmethod
    def _consume_stock(cls, unit: ProductionUnit):
        if not unit.reservations.exists():
            requirement = unit.requirements.order_by("id").first()
            if requirement:
                raise InsufficientStockError(
                    requirement.sku, requirement.quantity, BinLedgerService.on_hand(requirement.sku)
                )
        AllocationService.consume(unit.id)

    @staticmethod
    def _last_failure_reason(unit: ProductionUnit) -> str:
        entry = AuditEntry.objects.filter(unit=unit, stage_to=Stage.QC_FAILED).order_by("-id").first()
        return f"Rework after QC failure: {entry.message}" if entry else ""
