import logging
from collections import OrderedDict
from typing import Dict, Any, List

from django.db import transaction
from django.utils import timezone

from inventory.models import BinStock, StockMovement, StockReservation
from inventory.services.base_service import (
    success_response, run_per_item,
    ServiceError, ValidationError, NotFoundError, ConflictError,
    InsufficientStockError, to_quantity
)
from inventory.services.bin_service import BinLedgerService
from inventory.signals import stock_consumed, consumed_stock_returned

logger = logging.getLogger(__name__)


class AllocationService:
    """
    Stock availability, auto-pick, consumption and putback.
    Auto-pick draws from bins in ascending bin id order.
    """

    @classmethod
    def serialize_reservation(cls, reservation: StockReservation) -> Dict[str, Any]:
        return {
            "id": reservation.id,
            "unit_id": reservation.unit_id,
            "sku": reservation.sku,
            "bin_id": reservation.bin_id,
            "bin_code": reservation.bin.code,
            "quantity": reservation.quantity,
            "status": reservation.status,
            "created_at": reservation.created_at.isoformat(),
            "consumed_at": reservation.consumed_at.isoformat() if reservation.consumed_at else None,
        }

    @classmethod
    def _aggregate_lines(cls, lines: List[Dict]) -> "OrderedDict[str, int]":
        if not isinstance(lines, list):
            raise ValidationError("Expected a list of {sku, quantity}", "items")

        required = OrderedDict()
        for line in lines:
            if not isinstance(line, dict):
                raise ValidationError("Each line must be an object with sku and quantity", "items")
            sku = (line.get("sku") or "").strip()
            if not sku:
                raise ValidationError("SKU is required", "sku")
            quantity = to_quantity(line.get("quantity"))
            required[sku] = required.get(sku, 0) + quantity
        return required

    @classmethod
    def check_availability(cls, lines: List[Dict]) -> Dict[str, Any]:
        required = cls._aggregate_lines(lines)

        per_item = []
        for sku, quantity in required.items():
            available = BinLedgerService.on_hand(sku)
            per_item.append({
                "sku": sku,
                "required": quantity,
                "available": available,
                "sufficient": available >= quantity,
            })

        return {
            "can_fulfill": all(item["sufficient"] for item in per_item),
            "per_item": per_item,
        }

    @classmethod
    def auto_pick(cls, units: List[Dict], actor: str = "") -> List[Dict[str, Any]]:
        """
        units: [{"unit_id": int, "items": [{"sku", "quantity"}]}]
        Returns one result per unit. A unit is either fully reserved or
        left without any reservation.
        """
        if not isinstance(units, list):
            raise ValidationError("Expected a list of units", "units")

        picks = []
        for pick in units:
            if not isinstance(pick, dict) or not pick.get("unit_id"):
                raise ValidationError("Each unit needs a unit_id", "unit_id")
            picks.append((pick["unit_id"], cls._aggregate_lines(pick.get("items") or [])))

        return run_per_item(picks, lambda pick: cls._pick_unit(pick[0], pick[1], actor))

    @classmethod
    def _pick_unit(cls, unit_id: int, required: "OrderedDict[str, int]", actor: str) -> Dict[str, Any]:
        from production.models import ProductionUnit

        try:
            with transaction.atomic():
                unit = ProductionUnit.objects.select_for_update().filter(id=unit_id).first()
                if not unit:
                    raise NotFoundError("Unit", unit_id)
                if unit.reservations.exists():
                    raise ConflictError(f"Unit {unit.uid} already has stock allocated")

                reservations = []
                for sku, quantity in required.items():
                    reservations.extend(cls._allocate_sku(unit, sku, quantity, actor))

            logger.info(f"Auto-picked {len(reservations)} reservation(s) for {unit.uid}")
            return {
                "unit_id": unit_id,
                "success": True,
                "reservations": [cls.serialize_reservation(r) for r in reservations],
            }
        except ServiceError as e:
            logger.warning(f"Auto-pick skipped unit {unit_id}: {e.message}")
            return {"unit_id": unit_id, "success": False, "error": e.message, "error_code": e.code}

    @classmethod
    def _allocate_sku(cls, unit, sku: str, quantity: int, actor: str) -> List[StockReservation]:
        remaining = quantity
        reservations = []

        candidates = BinStock.objects.filter(
            sku=sku, quantity__gt=0, bin__is_active=True
        ).order_by("bin_id").values_list("id", flat=True)

        for stock_id in list(candidates):
            if remaining <= 0:
                break

            wanted = remaining
            movement = BinLedgerService._compare_and_adjust(
                stock_id,
                lambda s: -min(wanted, s.quantity),
                StockMovement.MovementType.PICK,
                actor=actor,
                reference_type="unit",
                reference_id=unit.uid,
            )
            if movement is None:
                continue

            taken = -movement.quantity
            remaining -= taken
            reservations.append(StockReservation.objects.create(
                unit=unit,
                sku=sku,
                bin_id=movement.bin_id,
                quantity=taken,
            ))

        if remaining > 0:
            raise InsufficientStockError(sku, quantity, quantity - remaining)

        return reservations

    @classmethod
    @transaction.atomic
    def consume(cls, unit_id: int) -> List[Dict[str, Any]]:
        reservations = list(
            StockReservation.objects.select_for_update().select_related("bin").filter(
                unit_id=unit_id, status=StockReservation.Status.ACTIVE
            )
        )

        now = timezone.now()
        lines = OrderedDict()
        for reservation in reservations:
            reservation.status = StockReservation.Status.CONSUMED
            reservation.consumed_at = now
            reservation.save(update_fields=["status", "consumed_at"])
            lines[reservation.sku] = lines.get(reservation.sku, 0) + reservation.quantity

        if lines:
            stock_consumed.send(
                sender=cls,
                unit_id=unit_id,
                lines=[{"sku": sku, "quantity": qty} for sku, qty in lines.items()],
                consumed_on=timezone.localdate(now),
            )

        return [cls.serialize_reservation(r) for r in reservations]

    @classmethod
    @transaction.atomic
    def putback(cls, reservations: List[Dict], actor: str = "", reason: str = "") -> Dict[str, Any]:
        """
        reservations: [{"reservation_id": int, "quantity": int (optional, defaults to all)}]
        Returned stock goes back to the bin it was picked from.
        """
        if not isinstance(reservations, list) or not reservations:
            raise ValidationError("At least one reservation is required", "reservations")

        returned = []
        consumed_lines = {}
        for line in reservations:
            reservation_id = line.get("reservation_id") if isinstance(line, dict) else None
            reservation = StockReservation.objects.select_for_update().select_related(
                "bin", "unit"
            ).filter(id=reservation_id).first()
            if not reservation:
                raise NotFoundError("Reservation", reservation_id)

            quantity = line.get("quantity")
            quantity = reservation.quantity if quantity is None else to_quantity(quantity)
            if quantity > reservation.quantity:
                raise ValidationError(
                    f"Cannot put back {quantity}; only {reservation.quantity} reserved", "quantity"
                )

            BinLedgerService.increment(
                reservation.bin_id, reservation.sku, quantity,
                StockMovement.MovementType.PUTBACK,
                actor=actor, reason=reason,
                reference_type="unit", reference_id=reservation.unit.uid,
            )

            if reservation.status == StockReservation.Status.CONSUMED:
                key = (reservation.unit_id, reservation.sku)
                consumed_lines[key] = consumed_lines.get(key, 0) + quantity

            remaining = reservation.quantity - quantity
            returned.append({
                "reservation_id": reservation.id,
                "unit_id": reservation.unit_id,
                "sku": reservation.sku,
                "bin_id": reservation.bin_id,
                "bin_code": reservation.bin.code,
                "quantity": quantity,
                "remaining": remaining,
            })

            if remaining == 0:
                reservation.delete()
            else:
                reservation.quantity = remaining
                reservation.save(update_fields=["quantity"])

        today = timezone.localdate()
        units = {}
        for (unit_id, sku), quantity in consumed_lines.items():
            units.setdefault(unit_id, []).append({"sku": sku, "quantity": quantity})
        for unit_id, lines in units.items():
            consumed_stock_returned.send(sender=cls, unit_id=unit_id, lines=lines, returned_on=today)

        total = sum(r["quantity"] for r in returned)
        logger.info(f"Putback of {total} piece(s) across {len(returned)} reservation(s)")
        return success_response(returned, f"Returned {total} piece(s) to bins")

    @classmethod
    @transaction.atomic
    def release_unit(cls, unit_id: int, actor: str = "", reason: str = "") -> List[Dict[str, Any]]:
        """Put back every reservation (active or consumed) held by a unit."""
        ids = list(
            StockReservation.objects.filter(unit_id=unit_id).order_by("id").values_list("id", flat=True)
        )
        if not ids:
            return []
        result = cls.putback([{"reservation_id": rid} for rid in ids], actor=actor, reason=reason)
        return result["data"]

    @classmethod
    def list_for_unit(cls, unit_id: int) -> List[Dict[str, Any]]:
        reservations = StockReservation.objects.select_related("bin").filter(unit_id=unit_id)
        return [cls.serialize_reservation(r) for r in reservations]
