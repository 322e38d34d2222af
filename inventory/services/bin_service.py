import logging
from typing import Dict, Any, Callable, Optional

from django.conf import settings
from django.db import transaction, IntegrityError
from django.db.models import F, Q, Sum
from django.utils import timezone

from inventory.models import Bin, BinStock, StockMovement
from inventory.services.base_service import (
    BaseService, success_response, list_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError, InsufficientStockError,
    StockIntegrityError, to_quantity
)

logger = logging.getLogger(__name__)


class BinService(BaseService):
    model = Bin

    @classmethod
    def serialize(cls, bin: Bin, include_stock: bool = False) -> Dict[str, Any]:
        data = {
            "id": bin.id,
            "uuid": str(bin.uuid),
            "code": bin.code,
            "name": bin.name,
            "category": bin.category,
            "is_active": bin.is_active,
            "created_at": bin.created_at.isoformat(),
        }
        if include_stock:
            data["stock"] = [
                BinLedgerService.serialize(s) for s in bin.stock.filter(quantity__gt=0)
            ]
        return data

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None,
             category: str = None, active_only: bool = True) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if active_only:
            queryset = queryset.filter(is_active=True)

        if category:
            queryset = queryset.filter(category=category)

        if search:
            queryset = queryset.filter(Q(code__icontains=search) | Q(name__icontains=search))

        bins, total = paginate_queryset(queryset.order_by("id"), page, limit)
        return list_response([cls.serialize(b) for b in bins], total)

    @classmethod
    def get(cls, bin_id: int) -> Dict[str, Any]:
        return success_response(cls.serialize(cls.get_or_404(bin_id), include_stock=True))

    @classmethod
    @transaction.atomic
    def create(cls, code: str, name: str, category: str = Bin.Category.STORAGE) -> Dict[str, Any]:
        code = (code or "").strip()
        if not code:
            raise ValidationError("Bin code is required", "code")
        if not (name or "").strip():
            raise ValidationError("Bin name is required", "name")

        valid_categories = [c[0] for c in Bin.Category.choices]
        if category not in valid_categories:
            raise ValidationError(f"Invalid category. Valid: {valid_categories}", "category")

        if cls.model.objects.filter(code=code).exists():
            raise ConflictError(f"Bin '{code}' already exists")

        bin = cls.model.objects.create(code=code, name=name.strip(), category=category)
        logger.info(f"Bin created: {bin.code}")
        return success_response(cls.serialize(bin), f"Bin {bin.code} created")

    @classmethod
    @transaction.atomic
    def update(cls, bin_id: int, **kwargs) -> Dict[str, Any]:
        bin = cls.get_or_404(bin_id)

        if "category" in kwargs:
            valid_categories = [c[0] for c in Bin.Category.choices]
            if kwargs["category"] not in valid_categories:
                raise ValidationError(f"Invalid category. Valid: {valid_categories}", "category")

        if "is_active" in kwargs and not kwargs["is_active"] and bin.is_active:
            cls._ensure_empty(bin)

        for field in ["name", "category", "is_active"]:
            if field in kwargs:
                setattr(bin, field, kwargs[field])
        bin.save()

        return success_response(cls.serialize(bin), "Bin updated")

    @classmethod
    @transaction.atomic
    def deactivate(cls, bin_id: int) -> Dict[str, Any]:
        bin = cls.get_or_404(bin_id)
        cls._ensure_empty(bin)

        bin.is_active = False
        bin.save(update_fields=["is_active", "updated_at"])
        return success_response(cls.serialize(bin), f"Bin {bin.code} deactivated")

    @staticmethod
    def _ensure_empty(bin: Bin):
        on_hand = bin.stock.aggregate(total=Sum("quantity"))["total"] or 0
        if on_hand > 0:
            raise ConflictError(f"Bin {bin.code} still holds {on_hand} piece(s)")


class BinLedgerService:
    """
    Owns BinStock quantities. Every change goes through a compare-and-adjust
    UPDATE guarded by the row's current quantity and version, and is logged
    as a StockMovement in the same transaction.
    """

    @classmethod
    def serialize(cls, stock: BinStock) -> Dict[str, Any]:
        return {
            "id": stock.id,
            "bin_id": stock.bin_id,
            "bin_code": stock.bin.code,
            "bin_name": stock.bin.name,
            "sku": stock.sku,
            "quantity": stock.quantity,
            "version": stock.version,
            "last_counted_at": stock.last_counted_at.isoformat() if stock.last_counted_at else None,
            "last_movement_at": stock.last_movement_at.isoformat() if stock.last_movement_at else None,
        }

    @classmethod
    def serialize_movement(cls, movement: StockMovement) -> Dict[str, Any]:
        return {
            "id": movement.id,
            "bin_id": movement.bin_id,
            "bin_code": movement.bin.code,
            "sku": movement.sku,
            "movement_type": movement.movement_type,
            "quantity": movement.quantity,
            "quantity_before": movement.quantity_before,
            "quantity_after": movement.quantity_after,
            "reference_type": movement.reference_type,
            "reference_id": movement.reference_id,
            "reason": movement.reason,
            "actor": movement.actor,
            "created_at": movement.created_at.isoformat(),
        }

    @classmethod
    def get_stock(cls, bin_id: int, sku: str) -> BinStock:
        if not Bin.objects.filter(id=bin_id).exists():
            raise NotFoundError("Bin", bin_id)
        stock, _ = BinStock.objects.get_or_create(bin_id=bin_id, sku=sku)
        return stock

    @classmethod
    def on_hand(cls, sku: str) -> int:
        return BinStock.objects.filter(
            sku=sku, bin__is_active=True
        ).aggregate(total=Sum("quantity"))["total"] or 0

    @classmethod
    def _compare_and_adjust(cls,
                            stock_id: int,
                            compute_delta: Callable[[BinStock], int],
                            movement_type: str,
                            actor: str = "",
                            reference_type: str = "",
                            reference_id: str = "",
                            reason: str = "",
                            extra_updates: Optional[Dict] = None) -> Optional[StockMovement]:
        max_retries = getattr(settings, "STOCK_CAS_MAX_RETRIES", 5)

        for attempt in range(max_retries):
            stock = BinStock.objects.select_related("bin").get(pk=stock_id)
            if stock.quantity < 0:
                logger.critical(f"Negative stock detected: {stock.sku} @ {stock.bin.code} = {stock.quantity}")
                raise StockIntegrityError(stock.bin.code, stock.sku, stock.quantity)

            delta = compute_delta(stock)
            if delta == 0:
                return None
            new_quantity = stock.quantity + delta
            if new_quantity < 0:
                raise InsufficientStockError(stock.sku, -delta, stock.quantity)

            now = timezone.now()
            try:
                with transaction.atomic():
                    updated = BinStock.objects.filter(
                        pk=stock.pk, quantity=stock.quantity, version=stock.version
                    ).update(
                        quantity=new_quantity,
                        version=F("version") + 1,
                        last_movement_at=now,
                        updated_at=now,
                        **(extra_updates or {}),
                    )
            except IntegrityError:
                logger.critical(f"Check constraint rejected {stock.sku} @ {stock.bin.code} -> {new_quantity}")
                raise StockIntegrityError(stock.bin.code, stock.sku, new_quantity)

            if updated:
                return StockMovement.objects.create(
                    bin_id=stock.bin_id,
                    sku=stock.sku,
                    movement_type=movement_type,
                    quantity=delta,
                    quantity_before=stock.quantity,
                    quantity_after=new_quantity,
                    reference_type=reference_type,
                    reference_id=str(reference_id or ""),
                    reason=reason,
                    actor=actor or "",
                )

            logger.debug(f"Concurrent update on bin stock {stock_id}, retry {attempt + 1}/{max_retries}")

        raise ConflictError(
            f"Bin stock {stock_id} kept changing concurrently; retry the operation",
            details={"bin_stock_id": stock_id},
        )

    @classmethod
    @transaction.atomic
    def apply_delta(cls, bin_id: int, sku: str, delta: int, movement_type: str, **kwargs) -> StockMovement:
        stock = cls.get_stock(bin_id, sku)
        return cls._compare_and_adjust(stock.id, lambda s: delta, movement_type, **kwargs)

    @classmethod
    def increment(cls, bin_id: int, sku: str, quantity: int, movement_type: str, **kwargs) -> StockMovement:
        return cls.apply_delta(bin_id, sku, abs(quantity), movement_type, **kwargs)

    @classmethod
    def decrement(cls, bin_id: int, sku: str, quantity: int, movement_type: str, **kwargs) -> StockMovement:
        return cls.apply_delta(bin_id, sku, -abs(quantity), movement_type, **kwargs)

    @classmethod
    @transaction.atomic
    def set_quantity(cls, stock_id: int, new_quantity: int, movement_type: str, **kwargs) -> StockMovement:
        return cls._compare_and_adjust(
            stock_id, lambda s: new_quantity - s.quantity, movement_type, **kwargs
        )

    @classmethod
    @transaction.atomic
    def receive(cls, bin_id: int, sku: str, quantity: Any, actor: str = "", reference_id: str = "") -> Dict[str, Any]:
        quantity = to_quantity(quantity)
        sku = cls._clean_sku(sku)
        movement = cls.increment(
            bin_id, sku, quantity, StockMovement.MovementType.RECEIPT,
            actor=actor, reference_type="receipt", reference_id=reference_id,
        )
        return success_response(cls.serialize_movement(movement), f"Received {quantity} × {sku}")

    @classmethod
    @transaction.atomic
    def adjust(cls, bin_id: int, sku: str, new_quantity: Any, reason: str, actor: str = "") -> Dict[str, Any]:
        new_quantity = to_quantity(new_quantity, "new_quantity", allow_zero=True)
        if not (reason or "").strip():
            raise ValidationError("Adjustment reason is required", "reason")

        stock = cls.get_stock(bin_id, cls._clean_sku(sku))
        movement = cls.set_quantity(
            stock.id, new_quantity, StockMovement.MovementType.ADJUSTMENT,
            actor=actor, reason=reason, reference_type="adjustment",
        )
        if movement is None:
            return success_response(cls.serialize(stock), "Quantity unchanged")

        logger.info(f"Manual adjustment {movement.sku} @ bin {bin_id}: {movement.quantity_before} -> {movement.quantity_after}")
        return success_response(cls.serialize_movement(movement), "Stock adjusted")

    @classmethod
    @transaction.atomic
    def transfer(cls, from_bin_id: int, to_bin_id: int, sku: str, quantity: Any, actor: str = "") -> Dict[str, Any]:
        quantity = to_quantity(quantity)
        sku = cls._clean_sku(sku)
        if from_bin_id == to_bin_id:
            raise ValidationError("Source and destination bins must differ", "to_bin_id")

        to_bin = Bin.objects.filter(id=to_bin_id, is_active=True).first()
        if not to_bin:
            raise NotFoundError("Bin", to_bin_id)

        out_movement = cls.decrement(
            from_bin_id, sku, quantity, StockMovement.MovementType.TRANSFER_OUT,
            actor=actor, reference_type="transfer", reference_id=str(to_bin_id),
        )
        in_movement = cls.increment(
            to_bin_id, sku, quantity, StockMovement.MovementType.TRANSFER_IN,
            actor=actor, reference_type="transfer", reference_id=str(from_bin_id),
        )
        return success_response({
            "out": cls.serialize_movement(out_movement),
            "in": cls.serialize_movement(in_movement),
        }, f"Moved {quantity} × {sku} to {to_bin.code}")

    @classmethod
    def list_stock(cls, page: int = 1, limit: int = 20, search: str = None,
                   bin_id: int = None, in_stock_only: bool = True) -> Dict[str, Any]:
        queryset = BinStock.objects.select_related("bin").filter(bin__is_active=True)

        if bin_id:
            queryset = queryset.filter(bin_id=bin_id)

        if in_stock_only:
            queryset = queryset.filter(quantity__gt=0)

        if search:
            queryset = queryset.filter(Q(sku__icontains=search) | Q(bin__code__icontains=search))

        rows, total = paginate_queryset(queryset.order_by("bin_id", "sku"), page, limit)
        return list_response([cls.serialize(s) for s in rows], total)

    @classmethod
    def list_movements(cls, page: int = 1, limit: int = 20, search: str = None,
                       movement_type: str = None, bin_id: int = None) -> Dict[str, Any]:
        queryset = StockMovement.objects.select_related("bin")

        if movement_type:
            queryset = queryset.filter(movement_type=movement_type)

        if bin_id:
            queryset = queryset.filter(bin_id=bin_id)

        if search:
            queryset = queryset.filter(
                Q(sku__icontains=search) | Q(bin__code__icontains=search) | Q(reference_id=search)
            )

        movements, total = paginate_queryset(queryset, page, limit)
        return list_response([cls.serialize_movement(m) for m in movements], total)

    @staticmethod
    def _clean_sku(sku: str) -> str:
        sku = (sku or "").strip()
        if not sku:
            raise ValidationError("SKU is required", "sku")
        return sku
