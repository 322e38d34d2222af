import logging
import random
from typing import Dict, Any

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from inventory.models import BinStock, CycleCountSession, CycleCountEntry, StockMovement
from inventory.services.base_service import (
    BaseService, success_response, list_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError, StaleCountError,
    generate_number, to_quantity
)
from inventory.services.bin_service import BinLedgerService

logger = logging.getLogger(__name__)


class CycleCountService(BaseService):
    model = CycleCountSession

    @classmethod
    def serialize_entry(cls, entry: CycleCountEntry) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "bin_stock_id": entry.bin_stock_id,
            "bin_id": entry.bin_stock.bin_id,
            "bin_code": entry.bin_stock.bin.code,
            "sku": entry.sku,
            "system_quantity": entry.system_quantity,
            "counted_quantity": entry.counted_quantity,
            "variance": entry.variance,
            "counted_at": entry.counted_at.isoformat() if entry.counted_at else None,
        }

    @classmethod
    def serialize(cls, session: CycleCountSession, include_entries: bool = False) -> Dict[str, Any]:
        data = {
            "id": session.id,
            "uuid": str(session.uuid),
            "session_number": session.session_number,
            "sample_size": session.sample_size,
            "status": session.status,
            "status_display": session.get_status_display(),
            "opened_by": session.opened_by,
            "applied_by": session.applied_by,
            "applied_at": session.applied_at.isoformat() if session.applied_at else None,
            "created_at": session.created_at.isoformat(),
        }

        if include_entries:
            entries = session.entries.select_related("bin_stock__bin")
            data["entries"] = [cls.serialize_entry(e) for e in entries]

            counted = [e for e in data["entries"] if e["counted_quantity"] is not None]
            data["summary"] = {
                "total_entries": len(data["entries"]),
                "counted_entries": len(counted),
                "pending_entries": len(data["entries"]) - len(counted),
                "entries_with_variance": sum(1 for e in counted if e["variance"] != 0),
            }

        return data

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None, status: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.annotate(entry_count=Count("entries"))

        if status:
            queryset = queryset.filter(status=status)

        if search:
            queryset = queryset.filter(
                Q(session_number__icontains=search) | Q(entries__sku__icontains=search)
            ).distinct()

        sessions, total = paginate_queryset(queryset, page, limit)
        items = []
        for session in sessions:
            data = cls.serialize(session)
            data["entry_count"] = session.entry_count
            items.append(data)
        return list_response(items, total)

    @classmethod
    def get(cls, session_id: int) -> Dict[str, Any]:
        return success_response(cls.serialize(cls.get_or_404(session_id), include_entries=True))

    @classmethod
    @transaction.atomic
    def run_cycle_count(cls, sample_size: Any, actor: str = "") -> Dict[str, Any]:
        """
        Open a session over `sample_size` random (bin, sku) pairs with stock on
        hand. Each entry snapshots the row's quantity and version.
        """
        max_sample = getattr(settings, "CYCLE_COUNT_MAX_SAMPLE", 100)
        sample_size = to_quantity(sample_size, "sample_size")
        if sample_size > max_sample:
            raise ValidationError(f"sample_size must be between 1 and {max_sample}", "sample_size")

        candidate_ids = list(
            BinStock.objects.filter(quantity__gt=0, bin__is_active=True).values_list("id", flat=True)
        )
        chosen = random.sample(candidate_ids, min(sample_size, len(candidate_ids)))

        session = cls.model.objects.create(
            session_number=generate_number("CC", cls.model, "session_number"),
            sample_size=sample_size,
            opened_by=actor or "",
        )

        for stock in BinStock.objects.filter(id__in=chosen).order_by("bin_id", "sku"):
            CycleCountEntry.objects.create(
                session=session,
                bin_stock=stock,
                sku=stock.sku,
                system_quantity=stock.quantity,
                system_version=stock.version,
            )

        logger.info(f"Cycle count {session.session_number} opened with {len(chosen)} of {sample_size} requested bin(s)")
        return success_response(
            cls.serialize(session, include_entries=True),
            f"Cycle count {session.session_number} opened"
        )

    @classmethod
    @transaction.atomic
    def record_count(cls, session_id: int, entry_id: int, counted_quantity: Any) -> Dict[str, Any]:
        session = cls._get_open_session(session_id)

        entry = session.entries.select_related("bin_stock__bin").filter(id=entry_id).first()
        if not entry:
            raise NotFoundError("Cycle count entry", entry_id)

        entry.counted_quantity = to_quantity(counted_quantity, "counted_quantity", allow_zero=True)
        entry.counted_at = timezone.now()
        entry.save(update_fields=["counted_quantity", "counted_at"])

        return success_response(cls.serialize_entry(entry), "Count recorded")

    @classmethod
    @transaction.atomic
    def apply_cycle_count(cls, session_id: int, actor: str = "") -> Dict[str, Any]:
        session = cls._get_open_session(session_id, lock=True)
        entries = list(session.entries.order_by("bin_stock_id"))

        live = {
            s.id: s for s in BinStock.objects.select_for_update().filter(
                id__in=[e.bin_stock_id for e in entries]
            ).order_by("id")
        }

        stale = [
            {
                "entry_id": e.id,
                "sku": e.sku,
                "bin_stock_id": e.bin_stock_id,
                "snapshot_version": e.system_version,
                "current_version": live[e.bin_stock_id].version,
            }
            for e in entries if live[e.bin_stock_id].version != e.system_version
        ]
        if stale:
            logger.warning(f"Cycle count {session.session_number} rejected: {len(stale)} stale entr(ies)")
            raise StaleCountError(session.session_number, stale)

        now = timezone.now()
        adjusted = []
        for entry in entries:
            if entry.counted_quantity is None or entry.counted_quantity == entry.system_quantity:
                continue

            movement = BinLedgerService.set_quantity(
                entry.bin_stock_id,
                entry.counted_quantity,
                StockMovement.MovementType.CYCLE_COUNT,
                actor=actor,
                reference_type="cycle_count",
                reference_id=session.session_number,
                reason="Cycle count correction",
                extra_updates={"last_counted_at": now},
            )
            adjusted.append(BinLedgerService.serialize_movement(movement))

        session.status = CycleCountSession.Status.APPLIED
        session.applied_by = actor or ""
        session.applied_at = now
        session.save(update_fields=["status", "applied_by", "applied_at", "updated_at"])

        logger.info(f"Cycle count {session.session_number} applied: {len(adjusted)} bin(s) corrected")
        return success_response({
            "session": cls.serialize(session),
            "adjustments": adjusted,
        }, f"Cycle count applied, {len(adjusted)} bin(s) corrected")

    @classmethod
    @transaction.atomic
    def discard_cycle_count(cls, session_id: int) -> Dict[str, Any]:
        session = cls._get_open_session(session_id, lock=True)
        session.status = CycleCountSession.Status.DISCARDED
        session.save(update_fields=["status", "updated_at"])
        return success_response(cls.serialize(session), f"Cycle count {session.session_number} discarded")

    @classmethod
    def _get_open_session(cls, session_id: int, lock: bool = False) -> CycleCountSession:
        queryset = cls.model.objects.select_for_update() if lock else cls.model.objects
        session = queryset.filter(id=session_id).first()
        if not session:
            raise NotFoundError("Cycle count", session_id)
        if session.status != CycleCountSession.Status.OPEN:
            raise ConflictError(f"Cycle count {session.session_number} is already {session.status.lower()}")
        return session
