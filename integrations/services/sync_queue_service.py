import logging
from datetime import timedelta
from typing import Dict, Any, Callable

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from inventory.services.base_service import (
    BaseService, success_response, list_response, paginate_queryset,
    ServiceError, ValidationError, ConflictError
)
from integrations.models import SyncQueueItem

logger = logging.getLogger(__name__)


def _push_purchase_order(item: SyncQueueItem):
    from integrations.services.vendor_master_client import VendorMasterClient
    return VendorMasterClient.push_purchase_order(item.payload["purchase_order_id"])


def _sync_vendors(item: SyncQueueItem):
    from integrations.services.vendor_master_client import VendorMasterClient
    return VendorMasterClient.sync_vendors()


def _import_order(item: SyncQueueItem):
    from integrations.services.order_ingestion_client import OrderIngestionClient
    return OrderIngestionClient.import_order(item.entity_id, actor=item.payload.get("actor", ""))


HANDLERS: Dict[tuple, Callable[[SyncQueueItem], Any]] = {
    (SyncQueueItem.Service.VENDOR_MASTER, "push_purchase_order"): _push_purchase_order,
    (SyncQueueItem.Service.VENDOR_MASTER, "sync_vendors"): _sync_vendors,
    (SyncQueueItem.Service.ORDER_INGESTION, "import_order"): _import_order,
}


class SyncQueueService(BaseService):
    """
    Outbound calls that failed (or are deferred) wait here. Failed attempts are
    retried after each delay in SYNC_RETRY_DELAYS_MINUTES; after the last one
    the item is FAILED and only a manual retry revives it.
    """

    model = SyncQueueItem

    @classmethod
    def serialize(cls, item: SyncQueueItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "uuid": str(item.uuid),
            "service": item.service,
            "operation": item.operation,
            "entity_id": item.entity_id,
            "payload": item.payload,
            "status": item.status,
            "retry_count": item.retry_count,
            "last_error": item.last_error or None,
            "next_retry_at": item.next_retry_at.isoformat() if item.next_retry_at else None,
            "synced_at": item.synced_at.isoformat() if item.synced_at else None,
            "created_at": item.created_at.isoformat(),
        }

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None,
             status: str = None, service: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if status:
            queryset = queryset.filter(status=status)

        if service:
            queryset = queryset.filter(service=service)

        if search:
            queryset = queryset.filter(
                Q(entity_id__icontains=search) | Q(operation__icontains=search) | Q(last_error__icontains=search)
            )

        items, total = paginate_queryset(queryset.order_by("-created_at", "-id"), page, limit)
        return list_response([cls.serialize(i) for i in items], total)

    @classmethod
    def enqueue(cls, service: str, operation: str, entity_id: str = "",
                payload: Dict = None, error: str = "") -> SyncQueueItem:
        if (service, operation) not in HANDLERS:
            raise ValidationError(f"No handler for {service}.{operation}", "operation")

        item = cls.model.objects.create(
            service=service,
            operation=operation,
            entity_id=str(entity_id or ""),
            payload=payload or {},
            last_error=error or "",
            next_retry_at=timezone.now(),
        )
        logger.info(f"Queued {service}.{operation} for {entity_id or '-'}")
        return item

    @classmethod
    def mark_failed(cls, item: SyncQueueItem, error: str) -> SyncQueueItem:
        delays = getattr(settings, "SYNC_RETRY_DELAYS_MINUTES", [5, 15, 30])

        item.retry_count += 1
        item.last_error = error
        if item.retry_count <= len(delays):
            item.status = SyncQueueItem.Status.PENDING
            item.next_retry_at = timezone.now() + timedelta(minutes=delays[item.retry_count - 1])
        else:
            item.status = SyncQueueItem.Status.FAILED
            item.next_retry_at = None
            logger.error(f"Giving up on {item.service}.{item.operation}({item.entity_id}): {error}")

        item.save(update_fields=["retry_count", "last_error", "status", "next_retry_at", "updated_at"])
        return item

    @classmethod
    def attempt(cls, item: SyncQueueItem) -> bool:
        handler = HANDLERS.get((item.service, item.operation))
        if handler is None:
            cls.mark_failed(item, f"No handler for {item.service}.{item.operation}")
            return False

        try:
            with transaction.atomic():
                handler(item)
        except ServiceError as e:
            logger.warning(f"{item.service}.{item.operation}({item.entity_id}) failed: {e.message}")
            cls.mark_failed(item, e.message)
            return False
        except (KeyError, TypeError) as e:
            logger.warning(f"{item.service}.{item.operation}({item.entity_id}) has a malformed payload: {e!r}")
            cls.mark_failed(item, f"Malformed payload: {e!r}")
            return False

        item.status = SyncQueueItem.Status.SYNCED
        item.synced_at = timezone.now()
        item.next_retry_at = None
        item.save(update_fields=["status", "synced_at", "next_retry_at", "updated_at"])
        return True

    @classmethod
    def process_due(cls, limit: int = None) -> Dict[str, int]:
        limit = limit or getattr(settings, "SYNC_BATCH_SIZE", 100)
        due = list(
            cls.model.objects.filter(
                status=SyncQueueItem.Status.PENDING, next_retry_at__lte=timezone.now()
            ).order_by("next_retry_at", "id")[:limit]
        )

        synced = sum(1 for item in due if cls.attempt(item))
        return {"attempted": len(due), "synced": synced, "failed": len(due) - synced}

    @classmethod
    def retry(cls, item_id: int) -> Dict[str, Any]:
        item = cls.get_or_404(item_id)
        if item.status == SyncQueueItem.Status.SYNCED:
            raise ConflictError(f"Sync item {item.id} has already been synced")

        if item.status == SyncQueueItem.Status.FAILED:
            item.retry_count = 0
            item.status = SyncQueueItem.Status.PENDING

        ok = cls.attempt(item)
        item.refresh_from_db()
        message = "Synced" if ok else f"Attempt failed: {item.last_error}"
        return success_response(cls.serialize(item), message)
