import logging

from inventory.services.base_service import ExternalDependencyError, ValidationError, success_response
from inventory.views import BaseApiView, handle_service_error
from integrations.models import SyncQueueItem
from integrations.services import SyncQueueService, OrderIngestionClient, VendorMasterClient

logger = logging.getLogger(__name__)


class SyncQueueListView(BaseApiView):
    """GET /api/integrations/sync-queue/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            result = SyncQueueService.list(
                page=page,
                limit=limit,
                search=search,
                status=request.GET.get("status"),
                service=request.GET.get("service"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class SyncQueueRetryView(BaseApiView):
    """POST /api/integrations/sync-queue/<id>/retry/"""

    def post(self, request, item_id):
        try:
            return self.success(SyncQueueService.retry(item_id))
        except Exception as e:
            return handle_service_error(e)


class SyncQueueProcessView(BaseApiView):
    """POST /api/integrations/sync-queue/process/"""

    def post(self, request):
        try:
            result = SyncQueueService.process_due()
            return self.success(success_response(result, f"{result['synced']} of {result['attempted']} synced"))
        except Exception as e:
            return handle_service_error(e)


class OrderImportView(BaseApiView):
    """
    POST /api/integrations/orders/import/
    Body: {"order_id": "SO-1001"}
    When the order service is unreachable the import is queued and 202 returned.
    """

    def post(self, request):
        try:
            data = self.get_json_body(request)
            order_id = str(data.get("order_id") or "").strip()
            if not order_id:
                raise ValidationError("order_id is required", "order_id")
            actor = self.get_actor(request, data)

            try:
                result = OrderIngestionClient.import_order(order_id, actor=actor)
            except ExternalDependencyError as e:
                item = SyncQueueService.enqueue(
                    SyncQueueItem.Service.ORDER_INGESTION, "import_order", order_id,
                    {"actor": actor}, error=e.message,
                )
                return self.success(
                    success_response(SyncQueueService.serialize(item), "Order service unavailable, import queued"),
                    202,
                )

            status = 201 if result["created"] else 200
            return self.success(success_response(result, f"{len(result['created'])} unit(s) created"), status)
        except Exception as e:
            return handle_service_error(e)


class VendorSyncView(BaseApiView):
    """POST /api/integrations/vendors/sync/"""

    def post(self, request):
        try:
            try:
                result = VendorMasterClient.sync_vendors()
            except ExternalDependencyError as e:
                item = SyncQueueService.enqueue(
                    SyncQueueItem.Service.VENDOR_MASTER, "sync_vendors", error=e.message
                )
                return self.success(
                    success_response(SyncQueueService.serialize(item), "Vendor master unavailable, sync queued"),
                    202,
                )
            return self.success(success_response(result, f"{result['synced']} vendor(s) synced"))
        except Exception as e:
            return handle_service_error(e)
