import json
import logging

from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from inventory.services import (
    ServiceError, ValidationError, NotFoundError, ConflictError, StaleCountError,
    CalculationInProgressError, BusinessRuleError, InsufficientStockError,
    BatchIncompleteError, StockIntegrityError, error_response,
    BinService, BinLedgerService, AllocationService, CycleCountService,
)

logger = logging.getLogger(__name__)


def handle_service_error(e: Exception):
    if isinstance(e, ValidationError):
        details = dict(e.details)
        if e.field:
            details["field"] = e.field
        return JsonResponse(error_response(e.message, e.code, details), status=400)
    elif isinstance(e, NotFoundError):
        return JsonResponse(error_response(e.message, e.code, e.details), status=404)
    elif isinstance(e, (ConflictError, StaleCountError, CalculationInProgressError)):
        return JsonResponse(error_response(e.message, e.code, e.details), status=409)
    elif isinstance(e, (InsufficientStockError, BatchIncompleteError, BusinessRuleError)):
        return JsonResponse(error_response(e.message, e.code, e.details), status=422)
    elif isinstance(e, StockIntegrityError):
        logger.critical(f"Stock integrity failure: {e.message}")
        return JsonResponse(error_response(e.message, e.code, e.details), status=500)
    elif isinstance(e, ServiceError):
        return JsonResponse(error_response(e.message, e.code, e.details), status=500)
    else:
        logger.exception("Unhandled error in API view")
        return JsonResponse(error_response(str(e), "SERVER_ERROR"), status=500)


class BaseApiView(View):
    @method_decorator(csrf_exempt)
    def dispatch(self, request, *args, **kwargs):
        return super().dispatch(request, *args, **kwargs)

    def get_json_body(self, request):
        if not request.body:
            return {}
        try:
            return json.loads(request.body)
        except json.JSONDecodeError:
            raise ValidationError("Request body must be valid JSON")

    def get_actor(self, request, data: dict = None) -> str:
        if data and data.get("actor"):
            return str(data["actor"])
        if request.user.is_authenticated:
            return request.user.get_username()
        return request.headers.get("X-Actor", "")

    def get_list_params(self, request):
        try:
            page = int(request.GET.get("page", 1))
            limit = int(request.GET.get("limit", 20))
        except ValueError:
            raise ValidationError("page and limit must be integers")
        return page, limit, request.GET.get("search") or None

    def success(self, data: dict, status: int = 200):
        return JsonResponse(data, status=status)


# ==================== BINS ====================

class BinListView(BaseApiView):
    """GET/POST /api/inventory/bins/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            result = BinService.list(
                page=page, limit=limit, search=search,
                category=request.GET.get("category"),
                active_only=request.GET.get("active_only", "true").lower() == "true",
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = BinService.create(
                code=data.get("code"),
                name=data.get("name"),
                category=data.get("category", "STORAGE"),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class BinDetailView(BaseApiView):
    """GET/PUT/DELETE /api/inventory/bins/<id>/"""

    def get(self, request, bin_id):
        try:
            return self.success(BinService.get(bin_id))
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, bin_id):
        try:
            data = self.get_json_body(request)
            return self.success(BinService.update(bin_id, **data))
        except Exception as e:
            return handle_service_error(e)

    def delete(self, request, bin_id):
        try:
            return self.success(BinService.deactivate(bin_id))
        except Exception as e:
            return handle_service_error(e)


# ==================== STOCK ====================

class StockListView(BaseApiView):
    """GET /api/inventory/stock/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            bin_id = request.GET.get("bin_id")
            result = BinLedgerService.list_stock(
                page=page, limit=limit, search=search,
                bin_id=int(bin_id) if bin_id else None,
                in_stock_only=request.GET.get("in_stock_only", "true").lower() == "true",
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class StockReceiveView(BaseApiView):
    """POST /api/inventory/stock/receive/"""

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = BinLedgerService.receive(
                bin_id=data.get("bin_id"),
                sku=data.get("sku"),
                quantity=data.get("quantity"),
                actor=self.get_actor(request, data),
                reference_id=data.get("reference_id", ""),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class StockAdjustView(BaseApiView):
    """POST /api/inventory/adjustments/"""

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = BinLedgerService.adjust(
                bin_id=data.get("bin_id"),
                sku=data.get("sku"),
                new_quantity=data.get("new_quantity"),
                reason=data.get("reason", ""),
                actor=self.get_actor(request, data),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class StockTransferView(BaseApiView):
    """POST /api/inventory/transfers/"""

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = BinLedgerService.transfer(
                from_bin_id=data.get("from_bin_id"),
                to_bin_id=data.get("to_bin_id"),
                sku=data.get("sku"),
                quantity=data.get("quantity"),
                actor=self.get_actor(request, data),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class MovementListView(BaseApiView):
    """GET /api/inventory/movements/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            bin_id = request.GET.get("bin_id")
            result = BinLedgerService.list_movements(
                page=page, limit=limit, search=search,
                movement_type=request.GET.get("type"),
                bin_id=int(bin_id) if bin_id else None,
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== ALLOCATION ====================

class AvailabilityView(BaseApiView):
    """POST /api/inventory/availability/"""

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = AllocationService.check_availability(data.get("items", []))
            return self.success({"success": True, "data": result})
        except Exception as e:
            return handle_service_error(e)


class AutoPickView(BaseApiView):
    """POST /api/inventory/auto-pick/"""

    def post(self, request):
        try:
            data = self.get_json_body(request)
            results = AllocationService.auto_pick(
                data.get("units", []), actor=self.get_actor(request, data)
            )
            picked = sum(1 for r in results if r["success"])
            return self.success({
                "success": True,
                "message": f"Allocated stock for {picked} of {len(results)} unit(s)",
                "data": results,
            })
        except Exception as e:
            return handle_service_error(e)


class PutbackView(BaseApiView):
    """POST /api/inventory/putback/"""

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = AllocationService.putback(
                data.get("reservations", []),
                actor=self.get_actor(request, data),
                reason=data.get("reason", ""),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class UnitReservationsView(BaseApiView):
    """GET /api/inventory/reservations/unit/<unit_id>/"""

    def get(self, request, unit_id):
        try:
            reservations = AllocationService.list_for_unit(unit_id)
            return self.success({"success": True, "data": reservations, "total": len(reservations)})
        except Exception as e:
            return handle_service_error(e)


# ==================== CYCLE COUNTS ====================

class CycleCountListView(BaseApiView):
    """GET/POST /api/inventory/cycle-counts/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            result = CycleCountService.list(
                page=page, limit=limit, search=search, status=request.GET.get("status")
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = CycleCountService.run_cycle_count(
                data.get("sample_size"), actor=self.get_actor(request, data)
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class CycleCountDetailView(BaseApiView):
    """GET /api/inventory/cycle-counts/<id>/"""

    def get(self, request, session_id):
        try:
            return self.success(CycleCountService.get(session_id))
        except Exception as e:
            return handle_service_error(e)


class CycleCountRecordView(BaseApiView):
    """POST /api/inventory/cycle-counts/<id>/record/"""

    def post(self, request, session_id):
        try:
            data = self.get_json_body(request)
            counts = data.get("counts")
            if counts is None:
                counts = [data]

            recorded = [
                CycleCountService.record_count(
                    session_id, c.get("entry_id"), c.get("counted_quantity")
                )["data"]
                for c in counts
            ]
            return self.success({
                "success": True,
                "message": f"Recorded {len(recorded)} count(s)",
                "data": recorded,
            })
        except Exception as e:
            return handle_service_error(e)


class CycleCountActionView(BaseApiView):
    """POST /api/inventory/cycle-counts/<id>/<action>/"""

    def post(self, request, session_id, action):
        try:
            data = self.get_json_body(request)
            if action == "apply":
                result = CycleCountService.apply_cycle_count(
                    session_id, actor=self.get_actor(request, data)
                )
            elif action == "discard":
                result = CycleCountService.discard_cycle_count(session_id)
            else:
                raise ValidationError(f"Unknown action: {action}", "action")
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)
