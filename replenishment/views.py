from inventory.views import BaseApiView, handle_service_error
from replenishment.services import ROPService, VendorService, PurchaseOrderService


# ==================== ROP ====================

class ROPListView(BaseApiView):
    """GET /api/replenishment/rop/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            result = ROPService.list(page=page, limit=limit, search=search, status=request.GET.get("status"))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class ROPCalculateView(BaseApiView):
    """POST /api/replenishment/rop/calculate/"""

    def post(self, request):
        try:
            data = self.get_json_body(request)
            kwargs = {
                "as_of": data.get("as_of"),
                "discard_overrides": bool(data.get("discard_overrides", False)),
                "actor": self.get_actor(request, data),
            }
            if data.get("background", True):
                return self.success(ROPService.trigger(**kwargs), 202)
            return self.success(ROPService.calculate(**kwargs))
        except Exception as e:
            return handle_service_error(e)


class ROPJobView(BaseApiView):
    """GET /api/replenishment/rop/jobs/<job_id>/"""

    def get(self, request, job_id):
        try:
            return self.success(ROPService.get_job(job_id))
        except Exception as e:
            return handle_service_error(e)


class ROPToOrderView(BaseApiView):
    """GET /api/replenishment/rop/to-order/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            return self.success(ROPService.list_to_order(page=page, limit=limit, search=search))
        except Exception as e:
            return handle_service_error(e)


class ROPPendingView(BaseApiView):
    """GET /api/replenishment/rop/pending/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            return self.success(ROPService.list_pending(page=page, limit=limit, search=search))
        except Exception as e:
            return handle_service_error(e)


class ROPDetailView(BaseApiView):
    """GET /api/replenishment/rop/<id>/"""

    def get(self, request, item_id):
        try:
            return self.success(ROPService.get(item_id))
        except Exception as e:
            return handle_service_error(e)


class ROPQuantityView(BaseApiView):
    """PUT /api/replenishment/rop/<id>/quantity/"""

    def put(self, request, item_id):
        try:
            data = self.get_json_body(request)
            return self.success(ROPService.update_quantity(item_id, data.get("quantity")))
        except Exception as e:
            return handle_service_error(e)


class ROPVendorSplitView(BaseApiView):
    """PUT /api/replenishment/rop/<id>/vendor-split/"""

    def put(self, request, item_id):
        try:
            data = self.get_json_body(request)
            return self.success(ROPService.update_vendor_split(item_id, data.get("vendor_splits")))
        except Exception as e:
            return handle_service_error(e)


class ROPResetView(BaseApiView):
    """POST /api/replenishment/rop/<id>/reset/"""

    def post(self, request, item_id):
        try:
            return self.success(ROPService.reset_overrides(item_id))
        except Exception as e:
            return handle_service_error(e)


class ROPCreatePOsView(BaseApiView):
    """POST /api/replenishment/rop/create-pos/"""

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = PurchaseOrderService.create_purchase_orders(
                data.get("rop_item_ids"), actor=self.get_actor(request, data)
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


# ==================== PURCHASE ORDERS ====================

class PurchaseOrderListView(BaseApiView):
    """GET /api/replenishment/purchase-orders/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            vendor_id = request.GET.get("vendor_id")
            result = PurchaseOrderService.list(
                page=page, limit=limit, search=search,
                status=request.GET.get("status"),
                vendor_id=int(vendor_id) if vendor_id else None,
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class PurchaseOrderDetailView(BaseApiView):
    """GET/PATCH /api/replenishment/purchase-orders/<id>/"""

    def get(self, request, po_id):
        try:
            return self.success(PurchaseOrderService.get(po_id))
        except Exception as e:
            return handle_service_error(e)

    def patch(self, request, po_id):
        try:
            data = self.get_json_body(request)
            return self.success(PurchaseOrderService.update_status(po_id, data.get("status")))
        except Exception as e:
            return handle_service_error(e)


class PurchaseOrderReceiveView(BaseApiView):
    """POST /api/replenishment/purchase-orders/<id>/receive/"""

    def post(self, request, po_id):
        try:
            data = self.get_json_body(request)
            result = PurchaseOrderService.receive(
                po_id,
                lines=data.get("lines", []),
                bin_id=data.get("bin_id"),
                actor=self.get_actor(request, data),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== VENDORS ====================

class VendorListView(BaseApiView):
    """GET /api/replenishment/vendors/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            result = VendorService.list(
                page=page, limit=limit, search=search,
                active_only=request.GET.get("active_only", "true").lower() == "true",
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class VendorDetailView(BaseApiView):
    """GET /api/replenishment/vendors/<id>/"""

    def get(self, request, vendor_id):
        try:
            return self.success(VendorService.get(vendor_id))
        except Exception as e:
            return handle_service_error(e)
