from inventory.services import ValidationError
from inventory.views import BaseApiView, handle_service_error
from production.services import UnitService, BatchService, PipelineService, DispatchService


# ==================== UNITS ====================

class UnitListView(BaseApiView):
    """GET/POST /api/production/units/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            batch_id = request.GET.get("batch_id")
            result = UnitService.list(
                page=page, limit=limit, search=search,
                stage=request.GET.get("stage"),
                batch_id=int(batch_id) if batch_id else None,
                order_id=request.GET.get("order_id"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = UnitService.create_unit(
                order_id=data.get("order_id"),
                product_ref=data.get("product_ref"),
                materials=data.get("materials"),
                order_date=data.get("order_date"),
                actor=self.get_actor(request, data),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class UnitDetailView(BaseApiView):
    """GET /api/production/units/<id>/"""

    def get(self, request, unit_id):
        try:
            return self.success(UnitService.get(unit_id))
        except Exception as e:
            return handle_service_error(e)


class UnitAuditView(BaseApiView):
    """GET /api/production/units/<id>/audit/"""

    def get(self, request, unit_id):
        try:
            return self.success(UnitService.audit_trail(unit_id))
        except Exception as e:
            return handle_service_error(e)


class UnitAdvanceView(BaseApiView):
    """POST /api/production/units/<id>/advance/"""

    def post(self, request, unit_id):
        try:
            data = self.get_json_body(request)
            result = PipelineService.advance(
                unit_id,
                from_stage=data.get("from_stage"),
                to_stage=data.get("to_stage"),
                actor=self.get_actor(request, data),
                message=data.get("message", ""),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class UnitQCView(BaseApiView):
    """POST /api/production/units/<id>/qc/"""

    def post(self, request, unit_id):
        try:
            data = self.get_json_body(request)
            if "passed" not in data:
                raise ValidationError("passed is required", "passed")
            result = PipelineService.record_qc(
                unit_id,
                passed=bool(data["passed"]),
                reason=data.get("reason", ""),
                actor=self.get_actor(request, data),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class UnitBatchView(BaseApiView):
    """POST/DELETE /api/production/units/<id>/batch/"""

    def post(self, request, unit_id):
        try:
            data = self.get_json_body(request)
            result = BatchService.assign_to_batch(
                unit_id, data.get("batch_id"), actor=self.get_actor(request, data)
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def delete(self, request, unit_id):
        try:
            data = self.get_json_body(request)
            result = BatchService.remove_from_batch(
                unit_id, actor=self.get_actor(request, data), reason=data.get("reason", "")
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== BATCHES ====================

class BatchListView(BaseApiView):
    """GET/POST /api/production/batches/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            result = BatchService.list(
                page=page, limit=limit, search=search,
                stage_type=request.GET.get("stage_type"),
                status=request.GET.get("status"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = BatchService.create_batch(
                stage_type=data.get("stage_type"),
                unit_ids=data.get("unit_ids"),
                from_date=data.get("from_date"),
                to_date=data.get("to_date"),
                actor=self.get_actor(request, data),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class BatchDetailView(BaseApiView):
    """GET /api/production/batches/<id>/"""

    def get(self, request, batch_id):
        try:
            return self.success(BatchService.get(batch_id))
        except Exception as e:
            return handle_service_error(e)


class BatchAccountingView(BaseApiView):
    """GET /api/production/batches/<id>/accounting/"""

    def get(self, request, batch_id):
        try:
            return self.success(BatchService.batch_accounting(batch_id))
        except Exception as e:
            return handle_service_error(e)


class BatchAdvanceAllView(BaseApiView):
    """POST /api/production/batches/<id>/advance-all/"""

    def post(self, request, batch_id):
        try:
            data = self.get_json_body(request)
            results = PipelineService.advance_all(
                batch_id,
                to_stage=data.get("to_stage"),
                actor=self.get_actor(request, data),
                message=data.get("message", ""),
            )
            advanced = sum(1 for r in results if r["success"])
            return self.success({
                "success": True,
                "message": f"Advanced {advanced} of {len(results)} unit(s)",
                "data": results,
            })
        except Exception as e:
            return handle_service_error(e)


class BatchAutoPickView(BaseApiView):
    """POST /api/production/batches/<id>/auto-pick/"""

    def post(self, request, batch_id):
        try:
            data = self.get_json_body(request)
            results = BatchService.pick_batch(batch_id, actor=self.get_actor(request, data))
            return self.success({"success": True, "data": results})
        except Exception as e:
            return handle_service_error(e)


class BatchCompleteView(BaseApiView):
    """POST /api/production/batches/<id>/complete/"""

    def post(self, request, batch_id):
        try:
            data = self.get_json_body(request)
            result = PipelineService.complete_batch(batch_id, actor=self.get_actor(request, data))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== DISPATCH ====================

class ManifestListView(BaseApiView):
    """GET/POST /api/production/manifests/"""

    def get(self, request):
        try:
            page, limit, search = self.get_list_params(request)
            result = DispatchService.list(
                page=page, limit=limit, search=search, status=request.GET.get("status")
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = DispatchService.create_manifest(
                unit_ids=data.get("unit_ids", []),
                courier_partner=data.get("courier_partner"),
                pickup_person_name=data.get("pickup_person_name", ""),
                pickup_person_number=data.get("pickup_person_number", ""),
                tracking_number=data.get("tracking_number", ""),
                actor=self.get_actor(request, data),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class ManifestDetailView(BaseApiView):
    """GET/PATCH /api/production/manifests/<id>/"""

    def get(self, request, manifest_id):
        try:
            return self.success(DispatchService.get(manifest_id))
        except Exception as e:
            return handle_service_error(e)

    def patch(self, request, manifest_id):
        try:
            data = self.get_json_body(request)
            return self.success(DispatchService.update_status(manifest_id, data.get("status")))
        except Exception as e:
            return handle_service_error(e)
