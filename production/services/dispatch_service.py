import logging
from typing import Dict, Any, List

from django.db import transaction
from django.db.models import Count, Q

from inventory.services.base_service import (
    BaseService, success_response, list_response, paginate_queryset,
    ServiceError, ValidationError, ConflictError, generate_number
)
from production.models import DispatchManifest, ProductionUnit, Stage
from production.services.pipeline_service import PipelineService
from production.services.unit_service import UnitService

logger = logging.getLogger(__name__)

# Statuses a manifest may move to from each status.
MANIFEST_TRANSITIONS = {
    DispatchManifest.Status.PENDING: (DispatchManifest.Status.PICKED_UP, DispatchManifest.Status.CANCELLED),
    DispatchManifest.Status.PICKED_UP: (DispatchManifest.Status.DELIVERED, DispatchManifest.Status.CANCELLED),
    DispatchManifest.Status.DELIVERED: (),
    DispatchManifest.Status.CANCELLED: (),
}


class DispatchService(BaseService):
    model = DispatchManifest

    @classmethod
    def serialize(cls, manifest: DispatchManifest, include_units: bool = False) -> Dict[str, Any]:
        data = {
            "id": manifest.id,
            "uuid": str(manifest.uuid),
            "manifest_number": manifest.manifest_number,
            "courier_partner": manifest.courier_partner,
            "pickup_person_name": manifest.pickup_person_name,
            "pickup_person_number": manifest.pickup_person_number,
            "tracking_number": manifest.tracking_number,
            "status": manifest.status,
            "status_display": manifest.get_status_display(),
            "created_by": manifest.created_by,
            "created_at": manifest.created_at.isoformat(),
        }
        if include_units:
            data["units"] = [UnitService.serialize(u) for u in manifest.units.select_related("batch")]
        return data

    @classmethod
    def list(cls, page: int = 1, limit: int = 20, search: str = None, status: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.annotate(unit_count=Count("units"))

        if status:
            queryset = queryset.filter(status=status)

        if search:
            queryset = queryset.filter(
                Q(manifest_number__icontains=search) |
                Q(courier_partner__icontains=search) |
                Q(tracking_number__icontains=search)
            )

        manifests, total = paginate_queryset(queryset, page, limit)
        items = []
        for manifest in manifests:
            data = cls.serialize(manifest)
            data["unit_count"] = manifest.unit_count
            items.append(data)
        return list_response(items, total)

    @classmethod
    def get(cls, manifest_id: int) -> Dict[str, Any]:
        return success_response(cls.serialize(cls.get_or_404(manifest_id), include_units=True))

    @classmethod
    @transaction.atomic
    def create_manifest(cls,
                        unit_ids: List[int],
                        courier_partner: str,
                        pickup_person_name: str = "",
                        pickup_person_number: str = "",
                        tracking_number: str = "",
                        actor: str = "") -> Dict[str, Any]:
        """
        Hand PRINTED units to a courier. Each unit is dispatched in its own
        savepoint; units that cannot be dispatched are reported and left out.
        """
        if not (courier_partner or "").strip():
            raise ValidationError("Courier partner is required", "courier_partner")
        if not unit_ids:
            raise ValidationError("At least one unit is required", "unit_ids")

        manifest = cls.model.objects.create(
            manifest_number=generate_number("DM", cls.model, "manifest_number"),
            courier_partner=courier_partner.strip(),
            pickup_person_name=pickup_person_name or "",
            pickup_person_number=pickup_person_number or "",
            tracking_number=tracking_number or "",
            created_by=actor or "",
        )

        results = []
        for unit_id in unit_ids:
            try:
                with transaction.atomic():
                    PipelineService.advance(
                        unit_id, Stage.PRINTED, Stage.DISPATCHED,
                        actor=actor, message=f"Dispatched on {manifest.manifest_number}",
                    )
                    ProductionUnit.objects.filter(id=unit_id).update(manifest=manifest)
                results.append({"unit_id": unit_id, "success": True})
            except ServiceError as e:
                results.append({"unit_id": unit_id, "success": False, "error": e.message, "error_code": e.code})

        dispatched = sum(1 for r in results if r["success"])
        if not dispatched:
            raise ConflictError("None of the units could be dispatched", details={"results": results})

        logger.info(f"Manifest {manifest.manifest_number}: {dispatched} unit(s) with {manifest.courier_partner}")
        data = cls.serialize(manifest, include_units=True)
        data["results"] = results
        return success_response(data, f"Manifest {manifest.manifest_number} created")

    @classmethod
    @transaction.atomic
    def update_status(cls, manifest_id: int, status: str) -> Dict[str, Any]:
        manifest = cls.get_or_404(manifest_id)

        valid_statuses = [s[0] for s in DispatchManifest.Status.choices]
        if status not in valid_statuses:
            raise ValidationError(f"Invalid status. Valid: {valid_statuses}", "status")

        if status == manifest.status:
            return success_response(cls.serialize(manifest), "Status unchanged")

        if status not in MANIFEST_TRANSITIONS[manifest.status]:
            raise ConflictError(f"Manifest {manifest.manifest_number} cannot go from {manifest.status} to {status}")

        manifest.status = status
        manifest.save(update_fields=["status", "updated_at"])
        return success_response(cls.serialize(manifest), f"Manifest {manifest.manifest_number} is now {status}")
