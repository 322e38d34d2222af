import logging
from typing import Dict, Any

from django.db import transaction

from inventory.services.base_service import NotFoundError
from integrations.services.base_client import ExternalServiceClient
from replenishment.models import PurchaseOrder
from replenishment.services.purchase_service import VendorService, PurchaseOrderService

logger = logging.getLogger(__name__)


class VendorMasterClient(ExternalServiceClient):
    service_name = "Vendor Master"
    url_setting = "VENDOR_MASTER_URL"
    token_setting = "VENDOR_MASTER_TOKEN"

    @classmethod
    def sync_vendors(cls) -> Dict[str, Any]:
        """
        Pull every vendor with its SKU rates and lead times.
        Expected record: {id, name, lead_time_days, is_active, items: [{sku, rate, lead_time_days, is_primary}]}
        """
        payload = cls.request("GET", "vendors")
        records = payload.get("vendors", []) if isinstance(payload, dict) else payload

        synced = 0
        with transaction.atomic():
            for record in records:
                items = record.get("items")
                if items is None and record.get("sku"):
                    items = [{
                        "sku": record["sku"],
                        "rate": record.get("rate"),
                        "lead_time_days": record.get("lead_time_days"),
                        "is_primary": record.get("is_primary", False),
                    }]
                VendorService.upsert(
                    external_id=record.get("id"),
                    name=record.get("name"),
                    lead_time_days=record.get("lead_time_days"),
                    is_active=record.get("is_active", True),
                    items=items,
                )
                synced += 1

        logger.info(f"Vendor master sync: {synced} vendor(s)")
        return {"synced": synced}

    @classmethod
    def push_purchase_order(cls, po_id: int) -> Dict[str, Any]:
        po = PurchaseOrder.objects.select_related("vendor").filter(id=po_id).first()
        if not po:
            raise NotFoundError("Purchase order", po_id)

        body = PurchaseOrderService.serialize(po)
        body["vendor_external_id"] = po.vendor.external_id
        response = cls.request("POST", "purchase-orders", json=body)

        if po.status == PurchaseOrder.Status.DRAFT:
            PurchaseOrder.objects.filter(id=po.id, status=PurchaseOrder.Status.DRAFT).update(
                status=PurchaseOrder.Status.SENT
            )

        logger.info(f"Purchase order {po.order_number} pushed to vendor master")
        return response if isinstance(response, dict) else {"response": response}
