import logging
from typing import Dict, Any, List

from django.db import transaction

from inventory.services.base_service import ValidationError, to_quantity
from integrations.services.base_client import ExternalServiceClient
from production.models import ProductionUnit
from production.services.unit_service import UnitService

logger = logging.getLogger(__name__)


class OrderIngestionClient(ExternalServiceClient):
    service_name = "Order Ingestion"
    url_setting = "ORDER_SERVICE_URL"
    token_setting = "ORDER_SERVICE_TOKEN"

    @classmethod
    def fetch_order(cls, order_id: str) -> Dict[str, Any]:
        return cls.request("GET", f"orders/{order_id}")

    @classmethod
    def import_order(cls, order_id: str, actor: str = "") -> Dict[str, Any]:
        """
        Create one production unit per ordered piece.
        Order shape: {order_id, order_date, items: [{product_ref, quantity, materials?: [{sku, quantity}]}]}
        An order that already has units is not imported again.
        """
        order_id = str(order_id or "").strip()
        if not order_id:
            raise ValidationError("order_id is required", "order_id")

        existing = list(ProductionUnit.objects.filter(order_id=order_id).values_list("uid", flat=True))
        if existing:
            return {"order_id": order_id, "created": [], "existing": existing}

        order = cls.fetch_order(order_id)
        lines = order.get("items") or []
        if not lines:
            raise ValidationError(f"Order {order_id} has no items", "items")

        created: List[str] = []
        with transaction.atomic():
            for line in lines:
                pieces = to_quantity(line.get("quantity", 1))
                for _ in range(pieces):
                    result = UnitService.create_unit(
                        order_id=order_id,
                        product_ref=line.get("product_ref") or line.get("sku"),
                        materials=line.get("materials"),
                        order_date=order.get("order_date"),
                        actor=actor or "order-ingestion",
                    )
                    created.append(result["data"]["uid"])

        logger.info(f"Order {order_id} imported as {len(created)} unit(s)")
        return {"order_id": order_id, "created": created, "existing": []}
