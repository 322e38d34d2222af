"""
Replenishment Services - reorder points, vendors, purchase orders

Usage:
    from replenishment.services import ROPService, PurchaseOrderService

    ROPService.calculate()
    PurchaseOrderService.create_purchase_orders([1, 2, 3], actor="buyer")
"""

from .rop_service import ROPService
from .purchase_service import VendorService, PurchaseOrderService


__all__ = [
    "ROPService",
    "VendorService",
    "PurchaseOrderService",
]
