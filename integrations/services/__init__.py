"""
Integration Services - external collaborators and the sync retry queue

Usage:
    from integrations.services import OrderIngestionClient, SyncQueueService

    OrderIngestionClient.import_order("SO-1001")
    SyncQueueService.process_due()
"""

from .base_client import ExternalServiceClient
from .sync_queue_service import SyncQueueService
from .vendor_master_client import VendorMasterClient
from .order_ingestion_client import OrderIngestionClient


__all__ = [
    "ExternalServiceClient",
    "SyncQueueService",
    "VendorMasterClient",
    "OrderIngestionClient",
]
