"""
Production Services - unit & batch ledger, stage pipeline, dispatch

Usage:
    from production.services import UnitService, PipelineService

    unit = UnitService.create_unit(order_id="SO-1001", product_ref="MUG-11")["data"]
    PipelineService.advance(unit["id"], "PLANNED", "KITTING", actor="kitting-desk")
"""

from .unit_service import UnitService
from .batch_service import BatchService
from .pipeline_service import PipelineService
from .dispatch_service import DispatchService


__all__ = [
    "UnitService",
    "BatchService",
    "PipelineService",
    "DispatchService",
]
