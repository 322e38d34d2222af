"""
Inventory Services - bin ledger, allocation and cycle counts

Usage:
    from inventory.services import AllocationService, BinLedgerService

    # Reserve stock for a unit
    AllocationService.auto_pick([{"unit_id": 1, "items": [{"sku": "MUG-11", "quantity": 2}]}])

    # Put stock back on the shelf
    BinLedgerService.increment(bin_id=1, sku="MUG-11", quantity=2, movement_type="PUTBACK")
"""

# Base utilities
from inventory.services.base_service import (
    ServiceError,
    ValidationError,
    NotFoundError,
    BusinessRuleError,
    ConflictError,
    InvalidTransitionError,
    BatchIncompleteError,
    InsufficientStockError,
    StaleCountError,
    CalculationInProgressError,
    ExternalDependencyError,
    StockIntegrityError,
    success_response,
    list_response,
    error_response,
    paginate_queryset,
    to_decimal,
    to_quantity,
    round_decimal,
    generate_number,
    run_per_item,
    BaseService,
)

# Bins & ledger
from .bin_service import BinService, BinLedgerService

# Allocation & counts
from .allocation_service import AllocationService
from .count_service import CycleCountService


__all__ = [
    # Base
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "BusinessRuleError",
    "ConflictError",
    "InvalidTransitionError",
    "BatchIncompleteError",
    "InsufficientStockError",
    "StaleCountError",
    "CalculationInProgressError",
    "ExternalDependencyError",
    "StockIntegrityError",
    "success_response",
    "list_response",
    "error_response",
    "paginate_queryset",
    "to_decimal",
    "to_quantity",
    "round_decimal",
    "generate_number",
    "run_per_item",
    "BaseService",

    # Bins & ledger
    "BinService",
    "BinLedgerService",

    # Allocation & counts
    "AllocationService",
    "CycleCountService",
]
