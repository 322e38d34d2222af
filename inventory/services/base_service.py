from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from django.db.models import Model
from django.utils import timezone


class ServiceError(Exception):
    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class NotFoundError(ServiceError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class BusinessRuleError(ServiceError):
    def __init__(self, message: str, rule: str = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", {"rule": rule})


class ConflictError(ServiceError):
    def __init__(self, message: str, code: str = "CONFLICT", details: Dict = None):
        super().__init__(message, code, details)


class InvalidTransitionError(ConflictError):
    def __init__(self, from_stage: str, to_stage: str):
        super().__init__(
            f"Illegal stage transition: {from_stage} -> {to_stage}",
            "INVALID_TRANSITION",
            {"from_stage": from_stage, "to_stage": to_stage}
        )


class BatchIncompleteError(ServiceError):
    def __init__(self, batch_number: str, remaining: int):
        super().__init__(
            f"Batch {batch_number} still has {remaining} unit(s) at its stage",
            "BATCH_INCOMPLETE",
            {"batch": batch_number, "remaining": remaining}
        )


class InsufficientStockError(ServiceError):
    def __init__(self, sku: str, required: int, available: int):
        super().__init__(
            f"Insufficient stock for {sku}: required {required}, available {available}",
            "INSUFFICIENT_STOCK",
            {"sku": sku, "required": required, "available": available}
        )


class StaleCountError(ServiceError):
    def __init__(self, session_number: str, stale_entries: List[Dict]):
        super().__init__(
            f"Cycle count {session_number} is stale: {len(stale_entries)} bin(s) changed since it was opened",
            "STALE_COUNT",
            {"session": session_number, "stale_entries": stale_entries}
        )


class CalculationInProgressError(ServiceError):
    def __init__(self, job_id: Optional[str]):
        super().__init__(
            "A replenishment calculation is already running",
            "CALCULATION_IN_PROGRESS",
            {"job_id": job_id}
        )
        self.job_id = job_id


class ExternalDependencyError(ServiceError):
    def __init__(self, service: str, message: str):
        super().__init__(
            f"{service} call failed: {message}",
            "EXTERNAL_DEPENDENCY",
            {"service": service}
        )
        self.service = service


class StockIntegrityError(ServiceError):
    """Stored bin quantity violates the non-negative invariant. Never retried."""

    def __init__(self, bin_code: str, sku: str, quantity: int):
        super().__init__(
            f"Negative quantity {quantity} recorded for {sku} in bin {bin_code}",
            "STOCK_INTEGRITY",
            {"bin": bin_code, "sku": sku, "quantity": quantity}
        )


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        response["data"] = data
    return response


def list_response(items: List, total: int) -> Dict:
    return {"success": True, "data": items, "total": total}


def error_response(message: str, code: str = "ERROR", details: Dict = None) -> Dict:
    return {
        "success": False,
        "message": message,
        "error_code": code,
        "details": details or {}
    }


def paginate_queryset(queryset, page: int = 1, limit: int = 20) -> Tuple[List, int]:
    page = max(1, page)
    limit = min(max(1, limit), 100)

    total = queryset.count()
    offset = (page - 1) * limit
    return list(queryset[offset:offset + limit]), total


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None:
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def to_quantity(value: Any, field: str = "quantity", allow_zero: bool = False) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number", field)
    if str(value).strip() not in (str(quantity), f"{quantity}.0"):
        raise ValidationError(f"{field} must be a whole number", field)
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise ValidationError(f"{field} must be positive", field)
    return quantity


def round_decimal(value: Decimal, places: int = 4) -> Decimal:
    if value is None:
        return Decimal("0")
    quantize_str = "0." + "0" * places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def generate_number(prefix: str, model_class: Model, field: str) -> str:
    today = timezone.now()
    date_part = today.strftime("%Y%m%d")
    filter_kwargs = {f"{field}__startswith": f"{prefix}-{date_part}"}
    last = model_class.objects.filter(**filter_kwargs).order_by(f"-{field}").first()

    if last:
        last_num = getattr(last, field)
        try:
            seq = int(last_num.split("-")[-1]) + 1
        except ValueError:
            seq = 1
    else:
        seq = 1

    return f"{prefix}-{date_part}-{seq:04d}"


class BaseService:
    model = None

    @classmethod
    def get_by_id(cls, id: int) -> Optional[Model]:
        try:
            return cls.model.objects.get(id=id)
        except (cls.model.DoesNotExist, ValueError):
            return None

    @classmethod
    def get_or_404(cls, id: int) -> Model:
        obj = cls.get_by_id(id)
        if not obj:
            raise NotFoundError(cls.model.__name__, id)
        return obj

    @classmethod
    def exists(cls, id: int) -> bool:
        return cls.model.objects.filter(id=id).exists()


def run_per_item(items: List[Any], handler) -> List[Any]:
    """
    Apply `handler` to every item, on a thread pool when
    FULFILLMENT_BULK_MAX_WORKERS > 1. Result order follows `items`.
    Callers must not hold an open transaction: worker threads use their
    own database connections.
    """
    from concurrent.futures import ThreadPoolExecutor
    from django.conf import settings
    from django.db import connections

    workers = getattr(settings, "FULFILLMENT_BULK_MAX_WORKERS", 1)
    if workers <= 1 or len(items) <= 1:
        return [handler(item) for item in items]

    def _run(item):
        try:
            return handler(item)
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=min(workers, len(items))) as executor:
        return list(executor.map(_run, items))
