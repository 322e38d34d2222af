"""
Test utilities and factories for creating test data
"""
import json
import random
import string
from datetime import timedelta
from decimal import Decimal

from django.test import Client
from django.utils import timezone

from inventory.models import Bin, BinStock, StockReservation
from production.models import ProductionUnit, UnitRequirement, AuditEntry, Stage
from replenishment.models import Vendor, VendorItem, UsageRecord, ROPItem


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=6):
        return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))

    @staticmethod
    def create_bin(code=None, name=None, is_active=True):
        if not code:
            code = f'BIN-{TestDataFactory.random_string()}'
        return Bin.objects.create(code=code, name=name or f'Bin {code}', is_active=is_active)

    @staticmethod
    def stock_bin(bin, sku, quantity):
        """Put `quantity` of `sku` into `bin` directly, without a movement."""
        stock, _ = BinStock.objects.get_or_create(bin=bin, sku=sku)
        stock.quantity = quantity
        stock.save(update_fields=['quantity'])
        return stock

    @staticmethod
    def create_unit(order_id=None, product_ref='SHIRT-M', stage=Stage.PLANNED, materials=None, order_date=None):
        """Create a unit directly in `stage`. `materials` is {sku: quantity}."""
        unit = ProductionUnit.objects.create(
            uid=f'UID-{TestDataFactory.random_string(10)}',
            order_id=order_id or f'SO-{TestDataFactory.random_string()}',
            product_ref=product_ref,
            order_date=order_date or timezone.localdate(),
            stage=stage,
        )
        for sku, quantity in (materials or {product_ref: 1}).items():
            UnitRequirement.objects.create(unit=unit, sku=sku, quantity=quantity)
        AuditEntry.objects.create(unit=unit, stage_to=stage, message='Unit created')
        return unit

    @staticmethod
    def reserve(unit, bin, sku, quantity, status=StockReservation.Status.ACTIVE):
        return StockReservation.objects.create(unit=unit, bin=bin, sku=sku, quantity=quantity, status=status)

    @staticmethod
    def create_vendor(external_id=None, name=None, lead_time_days=None, is_active=True):
        if not external_id:
            external_id = f'V-{TestDataFactory.random_string()}'
        return Vendor.objects.create(
            external_id=external_id,
            name=name or f'Vendor {external_id}',
            lead_time_days=lead_time_days,
            is_active=is_active,
        )

    @staticmethod
    def create_vendor_item(vendor, sku, rate='10.00', lead_time_days=None, is_primary=False):
        return VendorItem.objects.create(
            vendor=vendor,
            sku=sku,
            rate=Decimal(str(rate)),
            lead_time_days=lead_time_days,
            is_primary=is_primary,
        )

    @staticmethod
    def record_usage(sku, as_of, daily, source=UsageRecord.Source.KITTING):
        """`daily` lists quantities oldest first, ending on `as_of`."""
        start = as_of - timedelta(days=len(daily) - 1)
        return [
            UsageRecord.objects.create(sku=sku, date=start + timedelta(days=i), quantity=qty, source=source)
            for i, qty in enumerate(daily) if qty
        ]

    @staticmethod
    def create_rop_item(sku, suggested_quantity=10, vendor=None, **kwargs):
        return ROPItem.objects.create(
            sku=sku,
            suggested_quantity=suggested_quantity,
            primary_vendor=vendor,
            **kwargs
        )


class JsonClient(Client):
    """Django test client that sends and decodes JSON bodies"""

    def _send(self, method, path, data=None):
        body = json.dumps(data) if data is not None else ''
        response = getattr(super(), method)(path, data=body, content_type='application/json')
        response.payload = json.loads(response.content) if response.content else {}
        return response

    def post_json(self, path, data=None):
        return self._send('post', path, data)

    def put_json(self, path, data=None):
        return self._send('put', path, data)

    def patch_json(self, path, data=None):
        return self._send('patch', path, data)

    def delete_json(self, path, data=None):
        return self._send('delete', path, data)

    def get_json(self, path, params=None):
        response = self.get(path, params or {})
        response.payload = json.loads(response.content) if response.content else {}
        return response
