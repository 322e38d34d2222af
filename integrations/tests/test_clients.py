"""
Tests for the order ingestion and vendor master clients with requests mocked out
"""
from decimal import Decimal
from unittest.mock import patch, MagicMock

import requests
from django.test import TestCase, override_settings

from fulfillment_hub.test_utils import TestDataFactory, JsonClient
from inventory.services import ExternalDependencyError
from integrations.models import SyncQueueItem
from integrations.services import OrderIngestionClient, VendorMasterClient
from production.models import ProductionUnit, Stage
from replenishment.models import PurchaseOrder, Vendor, VendorItem
from replenishment.services import PurchaseOrderService


def fake_response(payload=None, status=200):
    response = MagicMock()
    response.status_code = status
    response.content = b'{}' if payload is not None else b''
    response.json.return_value = payload
    response.text = str(payload)
    return response


ORDER = {
    'order_id': 'SO-500',
    'order_date': '2026-04-02',
    'items': [
        {'product_ref': 'TEE-M', 'quantity': 2, 'materials': [{'sku': 'BLANK-TEE-M', 'quantity': 1}]},
        {'product_ref': 'CAP', 'quantity': 1},
    ],
}


@override_settings(ORDER_SERVICE_URL='http://orders.test/', ORDER_SERVICE_TOKEN='secret', EXTERNAL_REQUEST_TIMEOUT=3)
class OrderIngestionClientTests(TestCase):

    @patch('integrations.services.base_client.requests.request')
    def test_import_creates_one_unit_per_piece(self, request):
        request.return_value = fake_response(ORDER)

        result = OrderIngestionClient.import_order('SO-500', actor='ops')

        self.assertEqual(len(result['created']), 3)
        request.assert_called_once()
        args, kwargs = request.call_args
        self.assertEqual(args, ('GET', 'http://orders.test/orders/SO-500'))
        self.assertEqual(kwargs['timeout'], 3)
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer secret')

        units = ProductionUnit.objects.filter(order_id='SO-500')
        self.assertEqual(units.count(), 3)
        self.assertTrue(all(u.stage == Stage.PLANNED for u in units))
        tee = units.filter(product_ref='TEE-M').first()
        self.assertEqual(list(tee.requirements.values_list('sku', flat=True)), ['BLANK-TEE-M'])

    @patch('integrations.services.base_client.requests.request')
    def test_import_is_idempotent(self, request):
        request.return_value = fake_response(ORDER)
        OrderIngestionClient.import_order('SO-500')

        result = OrderIngestionClient.import_order('SO-500')

        self.assertEqual(result['created'], [])
        self.assertEqual(len(result['existing']), 3)
        self.assertEqual(request.call_count, 1)

    @patch('integrations.services.base_client.requests.request')
    def test_transport_failures_become_external_errors(self, request):
        for error in (requests.exceptions.Timeout(), requests.exceptions.ConnectionError()):
            request.side_effect = error
            with self.assertRaises(ExternalDependencyError):
                OrderIngestionClient.fetch_order('SO-1')

        request.side_effect = None
        request.return_value = fake_response({'detail': 'boom'}, status=503)
        with self.assertRaises(ExternalDependencyError):
            OrderIngestionClient.fetch_order('SO-1')

    @patch('integrations.services.base_client.requests.request')
    def test_import_endpoint_queues_when_service_is_down(self, request):
        request.side_effect = requests.exceptions.ConnectionError()
        client = JsonClient()

        response = client.post_json('/api/integrations/orders/import/', {'order_id': 'SO-9'})

        self.assertEqual(response.status_code, 202)
        item = SyncQueueItem.objects.get()
        self.assertEqual((item.operation, item.entity_id), ('import_order', 'SO-9'))
        self.assertIn('Connection failed', item.last_error)


@override_settings(VENDOR_MASTER_URL='http://vendors.test')
class VendorMasterClientTests(TestCase):

    @patch('integrations.services.base_client.requests.request')
    def test_sync_vendors(self, request):
        request.return_value = fake_response({'vendors': [
            {'id': 'V-1', 'name': 'Acme', 'lead_time_days': 6,
             'items': [{'sku': 'YARN', 'rate': '1.25', 'is_primary': True}]},
            {'id': 'V-2', 'name': 'Bolt', 'sku': 'YARN', 'rate': '1.10'},
        ]})

        result = VendorMasterClient.sync_vendors()

        self.assertEqual(result['synced'], 2)
        self.assertEqual(Vendor.objects.count(), 2)
        self.assertEqual(VendorItem.objects.get(vendor__external_id='V-2').rate, Decimal('1.10'))

    @patch('integrations.services.base_client.requests.request')
    def test_push_marks_draft_as_sent(self, request):
        request.return_value = fake_response({'accepted': True})
        vendor = TestDataFactory.create_vendor()
        TestDataFactory.create_vendor_item(vendor, 'YARN', is_primary=True)
        item = TestDataFactory.create_rop_item('YARN', vendor=vendor)
        po_id = PurchaseOrderService.create_purchase_orders([item.id])['data']['purchase_orders'][0]['id']

        VendorMasterClient.push_purchase_order(po_id)

        self.assertEqual(PurchaseOrder.objects.get(id=po_id).status, PurchaseOrder.Status.SENT)
        args, kwargs = request.call_args
        self.assertEqual(args, ('POST', 'http://vendors.test/purchase-orders'))
        self.assertEqual(kwargs['json']['vendor_external_id'], vendor.external_id)
