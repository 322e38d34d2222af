"""
API tests for the inventory endpoints: envelopes and error status mapping
"""
from django.test import TestCase

from fulfillment_hub.test_utils import TestDataFactory, JsonClient
from inventory.models import BinStock
from production.models import Stage


class InventoryApiTests(TestCase):
    client_class = JsonClient

    def setUp(self):
        self.bin_a = TestDataFactory.create_bin('A-01')
        self.bin_b = TestDataFactory.create_bin('B-01')
        TestDataFactory.stock_bin(self.bin_a, 'SOCK', 5)
        TestDataFactory.stock_bin(self.bin_b, 'SOCK', 3)

    def test_bin_list_envelope(self):
        response = self.client.get_json('/api/inventory/bins/', {'limit': 1})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.payload['success'])
        self.assertEqual(response.payload['total'], 2)
        self.assertEqual(len(response.payload['data']), 1)

    def test_create_bin_validation_is_400(self):
        response = self.client.post_json('/api/inventory/bins/', {'code': '', 'name': 'x'})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.payload['success'])
        self.assertEqual(response.payload['error_code'], 'VALIDATION_ERROR')
        self.assertEqual(response.payload['details']['field'], 'code')

    def test_malformed_json_is_400(self):
        response = self.client.post('/api/inventory/availability/', data='{nope', content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_unknown_bin_is_404(self):
        response = self.client.get_json('/api/inventory/bins/9999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.payload['error_code'], 'NOT_FOUND')

    def test_duplicate_bin_is_409(self):
        response = self.client.post_json('/api/inventory/bins/', {'code': 'A-01', 'name': 'dup'})
        self.assertEqual(response.status_code, 409)

    def test_oversized_transfer_is_422(self):
        response = self.client.post_json('/api/inventory/transfers/', {
            'from_bin_id': self.bin_b.id, 'to_bin_id': self.bin_a.id, 'sku': 'SOCK', 'quantity': 4,
        })
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.payload['error_code'], 'INSUFFICIENT_STOCK')

    def test_availability(self):
        response = self.client.post_json('/api/inventory/availability/', {
            'items': [{'sku': 'SOCK', 'quantity': 8}]
        })
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.payload['data']['can_fulfill'])

    def test_auto_pick_reports_each_unit(self):
        unit = TestDataFactory.create_unit(stage=Stage.KITTING, materials={'SOCK': 6})
        response = self.client.post_json('/api/inventory/auto-pick/', {
            'units': [{'unit_id': unit.id, 'items': [{'sku': 'SOCK', 'quantity': 6}]}]
        })

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.payload['data'][0]['success'])
        self.assertEqual(len(response.payload['data'][0]['reservations']), 2)
        self.assertEqual(BinStock.objects.get(bin=self.bin_b, sku='SOCK').quantity, 2)

    def test_cycle_count_flow(self):
        response = self.client.post_json('/api/inventory/cycle-counts/', {'sample_size': 2})
        self.assertEqual(response.status_code, 201)
        session = response.payload['data']

        counts = [{'entry_id': e['id'], 'counted_quantity': e['system_quantity']} for e in session['entries']]
        response = self.client.post_json(f"/api/inventory/cycle-counts/{session['id']}/record/", {'counts': counts})
        self.assertEqual(response.status_code, 200)

        response = self.client.post_json(f"/api/inventory/cycle-counts/{session['id']}/apply/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.payload['data']['adjustments'], [])

        response = self.client.post_json(f"/api/inventory/cycle-counts/{session['id']}/apply/")
        self.assertEqual(response.status_code, 409)
