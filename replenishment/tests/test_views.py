"""
API tests for the replenishment endpoints
"""
from datetime import date

from django.core.cache import cache
from django.test import TestCase

from fulfillment_hub.test_utils import TestDataFactory, JsonClient
from replenishment.models import CalculationJob, ROPItem
from replenishment.services.rop_service import LOCK_KEY


class ReplenishmentApiTests(TestCase):
    client_class = JsonClient

    def setUp(self):
        cache.delete(LOCK_KEY)
        self.vendor = TestDataFactory.create_vendor()
        TestDataFactory.create_vendor_item(self.vendor, 'YARN', lead_time_days=4, is_primary=True)
        TestDataFactory.record_usage('YARN', date(2026, 6, 30), [10] * 14 + [15] + [10] * 14 + [5])

    def tearDown(self):
        cache.delete(LOCK_KEY)

    def test_foreground_calculation_and_listing(self):
        response = self.client.post_json('/api/replenishment/rop/calculate/', {
            'as_of': '2026-06-30', 'background': False,
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.payload['data']['status'], CalculationJob.Status.SUCCEEDED)

        response = self.client.get_json('/api/replenishment/rop/to-order/')
        self.assertEqual(response.payload['total'], 1)
        self.assertEqual(response.payload['data'][0]['suggested_quantity'], 60)

        job_id = CalculationJob.objects.get().job_id
        response = self.client.get_json(f'/api/replenishment/rop/jobs/{job_id}/')
        self.assertEqual(response.status_code, 200)

    def test_calculation_in_progress_is_409(self):
        running = CalculationJob.objects.create(as_of=date(2026, 6, 30))
        cache.set(LOCK_KEY, str(running.job_id), timeout=None)

        response = self.client.post_json('/api/replenishment/rop/calculate/', {'background': False})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.payload['error_code'], 'CALCULATION_IN_PROGRESS')
        self.assertEqual(response.payload['details']['job_id'], str(running.job_id))

        response = self.client.post_json('/api/replenishment/rop/calculate/', {})
        self.assertEqual(response.status_code, 202)
        self.assertFalse(response.payload['data']['started'])

    def test_overrides_and_purchase_orders(self):
        item = TestDataFactory.create_rop_item('YARN', suggested_quantity=10, vendor=self.vendor)

        response = self.client.put_json(f'/api/replenishment/rop/{item.id}/quantity/', {'quantity': 12})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.payload['data']['to_order_quantity'], 12)

        response = self.client.put_json(f'/api/replenishment/rop/{item.id}/vendor-split/', {
            'vendor_splits': [{'vendor_id': self.vendor.id, 'quantity': 10, 'rate': 1}],
        })
        self.assertEqual(response.status_code, 400)

        response = self.client.post_json('/api/replenishment/rop/create-pos/', {'rop_item_ids': [item.id]})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(ROPItem.objects.get(id=item.id).status, ROPItem.Status.ORDERED)

        response = self.client.put_json(f'/api/replenishment/rop/{item.id}/quantity/', {'quantity': 1})
        self.assertEqual(response.status_code, 409)
