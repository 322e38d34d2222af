"""
API tests for the production endpoints
"""
from django.test import TestCase

from fulfillment_hub.test_utils import TestDataFactory, JsonClient
from production.models import Batch, Stage


class ProductionApiTests(TestCase):
    client_class = JsonClient

    def setUp(self):
        self.bin = TestDataFactory.create_bin('A-01')
        TestDataFactory.stock_bin(self.bin, 'CAP', 3)

    def test_create_and_fetch_unit(self):
        response = self.client.post_json('/api/production/units/', {
            'order_id': 'SO-77', 'product_ref': 'CAP', 'order_date': '2026-05-01',
        })
        self.assertEqual(response.status_code, 201)
        unit_id = response.payload['data']['id']

        response = self.client.get_json(f'/api/production/units/{unit_id}/')
        self.assertEqual(response.payload['data']['stage'], Stage.PLANNED)

        response = self.client.get_json('/api/production/units/', {'search': 'SO-77'})
        self.assertEqual(response.payload['total'], 1)

    def test_malformed_materials_are_400(self):
        response = self.client.post_json('/api/production/units/', {
            'order_id': 'SO-78', 'product_ref': 'CAP', 'materials': ['CAP'],
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.payload['error_code'], 'VALIDATION_ERROR')

    def test_illegal_transition_is_409(self):
        unit = TestDataFactory.create_unit()
        response = self.client.post_json(f'/api/production/units/{unit.id}/advance/', {
            'from_stage': 'PLANNED', 'to_stage': 'PACKED',
        })
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.payload['error_code'], 'INVALID_TRANSITION')

    def test_qc_failure_without_reason_is_400(self):
        unit = TestDataFactory.create_unit(stage=Stage.QC_PENDING)
        response = self.client.post_json(f'/api/production/units/{unit.id}/qc/', {'passed': False})
        self.assertEqual(response.status_code, 400)

    def test_batch_flow(self):
        units = [TestDataFactory.create_unit(product_ref='CAP') for _ in range(2)]
        response = self.client.post_json('/api/production/batches/', {
            'stage_type': 'KITTING', 'unit_ids': [u.id for u in units],
        })
        self.assertEqual(response.status_code, 201)
        batch_id = response.payload['data']['id']

        response = self.client.post_json(f'/api/production/batches/{batch_id}/complete/')
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.payload['error_code'], 'BATCH_INCOMPLETE')

        response = self.client.post_json(f'/api/production/batches/{batch_id}/advance-all/', {'to_stage': 'KITTED'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([r['success'] for r in response.payload['data']], [True, True])

        response = self.client.get_json(f'/api/production/batches/{batch_id}/accounting/')
        self.assertEqual(response.payload['data']['advanced'], 2)

        response = self.client.post_json(f'/api/production/batches/{batch_id}/complete/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Batch.objects.get(id=batch_id).status, Batch.Status.COMPLETE)

    def test_manifest_endpoints(self):
        unit = TestDataFactory.create_unit(stage=Stage.PRINTED)
        response = self.client.post_json('/api/production/manifests/', {
            'unit_ids': [unit.id], 'courier_partner': 'FastShip',
        })
        self.assertEqual(response.status_code, 201)
        manifest_id = response.payload['data']['id']

        response = self.client.patch_json(f'/api/production/manifests/{manifest_id}/', {'status': 'PICKED_UP'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.payload['data']['status'], 'PICKED_UP')
