"""
Tests for batch creation, membership accounting and completion
"""
from datetime import date
from unittest.mock import patch

from django.db.models.query import QuerySet
from django.test import TestCase, override_settings

from fulfillment_hub.test_utils import TestDataFactory
from inventory.models import BinStock, StockReservation
from inventory.services import ConflictError, BatchIncompleteError, ValidationError
from production.models import Batch, BatchMembership, ProductionUnit, Stage
from production.services import BatchService, PipelineService


class CreateBatchTests(TestCase):

    def setUp(self):
        self.bin = TestDataFactory.create_bin('A-01')
        TestDataFactory.stock_bin(self.bin, 'MUG', 2)
        self.early = TestDataFactory.create_unit(product_ref='MUG', order_date=date(2026, 1, 5))
        self.late = TestDataFactory.create_unit(product_ref='MUG', order_date=date(2026, 1, 20))

    def test_kitting_batch_from_date_window(self):
        data = BatchService.create_batch(
            Batch.StageType.KITTING, from_date='2026-01-01', to_date='2026-01-10', actor='planner'
        )['data']

        self.assertTrue(data['batch_number'].startswith('KB-'))
        self.assertEqual([u['id'] for u in data['units']], [self.early.id])
        self.early.refresh_from_db()
        self.assertEqual(self.early.stage, Stage.KITTING)
        self.assertTrue(data['auto_pick'][0]['success'])
        self.assertEqual(BinStock.objects.get(bin=self.bin, sku='MUG').quantity, 1)

    def test_kitting_batch_auto_pick_failure_is_reported(self):
        TestDataFactory.stock_bin(self.bin, 'MUG', 1)
        data = BatchService.create_batch(Batch.StageType.KITTING, unit_ids=[self.early.id, self.late.id])['data']

        outcomes = {r['unit_id']: r['success'] for r in data['auto_pick']}
        self.assertEqual(outcomes, {self.early.id: True, self.late.id: False})
        self.assertEqual(ProductionUnit.objects.filter(stage=Stage.KITTING).count(), 2)

    def test_unit_cannot_join_two_open_batches_of_same_type(self):
        BatchService.create_batch(Batch.StageType.KITTING, unit_ids=[self.early.id])
        second = Batch.objects.create(batch_number='KB-X', stage_type=Batch.StageType.KITTING)

        with self.assertRaises(ConflictError):
            BatchService.assign_to_batch(self.early.id, second.id)

    def test_ineligible_stage_is_refused(self):
        packing = Batch.objects.create(batch_number='PB-X', stage_type=Batch.StageType.PACKING)
        with self.assertRaises(ConflictError):
            BatchService.assign_to_batch(self.early.id, packing.id)

    def test_no_eligible_units(self):
        with self.assertRaises(ValidationError):
            BatchService.create_batch(Batch.StageType.PACKING)

    def test_invalid_window(self):
        with self.assertRaises(ValidationError):
            BatchService.create_batch(Batch.StageType.KITTING, from_date='2026-02-01', to_date='2026-01-01')


class BatchLifecycleTests(TestCase):

    def setUp(self):
        self.bin = TestDataFactory.create_bin('A-01')
        TestDataFactory.stock_bin(self.bin, 'TEE', 10)
        self.units = [TestDataFactory.create_unit(product_ref='TEE') for _ in range(3)]
        data = BatchService.create_batch(Batch.StageType.KITTING, unit_ids=[u.id for u in self.units])['data']
        self.batch = Batch.objects.get(id=data['id'])

    def test_accounting_balances_through_advance_and_removal(self):
        PipelineService.advance(self.units[0].id, Stage.KITTING, Stage.KITTED)
        BatchService.remove_from_batch(self.units[1].id, reason='Customer cancelled')

        accounting = BatchService.batch_accounting(self.batch.id)['data']
        self.assertEqual(accounting['original'], 3)
        self.assertEqual(accounting['advanced'], 1)
        self.assertEqual(accounting['removed'], 1)
        self.assertEqual(accounting['in_stage'], 1)
        self.assertTrue(accounting['balanced'])

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.status, Batch.Status.IN_PROGRESS)

    def test_removed_kitting_unit_returns_stock_and_replans(self):
        BatchService.remove_from_batch(self.units[1].id)

        unit = ProductionUnit.objects.get(id=self.units[1].id)
        self.assertEqual(unit.stage, Stage.PLANNED)
        self.assertIsNone(unit.batch_id)
        self.assertFalse(StockReservation.objects.filter(unit=unit).exists())
        self.assertEqual(BinStock.objects.get(bin=self.bin, sku='TEE').quantity, 8)

    def test_complete_requires_empty_stage(self):
        with self.assertRaises(BatchIncompleteError):
            PipelineService.complete_batch(self.batch.id)
        self.assertFalse(BatchService.is_batch_complete(self.batch.id))

    def test_advance_all_then_complete(self):
        results = PipelineService.advance_all(self.batch.id, Stage.KITTED, actor='kitter')

        self.assertTrue(all(r['success'] for r in results))
        self.assertTrue(BatchService.is_batch_complete(self.batch.id))

        PipelineService.complete_batch(self.batch.id, actor='lead')
        again = PipelineService.complete_batch(self.batch.id)
        self.assertEqual(again['data']['status'], Batch.Status.COMPLETE)

        with self.assertRaises(ConflictError):
            BatchService.assign_to_batch(TestDataFactory.create_unit().id, self.batch.id)

    def test_advance_all_reports_each_failure(self):
        StockReservation.objects.filter(unit=self.units[2]).delete()

        results = PipelineService.advance_all(self.batch.id, Stage.KITTED)

        by_unit = {r['unit_id']: r for r in results}
        self.assertTrue(by_unit[self.units[0].id]['success'])
        self.assertFalse(by_unit[self.units[2].id]['success'])
        self.assertEqual(by_unit[self.units[2].id]['error_code'], 'INSUFFICIENT_STOCK')
        self.assertEqual(BatchService.remaining_in_stage(self.batch), 1)

    @override_settings(FULFILLMENT_AUTO_COMPLETE_BATCHES=True)
    def test_auto_complete_when_stage_clears(self):
        PipelineService.advance_all(self.batch.id, Stage.KITTED)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.status, Batch.Status.COMPLETE)

    @override_settings(FULFILLMENT_AUTO_COMPLETE_BATCHES=True)
    def test_leaving_unit_locks_batch_before_counting(self):
        original = QuerySet.select_for_update
        locked = []

        def record_lock(queryset, *args, **kwargs):
            locked.append(queryset.model)
            return original(queryset, *args, **kwargs)

        PipelineService.advance(self.units[0].id, Stage.KITTING, Stage.KITTED)
        PipelineService.advance(self.units[1].id, Stage.KITTING, Stage.KITTED)
        with patch.object(QuerySet, 'select_for_update', autospec=True, side_effect=record_lock):
            PipelineService.advance(self.units[2].id, Stage.KITTING, Stage.KITTED)

        self.assertIn(Batch, locked)
        self.assertLess(locked.index(ProductionUnit), locked.index(Batch))
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.status, Batch.Status.COMPLETE)

    def test_packing_batch_picks_up_kitted_units(self):
        PipelineService.advance_all(self.batch.id, Stage.KITTED)
        PipelineService.complete_batch(self.batch.id)

        data = BatchService.create_batch(Batch.StageType.PACKING)['data']
        self.assertEqual(len(data['units']), 3)
        self.assertNotIn('auto_pick', data)
        self.assertEqual(
            ProductionUnit.objects.filter(stage=Stage.PACKING, batch_id=data['id']).count(), 3
        )
        self.assertEqual(
            BatchMembership.objects.filter(unit=self.units[0], left_at__isnull=True).count(), 1
        )
