"""
Tests for the reorder-point engine
"""
from datetime import date, timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone

from fulfillment_hub.test_utils import TestDataFactory
from inventory.models import BinStock
from inventory.services import CalculationInProgressError, ValidationError, ConflictError, NotFoundError
from replenishment.models import CalculationJob, ROPItem
from replenishment.services import ROPService
from replenishment.services.rop_service import LOCK_KEY

AS_OF = date(2026, 6, 30)


def steady_usage():
    """30 days: 28 at 10, one at 15 and one at 5. Average 10, peak 15."""
    return [10] * 14 + [15] + [10] * 14 + [5]


@override_settings(ROP_LOOKBACK_DAYS=30, ROP_DEFAULT_LEAD_TIME_DAYS=7)
class ComputeFiguresTests(TestCase):

    def setUp(self):
        self.vendor = TestDataFactory.create_vendor(name='Thread Co')
        TestDataFactory.create_vendor_item(self.vendor, 'YARN', rate='2.50', lead_time_days=4, is_primary=True)
        self.bin = TestDataFactory.create_bin('Y-01')
        TestDataFactory.stock_bin(self.bin, 'YARN', 50)
        TestDataFactory.record_usage('YARN', AS_OF, steady_usage())

    def test_reference_scenario(self):
        figures = ROPService.compute_figures(AS_OF)['YARN']

        self.assertEqual(figures['average_daily_usage'], Decimal('10.0000'))
        self.assertEqual(figures['maximum_daily_usage'], Decimal('15.0000'))
        self.assertEqual(figures['lead_time_days'], 4)
        self.assertEqual(figures['lead_time_demand'], Decimal('40.0000'))
        self.assertEqual(figures['safety_stock'], Decimal('20.0000'))
        self.assertEqual(figures['rop'], Decimal('60.0000'))
        self.assertEqual(figures['current_stock'], 50)
        self.assertEqual(figures['suggested_quantity'], 10)
        self.assertEqual(figures['primary_vendor'], self.vendor)

    def test_usage_outside_window_is_ignored(self):
        TestDataFactory.record_usage('YARN', AS_OF - timedelta(days=30), [500])
        self.assertEqual(ROPService.compute_figures(AS_OF)['YARN']['maximum_daily_usage'], Decimal('15.0000'))

    def test_pending_and_incoming_shift_suggestion(self):
        TestDataFactory.create_unit(materials={'YARN': 8})
        self.assertEqual(ROPService.compute_figures(AS_OF)['YARN']['suggested_quantity'], 18)

    def test_stock_above_rop_suggests_nothing(self):
        TestDataFactory.stock_bin(self.bin, 'YARN', 90)
        self.assertEqual(ROPService.compute_figures(AS_OF)['YARN']['suggested_quantity'], 0)

    def test_vendor_lead_time_then_default(self):
        self.vendor.items.update(lead_time_days=None)
        self.vendor.lead_time_days = 3
        self.vendor.save()
        self.assertEqual(ROPService.compute_figures(AS_OF)['YARN']['lead_time_days'], 3)

        self.vendor.items.all().delete()
        self.assertEqual(ROPService.compute_figures(AS_OF)['YARN']['lead_time_days'], 7)

    def test_repeating_average_does_not_inflate_suggestion(self):
        TestDataFactory.record_usage('BEAD', AS_OF, [1] * 29 + [2])
        figures = ROPService.compute_figures(AS_OF)['BEAD']
        self.assertEqual(figures['average_daily_usage'], Decimal('1.0333'))
        self.assertEqual(figures['rop'], Decimal('14.0000'))
        self.assertEqual(figures['suggested_quantity'], 14)

    def test_returns_reduce_net_usage(self):
        TestDataFactory.record_usage('YARN', AS_OF, [-30])
        figures = ROPService.compute_figures(AS_OF)['YARN']
        self.assertEqual(figures['average_daily_usage'], Decimal('9.0000'))
        self.assertEqual(figures['maximum_daily_usage'], Decimal('15.0000'))

    def test_no_usage_no_items(self):
        self.assertEqual(ROPService.compute_figures(AS_OF + timedelta(days=90)), {})


@override_settings(ROP_LOOKBACK_DAYS=30)
class CalculateTests(TestCase):

    def setUp(self):
        cache.delete(LOCK_KEY)
        self.vendor = TestDataFactory.create_vendor()
        TestDataFactory.create_vendor_item(self.vendor, 'YARN', lead_time_days=4, is_primary=True)
        self.bin = TestDataFactory.create_bin('Y-01')
        TestDataFactory.stock_bin(self.bin, 'YARN', 50)
        TestDataFactory.record_usage('YARN', AS_OF, steady_usage())

    def tearDown(self):
        cache.delete(LOCK_KEY)

    def _item(self):
        return ROPItem.objects.get(sku='YARN')

    def test_calculate_publishes_items_and_job(self):
        result = ROPService.calculate(as_of=AS_OF.isoformat(), actor='planner')['data']

        self.assertEqual(result['status'], CalculationJob.Status.SUCCEEDED)
        self.assertEqual(result['item_count'], 1)
        item = self._item()
        self.assertEqual(item.suggested_quantity, 10)
        self.assertEqual(item.status, ROPItem.Status.PENDING)
        self.assertIsNone(cache.get(LOCK_KEY))

        job = ROPService.get_job(result['job_id'])['data']
        self.assertEqual(job['item_count'], 1)

    def test_calculate_is_deterministic(self):
        ROPService.calculate(as_of=AS_OF)
        first = ROPService.serialize(self._item())
        ROPService.calculate(as_of=AS_OF)
        second = ROPService.serialize(self._item())

        for key in ('average_daily_usage', 'maximum_daily_usage', 'lead_time_demand',
                    'safety_stock', 'rop', 'suggested_quantity'):
            self.assertEqual(first[key], second[key])
        self.assertEqual(ROPItem.objects.count(), 1)

    def test_overrides_survive_recalculation(self):
        ROPService.calculate(as_of=AS_OF)
        ROPService.update_quantity(self._item().id, 25)

        ROPService.calculate(as_of=AS_OF)
        item = self._item()
        self.assertEqual(item.adjusted_quantity, 25)
        self.assertEqual(item.to_order_quantity, 25)
        self.assertEqual(item.status, ROPItem.Status.ADJUSTED)

    def test_vendor_split_survives_changed_suggestion(self):
        other = TestDataFactory.create_vendor(name='Other')
        ROPService.calculate(as_of=AS_OF)
        ROPService.update_vendor_split(self._item().id, [
            {'vendor_id': self.vendor.id, 'quantity': 6, 'rate': '1.00'},
            {'vendor_id': other.id, 'quantity': 4, 'rate': '1.20'},
        ])
        BinStock.objects.filter(bin=self.bin, sku='YARN').update(quantity=48)

        ROPService.calculate(as_of=AS_OF)

        item = self._item()
        self.assertEqual(item.suggested_quantity, 12)
        self.assertEqual([s['quantity'] for s in item.vendor_splits], [6, 4])
        self.assertEqual(item.adjusted_quantity, 10)
        self.assertEqual(item.to_order_quantity, 10)
        self.assertEqual(item.status, ROPItem.Status.ADJUSTED)

    def test_adjusted_item_outlives_its_usage_window(self):
        TestDataFactory.record_usage('NEEDLE', AS_OF, [2] * 30)
        ROPService.calculate(as_of=AS_OF)
        ROPService.update_quantity(self._item().id, 25)

        ROPService.calculate(as_of=AS_OF + timedelta(days=60))

        item = self._item()
        self.assertEqual(item.adjusted_quantity, 25)
        self.assertEqual(item.status, ROPItem.Status.ADJUSTED)
        self.assertFalse(ROPItem.objects.filter(sku='NEEDLE').exists())

    def test_discard_overrides(self):
        ROPService.calculate(as_of=AS_OF)
        ROPService.update_quantity(self._item().id, 25)

        ROPService.calculate(as_of=AS_OF, discard_overrides=True)
        item = self._item()
        self.assertIsNone(item.adjusted_quantity)
        self.assertEqual(item.status, ROPItem.Status.PENDING)

    def test_ordered_items_are_not_touched(self):
        ROPService.calculate(as_of=AS_OF)
        ROPItem.objects.filter(sku='YARN').update(status=ROPItem.Status.ORDERED, suggested_quantity=99)

        ROPService.calculate(as_of=AS_OF)
        ordered = ROPItem.objects.get(status=ROPItem.Status.ORDERED)
        self.assertEqual(ordered.suggested_quantity, 99)
        self.assertEqual(ROPItem.objects.filter(sku='YARN').count(), 2)

    def test_concurrent_run_is_refused(self):
        running = CalculationJob.objects.create(as_of=AS_OF)
        cache.set(LOCK_KEY, str(running.job_id), timeout=None)

        with self.assertRaises(CalculationInProgressError) as ctx:
            ROPService.calculate(as_of=AS_OF)
        self.assertEqual(ctx.exception.job_id, str(running.job_id))

        result = ROPService.trigger(as_of=AS_OF)['data']
        self.assertFalse(result['started'])
        self.assertEqual(result['job_id'], str(running.job_id))

    @override_settings(ROP_JOB_STALE_SECONDS=60)
    def test_abandoned_lock_is_taken_over(self):
        running = CalculationJob.objects.create(as_of=AS_OF)
        CalculationJob.objects.filter(id=running.id).update(started_at=timezone.now() - timedelta(hours=2))
        cache.set(LOCK_KEY, str(running.job_id), timeout=None)

        result = ROPService.calculate(as_of=AS_OF)['data']

        self.assertEqual(result['status'], CalculationJob.Status.SUCCEEDED)
        running.refresh_from_db()
        self.assertEqual(running.status, CalculationJob.Status.FAILED)

    def test_unknown_job(self):
        with self.assertRaises(NotFoundError):
            ROPService.get_job('not-a-uuid')

    def test_to_order_list_uses_override(self):
        ROPService.calculate(as_of=AS_OF)
        self.assertEqual(ROPService.list_to_order()['total'], 1)

        ROPService.update_quantity(self._item().id, 0)
        self.assertEqual(ROPService.list_to_order()['total'], 0)


class VendorSplitTests(TestCase):

    def setUp(self):
        self.v1 = TestDataFactory.create_vendor(name='North')
        self.v2 = TestDataFactory.create_vendor(name='South')
        self.item = TestDataFactory.create_rop_item('YARN', suggested_quantity=10, vendor=self.v1)

    def test_valid_split(self):
        data = ROPService.update_vendor_split(self.item.id, [
            {'vendor_id': self.v1.id, 'quantity': 6, 'rate': '2.5'},
            {'vendor_id': self.v2.id, 'quantity': 4, 'rate': 3},
        ])['data']
        self.assertEqual([s['quantity'] for s in data['vendor_splits']], [6, 4])
        self.assertEqual(data['vendor_splits'][0]['rate'], '2.50')
        self.assertEqual(data['status'], ROPItem.Status.ADJUSTED)

    def test_split_must_cover_order_quantity(self):
        with self.assertRaises(ValidationError):
            ROPService.update_vendor_split(self.item.id, [{'vendor_id': self.v1.id, 'quantity': 6, 'rate': 1}])

    def test_split_rejects_duplicates_and_unknown_vendors(self):
        with self.assertRaises(ValidationError):
            ROPService.update_vendor_split(self.item.id, [
                {'vendor_id': self.v1.id, 'quantity': 5, 'rate': 1},
                {'vendor_id': self.v1.id, 'quantity': 5, 'rate': 1},
            ])
        with self.assertRaises(ValidationError):
            ROPService.update_vendor_split(self.item.id, [{'vendor_id': 9999, 'quantity': 10, 'rate': 1}])

    def test_split_rejects_negative_rate(self):
        with self.assertRaises(ValidationError):
            ROPService.update_vendor_split(self.item.id, [{'vendor_id': self.v1.id, 'quantity': 10, 'rate': -1}])

    def test_quantity_change_drops_mismatched_split(self):
        ROPService.update_vendor_split(self.item.id, [{'vendor_id': self.v1.id, 'quantity': 10, 'rate': 1}])
        data = ROPService.update_quantity(self.item.id, 12)['data']
        self.assertEqual(data['vendor_splits'], [])

    def test_reset_overrides(self):
        ROPService.update_quantity(self.item.id, 12)
        data = ROPService.reset_overrides(self.item.id)['data']
        self.assertIsNone(data['adjusted_quantity'])
        self.assertEqual(data['status'], ROPItem.Status.PENDING)

    def test_ordered_item_is_locked(self):
        ROPItem.objects.filter(id=self.item.id).update(status=ROPItem.Status.ORDERED)
        with self.assertRaises(ConflictError):
            ROPService.update_quantity(self.item.id, 3)
