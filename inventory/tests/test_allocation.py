"""
Tests for availability, auto-pick and putback
"""
from django.test import TestCase

from fulfillment_hub.test_utils import TestDataFactory
from inventory.models import BinStock, StockMovement, StockReservation
from inventory.services import AllocationService, ValidationError, NotFoundError
from production.models import Stage


class AvailabilityTests(TestCase):

    def setUp(self):
        self.bin_a = TestDataFactory.create_bin('A-01')
        self.bin_b = TestDataFactory.create_bin('B-01')
        TestDataFactory.stock_bin(self.bin_a, 'THREAD-RED', 5)
        TestDataFactory.stock_bin(self.bin_b, 'THREAD-RED', 3)

    def test_duplicate_skus_are_aggregated(self):
        result = AllocationService.check_availability([
            {'sku': 'THREAD-RED', 'quantity': 4},
            {'sku': 'THREAD-RED', 'quantity': 4},
        ])
        self.assertEqual(len(result['per_item']), 1)
        self.assertEqual(result['per_item'][0]['required'], 8)
        self.assertEqual(result['per_item'][0]['available'], 8)
        self.assertTrue(result['can_fulfill'])

    def test_short_sku_blocks_fulfilment(self):
        result = AllocationService.check_availability([
            {'sku': 'THREAD-RED', 'quantity': 2},
            {'sku': 'BUTTON', 'quantity': 1},
        ])
        self.assertFalse(result['can_fulfill'])
        button = [i for i in result['per_item'] if i['sku'] == 'BUTTON'][0]
        self.assertEqual(button['available'], 0)
        self.assertFalse(button['sufficient'])

    def test_inactive_bins_do_not_count(self):
        self.bin_b.is_active = False
        self.bin_b.save()
        result = AllocationService.check_availability([{'sku': 'THREAD-RED', 'quantity': 6}])
        self.assertFalse(result['can_fulfill'])
        self.assertEqual(result['per_item'][0]['available'], 5)

    def test_rejects_non_positive_quantity(self):
        with self.assertRaises(ValidationError):
            AllocationService.check_availability([{'sku': 'THREAD-RED', 'quantity': 0}])
        with self.assertRaises(ValidationError):
            AllocationService.check_availability([{'sku': 'THREAD-RED', 'quantity': 1.5}])


class AutoPickTests(TestCase):

    def setUp(self):
        self.bin_a = TestDataFactory.create_bin('A-01')
        self.bin_b = TestDataFactory.create_bin('B-01')
        TestDataFactory.stock_bin(self.bin_a, 'FABRIC', 5)
        TestDataFactory.stock_bin(self.bin_b, 'FABRIC', 3)
        self.unit = TestDataFactory.create_unit(stage=Stage.KITTING, materials={'FABRIC': 6})

    def test_picks_across_bins_in_bin_order(self):
        results = AllocationService.auto_pick([
            {'unit_id': self.unit.id, 'items': [{'sku': 'FABRIC', 'quantity': 6}]}
        ])

        self.assertTrue(results[0]['success'])
        self.assertEqual(BinStock.objects.get(bin=self.bin_a, sku='FABRIC').quantity, 0)
        self.assertEqual(BinStock.objects.get(bin=self.bin_b, sku='FABRIC').quantity, 2)

        reservations = list(StockReservation.objects.filter(unit=self.unit).order_by('bin_id'))
        self.assertEqual(len(reservations), 2)
        self.assertEqual([(r.bin_id, r.quantity) for r in reservations], [(self.bin_a.id, 5), (self.bin_b.id, 1)])
        self.assertEqual(
            StockMovement.objects.filter(movement_type=StockMovement.MovementType.PICK).count(), 2
        )

    def test_shortfall_reserves_nothing(self):
        results = AllocationService.auto_pick([
            {'unit_id': self.unit.id, 'items': [
                {'sku': 'FABRIC', 'quantity': 6},
                {'sku': 'ZIPPER', 'quantity': 1},
            ]}
        ])

        self.assertFalse(results[0]['success'])
        self.assertEqual(results[0]['error_code'], 'INSUFFICIENT_STOCK')
        self.assertFalse(StockReservation.objects.filter(unit=self.unit).exists())
        self.assertEqual(BinStock.objects.get(bin=self.bin_a, sku='FABRIC').quantity, 5)
        self.assertEqual(BinStock.objects.get(bin=self.bin_b, sku='FABRIC').quantity, 3)

    def test_one_failing_unit_does_not_block_others(self):
        other = TestDataFactory.create_unit(stage=Stage.KITTING, materials={'FABRIC': 2})
        results = AllocationService.auto_pick([
            {'unit_id': self.unit.id, 'items': [{'sku': 'FABRIC', 'quantity': 20}]},
            {'unit_id': other.id, 'items': [{'sku': 'FABRIC', 'quantity': 2}]},
        ])

        self.assertEqual([r['success'] for r in results], [False, True])
        total = sum(s.quantity for s in BinStock.objects.filter(sku='FABRIC'))
        self.assertEqual(total, 6)

    def test_unit_with_reservations_is_not_picked_twice(self):
        AllocationService.auto_pick([{'unit_id': self.unit.id, 'items': [{'sku': 'FABRIC', 'quantity': 1}]}])
        results = AllocationService.auto_pick([{'unit_id': self.unit.id, 'items': [{'sku': 'FABRIC', 'quantity': 1}]}])

        self.assertFalse(results[0]['success'])
        self.assertEqual(results[0]['error_code'], 'CONFLICT')
        self.assertEqual(StockReservation.objects.filter(unit=self.unit).count(), 1)

    def test_unknown_unit_is_reported(self):
        results = AllocationService.auto_pick([{'unit_id': 99999, 'items': [{'sku': 'FABRIC', 'quantity': 1}]}])
        self.assertFalse(results[0]['success'])
        self.assertEqual(results[0]['error_code'], 'NOT_FOUND')

    def test_never_allocates_more_than_available(self):
        units = [TestDataFactory.create_unit(stage=Stage.KITTING) for _ in range(4)]
        AllocationService.auto_pick([
            {'unit_id': u.id, 'items': [{'sku': 'FABRIC', 'quantity': 3}]} for u in units
        ])

        reserved = sum(r.quantity for r in StockReservation.objects.filter(sku='FABRIC'))
        self.assertLessEqual(reserved, 8)
        for stock in BinStock.objects.filter(sku='FABRIC'):
            self.assertGreaterEqual(stock.quantity, 0)
        self.assertEqual(reserved + sum(s.quantity for s in BinStock.objects.filter(sku='FABRIC')), 8)


class PutbackTests(TestCase):

    def setUp(self):
        self.bin_c = TestDataFactory.create_bin('C-01')
        TestDataFactory.stock_bin(self.bin_c, 'LABEL', 10)
        self.unit = TestDataFactory.create_unit(stage=Stage.KITTING, materials={'LABEL': 4})
        AllocationService.auto_pick([{'unit_id': self.unit.id, 'items': [{'sku': 'LABEL', 'quantity': 4}]}])
        self.reservation = StockReservation.objects.get(unit=self.unit)

    def test_partial_putback_reduces_reservation(self):
        result = AllocationService.putback(
            [{'reservation_id': self.reservation.id, 'quantity': 1}], reason='Spare'
        )

        self.assertEqual(result['data'][0]['remaining'], 3)
        self.reservation.refresh_from_db()
        self.assertEqual(self.reservation.quantity, 3)
        self.assertEqual(BinStock.objects.get(bin=self.bin_c, sku='LABEL').quantity, 7)

    def test_full_putback_deletes_reservation(self):
        AllocationService.putback([{'reservation_id': self.reservation.id}])

        self.assertFalse(StockReservation.objects.filter(id=self.reservation.id).exists())
        self.assertEqual(BinStock.objects.get(bin=self.bin_c, sku='LABEL').quantity, 10)
        movement = StockMovement.objects.filter(movement_type=StockMovement.MovementType.PUTBACK).get()
        self.assertEqual(movement.quantity, 4)
        self.assertEqual(movement.reference_id, self.unit.uid)

    def test_cannot_put_back_more_than_reserved(self):
        with self.assertRaises(ValidationError):
            AllocationService.putback([{'reservation_id': self.reservation.id, 'quantity': 5}])
        self.assertEqual(BinStock.objects.get(bin=self.bin_c, sku='LABEL').quantity, 6)

    def test_unknown_reservation(self):
        with self.assertRaises(NotFoundError):
            AllocationService.putback([{'reservation_id': 424242}])

    def test_release_unit_returns_everything(self):
        returned = AllocationService.release_unit(self.unit.id, reason='QC failed')
        self.assertEqual(sum(r['quantity'] for r in returned), 4)
        self.assertFalse(StockReservation.objects.filter(unit=self.unit).exists())
