import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from parkwise.errors import ValidationError
from parkwise.services import pricing

START = datetime(2026, 3, 2, 9, 0)


class TestBillableHours(unittest.TestCase):

    def test_partial_hours_round_up(self):
        self.assertEqual(pricing.billable_hours(START, START + timedelta(hours=2, minutes=1)), 3)

    def test_exact_hours(self):
        self.assertEqual(pricing.billable_hours(START, START + timedelta(hours=4)), 4)

    def test_minimum_one_hour(self):
        self.assertEqual(pricing.billable_hours(START, START + timedelta(minutes=5)), 1)
        self.assertEqual(pricing.billable_hours(START, START), 1)


class TestQuote(unittest.TestCase):

    def quote(self, **kwargs):
        return pricing.quote(START, START + timedelta(hours=4), 50, **kwargs)

    def test_base_fee_without_discounts(self):
        quote = self.quote()
        self.assertEqual(quote.hours, 4)
        self.assertEqual(quote.base, Decimal('200.00'))
        self.assertEqual(quote.total, Decimal('200.00'))

    def test_membership_discount(self):
        quote = self.quote(discount_percentage=15)
        self.assertEqual(quote.membership_discount, Decimal('30.00'))
        self.assertEqual(quote.total, Decimal('170.00'))

    def test_membership_then_points(self):
        quote = self.quote(discount_percentage=15, points_to_redeem=50)
        self.assertEqual(quote.points_used, 50)
        self.assertEqual(quote.total, Decimal('120.00'))

    def test_membership_discount_uses_base_fee(self):
        # points do not shrink the amount the percentage applies to
        with_points = self.quote(discount_percentage=10, points_to_redeem=100)
        self.assertEqual(with_points.membership_discount, Decimal('20.00'))
        self.assertEqual(with_points.total, Decimal('80.00'))

    def test_points_clamped_to_remaining_amount(self):
        quote = self.quote(discount_percentage=15, points_to_redeem=500)
        self.assertEqual(quote.points_used, 170)
        self.assertEqual(quote.points_discount, Decimal('170.00'))
        self.assertEqual(quote.total, Decimal('0.00'))

    def test_fractional_remainder_is_not_covered_by_points(self):
        quote = self.quote(discount_percentage=Decimal('14.75'), points_to_redeem=500)
        self.assertEqual(quote.membership_discount, Decimal('29.50'))
        self.assertEqual(quote.points_used, 170)
        self.assertEqual(quote.points_discount, Decimal('170.00'))
        self.assertEqual(quote.total, Decimal('0.50'))

    def test_total_never_negative(self):
        for points in (0, 1, 199, 200, 201, 10000):
            for discount in (0, 15, Decimal('14.75'), 50, 100):
                quote = self.quote(discount_percentage=discount, points_to_redeem=points)
                self.assertGreaterEqual(quote.total, 0)
                self.assertLessEqual(quote.points_discount, quote.base - quote.membership_discount)
                self.assertEqual(quote.points_discount, quote.points_used)

    def test_points_earned_on_base_fee(self):
        quote = self.quote(discount_percentage=15, points_to_redeem=50)
        self.assertEqual(quote.points_earned, 20)

    def test_points_earned_rounds_down(self):
        quote = pricing.quote(START, START + timedelta(hours=1), 35)
        self.assertEqual(quote.points_earned, 3)

    def test_end_must_follow_start(self):
        with self.assertRaises(ValidationError):
            pricing.quote(START, START, 50)
        with self.assertRaises(ValidationError):
            pricing.quote(START, START - timedelta(hours=1), 50)

    def test_negative_points_rejected(self):
        with self.assertRaises(ValidationError):
            self.quote(points_to_redeem=-1)


class TestSettlement(unittest.TestCase):

    def test_settlement_uses_actual_duration(self):
        hours, amount = pricing.settlement_amount(START, START + timedelta(hours=2, minutes=10), Decimal('50'))
        self.assertEqual(hours, 3)
        self.assertEqual(amount, Decimal('150.00'))


if __name__ == '__main__':
    unittest.main()
